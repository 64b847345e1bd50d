import os
from dotenv import load_dotenv

load_dotenv()

class Config:
    """Ladder configuration settings"""
    
    # Database settings
    DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///ladder.db')
    
    # Runtime settings
    DEBUG = os.getenv('DEBUG', 'False').lower() == 'true'
    LOG_DIR = os.getenv('LOG_DIR', 'logs')
    OWNER_USER_ID = int(os.getenv('OWNER_USER_ID', 0))
    
    # Ladder settings
    WILDCARDS_PER_PLAYER = int(os.getenv('WILDCARDS_PER_PLAYER', 1))
    MAX_POSITIONS_TO_CHALLENGE = int(os.getenv('MAX_POSITIONS_TO_CHALLENGE', 2))
    
    # Notification settings
    NOTIFICATIONS_ENABLED = os.getenv('NOTIFICATIONS_ENABLED', 'True').lower() == 'true'
    DISCORD_WEBHOOK_URL = os.getenv('DISCORD_WEBHOOK_URL')
    NOTIFICATION_USERNAME = os.getenv('NOTIFICATION_USERNAME', 'Singles Ladder')
    
    @classmethod
    def get_async_database_url(cls) -> str:
        """Return DATABASE_URL with an async driver"""
        database_url = cls.DATABASE_URL
        if database_url.startswith('sqlite:///'):
            database_url = database_url.replace('sqlite:///', 'sqlite+aiosqlite:///')
        return database_url
    
    @classmethod
    def validate(cls):
        """Validate that configuration values are usable"""
        if cls.MAX_POSITIONS_TO_CHALLENGE < 1:
            raise ValueError("MAX_POSITIONS_TO_CHALLENGE must be at least 1")
        if cls.WILDCARDS_PER_PLAYER < 0:
            raise ValueError("WILDCARDS_PER_PLAYER cannot be negative")
        if cls.DISCORD_WEBHOOK_URL and not cls.DISCORD_WEBHOOK_URL.startswith('https://'):
            raise ValueError("DISCORD_WEBHOOK_URL must be an https URL")
