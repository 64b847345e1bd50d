"""
Base service class for the singles ladder.

Provides shared database access and retry logic for service layer operations.
"""

import asyncio
import logging
from typing import Callable, Any
from sqlalchemy.exc import OperationalError

from ladder.database.database import Database

logger = logging.getLogger(__name__)

class BaseService:
    """Base class for all services with database access and transient-error retry."""
    
    def __init__(self, db: Database):
        """
        Initialize base service with the database.
        
        Args:
            db: Initialized Database instance
        """
        self.db = db
    
    async def execute_with_retry(self, func: Callable, max_retries: int = 3) -> Any:
        """Execute a function with automatic retry on transient database errors (e.g. a locked database)."""
        for attempt in range(max_retries):
            try:
                return await func()
            except OperationalError as e:
                if attempt == max_retries - 1:
                    raise
                logger.warning(f"Retry attempt {attempt + 1} for {getattr(func, '__name__', func)}: {e}")
                await asyncio.sleep(0.1 * (2 ** attempt))  # Exponential backoff
