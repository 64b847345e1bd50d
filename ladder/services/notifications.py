"""
Notification collaborator for ladder events.

Delivery is best-effort: every notification is logged, and posted to a
Discord webhook when one is configured. A delivery failure is logged and
never reaches the operation that triggered it.
"""

from dataclasses import dataclass
from typing import Iterable, Optional

import aiohttp
import discord

from ladder.config import Config
from ladder.database.models import NotificationType
from ladder.utils.embeds import build_notification_embed
from ladder.utils.logger import setup_logger

logger = setup_logger(__name__)


@dataclass(frozen=True)
class Notification:
    user_id: int
    notification_type: NotificationType
    title: str
    message: str
    related_challenge_id: Optional[int] = None
    related_match_id: Optional[int] = None


class NotificationService:
    """Fire-and-forget notification dispatch"""
    
    def __init__(self, webhook_url: Optional[str] = None, enabled: Optional[bool] = None):
        self.webhook_url = webhook_url if webhook_url is not None else Config.DISCORD_WEBHOOK_URL
        self.enabled = Config.NOTIFICATIONS_ENABLED if enabled is None else enabled
        self.logger = logger
    
    async def notify(
        self,
        user_id: int,
        notification_type: NotificationType,
        title: str,
        message: str,
        related_challenge_id: Optional[int] = None,
        related_match_id: Optional[int] = None
    ) -> bool:
        """
        Send one notification.
        
        Returns:
            True when delivered (or notifications are disabled), False on failure
        """
        if not self.enabled:
            return True
        
        notification = Notification(
            user_id=user_id,
            notification_type=notification_type,
            title=title,
            message=message,
            related_challenge_id=related_challenge_id,
            related_match_id=related_match_id
        )
        try:
            await self._deliver(notification)
            return True
        except Exception as e:
            self.logger.error(
                f"Failed to deliver {notification_type.value} notification to user {user_id}: {e}"
            )
            return False
    
    async def notify_many(
        self,
        user_ids: Iterable[int],
        notification_type: NotificationType,
        title: str,
        message: str,
        **related
    ) -> int:
        """Send the same notification to several users; returns how many were delivered"""
        delivered = 0
        for user_id in user_ids:
            if await self.notify(user_id, notification_type, title, message, **related):
                delivered += 1
        return delivered
    
    async def _deliver(self, notification: Notification) -> None:
        self.logger.info(
            f"Notification [{notification.notification_type.value}] to user {notification.user_id}: "
            f"{notification.title}"
        )
        if not self.webhook_url:
            return
        
        async with aiohttp.ClientSession() as http_session:
            webhook = discord.Webhook.from_url(self.webhook_url, session=http_session)
            await webhook.send(
                embed=build_notification_embed(notification),
                username=Config.NOTIFICATION_USERNAME
            )
