"""
Embed builders for ladder notifications posted to Discord.
"""

import discord

from ladder.constants import UIConstants
from ladder.database.models import NotificationType


_COLORS = {
    NotificationType.CHALLENGE_ACCEPTED: UIConstants.SUCCESS_COLOR,
    NotificationType.PLAYOFF_ADVANCED: UIConstants.SUCCESS_COLOR,
    NotificationType.SCORE_DISPUTED: UIConstants.ERROR_COLOR,
    NotificationType.CHALLENGE_REJECTED: UIConstants.ERROR_COLOR,
    NotificationType.PLAYOFF_ELIMINATED: UIConstants.ERROR_COLOR,
    NotificationType.PLAYOFF_CHAMPION: UIConstants.GOLD_COLOR,
    NotificationType.PLAYOFF_STARTED: UIConstants.GOLD_COLOR,
}


def notification_color(notification_type: NotificationType) -> int:
    return _COLORS.get(notification_type, UIConstants.DEFAULT_EMBED_COLOR)


def build_notification_embed(notification) -> discord.Embed:
    """
    Build the embed for one notification.
    
    Args:
        notification: Notification with user_id, type, title, message and
            optional related challenge/match ids
        
    Returns:
        Formatted Discord embed ready for a webhook
    """
    embed = discord.Embed(
        title=notification.title,
        description=notification.message,
        color=notification_color(notification.notification_type)
    )
    
    embed.add_field(name="Player", value=f"#{notification.user_id}", inline=True)
    if notification.related_challenge_id is not None:
        embed.add_field(name="Challenge", value=f"#{notification.related_challenge_id}", inline=True)
    if notification.related_match_id is not None:
        embed.add_field(name="Match", value=f"#{notification.related_match_id}", inline=True)
    
    embed.set_footer(text=f"{UIConstants.TENNIS_EMOJI} {notification.notification_type.value}")
    return embed
