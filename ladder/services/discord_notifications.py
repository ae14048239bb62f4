"""
Delivers ladder notifications as Discord direct messages.
"""

import discord

from ladder.constants import UIConstants
from ladder.database.database import Database
from ladder.services.notifications import Notification, NotificationDispatcher, NotificationType
from ladder.utils.logger import setup_logger

logger = setup_logger(__name__)

_COLORS = {
    NotificationType.CHALLENGE_RECEIVED: UIConstants.DEFAULT_EMBED_COLOR,
    NotificationType.CHALLENGE_ACCEPTED: UIConstants.SUCCESS_COLOR,
    NotificationType.CHALLENGE_DECLINED: UIConstants.WARNING_COLOR,
    NotificationType.CHALLENGE_EXPIRED: UIConstants.WARNING_COLOR,
    NotificationType.RESULT_SUBMITTED: UIConstants.DEFAULT_EMBED_COLOR,
    NotificationType.RESULT_VALIDATED: UIConstants.SUCCESS_COLOR,
    NotificationType.RESULT_DISPUTED: UIConstants.ERROR_COLOR,
    NotificationType.POINTS_CHANGED: UIConstants.WARNING_COLOR,
}


class DiscordNotificationDispatcher(NotificationDispatcher):
    """Sends each notification to the recipient's Discord account, if linked."""

    def __init__(self, bot: discord.Client, db: Database):
        self.bot = bot
        self.db = db

    async def send(self, notification: Notification) -> None:
        player = await self.db.get_player_by_id(notification.recipient_id)
        if not player or not player.discord_id:
            logger.debug(f"Player {notification.recipient_id} has no linked Discord account, skipping DM")
            return

        user = self.bot.get_user(player.discord_id) or await self.bot.fetch_user(player.discord_id)
        embed = discord.Embed(
            title=notification.title,
            description=notification.message,
            color=_COLORS.get(notification.type, UIConstants.DEFAULT_EMBED_COLOR)
        )
        if notification.challenge_id:
            embed.set_footer(text=f"Challenge #{notification.challenge_id}")

        try:
            await user.send(embed=embed)
        except discord.Forbidden:
            logger.info(f"User {player.discord_id} has DMs disabled; {notification.type.value} not delivered")
