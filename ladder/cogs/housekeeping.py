"""
Housekeeping Cog - Background Tasks & Admin Commands

Runs the validation-deadline sweep, challenge expiry, the periodic ranking
refresh and the purge of stale challenges. Also exposes an owner-only
manual sweep.
"""

import discord
from discord import app_commands
from discord.ext import commands, tasks
from typing import Optional
from datetime import datetime, timezone

from ladder.config import Config
from ladder.database.database import Database
from ladder.operations.challenge_operations import ChallengeOperations
from ladder.operations.match_operations import MatchOperations
from ladder.operations.ranking_operations import RankingRecomputer
from ladder.utils.logger import setup_logger

logger = setup_logger(__name__)


class HousekeepingCog(commands.Cog):
    """Background maintenance and cleanup tasks"""

    def __init__(self, bot):
        self.bot = bot
        self.db: Database = bot.db
        self.challenge_ops: Optional[ChallengeOperations] = None
        self.match_ops: Optional[MatchOperations] = None
        self.rankings: Optional[RankingRecomputer] = None
        self.logger = logger

        self.sweep_loop.change_interval(minutes=Config.SWEEP_INTERVAL_MINUTES)
        self.ranking_refresh_loop.change_interval(hours=Config.RANKING_REFRESH_HOURS)

    @commands.Cog.listener()
    async def on_ready(self):
        """Initialize operations and start background tasks after bot is ready"""
        if not self.bot.db:
            self.logger.error("HousekeepingCog: Database not available")
            return

        self.challenge_ops = ChallengeOperations(self.bot.db, self.bot.notifier)
        self.match_ops = MatchOperations(self.bot.db, self.bot.notifier)
        self.rankings = RankingRecomputer(self.bot.db)
        for loop in (self.sweep_loop, self.ranking_refresh_loop, self.purge_loop):
            if not loop.is_running():
                loop.start()
        self.logger.info("HousekeepingCog: Background tasks started")

    def cog_unload(self):
        """Stop background tasks when cog is unloaded"""
        self.sweep_loop.cancel()
        self.ranking_refresh_loop.cancel()
        self.purge_loop.cancel()
        self.logger.info("HousekeepingCog: Background tasks stopped")

    async def run_sweep(self) -> tuple:
        """Expire unanswered challenges, then auto-validate overdue results"""
        expired = await self.challenge_ops.cleanup_expired_challenges()
        validated = await self.match_ops.sweep_expired_validations()
        if expired or validated:
            self.logger.info(f"Sweep: {expired} challenge(s) expired, {validated} result(s) auto-validated")
        return expired, validated

    @tasks.loop(minutes=15)
    async def sweep_loop(self):
        try:
            await self.run_sweep()
        except Exception as e:
            self.logger.error(f"Error in sweep task: {e}", exc_info=True)

    @tasks.loop(hours=6)
    async def ranking_refresh_loop(self):
        try:
            summary = await self.rankings.update_rankings()
            self.logger.debug(f"Ranking refresh: {summary.active_players} active player(s)")
        except Exception as e:
            self.logger.error(f"Error in ranking refresh task: {e}", exc_info=True)

    @tasks.loop(hours=24)
    async def purge_loop(self):
        try:
            await self.challenge_ops.purge_stale_challenges()
        except Exception as e:
            self.logger.error(f"Error in stale challenge purge: {e}", exc_info=True)

    @sweep_loop.before_loop
    @ranking_refresh_loop.before_loop
    @purge_loop.before_loop
    async def before_tasks(self):
        """Wait for bot to be ready before starting background tasks"""
        await self.bot.wait_until_ready()

    @app_commands.command(
        name="admin-sweep",
        description="Expire challenges and auto-validate overdue results now (Owner only)"
    )
    async def admin_sweep(self, interaction: discord.Interaction):
        if interaction.user.id != Config.OWNER_DISCORD_ID:
            await interaction.response.send_message(
                "❌ **Access Denied**\nThis command is restricted to the bot owner.",
                ephemeral=True
            )
            return

        if not self.challenge_ops:
            await interaction.response.send_message("❌ Housekeeping not initialized yet.", ephemeral=True)
            return

        await interaction.response.defer(ephemeral=True)
        try:
            expired, validated = await self.run_sweep()
            embed = discord.Embed(
                title="✅ Sweep Complete",
                description=f"Expired **{expired}** challenge(s) and auto-validated **{validated}** result(s).",
                color=discord.Color.green(),
                timestamp=datetime.now(timezone.utc)
            )
            await interaction.followup.send(embed=embed)
            self.logger.info(f"Manual sweep executed by {interaction.user.id} ({interaction.user.name})")
        except Exception as e:
            self.logger.error(f"Manual sweep error: {e}", exc_info=True)
            await interaction.followup.send(
                embed=discord.Embed(
                    title="❌ Sweep Failed",
                    description=f"An error occurred during the sweep: {e}",
                    color=discord.Color.red()
                )
            )


async def setup(bot):
    await bot.add_cog(HousekeepingCog(bot))
