"""
Ladder Cog - registration, profiles, ranking displays, search and the activity feed
"""

import discord
from discord import app_commands
from discord.ext import commands
from typing import Optional

from ladder.config import Config
from ladder.constants import PaginationConstants, UIConstants
from ladder.database.database import Database
from ladder.database.models import Gender, PlayerLevel
from ladder.operations.activity_operations import DEFAULT_FEED_SIZE, ActivityOperations
from ladder.operations.player_operations import PlayerOperations
from ladder.services.leaderboard import LeaderboardService
from ladder.utils.embeds import (
    ErrorEmbeds, build_feed_embed, build_ladder_embed, build_profile_embed,
    build_search_embed, send_embed
)
from ladder.utils.exceptions import LadderError
from ladder.utils.logger import setup_logger
from ladder.utils.ranking import RankingCategory

logger = setup_logger(__name__)

GENDER_CHOICES = [app_commands.Choice(name=g.value.title(), value=g.value) for g in Gender]
LEVEL_CHOICES = [app_commands.Choice(name=l.label, value=l.value) for l in PlayerLevel]
CATEGORY_CHOICES = [app_commands.Choice(name=c.value.title(), value=c.value) for c in RankingCategory]


class LadderCog(commands.Cog):
    """Player registration and ladder views"""

    def __init__(self, bot):
        self.bot = bot
        self.db: Database = bot.db
        self.player_ops = PlayerOperations(bot.db)
        self.activity_ops = ActivityOperations(bot.db)
        self.leaderboard = LeaderboardService(bot.db.session_factory)
        self.logger = logger

    @app_commands.command(name="register", description="Join the ladder")
    @app_commands.describe(gender="Gender ladder to join", region="Your region or club", level="Your skill level")
    @app_commands.choices(gender=GENDER_CHOICES, level=LEVEL_CHOICES)
    async def register(
        self,
        interaction: discord.Interaction,
        gender: app_commands.Choice[str],
        level: app_commands.Choice[str],
        region: Optional[str] = None
    ):
        try:
            player = await self.player_ops.register_player(
                name=interaction.user.display_name,
                gender=Gender(gender.value),
                region=region or '',
                level=PlayerLevel(level.value),
                discord_id=interaction.user.id
            )
            embed = discord.Embed(
                title=f"{UIConstants.TROPHY_EMOJI} Welcome to the Ladder!",
                description=(
                    f"**{player.name}** joined as **{player.level.label}** with {player.points:,} points.\n"
                    f"Your first {Config.PROVISIONAL_MATCH_COUNT} matches are provisional "
                    f"(points x{Config.PROVISIONAL_MULTIPLIER:g})."
                ),
                color=UIConstants.SUCCESS_COLOR
            )
            await send_embed(interaction, embed)

        except LadderError as e:
            await send_embed(interaction, ErrorEmbeds.from_error(e, "Registration Failed"), ephemeral=True)
        except Exception as e:
            self.logger.error(f"Register error: {e}", exc_info=True)
            await send_embed(interaction, ErrorEmbeds.command_error(), ephemeral=True)

    @app_commands.command(name="profile", description="Show a player's ladder profile")
    @app_commands.describe(member="Player to look up (defaults to you)")
    async def profile(self, interaction: discord.Interaction, member: Optional[discord.Member] = None):
        target = member or interaction.user
        try:
            player = await self.db.get_player_by_discord_id(target.id)
            if not player:
                await send_embed(interaction, ErrorEmbeds.not_registered(), ephemeral=True)
                return
            await interaction.response.defer()
            stats = await self.leaderboard.get_player_stats(player.id)
            await interaction.followup.send(embed=build_profile_embed(stats, target))

        except LadderError as e:
            await send_embed(interaction, ErrorEmbeds.from_error(e), ephemeral=True)
        except Exception as e:
            self.logger.error(f"Profile error: {e}", exc_info=True)
            await send_embed(interaction, ErrorEmbeds.command_error(), ephemeral=True)

    @app_commands.command(name="ladder", description="Show a ranking ladder")
    @app_commands.describe(
        category="Overall, or by gender, region or level",
        value="Gender, region or level to show (not needed for overall)",
        limit="How many players to show"
    )
    @app_commands.choices(category=CATEGORY_CHOICES)
    async def ladder(
        self,
        interaction: discord.Interaction,
        category: Optional[app_commands.Choice[str]] = None,
        value: Optional[str] = None,
        limit: Optional[int] = None
    ):
        try:
            ranking_category = RankingCategory(category.value) if category else RankingCategory.OVERALL
            await interaction.response.defer()
            page = await self.leaderboard.get_category_ranking(
                ranking_category, value, limit or PaginationConstants.DEFAULT_PAGE_SIZE
            )
            stats = await self.leaderboard.get_category_stats(ranking_category, value)
            await interaction.followup.send(embed=build_ladder_embed(page, stats))

        except LadderError as e:
            await send_embed(interaction, ErrorEmbeds.from_error(e, "Ladder Unavailable"), ephemeral=True)
        except Exception as e:
            self.logger.error(f"Ladder display error: {e}", exc_info=True)
            await send_embed(interaction, ErrorEmbeds.command_error(), ephemeral=True)

    @app_commands.command(name="regions", description="List the regions with ranked players")
    async def regions(self, interaction: discord.Interaction):
        try:
            regions = await self.leaderboard.get_regions()
            embed = discord.Embed(
                title="🌍 Regions",
                description="\n".join(f"• {r}" for r in regions) if regions else "No regions registered yet.",
                color=UIConstants.DEFAULT_EMBED_COLOR
            )
            await send_embed(interaction, embed, ephemeral=True)
        except Exception as e:
            self.logger.error(f"Regions error: {e}", exc_info=True)
            await send_embed(interaction, ErrorEmbeds.command_error(), ephemeral=True)

    @app_commands.command(name="search", description="Find players by name")
    @app_commands.describe(name="Part of the player's name", level="Only this level", region="Only this region")
    @app_commands.choices(level=LEVEL_CHOICES)
    async def search(
        self,
        interaction: discord.Interaction,
        name: str,
        level: Optional[app_commands.Choice[str]] = None,
        region: Optional[str] = None
    ):
        try:
            entries = await self.leaderboard.search_players(
                name=name,
                level=level.value if level else None,
                region=region
            )
            await send_embed(interaction, build_search_embed(entries, name), ephemeral=True)

        except LadderError as e:
            await send_embed(interaction, ErrorEmbeds.from_error(e, "Search Failed"), ephemeral=True)
        except Exception as e:
            self.logger.error(f"Search error: {e}", exc_info=True)
            await send_embed(interaction, ErrorEmbeds.command_error(), ephemeral=True)

    @app_commands.command(name="feed", description="Recent ladder activity")
    @app_commands.describe(member="Only activity involving this player", limit="How many entries to show")
    async def feed(
        self,
        interaction: discord.Interaction,
        member: Optional[discord.Member] = None,
        limit: Optional[int] = None
    ):
        try:
            player_id = None
            if member:
                player = await self.db.get_player_by_discord_id(member.id)
                if not player:
                    await send_embed(interaction, ErrorEmbeds.not_registered(), ephemeral=True)
                    return
                player_id = player.id
            activities = await self.activity_ops.get_feed(limit or DEFAULT_FEED_SIZE, player_id=player_id)
            await send_embed(interaction, build_feed_embed(activities))

        except LadderError as e:
            await send_embed(interaction, ErrorEmbeds.from_error(e, "Feed Unavailable"), ephemeral=True)
        except Exception as e:
            self.logger.error(f"Feed error: {e}", exc_info=True)
            await send_embed(interaction, ErrorEmbeds.command_error(), ephemeral=True)

    @app_commands.command(name="admin-set-level", description="Move a player to another level (Owner only)")
    @app_commands.choices(level=LEVEL_CHOICES)
    async def admin_set_level(
        self,
        interaction: discord.Interaction,
        member: discord.Member,
        level: app_commands.Choice[str]
    ):
        if interaction.user.id != Config.OWNER_DISCORD_ID:
            await interaction.response.send_message(
                "❌ **Access Denied**\nThis command is restricted to the bot owner.",
                ephemeral=True
            )
            return
        try:
            player = await self.db.get_player_by_discord_id(member.id)
            if not player:
                await send_embed(interaction, ErrorEmbeds.not_registered(), ephemeral=True)
                return
            player = await self.player_ops.update_profile(player.id, level=PlayerLevel(level.value))
            self.logger.info(f"Owner {interaction.user.id} moved player {player.id} to {player.level.value}")
            await interaction.response.send_message(
                f"✅ {player.name} is now **{player.level.label}**.", ephemeral=True
            )
        except LadderError as e:
            await send_embed(interaction, ErrorEmbeds.from_error(e), ephemeral=True)

    @app_commands.command(name="admin-set-active", description="Activate or deactivate a player (Owner only)")
    async def admin_set_active(self, interaction: discord.Interaction, member: discord.Member, active: bool):
        if interaction.user.id != Config.OWNER_DISCORD_ID:
            await interaction.response.send_message(
                "❌ **Access Denied**\nThis command is restricted to the bot owner.",
                ephemeral=True
            )
            return
        try:
            player = await self.db.get_player_by_discord_id(member.id)
            if not player:
                await send_embed(interaction, ErrorEmbeds.not_registered(), ephemeral=True)
                return
            player = await self.player_ops.set_active(player.id, active)
            await interaction.response.send_message(
                f"✅ {player.name} is now {'active' if player.is_active else 'inactive'}.", ephemeral=True
            )
        except LadderError as e:
            await send_embed(interaction, ErrorEmbeds.from_error(e), ephemeral=True)


async def setup(bot):
    await bot.add_cog(LadderCog(bot))
