"""
Match Commands Cog - reporting and validating results
"""

import discord
from discord import app_commands
from discord.ext import commands
from typing import Optional

from ladder.constants import UIConstants
from ladder.database.database import Database
from ladder.operations.match_operations import MatchOperations, ValidationAction
from ladder.utils.embeds import ErrorEmbeds, build_match_embed, send_embed
from ladder.utils.exceptions import LadderError
from ladder.utils.logger import setup_logger

logger = setup_logger(__name__)


class MatchCommandsCog(commands.Cog):
    """Result submission and the confirm/dispute workflow"""

    def __init__(self, bot):
        self.bot = bot
        self.db: Database = bot.db
        self.match_ops: Optional[MatchOperations] = None
        self.logger = logger

    @commands.Cog.listener()
    async def on_ready(self):
        if self.bot.db:
            self.match_ops = MatchOperations(self.bot.db, self.bot.notifier)
            self.logger.info("MatchCommandsCog operations initialized successfully")
        else:
            self.logger.error("MatchCommandsCog: Database not available")

    @app_commands.command(name="report", description="Report the result of an accepted challenge")
    @app_commands.describe(
        challenge_id="Accepted challenge the match was played for",
        winner="Player who won",
        score="Set scores, e.g. 6-4 3-6 7-6(5)",
        location="Where the match was played",
        notes="Anything else worth recording"
    )
    async def report(
        self,
        interaction: discord.Interaction,
        challenge_id: int,
        winner: discord.Member,
        score: str,
        location: Optional[str] = None,
        notes: Optional[str] = None
    ):
        try:
            reporter = await self.db.get_player_by_discord_id(interaction.user.id)
            winner_player = await self.db.get_player_by_discord_id(winner.id)
            if not reporter or not winner_player:
                await send_embed(interaction, ErrorEmbeds.not_registered(), ephemeral=True)
                return

            await interaction.response.defer()
            match = await self.match_ops.submit_match_result(
                challenge_id=challenge_id,
                reporter_id=reporter.id,
                winner_id=winner_player.id,
                score=score,
                location=location,
                notes=notes
            )
            embed = build_match_embed(match, title=f"📝 Result Reported - Match #{match.id}")
            embed.set_footer(text=f"{match.loser.name}: /confirm {match.id} or /dispute {match.id}")
            await interaction.followup.send(embed=embed)

        except LadderError as e:
            await send_embed(interaction, ErrorEmbeds.from_error(e, "Report Failed"), ephemeral=True)
        except Exception as e:
            self.logger.error(f"Report result error: {e}", exc_info=True)
            await send_embed(interaction, ErrorEmbeds.command_error(), ephemeral=True)

    @app_commands.command(name="confirm", description="Confirm a result reported against you")
    @app_commands.describe(match_id="Match ID (optional if only one is waiting on you)")
    async def confirm(self, interaction: discord.Interaction, match_id: Optional[int] = None):
        try:
            player = await self.db.get_player_by_discord_id(interaction.user.id)
            if not player:
                await send_embed(interaction, ErrorEmbeds.not_registered(), ephemeral=True)
                return

            if match_id is None:
                pending = await self.match_ops.get_pending_validations_for_player(player.id)
                if len(pending) != 1:
                    description = (
                        "No results are waiting on your confirmation." if not pending
                        else "Several results are waiting on you:\n" + "\n".join(
                            f"• Match #{m.id} vs {m.winner.name} ({m.score})" for m in pending[:5]
                        )
                    )
                    await send_embed(
                        interaction,
                        discord.Embed(title="Specify a Match", description=description, color=UIConstants.WARNING_COLOR),
                        ephemeral=True
                    )
                    return
                match_id = pending[0].id

            await interaction.response.defer()
            result = await self.match_ops.validate_match(match_id, player.id, ValidationAction.CONFIRM)
            await interaction.followup.send(embed=build_match_embed(result.match, title=f"✅ Match #{match_id} Validated"))

        except LadderError as e:
            await send_embed(interaction, ErrorEmbeds.from_error(e, "Cannot Confirm"), ephemeral=True)
        except Exception as e:
            self.logger.error(f"Confirm result error: {e}", exc_info=True)
            await send_embed(interaction, ErrorEmbeds.command_error(), ephemeral=True)

    @app_commands.command(name="dispute", description="Dispute a result reported against you")
    @app_commands.describe(match_id="Match to dispute", reason="What is wrong with the reported result")
    async def dispute(self, interaction: discord.Interaction, match_id: int, reason: str):
        try:
            player = await self.db.get_player_by_discord_id(interaction.user.id)
            if not player:
                await send_embed(interaction, ErrorEmbeds.not_registered(), ephemeral=True)
                return

            await interaction.response.defer()
            result = await self.match_ops.validate_match(
                match_id, player.id, ValidationAction.DISPUTE, dispute_reason=reason
            )
            embed = build_match_embed(result.match, title=f"{UIConstants.WARNING_EMOJI} Match #{match_id} Disputed")
            embed.set_footer(text="An administrator will review this result.")
            await interaction.followup.send(embed=embed)

        except LadderError as e:
            await send_embed(interaction, ErrorEmbeds.from_error(e, "Cannot Dispute"), ephemeral=True)
        except Exception as e:
            self.logger.error(f"Dispute result error: {e}", exc_info=True)
            await send_embed(interaction, ErrorEmbeds.command_error(), ephemeral=True)

    @app_commands.command(name="match-history", description="Show recent validated matches")
    @app_commands.describe(member="Player to look up (defaults to you)")
    async def match_history(self, interaction: discord.Interaction, member: Optional[discord.Member] = None):
        target = member or interaction.user
        try:
            player = await self.db.get_player_by_discord_id(target.id)
            if not player:
                await send_embed(interaction, ErrorEmbeds.not_registered(), ephemeral=True)
                return

            matches = await self.match_ops.get_match_history(player.id, limit=10)
            embed = discord.Embed(title=f"📜 Match History: {player.name}", color=UIConstants.DEFAULT_EMBED_COLOR)
            if not matches:
                embed.description = "No validated matches yet."
            else:
                lines = []
                for m in matches:
                    won = m.winner_id == player.id
                    opponent = m.loser if won else m.winner
                    change = m.points_winner if won else m.points_loser
                    lines.append(f"{'✅' if won else '❌'} #{m.id} vs {opponent.name} {m.score} ({change:+d})")
                embed.description = "\n".join(lines)
            await send_embed(interaction, embed)

        except Exception as e:
            self.logger.error(f"Match history error: {e}", exc_info=True)
            await send_embed(interaction, ErrorEmbeds.command_error(), ephemeral=True)


async def setup(bot):
    await bot.add_cog(MatchCommandsCog(bot))
