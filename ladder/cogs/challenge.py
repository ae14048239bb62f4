"""
Challenge Cog - issuing and answering ladder challenges
"""

import discord
from discord import app_commands
from discord.ext import commands
from typing import Optional

from ladder.constants import UIConstants
from ladder.database.database import Database
from ladder.database.models import Player
from ladder.operations.challenge_operations import ChallengeAction, ChallengeOperations
from ladder.utils.embeds import (
    ErrorEmbeds, build_challenge_embed, build_decline_embed, send_embed
)
from ladder.utils.exceptions import LadderError
from ladder.utils.logger import setup_logger

logger = setup_logger(__name__)


class ChallengeCog(commands.Cog):
    """Ladder challenges between registered players"""

    def __init__(self, bot):
        self.bot = bot
        self.db: Database = bot.db
        self.challenge_ops: Optional[ChallengeOperations] = None
        self.logger = logger

    @commands.Cog.listener()
    async def on_ready(self):
        """Initialize operations after bot and database are ready"""
        if self.bot.db:
            self.challenge_ops = ChallengeOperations(self.bot.db, self.bot.notifier)
            self.logger.info("ChallengeCog operations initialized successfully")
        else:
            self.logger.error("ChallengeCog: Database not available")

    async def _require_player(self, interaction: discord.Interaction) -> Optional[Player]:
        player = await self.db.get_player_by_discord_id(interaction.user.id)
        if not player:
            await send_embed(interaction, ErrorEmbeds.not_registered(), ephemeral=True)
        return player

    @app_commands.command(name="challenge", description="Challenge a player above you on the ladder")
    @app_commands.describe(
        opponent="Player to challenge",
        message="Optional message for your opponent"
    )
    async def challenge(
        self,
        interaction: discord.Interaction,
        opponent: discord.Member,
        message: Optional[str] = None
    ):
        try:
            challenger = await self._require_player(interaction)
            if not challenger:
                return
            challenged = await self.db.get_player_by_discord_id(opponent.id)
            if not challenged:
                await send_embed(
                    interaction,
                    discord.Embed(
                        title="Player Not Found",
                        description=f"{opponent.mention} is not on the ladder yet.",
                        color=UIConstants.ERROR_COLOR
                    ),
                    ephemeral=True
                )
                return

            await interaction.response.defer()
            result = await self.challenge_ops.create_challenge(challenger.id, challenged.id, message=message)

            if not result.success:
                await interaction.followup.send(embed=ErrorEmbeds.challenge_denied(result.decision), ephemeral=True)
                return

            await interaction.followup.send(
                content=opponent.mention,
                embed=build_challenge_embed(result.challenge, challenger.name, challenged.name)
            )

        except LadderError as e:
            await send_embed(interaction, ErrorEmbeds.from_error(e, "Challenge Failed"), ephemeral=True)
        except Exception as e:
            self.logger.error(f"Create challenge error: {e}", exc_info=True)
            await send_embed(interaction, ErrorEmbeds.command_error(), ephemeral=True)

    async def _resolve_incoming(self, interaction: discord.Interaction, player: Player,
                                challenge_id: Optional[int]) -> Optional[int]:
        """Challenge id to answer; auto-detected when the player has exactly one pending"""
        if challenge_id is not None:
            return challenge_id

        incoming = await self.challenge_ops.get_incoming_challenges(player.id)
        if not incoming:
            await send_embed(
                interaction,
                discord.Embed(
                    title="No Pending Challenges",
                    description="You have no challenges waiting for a response.",
                    color=UIConstants.ERROR_COLOR
                ),
                ephemeral=True
            )
            return None
        if len(incoming) > 1:
            listing = "\n".join(f"• #{c.id} from {c.challenger.name}" for c in incoming[:5])
            await send_embed(
                interaction,
                discord.Embed(
                    title="Multiple Pending Challenges",
                    description=f"Please specify the challenge ID:\n\n{listing}",
                    color=UIConstants.WARNING_COLOR
                ),
                ephemeral=True
            )
            return None
        return incoming[0].id

    @app_commands.command(name="accept", description="Accept a pending challenge")
    @app_commands.describe(challenge_id="Challenge ID (optional if you only have one pending)")
    async def accept_challenge(self, interaction: discord.Interaction, challenge_id: Optional[int] = None):
        try:
            player = await self._require_player(interaction)
            if not player:
                return
            challenge_id = await self._resolve_incoming(interaction, player, challenge_id)
            if challenge_id is None:
                return

            await interaction.response.defer()
            result = await self.challenge_ops.respond_to_challenge(challenge_id, player.id, ChallengeAction.ACCEPT)

            embed = discord.Embed(
                title=f"{UIConstants.SWORDS_EMOJI} Challenge #{challenge_id} Accepted",
                description=f"**{result.challenger.name}** vs **{result.responder.name}**",
                color=UIConstants.SUCCESS_COLOR
            )
            embed.add_field(name="Play By", value=f"{result.challenge.match_deadline:%Y-%m-%d %H:%M} UTC")
            embed.set_footer(text=f"Report the result with /report {challenge_id}")
            await interaction.followup.send(embed=embed)

        except LadderError as e:
            await send_embed(interaction, ErrorEmbeds.from_error(e, "Cannot Accept"), ephemeral=True)
        except Exception as e:
            self.logger.error(f"Accept challenge error: {e}", exc_info=True)
            await send_embed(interaction, ErrorEmbeds.command_error(), ephemeral=True)

    @app_commands.command(name="decline", description="Decline a pending challenge")
    @app_commands.describe(challenge_id="Challenge ID (optional if you only have one pending)")
    async def decline_challenge(self, interaction: discord.Interaction, challenge_id: Optional[int] = None):
        try:
            player = await self._require_player(interaction)
            if not player:
                return
            challenge_id = await self._resolve_incoming(interaction, player, challenge_id)
            if challenge_id is None:
                return

            await interaction.response.defer()
            result = await self.challenge_ops.respond_to_challenge(challenge_id, player.id, ChallengeAction.DECLINE)
            await interaction.followup.send(embed=build_decline_embed(result.challenge, result.penalty))

        except LadderError as e:
            await send_embed(interaction, ErrorEmbeds.from_error(e, "Cannot Decline"), ephemeral=True)
        except Exception as e:
            self.logger.error(f"Decline challenge error: {e}", exc_info=True)
            await send_embed(interaction, ErrorEmbeds.command_error(), ephemeral=True)

    @app_commands.command(name="challenges", description="List your open challenges")
    async def list_challenges(self, interaction: discord.Interaction):
        try:
            player = await self._require_player(interaction)
            if not player:
                return

            await interaction.response.defer(ephemeral=True)
            live = await self.challenge_ops.get_live_challenges_for_player(player.id)

            embed = discord.Embed(
                title=f"{UIConstants.SWORDS_EMOJI} Your Challenges",
                color=UIConstants.DEFAULT_EMBED_COLOR
            )
            if not live:
                embed.description = "You have no open challenges."
            else:
                lines = []
                for c in live:
                    direction = "vs" if c.challenger_id == player.id else "from"
                    opponent = c.challenged if c.challenger_id == player.id else c.challenger
                    lines.append(f"**#{c.id}** {direction} {opponent.name} - {c.status.value.replace('_', ' ')}")
                embed.description = "\n".join(lines)
            await interaction.followup.send(embed=embed, ephemeral=True)

        except Exception as e:
            self.logger.error(f"List challenges error: {e}", exc_info=True)
            await send_embed(interaction, ErrorEmbeds.command_error(), ephemeral=True)


async def setup(bot):
    await bot.add_cog(ChallengeCog(bot))
