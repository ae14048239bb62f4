"""
Shared embed builders for the ladder Discord commands.

Keeps the look of challenge, match, ladder, profile and feed replies consistent
across cogs and the DM notification dispatcher.
"""

import discord
from datetime import timezone
from typing import List, Optional

from ladder.constants import UIConstants
from ladder.data_models.leaderboard import CategoryStats, LadderEntry, LadderPage
from ladder.data_models.profile import PlayerStats
from ladder.database.models import Activity, ActivityType, Challenge, Match
from ladder.utils.decline_penalty import DeclinePenaltyResult
from ladder.utils.eligibility import ChallengeDecision
from ladder.utils.exceptions import LadderError
from ladder.utils.ranking import RankingUtility


class ErrorEmbeds:
    """Error embed factory."""

    @staticmethod
    def from_error(error: LadderError, title: str = "Request Failed") -> discord.Embed:
        """Embed carrying the user-facing message of a ladder error."""
        return discord.Embed(
            title=f"❌ {title}",
            description=error.user_message,
            color=UIConstants.ERROR_COLOR
        )

    @staticmethod
    def not_registered() -> discord.Embed:
        return discord.Embed(
            title="Not Registered",
            description="You are not on the ladder yet.\n\nUse `/register` to join!",
            color=UIConstants.ERROR_COLOR
        )

    @staticmethod
    def challenge_denied(decision: ChallengeDecision) -> discord.Embed:
        return discord.Embed(
            title="❌ Challenge Not Allowed",
            description=decision.reason,
            color=UIConstants.ERROR_COLOR
        )

    @staticmethod
    def command_error() -> discord.Embed:
        return discord.Embed(
            title="Command Error",
            description="An unexpected error occurred. Please try again or contact an administrator.",
            color=UIConstants.ERROR_COLOR
        )


def build_challenge_embed(challenge: Challenge, challenger_name: str, challenged_name: str) -> discord.Embed:
    """Embed announcing a new pending challenge."""
    embed = discord.Embed(
        title=f"{UIConstants.SWORDS_EMOJI} Challenge #{challenge.id}",
        description=f"**{challenger_name}** challenged **{challenged_name}**",
        color=UIConstants.DEFAULT_EMBED_COLOR
    )
    embed.add_field(
        name="Positions",
        value=(
            f"{challenger_name}: {RankingUtility.format_position(challenge.challenger_ranking)}\n"
            f"{challenged_name}: {RankingUtility.format_position(challenge.challenged_ranking)}"
        ),
        inline=True
    )
    embed.add_field(name="Respond By", value=f"{challenge.expires_at:%Y-%m-%d %H:%M} UTC", inline=True)
    if challenge.proposed_date:
        embed.add_field(name="Proposed Date", value=f"{challenge.proposed_date:%Y-%m-%d %H:%M}", inline=True)
    if challenge.message:
        embed.add_field(name="Message", value=challenge.message, inline=False)
    embed.set_footer(text=f"Use /accept {challenge.id} or /decline {challenge.id}")
    return embed


def build_decline_embed(challenge: Challenge, penalty: DeclinePenaltyResult) -> discord.Embed:
    color = UIConstants.WARNING_COLOR if penalty.penalty_applied else UIConstants.DEFAULT_EMBED_COLOR
    embed = discord.Embed(
        title=f"Challenge #{challenge.id} Declined",
        description=penalty.message,
        color=color
    )
    embed.add_field(name="Declines This Month", value=str(penalty.declines_this_month), inline=True)
    embed.add_field(name="Free Declines Left", value=str(penalty.free_declines_remaining), inline=True)
    if penalty.penalty_applied:
        embed.add_field(
            name=f"{UIConstants.WARNING_EMOJI} Penalty",
            value=f"-{penalty.recuser_points_lost} points (challenger +{penalty.points_transferred})",
            inline=False
        )
    return embed


def build_match_embed(match: Match, title: Optional[str] = None) -> discord.Embed:
    """Embed describing a reported or settled match."""
    winner = match.winner.name if match.winner else f"Player {match.winner_id}"
    loser = match.loser.name if match.loser else f"Player {match.loser_id}"
    embed = discord.Embed(
        title=title or f"Match #{match.id}",
        description=f"**{winner}** def. **{loser}** ({match.score})",
        color=UIConstants.SUCCESS_COLOR if match.points_awarded else UIConstants.DEFAULT_EMBED_COLOR
    )
    embed.add_field(name="Status", value=match.status.value.replace('_', ' ').title(), inline=True)
    if match.points_awarded:
        embed.add_field(
            name="Points",
            value=(
                f"{winner}: {RankingUtility.format_points_change(match.points_winner)}\n"
                f"{loser}: {RankingUtility.format_points_change(match.points_loser)}"
            ),
            inline=True
        )
        if match.points_multiplier and match.points_multiplier != 1:
            embed.add_field(name="Multiplier", value=f"x{match.points_multiplier:g}", inline=True)
    elif match.validation_deadline:
        embed.add_field(
            name="Auto-validates",
            value=f"{match.validation_deadline:%Y-%m-%d %H:%M} UTC",
            inline=True
        )
    if match.dispute_reason:
        embed.add_field(name="Dispute", value=match.dispute_reason, inline=False)
    return embed


def build_ladder_embed(page: LadderPage, stats: Optional[CategoryStats] = None) -> discord.Embed:
    """Embed listing the top of one ranking cohort."""
    title = f"{UIConstants.TROPHY_EMOJI} {page.category.title()} Ladder"
    if page.value:
        title += f": {page.value.title()}"
    embed = discord.Embed(title=title, color=UIConstants.DEFAULT_EMBED_COLOR)

    if not page.entries:
        embed.description = "No ranked players yet."
        return embed

    lines = []
    for entry in page.entries:
        marker = " (P)" if entry.provisional else ""
        lines.append(
            f"**{entry.position}.** {entry.name}{marker} - {entry.points:,} pts "
            f"({entry.wins}W/{entry.losses}L)"
        )
    embed.description = "\n".join(lines)

    footer = f"{page.total_players} active player(s)"
    if stats:
        footer += f" | average {stats.average_points:,.1f} pts"
    embed.set_footer(text=footer + " | (P) provisional")
    return embed


_ACTIVITY_ICONS = {
    ActivityType.CHALLENGE_CREATED: UIConstants.SWORDS_EMOJI,
    ActivityType.CHALLENGE_ACCEPTED: "🤝",
    ActivityType.CHALLENGE_DECLINED: "🚫",
    ActivityType.MATCH_COMPLETED: UIConstants.TROPHY_EMOJI,
    ActivityType.PLAYER_JOINED: "👋",
}


def build_search_embed(entries: List[LadderEntry], query: str) -> discord.Embed:
    embed = discord.Embed(title=f"🔍 Players matching \"{query}\"", color=UIConstants.DEFAULT_EMBED_COLOR)
    if not entries:
        embed.description = "No active players found."
        return embed
    embed.description = "\n".join(
        f"{RankingUtility.format_position(entry.position)} {entry.name} - {entry.points:,} pts ({entry.level})"
        for entry in entries
    )
    return embed


def build_feed_embed(activities: List[Activity]) -> discord.Embed:
    """Newest ladder activity, one line per entry."""
    embed = discord.Embed(title="📰 Ladder Activity", color=UIConstants.DEFAULT_EMBED_COLOR)
    if not activities:
        embed.description = "Nothing has happened yet."
        return embed

    lines = []
    for activity in activities:
        icon = _ACTIVITY_ICONS.get(activity.type, "•")
        stamp = f"<t:{int(activity.created_at.replace(tzinfo=timezone.utc).timestamp())}:R>"
        lines.append(f"{icon} {activity.description} {stamp}")
    embed.description = "\n".join(lines)
    return embed


def build_profile_embed(stats: PlayerStats, member: Optional[discord.abc.User] = None) -> discord.Embed:
    """
    Build the profile embed for a player.

    Args:
        stats: Player record from the ladder query service
        member: Discord user for the avatar, if known

    Returns:
        Formatted Discord embed
    """
    color = UIConstants.GOLD_RANK_COLOR if stats.ranking_general == 1 else UIConstants.DEFAULT_EMBED_COLOR
    embed = discord.Embed(title=f"{UIConstants.TROPHY_EMOJI} {stats.name}", color=color)
    if member:
        embed.set_thumbnail(url=member.display_avatar.url)

    embed.add_field(
        name="📊 Ladder",
        value=(
            f"**Points:** {stats.points:,}\n"
            f"**Level:** {stats.level.title()}\n"
            f"**Overall:** {RankingUtility.format_position(stats.ranking_general)}\n"
            f"**Gender Rank:** {RankingUtility.format_position(stats.ranking_by_gender)}\n"
            f"**Region Rank:** {RankingUtility.format_position(stats.ranking_by_region)}\n"
            f"**Level Rank:** {RankingUtility.format_position(stats.ranking_by_level)}"
        ),
        inline=True
    )

    streak = "-"
    if stats.streak_type:
        streak = f"{stats.current_streak} {'W' if stats.streak_type == 'win' else 'L'}"
    embed.add_field(
        name="⚔️ Record",
        value=(
            f"**Matches:** {stats.total_matches}\n"
            f"**Wins:** {stats.wins} | **Losses:** {stats.losses}\n"
            f"**Win Rate:** {stats.win_rate:.1f}%\n"
            f"**Streak:** {streak} (best {stats.best_streak})"
        ),
        inline=True
    )

    status = [f"**Open Challenges:** {stats.active_challenges}", f"**Declines This Month:** {stats.declines_this_month}"]
    if stats.provisional:
        status.insert(0, f"**Provisional:** {stats.provisional_matches_remaining} match(es) left")
    embed.add_field(name="📋 Status", value="\n".join(status), inline=False)

    progress = stats.level_progress
    progress_text = progress.description
    if progress.can_promote:
        progress_text += f"\n✅ Qualifies for **{progress.qualified_level.label}**"
    embed.add_field(name="📈 Progression", value=progress_text, inline=False)

    if stats.recent_matches:
        lines = [
            f"{'✅' if m.result == 'win' else '❌'} vs {m.opponent_name} {m.score} "
            f"({RankingUtility.format_points_change(m.points_change or 0)})"
            for m in stats.recent_matches
        ]
        embed.add_field(name="Recent Matches", value="\n".join(lines), inline=False)

    return embed


async def send_embed(interaction: discord.Interaction, embed: discord.Embed, ephemeral: bool = False) -> None:
    """Reply with an embed whether or not the interaction was already deferred."""
    if interaction.response.is_done():
        await interaction.followup.send(embed=embed, ephemeral=ephemeral)
    else:
        await interaction.response.send_message(embed=embed, ephemeral=ephemeral)
