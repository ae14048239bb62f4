"""
Ladder query service.

Read-only views over the ranking caches: one cohort's ladder, cohort
statistics, the list of regions in use and a player's record.
"""

from typing import List, Optional, Tuple


from sqlalchemy import select, func, and_, or_

from ladder.constants import PaginationConstants, RetentionConstants
from ladder.config import Config
from ladder.data_models.leaderboard import CategoryStats, LadderEntry, LadderPage
from ladder.data_models.profile import MatchRecord, PlayerStats
from ladder.database.models import Gender, Match, MatchStatus, Player, PlayerLevel
from ladder.services.base import BaseService
from ladder.utils.exceptions import PlayerNotFoundError, ValidationError
from ladder.utils.levels import level_progress
from ladder.utils.logger import setup_logger
from ladder.utils.ranking import RankingCategory
from ladder.utils.time_utils import period_key, utc_now

logger = setup_logger(__name__)


class LeaderboardService(BaseService):
    """Service for ladder queries by ranking category."""

    def _cohort_filter(self, category: RankingCategory, value: Optional[str]):
        """
        WHERE clause selecting one cohort of active players.

        Raises:
            ValidationError: Missing or unknown value for the category
        """
        active = Player.is_active == True
        if category == RankingCategory.OVERALL:
            return active, None

        if not value:
            raise ValidationError(
                f"Category {category.value} requires a value",
                f"❌ Please choose a {category.value} for this ladder."
            )

        if category == RankingCategory.GENDER:
            try:
                gender = Gender(value.lower())
            except ValueError:
                raise ValidationError(f"Unknown gender '{value}'", f"❌ Unknown gender '{value}'.")
            return and_(active, Player.gender == gender), gender.value

        if category == RankingCategory.LEVEL:
            try:
                level = PlayerLevel(value.lower())
            except ValueError:
                raise ValidationError(f"Unknown level '{value}'", f"❌ Unknown level '{value}'.")
            return and_(active, Player.level == level), level.value

        region = value.strip()
        return and_(active, Player.region == region), region

    async def get_category_ranking(
        self,
        category: RankingCategory,
        value: Optional[str] = None,
        limit: int = PaginationConstants.DEFAULT_PAGE_SIZE
    ) -> LadderPage:
        """Top of the ladder for one cohort, in cached position order"""
        category = RankingCategory(category)
        if not isinstance(limit, int) or limit < 1 or limit > PaginationConstants.MAX_RANKING_LIMIT:
            raise ValidationError(
                f"Invalid ranking limit {limit}",
                f"❌ Limit must be between 1 and {PaginationConstants.MAX_RANKING_LIMIT}."
            )
        condition, normalized = self._cohort_filter(category, value)
        position_column = getattr(Player, category.field)

        async def _query() -> LadderPage:
            async with self.get_session() as session:
                total = await session.scalar(select(func.count(Player.id)).where(condition)) or 0
                result = await session.execute(
                    select(Player)
                    .where(and_(condition, position_column.isnot(None)))
                    .order_by(position_column.asc())
                    .limit(limit)
                )
                entries = [
                    LadderEntry(
                        position=getattr(player, category.field),
                        player_id=player.id,
                        name=player.name,
                        points=player.points,
                        wins=player.wins,
                        losses=player.losses,
                        level=player.level.value,
                        provisional=player.provisional
                    )
                    for player in result.scalars().all()
                ]
                return LadderPage(entries=entries, category=category.value, value=normalized, total_players=total)

        return await self.execute_with_retry(_query)

    async def get_category_stats(
        self,
        category: RankingCategory,
        value: Optional[str] = None
    ) -> CategoryStats:
        """Player count, average points and leader of one cohort"""
        category = RankingCategory(category)
        condition, normalized = self._cohort_filter(category, value)
        position_column = getattr(Player, category.field)

        async with self.get_session() as session:
            total, average = (await session.execute(
                select(func.count(Player.id), func.avg(Player.points)).where(condition)
            )).one()
            leader = await session.scalar(
                select(Player)
                .where(and_(condition, position_column == 1))
                .limit(1)
            )

        return CategoryStats(
            category=category.value,
            value=normalized,
            total_players=total or 0,
            average_points=round(float(average), 1) if average is not None else 0.0,
            top_player_id=leader.id if leader else None,
            top_player_name=leader.name if leader else None,
            top_player_points=leader.points if leader else None
        )

    async def get_regions(self) -> List[str]:
        """Distinct non-empty regions of active players, alphabetically"""
        async with self.get_session() as session:
            result = await session.execute(
                select(Player.region)
                .where(and_(Player.is_active == True, Player.region != ''))
                .distinct()
                .order_by(Player.region.asc())
            )
            return [region for region in result.scalars().all() if region and region.strip()]

    async def search_players(
        self,
        name: Optional[str] = None,
        gender: Optional[str] = None,
        region: Optional[str] = None,
        level: Optional[str] = None,
        min_points: Optional[int] = None,
        max_points: Optional[int] = None,
        limit: int = PaginationConstants.DEFAULT_PAGE_SIZE
    ) -> List[LadderEntry]:
        """
        Active players matching every given filter, best placed first.

        Name and region match case-insensitively on any part of the text;
        entries carry the overall position.

        Raises:
            ValidationError: Unknown gender or level, bad point range or limit
        """
        if not isinstance(limit, int) or limit < 1 or limit > PaginationConstants.MAX_RANKING_LIMIT:
            raise ValidationError(
                f"Invalid search limit {limit}",
                f"❌ Limit must be between 1 and {PaginationConstants.MAX_RANKING_LIMIT}."
            )
        if min_points is not None and max_points is not None and min_points > max_points:
            raise ValidationError(
                f"Point range {min_points}-{max_points} is empty",
                "❌ Minimum points cannot be above maximum points."
            )

        conditions = [Player.is_active == True]
        if name and name.strip():
            conditions.append(Player.name.ilike(f"%{name.strip()}%"))
        if region and region.strip():
            conditions.append(Player.region.ilike(f"%{region.strip()}%"))
        if gender:
            conditions.append(self._cohort_filter(RankingCategory.GENDER, gender)[0])
        if level:
            conditions.append(self._cohort_filter(RankingCategory.LEVEL, level)[0])
        if min_points is not None:
            conditions.append(Player.points >= min_points)
        if max_points is not None:
            conditions.append(Player.points <= max_points)

        async with self.get_session() as session:
            result = await session.execute(
                select(Player)
                .where(and_(*conditions))
                .order_by(Player.points.desc(), Player.wins.desc(), Player.name.asc())
                .limit(limit)
            )
            players = result.scalars().all()

        return [
            LadderEntry(
                position=player.ranking_general,
                player_id=player.id,
                name=player.name,
                points=player.points,
                wins=player.wins,
                losses=player.losses,
                level=player.level.value,
                provisional=player.provisional
            )
            for player in players
        ]

    async def get_player_stats(self, player_id: int) -> PlayerStats:
        """Full record for one player, including the current streak from recent results"""
        async with self.get_session() as session:
            player = await session.get(Player, player_id)
            if not player:
                raise PlayerNotFoundError(player_id)

            result = await session.execute(
                select(Match)
                .where(
                    and_(
                        or_(Match.player1_id == player_id, Match.player2_id == player_id),
                        Match.status == MatchStatus.VALIDATED
                    )
                )
                .order_by(Match.validated_at.desc(), Match.id.desc())
            )
            matches = list(result.scalars().all())

            opponent_ids = {m.player2_id if m.player1_id == player_id else m.player1_id for m in matches}
            names = {}
            if opponent_ids:
                rows = await session.execute(select(Player.id, Player.name).where(Player.id.in_(opponent_ids)))
                names = dict(rows.all())

        streak, streak_type = self._current_streak(matches, player_id)
        recent = [
            self._match_record(match, player_id, names)
            for match in matches[:RetentionConstants.RECENT_MATCH_LIMIT]
        ]

        declines = player.monthly_decline_count or 0
        if player.decline_counter_month != period_key(utc_now()):
            declines = 0

        remaining = 0
        if player.provisional:
            remaining = max(0, Config.PROVISIONAL_MATCH_COUNT - (player.provisional_matches_played or 0))

        return PlayerStats(
            player_id=player.id,
            name=player.name,
            points=player.points,
            level=player.level.value,
            ranking_general=player.ranking_general,
            ranking_by_gender=player.ranking_by_gender,
            ranking_by_region=player.ranking_by_region,
            ranking_by_level=player.ranking_by_level,
            total_matches=player.matches_played,
            wins=player.wins,
            losses=player.losses,
            win_rate=round(player.win_rate, 1),
            current_streak=streak,
            streak_type=streak_type,
            best_streak=player.best_streak or 0,
            provisional=player.provisional,
            provisional_matches_remaining=remaining,
            active_challenges=player.active_challenge_count or 0,
            declines_this_month=declines,
            level_progress=level_progress(player),
            recent_matches=recent
        )

    @staticmethod
    def _current_streak(matches: List[Match], player_id: int) -> Tuple[int, Optional[str]]:
        """Length and kind of the run of identical results, newest first"""
        streak = 0
        streak_type = None
        for match in matches:
            kind = 'win' if match.winner_id == player_id else 'loss'
            if streak_type is None:
                streak_type = kind
            elif kind != streak_type:
                break
            streak += 1
        return streak, streak_type

    @staticmethod
    def _match_record(match: Match, player_id: int, names: dict) -> MatchRecord:
        won = match.winner_id == player_id
        opponent_id = match.player2_id if match.player1_id == player_id else match.player1_id
        return MatchRecord(
            match_id=match.id,
            opponent_id=opponent_id,
            opponent_name=names.get(opponent_id, "Unknown"),
            result='win' if won else 'loss',
            score=match.score,
            points_change=match.points_winner if won else match.points_loser,
            played_at=match.match_date or match.validated_at
        )
