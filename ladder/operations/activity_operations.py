"""
Activity Operations

Public activity feed. Entries are added to the session of the transition
they describe, so a rolled back transition leaves no feed entry behind.
"""

from typing import List, Optional
from datetime import datetime
from sqlalchemy import select, or_
from sqlalchemy.orm import selectinload
from sqlalchemy.ext.asyncio import AsyncSession

from ladder.constants import PaginationConstants
from ladder.database.database import Database
from ladder.database.models import Activity, ActivityType, Challenge, Match, Player
from ladder.utils.exceptions import ValidationError
from ladder.utils.time_utils import utc_now
from ladder.utils.logger import setup_logger

logger = setup_logger(__name__)

DEFAULT_FEED_SIZE = 20


class ActivityOperations:
    """Writes and reads the activity feed."""

    def __init__(self, db: Database):
        self.db = db
        self.logger = logger

    @staticmethod
    def record(
        session: AsyncSession,
        activity_type: ActivityType,
        title: str,
        description: str,
        player_id: int,
        opponent_id: Optional[int] = None,
        challenge_id: Optional[int] = None,
        match_id: Optional[int] = None,
        data: Optional[dict] = None,
        now: Optional[datetime] = None
    ) -> Activity:
        """Add a feed entry to the caller's session; it commits with the caller"""
        activity = Activity(
            type=activity_type,
            title=title,
            description=description,
            player_id=player_id,
            opponent_id=opponent_id,
            challenge_id=challenge_id,
            match_id=match_id,
            data=data or {},
            created_at=now or utc_now()
        )
        session.add(activity)
        return activity

    @classmethod
    def challenge_created(cls, session: AsyncSession, challenge: Challenge,
                          challenger: Player, challenged: Player, now: datetime) -> Activity:
        return cls.record(
            session, ActivityType.CHALLENGE_CREATED,
            "New challenge",
            f"{challenger.name} challenged {challenged.name}",
            player_id=challenger.id,
            opponent_id=challenged.id,
            challenge_id=challenge.id,
            now=now
        )

    @classmethod
    def challenge_answered(cls, session: AsyncSession, challenge: Challenge,
                           challenger: Player, responder: Player, accepted: bool,
                           now: datetime) -> Activity:
        if accepted:
            activity_type, title, verb = ActivityType.CHALLENGE_ACCEPTED, "Challenge accepted", "accepted"
        else:
            activity_type, title, verb = ActivityType.CHALLENGE_DECLINED, "Challenge declined", "declined"
        return cls.record(
            session, activity_type, title,
            f"{responder.name} {verb} the challenge from {challenger.name}",
            player_id=responder.id,
            opponent_id=challenger.id,
            challenge_id=challenge.id,
            now=now
        )

    @classmethod
    def match_completed(cls, session: AsyncSession, match: Match, winner: Player,
                        loser: Player, winner_delta: int, loser_delta: int,
                        now: datetime) -> Activity:
        return cls.record(
            session, ActivityType.MATCH_COMPLETED,
            "Match completed",
            f"{winner.name} beat {loser.name} {match.score}",
            player_id=winner.id,
            opponent_id=loser.id,
            challenge_id=match.challenge_id,
            match_id=match.id,
            data={'winner_points': winner_delta, 'loser_points': loser_delta},
            now=now
        )

    @classmethod
    def player_joined(cls, session: AsyncSession, player: Player, now: datetime) -> Activity:
        return cls.record(
            session, ActivityType.PLAYER_JOINED,
            "New player",
            f"{player.name} joined the ladder",
            player_id=player.id,
            data={'level': player.level.value},
            now=now
        )

    async def get_feed(
        self,
        limit: int = DEFAULT_FEED_SIZE,
        player_id: Optional[int] = None
    ) -> List[Activity]:
        """
        Most recent activity, newest first.

        Args:
            limit: Number of entries (1 to MAX_RANKING_LIMIT)
            player_id: Only entries involving this player

        Raises:
            ValidationError: Limit out of range
        """
        if not isinstance(limit, int) or limit < 1 or limit > PaginationConstants.MAX_RANKING_LIMIT:
            raise ValidationError(
                f"Invalid feed limit {limit}",
                f"❌ Limit must be between 1 and {PaginationConstants.MAX_RANKING_LIMIT}."
            )

        query = (
            select(Activity)
            .options(selectinload(Activity.player), selectinload(Activity.opponent))
            .order_by(Activity.created_at.desc(), Activity.id.desc())
            .limit(limit)
        )
        if player_id is not None:
            query = query.where(or_(Activity.player_id == player_id, Activity.opponent_id == player_id))

        async with self.db.get_session() as session:
            result = await session.execute(query)
            return list(result.scalars().all())
