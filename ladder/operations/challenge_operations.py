"""
Challenge Operations

Gates challenge creation through the eligibility rules, handles the
challenged player's accept/decline response and expires challenges nobody
answered. Every status change is a conditional UPDATE on the expected
source status, so concurrent responders cannot both win.
"""

from typing import List, Optional
from datetime import datetime, timedelta
from dataclasses import dataclass
from enum import Enum
from sqlalchemy import select, update, delete, and_, or_, func
from sqlalchemy.orm import selectinload
from sqlalchemy.ext.asyncio import AsyncSession

from ladder.config import Config
from ladder.database.models import (
    Activity, Challenge, ChallengeStatus, LIVE_CHALLENGE_STATUSES,
    Player, PointsHistory, PointsChangeReason
)
from ladder.database.database import Database
from ladder.data_models.snapshots import PlayerSnapshot
from ladder.operations.activity_operations import ActivityOperations
from ladder.operations.ranking_operations import RankingRecomputer
from ladder.services.notifications import NotificationService
from ladder.utils.decline_penalty import DeclinePenaltyLedger, DeclinePenaltyResult
from ladder.utils.eligibility import ChallengeDecision, EligibilityEvaluator
from ladder.utils.exceptions import (
    ChallengeNotFoundError, ConcurrencyConflict, DuplicateChallengeError,
    InvariantViolation, PlayerNotFoundError, ValidationError
)
from ladder.utils.time_utils import as_naive_utc, utc_now
from ladder.utils.logger import setup_logger

logger = setup_logger(__name__)

MAX_MESSAGE_LENGTH = 500


class ChallengeAction(Enum):
    ACCEPT = "accept"
    DECLINE = "decline"


@dataclass
class ChallengeCreationResult:
    """Result of a challenge creation request"""
    success: bool
    decision: ChallengeDecision
    challenge: Optional[Challenge] = None
    challenger: Optional[Player] = None
    challenged: Optional[Player] = None
    error_message: Optional[str] = None


@dataclass
class ChallengeResponseResult:
    """Result of the challenged player's response"""
    challenge: Challenge
    action: ChallengeAction
    challenger: Player
    responder: Player
    penalty: Optional[DeclinePenaltyResult] = None


class ChallengeOperations:
    """
    Service class for challenge-related operations.

    Owns the pending -> accepted | declined | expired transitions and the
    active-challenge counter of the challenger.
    """

    def __init__(self, db: Database, notifier: Optional[NotificationService] = None):
        """
        Initialize ChallengeOperations with database connection.

        Args:
            db: Database instance for persistence
            notifier: Notification service; defaults to log-only delivery
        """
        self.db = db
        self.notifier = notifier or NotificationService()
        self.rankings = RankingRecomputer(db)
        self.logger = setup_logger(f"{__name__}.ChallengeOperations")

    async def evaluate_challenge(
        self,
        challenger_id: int,
        challenged_id: int,
        session: Optional[AsyncSession] = None
    ) -> ChallengeDecision:
        """
        Check whether challenger may challenge challenged right now.

        Reads both players and the level population fresh; nothing is cached.

        Raises:
            PlayerNotFoundError: If either player id does not exist
        """
        async def _evaluate(session: AsyncSession) -> ChallengeDecision:
            challenger = await self._get_player(challenger_id, session)
            challenged = await self._get_player(challenged_id, session)
            return await self._decide(challenger, challenged, session)

        if session:
            return await _evaluate(session)
        else:
            async with self.db.get_session() as db_session:
                return await _evaluate(db_session)

    async def create_challenge(
        self,
        challenger_id: int,
        challenged_id: int,
        message: Optional[str] = None,
        proposed_date: Optional[datetime] = None,
        now: Optional[datetime] = None,
        session: Optional[AsyncSession] = None
    ) -> ChallengeCreationResult:
        """
        Create a pending challenge if the eligibility rules allow it.

        Args:
            challenger_id: Player issuing the challenge
            challenged_id: Player being challenged
            message: Optional note for the challenged player (max 500 chars)
            proposed_date: Optional suggested match date
            now: Override for the current time
            session: Optional existing database session

        Returns:
            ChallengeCreationResult; a denial is reported in decision, not raised

        Raises:
            ValidationError: Unknown player or message too long
            DuplicateChallengeError: A live challenge already exists between the two
            ConcurrencyConflict: The challenger hit the active-challenge cap concurrently
        """
        if message is not None and len(message) > MAX_MESSAGE_LENGTH:
            raise ValidationError(
                f"Challenge message exceeds {MAX_MESSAGE_LENGTH} characters",
                f"❌ Message cannot be longer than {MAX_MESSAGE_LENGTH} characters."
            )
        now = as_naive_utc(now) or utc_now()

        async def _create(session: AsyncSession) -> ChallengeCreationResult:
            challenger = await self._get_player(challenger_id, session)
            challenged = await self._get_player(challenged_id, session)

            decision = await self._decide(challenger, challenged, session)
            if not decision.allowed:
                self.logger.info(
                    f"Challenge {challenger_id} -> {challenged_id} denied: {decision.reason}"
                )
                return ChallengeCreationResult(
                    success=False,
                    decision=decision,
                    challenger=challenger,
                    challenged=challenged,
                    error_message=decision.reason
                )

            if await self._has_live_challenge(challenger_id, challenged_id, session):
                raise DuplicateChallengeError(challenger_id, challenged_id)

            # Claim a challenge slot; the cap is re-checked by the UPDATE itself
            claim = await session.execute(
                update(Player)
                .where(
                    and_(
                        Player.id == challenger_id,
                        Player.active_challenge_count < Config.MAX_ACTIVE_CHALLENGES
                    )
                )
                .values(active_challenge_count=Player.active_challenge_count + 1)
            )
            if claim.rowcount != 1:
                raise ConcurrencyConflict("Player", challenger_id, "active-challenge cap reached")
            await session.refresh(challenger, attribute_names=['active_challenge_count'])

            challenge = Challenge.open(
                challenger, challenged, now,
                message=message,
                proposed_date=as_naive_utc(proposed_date)
            )
            session.add(challenge)
            await session.flush()
            ActivityOperations.challenge_created(session, challenge, challenger, challenged, now)

            self.logger.info(
                f"Created challenge {challenge.id}: {challenger.name} ({challenger.id}) "
                f"-> {challenged.name} ({challenged.id}), expires {challenge.expires_at}"
            )
            return ChallengeCreationResult(
                success=True,
                decision=decision,
                challenge=challenge,
                challenger=challenger,
                challenged=challenged
            )

        if session:
            result = await _create(session)
        else:
            async with self.db.transaction() as txn_session:
                result = await _create(txn_session)

        if result.success:
            await self.notifier.challenge_received(result.challenge, result.challenger)
        return result

    async def respond_to_challenge(
        self,
        challenge_id: int,
        responder_id: int,
        action: ChallengeAction,
        now: Optional[datetime] = None,
        session: Optional[AsyncSession] = None
    ) -> ChallengeResponseResult:
        """
        Accept or decline a pending challenge. At most one response ever succeeds.

        Accepting stamps accepted_at and the match deadline. Declining runs the
        decline penalty ledger and frees the challenger's challenge slot; any
        point transfer and the ranking recompute commit together.

        Raises:
            ChallengeNotFoundError: Unknown challenge
            InvariantViolation: Responder is not the challenged player
            ConcurrencyConflict: Challenge is no longer pending (answered or expired)
        """
        action = ChallengeAction(action)
        now = as_naive_utc(now) or utc_now()

        if session is None:
            # Lazy expiry commits on its own so the expiry survives the rejection
            expired = await self.expire_challenge_if_overdue(challenge_id, now)
            if expired:
                await self.notifier.challenge_expired(expired)
                raise ConcurrencyConflict("Challenge", challenge_id, ChallengeStatus.EXPIRED.value)

        async def _respond(session: AsyncSession) -> ChallengeResponseResult:
            challenge = await self._load_challenge(challenge_id, session)
            if not challenge:
                raise ChallengeNotFoundError(challenge_id)
            if challenge.challenged_id != responder_id:
                raise InvariantViolation(
                    f"Player {responder_id} cannot respond to challenge {challenge_id}",
                    "❌ Only the challenged player can respond to this challenge."
                )

            if action == ChallengeAction.ACCEPT:
                values = Challenge.acceptance_values(now)
            else:
                values = Challenge.decline_values(now)

            stmt = (
                update(Challenge)
                .where(
                    and_(
                        Challenge.id == challenge_id,
                        Challenge.status == ChallengeStatus.PENDING,
                        Challenge.expires_at > now
                    )
                )
                .values(**values)
            )
            result = await session.execute(stmt)

            if result.rowcount != 1:
                await session.refresh(challenge, attribute_names=['status'])
                current = challenge.status.value
                if challenge.status == ChallengeStatus.PENDING:
                    current = ChallengeStatus.EXPIRED.value
                raise ConcurrencyConflict("Challenge", challenge_id, current)

            await session.refresh(challenge, attribute_names=list(values.keys()))
            challenger = challenge.challenger
            responder = challenge.challenged

            penalty = None
            if action == ChallengeAction.DECLINE:
                penalty = await self._apply_decline(challenge, responder, challenger, now, session)

            ActivityOperations.challenge_answered(
                session, challenge, challenger, responder, action == ChallengeAction.ACCEPT, now
            )

            self.logger.info(
                f"Challenge {challenge_id} {challenge.status.value} by player {responder_id}"
                + (f" ({penalty.message})" if penalty else "")
            )
            return ChallengeResponseResult(
                challenge=challenge,
                action=action,
                challenger=challenger,
                responder=responder,
                penalty=penalty
            )

        if session:
            result = await _respond(session)
        else:
            async with self.db.transaction() as txn_session:
                result = await _respond(txn_session)

        if action == ChallengeAction.ACCEPT:
            await self.notifier.challenge_accepted(result.challenge, result.responder)
        else:
            await self.notifier.challenge_declined(result.challenge, result.responder)
            if result.penalty and result.penalty.penalty_applied:
                await self.notifier.points_changed(
                    result.responder.id, -result.penalty.recuser_points_lost,
                    "monthly decline limit exceeded"
                )
                await self.notifier.points_changed(
                    result.challenger.id, result.penalty.points_transferred,
                    f"{result.responder.name} declined your challenge past their free limit"
                )
        return result

    async def _apply_decline(
        self,
        challenge: Challenge,
        recuser: Player,
        challenger: Player,
        now: datetime,
        session: AsyncSession
    ) -> DeclinePenaltyResult:
        recuser_before = recuser.points
        challenger_before = challenger.points

        penalty = DeclinePenaltyLedger.apply_decline_penalty(recuser, challenger, now)
        challenger.active_challenge_count = max(0, (challenger.active_challenge_count or 0) - 1)

        if penalty.penalty_applied:
            session.add_all([
                PointsHistory(
                    player_id=recuser.id,
                    old_points=recuser_before,
                    new_points=recuser.points,
                    points_change=recuser.points - recuser_before,
                    reason=PointsChangeReason.DECLINE_PENALTY,
                    challenge_id=challenge.id,
                    opponent_id=challenger.id,
                    recorded_at=now
                ),
                PointsHistory(
                    player_id=challenger.id,
                    old_points=challenger_before,
                    new_points=challenger.points,
                    points_change=challenger.points - challenger_before,
                    reason=PointsChangeReason.DECLINE_COMPENSATION,
                    challenge_id=challenge.id,
                    opponent_id=recuser.id,
                    recorded_at=now
                ),
            ])
            await session.flush()
            await self.rankings.update_rankings(session)
        else:
            await session.flush()

        return penalty

    async def expire_challenge_if_overdue(
        self,
        challenge_id: int,
        now: Optional[datetime] = None
    ) -> Optional[Challenge]:
        """Expire one pending challenge past its deadline. Returns it if this call expired it."""
        now = as_naive_utc(now) or utc_now()
        async with self.db.transaction() as session:
            if await self._expire(challenge_id, now, session):
                return await self._load_challenge(challenge_id, session)
        return None

    async def cleanup_expired_challenges(
        self,
        now: Optional[datetime] = None,
        session: Optional[AsyncSession] = None
    ) -> int:
        """
        Mark pending challenges past their expiry as EXPIRED.

        Args:
            now: Override for the current time
            session: Optional existing database session

        Returns:
            Number of challenges marked as expired
        """
        now = as_naive_utc(now) or utc_now()

        async def _cleanup(session: AsyncSession) -> List[Challenge]:
            result = await session.execute(
                select(Challenge.id)
                .where(
                    and_(
                        Challenge.status == ChallengeStatus.PENDING,
                        Challenge.expires_at <= now
                    )
                )
            )
            expired = []
            for challenge_id in result.scalars().all():
                if await self._expire(challenge_id, now, session):
                    expired.append(await self._load_challenge(challenge_id, session))
                    self.logger.info(f"Expired challenge {challenge_id}")
            return expired

        if session:
            expired = await _cleanup(session)
        else:
            async with self.db.transaction() as txn_session:
                expired = await _cleanup(txn_session)

        for challenge in expired:
            await self.notifier.challenge_expired(challenge)
        return len(expired)

    async def purge_stale_challenges(
        self,
        older_than_days: Optional[int] = None,
        now: Optional[datetime] = None
    ) -> int:
        """
        Delete declined and expired challenges older than the retention window.

        Challenges referenced by the points history (penalised declines) are kept.
        Feed entries of purged challenges stay, detached from the challenge.
        """
        now = as_naive_utc(now) or utc_now()
        cutoff = now - timedelta(days=older_than_days or Config.STALE_CHALLENGE_RETENTION_DAYS)

        audited = select(PointsHistory.challenge_id).where(PointsHistory.challenge_id.isnot(None))

        async with self.db.transaction() as session:
            stale = await session.execute(
                select(Challenge.id).where(
                    and_(
                        Challenge.status.in_([ChallengeStatus.DECLINED, ChallengeStatus.EXPIRED]),
                        Challenge.created_at < cutoff,
                        Challenge.id.not_in(audited)
                    )
                )
            )
            stale_ids = list(stale.scalars().all())
            count = 0
            if stale_ids:
                await session.execute(
                    update(Activity)
                    .where(Activity.challenge_id.in_(stale_ids))
                    .values(challenge_id=None)
                    .execution_options(synchronize_session=False)
                )
                result = await session.execute(
                    delete(Challenge)
                    .where(Challenge.id.in_(stale_ids))
                    .execution_options(synchronize_session=False)
                )
                count = result.rowcount or 0

        if count:
            self.logger.info(f"Purged {count} stale challenges created before {cutoff}")
        return count

    async def get_challenge_by_id(
        self,
        challenge_id: int,
        session: Optional[AsyncSession] = None
    ) -> Optional[Challenge]:
        if session:
            return await self._load_challenge(challenge_id, session)
        async with self.db.get_session() as db_session:
            return await self._load_challenge(challenge_id, db_session)

    async def get_live_challenges_for_player(self, player_id: int) -> List[Challenge]:
        """Pending, accepted and awaiting-validation challenges the player is part of"""
        async with self.db.get_session() as session:
            result = await session.execute(
                select(Challenge)
                .options(selectinload(Challenge.challenger), selectinload(Challenge.challenged))
                .where(
                    and_(
                        or_(Challenge.challenger_id == player_id, Challenge.challenged_id == player_id),
                        Challenge.status.in_(LIVE_CHALLENGE_STATUSES)
                    )
                )
                .order_by(Challenge.created_at.desc())
            )
            return list(result.scalars().all())

    async def get_incoming_challenges(self, player_id: int) -> List[Challenge]:
        """Pending challenges waiting on this player's response"""
        async with self.db.get_session() as session:
            result = await session.execute(
                select(Challenge)
                .options(selectinload(Challenge.challenger), selectinload(Challenge.challenged))
                .where(
                    and_(
                        Challenge.challenged_id == player_id,
                        Challenge.status == ChallengeStatus.PENDING
                    )
                )
                .order_by(Challenge.expires_at.asc())
            )
            return list(result.scalars().all())

    async def _expire(self, challenge_id: int, now: datetime, session: AsyncSession) -> bool:
        result = await session.execute(
            update(Challenge)
            .where(
                and_(
                    Challenge.id == challenge_id,
                    Challenge.status == ChallengeStatus.PENDING,
                    Challenge.expires_at <= now
                )
            )
            .values(status=ChallengeStatus.EXPIRED)
        )
        if result.rowcount != 1:
            return False

        challenge = await self._load_challenge(challenge_id, session)
        await session.refresh(challenge, attribute_names=['status'])
        challenger = challenge.challenger
        challenger.active_challenge_count = max(0, (challenger.active_challenge_count or 0) - 1)
        await session.flush()
        return True

    async def _decide(self, challenger: Player, challenged: Player, session: AsyncSession) -> ChallengeDecision:
        level_population = await self.db.count_active_players(level=challenger.level, session=session)
        return EligibilityEvaluator.can_challenge(
            PlayerSnapshot.from_player(challenger),
            PlayerSnapshot.from_player(challenged),
            level_population
        )

    async def _get_player(self, player_id: int, session: AsyncSession) -> Player:
        player = await session.get(Player, player_id)
        if not player:
            raise PlayerNotFoundError(player_id)
        return player

    async def _has_live_challenge(self, player_a: int, player_b: int, session: AsyncSession) -> bool:
        count = await session.scalar(
            select(func.count(Challenge.id)).where(
                and_(
                    or_(
                        and_(Challenge.challenger_id == player_a, Challenge.challenged_id == player_b),
                        and_(Challenge.challenger_id == player_b, Challenge.challenged_id == player_a)
                    ),
                    Challenge.status.in_(LIVE_CHALLENGE_STATUSES)
                )
            )
        )
        return (count or 0) > 0

    async def _load_challenge(self, challenge_id: int, session: AsyncSession) -> Optional[Challenge]:
        result = await session.execute(
            select(Challenge)
            .options(selectinload(Challenge.challenger), selectinload(Challenge.challenged))
            .where(Challenge.id == challenge_id)
        )
        return result.scalar_one_or_none()
