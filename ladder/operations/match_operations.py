"""
Match Operations

Result reporting and validation for accepted challenges.

Lifecycle:
- submit_match_result(): accepted challenge -> awaiting_validation, match filed
  as pending_validation with a validation deadline
- validate_match(): the designated loser confirms (settles points) or disputes
- sweep_expired_validations(): settles every pending match past its deadline

Settlement applies both players' point changes, provisional progress, the
challenger's freed challenge slot, the completed challenge and the ranking
recompute in a single transaction.
"""

from typing import List, Optional
from datetime import datetime
from dataclasses import dataclass
from enum import Enum
from sqlalchemy import select, update, and_, or_
from sqlalchemy.orm import selectinload
from sqlalchemy.ext.asyncio import AsyncSession

from ladder.database.models import (
    Match, MatchStatus, Challenge, ChallengeStatus,
    Player, PointsHistory, PointsChangeReason
)
from ladder.database.database import Database
from ladder.data_models.snapshots import PlayerSnapshot
from ladder.operations.activity_operations import ActivityOperations
from ladder.operations.ranking_operations import RankingRecomputer
from ladder.services.notifications import NotificationService
from ladder.utils.exceptions import (
    ChallengeNotFoundError, ConcurrencyConflict, InvariantViolation,
    MatchNotFoundError, ValidationError
)
from ladder.utils.points import PointsCalculator, PointsResult
from ladder.utils.provisional import ProvisionalPromotionTracker, ProvisionalUpdate
from ladder.utils.score_parser import parse_score
from ladder.utils.time_utils import as_naive_utc, utc_now
from ladder.utils.logger import setup_logger

logger = setup_logger(__name__)

MAX_NOTES_LENGTH = 1000
MAX_DISPUTE_REASON_LENGTH = 500


class ValidationAction(Enum):
    CONFIRM = "confirm"
    DISPUTE = "dispute"


@dataclass
class SettlementResult:
    """Everything a validated match changed"""
    match: Match
    points: PointsResult
    winner: Player
    loser: Player
    winner_provisional: ProvisionalUpdate
    loser_provisional: ProvisionalUpdate


@dataclass
class MatchValidationResult:
    """Result of the designated loser's confirm/dispute"""
    match: Match
    action: ValidationAction
    settlement: Optional[SettlementResult] = None


class MatchOperations:
    """
    Core service class for the result-validation workflow.

    Match status only moves forward: pending_validation -> validated | disputed.
    Each move is a conditional UPDATE on pending_validation, so an explicit
    confirmation and the deadline sweep can race safely on the same match.
    """

    def __init__(self, database: Database, notifier: Optional[NotificationService] = None):
        """Initialize with database instance and optional notification service"""
        self.db = database
        self.notifier = notifier or NotificationService()
        self.rankings = RankingRecomputer(database)
        self.logger = logger

    async def submit_match_result(
        self,
        challenge_id: int,
        reporter_id: int,
        winner_id: int,
        score: str,
        match_date: Optional[datetime] = None,
        location: Optional[str] = None,
        duration_minutes: Optional[int] = None,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
        session: Optional[AsyncSession] = None
    ) -> Match:
        """
        File a result against an accepted challenge.

        Args:
            challenge_id: Accepted challenge the match was played for
            reporter_id: Participant reporting the result
            winner_id: Reported winner; the other participant becomes the designated loser
            score: Score string such as "6-4 6-3"
            match_date: When the match was played (defaults to now)
            location: Optional venue
            duration_minutes: Optional match length
            notes: Optional free text
            now: Override for the current time
            session: Optional existing database session

        Returns:
            Match in pending_validation with relationships loaded

        Raises:
            ValidationError: Unknown challenge, winner not a participant, bad score or details
            InvariantViolation: Reporter is not a participant
            ConcurrencyConflict: Challenge is not (or no longer) accepted
        """
        sets = parse_score(score)
        if duration_minutes is not None and duration_minutes <= 0:
            raise ValidationError(
                f"Invalid match duration {duration_minutes}",
                "❌ Match duration must be a positive number of minutes."
            )
        if notes is not None and len(notes) > MAX_NOTES_LENGTH:
            raise ValidationError(
                f"Match notes exceed {MAX_NOTES_LENGTH} characters",
                f"❌ Notes cannot be longer than {MAX_NOTES_LENGTH} characters."
            )
        now = as_naive_utc(now) or utc_now()

        async def _submit(session: AsyncSession) -> Match:
            challenge = await self._load_challenge(challenge_id, session)
            if not challenge:
                raise ChallengeNotFoundError(challenge_id)
            if not challenge.involves(reporter_id):
                raise InvariantViolation(
                    f"Player {reporter_id} is not a participant of challenge {challenge_id}",
                    "❌ Only the two players of this challenge can report its result."
                )
            if not challenge.involves(winner_id):
                raise ValidationError(
                    f"Winner {winner_id} is not a participant of challenge {challenge_id}",
                    "❌ The winner must be one of the two players."
                )

            result = await session.execute(
                update(Challenge)
                .where(
                    and_(
                        Challenge.id == challenge_id,
                        Challenge.status == ChallengeStatus.ACCEPTED
                    )
                )
                .values(status=ChallengeStatus.AWAITING_VALIDATION)
            )
            await session.refresh(challenge, attribute_names=['status'])
            if result.rowcount != 1:
                raise ConcurrencyConflict("Challenge", challenge_id, challenge.status.value)

            match = Match.file_result(
                challenge, reporter_id, winner_id, score.strip(), now,
                sets=sets,
                match_date=as_naive_utc(match_date) or now,
                location=location,
                duration_minutes=duration_minutes,
                notes=notes
            )
            session.add(match)
            await session.flush()

            match = await self._load_match(match.id, session)
            self.logger.info(
                f"Match {match.id} filed for challenge {challenge_id} by player {reporter_id}: "
                f"winner {winner_id}, score '{match.score}', deadline {match.validation_deadline}"
            )
            return match

        if session:
            match = await _submit(session)
        else:
            async with self.db.transaction() as txn_session:
                match = await _submit(txn_session)

        reporter = match.player1 if reporter_id == match.player1_id else match.player2
        recipient_id = match.player2_id if reporter_id == match.player1_id else match.player1_id
        await self.notifier.result_submitted(match, reporter, recipient_id)
        return match

    async def validate_match(
        self,
        match_id: int,
        actor_id: int,
        action: ValidationAction,
        dispute_reason: Optional[str] = None,
        now: Optional[datetime] = None,
        session: Optional[AsyncSession] = None
    ) -> MatchValidationResult:
        """
        Confirm or dispute a pending result. Only the designated loser may act.

        Confirming settles the match immediately. Disputing parks it for an
        administrator and is only possible before the validation deadline.

        Raises:
            MatchNotFoundError: Unknown match
            InvariantViolation: Actor is not the designated loser
            ValidationError: Missing dispute reason, or dispute after the deadline
            ConcurrencyConflict: Match is no longer pending validation
        """
        action = ValidationAction(action)
        now = as_naive_utc(now) or utc_now()

        reason = None
        if action == ValidationAction.DISPUTE:
            reason = (dispute_reason or "").strip()
            if not reason:
                raise ValidationError(
                    "Dispute reason is required",
                    "❌ Please explain why you are disputing this result."
                )
            if len(reason) > MAX_DISPUTE_REASON_LENGTH:
                raise ValidationError(
                    f"Dispute reason exceeds {MAX_DISPUTE_REASON_LENGTH} characters",
                    f"❌ Dispute reason cannot be longer than {MAX_DISPUTE_REASON_LENGTH} characters."
                )

        async def _validate(session: AsyncSession) -> MatchValidationResult:
            match = await self._load_match(match_id, session)
            if not match:
                raise MatchNotFoundError(match_id)
            if actor_id != match.loser_id:
                raise InvariantViolation(
                    f"Player {actor_id} is not the designated loser of match {match_id}",
                    "❌ Only the player reported as the loser can confirm or dispute this result."
                )
            if match.status != MatchStatus.PENDING_VALIDATION:
                raise ConcurrencyConflict("Match", match_id, match.status.value)

            if action == ValidationAction.DISPUTE:
                if match.validation_expired(now):
                    raise ValidationError(
                        f"Validation deadline for match {match_id} has passed",
                        "❌ The validation window has closed; this result can no longer be disputed."
                    )
                result = await session.execute(
                    update(Match)
                    .where(
                        and_(
                            Match.id == match_id,
                            Match.status == MatchStatus.PENDING_VALIDATION
                        )
                    )
                    .values(status=MatchStatus.DISPUTED, dispute_reason=reason, disputed_at=now)
                )
                await session.refresh(match, attribute_names=['status', 'dispute_reason', 'disputed_at'])
                if result.rowcount != 1:
                    raise ConcurrencyConflict("Match", match_id, match.status.value)

                self.logger.info(f"Match {match_id} disputed by player {actor_id}: {reason}")
                return MatchValidationResult(match=match, action=action)

            if not await self._claim_for_validation(match_id, now, session, validated_by_id=actor_id):
                await session.refresh(match, attribute_names=['status'])
                raise ConcurrencyConflict("Match", match_id, match.status.value)
            await session.refresh(match, attribute_names=['status', 'validated_by_id', 'validated_at', 'auto_validated'])

            settlement = await self._settle(match, now, session)
            self.logger.info(f"Match {match_id} confirmed by player {actor_id}")
            return MatchValidationResult(match=match, action=action, settlement=settlement)

        if session:
            result = await _validate(session)
        else:
            async with self.db.transaction() as txn_session:
                result = await _validate(txn_session)

        if result.settlement:
            await self._notify_settlement(result.settlement)
        else:
            await self.notifier.result_disputed(result.match, result.match.loser)
        return result

    async def sweep_expired_validations(self, now: Optional[datetime] = None) -> int:
        """
        Auto-validate every pending match whose validation deadline has passed.

        Each match settles in its own transaction. Matches confirmed or disputed
        in the meantime are skipped, so repeated or overlapping sweeps are harmless.

        Returns:
            Number of matches finalized by this sweep
        """
        now = as_naive_utc(now) or utc_now()

        async with self.db.get_session() as session:
            result = await session.execute(
                select(Match.id)
                .where(
                    and_(
                        Match.status == MatchStatus.PENDING_VALIDATION,
                        Match.validation_deadline < now
                    )
                )
                .order_by(Match.validation_deadline.asc())
            )
            candidate_ids = list(result.scalars().all())

        finalized = 0
        for match_id in candidate_ids:
            try:
                settlement = await self._auto_validate(match_id, now)
            except Exception as e:
                # The match stays pending and is retried by the next sweep
                self.logger.error(f"Failed to auto-validate match {match_id}: {e}", exc_info=True)
                continue
            if settlement is None:
                continue

            finalized += 1
            await self._notify_settlement(settlement)

        if finalized:
            self.logger.info(f"Auto-validated {finalized} match(es) past their deadline")
        return finalized

    async def _auto_validate(self, match_id: int, now: datetime) -> Optional[SettlementResult]:
        """Claim and settle one overdue match in its own transaction; None if someone else got there first"""
        async with self.db.transaction() as session:
            claimed = await self._claim_for_validation(
                match_id, now, session, validated_by_id=None, deadline_passed=True
            )
            if not claimed:
                self.logger.debug(f"Match {match_id} already left pending_validation, skipping")
                return None
            match = await self._load_match(match_id, session)
            await session.refresh(match, attribute_names=['status', 'validated_by_id', 'validated_at', 'auto_validated'])
            return await self._settle(match, now, session)

    async def _claim_for_validation(
        self,
        match_id: int,
        now: datetime,
        session: AsyncSession,
        validated_by_id: Optional[int],
        deadline_passed: bool = False
    ) -> bool:
        conditions = [
            Match.id == match_id,
            Match.status == MatchStatus.PENDING_VALIDATION,
        ]
        if deadline_passed:
            conditions.append(Match.validation_deadline < now)

        result = await session.execute(
            update(Match)
            .where(and_(*conditions))
            .values(
                status=MatchStatus.VALIDATED,
                validated_by_id=validated_by_id,
                validated_at=now,
                auto_validated=validated_by_id is None
            )
        )
        return result.rowcount == 1

    async def _settle(self, match: Match, now: datetime, session: AsyncSession) -> SettlementResult:
        """Apply a validated match. Runs inside the transaction that claimed it."""
        winner = await session.get(Player, match.winner_id, with_for_update=True)
        loser = await session.get(Player, match.loser_id, with_for_update=True)
        challenge = match.challenge

        # Unranked players settle as if placed just below the ladder
        unranked_position = await self.db.count_active_players(session=session) + 1
        winner_snapshot = PlayerSnapshot.from_player(winner, unranked_position)
        loser_snapshot = PlayerSnapshot.from_player(loser, unranked_position)
        points = PointsCalculator.calculate(winner_snapshot, loser_snapshot)

        ranking_before = self._ranking_snapshot(match, winner, loser)
        winner_before, loser_before = winner.points, loser.points

        new_loser_points = loser.points + points.loser_delta
        if new_loser_points < 0:
            raise InvariantViolation(
                f"Settlement of match {match.id} would leave player {loser.id} at {new_loser_points} points"
            )

        winner.points = winner.points + points.winner_delta
        winner.wins = (winner.wins or 0) + 1
        winner.win_streak = (winner.win_streak or 0) + 1
        winner.best_streak = max(winner.best_streak or 0, winner.win_streak)
        winner.last_active = now

        loser.points = new_loser_points
        loser.losses = (loser.losses or 0) + 1
        loser.win_streak = 0
        loser.last_active = now

        winner_provisional = ProvisionalPromotionTracker.update_provisional_status(winner)
        loser_provisional = ProvisionalPromotionTracker.update_provisional_status(loser)

        challenger = winner if winner.id == challenge.challenger_id else loser
        challenger.active_challenge_count = max(0, (challenger.active_challenge_count or 0) - 1)

        completed = await session.execute(
            update(Challenge)
            .where(
                and_(
                    Challenge.id == challenge.id,
                    Challenge.status == ChallengeStatus.AWAITING_VALIDATION
                )
            )
            .values(status=ChallengeStatus.COMPLETED, completed_at=now)
        )
        if completed.rowcount != 1:
            raise InvariantViolation(
                f"Challenge {challenge.id} was not awaiting validation when match {match.id} settled"
            )
        await session.refresh(challenge, attribute_names=['status', 'completed_at'])

        match.points_winner = points.winner_delta
        match.points_loser = points.loser_delta
        match.points_multiplier = points.multiplier
        match.ranking_before = ranking_before

        session.add_all([
            PointsHistory(
                player_id=winner.id,
                old_points=winner_before,
                new_points=winner.points,
                points_change=points.winner_delta,
                reason=PointsChangeReason.MATCH_WIN,
                match_id=match.id,
                challenge_id=challenge.id,
                opponent_id=loser.id,
                multiplier=points.multiplier,
                recorded_at=now
            ),
            PointsHistory(
                player_id=loser.id,
                old_points=loser_before,
                new_points=loser.points,
                points_change=points.loser_delta,
                reason=PointsChangeReason.MATCH_LOSS,
                match_id=match.id,
                challenge_id=challenge.id,
                opponent_id=winner.id,
                multiplier=points.multiplier,
                recorded_at=now
            ),
        ])
        await session.flush()

        await self.rankings.update_rankings(session)
        match.ranking_after = self._ranking_snapshot(match, winner, loser)
        ActivityOperations.match_completed(
            session, match, winner, loser, points.winner_delta, points.loser_delta, now
        )
        await session.flush()

        self.logger.info(
            f"Settled match {match.id}: {winner.name} {points.winner_delta:+d}, "
            f"{loser.name} {points.loser_delta:+d} (x{points.multiplier})"
        )
        if winner_provisional.became_regular:
            self.logger.info(f"Player {winner.id} completed the provisional phase")
        if loser_provisional.became_regular:
            self.logger.info(f"Player {loser.id} completed the provisional phase")

        return SettlementResult(
            match=match,
            points=points,
            winner=winner,
            loser=loser,
            winner_provisional=winner_provisional,
            loser_provisional=loser_provisional
        )

    def _ranking_snapshot(self, match: Match, winner: Player, loser: Player) -> dict:
        player1 = winner if winner.id == match.player1_id else loser
        player2 = loser if player1 is winner else winner
        return {
            'player1': player1.ranking_snapshot(),
            'player2': player2.ranking_snapshot(),
        }

    async def _notify_settlement(self, settlement: SettlementResult) -> None:
        await self.notifier.result_validated(
            settlement.match, settlement.winner.id, settlement.points.winner_delta
        )
        await self.notifier.result_validated(
            settlement.match, settlement.loser.id, settlement.points.loser_delta
        )

    async def get_match_by_id(self, match_id: int) -> Optional[Match]:
        async with self.db.get_session() as session:
            return await self._load_match(match_id, session)

    async def get_pending_validations_for_player(self, player_id: int) -> List[Match]:
        """Matches waiting on this player's confirm/dispute"""
        async with self.db.get_session() as session:
            result = await session.execute(
                self._match_query()
                .where(
                    and_(
                        Match.loser_id == player_id,
                        Match.status == MatchStatus.PENDING_VALIDATION
                    )
                )
                .order_by(Match.validation_deadline.asc())
            )
            return list(result.scalars().all())

    async def get_match_history(self, player_id: int, limit: int = 10) -> List[Match]:
        """Most recent validated matches for a player"""
        async with self.db.get_session() as session:
            result = await session.execute(
                self._match_query()
                .where(
                    and_(
                        or_(Match.player1_id == player_id, Match.player2_id == player_id),
                        Match.status == MatchStatus.VALIDATED
                    )
                )
                .order_by(Match.validated_at.desc(), Match.id.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

    def _match_query(self):
        return select(Match).options(
            selectinload(Match.challenge),
            selectinload(Match.player1),
            selectinload(Match.player2),
            selectinload(Match.winner),
            selectinload(Match.loser),
        )

    async def _load_match(self, match_id: int, session: AsyncSession) -> Optional[Match]:
        result = await session.execute(self._match_query().where(Match.id == match_id))
        return result.scalar_one_or_none()

    async def _load_challenge(self, challenge_id: int, session: AsyncSession) -> Optional[Challenge]:
        result = await session.execute(
            select(Challenge)
            .options(selectinload(Challenge.challenger), selectinload(Challenge.challenged))
            .where(Challenge.id == challenge_id)
        )
        return result.scalar_one_or_none()
