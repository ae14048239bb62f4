"""
MatchOperations tests: result filing, confirm/dispute by the designated loser,
settlement and the deadline sweep.
"""

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from ladder.database.models import ChallengeStatus, MatchStatus, PointsHistory
from ladder.operations.challenge_operations import ChallengeAction
from ladder.operations.match_operations import MatchValidationResult, ValidationAction
from ladder.operations.ranking_operations import RankingRecomputer
from ladder.services.notifications import NotificationType
from ladder.utils.exceptions import (
    ConcurrencyConflict, InvariantViolation, ScoreFormatError, ValidationError
)

from conftest import T0

REPORTED_AT = T0 + timedelta(hours=2)


async def accepted_challenge(challenge_ops, challenger, challenged):
    created = await challenge_ops.create_challenge(challenger.id, challenged.id, now=T0)
    await challenge_ops.respond_to_challenge(created.challenge.id, challenged.id, ChallengeAction.ACCEPT, now=T0)
    return created.challenge


@pytest.fixture
async def reported(challenge_ops, match_ops, make_player):
    """Alice (position 2) reports a win over Bob (position 1)"""
    alice = await make_player("Alice", points=1000)
    bob = await make_player("Bob", points=1010)
    challenge = await accepted_challenge(challenge_ops, alice, bob)
    match = await match_ops.submit_match_result(
        challenge.id, alice.id, alice.id, "6-4 6-3", now=REPORTED_AT
    )
    return alice, bob, challenge, match


# =============================================================================
# Submission
# =============================================================================

@pytest.mark.asyncio
async def test_submit_files_pending_match(challenge_ops, dispatcher, reported):
    alice, bob, challenge, match = reported

    assert match.status == MatchStatus.PENDING_VALIDATION
    assert (match.player1_id, match.player2_id) == (alice.id, bob.id)
    assert (match.winner_id, match.loser_id) == (alice.id, bob.id)
    assert match.sets == [[6, 4], [6, 3]]
    assert match.validation_deadline == REPORTED_AT + timedelta(hours=48)
    assert match.points_awarded is None

    stored = await challenge_ops.get_challenge_by_id(challenge.id)
    assert stored.status == ChallengeStatus.AWAITING_VALIDATION

    submitted = dispatcher.of_type(NotificationType.RESULT_SUBMITTED)
    assert [n.recipient_id for n in submitted] == [bob.id]


@pytest.mark.asyncio
async def test_second_submission_conflicts(match_ops, reported):
    alice, bob, challenge, _ = reported

    with pytest.raises(ConcurrencyConflict):
        await match_ops.submit_match_result(challenge.id, bob.id, bob.id, "6-0 6-0", now=REPORTED_AT)


@pytest.mark.asyncio
async def test_submit_rejects_outsiders_and_bad_scores(challenge_ops, match_ops, make_player):
    alice = await make_player("Alice", points=1000)
    bob = await make_player("Bob", points=1010)
    carol = await make_player("Carol", points=900)
    challenge = await accepted_challenge(challenge_ops, alice, bob)

    with pytest.raises(InvariantViolation):
        await match_ops.submit_match_result(challenge.id, carol.id, alice.id, "6-4", now=REPORTED_AT)

    with pytest.raises(ValidationError):
        await match_ops.submit_match_result(challenge.id, alice.id, carol.id, "6-4", now=REPORTED_AT)

    with pytest.raises(ScoreFormatError):
        await match_ops.submit_match_result(challenge.id, alice.id, alice.id, "6-6", now=REPORTED_AT)

    stored = await challenge_ops.get_challenge_by_id(challenge.id)
    assert stored.status == ChallengeStatus.ACCEPTED


@pytest.mark.asyncio
async def test_submit_requires_accepted_challenge(challenge_ops, match_ops, make_player):
    alice = await make_player("Alice", points=1000)
    bob = await make_player("Bob", points=1010)
    created = await challenge_ops.create_challenge(alice.id, bob.id, now=T0)

    with pytest.raises(ConcurrencyConflict):
        await match_ops.submit_match_result(created.challenge.id, alice.id, alice.id, "6-4", now=REPORTED_AT)


# =============================================================================
# Confirmation and settlement
# =============================================================================

@pytest.mark.asyncio
async def test_confirm_settles_match(db, challenge_ops, match_ops, dispatcher, reported):
    alice, bob, challenge, match = reported

    result = await match_ops.validate_match(
        match.id, bob.id, ValidationAction.CONFIRM, now=REPORTED_AT + timedelta(hours=1)
    )

    settled = result.match
    assert settled.status == MatchStatus.VALIDATED
    assert settled.validated_by_id == bob.id
    assert not settled.auto_validated

    # Winner at position 2 beat position 1: difference -1
    assert (settled.points_winner, settled.points_loser) == (28, 1)
    assert settled.points_multiplier == 1.0
    assert settled.ranking_before == {
        'player1': {'ranking': 2, 'points': 1000},
        'player2': {'ranking': 1, 'points': 1010},
    }
    assert settled.ranking_after == {
        'player1': {'ranking': 1, 'points': 1028},
        'player2': {'ranking': 2, 'points': 1011},
    }

    alice = await db.get_player_by_id(alice.id)
    bob = await db.get_player_by_id(bob.id)
    assert (alice.wins, alice.win_streak, alice.active_challenge_count) == (1, 1, 0)
    assert (bob.losses, bob.win_streak) == (1, 0)

    stored = await challenge_ops.get_challenge_by_id(challenge.id)
    assert stored.status == ChallengeStatus.COMPLETED

    async with db.get_session() as session:
        history = (await session.execute(select(PointsHistory))).scalars().all()
    assert sorted(h.points_change for h in history) == [1, 28]

    validated = dispatcher.of_type(NotificationType.RESULT_VALIDATED)
    assert {n.recipient_id: n.data['points_change'] for n in validated} == {alice.id: 28, bob.id: 1}


@pytest.mark.asyncio
async def test_provisional_players_settle_with_multiplier(db, challenge_ops, match_ops, make_player):
    carol = await make_player("Carol", points=1000, provisional=True)
    dave = await make_player("Dave", points=1010, provisional=True)
    challenge = await accepted_challenge(challenge_ops, carol, dave)
    match = await match_ops.submit_match_result(challenge.id, dave.id, dave.id, "6-1 6-1", now=REPORTED_AT)

    # Dave (1) beat Carol (2): difference 1, loser capped at -5, both x1.5 rounded half up
    result = await match_ops.validate_match(match.id, carol.id, ValidationAction.CONFIRM, now=REPORTED_AT)

    points = result.settlement.points
    assert points.multiplier == 1.5
    assert (points.winner_delta, points.loser_delta) == (48, -7)
    assert result.settlement.winner_provisional.remaining_matches == 2

    dave = await db.get_player_by_id(dave.id)
    assert dave.provisional
    assert dave.provisional_matches_played == 1


@pytest.mark.asyncio
async def test_only_designated_loser_may_validate(match_ops, reported):
    alice, bob, _, match = reported

    with pytest.raises(InvariantViolation):
        await match_ops.validate_match(match.id, alice.id, ValidationAction.CONFIRM, now=REPORTED_AT)

    stored = await match_ops.get_match_by_id(match.id)
    assert stored.status == MatchStatus.PENDING_VALIDATION


@pytest.mark.asyncio
async def test_confirm_twice_conflicts(match_ops, reported):
    _, bob, _, match = reported
    await match_ops.validate_match(match.id, bob.id, ValidationAction.CONFIRM, now=REPORTED_AT)

    with pytest.raises(ConcurrencyConflict):
        await match_ops.validate_match(match.id, bob.id, ValidationAction.CONFIRM, now=REPORTED_AT)


# =============================================================================
# Disputes
# =============================================================================

@pytest.mark.asyncio
async def test_dispute_parks_match(db, match_ops, dispatcher, reported):
    alice, bob, _, match = reported

    result = await match_ops.validate_match(
        match.id, bob.id, ValidationAction.DISPUTE, dispute_reason="Score was 4-6 6-3 6-2", now=REPORTED_AT
    )

    assert result.match.status == MatchStatus.DISPUTED
    assert result.match.dispute_reason == "Score was 4-6 6-3 6-2"
    assert result.settlement is None
    assert (await db.get_player_by_id(alice.id)).points == 1000
    assert dispatcher.of_type(NotificationType.RESULT_DISPUTED)[0].recipient_id == alice.id

    with pytest.raises(ConcurrencyConflict):
        await match_ops.validate_match(match.id, bob.id, ValidationAction.CONFIRM, now=REPORTED_AT)


@pytest.mark.asyncio
async def test_dispute_needs_reason_and_open_window(match_ops, reported):
    _, bob, _, match = reported

    with pytest.raises(ValidationError):
        await match_ops.validate_match(match.id, bob.id, ValidationAction.DISPUTE, dispute_reason="  ", now=REPORTED_AT)

    with pytest.raises(ValidationError):
        await match_ops.validate_match(
            match.id, bob.id, ValidationAction.DISPUTE, dispute_reason="Wrong",
            now=REPORTED_AT + timedelta(hours=49)
        )


# =============================================================================
# Sweep
# =============================================================================

@pytest.mark.asyncio
async def test_sweep_auto_validates_after_deadline(db, match_ops, reported):
    alice, bob, _, match = reported

    assert await match_ops.sweep_expired_validations(now=REPORTED_AT + timedelta(hours=47)) == 0
    assert await match_ops.sweep_expired_validations(now=REPORTED_AT + timedelta(hours=49)) == 1
    assert await match_ops.sweep_expired_validations(now=REPORTED_AT + timedelta(hours=50)) == 0

    stored = await match_ops.get_match_by_id(match.id)
    assert stored.status == MatchStatus.VALIDATED
    assert stored.auto_validated
    assert stored.validated_by_id is None
    assert (await db.get_player_by_id(alice.id)).points == 1028

    with pytest.raises(ConcurrencyConflict):
        await match_ops.validate_match(match.id, bob.id, ValidationAction.CONFIRM, now=REPORTED_AT)


@pytest.mark.asyncio
async def test_sweep_and_late_confirmation_settle_once(db, match_ops, reported):
    alice, bob, _, match = reported
    late = REPORTED_AT + timedelta(hours=49)

    swept, confirmed = await asyncio.gather(
        match_ops.sweep_expired_validations(now=late),
        match_ops.validate_match(match.id, bob.id, ValidationAction.CONFIRM, now=late),
        return_exceptions=True
    )

    if isinstance(confirmed, MatchValidationResult):
        assert swept == 0
    else:
        assert isinstance(confirmed, ConcurrencyConflict)
        assert swept == 1

    assert (await match_ops.get_match_by_id(match.id)).status == MatchStatus.VALIDATED
    assert (await db.get_player_by_id(alice.id)).points == 1028
    async with db.get_session() as session:
        history = (await session.execute(select(PointsHistory))).scalars().all()
    assert len(history) == 2


@pytest.mark.asyncio
async def test_sweep_continues_past_a_failing_match(db, challenge_ops, match_ops, dispatcher, monkeypatch, make_player):
    alice = await make_player("Alice", points=1000)
    bob = await make_player("Bob", points=1010)
    carol = await make_player("Carol", points=1020)
    dave = await make_player("Dave", points=1030)

    first = await accepted_challenge(challenge_ops, alice, bob)
    second = await accepted_challenge(challenge_ops, carol, dave)
    stuck = await match_ops.submit_match_result(first.id, alice.id, alice.id, "6-4 6-4", now=REPORTED_AT)
    settled = await match_ops.submit_match_result(
        second.id, carol.id, carol.id, "6-2 6-2", now=REPORTED_AT + timedelta(hours=1)
    )

    real_settle = match_ops._settle
    attempts = []

    async def settle_failing_once(match, now, session):
        attempts.append(match.id)
        if len(attempts) == 1:
            raise OperationalError("UPDATE players", {}, Exception("database is locked"))
        return await real_settle(match, now, session)

    monkeypatch.setattr(match_ops, "_settle", settle_failing_once)

    assert await match_ops.sweep_expired_validations(now=REPORTED_AT + timedelta(hours=50)) == 1
    assert attempts == [stuck.id, settled.id]
    assert (await match_ops.get_match_by_id(stuck.id)).status == MatchStatus.PENDING_VALIDATION
    assert (await match_ops.get_match_by_id(settled.id)).status == MatchStatus.VALIDATED

    validated = dispatcher.of_type(NotificationType.RESULT_VALIDATED)
    assert sorted(n.recipient_id for n in validated) == sorted([carol.id, dave.id])

    assert await match_ops.sweep_expired_validations(now=REPORTED_AT + timedelta(hours=51)) == 1
    assert (await match_ops.get_match_by_id(stuck.id)).status == MatchStatus.VALIDATED


@pytest.mark.asyncio
async def test_sweep_skips_disputed_matches(match_ops, reported):
    _, bob, _, match = reported
    await match_ops.validate_match(
        match.id, bob.id, ValidationAction.DISPUTE, dispute_reason="Never played", now=REPORTED_AT
    )

    assert await match_ops.sweep_expired_validations(now=REPORTED_AT + timedelta(days=5)) == 0
    assert (await match_ops.get_match_by_id(match.id)).status == MatchStatus.DISPUTED


@pytest.mark.asyncio
async def test_history_and_pending_lists(match_ops, reported):
    alice, bob, _, match = reported

    assert [m.id for m in await match_ops.get_pending_validations_for_player(bob.id)] == [match.id]
    assert await match_ops.get_pending_validations_for_player(alice.id) == []

    await match_ops.validate_match(match.id, bob.id, ValidationAction.CONFIRM, now=REPORTED_AT)
    history = await match_ops.get_match_history(alice.id)
    assert [m.winner.name for m in history] == ["Alice"]


# =============================================================================
# Atomicity
# =============================================================================

@pytest.mark.asyncio
async def test_failed_recompute_rolls_back_settlement(db, challenge_ops, match_ops, monkeypatch, reported):
    alice, bob, challenge, match = reported

    async def broken_recompute(self, session=None):
        raise OperationalError("UPDATE players", {}, Exception("disk I/O error"))

    monkeypatch.setattr(RankingRecomputer, "update_rankings", broken_recompute)

    with pytest.raises(OperationalError):
        await match_ops.validate_match(match.id, bob.id, ValidationAction.CONFIRM, now=REPORTED_AT)

    alice = await db.get_player_by_id(alice.id)
    bob = await db.get_player_by_id(bob.id)
    assert (alice.points, bob.points) == (1000, 1010)
    assert (alice.wins, bob.losses) == (0, 0)
    assert alice.active_challenge_count == 1

    stored_match = await match_ops.get_match_by_id(match.id)
    assert stored_match.status == MatchStatus.PENDING_VALIDATION
    assert stored_match.points_winner is None
    assert (await challenge_ops.get_challenge_by_id(challenge.id)).status == ChallengeStatus.AWAITING_VALIDATION

    async with db.get_session() as session:
        history = (await session.execute(select(PointsHistory))).scalars().all()
    assert history == []
