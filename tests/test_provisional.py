"""
ProvisionalPromotionTracker and level progression tests.
"""

from ladder.database.models import Player, PlayerLevel
from ladder.utils.levels import level_progress, qualified_level
from ladder.utils.provisional import ProvisionalPromotionTracker


def test_regular_player_is_untouched():
    player = Player(provisional=False, provisional_matches_played=3)
    update = ProvisionalPromotionTracker.update_provisional_status(player)
    assert not update.was_provisional
    assert not update.became_regular
    assert player.provisional_matches_played == 3


def test_graduates_on_third_match():
    player = Player(provisional=True, provisional_matches_played=0)

    first = ProvisionalPromotionTracker.update_provisional_status(player)
    assert first.was_provisional and not first.became_regular
    assert first.remaining_matches == 2

    second = ProvisionalPromotionTracker.update_provisional_status(player)
    assert second.remaining_matches == 1
    assert player.provisional

    third = ProvisionalPromotionTracker.update_provisional_status(player)
    assert third.became_regular
    assert third.matches_played == 3
    assert not player.provisional

    after = ProvisionalPromotionTracker.update_provisional_status(player)
    assert not after.was_provisional
    assert player.provisional_matches_played == 3


def test_qualified_level_thresholds():
    assert qualified_level(1000, 0, 0.0) == PlayerLevel.BEGINNER
    assert qualified_level(1100, 5, 40.0) == PlayerLevel.INTERMEDIATE
    assert qualified_level(1500, 20, 60.0) == PlayerLevel.ADVANCED
    # Points alone are not enough
    assert qualified_level(2000, 3, 100.0) == PlayerLevel.BEGINNER


def test_level_progress_reports_missing_requirements():
    player = Player(level=PlayerLevel.BEGINNER, points=1050, wins=3, losses=1)
    progress = level_progress(player)

    assert progress.next_level == PlayerLevel.INTERMEDIATE
    assert progress.points_needed == 50
    assert progress.games_needed == 1
    assert progress.win_rate_needed == 0.0
    assert not progress.can_promote


def test_top_level_has_no_next_level():
    player = Player(level=PlayerLevel.PROFESSIONAL, points=2000, wins=30, losses=5)
    progress = level_progress(player)
    assert progress.next_level is None
    assert progress.description == "Top level reached."
