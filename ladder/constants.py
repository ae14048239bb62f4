"""
Ladder-wide constants.

Numeric policy for point settlement, challenge reach and level promotion
lives here so the calculators and the Discord layer agree on the same values.
"""

class PointsConstants:
    """Constants for the ranking-difference points model."""

    BASE_VICTORY = 20
    BASE_DEFEAT = -10
    RANKING_FACTOR = 2
    DEFEAT_FACTOR = 1
    PARTICIPATION_BONUS = 10

    # A positive ranking difference always costs the loser at least this much
    POSITIVE_GAP_LOSS_CAP = -5

    MIN_WINNER_DELTA = 1
    MIN_POINTS = 0

class EligibilityConstants:
    """Constants for challenge eligibility."""

    # Share of the level population (percent) a player may reach upwards
    REACH_PERCENT = 5
    MIN_REACH = 1

    # A player may challenge at most one level above their own
    MAX_LEVEL_GAP = 1

class LevelRequirements:
    """Promotion thresholds per level: (points, games played, win rate %)."""

    INTERMEDIATE = (1100, 5, 40.0)
    ADVANCED = (1400, 15, 55.0)
    PROFESSIONAL = (1800, 25, 65.0)

class RetentionConstants:
    """How much history the profile views keep."""

    RECENT_MATCH_LIMIT = 5

class PaginationConstants:
    """Constants for paginated displays."""

    DEFAULT_PAGE_SIZE = 10
    MAX_RANKING_LIMIT = 50

class UIConstants:
    """Constants for Discord UI elements."""

    DEFAULT_EMBED_COLOR = 0x3498db  # Blue
    GOLD_RANK_COLOR = 0xffd700      # Gold for #1 ranked players
    ERROR_COLOR = 0xe74c3c          # Red for errors
    SUCCESS_COLOR = 0x2ecc71        # Green for success
    WARNING_COLOR = 0xf39c12        # Orange for penalties and disputes

    TROPHY_EMOJI = "🏆"
    SWORDS_EMOJI = "⚔️"
    WARNING_EMOJI = "⚠️"
