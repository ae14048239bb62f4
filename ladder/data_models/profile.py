"""
Profile data models.

Immutable data transfer objects for a player's record and recent matches.
"""

from dataclasses import dataclass
from typing import List, Optional
from datetime import datetime

from ladder.utils.levels import LevelProgress


@dataclass(frozen=True)
class MatchRecord:
    """Single match history entry."""
    match_id: int
    opponent_id: int
    opponent_name: str
    result: str  # 'win' or 'loss'
    score: str
    points_change: Optional[int]
    played_at: Optional[datetime]


@dataclass(frozen=True)
class PlayerStats:
    """Record, positions and progression for a player."""
    player_id: int
    name: str
    points: int
    level: str

    ranking_general: Optional[int]
    ranking_by_gender: Optional[int]
    ranking_by_region: Optional[int]
    ranking_by_level: Optional[int]

    total_matches: int
    wins: int
    losses: int
    win_rate: float
    current_streak: int
    streak_type: Optional[str]  # 'win', 'loss' or None without matches
    best_streak: int

    provisional: bool
    provisional_matches_remaining: int
    active_challenges: int
    declines_this_month: int

    level_progress: LevelProgress
    recent_matches: List[MatchRecord]
