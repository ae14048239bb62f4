"""
Ladder data models.

Immutable data transfer objects returned by the ranking queries.
"""

from dataclasses import dataclass
from typing import List, Optional


@dataclass(frozen=True)
class LadderEntry:
    """Single ladder row."""
    position: int
    player_id: int
    name: str
    points: int
    wins: int
    losses: int
    level: str
    provisional: bool


@dataclass(frozen=True)
class LadderPage:
    """Top of one ranking cohort."""
    entries: List[LadderEntry]
    category: str
    value: Optional[str]
    total_players: int


@dataclass(frozen=True)
class CategoryStats:
    """Aggregate figures for one ranking cohort."""
    category: str
    value: Optional[str]
    total_players: int
    average_points: float
    top_player_id: Optional[int] = None
    top_player_name: Optional[str] = None
    top_player_points: Optional[int] = None
