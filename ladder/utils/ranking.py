"""
Ladder position assignment for each ranking category.

Each category has its own ranking routine. Positions are dense (1..N) within
every cohort and ordered by points desc, wins desc, name asc.
"""

from collections import defaultdict
from enum import Enum
from typing import Callable, Dict, Iterable, List, Sequence

from ladder.database.models import Player


class RankingCategory(Enum):
    OVERALL = "overall"
    GENDER = "gender"
    REGION = "region"
    LEVEL = "level"

    @property
    def field(self) -> str:
        """Player column caching this category's position"""
        return RANKING_FIELDS[self]


RANKING_FIELDS = {
    RankingCategory.OVERALL: 'ranking_general',
    RankingCategory.GENDER: 'ranking_by_gender',
    RankingCategory.REGION: 'ranking_by_region',
    RankingCategory.LEVEL: 'ranking_by_level',
}


def ladder_sort_key(player: Player):
    return (-player.points, -(player.wins or 0), player.name)


def _assign_positions(cohort: Iterable[Player], field: str) -> int:
    ordered = sorted(cohort, key=ladder_sort_key)
    for position, player in enumerate(ordered, start=1):
        setattr(player, field, position)
    return len(ordered)


def _assign_grouped(players: Sequence[Player], field: str, group_of: Callable[[Player], str]) -> Dict[str, int]:
    cohorts: Dict[str, List[Player]] = defaultdict(list)
    for player in players:
        cohorts[group_of(player)].append(player)
    return {group: _assign_positions(cohort, field) for group, cohort in cohorts.items()}


def rank_overall(players: Sequence[Player]) -> Dict[str, int]:
    return {'all': _assign_positions(players, RankingCategory.OVERALL.field)}


def rank_by_gender(players: Sequence[Player]) -> Dict[str, int]:
    return _assign_grouped(players, RankingCategory.GENDER.field, lambda p: p.gender.value)


def rank_by_region(players: Sequence[Player]) -> Dict[str, int]:
    field = RankingCategory.REGION.field
    with_region = []
    for player in players:
        if (player.region or '').strip():
            with_region.append(player)
        else:
            # No region, no regional ladder
            setattr(player, field, None)
    return _assign_grouped(with_region, field, lambda p: p.region.strip())


def rank_by_level(players: Sequence[Player]) -> Dict[str, int]:
    return _assign_grouped(players, RankingCategory.LEVEL.field, lambda p: p.level.value)


CATEGORY_RANKERS: Dict[RankingCategory, Callable[[Sequence[Player]], Dict[str, int]]] = {
    RankingCategory.OVERALL: rank_overall,
    RankingCategory.GENDER: rank_by_gender,
    RankingCategory.REGION: rank_by_region,
    RankingCategory.LEVEL: rank_by_level,
}

_unhandled = set(RankingCategory) - set(CATEGORY_RANKERS)
if _unhandled:
    raise RuntimeError(f"No ranking routine for categories: {sorted(c.value for c in _unhandled)}")


def assign_rankings(active_players: Sequence[Player], inactive_players: Iterable[Player] = ()) -> Dict[RankingCategory, Dict[str, int]]:
    """
    Recompute every category in memory.

    Inactive players drop out of all ladders. Returns cohort sizes per category.
    """
    for player in inactive_players:
        for category in RankingCategory:
            setattr(player, category.field, None)

    return {category: CATEGORY_RANKERS[category](active_players) for category in RankingCategory}


class RankingUtility:
    """Display helpers shared by the ladder queries and the Discord layer."""

    @staticmethod
    def format_points_change(change: int) -> str:
        if change > 0:
            return f"+{change}"
        return str(change)

    @staticmethod
    def format_position(position) -> str:
        return f"#{position}" if position else "Unranked"
