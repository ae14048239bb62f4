"""
Score parsing utilities for match result reports.

Turns a reported score string into per-set game counts for the match record.
"""

import re
from typing import List

from ladder.utils.exceptions import ScoreFormatError

MAX_SCORE_LENGTH = 100
MAX_SETS = 5

_SET_PATTERN = re.compile(r'^(\d{1,2})[-x/](\d{1,2})(?:\((\d{1,2})\))?$')


def parse_score(score: str) -> List[List[int]]:
    """
    Parse a score string into a list of [games, games] pairs.

    Supported formats:
    - "6-4 6-3"
    - "6-4, 3-6, 10-8"
    - "7-6(5) 6-4" (tie-break points are accepted and dropped)
    - "6x4 6x2"

    Args:
        score: Score string as reported by a player

    Returns:
        List of sets, each [first, second] in reported order

    Raises:
        ScoreFormatError: If the string is empty, too long or malformed
    """
    if score is None or not score.strip():
        raise ScoreFormatError(score or "", "score is empty")
    if len(score) > MAX_SCORE_LENGTH:
        raise ScoreFormatError(score, f"score cannot be longer than {MAX_SCORE_LENGTH} characters")

    normalized = re.sub(r'\s*([-x/])\s*', r'\1', score.strip().lower())
    normalized = re.sub(r'\s+\(', '(', normalized)
    tokens = [t for t in re.split(r'[,;\s]+', normalized) if t]

    if len(tokens) > MAX_SETS:
        raise ScoreFormatError(score, f"at most {MAX_SETS} sets can be reported")

    sets = []
    for token in tokens:
        match = _SET_PATTERN.match(token)
        if not match:
            raise ScoreFormatError(score, f"'{token}' is not a set score like 6-4")
        first, second = int(match.group(1)), int(match.group(2))
        if first == second:
            raise ScoreFormatError(score, f"set '{token}' has no winner")
        sets.append([first, second])

    return sets


def format_sets(sets: List[List[int]]) -> str:
    """Render parsed sets back to the canonical "6-4 6-3" form"""
    return " ".join(f"{first}-{second}" for first, second in sets)
