"""
Ranking recompute over the whole player table.

Runs inside the caller's transaction after every points-affecting event so
the ranking caches commit together with the points they were derived from.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ladder.database.database import Database
from ladder.database.models import Player
from ladder.utils.ranking import RankingCategory, assign_rankings
from ladder.utils.logger import setup_logger

logger = setup_logger(__name__)


@dataclass
class RankingUpdateSummary:
    """Cohort sizes produced by one recompute"""
    active_players: int
    cohorts: Dict[RankingCategory, Dict[str, int]] = field(default_factory=dict)


class RankingRecomputer:
    """Reassigns ladder positions for all four ranking categories."""

    def __init__(self, db: Database):
        self.db = db
        self.logger = setup_logger(f"{__name__}.RankingRecomputer")

    async def update_rankings(self, session: Optional[AsyncSession] = None) -> RankingUpdateSummary:
        """
        Recompute overall, gender, region and level positions.

        Args:
            session: Optional existing session; when given, the new positions
                     are flushed into it and commit with the caller's transaction

        Returns:
            RankingUpdateSummary with cohort sizes per category
        """
        async def _update(session: AsyncSession) -> RankingUpdateSummary:
            result = await session.execute(select(Player))
            players = result.scalars().all()

            active = [p for p in players if p.is_active]
            inactive = [p for p in players if not p.is_active]

            cohorts = assign_rankings(active, inactive)
            await session.flush()

            self.logger.debug(
                f"Rankings recomputed for {len(active)} active players "
                f"({len(inactive)} inactive cleared)"
            )
            return RankingUpdateSummary(active_players=len(active), cohorts=cohorts)

        if session:
            return await _update(session)
        else:
            async with self.db.transaction() as txn_session:
                summary = await _update(txn_session)
            self.logger.info(f"Rankings recomputed for {summary.active_players} active players")
            return summary
