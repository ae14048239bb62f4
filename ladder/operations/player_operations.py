"""
Player Operations

Registration and profile changes for ladder players. Anything that changes
which cohorts a player belongs to (gender, region, level, active flag) is
followed by a ranking recompute in the same transaction.
"""

from typing import Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ladder.config import Config
from ladder.database.database import Database
from ladder.database.models import Player, PlayerLevel, Gender
from ladder.operations.activity_operations import ActivityOperations
from ladder.operations.ranking_operations import RankingRecomputer
from ladder.utils.exceptions import PlayerNotFoundError, ValidationError
from ladder.utils.time_utils import utc_now
from ladder.utils.logger import setup_logger

logger = setup_logger(__name__)

MAX_NAME_LENGTH = 100
MAX_REGION_LENGTH = 100


class PlayerOperations:
    """
    Business logic operations for Player management and Discord integration.
    """

    def __init__(self, database: Database):
        """Initialize with database instance"""
        self.db = database
        self.rankings = RankingRecomputer(database)
        self.logger = logger

    async def register_player(
        self,
        name: str,
        gender: Gender = Gender.OTHER,
        region: str = '',
        level: PlayerLevel = PlayerLevel.BEGINNER,
        discord_id: Optional[int] = None,
        session: Optional[AsyncSession] = None
    ) -> Player:
        """
        Create a provisional player with the starting points and place them on the ladder.

        Raises:
            ValidationError: Empty or over-long name/region, or Discord ID already registered
        """
        name = self._clean_name(name)
        region = self._clean_region(region)
        gender = Gender(gender)
        level = PlayerLevel(level)

        async def _register(session: AsyncSession) -> Player:
            if discord_id is not None:
                existing = await session.scalar(select(Player).where(Player.discord_id == discord_id))
                if existing:
                    raise ValidationError(
                        f"Discord user {discord_id} is already registered as player {existing.id}",
                        "❌ You are already registered on the ladder."
                    )

            now = utc_now()
            player = Player(
                discord_id=discord_id,
                name=name,
                gender=gender,
                region=region,
                level=level,
                points=Config.STARTING_POINTS,
                provisional=True,
                provisional_matches_played=0,
                registered_at=now,
                last_active=now
            )
            session.add(player)
            await session.flush()
            ActivityOperations.player_joined(session, player, now)
            await self.rankings.update_rankings(session)

            self.logger.info(f"Registered player {player.id} '{name}' ({level.value}, {gender.value}, region '{region}')")
            return player

        if session:
            return await _register(session)
        else:
            async with self.db.transaction() as txn_session:
                return await _register(txn_session)

    async def update_profile(
        self,
        player_id: int,
        name: Optional[str] = None,
        gender: Optional[Gender] = None,
        region: Optional[str] = None,
        level: Optional[PlayerLevel] = None,
        session: Optional[AsyncSession] = None
    ) -> Player:
        """Change profile fields; ladder positions are recomputed for the new cohorts"""
        async def _update(session: AsyncSession) -> Player:
            player = await self._get_player(player_id, session)
            if name is not None:
                player.name = self._clean_name(name)
            if gender is not None:
                player.gender = Gender(gender)
            if region is not None:
                player.region = self._clean_region(region)
            if level is not None:
                player.level = PlayerLevel(level)
            await session.flush()
            await self.rankings.update_rankings(session)

            self.logger.info(f"Updated profile of player {player_id}")
            return player

        if session:
            return await _update(session)
        else:
            async with self.db.transaction() as txn_session:
                return await _update(txn_session)

    async def set_active(
        self,
        player_id: int,
        active: bool,
        session: Optional[AsyncSession] = None
    ) -> Player:
        """Activate or deactivate a player; inactive players leave every ladder"""
        async def _set(session: AsyncSession) -> Player:
            player = await self._get_player(player_id, session)
            player.is_active = active
            await session.flush()
            await self.rankings.update_rankings(session)

            self.logger.info(f"Player {player_id} {'activated' if active else 'deactivated'}")
            return player

        if session:
            return await _set(session)
        else:
            async with self.db.transaction() as txn_session:
                return await _set(txn_session)

    async def _get_player(self, player_id: int, session: AsyncSession) -> Player:
        player = await session.get(Player, player_id)
        if not player:
            raise PlayerNotFoundError(player_id)
        return player

    def _clean_name(self, name: str) -> str:
        cleaned = (name or '').strip()
        if not cleaned:
            raise ValidationError("Player name is empty", "❌ Player name cannot be empty.")
        if len(cleaned) > MAX_NAME_LENGTH:
            raise ValidationError(
                f"Player name exceeds {MAX_NAME_LENGTH} characters",
                f"❌ Player name cannot be longer than {MAX_NAME_LENGTH} characters."
            )
        return cleaned

    def _clean_region(self, region: Optional[str]) -> str:
        cleaned = (region or '').strip()
        if len(cleaned) > MAX_REGION_LENGTH:
            raise ValidationError(
                f"Region exceeds {MAX_REGION_LENGTH} characters",
                f"❌ Region cannot be longer than {MAX_REGION_LENGTH} characters."
            )
        return cleaned
