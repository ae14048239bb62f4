from typing import Optional
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy import select, func
from contextlib import asynccontextmanager

from ladder.config import Config
from ladder.database.models import Base, Player, PlayerLevel
from ladder.utils.logger import setup_logger

class Database:
    def __init__(self, database_url: Optional[str] = None):
        self.logger = setup_logger(__name__)
        self.database_url = database_url or Config.DATABASE_URL
        self.engine = None
        self.async_session = None

    async def initialize(self):
        """Initialize the database connection and create tables"""
        self.logger.info("Initializing database...")

        # Convert sqlite URL to async if needed
        database_url = self.database_url
        if database_url.startswith('sqlite:///'):
            database_url = database_url.replace('sqlite:///', 'sqlite+aiosqlite:///')

        self.engine = create_async_engine(
            database_url,
            echo=Config.DEBUG,
            future=True
        )

        self.async_session = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        self.logger.info("Database initialized successfully")

    @property
    def session_factory(self):
        return self.async_session

    @asynccontextmanager
    async def get_session(self):
        """Get a read-oriented database session; callers commit explicitly"""
        async with self.async_session() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    @asynccontextmanager
    async def transaction(self):
        """
        Create a transaction boundary for atomic operations.

        Everything done with the yielded session commits together on success
        or rolls back together when an exception propagates out of the block.
        Point transfers and ranking recomputes rely on this: both players'
        balances land in the same commit or neither does.

        Usage:
            async with db.transaction() as session:
                await challenge_ops.respond_to_challenge(..., session=session)
        """
        async with self.async_session() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    async def close(self):
        """Close the database connection"""
        if self.engine:
            await self.engine.dispose()
            self.logger.info("Database connection closed")

    # Player lookups
    async def get_player_by_id(self, player_id: int) -> Optional[Player]:
        async with self.get_session() as session:
            return await session.get(Player, player_id)

    async def get_player_by_discord_id(self, discord_id: int) -> Optional[Player]:
        """Get a player by their Discord ID"""
        async with self.get_session() as session:
            result = await session.execute(
                select(Player).where(Player.discord_id == discord_id)
            )
            return result.scalar_one_or_none()

    async def count_active_players(
        self,
        level: Optional[PlayerLevel] = None,
        session: Optional[AsyncSession] = None
    ) -> int:
        """Count active players, optionally restricted to one level; always a fresh read"""
        query = select(func.count(Player.id)).where(Player.is_active == True)
        if level is not None:
            query = query.where(Player.level == level)

        if session:
            return await session.scalar(query) or 0
        async with self.get_session() as db_session:
            return await db_session.scalar(query) or 0
