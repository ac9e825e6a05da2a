"""PostgreSQL Database Layer with Repository Pattern

The Database object is the explicitly constructed store handed to the
voting services; there is no module-level pool.
"""

import json
from pathlib import Path
from typing import Optional

import asyncpg

from config import config, get_logger
from database.repositories_async import (
    DiscussionRepository,
    GroupRepository,
    NotificationRepository,
    ProposalRepository,
    ReadingRepository,
    UserRepository,
    VoteRepository,
    WeekRepository,
)
from exceptions import DatabaseConnectionError

logger = get_logger(__name__).bind(component="database_postgres")


def _jsonb_encoder(obj):
    """JSONB encoder that also serializes pydantic models and dates"""
    def default(o):
        if hasattr(o, 'model_dump'):
            return o.model_dump()
        if hasattr(o, 'isoformat'):
            return o.isoformat()
        raise TypeError(f"Object of type {type(o).__name__} is not JSON serializable")

    return json.dumps(obj, default=default)


class Database:
    """Async PostgreSQL database with repository pattern

    Architecture:
    - Connection pooling (asyncpg pool shared across all repositories)
    - One repository per aggregate (groups, weeks, proposals, ...)
    - JSONB codec installed per connection for notification metadata

    Usage:
        db = await Database.create()
        group = await db.groups.get_group("grp_3f9a0c1d2b4e5f60")
        week = await db.weeks.get_active_week(group.id)
        await db.close()
    """

    pool: asyncpg.Pool

    users: UserRepository
    groups: GroupRepository
    weeks: WeekRepository
    proposals: ProposalRepository
    votes: VoteRepository
    readings: ReadingRepository
    discussion: DiscussionRepository
    notifications: NotificationRepository

    def __init__(self, pool: asyncpg.Pool):
        """Initialize with connection pool and repositories

        Use Database.create() classmethod instead of direct instantiation.
        """
        self.pool = pool

        self.users = UserRepository(pool)
        self.groups = GroupRepository(pool)
        self.weeks = WeekRepository(pool)
        self.proposals = ProposalRepository(pool)
        self.votes = VoteRepository(pool)
        self.readings = ReadingRepository(pool)
        self.discussion = DiscussionRepository(pool)
        self.notifications = NotificationRepository(pool)

        logger.info("database initialized with repositories")

    @classmethod
    async def create(
        cls,
        dsn: Optional[str] = None,
        min_size: int = config.POSTGRES_POOL_MIN_SIZE,
        max_size: int = config.POSTGRES_POOL_MAX_SIZE
    ) -> "Database":
        """Create database with connection pool

        Args:
            dsn: PostgreSQL connection string (defaults to config.get_postgres_dsn())
            min_size: Minimum pool size
            max_size: Maximum pool size

        Returns:
            Initialized Database instance

        Raises:
            DatabaseConnectionError: Pool could not be created
        """
        if dsn is None:
            dsn = config.get_postgres_dsn()

        async def init_connection(conn):
            await conn.set_type_codec(
                'jsonb',
                encoder=_jsonb_encoder,
                decoder=json.loads,
                schema='pg_catalog'
            )

        try:
            pool = await asyncpg.create_pool(
                dsn,
                min_size=min_size,
                max_size=max_size,
                command_timeout=60,
                init=init_connection,
            )
            logger.info("connection pool created", min_size=min_size, max_size=max_size)
            return cls(pool)
        except (asyncpg.PostgresError, OSError, ConnectionError) as e:
            # Connection-specific errors only - let programming errors fail loudly
            logger.error("failed to create connection pool", error=str(e))
            raise DatabaseConnectionError(f"Failed to connect to PostgreSQL: {e}")

    async def close(self):
        """Close connection pool"""
        await self.pool.close()
        logger.info("connection pool closed")

    async def init_schema(self):
        """Apply database/schema_postgres.sql

        Safe to call multiple times (uses IF NOT EXISTS).
        """
        schema_path = Path(__file__).parent / "schema_postgres.sql"
        if not schema_path.exists():
            raise FileNotFoundError(f"Schema file not found: {schema_path}")

        async with self.pool.acquire() as conn:
            await conn.execute(schema_path.read_text())

        logger.info("schema initialized")
