"""Base repository with async PostgreSQL connection pooling

All repositories inherit from BaseRepository and share:
- Connection pool handed in by the Database facade
- Transaction context managers
- Query helpers that translate asyncpg failures into DatabaseError

Return Type Conventions
-----------------------
    get_X(id) -> Optional[T]
        Single entity lookup by primary key.
        Returns None if entity not found.

    get_Xs(...) -> List[T]
        Multiple entity retrieval with filters.
        Returns empty list [] if none match.

Connection Patterns
-------------------
    self._fetch / self._fetchrow / self._execute
        Single statement, pooled connection, autocommit.

    self.transaction()
        Multi-statement writes that must commit or roll back together
        (week creation with its seeds, finalize, group creation).
"""

from contextlib import asynccontextmanager
from typing import Any, List, Optional

import asyncpg

from config import get_logger
from exceptions import DatabaseError, DataIntegrityError

logger = get_logger(__name__).bind(component="repository")


class BaseRepository:
    """Base class for async PostgreSQL repositories

    Design Principles:
    - Pool is passed in, never created here
    - Transactions are explicit (async with self.transaction())
    - Queries use $1, $2 placeholders
    - Integrity violations surface as DataIntegrityError, other driver
      failures as DatabaseError; programming errors propagate untouched
    """

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def _fetchrow(self, query: str, *args: Any) -> Optional[asyncpg.Record]:
        """Execute query and fetch single row"""
        async with self._guard():
            async with self.pool.acquire() as conn:
                return await conn.fetchrow(query, *args)

    async def _fetch(self, query: str, *args: Any) -> List[asyncpg.Record]:
        """Execute query and fetch all rows"""
        async with self._guard():
            async with self.pool.acquire() as conn:
                return await conn.fetch(query, *args)

    async def _fetchval(self, query: str, *args: Any) -> Any:
        """Execute query and return the first column of the first row"""
        async with self._guard():
            async with self.pool.acquire() as conn:
                return await conn.fetchval(query, *args)

    async def _execute(self, query: str, *args: Any) -> str:
        """Execute query without returning rows (INSERT, UPDATE, DELETE)"""
        async with self._guard():
            async with self.pool.acquire() as conn:
                return await conn.execute(query, *args)

    @asynccontextmanager
    async def transaction(self):
        """Context manager for explicit transactions

        Usage:
            async with self.transaction() as conn:
                await conn.execute("INSERT ...")
                await conn.execute("UPDATE ...")
                # Commits on clean exit, rolls back on exception

        Yields:
            Connection with active transaction
        """
        async with self._guard():
            async with self.pool.acquire() as conn:
                async with conn.transaction():
                    yield conn

    @asynccontextmanager
    async def _guard(self):
        try:
            yield
        except asyncpg.IntegrityConstraintViolationError as e:
            logger.warning(
                "integrity violation",
                table=getattr(e, "table_name", None),
                constraint=getattr(e, "constraint_name", None),
            )
            raise DataIntegrityError(
                str(e),
                table=getattr(e, "table_name", None),
                constraint=getattr(e, "constraint_name", None),
            ) from e
        except asyncpg.PostgresError as e:
            logger.error("query failed", error=str(e), sqlstate=getattr(e, "sqlstate", None))
            raise DatabaseError(str(e)) from e

    @staticmethod
    def _parse_row_count(result: str) -> int:
        """Extract row count from PostgreSQL result like 'UPDATE 5' or 'DELETE 3'."""
        if not result:
            return 0
        return int(result.split()[-1])
