"""
PostgreSQL connection pool for the catalog repository.

Every pooled connection gets JSON codecs for the ``json`` and ``jsonb``
types, so tags, dependencies, variants and metadata columns go in and
come back as Python objects. Connection failures surface as
StorageError, the same error the repository raises for failed
statements.
"""

import json
import logging
from typing import Any

import asyncpg

from ui_catalog.config.settings import get_settings
from ui_catalog.errors import StorageError

logger = logging.getLogger(__name__)


async def _init_connection(conn: asyncpg.Connection) -> None:
    for type_name in ("json", "jsonb"):
        await conn.set_type_codec(
            type_name,
            encoder=json.dumps,
            decoder=json.loads,
            schema="pg_catalog",
        )


class Database:
    """
    Lazily opened asyncpg pool shared by one CatalogRepository.

    Usage:
        async with Database() as db:
            repo = CatalogRepository(db)
            sources = await repo.list_sources()
    """

    def __init__(
        self,
        dsn: str | None = None,
        *,
        pool_size: tuple[int, int] | None = None,
        command_timeout: float | None = None,
    ):
        settings = get_settings()
        self.dsn = dsn or str(settings.database_url)
        self.pool_size = pool_size or (settings.db_pool_min_size, settings.db_pool_max_size)
        self.command_timeout = command_timeout or settings.db_command_timeout
        self._pool: asyncpg.Pool | None = None

    @property
    def is_connected(self) -> bool:
        return self._pool is not None

    async def connect(self) -> None:
        """
        Open the pool; a second call is a no-op.

        Raises:
            StorageError: the server is unreachable or refused the login
        """
        if self._pool is not None:
            return
        min_size, max_size = self.pool_size
        try:
            self._pool = await asyncpg.create_pool(
                self.dsn,
                min_size=min_size,
                max_size=max_size,
                command_timeout=self.command_timeout,
                init=_init_connection,
            )
        except (asyncpg.PostgresError, OSError) as e:
            logger.error(f"Catalog database unreachable: {e}")
            raise StorageError(f"Cannot connect to database: {e}") from e
        logger.info(f"Catalog database pool open ({min_size}-{max_size} connections)")

    async def close(self) -> None:
        pool, self._pool = self._pool, None
        if pool is not None:
            await pool.close()
            logger.info("Catalog database pool closed")

    async def __aenter__(self) -> "Database":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    @property
    def pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise StorageError("Database not connected. Call connect() first.")
        return self._pool

    async def _call(self, method: str, query: str, args: tuple[Any, ...]) -> Any:
        async with self.pool.acquire() as conn:
            return await getattr(conn, method)(query, *args)

    async def execute(self, query: str, *args: Any) -> str:
        """Run a statement and return its status string, e.g. ``UPDATE 3``."""
        return await self._call("execute", query, args)

    async def fetch(self, query: str, *args: Any) -> list[asyncpg.Record]:
        return await self._call("fetch", query, args)

    async def fetchrow(self, query: str, *args: Any) -> asyncpg.Record | None:
        return await self._call("fetchrow", query, args)

    async def fetchval(self, query: str, *args: Any) -> Any:
        return await self._call("fetchval", query, args)
