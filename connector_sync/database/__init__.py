import logging

import asyncpg

from connector_sync.core.exceptions import AppException
from connector_sync.core.settings import settings

logger = logging.getLogger(__name__)


class DatabaseUnavailableError(AppException):
    def __init__(self, message: str):
        super().__init__(
            code="DATABASE_UNAVAILABLE",
            message=message,
            status_code=503,
        )


class PostgreSQLConnection:
    """asyncpg pool shared by request handlers and scheduled sync workers.

    Workers each hold one pooled connection for a whole run, so ``max_size``
    should exceed ``SYNC_MAX_CONCURRENT``.
    """

    def __init__(
        self,
        dsn_parts: dict[str, str | int],
        min_size: int = 1,
        max_size: int = 10,
        application_name: str = "connector-sync",
    ):
        self.pool: asyncpg.Pool | None = None
        self.database = dsn_parts.get("database")
        self._pool_kwargs = {
            **dsn_parts,
            "min_size": min_size,
            "max_size": max_size,
            "server_settings": {"application_name": application_name},
        }

    async def connect(self) -> None:
        if self.pool is not None:
            return

        logger.info(f"Connecting to PostgreSQL database: {self.database}")
        try:
            self.pool = await asyncpg.create_pool(**self._pool_kwargs)
        except (OSError, asyncpg.PostgresError) as e:
            logger.error(f"Failed to create PostgreSQL pool for {self.database}: {e}")
            self.pool = None
            raise DatabaseUnavailableError(f"Database connection failed: {e}") from e
        logger.info(f"PostgreSQL pool ready: {self.database}")

    async def close(self) -> None:
        if self.pool is None:
            return
        logger.info(f"Closing PostgreSQL pool: {self.database}")
        await self.pool.close()
        self.pool = None

    def get_connection(self) -> asyncpg.pool.PoolAcquireContext:
        if self.pool is None:
            raise DatabaseUnavailableError(
                "Database connection pool is not initialized. Call connect() first."
            )
        return self.pool.acquire()

    @property
    def is_connected(self) -> bool:
        return self.pool is not None and not self.pool.is_closing()


db_connection = PostgreSQLConnection(
    {
        "host": settings.database_host,
        "port": settings.database_port,
        "user": settings.database_user,
        "password": settings.database_password,
        "database": settings.database_name,
    },
    min_size=settings.database_pool_min_size,
    max_size=settings.database_pool_max_size,
)
