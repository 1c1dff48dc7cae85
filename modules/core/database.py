# modules/core/database.py
"""
Database connection manager for the prayer time engine.
Async PostgreSQL access with pooling, retry on transient failures and
transactions. Only the PostgreSQL override store uses it; without
DATABASE_URL the engine runs entirely in memory.

    from modules.core.database import get_db_manager

    db = await get_db_manager()
    row = await db.fetch_one("SELECT * FROM prayer_time_overrides WHERE id = $1", override_id)
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Iterable, List, Optional

import asyncpg

from config.settings import settings

logger = logging.getLogger(__name__)

__all__ = [
    'DatabaseManager',
    'db_manager',
    'get_db_manager',
]

# Retry configuration
MAX_RETRIES = 3
RETRY_DELAY_BASE = 0.1  # Base delay in seconds (exponential backoff)

# Transient errors that should trigger retry
TRANSIENT_ERRORS = (
    asyncpg.PostgresConnectionError,
    asyncpg.InterfaceError,
    asyncpg.InternalClientError,
    ConnectionResetError,
    ConnectionRefusedError,
    TimeoutError,
)


class DatabaseManager:
    """
    Manages the connection pool and query execution.

    The module-level db_manager uses settings.database_url; tests and scripts
    may build their own with an explicit dsn.
    """

    def __init__(self, dsn: Optional[str] = None, min_size: int = 1, max_size: int = 5):
        self._dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self.pool: Optional[asyncpg.Pool] = None
        self._connect_lock = asyncio.Lock()

    @property
    def dsn(self) -> Optional[str]:
        return self._dsn or settings.database_url

    @property
    def is_configured(self) -> bool:
        return bool(self.dsn)

    async def connect(self) -> None:
        """Initialize database connection pool."""
        if self.pool is not None:
            return
        if not self.dsn:
            raise ValueError("Required environment variable DATABASE_URL not found")

        async with self._connect_lock:
            if self.pool is not None:
                return
            try:
                self.pool = await asyncpg.create_pool(
                    self.dsn,
                    min_size=self.min_size,
                    max_size=self.max_size,
                    command_timeout=30
                )
                logger.info("✅ Database connection pool established")
            except Exception as e:
                logger.error(f"❌ Failed to create database pool: {e}")
                raise

    async def disconnect(self) -> None:
        """Close database connection pool."""
        if self.pool:
            await self.pool.close()
            self.pool = None
            logger.info("🔌 Database connection pool closed")

    async def _acquire(self) -> asyncpg.Connection:
        if not self.pool:
            await self.connect()
        return await self.pool.acquire()

    async def _release(self, conn: asyncpg.Connection) -> None:
        if self.pool:
            await self.pool.release(conn)

    # =========================================================================
    # Query Execution with Retry Logic
    # =========================================================================

    async def _execute_with_retry(self, operation: str, query: str, args: tuple, fetch_method: str) -> Any:
        """
        Run one statement, retrying transient connection failures with backoff.

        Args:
            operation: Description for logging (e.g., "fetch_one", "execute")
            query: SQL query string
            args: Query parameters
            fetch_method: Connection method to call ("fetch", "fetchrow", "execute")
        """
        last_error = None

        for attempt in range(MAX_RETRIES):
            conn = None
            try:
                conn = await self._acquire()
                return await getattr(conn, fetch_method)(query, *args)

            except TRANSIENT_ERRORS as e:
                last_error = e
                if attempt < MAX_RETRIES - 1:
                    delay = RETRY_DELAY_BASE * (2 ** attempt)
                    logger.warning(
                        f"⚠️ Database {operation} failed (attempt {attempt + 1}/{MAX_RETRIES}), "
                        f"retrying in {delay:.2f}s: {e}"
                    )
                    await asyncio.sleep(delay)
                    if isinstance(e, (asyncpg.PostgresConnectionError, ConnectionResetError)):
                        await self._reset_pool()
                else:
                    logger.error(f"❌ Database {operation} failed after {MAX_RETRIES} attempts: {e}")

            except Exception as e:
                # Non-transient error - don't retry
                logger.error(f"❌ Database {operation} error: {e}")
                raise

            finally:
                if conn:
                    await self._release(conn)

        raise last_error

    async def _reset_pool(self) -> None:
        logger.info("🔄 Resetting database connection pool...")
        try:
            if self.pool:
                await self.pool.close()
                self.pool = None
            await self.connect()
        except Exception as e:
            logger.error(f"❌ Failed to reset pool: {e}")

    async def fetch_one(self, query: str, *args) -> Optional[asyncpg.Record]:
        return await self._execute_with_retry("fetch_one", query, args, "fetchrow")

    async def fetch_all(self, query: str, *args) -> List[asyncpg.Record]:
        return await self._execute_with_retry("fetch_all", query, args, "fetch")

    async def execute(self, query: str, *args) -> str:
        return await self._execute_with_retry("execute", query, args, "execute")

    async def ensure_schema(self, statements: Iterable[str]) -> None:
        """Apply idempotent DDL (CREATE ... IF NOT EXISTS) in one transaction."""
        async with self.transaction() as conn:
            for statement in statements:
                await conn.execute(statement)
        logger.info("🗄️ Database schema verified")

    # =========================================================================
    # Transaction Support
    # =========================================================================

    @asynccontextmanager
    async def transaction(self):
        """
        Commit on success, roll back on any exception.

        Usage:
            async with db_manager.transaction() as conn:
                await conn.execute("UPDATE prayer_time_overrides ...")
                await conn.fetchrow("INSERT INTO prayer_time_overrides ... RETURNING *")
        """
        conn = await self._acquire()
        tx = conn.transaction()

        try:
            await tx.start()
            logger.debug("🔒 Transaction started")
            yield conn
            await tx.commit()
            logger.debug("✅ Transaction committed")

        except Exception as e:
            await tx.rollback()
            logger.warning(f"↩️ Transaction rolled back: {e}")
            raise

        finally:
            await self._release(conn)

    # =========================================================================
    # Health Check
    # =========================================================================

    async def health_check(self) -> dict:
        """
        Check database connectivity and pool status.

        Returns:
            dict with status and pool sizes, or the error
        """
        if not self.is_configured:
            return {"status": "disabled", "connected": False}

        try:
            result = await self.fetch_one("SELECT 1 as ok, NOW() as server_time")

            pool_info = {}
            if self.pool:
                pool_info = {
                    "pool_size": self.pool.get_size(),
                    "pool_free": self.pool.get_idle_size(),
                    "pool_max": self.pool.get_max_size(),
                }

            return {
                "status": "healthy",
                "connected": True,
                "server_time": result["server_time"].isoformat() if result else None,
                **pool_info
            }

        except Exception as e:
            logger.error(f"❌ Database health check failed: {e}")
            return {
                "status": "unhealthy",
                "connected": False,
                "error": str(e)
            }


# =============================================================================
# Global Instance & Getter
# =============================================================================

db_manager = DatabaseManager()


async def get_db_manager() -> DatabaseManager:
    """
    Get the shared database manager, connecting on first use.

    Raises:
        ValueError: if DATABASE_URL is not configured
    """
    if not db_manager.pool:
        await db_manager.connect()
    return db_manager
