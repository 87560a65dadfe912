"""
Archivist - Database Layer

Async PostgreSQL connection pooling via psycopg3 + psycopg_pool, shared by the
index store and the ingest queue. Initialization retries with exponential
backoff and records pool health for the readiness probe.
"""

from __future__ import annotations

import asyncio
import random
import time
from dataclasses import dataclass
from importlib import resources
from typing import Optional
from urllib.parse import parse_qs, urlparse

from loguru import logger
from psycopg_pool import AsyncConnectionPool

from . import __version__
from .config import get_settings

MAX_RETRY_ATTEMPTS = 5
BASE_DELAY_SECONDS = 1.0
READINESS_CHECK_TIMEOUT = 2.0


@dataclass
class PoolHealthState:
    """Tracks database pool initialization state for readiness probes."""

    initialized: bool = False
    healthy: bool = False
    last_error: str | None = None
    init_attempts: int = 0


_pool_health = PoolHealthState()
_db_pool: Optional[AsyncConnectionPool] = None


def get_pool_health() -> PoolHealthState:
    """Return the current pool health state for readiness probes."""
    return _pool_health


def _parse_dsn_for_logging(dsn: str) -> dict[str, str | None]:
    """Extract loggable DSN components (never the password)."""
    try:
        parsed = urlparse(dsn)
        sslmode = parse_qs(parsed.query).get("sslmode", ["not_set"])[0]
        return {
            "host": parsed.hostname,
            "port": str(parsed.port) if parsed.port else "5432",
            "dbname": parsed.path.lstrip("/") if parsed.path else None,
            "user": parsed.username,
            "sslmode": sslmode,
        }
    except Exception as e:
        return {"error": str(e)}


async def init_db_pool() -> Optional[AsyncConnectionPool]:
    """
    Initialize the async connection pool with retry.

    Returns None (and records the error) when DATABASE_URL is missing or all
    attempts fail; callers that need the database raise at first use.
    """
    global _db_pool

    if _db_pool is not None:
        return _db_pool

    settings = get_settings()
    dsn = settings.DATABASE_URL.strip()
    if not dsn:
        logger.warning("DATABASE_URL is not set; skipping DB init")
        _pool_health.last_error = "DATABASE_URL not configured"
        return None

    dsn_info = _parse_dsn_for_logging(dsn)
    logger.info(
        f"Database connection parameters host={dsn_info.get('host')} "
        f"dbname={dsn_info.get('dbname')} user={dsn_info.get('user')} "
        f"sslmode={dsn_info.get('sslmode')}"
    )

    app_name = "archivist_v" + __version__.replace(".", "_")
    last_error: Exception | None = None

    for attempt in range(1, MAX_RETRY_ATTEMPTS + 1):
        _pool_health.init_attempts = attempt
        try:
            pool = AsyncConnectionPool(
                dsn,
                min_size=settings.DB_POOL_MIN_SIZE,
                max_size=settings.DB_POOL_MAX_SIZE,
                kwargs={"application_name": app_name},
                open=False,
            )
            await pool.open()
            async with pool.connection() as conn:
                await conn.execute("SELECT 1")

            _db_pool = pool
            _pool_health.initialized = True
            _pool_health.healthy = True
            _pool_health.last_error = None
            logger.info(f"Database pool initialized (attempt {attempt})")
            return pool

        except Exception as e:
            last_error = e
            _pool_health.last_error = f"{type(e).__name__}: {str(e)[:200]}"
            _pool_health.healthy = False
            logger.warning(f"DB pool init attempt {attempt} failed: {type(e).__name__}: {e}")

            if attempt < MAX_RETRY_ATTEMPTS:
                delay = BASE_DELAY_SECONDS * (2 ** (attempt - 1))
                await asyncio.sleep(delay + random.uniform(0, delay * 0.3))

    logger.error(f"Failed to initialize database pool after {MAX_RETRY_ATTEMPTS} attempts: {last_error}")
    return None


async def get_pool() -> AsyncConnectionPool:
    """
    Return the shared pool, initializing it on first use.

    Raises:
        RuntimeError: the pool could not be created
    """
    pool = _db_pool if _db_pool is not None else await init_db_pool()
    if pool is None:
        raise RuntimeError(
            f"Database connection pool is not initialized: {_pool_health.last_error}"
        )
    return pool


async def close_db_pool() -> None:
    """Close the connection pool and reset health state."""
    global _db_pool
    if _db_pool is not None:
        logger.info("Closing PostgreSQL connection pool")
        await _db_pool.close()
        _db_pool = None
        _pool_health.initialized = False
        _pool_health.healthy = False


async def check_db_ready(timeout: float = READINESS_CHECK_TIMEOUT) -> tuple[bool, str]:
    """Run SELECT 1 against the pool with a timeout."""
    pool = _db_pool
    if pool is None:
        return False, _pool_health.last_error or "Pool not initialized"

    start = time.monotonic()

    async def _ping() -> None:
        async with pool.connection() as conn:
            await conn.execute("SELECT 1")

    try:
        await asyncio.wait_for(_ping(), timeout=timeout)
    except asyncio.TimeoutError:
        _pool_health.healthy = False
        return False, f"timeout ({timeout}s)"
    except Exception as e:
        _pool_health.healthy = False
        _pool_health.last_error = f"{type(e).__name__}: {str(e)[:100]}"
        return False, f"error: {type(e).__name__}"

    _pool_health.healthy = True
    return True, f"ok ({(time.monotonic() - start) * 1000:.0f}ms)"


def load_migration(name: str = "0001_archive_index.sql") -> str:
    """Read a bundled migration script."""
    return resources.files("archivist").joinpath("migrations", name).read_text(encoding="utf-8")


async def apply_migrations() -> None:
    """Apply the bundled schema (idempotent: every statement uses IF NOT EXISTS)."""
    pool = await get_pool()
    async with pool.connection() as conn:
        await conn.execute(load_migration())
    logger.info("Archive index schema applied")
