"""asyncpg pool for the push gateway tables, plus the SQL migration runner."""

import asyncpg
import orjson
import structlog
from pathlib import Path
from config.settings import settings

log = structlog.get_logger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"

_pool: asyncpg.Pool | None = None


def _encode_json(value) -> str:
    return orjson.dumps(value).decode()


async def _init_connection(conn: asyncpg.Connection) -> None:
    """push_preferences (JSONB) is read as a dict rather than a JSON string."""
    for type_name in ("jsonb", "json"):
        await conn.set_type_codec(
            type_name, encoder=_encode_json, decoder=orjson.loads, schema="pg_catalog"
        )


async def get_pool() -> asyncpg.Pool:
    """Get or create the process-wide pool."""
    global _pool
    if _pool is None:
        _pool = await asyncpg.create_pool(
            settings.database_url,
            min_size=settings.database_pool_min_size,
            max_size=settings.database_pool_max_size,
            command_timeout=settings.database_command_timeout_seconds,
            init=_init_connection,
        )
        log.info(
            "database_pool_created",
            min_size=settings.database_pool_min_size,
            max_size=settings.database_pool_max_size,
        )
    return _pool


async def close_pool() -> None:
    global _pool
    if _pool is None:
        return
    await _pool.close()
    _pool = None
    log.info("database_pool_closed")


async def run_migrations(pool: asyncpg.Pool | None = None) -> list[str]:
    """Apply unapplied migrations/*.sql in filename order; returns the names applied."""
    pool = pool or await get_pool()
    newly_applied: list[str] = []

    async with pool.acquire() as conn:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS _migrations (
                filename VARCHAR(255) PRIMARY KEY,
                applied_at TIMESTAMPTZ DEFAULT NOW()
            )
            """
        )
        done = {r["filename"] for r in await conn.fetch("SELECT filename FROM _migrations")}

        for path in sorted(MIGRATIONS_DIR.glob("*.sql")):
            if path.name in done:
                continue
            # Each file and its bookkeeping row commit together
            async with conn.transaction():
                await conn.execute(path.read_text())
                await conn.execute("INSERT INTO _migrations (filename) VALUES ($1)", path.name)
            newly_applied.append(path.name)
            log.info("migration_applied", filename=path.name)

    return newly_applied
