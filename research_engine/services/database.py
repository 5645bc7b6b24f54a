"""PostgreSQL persistence for research jobs using asyncpg."""

from __future__ import annotations

import json
from typing import Any

import asyncpg

from research_engine.config import settings
from research_engine.services import logger as log_service


MIGRATIONS: list[tuple[str, str]] = [
    (
        "0001_create_researches",
        """
        CREATE TABLE IF NOT EXISTS researches (
            id                TEXT PRIMARY KEY,
            title             TEXT,
            query             TEXT        NOT NULL,
            depth             INTEGER     NOT NULL,
            breadth           INTEGER     NOT NULL,
            questions         JSONB       NOT NULL DEFAULT '[]'::jsonb,
            initial_learnings TEXT        NOT NULL DEFAULT '',
            web_search        BOOLEAN     NOT NULL DEFAULT TRUE,
            index_id          TEXT,
            status            INTEGER     NOT NULL,
            result            TEXT,
            duration_ms       INTEGER,
            created_at        TIMESTAMPTZ NOT NULL DEFAULT now()
        );
        """,
    ),
    (
        "0002_create_research_status_history",
        """
        CREATE TABLE IF NOT EXISTS research_status_history (
            id          BIGSERIAL PRIMARY KEY,
            research_id TEXT        NOT NULL REFERENCES researches (id) ON DELETE CASCADE,
            timestamp   TIMESTAMPTZ NOT NULL DEFAULT now(),
            status_text TEXT        NOT NULL
        );
        CREATE INDEX IF NOT EXISTS research_status_history_research_id_idx
            ON research_status_history (research_id, timestamp DESC);
        """,
    ),
]

RESEARCH_COLUMNS = (
    "id, title, query, depth, breadth, questions, initial_learnings, "
    "web_search, index_id, status, result, duration_ms, created_at"
)


# Connection pool
_pool: asyncpg.Pool | None = None


def db_available() -> bool:
    """Check if database is configured."""
    return bool(settings.database_url)


async def _get_pool() -> asyncpg.Pool:
    """Get or create the database connection pool."""
    global _pool
    if not db_available():
        raise RuntimeError("Database not configured. Set DATABASE_URL in .env")
    if _pool is None:
        _pool = await asyncpg.create_pool(
            settings.database_url,
            min_size=1,
            max_size=10,
        )
    return _pool


async def close_pool() -> None:
    """Close the database connection pool."""
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None


async def apply_migrations() -> list[str]:
    """Apply pending schema migrations. Run once at service startup."""
    pool = await _get_pool()
    applied: list[str] = []
    async with pool.acquire() as conn:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS schema_migrations (
                name       TEXT PRIMARY KEY,
                applied_at TIMESTAMPTZ NOT NULL DEFAULT now()
            )
            """
        )
        done = {row["name"] for row in await conn.fetch("SELECT name FROM schema_migrations")}
        for name, sql in MIGRATIONS:
            if name in done:
                continue
            async with conn.transaction():
                await conn.execute(sql)
                await conn.execute("INSERT INTO schema_migrations (name) VALUES ($1)", name)
            applied.append(name)
            log_service.log_db_operation("migrate", "schema_migrations", "applied", details=name)
    return applied


def coerce_json_list(value: Any) -> list[Any]:
    """Normalize JSON(B) columns that asyncpg returns as text."""
    if isinstance(value, list):
        return value
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError:
            return []
        return parsed if isinstance(parsed, list) else []
    return []


# --- Researches ---

async def create_research(data: dict[str, Any]) -> None:
    pool = await _get_pool()
    async with pool.acquire() as conn:
        await conn.execute(
            """
            INSERT INTO researches
                (id, title, query, depth, breadth, questions, initial_learnings,
                 web_search, index_id, status, created_at)
            VALUES ($1, $2, $3, $4, $5, $6::jsonb, $7, $8, $9, $10, $11)
            """,
            data["id"],
            data.get("title"),
            data["query"],
            data["depth"],
            data["breadth"],
            json.dumps(data.get("questions") or []),
            data.get("initial_learnings") or "",
            data.get("web_search", True),
            data.get("index_id"),
            data["status"],
            data["created_at"],
        )
    log_service.log_db_operation("insert", "researches", "success", details=data["id"])


async def get_research(research_id: str) -> dict[str, Any] | None:
    pool = await _get_pool()
    async with pool.acquire() as conn:
        row = await conn.fetchrow(
            f"SELECT {RESEARCH_COLUMNS} FROM researches WHERE id = $1",
            research_id,
        )
    return dict(row) if row else None


async def list_researches(limit: int, offset: int) -> list[dict[str, Any]]:
    pool = await _get_pool()
    async with pool.acquire() as conn:
        rows = await conn.fetch(
            f"""
            SELECT {RESEARCH_COLUMNS}
            FROM researches
            ORDER BY created_at DESC NULLS LAST
            LIMIT $1 OFFSET $2
            """,
            limit,
            offset,
        )
    return [dict(r) for r in rows]


async def research_stats() -> dict[str, Any]:
    pool = await _get_pool()
    async with pool.acquire() as conn:
        row = await conn.fetchrow(
            """
            SELECT
                count(*)                                AS total,
                count(*) FILTER (WHERE status = 2)      AS completed,
                count(*) FILTER (WHERE status = 1)      AS running,
                avg(duration_ms) FILTER (WHERE duration_ms IS NOT NULL) AS avg_duration_ms
            FROM researches
            """
        )
    return dict(row)


async def update_research_status(
    research_id: str,
    status: int,
    result: str | None = None,
    duration_ms: int | None = None,
) -> None:
    pool = await _get_pool()
    async with pool.acquire() as conn:
        await conn.execute(
            """
            UPDATE researches
            SET status = $2,
                result = COALESCE($3, result),
                duration_ms = COALESCE($4, duration_ms)
            WHERE id = $1
            """,
            research_id,
            status,
            result,
            duration_ms,
        )
    log_service.log_db_operation("update", "researches", "success", details=f"{research_id} -> {status}")


async def delete_research(research_id: str) -> None:
    pool = await _get_pool()
    async with pool.acquire() as conn:
        await conn.execute("DELETE FROM researches WHERE id = $1", research_id)


# --- Status history ---

async def add_status_event(research_id: str, status_text: str, timestamp: Any) -> None:
    pool = await _get_pool()
    async with pool.acquire() as conn:
        await conn.execute(
            """
            INSERT INTO research_status_history (research_id, status_text, timestamp)
            VALUES ($1, $2, $3)
            """,
            research_id,
            status_text,
            timestamp,
        )


async def get_status_history(research_id: str, limit: int = 5) -> list[dict[str, Any]]:
    pool = await _get_pool()
    async with pool.acquire() as conn:
        rows = await conn.fetch(
            """
            SELECT status_text, timestamp
            FROM research_status_history
            WHERE research_id = $1
            ORDER BY timestamp DESC, id DESC
            LIMIT $2
            """,
            research_id,
            limit,
        )
    return [dict(r) for r in rows]
