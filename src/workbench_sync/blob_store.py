"""Key-value blob stores used to persist per-conversation file maps."""

import logging
import os
from typing import Protocol

import asyncpg

logger = logging.getLogger(__name__)


class BlobStore(Protocol):
    """Minimal get/set/clear interface keyed by string."""

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> None: ...

    async def clear(self, key: str) -> None: ...


class InMemoryBlobStore:
    """Process-local blob store backed by a dict."""

    def __init__(self, initial: dict[str, str] | None = None):
        self.blobs: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        return self.blobs.get(key)

    async def set(self, key: str, value: str) -> None:
        self.blobs[key] = value

    async def clear(self, key: str) -> None:
        self.blobs.pop(key, None)


class PostgresBlobStore:
    """Blob store backed by the ``workbench_blobs`` table.

    Schema lives in ``migrations/001_workbench_schema.sql``.
    """

    def __init__(self, db_pool: asyncpg.Pool):
        """Initialize blob store.

        Args:
            db_pool: PostgreSQL connection pool
        """
        self.db = db_pool

    @classmethod
    async def from_env(cls) -> "PostgresBlobStore":
        """Create a store with a pool configured from ``POSTGRES_*`` variables."""
        pool = await asyncpg.create_pool(
            host=os.getenv("POSTGRES_HOST", "localhost"),
            database=os.getenv("POSTGRES_DB", "workbench"),
            user=os.getenv("POSTGRES_USER", "postgres"),
            password=os.getenv("POSTGRES_PASSWORD", "postgres"),
            port=int(os.getenv("POSTGRES_PORT", "5432")),
        )
        return cls(pool)

    async def get(self, key: str) -> str | None:
        async with self.db.acquire() as conn:
            return await conn.fetchval("SELECT value FROM workbench_blobs WHERE key = $1", key)

    async def set(self, key: str, value: str) -> None:
        async with self.db.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO workbench_blobs (key, value)
                VALUES ($1, $2)
                ON CONFLICT (key) DO UPDATE SET
                    value = EXCLUDED.value,
                    updated_at = NOW()
            """,
                key,
                value,
            )

        logger.debug(f"Stored blob {key} ({len(value)} chars)")

    async def clear(self, key: str) -> None:
        async with self.db.acquire() as conn:
            result = await conn.execute("DELETE FROM workbench_blobs WHERE key = $1", key)

        # Parse "DELETE N" result
        if int(result.split()[-1]) > 0:
            logger.debug(f"Cleared blob {key}")
