"""
PostgreSQL persistence layer for the portfolio service.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import asyncpg

from shared.logging import get_logger
from shared.errors import NotFoundError, StoreError, ValidationError
from ..cache.resources import Resource, WriteOperation


SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS settings (
        key VARCHAR(255) PRIMARY KEY,
        value TEXT NOT NULL DEFAULT '',
        updated_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS experiences (
        id SERIAL PRIMARY KEY,
        title TEXT NOT NULL,
        organization TEXT,
        period TEXT,
        description TEXT,
        type VARCHAR(50) NOT NULL DEFAULT 'work',
        image TEXT,
        images TEXT[] NOT NULL DEFAULT '{}',
        start_date DATE,
        tags TEXT[] NOT NULL DEFAULT '{}'
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS certifications (
        id SERIAL PRIMARY KEY,
        name TEXT NOT NULL,
        organization TEXT,
        issue_date DATE,
        expiry_date DATE,
        credential_id TEXT,
        credential_url TEXT,
        image TEXT,
        skills TEXT[] NOT NULL DEFAULT '{}'
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS projects (
        id SERIAL PRIMARY KEY,
        title TEXT NOT NULL,
        description TEXT,
        image TEXT,
        tags TEXT[] NOT NULL DEFAULT '{}',
        link TEXT,
        category VARCHAR(100)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS posts (
        id SERIAL PRIMARY KEY,
        title TEXT NOT NULL,
        slug VARCHAR(255) UNIQUE,
        content TEXT NOT NULL DEFAULT '',
        excerpt TEXT,
        cover_image_url TEXT,
        category VARCHAR(100),
        status VARCHAR(20) NOT NULL DEFAULT 'draft',
        reading_time INTEGER NOT NULL DEFAULT 1,
        created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_posts_created_at ON posts(created_at DESC);",
]

LIST_QUERIES: Dict[Resource, str] = {
    Resource.SETTINGS: "SELECT key, value FROM settings ORDER BY key",
    Resource.EXPERIENCES: (
        "SELECT id, title, organization, period, description, type, image, images, start_date, "
        "array_to_string(tags, ',') AS tags FROM experiences ORDER BY start_date DESC"
    ),
    Resource.CERTIFICATIONS: (
        "SELECT id, name, organization, issue_date, expiry_date, credential_id, credential_url, "
        "image, skills FROM certifications"
    ),
    Resource.PROJECTS: "SELECT id, title, description, image, tags, link, category FROM projects",
    Resource.POSTS: "SELECT * FROM posts ORDER BY created_at DESC",
}

# Writable columns per table, in parameter order
WRITE_COLUMNS: Dict[Resource, Tuple[str, ...]] = {
    Resource.EXPERIENCES: (
        "title", "organization", "period", "description", "type", "image", "images", "start_date", "tags",
    ),
    Resource.CERTIFICATIONS: (
        "name", "organization", "issue_date", "expiry_date", "credential_id", "credential_url", "image", "skills",
    ),
    Resource.PROJECTS: ("title", "description", "image", "tags", "link", "category"),
    Resource.POSTS: (
        "title", "slug", "content", "excerpt", "cover_image_url", "category", "status", "reading_time",
    ),
}

# Columns touched on every write in addition to the payload
TOUCH_ON_CREATE: Dict[Resource, Tuple[str, ...]] = {
    Resource.POSTS: ("created_at", "updated_at"),
}
TOUCH_ON_UPDATE: Dict[Resource, Tuple[str, ...]] = {
    Resource.POSTS: ("updated_at",),
}

# Defaulted on create; an update that leaves them null keeps the stored value
KEEP_ON_NULL: Dict[Resource, Tuple[str, ...]] = {
    Resource.POSTS: ("slug", "category", "status", "reading_time"),
    Resource.EXPERIENCES: ("type",),
    Resource.PROJECTS: ("category",),
}

UPSERT_SETTING = """
    INSERT INTO settings (key, value, updated_at)
    VALUES ($1, $2, CURRENT_TIMESTAMP)
    ON CONFLICT (key) DO UPDATE SET value = EXCLUDED.value, updated_at = CURRENT_TIMESTAMP
"""


def _insert_sql(resource: Resource) -> str:
    columns = WRITE_COLUMNS[resource]
    touched = TOUCH_ON_CREATE.get(resource, ())
    placeholders = [f"${i}" for i in range(1, len(columns) + 1)] + ["NOW()"] * len(touched)
    return (
        f"INSERT INTO {resource.value} ({', '.join(columns + touched)}) "
        f"VALUES ({', '.join(placeholders)}) RETURNING *"
    )


def _update_sql(resource: Resource) -> str:
    columns = WRITE_COLUMNS[resource]
    kept = KEEP_ON_NULL.get(resource, ())
    assignments = [
        f"{column} = COALESCE(${i}, {column})" if column in kept else f"{column} = ${i}"
        for i, column in enumerate(columns, start=1)
    ]
    assignments += [f"{column} = NOW()" for column in TOUCH_ON_UPDATE.get(resource, ())]
    return (
        f"UPDATE {resource.value} SET {', '.join(assignments)} "
        f"WHERE id = ${len(columns) + 1} RETURNING *"
    )


class PostgreSQLStore:
    """asyncpg-backed store for the portfolio collections."""

    def __init__(
        self,
        dsn: str,
        *,
        min_size: int = 1,
        max_size: int = 10,
        command_timeout: float = 30.0,
    ):
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self.command_timeout = command_timeout
        self.logger = get_logger("portfolio.persistence.postgres")
        self.pool: Optional[asyncpg.Pool] = None
        self._pool_lock: Optional[asyncio.Lock] = None

    async def start(self):
        """Open the connection pool and make sure the tables exist."""
        await self._open_pool()
        self.logger.info("PostgreSQL store started")

    async def stop(self):
        """Close the connection pool."""
        if self.pool:
            await self.pool.close()
            self.pool = None
            self.logger.info("PostgreSQL store stopped")

    async def _open_pool(self):
        """Create the pool and schema once; later callers reuse it.

        Called by ``start`` and again on first use when the database was not
        reachable at startup.
        """
        if self._pool_lock is None:
            self._pool_lock = asyncio.Lock()

        async with self._pool_lock:
            if self.pool is not None:
                return

            pool = None
            try:
                pool = await asyncpg.create_pool(
                    self.dsn,
                    min_size=self.min_size,
                    max_size=self.max_size,
                    command_timeout=self.command_timeout
                )
                async with pool.acquire() as conn:
                    for statement in SCHEMA:
                        await conn.execute(statement)
            except Exception as e:
                if pool is not None:
                    await pool.close()
                self.logger.error("Failed to open PostgreSQL pool", error=str(e))
                raise StoreError("PostgreSQL is unavailable", {"error": str(e)}) from e

            self.pool = pool

    @asynccontextmanager
    async def _connection(self):
        if self.pool is None:
            await self._open_pool()
        async with self.pool.acquire() as conn:
            yield conn

    async def fetch_all(self, resource: Union[Resource, str]) -> List[Dict[str, Any]]:
        """Return every row of a collection in its list order."""
        resource = Resource.parse(resource)
        try:
            async with self._connection() as conn:
                rows = await conn.fetch(LIST_QUERIES[resource])
        except StoreError:
            raise
        except Exception as e:
            self.logger.error("Error fetching collection", resource=resource.value, error=str(e))
            raise StoreError(f"Failed to fetch {resource.value}", {"resource": resource.value}) from e

        return [dict(row) for row in rows]

    async def fetch_one(self, resource: Union[Resource, str], record_id: int) -> Optional[Dict[str, Any]]:
        """Return a single row by id, or None."""
        resource = Resource.parse(resource)
        if resource is Resource.SETTINGS:
            raise ValueError("settings rows are addressed by key, not id")

        try:
            async with self._connection() as conn:
                row = await conn.fetchrow(f"SELECT * FROM {resource.value} WHERE id = $1", record_id)
        except StoreError:
            raise
        except Exception as e:
            self.logger.error("Error fetching record", resource=resource.value, id=record_id, error=str(e))
            raise StoreError(f"Failed to fetch {resource.value}", {"resource": resource.value}) from e

        return dict(row) if row else None

    async def fetch_post_by_slug(self, slug: str) -> Optional[Dict[str, Any]]:
        """Return a post by slug, or None."""
        try:
            async with self._connection() as conn:
                row = await conn.fetchrow("SELECT * FROM posts WHERE slug = $1", slug)
        except StoreError:
            raise
        except Exception as e:
            self.logger.error("Error fetching post", slug=slug, error=str(e))
            raise StoreError("Failed to fetch post", {"slug": slug}) from e

        return dict(row) if row else None

    async def write(
        self,
        resource: Union[Resource, str],
        operation: Union[WriteOperation, str],
        payload: Mapping[str, Any],
    ) -> Optional[Dict[str, Any]]:
        """Apply a create, update or delete to a collection.

        ``payload`` holds column values; updates and deletes carry the row
        ``id``. For settings only ``update`` is accepted and ``payload`` is the
        key/value mapping to upsert.
        """
        resource = Resource.parse(resource)
        operation = WriteOperation(operation)

        if resource is Resource.SETTINGS:
            if operation is not WriteOperation.UPDATE:
                raise ValidationError("Settings only support bulk update", {"operation": operation.value})
            return await self._upsert_settings(payload)

        try:
            async with self._connection() as conn:
                if operation is WriteOperation.CREATE:
                    values = [payload.get(column) for column in WRITE_COLUMNS[resource]]
                    row = await conn.fetchrow(_insert_sql(resource), *values)
                elif operation is WriteOperation.UPDATE:
                    values = [payload.get(column) for column in WRITE_COLUMNS[resource]]
                    row = await conn.fetchrow(_update_sql(resource), *values, payload["id"])
                else:
                    await conn.execute(f"DELETE FROM {resource.value} WHERE id = $1", payload["id"])
                    row = None
        except StoreError:
            raise
        except asyncpg.UniqueViolationError as e:
            raise ValidationError("Duplicate value", {"resource": resource.value, "constraint": e.constraint_name}) from e
        except Exception as e:
            self.logger.error(
                "Error writing record",
                resource=resource.value,
                operation=operation.value,
                error=str(e)
            )
            raise StoreError(f"Failed to {operation.value} {resource.value}", {"resource": resource.value}) from e

        if operation is WriteOperation.DELETE:
            self.logger.info("Record deleted", resource=resource.value, id=payload["id"])
            return {"success": True}

        if row is None:
            raise NotFoundError(f"{resource.value} record not found", {"id": payload["id"]})

        self.logger.info("Record saved", resource=resource.value, operation=operation.value, id=row["id"])
        return dict(row)

    async def _upsert_settings(self, settings: Mapping[str, Any]) -> Dict[str, Any]:
        try:
            async with self._connection() as conn:
                async with conn.transaction():
                    await conn.executemany(UPSERT_SETTING, list(settings.items()))
        except StoreError:
            raise
        except Exception as e:
            self.logger.error("Error saving settings", error=str(e))
            raise StoreError("Failed to save settings", {"keys": len(settings)}) from e

        self.logger.info("Settings saved", keys=len(settings))
        return {"success": True, "message": "Settings updated successfully"}

    async def health_check(self) -> bool:
        """Check database health."""
        try:
            async with self._connection() as conn:
                await conn.fetchval("SELECT 1")
                return True
        except Exception:
            return False
