"""
Portfolio API service.

Serves the public site collections (settings, experiences, certifications,
projects, posts) through the collection cache and exposes the dashboard
write endpoints, each of which invalidates the affected collection.
"""

import asyncio
from typing import Any, Dict, Optional, Type

from fastapi import Body
from pydantic import BaseModel

from shared.base_service import BaseService
from shared.errors import NotFoundError, StoreError, ValidationError

from .cache import CollectionCache, Resource, WriteOperation
from .models import (
    CertificationRequest,
    ExperienceRequest,
    PostRequest,
    ProjectRequest,
    SettingsBulkRequest,
)
from .persistence import PostgreSQLStore

MAX_SLUG_LENGTH = 200

WRITE_MODELS: Dict[Resource, Type[BaseModel]] = {
    Resource.POSTS: PostRequest,
    Resource.EXPERIENCES: ExperienceRequest,
    Resource.PROJECTS: ProjectRequest,
    Resource.CERTIFICATIONS: CertificationRequest,
}

RECORD_LABELS = {
    Resource.POSTS: "Post",
    Resource.EXPERIENCES: "Experience",
    Resource.PROJECTS: "Project",
    Resource.CERTIFICATIONS: "Certification",
}


def parse_record_id(value: str) -> int:
    """Accept only positive integer ids."""
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise ValidationError("Invalid ID", {"id": value}) from None
    if parsed <= 0:
        raise ValidationError("Invalid ID", {"id": value})
    return parsed


class PortfolioService(BaseService):
    """Portfolio service implementation."""

    def __init__(self, store: Optional[Any] = None):
        super().__init__("portfolio", 4000)

        self.store = store or PostgreSQLStore(
            self.config.postgres_dsn,
            min_size=self.config.db_min_pool_size,
            max_size=self.config.db_max_pool_size,
            command_timeout=self.config.db_command_timeout,
        )
        self.cache = CollectionCache(
            self.store,
            ttl_seconds=self.config.cache_ttl_seconds,
            metrics=self.metrics,
        )
        self._preload_task: Optional[asyncio.Task] = None

        self._setup_portfolio_routes()

    def _setup_portfolio_routes(self):
        """Set up portfolio-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "portfolio",
                "message": "Portfolio API",
                "version": "1.0.0",
                "resources": [resource.value for resource in Resource],
            }

        @self.app.get("/api/cache/stats")
        async def cache_stats():
            """Describe the collection cache."""
            return self.cache.get_stats()

        # Settings
        @self.app.get("/api/settings")
        async def get_settings():
            return await self.cache.get(Resource.SETTINGS)

        @self.app.post("/api/settings/bulk")
        async def save_settings(request: SettingsBulkRequest):
            """Upsert many settings at once."""
            return await self.cache.write(Resource.SETTINGS, WriteOperation.UPDATE, request.normalized())

        # Posts: the fixed paths must be registered before the slug lookup
        @self.app.get("/api/posts/published")
        async def get_published_posts():
            posts = await self.cache.get(Resource.POSTS)
            return [post for post in posts if post.get("status") == "published"]

        self._register_collection(Resource.POSTS)

        @self.app.get("/api/posts/{slug}")
        async def get_post(slug: str):
            """Fetch a single post straight from the store."""
            if not slug or len(slug) > MAX_SLUG_LENGTH:
                raise ValidationError("Invalid slug")
            post = await self.store.fetch_post_by_slug(slug)
            if post is None:
                raise NotFoundError("Post not found", {"slug": slug})
            return post

        for resource in (Resource.EXPERIENCES, Resource.PROJECTS, Resource.CERTIFICATIONS):
            self._register_collection(resource)
            self._register_record_lookup(resource)

    def _register_collection(self, resource: Resource):
        """Register list and create/update/delete routes for a collection."""
        path = f"/api/{resource.value}"
        model = WRITE_MODELS[resource]
        label = RECORD_LABELS[resource]

        async def list_records():
            return await self.cache.get(resource)

        async def create_record(body: model = Body(...)):  # type: ignore[valid-type]
            return await self.cache.write(resource, WriteOperation.CREATE, body.to_columns())

        async def update_record(record_id: str, body: model = Body(...)):  # type: ignore[valid-type]
            columns = body.to_columns(creating=False)
            columns["id"] = parse_record_id(record_id)
            return await self.cache.write(resource, WriteOperation.UPDATE, columns)

        async def delete_record(record_id: str):
            parsed_id = parse_record_id(record_id)
            return await self.cache.write(resource, WriteOperation.DELETE, {"id": parsed_id})

        self.app.add_api_route(path, list_records, methods=["GET"], name=f"list_{resource.value}")
        self.app.add_api_route(
            path, create_record, methods=["POST"], name=f"create_{resource.value}",
            summary=f"Create {label.lower()}",
        )
        self.app.add_api_route(
            f"{path}/{{record_id}}", update_record, methods=["PUT"], name=f"update_{resource.value}",
            summary=f"Update {label.lower()}",
        )
        self.app.add_api_route(
            f"{path}/{{record_id}}", delete_record, methods=["DELETE"], name=f"delete_{resource.value}",
            summary=f"Delete {label.lower()}",
        )

    def _register_record_lookup(self, resource: Resource):
        """Register ``GET /api/<resource>/{id}``, served from the store."""
        label = RECORD_LABELS[resource]

        async def get_record(record_id: str):
            parsed_id = parse_record_id(record_id)
            record = await self.store.fetch_one(resource, parsed_id)
            if record is None:
                raise NotFoundError(f"{label} not found", {"id": parsed_id})
            return record

        self.app.add_api_route(
            f"/api/{resource.value}/{{record_id}}", get_record, methods=["GET"], name=f"get_{resource.value}",
        )

    async def _check_dependencies(self):
        """Check portfolio service dependencies."""
        dependencies: Dict[str, Any] = {}

        try:
            dependencies["postgres"] = "ok" if await self.store.health_check() else "error"
        except Exception:
            dependencies["postgres"] = "error"

        dependencies["cache"] = {
            resource.value: self.cache.state(resource) for resource in Resource
        }
        return dependencies

    async def start(self):
        """Start portfolio service components."""
        try:
            await self.store.start()
        except StoreError as e:
            # Keep serving; reads return 503 until the store opens on first use
            self.logger.error("Store unavailable at startup", error=e.message, details=e.details)

        if self.config.preload_on_startup:
            # Serving does not wait for the warm-up
            self._preload_task = asyncio.create_task(self._run_preload())

        self.logger.info("Portfolio service started", preload=self.config.preload_on_startup)

    async def _run_preload(self):
        try:
            return await self.cache.preload()
        except Exception as e:
            self.logger.error("Preload error", error=str(e))
            return None

    async def stop(self):
        """Stop portfolio service components."""
        if self._preload_task and not self._preload_task.done():
            self._preload_task.cancel()
            try:
                await self._preload_task
            except asyncio.CancelledError:
                pass
        await self.store.stop()

        self.logger.info("Portfolio service stopped")


def create_app(store: Optional[Any] = None):
    """Create portfolio service application."""
    service = PortfolioService(store)
    return service.app


if __name__ == "__main__":
    service = PortfolioService()
    service.run()
