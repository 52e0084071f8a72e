"""
Shared fixtures for the portfolio service tests.
"""

import asyncio
from collections import Counter
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

import pytest

from shared.errors import NotFoundError, StoreError
from service_portfolio.app.cache import Resource, WriteOperation
from service_portfolio.app.persistence.postgres import KEEP_ON_NULL


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeStore:
    """In-memory stand-in for PostgreSQLStore that records every call."""

    def __init__(self, rows: Optional[Dict[Resource, List[Dict[str, Any]]]] = None):
        self.rows: Dict[Resource, List[Dict[str, Any]]] = {resource: [] for resource in Resource}
        if rows:
            self.rows.update(rows)
        self.fetch_calls: Counter = Counter()
        self.writes: List[tuple] = []
        self.fetch_failures: Dict[Resource, Exception] = {}
        self.write_failure: Optional[Exception] = None
        # each pending fetch waits on the next gate, if any
        self.fetch_gates: List[asyncio.Event] = []
        self.write_gate: Optional[asyncio.Event] = None
        self.start_failure: Optional[Exception] = None
        self.started = False
        self.stopped = False
        self.healthy = True
        self._next_id = 100

    async def start(self):
        if self.start_failure is not None:
            raise self.start_failure
        self.started = True

    async def stop(self):
        self.stopped = True

    async def health_check(self) -> bool:
        return self.healthy

    async def fetch_all(self, resource: Resource) -> List[Dict[str, Any]]:
        self.fetch_calls[resource] += 1
        if self.fetch_gates:
            await self.fetch_gates.pop(0).wait()
        if resource in self.fetch_failures:
            raise self.fetch_failures[resource]
        return [dict(row) for row in self.rows[resource]]

    async def fetch_one(self, resource: Resource, record_id: int) -> Optional[Dict[str, Any]]:
        for row in self.rows[resource]:
            if row.get("id") == record_id:
                return dict(row)
        return None

    async def fetch_post_by_slug(self, slug: str) -> Optional[Dict[str, Any]]:
        for row in self.rows[Resource.POSTS]:
            if row.get("slug") == slug:
                return dict(row)
        return None

    async def write(self, resource: Resource, operation: WriteOperation, payload: Any):
        self.writes.append((resource, operation, payload))
        if self.write_gate is not None:
            await self.write_gate.wait()
        if self.write_failure is not None:
            raise self.write_failure

        if resource is Resource.SETTINGS:
            existing = {row["key"]: row for row in self.rows[resource]}
            for key, value in payload.items():
                existing[key] = {"key": key, "value": value}
            self.rows[resource] = sorted(existing.values(), key=lambda row: row["key"])
            return {"success": True, "message": "Settings updated successfully"}

        if operation is WriteOperation.DELETE:
            self.rows[resource] = [row for row in self.rows[resource] if row.get("id") != payload["id"]]
            return {"success": True}

        row = dict(payload)
        if resource is Resource.EXPERIENCES:
            row["tags"] = ",".join(row.get("tags") or [])

        if operation is WriteOperation.CREATE:
            self._next_id += 1
            row["id"] = self._next_id
            if resource is Resource.POSTS:
                row["created_at"] = datetime.now(timezone.utc)
            self.rows[resource].insert(0, row)
            return row

        for index, existing_row in enumerate(self.rows[resource]):
            if existing_row.get("id") == payload["id"]:
                kept = KEEP_ON_NULL.get(resource, ())
                changes = {key: value for key, value in row.items() if not (key in kept and value is None)}
                self.rows[resource][index] = {**existing_row, **changes}
                return self.rows[resource][index]
        raise NotFoundError(f"{resource.value} record not found", {"id": payload["id"]})


class DummyMetrics:
    """Minimal metrics collector stub."""

    def __init__(self):
        self.counters = []
        self.histograms = []

    def increment_counter(self, metric_name: str, **labels):
        self.counters.append((metric_name, labels))

    def observe_histogram(self, metric_name: str, value: float, **labels):
        self.histograms.append((metric_name, value, labels))


def sample_rows() -> Dict[Resource, List[Dict[str, Any]]]:
    return {
        Resource.SETTINGS: [
            {"key": "site_title", "value": "My Portfolio"},
            {"key": "whatsapp", "value": "+62800000"},
        ],
        Resource.EXPERIENCES: [
            {
                "id": 1,
                "title": "Backend Engineer",
                "organization": "Acme",
                "period": "2022 - now",
                "description": "APIs",
                "type": "work",
                "image": None,
                "images": '["a.png", "b.png"]',
                "start_date": date(2022, 1, 1),
                "tags": "go,rust,ts",
            },
        ],
        Resource.CERTIFICATIONS: [
            {
                "id": 1,
                "name": "Cloud Practitioner",
                "organization": "AWS",
                "issue_date": date(2024, 3, 15),
                "expiry_date": None,
                "credential_id": "ABC",
                "credential_url": "https://example.com/abc",
                "image": None,
                "skills": None,
            },
        ],
        Resource.PROJECTS: [
            {
                "id": 1,
                "title": "Blog Engine",
                "description": "Markdown blog",
                "image": "blog.png",
                "tags": None,
                "link": "https://example.com",
                "category": "Web Development",
            },
        ],
        Resource.POSTS: [
            {"id": 2, "title": "Second", "slug": "second", "status": "draft", "content": ""},
            {"id": 1, "title": "First", "slug": "first", "status": "published", "content": "Hello"},
        ],
    }


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_store():
    return FakeStore(sample_rows())


@pytest.fixture
def dummy_metrics():
    return DummyMetrics()


@pytest.fixture
def broken_store_error():
    return StoreError("connection refused")
