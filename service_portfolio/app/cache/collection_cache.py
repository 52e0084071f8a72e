"""
Read-through cache for the portfolio collections.

Reads are answered from memory while an entry is fresh; otherwise the store
is queried, the rows are shaped and the entry is replaced wholesale. Writes
go to the store first and then clear the entry so the next read repopulates
lazily. Entries are replaced by assignment, never mutated, so a reader that
already holds a payload keeps a complete snapshot.

Concurrent read-throughs of the same stale entry are not collapsed: each
hits the store and the last one to finish wins.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import (
    TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Mapping, Optional, Protocol, Union
)

from shared.logging import get_logger
from .resources import Resource, WriteOperation, shape

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


DEFAULT_TTL_SECONDS = 300.0

STATE_EMPTY = "empty"
STATE_FRESH = "fresh"
STATE_STALE = "stale"


class CollectionStore(Protocol):
    """Data-access operations the cache relies on."""

    async def fetch_all(self, resource: Resource) -> Iterable[Mapping[str, Any]]:
        ...

    async def write(
        self, resource: Resource, operation: WriteOperation, payload: Any
    ) -> Optional[Dict[str, Any]]:
        ...


@dataclass(frozen=True)
class CacheEntry:
    """Last known-good snapshot of one collection."""

    resource: Resource
    payload: Any = None
    fetched_at: float = 0.0
    # bookkeeping only: why the entry holds no payload
    reason: str = "never_loaded"

    @property
    def has_payload(self) -> bool:
        # An empty collection counts as no payload and is always re-fetched.
        return bool(self.payload)


class CollectionCache:
    """In-memory cache over the five portfolio collections."""

    def __init__(
        self,
        store: CollectionStore,
        *,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.metrics = metrics
        self.logger = get_logger("portfolio.cache")
        self._clock = clock
        self._entries: Dict[Resource, CacheEntry] = {
            resource: CacheEntry(resource) for resource in Resource
        }

    def entry(self, resource: Union[Resource, str]) -> CacheEntry:
        """Return the current entry for a resource."""
        return self._entries[Resource.parse(resource)]

    def is_fresh(self, resource: Union[Resource, str]) -> bool:
        return self._is_entry_fresh(self.entry(resource))

    def _is_entry_fresh(self, entry: CacheEntry) -> bool:
        return entry.has_payload and self._clock() - entry.fetched_at < self.ttl_seconds

    def state(self, resource: Union[Resource, str]) -> str:
        entry = self.entry(resource)
        if not entry.has_payload:
            return STATE_EMPTY
        return STATE_FRESH if self._is_entry_fresh(entry) else STATE_STALE

    async def get(self, resource: Union[Resource, str]) -> Any:
        """Return the collection payload, fetching from the store when not fresh.

        Store failures propagate to the caller. The existing entry is left
        untouched in that case and no stale payload is served.
        """
        resource = Resource.parse(resource)
        entry = self._entries[resource]

        if self._is_entry_fresh(entry):
            self._record("cache_requests_total", resource=resource.value, result="hit")
            self.logger.debug("Cache hit", resource=resource.value)
            return entry.payload

        self._record("cache_requests_total", resource=resource.value, result="miss")
        self.logger.debug("Cache miss", resource=resource.value, reason=self.state(resource))
        return await self._refresh(resource)

    async def _refresh(self, resource: Resource) -> Any:
        start = time.perf_counter()
        try:
            rows = await self.store.fetch_all(resource)
        except Exception as exc:
            self.logger.error("Cache read-through failed", resource=resource.value, error=str(exc))
            self._record("cache_fetch_failures_total", resource=resource.value)
            raise
        finally:
            self._observe("cache_fetch_duration_seconds", time.perf_counter() - start, resource=resource.value)

        payload = shape(resource, rows)
        self._entries[resource] = CacheEntry(
            resource=resource,
            payload=payload,
            fetched_at=self._clock(),
            reason="loaded",
        )
        return payload

    def invalidate(self, resource: Union[Resource, str]) -> None:
        """Drop the cached payload so the next read goes to the store."""
        resource = Resource.parse(resource)
        self._entries[resource] = CacheEntry(resource=resource, reason="invalidated")
        self._record("cache_invalidations_total", resource=resource.value)
        self.logger.info("Cache invalidated", resource=resource.value)

    async def write(
        self,
        resource: Union[Resource, str],
        operation: Union[WriteOperation, str],
        payload: Any,
    ) -> Optional[Dict[str, Any]]:
        """Apply a write through the store, then invalidate the collection.

        Invalidation happens only once the store has acknowledged the write;
        a failed write leaves the entry as it was.
        """
        resource = Resource.parse(resource)
        operation = WriteOperation(operation)

        result = await self.store.write(resource, operation, payload)
        self.invalidate(resource)
        return result

    async def preload(self) -> Dict[str, Any]:
        """Fetch every collection concurrently to warm the cache.

        Failures are logged per resource and never raised.
        """
        resources: List[Resource] = list(Resource)
        self.logger.info("Preloading collections", resources=[r.value for r in resources])

        outcomes = await asyncio.gather(*(self._preload_one(r) for r in resources))

        summary: Dict[str, Any] = {"loaded": {}, "errors": {}}
        for resource, (count, error) in zip(resources, outcomes):
            if error is None:
                summary["loaded"][resource.value] = count
            else:
                summary["errors"][resource.value] = error

        self.logger.info(
            "Preload completed",
            loaded=summary["loaded"],
            errors=len(summary["errors"]),
        )
        return summary

    async def _preload_one(self, resource: Resource):
        try:
            payload = await self._refresh(resource)
        except Exception as exc:
            self.logger.error("Preload failed", resource=resource.value, error=str(exc))
            self._record("cache_preload_total", resource=resource.value, result="error")
            return 0, str(exc)

        self._record("cache_preload_total", resource=resource.value, result="ok")
        return len(payload), None

    def get_stats(self) -> Dict[str, Any]:
        """Describe the state of every entry."""
        now = self._clock()
        stats: Dict[str, Any] = {"ttl_seconds": self.ttl_seconds, "resources": {}}
        for resource, entry in self._entries.items():
            stats["resources"][resource.value] = {
                "state": self.state(resource),
                "items": len(entry.payload) if entry.has_payload else 0,
                "age_seconds": round(now - entry.fetched_at, 3) if entry.has_payload else None,
                "reason": entry.reason,
            }
        return stats

    def _record(self, metric_name: str, **labels) -> None:
        if not self.metrics:
            return
        self.metrics.increment_counter(metric_name, **labels)

    def _observe(self, metric_name: str, value: float, **labels) -> None:
        if not self.metrics:
            return
        self.metrics.observe_histogram(metric_name, value, **labels)
