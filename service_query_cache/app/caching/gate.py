"""
Pre-execution cache lookup.
"""

import json
import time
from typing import Callable, Optional, Union

from pydantic import ValidationError

from shared.errors import InvalidDescriptor, PersistedQueryNotFound, StoreUnavailable
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from .fingerprint import FINGERPRINT_PAYLOAD, FINGERPRINT_PERSISTED, from_descriptor, from_payload
from .models import CacheEntry, QueryResponse, Proceed, QueryRequest
from .store import KeyValueStore


def _now_ms() -> int:
    return int(time.time() * 1000)


class CacheGate:
    """Decides whether a request is answered from the store.

    Order of evaluation:

    1. POST with query text: hit on the payload fingerprint is served.
    2. GET with a persisted-query descriptor: hit is served along with a
       Cache-Control header advertising the remaining freshness.
    3. GET with a descriptor but no query text: PersistedQueryNotFound.
    4. Anything else proceeds to the engine.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        metrics: Optional[MetricsCollector] = None,
        clock: Callable[[], int] = _now_ms,
    ):
        self.store = store
        self.metrics = metrics
        self.clock = clock
        self.logger = get_logger("query_cache.gate")

    async def check(self, request: QueryRequest) -> Union[QueryResponse, Proceed]:
        if request.method == "POST" and request.has_query:
            fingerprint = from_payload(request.query)
            entry = await self._lookup(fingerprint, FINGERPRINT_PAYLOAD)
            if entry is not None:
                return QueryResponse(body=entry.payload, headers={"X-Cache": "HIT"}, cache_hit=True)
            return Proceed(fingerprint, FINGERPRINT_PAYLOAD)

        fingerprint = self._descriptor_fingerprint(request) if request.method == "GET" else None
        if fingerprint is not None:
            entry = await self._lookup(fingerprint, FINGERPRINT_PERSISTED)
            if entry is not None:
                remaining = entry.remaining_seconds(self.clock())
                return QueryResponse(
                    body=entry.payload,
                    headers={
                        "X-Cache": "HIT",
                        "Cache-Control": f"public, max-age={remaining}, s-maxage={remaining}",
                    },
                    cache_hit=True,
                )

            if not request.has_query:
                return self._not_found(fingerprint)
            return Proceed(fingerprint, FINGERPRINT_PERSISTED)

        return Proceed()

    def _descriptor_fingerprint(self, request: QueryRequest) -> Optional[str]:
        if request.descriptor is None:
            return None
        try:
            return from_descriptor(request.descriptor)
        except InvalidDescriptor as exc:
            self.logger.warning("Invalid persisted query descriptor, ignoring", error=exc.message)
            return None

    async def _lookup(self, fingerprint: str, fingerprint_type: str) -> Optional[CacheEntry]:
        try:
            raw = await self.store.get(fingerprint)
        except StoreUnavailable as exc:
            self.logger.warning("Store unavailable on read, treating as miss", fingerprint=fingerprint, error=exc.message)
            raw = None

        entry = None
        if raw is not None:
            try:
                entry = CacheEntry.model_validate_json(raw)
            except ValidationError as exc:
                self.logger.error("Discarding undecodable cache entry", fingerprint=fingerprint, error=str(exc))

        if entry is None:
            self.logger.debug("Cache miss", fingerprint=fingerprint, fingerprint_type=fingerprint_type)
            self._count("cache_misses_total", fingerprint_type=fingerprint_type)
            return None

        self.logger.debug("Cache hit", fingerprint=fingerprint, fingerprint_type=fingerprint_type)
        self._count("cache_hits_total", fingerprint_type=fingerprint_type)
        return entry

    def _not_found(self, fingerprint: str) -> QueryResponse:
        error = PersistedQueryNotFound(fingerprint)
        self.logger.info("Persisted query not found", fingerprint=fingerprint)
        self._count("persisted_query_not_found_total")
        return QueryResponse(
            body=json.dumps(error.to_graphql(), separators=(",", ":")),
            status_code=error.status_code,
            headers={"X-Cache": "MISS"},
        )

    def _count(self, metric_name: str, **labels) -> None:
        if self.metrics:
            self.metrics.increment_counter(metric_name, **labels)
