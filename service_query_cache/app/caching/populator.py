"""
Post-execution cache storage driven by the engine's freshness hints.
"""

import math
import time
from numbers import Number
from typing import Any, Callable, Dict, List, Optional

from shared.logging import get_logger
from shared.metrics import MetricsCollector
from .models import CacheEntry, ExecutionResult, Proceed, strip_extensions
from .store import KeyValueStore


# Freshness used when cache control is present but no hint carries a maxAge.
DEFAULT_MAX_AGE = 60
# A zero maxAge is stored for one second rather than not at all.
MIN_DURATION_MS = 1000


def _now_ms() -> int:
    return int(time.time() * 1000)


def extract_hints(body: Optional[Dict[str, Any]]) -> Optional[List[Dict[str, Any]]]:
    """Freshness hints from ``extensions.cacheControl.hints``.

    None means the engine did not emit cache control at all.
    """
    if not body:
        return None
    extensions = body.get("extensions")
    if not isinstance(extensions, dict):
        return None
    cache_control = extensions.get("cacheControl")
    if not isinstance(cache_control, dict):
        return None
    hints = cache_control.get("hints")
    if not isinstance(hints, list):
        hints = []
    return [hint for hint in hints if isinstance(hint, dict)]


def _is_age(value: Any) -> bool:
    return isinstance(value, Number) and not isinstance(value, bool) and math.isfinite(value)


def min_max_age(hints: List[Dict[str, Any]]) -> float:
    """Smallest finite maxAge across hints, DEFAULT_MAX_AGE when none carries one."""
    ages = [hint["maxAge"] for hint in hints if _is_age(hint.get("maxAge"))]
    return min(ages, default=DEFAULT_MAX_AGE)


def duration_ms_for(min_age: float) -> int:
    if min_age <= 0:
        return MIN_DURATION_MS
    return max(MIN_DURATION_MS, int(min_age * 1000))


class CachePopulator:
    """Stores engine responses under the fingerprint the gate computed."""

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
        self.logger = get_logger("query_cache.populator")

    async def populate(self, decision: Proceed, result: ExecutionResult) -> Optional[CacheEntry]:
        """Store the response when it is cacheable; returns the written entry."""
        if decision.fingerprint is None or not result.ok:
            return None

        hints = extract_hints(result.json())
        if hints is None:
            self.logger.debug("Response carries no cache control, not cached", fingerprint=decision.fingerprint)
            return None

        entry = CacheEntry(
            payload=strip_extensions(result.body),
            created_at=self.clock(),
            duration_ms=duration_ms_for(min_max_age(hints)),
        )

        self.logger.info("SET-CACHE", fingerprint=decision.fingerprint, duration_ms=entry.duration_ms)
        try:
            await self.store.set(decision.fingerprint, entry.model_dump_json(), ttl_ms=entry.duration_ms)
        except Exception as exc:
            self.logger.error("Cache write failed, response not cached", fingerprint=decision.fingerprint, error=str(exc))
            self._count("error")
            return None

        self._count("stored")
        return entry

    def _count(self, result: str) -> None:
        if self.metrics:
            self.metrics.increment_counter("cache_writes_total", result=result)
