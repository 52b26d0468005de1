"""
Data models for the response cache.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class CacheEntry(BaseModel):
    """A stored response; never mutated once written."""

    model_config = ConfigDict(frozen=True)

    payload: str
    created_at: int = Field(description="Epoch milliseconds at write time")
    duration_ms: int = Field(ge=1000)

    def remaining_seconds(self, now_ms: int) -> int:
        """Seconds of freshness left, rounded, as advertised to CDNs."""
        remaining = round(self.duration_ms / 1000 - (now_ms - self.created_at) / 1000)
        return max(0, remaining)


@dataclass(frozen=True)
class PersistedQueryDescriptor:
    """Client-supplied reference to a registered query."""
    version: str
    sha256_hash: str


@dataclass(frozen=True)
class QueryRequest:
    """Immutable view of an inbound query request."""
    method: str
    query: Optional[str] = None
    variables: Optional[Dict[str, Any]] = None
    operation_name: Optional[str] = None
    extensions: Optional[Dict[str, Any]] = None
    descriptor: Optional[PersistedQueryDescriptor] = None

    @property
    def has_query(self) -> bool:
        return bool(self.query)

    def engine_payload(self) -> Dict[str, Any]:
        """Body forwarded to the query engine."""
        payload: Dict[str, Any] = {}
        if self.query:
            payload["query"] = self.query
        if self.variables is not None:
            payload["variables"] = self.variables
        if self.operation_name:
            payload["operationName"] = self.operation_name
        if self.extensions is not None:
            payload["extensions"] = self.extensions
        return payload


@dataclass(frozen=True)
class QueryResponse:
    """Response handed back to the transport."""
    body: str
    status_code: int = 200
    headers: Dict[str, str] = field(default_factory=dict)
    cache_hit: bool = False


@dataclass(frozen=True)
class Proceed:
    """Instruction to execute the query; fingerprint is set when cacheable."""
    fingerprint: Optional[str] = None
    fingerprint_type: Optional[str] = None


@dataclass(frozen=True)
class ExecutionResult:
    """What the query engine returned."""
    status_code: int
    body: str
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def json(self) -> Optional[Dict[str, Any]]:
        """Decoded body, or None when it is not a JSON object."""
        try:
            data = json.loads(self.body)
        except (TypeError, ValueError):
            return None
        return data if isinstance(data, dict) else None


def strip_extensions(body: str) -> str:
    """Remove top-level `extensions` from a JSON response body."""
    try:
        data = json.loads(body)
    except (TypeError, ValueError):
        return body
    if not isinstance(data, dict) or "extensions" not in data:
        return body
    data.pop("extensions")
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False)
