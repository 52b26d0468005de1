"""
Fakes and builders shared by the Query Cache tests.
"""

import json
from typing import Any, Dict, List, Optional

from service_query_cache.app.caching.models import ExecutionResult, QueryRequest
from service_query_cache.app.caching.pipeline import ExecutionEngine


BOOKS_QUERY = "{ books { title } }"
BOOKS_DATA = {"books": [{"title": "Harry Potter and the Sorcerer's stone"}, {"title": "Jurassic Park"}]}


class FakeClock:
    """Manually advanced clock; call returns the current reading."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def millis(self) -> int:
        return int(self.now * 1000)


class FakeEngine(ExecutionEngine):
    """Engine returning a canned result and recording every request."""

    def __init__(self, result: Optional[ExecutionResult] = None):
        self.result = result or ExecutionResult(status_code=200, body=engine_body(BOOKS_DATA))
        self.requests: List[QueryRequest] = []

    @property
    def calls(self) -> int:
        return len(self.requests)

    async def execute(self, request: QueryRequest) -> ExecutionResult:
        self.requests.append(request)
        return self.result


def engine_body(data: Any, max_ages: Optional[List[int]] = None, **extensions: Any) -> str:
    """Serialize an engine response; max_ages become cacheControl hints."""
    body: Dict[str, Any] = {"data": data}
    if max_ages is not None:
        extensions["cacheControl"] = {
            "version": 1,
            "hints": [{"path": ["books"], "maxAge": age} for age in max_ages],
        }
    if extensions:
        body["extensions"] = extensions
    return json.dumps(body)


def persisted_extensions(version: str = "1", sha256_hash: str = "abc") -> str:
    """GET query-string encoding of a persisted query descriptor."""
    return json.dumps({"persistedQuery": {"version": version, "sha256Hash": sha256_hash}})
