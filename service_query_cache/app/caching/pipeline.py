"""
Request handling as explicit composition: gate -> engine -> populator.
"""

from abc import ABC, abstractmethod
from typing import Dict, Optional

from shared.logging import get_logger
from .gate import CacheGate
from .models import ExecutionResult, QueryRequest, QueryResponse, strip_extensions
from .populator import CachePopulator


class ExecutionEngine(ABC):
    """The query engine the cache sits in front of."""

    @abstractmethod
    async def execute(self, request: QueryRequest) -> ExecutionResult:
        """Run the query; raise ExecutionEngineError when no response exists."""


def _emission_headers(body: str, cache_hit: bool, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    headers = dict(extra or {})
    headers["X-Cache"] = "HIT" if cache_hit else "MISS"
    headers["Content-Type"] = "application/json"
    headers["Content-Length"] = str(len(body.encode("utf-8")))
    return headers


class QueryPipeline:
    """Answers a query request from the cache or the engine."""

    def __init__(self, gate: CacheGate, engine: ExecutionEngine, populator: CachePopulator):
        self.gate = gate
        self.engine = engine
        self.populator = populator
        self.logger = get_logger("query_cache.pipeline")

    async def handle(self, request: QueryRequest) -> QueryResponse:
        decision = await self.gate.check(request)
        if isinstance(decision, QueryResponse):
            return QueryResponse(
                body=decision.body,
                status_code=decision.status_code,
                headers=_emission_headers(decision.body, decision.cache_hit, decision.headers),
                cache_hit=decision.cache_hit,
            )

        result = await self.engine.execute(request)
        if not result.ok:
            # Engine errors reach the client untouched.
            self.logger.info("Query engine returned an error", status_code=result.status_code)
            return QueryResponse(body=result.body, status_code=result.status_code, headers=dict(result.headers))

        await self.populator.populate(decision, result)

        body = strip_extensions(result.body)
        return QueryResponse(
            body=body,
            status_code=result.status_code,
            headers=_emission_headers(body, cache_hit=False),
        )
