"""
HTTP client for the upstream GraphQL query engine.
"""

import time
from typing import Optional

import httpx

from shared.circuit_breaker import CircuitBreaker, CircuitBreakerOpenException
from shared.errors import ExecutionEngineError
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from shared.tracing import get_tracer
from ..caching.models import ExecutionResult, QueryRequest
from ..caching.pipeline import ExecutionEngine


class EngineServerError(Exception):
    """5xx from the engine; trips the breaker but is relayed to the client."""

    def __init__(self, response: httpx.Response):
        self.response = response
        super().__init__(f"Query engine returned {response.status_code}")


# Upstream headers that still describe the body once it is re-emitted.
PASSTHROUGH_HEADERS = ("content-type", "www-authenticate", "allow")


class HttpExecutionClient(ExecutionEngine):
    """Forwards queries to the engine as GraphQL-over-HTTP POSTs."""

    def __init__(
        self,
        engine_url: str,
        *,
        timeout: float = 10.0,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        metrics: Optional[MetricsCollector] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.engine_url = engine_url
        self.timeout = timeout
        self.metrics = metrics
        self.transport = transport
        self.logger = get_logger("query_cache.engine_client")
        self.tracer = get_tracer("query_cache.engine_client")
        self.circuit_breaker = CircuitBreaker(
            failure_threshold=failure_threshold,
            recovery_timeout=recovery_timeout,
            expected_exception=(httpx.HTTPError, EngineServerError),
            name="query_engine",
        )

    async def execute(self, request: QueryRequest) -> ExecutionResult:
        payload = request.engine_payload()

        async def _request() -> httpx.Response:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(self.engine_url, json=payload)
            if response.status_code >= 500:
                raise EngineServerError(response)
            return response

        start = time.perf_counter()
        with self.tracer.start_as_current_span("query_engine.execute") as span:
            span.set_attribute("graphql.operation.name", request.operation_name or "")
            try:
                response = await self.circuit_breaker.call(_request)
            except CircuitBreakerOpenException as exc:
                self.logger.warning("Query engine circuit open", url=self.engine_url)
                raise ExecutionEngineError(str(exc), {"url": self.engine_url})
            except httpx.HTTPError as exc:
                self.logger.error("Query engine request failed", url=self.engine_url, error=str(exc))
                raise ExecutionEngineError(str(exc) or exc.__class__.__name__, {"url": self.engine_url})
            except EngineServerError as exc:
                response = exc.response
            finally:
                if self.metrics:
                    self.metrics.observe_histogram("engine_request_duration_seconds", time.perf_counter() - start)
            span.set_attribute("http.status_code", response.status_code)

        headers = {
            name: value for name, value in response.headers.items()
            if name.lower() in PASSTHROUGH_HEADERS
        }
        self.logger.debug("Query engine responded", status_code=response.status_code)
        return ExecutionResult(status_code=response.status_code, body=response.text, headers=headers)
