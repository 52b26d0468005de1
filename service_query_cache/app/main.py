"""
Query Cache service: a response cache in front of a GraphQL engine.
"""

import json
from typing import Any, Dict, Optional

from fastapi import Query, Request, Response

from shared.base_service import BaseService
from shared.config import ServiceConfig
from shared.errors import InvalidDescriptor, InvalidQueryRequest
from shared.logging import set_operation_name
from .adapters.execution_client import HttpExecutionClient
from .caching.fingerprint import parse_descriptor
from .caching.gate import CacheGate
from .caching.models import QueryRequest, QueryResponse
from .caching.pipeline import ExecutionEngine, QueryPipeline
from .caching.populator import CachePopulator
from .caching.store import KeyValueStore, create_store


class QueryCacheService(BaseService):
    """GraphQL endpoint answering repeated queries from the response cache."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        *,
        store: Optional[KeyValueStore] = None,
        engine: Optional[ExecutionEngine] = None,
    ):
        super().__init__("query_cache", 8000, config=config)
        self.store = store or create_store(self.config)
        self.engine = engine or HttpExecutionClient(
            self.config.engine_url,
            timeout=self.config.engine_timeout_seconds,
            failure_threshold=self.config.engine_failure_threshold,
            recovery_timeout=self.config.engine_recovery_timeout,
            metrics=self.metrics,
        )
        self.pipeline = QueryPipeline(
            gate=CacheGate(self.store, metrics=self.metrics),
            engine=self.engine,
            populator=CachePopulator(self.store, metrics=self.metrics),
        )

        @self.app.on_event("shutdown")
        async def _shutdown():
            await self.store.close()

        self._setup_query_routes()

        self.app.state.query_cache_service = self

    def _setup_query_routes(self):
        """Set up GraphQL and cache introspection routes."""

        @self.app.get("/graphql")
        async def graphql_get(
            query: Optional[str] = Query(None),
            variables: Optional[str] = Query(None),
            operation_name: Optional[str] = Query(None, alias="operationName"),
            extensions: Optional[str] = Query(None),
        ):
            """Execute a query sent in the query string (persisted queries)."""
            request = self.build_request(
                "GET",
                query=query,
                variables=self._decode_json_param("variables", variables),
                operation_name=operation_name,
                extensions=extensions,
            )
            return self._to_response(await self.pipeline.handle(request))

        @self.app.post("/graphql")
        async def graphql_post(http_request: Request):
            """Execute a query sent as a JSON body."""
            try:
                body = await http_request.json()
            except ValueError:
                raise InvalidQueryRequest("Request body must be JSON")
            if not isinstance(body, dict):
                raise InvalidQueryRequest("Request body must be a JSON object")

            variables = body.get("variables")
            if isinstance(variables, str):
                variables = self._decode_json_param("variables", variables)
            if variables is not None and not isinstance(variables, dict):
                raise InvalidQueryRequest("variables must be an object")

            query = body.get("query")
            if query is not None and not isinstance(query, str):
                raise InvalidQueryRequest("query must be a string")

            request = self.build_request(
                "POST",
                query=query,
                variables=variables,
                operation_name=body.get("operationName"),
                extensions=body.get("extensions"),
            )
            return self._to_response(await self.pipeline.handle(request))

        @self.app.get("/api/v1/cache/stats")
        async def cache_stats():
            """Response cache statistics."""
            stats = await self.store.stats()
            breaker = getattr(self.engine, "circuit_breaker", None)
            return {
                "store": stats,
                "engine_circuit": breaker.get_state() if breaker else None,
            }

    def build_request(
        self,
        method: str,
        *,
        query: Optional[str],
        variables: Optional[Dict[str, Any]],
        operation_name: Optional[str],
        extensions: Any,
    ) -> QueryRequest:
        """Immutable request view; a malformed descriptor counts as absent."""
        set_operation_name(operation_name)

        try:
            descriptor = parse_descriptor(extensions)
        except InvalidDescriptor as exc:
            self.logger.info("Ignoring invalid persisted query descriptor", error=exc.message, details=exc.details)
            descriptor = None

        if isinstance(extensions, str):
            try:
                extensions = json.loads(extensions)
            except ValueError:
                extensions = None
        if not isinstance(extensions, dict):
            extensions = None

        return QueryRequest(
            method=method,
            query=query,
            variables=variables,
            operation_name=operation_name,
            extensions=extensions,
            descriptor=descriptor,
        )

    @staticmethod
    def _decode_json_param(name: str, value: Optional[str]) -> Optional[Dict[str, Any]]:
        if not value:
            return None
        try:
            decoded = json.loads(value)
        except ValueError:
            raise InvalidQueryRequest(f"{name} must be valid JSON")
        if not isinstance(decoded, dict):
            raise InvalidQueryRequest(f"{name} must be a JSON object")
        return decoded

    @staticmethod
    def _to_response(result: QueryResponse) -> Response:
        return Response(content=result.body, status_code=result.status_code, headers=result.headers)

    async def _check_dependencies(self) -> Dict[str, str]:
        stats = await self.store.stats()
        return {"store": f"{stats['backend']}:{'error' if 'error' in stats else 'ok'}"}


def create_app(
    config: Optional[ServiceConfig] = None,
    *,
    store: Optional[KeyValueStore] = None,
    engine: Optional[ExecutionEngine] = None,
):
    """Create FastAPI application."""
    service = QueryCacheService(config, store=store, engine=engine)
    return service.app


if __name__ == "__main__":
    service = QueryCacheService()
    service.run()
