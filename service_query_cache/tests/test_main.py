"""
Tests for the Query Cache service endpoints.
"""

import asyncio
import json

from fastapi.testclient import TestClient

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_query_cache.app.caching.fingerprint import from_payload
from service_query_cache.app.caching.models import CacheEntry, ExecutionResult
from service_query_cache.app.caching.store import MemoryStore
from service_query_cache.app.main import create_app
from service_query_cache.tests.helpers import (
    BOOKS_DATA,
    BOOKS_QUERY,
    FakeEngine,
    engine_body,
    persisted_extensions,
)
from shared.config import get_config
from shared.errors import ExecutionEngineError


def make_client(engine=None, store=None):
    app = create_app(
        get_config("query_cache", 8000, env="local"),
        store=store or MemoryStore(),
        engine=engine or FakeEngine(),
    )
    return TestClient(app)


class TestServiceEndpoints:
    """Service-level routes."""

    def test_health_check(self):
        client = make_client()
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "query_cache"
        assert data["status"] == "ok"
        assert data["dependencies"] == {"store": "memory:ok"}

    def test_metrics_endpoint(self):
        client = make_client()
        client.get("/health")
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "text/plain" in response.headers["content-type"]
        assert "http_requests_total" in response.text

    def test_cache_stats(self):
        store = MemoryStore(max_size_bytes=1000)
        client = make_client(store=store)
        response = client.get("/api/v1/cache/stats")
        assert response.status_code == 200
        assert response.json()["store"] == {
            "backend": "memory", "entries": 0, "size_bytes": 0, "max_size_bytes": 1000,
        }

    def test_request_id_is_echoed(self):
        client = make_client()
        response = client.get("/health", headers={"X-Request-ID": "req-42"})
        assert response.headers["X-Request-ID"] == "req-42"


class TestGraphQLEndpoint:
    """Caching behaviour observed over HTTP."""

    def test_post_without_hints_is_not_cached(self):
        engine = FakeEngine(ExecutionResult(200, engine_body(BOOKS_DATA)))
        client = make_client(engine)

        first = client.post("/graphql", json={"query": BOOKS_QUERY})
        second = client.post("/graphql", json={"query": BOOKS_QUERY})

        assert first.status_code == 200
        assert first.headers["X-Cache"] == "MISS"
        assert second.headers["X-Cache"] == "MISS"
        assert engine.calls == 2

    def test_post_with_hint_is_cached(self):
        store = MemoryStore()
        engine = FakeEngine(ExecutionResult(200, engine_body(BOOKS_DATA, max_ages=[65])))
        client = make_client(engine, store)

        first = client.post("/graphql", json={"query": BOOKS_QUERY})
        second = client.post("/graphql", json={"query": BOOKS_QUERY})

        assert first.headers["X-Cache"] == "MISS"
        assert second.headers["X-Cache"] == "HIT"
        assert second.json() == {"data": BOOKS_DATA}
        assert second.headers["Content-Type"] == "application/json"
        assert "Cache-Control" not in second.headers
        assert engine.calls == 1

    def test_post_hint_sets_stored_duration(self):
        store = MemoryStore()
        engine = FakeEngine(ExecutionResult(200, engine_body(BOOKS_DATA, max_ages=[65])))
        client = make_client(engine, store)

        client.post("/graphql", json={"query": BOOKS_QUERY})

        entry = CacheEntry.model_validate_json(asyncio.run(store.get(from_payload(BOOKS_QUERY))))
        assert entry.duration_ms == 65000

    def test_persisted_query_not_found(self):
        engine = FakeEngine()
        client = make_client(engine)

        response = client.get("/graphql", params={"extensions": persisted_extensions("1", "abc")})

        assert response.status_code == 200
        assert response.json() == {"errors": [{"message": "PersistedQueryNotFound"}]}
        assert engine.calls == 0

    def test_persisted_query_hit_after_registration(self):
        engine = FakeEngine(ExecutionResult(200, engine_body(BOOKS_DATA, max_ages=[60])))
        client = make_client(engine)
        extensions = persisted_extensions("1", "abc")

        first = client.get("/graphql", params={"query": BOOKS_QUERY, "extensions": extensions})
        second = client.get("/graphql", params={"extensions": extensions})

        assert first.headers["X-Cache"] == "MISS"
        assert second.headers["X-Cache"] == "HIT"
        assert second.json() == {"data": BOOKS_DATA}
        directives = dict(
            part.strip().split("=") if "=" in part else (part.strip(), None)
            for part in second.headers["Cache-Control"].split(",")
        )
        assert "public" in directives
        assert 0 <= int(directives["max-age"]) <= 60
        assert directives["s-maxage"] == directives["max-age"]
        assert engine.calls == 1

    def test_invalid_descriptor_is_treated_as_absent(self):
        engine = FakeEngine()
        client = make_client(engine)

        response = client.get("/graphql", params={"query": BOOKS_QUERY, "extensions": "{not json"})

        assert response.status_code == 200
        assert response.headers["X-Cache"] == "MISS"
        assert engine.calls == 1
        assert engine.requests[0].descriptor is None

    def test_empty_descriptor_version_is_treated_as_absent(self):
        engine = FakeEngine()
        client = make_client(engine)

        response = client.get("/graphql", params={"extensions": persisted_extensions("", "abc")})

        assert response.status_code == 200
        assert response.headers["X-Cache"] == "MISS"
        assert engine.calls == 1
        assert engine.requests[0].descriptor is None

    def test_get_variables_are_decoded(self):
        engine = FakeEngine()
        client = make_client(engine)

        client.get("/graphql", params={"query": BOOKS_QUERY, "variables": json.dumps({"id": "1"}), "operationName": "Books"})

        forwarded = engine.requests[0]
        assert forwarded.variables == {"id": "1"}
        assert forwarded.operation_name == "Books"

    def test_invalid_get_variables_rejected(self):
        client = make_client()
        response = client.get("/graphql", params={"query": BOOKS_QUERY, "variables": "{oops"})
        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_post_body_must_be_object(self):
        client = make_client()
        response = client.post("/graphql", json=[{"query": BOOKS_QUERY}])
        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_post_forwards_extensions_to_engine(self):
        engine = FakeEngine()
        client = make_client(engine)
        extensions = {"persistedQuery": {"version": 1, "sha256Hash": "abc"}}

        client.post("/graphql", json={"query": BOOKS_QUERY, "extensions": extensions})

        assert engine.requests[0].engine_payload() == {"query": BOOKS_QUERY, "extensions": extensions}

    def test_engine_error_status_passes_through(self):
        error_body = '{"errors":[{"message":"Syntax Error: Expected Name, found <EOF>"}]}'
        engine = FakeEngine(ExecutionResult(400, error_body, {"content-type": "application/json"}))
        client = make_client(engine)

        response = client.post("/graphql", json={"query": "{ books {"})

        assert response.status_code == 400
        assert response.text == error_body
        assert "X-Cache" not in response.headers

    def test_engine_unavailable_is_bad_gateway(self):
        class DownEngine(FakeEngine):
            async def execute(self, request):
                raise ExecutionEngineError("Connection refused")

        client = make_client(DownEngine())

        response = client.post("/graphql", json={"query": BOOKS_QUERY})

        assert response.status_code == 502
        assert response.json()["code"] == "EXTERNAL_SERVICE_ERROR"

    def test_cache_metrics_are_exported(self):
        engine = FakeEngine(ExecutionResult(200, engine_body(BOOKS_DATA, max_ages=[65])))
        client = make_client(engine)

        client.post("/graphql", json={"query": BOOKS_QUERY})
        client.post("/graphql", json={"query": BOOKS_QUERY})

        text = client.get("/metrics").text
        assert 'cache_hits_total{fingerprint_type="payload"} 1.0' in text
        assert 'cache_misses_total{fingerprint_type="payload"} 1.0' in text
        assert 'cache_writes_total{result="stored"} 1.0' in text
