"""
End-to-end flow: query cache service in front of the mock GraphQL engine.
"""

import hashlib
import json

import httpx
import pytest
from fastapi.testclient import TestClient

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from mocks.graphql_engine.server import MockGraphQLEngine
from service_query_cache.app.adapters.execution_client import HttpExecutionClient
from service_query_cache.app.caching.store import MemoryStore
from service_query_cache.app.main import create_app
from shared.config import get_config


BOOKS_QUERY = "{ books { title author } }"


@pytest.fixture
def engine():
    return MockGraphQLEngine()


@pytest.fixture
def client(engine):
    execution_client = HttpExecutionClient(
        "http://engine/graphql",
        transport=httpx.ASGITransport(app=engine.app),
    )
    app = create_app(get_config("query_cache", 8000), store=MemoryStore(), engine=execution_client)
    return TestClient(app)


class TestCacheFlow:
    """Full request flow through the cache and the engine."""

    def test_post_is_executed_once(self, client, engine):
        first = client.post("/graphql", json={"query": BOOKS_QUERY})
        second = client.post("/graphql", json={"query": "{books{title author}}"})

        assert first.status_code == 200
        assert first.headers["X-Cache"] == "MISS"
        assert "extensions" not in first.json()
        assert first.json()["data"]["books"][1]["title"] == "Jurassic Park"
        assert second.headers["X-Cache"] == "HIT"
        assert second.json() == first.json()
        assert engine.executions == 1

    def test_automatic_persisted_query_round(self, client, engine):
        sha = hashlib.sha256(BOOKS_QUERY.encode("utf-8")).hexdigest()
        extensions = json.dumps({"persistedQuery": {"version": 1, "sha256Hash": sha}})

        not_found = client.get("/graphql", params={"extensions": extensions})
        registered = client.get("/graphql", params={"query": BOOKS_QUERY, "extensions": extensions})
        hit = client.get("/graphql", params={"extensions": extensions})

        assert not_found.json() == {"errors": [{"message": "PersistedQueryNotFound"}]}
        assert registered.headers["X-Cache"] == "MISS"
        assert hit.headers["X-Cache"] == "HIT"
        assert hit.headers["Cache-Control"].startswith("public, max-age=")
        assert hit.json() == registered.json()
        assert engine.executions == 1

    def test_engine_errors_are_not_cached(self, client, engine):
        first = client.post("/graphql", json={"query": "{ authors { name } }"})
        second = client.post("/graphql", json={"query": "{ authors { name } }"})

        assert "errors" in first.json()
        assert second.headers["X-Cache"] == "MISS"
