"""
Mock GraphQL engine emitting cache control hints, for local runs of the cache.
"""

import hashlib
import re
import time
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request

from shared.logging import get_logger


BOOKS = [
    {"title": "Harry Potter and the Sorcerer's stone", "author": "J.K. Rowling"},
    {"title": "Jurassic Park", "author": "Michael Crichton"},
]

BOOK_MAX_AGE = 65
FIELD_PATTERN = re.compile(r"\{\s*(\w+)\s*(?:\(([^)]*)\))?\s*\{([^{}]*)\}")


class MockGraphQLEngine:
    """Answers `books` and `bookByTitle` with Apollo-style cacheControl extensions."""

    def __init__(self, tracing: bool = True):
        self.tracing = tracing
        self.logger = get_logger("mock.graphql_engine")
        self.app = FastAPI(title="Mock GraphQL Engine", version="1.0.0")
        self.persisted: Dict[str, str] = {}
        self.executions = 0
        self._setup_routes()

    def _setup_routes(self):
        @self.app.post("/graphql")
        async def graphql(request: Request):
            body = await request.json()
            query = body.get("query")
            persisted = (body.get("extensions") or {}).get("persistedQuery") or {}
            sha256_hash = persisted.get("sha256Hash")

            if query and sha256_hash:
                if hashlib.sha256(query.encode("utf-8")).hexdigest() != sha256_hash:
                    return {"errors": [{"message": "provided sha does not match query"}]}
                self.persisted[sha256_hash] = query
            elif not query and sha256_hash:
                query = self.persisted.get(sha256_hash)
                if query is None:
                    return {"errors": [{"message": "PersistedQueryNotFound"}]}

            if not query:
                return {"errors": [{"message": "Must provide query string."}]}
            return self.execute(query)

    def execute(self, query: str) -> Dict[str, Any]:
        """Resolve the first root field of the query."""
        self.executions += 1
        started = time.time()
        match = FIELD_PATTERN.search(query)
        if not match:
            return {"errors": [{"message": "Syntax Error: unsupported query"}]}

        field, _args, selection = match.groups()
        fields = selection.split()

        hints: List[Dict[str, Any]] = []
        data: Optional[Any]
        if field == "books":
            data = [self._select(book, fields) for book in BOOKS]
            hints = [{"path": ["books", index], "maxAge": BOOK_MAX_AGE} for index in range(len(BOOKS))]
        elif field == "bookByTitle":
            data = None
            hints = [{"path": ["bookByTitle"], "maxAge": BOOK_MAX_AGE}]
        else:
            return {"errors": [{"message": f'Cannot query field "{field}" on type "Query".'}]}

        extensions: Dict[str, Any] = {"cacheControl": {"version": 1, "hints": hints}}
        if self.tracing:
            extensions["tracing"] = {"version": 1, "duration": int((time.time() - started) * 1e9)}

        self.logger.info("Executed query", field=field, executions=self.executions)
        return {"data": {field: data}, "extensions": extensions}

    @staticmethod
    def _select(book: Dict[str, Any], fields: List[str]) -> Dict[str, Any]:
        row = dict(book, date=str(int(time.time() * 1000)))
        return {name: row.get(name) for name in fields}


def create_app():
    """Create mock GraphQL engine application."""
    server = MockGraphQLEngine()
    return server.app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(create_app(), host="0.0.0.0", port=4000)
