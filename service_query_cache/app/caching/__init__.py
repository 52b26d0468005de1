"""
Response caching package.

Requests are fingerprinted, looked up in an injected key/value store and
either answered from it or forwarded to the query engine, whose response is
stored for as long as its freshness hints allow.
"""

from .fingerprint import from_descriptor, from_payload, parse_descriptor
from .gate import CacheGate
from .models import CacheEntry, ExecutionResult, PersistedQueryDescriptor, Proceed, QueryRequest, QueryResponse
from .pipeline import ExecutionEngine, QueryPipeline
from .populator import CachePopulator
from .store import KeyValueStore, MemoryStore, RedisStore, create_store

__all__ = [
    "CacheEntry",
    "CacheGate",
    "CachePopulator",
    "ExecutionEngine",
    "ExecutionResult",
    "KeyValueStore",
    "MemoryStore",
    "PersistedQueryDescriptor",
    "Proceed",
    "QueryPipeline",
    "QueryRequest",
    "QueryResponse",
    "RedisStore",
    "create_store",
    "from_descriptor",
    "from_payload",
    "parse_descriptor",
]
