"""
Query Cache Service package.

The service fronts a GraphQL query engine and answers repeated queries from a
response cache:
- Fingerprinting: full query text or persisted-query descriptors
- Cache gate: short-circuits hits, signals PersistedQueryNotFound
- Cache populator: stores responses for as long as the engine's hints allow
- CDN signalling: Cache-Control for persisted-query GET hits

Structure:
- app.main: FastAPI app, routes, and wiring of store, engine and pipeline.
- app.adapters: HTTP client for the upstream query engine.
- app.caching: Store backends, fingerprints, gate, populator and pipeline.
"""
