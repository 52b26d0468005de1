"""
Shared utilities for the Query Cache service.

This package holds the building blocks the service is assembled from:

- config: Service configuration via pydantic-settings
- logging: Structured logging with trace and request correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- circuit_breaker: Protection for calls to the upstream query engine
- base_service: FastAPI application skeleton

Do not import from service_* packages into shared/.
"""
