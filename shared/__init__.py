"""
Shared utilities for the Storefront backend.

This package aggregates common building blocks consumed by the services:

- config: Service configuration via pydantic-settings
- logging: Structured logging with trace correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- retry: Retry decorators and backoff calculation
- base_service: FastAPI application scaffolding

Do not import from service_* packages into shared/.
"""
