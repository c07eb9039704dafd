"""
Shared utilities for the Gate Access platform.

This package aggregates common building blocks consumed by services:

- config: Service configuration via pydantic-settings
- logging: Structured logging with trace correlation
- metrics: Prometheus metrics helpers
- tracing: OpenTelemetry tracing config
- observability: Business event hooks combining the three above
- errors: Canonical error types and responses
- retry: Retry decorator for idempotent collaborator calls
- circuit_breaker: Resilient external call protection

Do not import from service packages into shared/.
"""
