"""
Shared utilities for the Access Layer authorization service.

This package aggregates common building blocks consumed by the services:

- config: Service configuration via pydantic-settings
- logging: Structured logging with trace correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- base_service: FastAPI service skeleton (health, metrics, error handlers)
- test_helpers: factories for policy models, used only by the test suites

Any cross-service logic should live here to avoid import cycles across
service packages. Runtime modules in shared/ never import service packages;
test_helpers is the exception, since it builds service models for tests and
is never imported by service code.
"""
