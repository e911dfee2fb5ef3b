"""
Shared utilities for the User Directory service.

This package holds the building blocks the service is assembled from:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Closed error taxonomy and error responses
- base_service: FastAPI application shell and HTTP error mapping

Do not import from service_* packages into shared/.
"""
