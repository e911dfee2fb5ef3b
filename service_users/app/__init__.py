"""
User Directory Service package.

This package manages user records (create, read, update, delete) with
PostgreSQL as the authoritative store and an optional Redis cache in
front of it. It provides:

- app.main: API surface for user records and health.
- app.service: Cache-aside orchestration between store and cache.
- app.cache: Redis-backed mirror of individual user records.
- app.persistence: PostgreSQL storage and schema migrations.

Guidelines:
- The service is stateless; rely on external cache/DB.
- The cache is an accelerator only; the store is the source of truth.
- Every failure leaving the service layer carries a domain error kind.
"""
