"""
Record API: generic tenant-scoped CRUD operations and their HTTP surface.

- services/crud: operation factory, tenant resolution, validation,
  idempotency cache, lifecycle hooks, revalidation, storage
- routers: FastAPI router exposing an operation set
"""

__version__ = "1.0.0"
