"""
Infrastructure module: Database and request correlation.

Provides:
- Engines, sessions and transactions (db.py)
- Correlation IDs for log grouping (correlation.py)
"""

from shared.infrastructure.db import (
    build_engine,
    get_engine,
    make_session_factory,
    session_scope,
    safe_commit,
)
from shared.infrastructure.correlation import (
    CorrelationIdMiddleware,
    CorrelationIdFilter,
    bind_request_id,
    correlation_metadata,
    get_request_id,
)

__all__ = [
    # db
    "build_engine",
    "get_engine",
    "make_session_factory",
    "session_scope",
    "safe_commit",
    # correlation
    "CorrelationIdMiddleware",
    "CorrelationIdFilter",
    "bind_request_id",
    "correlation_metadata",
    "get_request_id",
]
