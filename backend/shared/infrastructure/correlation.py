"""
Request correlation.

A request id is kept in a contextvar for the lifetime of one request (or
one CLI/job run). Log records pick it up through CorrelationIdFilter and
record operations copy it into OperationContext.metadata, so hook side
effects (audit rows, outbox events) can be traced back to the request.

Usage:
    app = FastAPI()
    app.add_middleware(CorrelationIdMiddleware)
    app.include_router(build_crud_router(contacts, identity_dependency=current_user_id))
"""

import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Callable, Iterator

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

REQUEST_ID_HEADER = "X-Request-ID"

# Empty outside of a request
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


def get_request_id() -> str:
    """Request id of the current context, or "" when none is bound."""
    return request_id_var.get()


def correlation_metadata() -> dict[str, Any]:
    """``{"request_id": ...}`` when a request id is bound, else ``{}``."""
    request_id = request_id_var.get()
    return {"request_id": request_id} if request_id else {}


@contextmanager
def bind_request_id(request_id: str | None = None) -> Iterator[str]:
    """
    Bind a request id for work outside HTTP (CLI commands, jobs).

    Usage:
        with bind_request_id() as request_id:
            await contacts.create(payload)
    """
    request_id = request_id or str(uuid.uuid4())
    token = request_id_var.set(request_id)
    try:
        yield request_id
    finally:
        request_id_var.reset(token)


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """
    Binds the incoming X-Request-ID (or a fresh UUID) for the request and
    echoes it in the response headers.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        with bind_request_id(request.headers.get(REQUEST_ID_HEADER)) as request_id:
            request.state.request_id = request_id
            response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class CorrelationIdFilter:
    """
    Logging filter that sets ``record.request_id`` ("-" outside a request).

    Usage:
        handler.addFilter(CorrelationIdFilter())
    """

    def filter(self, record) -> bool:
        record.request_id = request_id_var.get() or "-"
        return True
