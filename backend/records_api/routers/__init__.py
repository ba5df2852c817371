"""HTTP routers for record operations."""

from .crud import build_crud_router

__all__ = ["build_crud_router"]
