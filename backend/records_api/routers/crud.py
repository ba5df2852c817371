"""
Record management endpoints.

build_crud_router() exposes an operation set over HTTP. The caller
identity comes from an app-supplied dependency and is bound per request,
so the operation set itself stays shared (including its idempotency
cache). Errors are HTTPExceptions and map to status codes on their own.
Install CorrelationIdMiddleware on the app so hooks see the request id in
their OperationContext metadata.

Usage:
    def current_user_id(request: Request) -> str | None:
        return request.state.user_id

    app.add_middleware(CorrelationIdMiddleware)
    app.include_router(build_crud_router(
        contacts,
        identity_dependency=current_user_id,
        filter_columns=["status", "company_id"],
    ))
"""

from typing import Any, Callable, Literal, Sequence

from fastapi import APIRouter, Body, Depends, Header, Query, Request, status

from records_api.services.crud.factory import CRUDOperations, QueryOptions
from records_api.services.crud.storage import Record
from records_api.services.crud.tenant import StaticIdentityProvider


def build_crud_router(
    operations: CRUDOperations,
    *,
    identity_dependency: Callable[..., Any],
    prefix: str = "",
    tags: list[str] | None = None,
    filter_columns: Sequence[str] = (),
) -> APIRouter:
    """
    Router with list/get/create/update/delete endpoints for a collection.

    Query parameters named in ``filter_columns`` become equality filters on
    the list endpoint (e.g. ``GET /contacts?status=active``). Other unknown
    query parameters are ignored.

    Archive and unarchive endpoints are added only for collections with
    soft delete.
    """
    collection = operations.collection
    base = f"/{collection}"
    router = APIRouter(prefix=prefix, tags=tags or [collection])
    filterable = tuple(filter_columns)

    def bound_operations(user_id: str | None = Depends(identity_dependency)) -> CRUDOperations:
        return operations.for_identity(StaticIdentityProvider(user_id))

    @router.get(base)
    async def list_records(
        request: Request,
        limit: int | None = Query(default=None, ge=0),
        offset: int | None = Query(default=None, ge=0),
        sort_by: str | None = None,
        sort_order: Literal["asc", "desc"] | None = None,
        include_archived: bool | None = None,
        ops: CRUDOperations = Depends(bound_operations),
    ) -> list[Record]:
        """List the caller's records."""
        filters = {name: request.query_params[name] for name in filterable if name in request.query_params}
        return await ops.list_all(
            QueryOptions(
                filters=filters or None,
                sort_by=sort_by,
                sort_order=sort_order,
                limit=limit,
                offset=offset,
                include_archived=include_archived,
            )
        )

    @router.get(base + "/{record_id}")
    async def get_record(
        record_id: str,
        ops: CRUDOperations = Depends(bound_operations),
    ) -> Record:
        """Get a specific record."""
        return await ops.get_one(record_id)

    @router.post(base, status_code=status.HTTP_201_CREATED)
    async def create_record(
        payload: dict[str, Any] = Body(...),
        idempotency_key: str | None = Header(default=None),
        ops: CRUDOperations = Depends(bound_operations),
    ) -> Record:
        """Create a record owned by the caller."""
        return await ops.create(payload, idempotency_key=idempotency_key)

    @router.patch(base + "/{record_id}")
    async def update_record(
        record_id: str,
        payload: dict[str, Any] = Body(...),
        idempotency_key: str | None = Header(default=None),
        ops: CRUDOperations = Depends(bound_operations),
    ) -> Record:
        """Partially update a record."""
        return await ops.update(record_id, payload, idempotency_key=idempotency_key)

    @router.delete(base + "/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def delete_record(
        record_id: str,
        ops: CRUDOperations = Depends(bound_operations),
    ) -> None:
        """Delete a record (archive when the collection has soft delete)."""
        await ops.delete(record_id)

    if operations.supports_archive:

        @router.post(base + "/{record_id}/archive", status_code=status.HTTP_204_NO_CONTENT)
        async def archive_record(
            record_id: str,
            ops: CRUDOperations = Depends(bound_operations),
        ) -> None:
            """Archive a record."""
            await ops.archive(record_id)

        @router.post(base + "/{record_id}/unarchive", status_code=status.HTTP_204_NO_CONTENT)
        async def unarchive_record(
            record_id: str,
            ops: CRUDOperations = Depends(bound_operations),
        ) -> None:
            """Restore an archived record."""
            await ops.unarchive(record_id)

    return router
