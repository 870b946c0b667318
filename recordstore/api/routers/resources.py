from typing import List, Optional, Type

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from recordstore.api.deps import get_db, get_handler
from recordstore.services.resource_handler import ResourceHandler


def split_csv(raw: Optional[str]) -> Optional[List[str]]:
    if raw is None:
        return None
    return [part.strip() for part in raw.split(",") if part.strip()]


def build_resource_router(
    *,
    prefix: str,
    collection: str,
    create_model: Type[BaseModel],
    update_model: Type[BaseModel],
    tags: Optional[List[str]] = None,
) -> APIRouter:
    """Mount create/list/retrieve/update/destroy for one collection under `prefix`."""

    router = APIRouter(prefix=prefix, tags=tags or [collection.lower()])
    handler_dep = get_handler(collection)

    @router.post("", status_code=201)
    def create_record(
        req: create_model,
        db: Session = Depends(get_db),
        handler: ResourceHandler = Depends(handler_dep),
    ):
        return handler.create(db, req.model_dump())

    @router.get("")
    def list_records(
        request: Request,
        order: Optional[str] = Query(default=None, description="Comma-separated fields; prefix with - for descending"),
        limit: Optional[int] = Query(default=None, ge=0),
        offset: Optional[int] = Query(default=None, ge=0),
        include: Optional[str] = Query(default=None, description="Comma-separated association names"),
        db: Session = Depends(get_db),
        handler: ResourceHandler = Depends(handler_dep),
    ):
        return handler.list(
            db,
            query=request.query_params,
            order=split_csv(order),
            limit=limit,
            offset=offset,
            include=split_csv(include),
        )

    @router.get("/{record_id}")
    def get_record(
        record_id: int,
        include: Optional[str] = Query(default=None),
        db: Session = Depends(get_db),
        handler: ResourceHandler = Depends(handler_dep),
    ):
        return handler.retrieve(db, record_id, include=split_csv(include))

    @router.put("/{record_id}")
    def update_record(
        record_id: int,
        req: update_model,
        db: Session = Depends(get_db),
        handler: ResourceHandler = Depends(handler_dep),
    ):
        return handler.update(db, record_id, req.model_dump(exclude_unset=True))

    @router.delete("/{record_id}")
    def delete_record(
        record_id: int,
        db: Session = Depends(get_db),
        handler: ResourceHandler = Depends(handler_dep),
    ):
        return handler.destroy(db, record_id)

    return router
