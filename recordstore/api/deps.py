from __future__ import annotations

from fastapi import Request
from sqlalchemy.orm import Session

from recordstore.services.associations import AssociationIndex
from recordstore.services.resource_handler import ResourceHandler


def get_db(request: Request):
    SessionLocal = request.app.state.db_sessionmaker
    db: Session = SessionLocal()  # type: ignore
    try:
        yield db
    finally:
        db.close()


def get_association_index(request: Request) -> AssociationIndex:
    return request.app.state.association_index


def get_handler(collection: str):
    """Dependency returning the resource handler mounted for `collection`."""

    def _inner(request: Request) -> ResourceHandler:
        return request.app.state.resource_handlers[collection]

    return _inner
