from __future__ import annotations

from typing import Optional

from fastapi import Depends, Query
from sqlalchemy.orm import Session

from recordstore.api.deps import get_association_index, get_db, get_handler
from recordstore.api.routers.resources import build_resource_router, split_csv
from recordstore.api.schemas import UserIn, UserPatch, UserPostIn
from recordstore.services.associations import AssociationIndex
from recordstore.services.resource_handler import ResourceHandler, to_payload

router = build_resource_router(
    prefix="/users",
    collection="User",
    create_model=UserIn,
    update_model=UserPatch,
    tags=["users"],
)


@router.get("/{user_id}/posts")
def list_user_posts(
    user_id: int,
    order: Optional[str] = Query(default=None),
    limit: Optional[int] = Query(default=None, ge=0),
    offset: Optional[int] = Query(default=None, ge=0),
    db: Session = Depends(get_db),
    users: ResourceHandler = Depends(get_handler("User")),
    assoc: AssociationIndex = Depends(get_association_index),
):
    users.retrieve(db, user_id)
    posts = assoc.children_of(db, user_id, "Post", parent="User", order=split_csv(order), limit=limit, offset=offset)
    return [to_payload(p) for p in posts]


@router.post("/{user_id}/posts", status_code=201)
def create_user_post(
    user_id: int,
    req: UserPostIn,
    db: Session = Depends(get_db),
    users: ResourceHandler = Depends(get_handler("User")),
    assoc: AssociationIndex = Depends(get_association_index),
):
    users.retrieve(db, user_id)
    post = assoc.create_child(db, user_id, req.model_dump(), child="Post", parent="User")
    return to_payload(post)
