from __future__ import annotations

from fastapi import Depends, HTTPException
from sqlalchemy.orm import Session

from recordstore.api.deps import get_association_index, get_db, get_handler
from recordstore.api.routers.resources import build_resource_router
from recordstore.api.schemas import PostIn, PostPatch
from recordstore.services.associations import AssociationIndex
from recordstore.services.resource_handler import ResourceHandler, to_payload

router = build_resource_router(
    prefix="/posts",
    collection="Post",
    create_model=PostIn,
    update_model=PostPatch,
    tags=["posts"],
)


@router.get("/{post_id}/user")
def get_post_author(
    post_id: int,
    db: Session = Depends(get_db),
    posts: ResourceHandler = Depends(get_handler("Post")),
    assoc: AssociationIndex = Depends(get_association_index),
):
    post = posts.retrieve(db, post_id)
    user = assoc.parent_of(db, post, "User", child="Post")
    if user is None:
        raise HTTPException(status_code=404, detail="Post has no author")
    return to_payload(user)
