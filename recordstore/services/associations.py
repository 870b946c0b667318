from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional

from sqlalchemy.orm import Session

from recordstore.services.collections import Association, CollectionRef
from recordstore.services.record_store import (
    LinkTargetNotFound,
    NotFoundError,
    Order,
    Record,
    RecordStore,
    ValidationError,
)

logger = logging.getLogger(__name__)


class AssociationIndex:
    """Traversal over the one-to-many associations declared in the registry."""

    def __init__(self, store: RecordStore) -> None:
        self.store = store
        self.registry = store.registry

    def association(self, parent: Optional[CollectionRef], child: CollectionRef) -> Association:
        try:
            return self.registry.association(parent, child)
        except KeyError as e:
            raise ValidationError(str(e.args[0])) from None

    def _require_parent(self, db: Session, assoc: Association, parent_id: Any) -> Record:
        parent = self.store.find_by_pk(db, assoc.parent, parent_id)
        if parent is None:
            raise LinkTargetNotFound(f"{assoc.parent.name} {parent_id} not found")
        return parent

    def link(
        self,
        db: Session,
        parent_id: int,
        child_record: Mapping[str, Any],
        *,
        child: CollectionRef,
        parent: Optional[CollectionRef] = None,
    ) -> Record:
        """Point `child_record`'s foreign key at `parent_id`.

        A record that has not been inserted yet (no `id`) comes back with the
        foreign key filled in, ready for `RecordStore.insert`. A stored record
        is updated in place and returned as re-read from the store.
        """
        assoc = self.association(parent, child)
        self._require_parent(db, assoc, parent_id)

        child_id = child_record.get("id")
        if child_id is None:
            return {**child_record, assoc.foreign_key: parent_id}

        count = self.store.update(db, assoc.child, {assoc.foreign_key: parent_id}, {"id": child_id})
        if count == 0:
            raise NotFoundError(f"{assoc.child.name} {child_id} not found")
        logger.info("Linked %s %s to %s %s", assoc.child.name, child_id, assoc.parent.name, parent_id)
        return self.store.find_by_pk(db, assoc.child, child_id)

    def create_child(
        self,
        db: Session,
        parent_id: int,
        fields: Mapping[str, Any],
        *,
        child: CollectionRef,
        parent: Optional[CollectionRef] = None,
    ) -> Record:
        linked = self.link(db, parent_id, {k: v for k, v in fields.items() if k != "id"}, child=child, parent=parent)
        return self.store.insert(db, child, linked)

    def children_of(
        self,
        db: Session,
        parent_id: int,
        child: CollectionRef,
        *,
        parent: Optional[CollectionRef] = None,
        order: Order = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[Record]:
        assoc = self.association(parent, child)
        return self.store.find_all(
            db,
            assoc.child,
            {assoc.foreign_key: parent_id},
            order=order,
            limit=limit,
            offset=offset,
        )

    def parent_of(
        self,
        db: Session,
        child_record: Mapping[str, Any],
        parent: CollectionRef,
        *,
        child: CollectionRef,
    ) -> Optional[Record]:
        assoc = self.association(parent, child)
        parent_id = child_record.get(assoc.foreign_key)
        if parent_id is None:
            return None
        return self.store.find_by_pk(db, assoc.parent, parent_id)

    def with_children(
        self,
        db: Session,
        parent_record: Mapping[str, Any],
        child: CollectionRef,
        *,
        parent: Optional[CollectionRef] = None,
    ) -> Record:
        assoc = self.association(parent, child)
        out = dict(parent_record)
        out[assoc.name] = self.children_of(db, parent_record["id"], assoc.child, parent=assoc.parent)
        return out

    def include_names(self, parent: CollectionRef) -> List[str]:
        return [a.name for a in self.registry.associations_for_parent(parent)]

    def by_name(self, parent: CollectionRef, name: str) -> Association:
        for assoc in self.registry.associations_for_parent(parent):
            if assoc.name == name:
                return assoc
        allowed = ", ".join(self.include_names(parent)) or "none"
        raise ValidationError(f"unknown association {name!r}; allowed: {allowed}")
