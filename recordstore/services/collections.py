from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Type, Union

from recordstore.db.base import Base
from recordstore.db.models import Post, User


@dataclass(frozen=True)
class FieldSpec:
    """One declared field of a collection.

    `name` is the public (camelCase) name used in payloads and predicates,
    `attr` the mapped attribute on the SQLAlchemy model.
    """

    name: str
    attr: str
    type_: type
    required: bool = False
    nullable: bool = True
    max_length: Optional[int] = None
    writable: bool = True


# System-managed fields every collection carries.
SYSTEM_FIELDS: Tuple[FieldSpec, ...] = (
    FieldSpec("id", "id", int, nullable=False, writable=False),
    FieldSpec("createdAt", "created_at", dt.datetime, nullable=False, writable=False),
    FieldSpec("updatedAt", "updated_at", dt.datetime, nullable=False, writable=False),
)


@dataclass(frozen=True)
class Collection:
    name: str
    model: Type[Base]
    fields: Tuple[FieldSpec, ...]

    @property
    def table_name(self) -> str:
        return str(self.model.__tablename__)

    def all_fields(self) -> Tuple[FieldSpec, ...]:
        return SYSTEM_FIELDS[:1] + self.fields + SYSTEM_FIELDS[1:]

    def field(self, name: str) -> Optional[FieldSpec]:
        for spec in self.all_fields():
            if spec.name == name:
                return spec
        return None

    def column(self, name: str):
        spec = self.field(name)
        if spec is None:
            return None
        return getattr(self.model, spec.attr)


@dataclass(frozen=True)
class Association:
    """A one-to-many link: `parent` has many `child` through `child.foreign_key`."""

    name: str
    parent: Collection
    child: Collection
    foreign_key: str


CollectionRef = Union[str, Collection]


@dataclass
class CollectionRegistry:
    _collections: Dict[str, Collection] = field(default_factory=dict)
    _associations: List[Association] = field(default_factory=list)

    def define(self, name: str, model: Type[Base], fields: Tuple[FieldSpec, ...]) -> Collection:
        if name in self._collections:
            raise ValueError(f"collection {name!r} already defined")
        reserved = {s.name for s in SYSTEM_FIELDS}
        for spec in fields:
            if spec.name in reserved:
                raise ValueError(f"field {spec.name!r} is system-managed")
            if not hasattr(model, spec.attr):
                raise ValueError(f"{model.__name__} has no attribute {spec.attr!r}")
        coll = Collection(name=name, model=model, fields=tuple(fields))
        self._collections[name] = coll
        return coll

    def get(self, ref: CollectionRef) -> Collection:
        if isinstance(ref, Collection):
            return ref
        try:
            return self._collections[str(ref)]
        except KeyError:
            raise KeyError(f"unknown collection {ref!r}") from None

    def names(self) -> List[str]:
        return list(self._collections)

    def has_many(
        self,
        parent: CollectionRef,
        child: CollectionRef,
        foreign_key: str,
        *,
        name: Optional[str] = None,
    ) -> Association:
        parent_c = self.get(parent)
        child_c = self.get(child)
        spec = child_c.field(foreign_key)
        if spec is None or not spec.writable:
            raise ValueError(f"{child_c.name} has no writable field {foreign_key!r}")
        if spec.type_ is not int:
            raise ValueError(f"foreign key {child_c.name}.{foreign_key} must be an int field")
        assoc = Association(
            name=name or child_c.table_name,
            parent=parent_c,
            child=child_c,
            foreign_key=foreign_key,
        )
        self._associations.append(assoc)
        return assoc

    def associations_for_child(self, child: CollectionRef) -> List[Association]:
        child_c = self.get(child)
        return [a for a in self._associations if a.child.name == child_c.name]

    def associations_for_parent(self, parent: CollectionRef) -> List[Association]:
        parent_c = self.get(parent)
        return [a for a in self._associations if a.parent.name == parent_c.name]

    def association(self, parent: Optional[CollectionRef], child: CollectionRef) -> Association:
        """Resolve the association between two collections.

        `parent` may be omitted when the child belongs to exactly one parent.
        """
        candidates = self.associations_for_child(child)
        if parent is not None:
            parent_name = self.get(parent).name
            candidates = [a for a in candidates if a.parent.name == parent_name]
        if len(candidates) != 1:
            raise KeyError(f"no unique association for child {self.get(child).name!r}")
        return candidates[0]


def build_default_registry() -> CollectionRegistry:
    registry = CollectionRegistry()
    registry.define(
        "User",
        User,
        (
            FieldSpec("name", "name", str, required=True, nullable=False, max_length=255),
            FieldSpec("email", "email", str, max_length=255),
        ),
    )
    registry.define(
        "Post",
        Post,
        (
            FieldSpec("title", "title", str, required=True, nullable=False, max_length=255),
            FieldSpec("content", "content", str),
            FieldSpec("userId", "user_id", int, required=True, nullable=False),
        ),
    )
    registry.has_many("User", "Post", "userId", name="posts")
    return registry
