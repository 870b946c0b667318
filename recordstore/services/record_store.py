from __future__ import annotations

import datetime as dt
import logging
from contextlib import contextmanager
from typing import Any, Callable, Dict, Generator, List, Mapping, Optional, Sequence, Union

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Query, Session

from recordstore.services.collections import Collection, CollectionRef, CollectionRegistry, FieldSpec

logger = logging.getLogger(__name__)

Record = Dict[str, Any]
Predicate = Mapping[str, Any]
Order = Union[str, Sequence[str], None]


class RecordStoreError(RuntimeError):
    pass


class ValidationError(RecordStoreError):
    pass


class NotFoundError(RecordStoreError):
    pass


class ConstraintError(RecordStoreError):
    pass


class StorageError(RecordStoreError):
    pass


class LinkTargetNotFound(NotFoundError, ConstraintError):
    """A foreign key points at a parent record that does not exist."""


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def _as_utc(value: Optional[dt.datetime]) -> Optional[dt.datetime]:
    # SQLite hands DateTime(timezone=True) columns back naive.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc)


def _next_timestamp(previous: Optional[dt.datetime]) -> dt.datetime:
    """Return now, or one microsecond past `previous` if the clock has not moved on."""
    now = _utcnow()
    prev = _as_utc(previous)
    if prev is not None and now <= prev:
        return prev + dt.timedelta(microseconds=1)
    return now


def _check_type(spec: FieldSpec, value: Any) -> Any:
    if spec.type_ is int:
        # bool is an int subclass; True is not a valid identifier.
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError(f"{spec.name} must be an integer")
    elif not isinstance(value, spec.type_):
        raise ValidationError(f"{spec.name} must be of type {spec.type_.__name__}")
    return value


def _check_value(spec: FieldSpec, value: Any) -> Any:
    if value is None:
        if not spec.nullable:
            raise ValidationError(f"{spec.name} cannot be null")
        return None
    _check_type(spec, value)
    if isinstance(value, str):
        if spec.max_length is not None and len(value) > spec.max_length:
            raise ValidationError(f"{spec.name} must be at most {spec.max_length} characters")
        if spec.required and not value.strip():
            raise ValidationError(f"{spec.name} cannot be empty")
    return value


def _check_operand(spec: FieldSpec, op: str, operand: Any) -> Any:
    if op in ("in", "not_in"):
        if not isinstance(operand, (list, tuple, set, frozenset)):
            raise ValidationError(f"{spec.name}: operator '{op}' expects a list")
        return [_check_type(spec, v) for v in operand]
    if op == "like":
        if not isinstance(operand, str):
            raise ValidationError(f"{spec.name}: operator 'like' expects a string pattern")
        return operand
    if operand is None:
        if op not in ("eq", "ne"):
            raise ValidationError(f"{spec.name}: operator '{op}' does not accept null")
        return None
    return _check_type(spec, operand)


_OPERATORS: Dict[str, Callable[[Any, Any], Any]] = {
    "eq": lambda col, v: col.is_(None) if v is None else col == v,
    "ne": lambda col, v: col.is_not(None) if v is None else col != v,
    "gt": lambda col, v: col > v,
    "gte": lambda col, v: col >= v,
    "lt": lambda col, v: col < v,
    "lte": lambda col, v: col <= v,
    "in": lambda col, v: col.in_(v),
    "not_in": lambda col, v: col.not_in(v),
    "like": lambda col, v: col.like(v),
}

OPERATORS = tuple(_OPERATORS)


def _non_negative(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f"{name} must be a non-negative integer")
    return value


@contextmanager
def _storage_errors(db: Session, action: str) -> Generator[None, None, None]:
    """Roll back on failure and translate SQLAlchemy errors into the store taxonomy."""
    try:
        yield
    except RecordStoreError:
        db.rollback()
        raise
    except IntegrityError as e:
        db.rollback()
        logger.warning("Constraint violation during %s: %s", action, e.orig)
        raise ConstraintError(f"{action} violates a database constraint") from e
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Storage failure during %s: %s", action, e)
        raise StorageError(f"storage failure during {action}") from e


class RecordStore:
    """Typed CRUD over the collections declared in a `CollectionRegistry`.

    Every operation takes the request-scoped `Session` and runs in a single
    transaction. Records are plain dicts keyed by public field names, with
    `id`, `createdAt` and `updatedAt` always present.
    """

    def __init__(self, registry: CollectionRegistry) -> None:
        self.registry = registry

    def collection(self, ref: CollectionRef) -> Collection:
        try:
            return self.registry.get(ref)
        except KeyError as e:
            raise ValidationError(str(e.args[0])) from None

    # ---------------- shaping ----------------

    def to_record(self, coll: Collection, row: Any) -> Record:
        out: Record = {}
        for spec in coll.all_fields():
            value = getattr(row, spec.attr)
            if spec.type_ is dt.datetime:
                value = _as_utc(value)
            out[spec.name] = value
        return out

    def clean_fields(self, coll: Collection, fields: Mapping[str, Any], *, partial: bool) -> Dict[str, Any]:
        if not isinstance(fields, Mapping):
            raise ValidationError("fields must be a mapping of field name to value")

        cleaned: Dict[str, Any] = {}
        for name, value in fields.items():
            spec = coll.field(name)
            if spec is None:
                raise ValidationError(f"unknown field {name!r} for {coll.name}")
            if not spec.writable:
                raise ValidationError(f"{name} is system-managed and cannot be set")
            cleaned[spec.name] = _check_value(spec, value)

        if not partial:
            missing = [s.name for s in coll.fields if s.required and s.name not in cleaned]
            if missing:
                raise ValidationError(f"missing required field(s) for {coll.name}: {', '.join(missing)}")
        return cleaned

    def where(self, coll: Collection, predicate: Optional[Predicate]) -> list:
        if predicate is None:
            return []
        if not isinstance(predicate, Mapping):
            raise ValidationError("predicate must be a mapping of field name to condition")

        clauses = []
        for name, condition in predicate.items():
            spec = coll.field(name)
            if spec is None:
                raise ValidationError(f"unknown field {name!r} in predicate for {coll.name}")
            col = getattr(coll.model, spec.attr)
            ops = condition if isinstance(condition, Mapping) else {"eq": condition}
            if not ops:
                raise ValidationError(f"empty condition for {name!r}")
            for op, operand in ops.items():
                builder = _OPERATORS.get(op)
                if builder is None:
                    raise ValidationError(f"unknown operator {op!r}; allowed: {', '.join(OPERATORS)}")
                clauses.append(builder(col, _check_operand(spec, op, operand)))
        return clauses

    def order_by(self, coll: Collection, order: Order) -> list:
        pk = coll.model.id
        if not order:
            return [pk.asc()]
        items = [order] if isinstance(order, str) else list(order)

        clauses = []
        for item in items:
            if not isinstance(item, str) or not item.lstrip("-"):
                raise ValidationError(f"invalid order term {item!r}")
            descending = item.startswith("-")
            name = item[1:] if descending else item
            col = coll.column(name)
            if col is None:
                raise ValidationError(f"unknown field {name!r} in order for {coll.name}")
            clauses.append(col.desc() if descending else col.asc())
        # insertion order breaks ties
        clauses.append(pk.asc())
        return clauses

    def _query(self, db: Session, coll: Collection, predicate: Optional[Predicate]) -> Query:
        return db.query(coll.model).filter(*self.where(coll, predicate))

    def _check_parents(self, db: Session, coll: Collection, cleaned: Mapping[str, Any]) -> None:
        for assoc in self.registry.associations_for_child(coll):
            parent_id = cleaned.get(assoc.foreign_key)
            if parent_id is None:
                continue
            parent_model = assoc.parent.model
            exists = db.query(parent_model.id).filter(parent_model.id == parent_id).first()
            if exists is None:
                raise LinkTargetNotFound(f"{assoc.parent.name} {parent_id} not found")

    # ---------------- operations ----------------

    def insert(self, db: Session, collection: CollectionRef, fields: Mapping[str, Any]) -> Record:
        coll = self.collection(collection)
        cleaned = self.clean_fields(coll, fields, partial=False)

        with _storage_errors(db, f"insert into {coll.name}"):
            self._check_parents(db, coll, cleaned)
            now = _utcnow()
            row = coll.model(**{coll.field(name).attr: value for name, value in cleaned.items()})
            row.created_at = now
            row.updated_at = now
            db.add(row)
            db.commit()
            db.refresh(row)
            record = self.to_record(coll, row)

        logger.info("Inserted %s id=%s", coll.name, record["id"])
        return record

    def find_all(
        self,
        db: Session,
        collection: CollectionRef,
        predicate: Optional[Predicate] = None,
        *,
        order: Order = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[Record]:
        coll = self.collection(collection)
        q = self._query(db, coll, predicate).order_by(*self.order_by(coll, order))
        if limit is not None:
            q = q.limit(_non_negative("limit", limit))
        if offset is not None:
            q = q.offset(_non_negative("offset", offset))

        with _storage_errors(db, f"find in {coll.name}"):
            return [self.to_record(coll, row) for row in q.all()]

    def find_one(self, db: Session, collection: CollectionRef, predicate: Optional[Predicate]) -> Optional[Record]:
        rows = self.find_all(db, collection, predicate, limit=1)
        return rows[0] if rows else None

    def find_by_pk(self, db: Session, collection: CollectionRef, pk: Any) -> Optional[Record]:
        if isinstance(pk, bool) or not isinstance(pk, int):
            raise ValidationError("id must be an integer")
        return self.find_one(db, collection, {"id": pk})

    def count(self, db: Session, collection: CollectionRef, predicate: Optional[Predicate] = None) -> int:
        coll = self.collection(collection)
        q = self._query(db, coll, predicate)
        with _storage_errors(db, f"count in {coll.name}"):
            return int(q.count())

    def update(
        self,
        db: Session,
        collection: CollectionRef,
        fields: Mapping[str, Any],
        predicate: Predicate,
    ) -> int:
        """Apply `fields` to every record matching `predicate`; return the number affected.

        Matching rows are locked and mutated in one transaction, so this is the
        call to use for compare-and-update.
        """
        coll = self.collection(collection)
        if predicate is None:
            raise ValidationError("update requires a predicate; pass {} to match every record")
        cleaned = self.clean_fields(coll, fields, partial=True)
        q = self._query(db, coll, predicate).order_by(coll.model.id.asc())

        with _storage_errors(db, f"update in {coll.name}"):
            self._check_parents(db, coll, cleaned)
            rows = q.with_for_update().all()
            for row in rows:
                for name, value in cleaned.items():
                    setattr(row, coll.field(name).attr, value)
                row.updated_at = _next_timestamp(row.updated_at)
            db.commit()

        logger.info("Updated %d %s record(s)", len(rows), coll.name)
        return len(rows)

    def destroy(self, db: Session, collection: CollectionRef, predicate: Predicate) -> int:
        coll = self.collection(collection)
        if predicate is None:
            raise ValidationError("destroy requires a predicate; pass {} to match every record")
        q = self._query(db, coll, predicate)

        with _storage_errors(db, f"destroy in {coll.name}"):
            removed = int(q.delete(synchronize_session="fetch"))
            db.commit()

        logger.info("Destroyed %d %s record(s)", removed, coll.name)
        return removed
