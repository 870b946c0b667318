from __future__ import annotations

import datetime as dt
import enum
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from sqlalchemy.orm import Session

from recordstore.services.associations import AssociationIndex
from recordstore.services.collections import Collection, CollectionRef, FieldSpec
from recordstore.services.record_store import NotFoundError, Record, RecordStore, ValidationError

logger = logging.getLogger(__name__)

# Query parameters with a meaning of their own; everything else is a field filter.
RESERVED_QUERY_PARAMS = ("order", "limit", "offset", "include")


class RequestState(str, enum.Enum):
    RECEIVED = "received"
    VALIDATED = "validated"
    EXECUTED = "executed"
    RESPONDED = "responded"
    ERROR_RESPONDED = "error_responded"


def to_payload(record: Mapping[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for key, value in record.items():
        if isinstance(value, dt.datetime):
            out[key] = value.isoformat()
        elif isinstance(value, list):
            out[key] = [to_payload(v) if isinstance(v, Mapping) else v for v in value]
        else:
            out[key] = value
    return out


def _coerce_query_value(spec: FieldSpec, raw: str) -> Any:
    if spec.type_ is int:
        try:
            return int(raw)
        except ValueError:
            raise ValidationError(f"{spec.name} must be an integer") from None
    if spec.type_ is dt.datetime:
        try:
            return dt.datetime.fromisoformat(raw)
        except ValueError:
            raise ValidationError(f"{spec.name} must be an ISO-8601 timestamp") from None
    return raw


class ResourceHandler:
    """Maps the CRUD verbs of one collection onto the record store.

    Each call walks received -> validated -> executed -> responded. A payload
    that fails validation ends in error_responded; store errors propagate to
    the caller unchanged.
    """

    def __init__(
        self,
        store: RecordStore,
        collection: CollectionRef,
        *,
        associations: Optional[AssociationIndex] = None,
        default_limit: int = 100,
        max_limit: int = 1000,
    ) -> None:
        self.store = store
        self.collection: Collection = store.collection(collection)
        self.associations = associations
        self.default_limit = max(1, int(default_limit))
        self.max_limit = max(self.default_limit, int(max_limit))

    # ---------------- request lifecycle ----------------

    def _handle(self, verb: str, validate: Callable[[], Any], execute: Callable[[Any], Any]) -> Any:
        name = self.collection.name
        logger.debug("%s.%s %s", name, verb, RequestState.RECEIVED.value)
        try:
            shaped = validate()
        except (ValidationError, NotFoundError) as e:
            logger.debug("%s.%s %s: %s", name, verb, RequestState.ERROR_RESPONDED.value, e)
            raise
        logger.debug("%s.%s %s", name, verb, RequestState.VALIDATED.value)

        try:
            result = execute(shaped)
        except Exception:
            logger.debug("%s.%s %s", name, verb, RequestState.ERROR_RESPONDED.value)
            raise
        logger.debug("%s.%s %s", name, verb, RequestState.EXECUTED.value)

        if isinstance(result, list):
            payload: Any = [to_payload(r) for r in result]
        else:
            payload = to_payload(result)
        logger.debug("%s.%s %s", name, verb, RequestState.RESPONDED.value)
        return payload

    def _payload(self, payload: Any, *, partial: bool) -> Dict[str, Any]:
        if not isinstance(payload, Mapping):
            raise ValidationError("request body must be a JSON object")
        return self.store.clean_fields(self.collection, payload, partial=partial)

    def _record_id(self, record_id: Any) -> int:
        if isinstance(record_id, bool) or not isinstance(record_id, int):
            raise ValidationError("id must be an integer")
        # ids start at 1; anything lower can never match
        if record_id < 1:
            raise self._not_found(record_id)
        return record_id

    def _not_found(self, record_id: int) -> NotFoundError:
        return NotFoundError(f"{self.collection.name} {record_id} not found")

    def parse_where(self, query: Mapping[str, str]) -> Dict[str, Any]:
        """Turn `?field=value` query parameters into an equality predicate."""
        where: Dict[str, Any] = {}
        for key, raw in query.items():
            if key in RESERVED_QUERY_PARAMS:
                continue
            spec = self.collection.field(key)
            if spec is None:
                raise ValidationError(f"unknown filter {key!r} for {self.collection.name}")
            where[key] = _coerce_query_value(spec, raw)
        return where

    def _includes(self, include: Optional[Sequence[str]]) -> List[str]:
        names = [n for n in (include or []) if n]
        if names and self.associations is None:
            raise ValidationError(f"{self.collection.name} has no associations to include")
        for n in names:
            self.associations.by_name(self.collection, n)
        return names

    def _expand(self, db: Session, record: Record, includes: Sequence[str]) -> Record:
        for n in includes:
            assoc = self.associations.by_name(self.collection, n)
            record = self.associations.with_children(db, record, assoc.child, parent=self.collection)
        return record

    # ---------------- verbs ----------------

    def create(self, db: Session, payload: Any) -> Dict[str, Any]:
        return self._handle(
            "create",
            lambda: self._payload(payload, partial=False),
            lambda fields: self.store.insert(db, self.collection, fields),
        )

    def list(
        self,
        db: Session,
        *,
        where: Optional[Mapping[str, Any]] = None,
        query: Optional[Mapping[str, str]] = None,
        order: Optional[Sequence[str]] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        include: Optional[Sequence[str]] = None,
    ) -> List[Dict[str, Any]]:
        def validate():
            lim = self.default_limit if limit is None else limit
            if isinstance(lim, bool) or not isinstance(lim, int) or lim < 0:
                raise ValidationError("limit must be a non-negative integer")
            predicate = dict(where or {})
            if query is not None:
                predicate.update(self.parse_where(query))
            return {
                "where": predicate,
                "limit": min(lim, self.max_limit),
                "includes": self._includes(include),
            }

        def execute(q):
            rows = self.store.find_all(
                db,
                self.collection,
                q["where"],
                order=order,
                limit=q["limit"],
                offset=offset,
            )
            return [self._expand(db, r, q["includes"]) for r in rows]

        return self._handle("list", validate, execute)

    def retrieve(self, db: Session, record_id: Any, *, include: Optional[Sequence[str]] = None) -> Dict[str, Any]:
        def execute(shaped):
            rid, includes = shaped
            record = self.store.find_by_pk(db, self.collection, rid)
            if record is None:
                raise self._not_found(rid)
            return self._expand(db, record, includes)

        return self._handle(
            "retrieve",
            lambda: (self._record_id(record_id), self._includes(include)),
            execute,
        )

    def update(self, db: Session, record_id: Any, payload: Any) -> Dict[str, Any]:
        def execute(shaped):
            rid, fields = shaped
            count = self.store.update(db, self.collection, fields, {"id": rid})
            if count == 0:
                raise self._not_found(rid)
            return self.store.find_by_pk(db, self.collection, rid)

        return self._handle(
            "update",
            lambda: (self._record_id(record_id), self._payload(payload, partial=True)),
            execute,
        )

    def destroy(self, db: Session, record_id: Any) -> Dict[str, Any]:
        def execute(rid):
            count = self.store.destroy(db, self.collection, {"id": rid})
            if count == 0:
                raise self._not_found(rid)
            return {"message": f"{self.collection.name} {rid} deleted", "deleted": count}

        return self._handle("destroy", lambda: self._record_id(record_id), execute)
