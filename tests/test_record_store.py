from __future__ import annotations

import datetime as dt

import pytest
from sqlalchemy import text

from recordstore.services.record_store import (
    ConstraintError,
    LinkTargetNotFound,
    NotFoundError,
    StorageError,
    ValidationError,
)


def test_insert_assigns_unique_ids_and_timestamps(db, store):
    a = store.insert(db, "User", {"name": "John"})
    b = store.insert(db, "User", {"name": "Jane", "email": "jane@example.com"})

    assert a["id"] != b["id"]
    assert a["name"] == "John"
    assert a["email"] is None
    assert isinstance(a["createdAt"], dt.datetime)
    assert a["createdAt"].tzinfo is not None
    assert a["createdAt"] == a["updatedAt"]

    assert store.find_one(db, "User", {"id": a["id"]}) == a
    assert store.find_by_pk(db, "User", b["id"]) == b


def test_insert_rejects_missing_mistyped_and_unknown_fields(db, store):
    with pytest.raises(ValidationError, match="name"):
        store.insert(db, "User", {"email": "x@example.com"})
    with pytest.raises(ValidationError):
        store.insert(db, "User", {"name": 42})
    with pytest.raises(ValidationError, match="unknown field"):
        store.insert(db, "User", {"name": "John", "nickname": "J"})
    with pytest.raises(ValidationError, match="system-managed"):
        store.insert(db, "User", {"name": "John", "id": 7})
    with pytest.raises(ValidationError):
        store.insert(db, "User", {"name": "   "})
    with pytest.raises(ValidationError):
        store.insert(db, "User", {"name": "x" * 256})

    assert store.count(db, "User") == 0


def test_insert_rejects_bool_for_integer_field(db, store):
    store.insert(db, "User", {"name": "John"})
    with pytest.raises(ValidationError):
        store.insert(db, "Post", {"title": "Hi", "userId": True})
    assert store.find_all(db, "Post") == []


def test_unknown_collection_is_a_validation_error(db, store):
    with pytest.raises(ValidationError, match="unknown collection"):
        store.find_all(db, "Comment")


def test_find_all_orders_by_insertion_and_filters(db, store):
    for name in ("Carol", "Alice", "Bob"):
        store.insert(db, "User", {"name": name})

    assert [u["name"] for u in store.find_all(db, "User")] == ["Carol", "Alice", "Bob"]
    assert [u["name"] for u in store.find_all(db, "User", order=["name"])] == ["Alice", "Bob", "Carol"]
    assert [u["name"] for u in store.find_all(db, "User", order="-name")] == ["Carol", "Bob", "Alice"]
    assert [u["name"] for u in store.find_all(db, "User", limit=2, offset=1)] == ["Alice", "Bob"]

    assert [u["name"] for u in store.find_all(db, "User", {"name": {"in": ["Bob", "Carol"]}})] == ["Carol", "Bob"]
    assert [u["name"] for u in store.find_all(db, "User", {"id": {"gte": 2}})] == ["Alice", "Bob"]
    assert [u["name"] for u in store.find_all(db, "User", {"name": {"like": "A%"}})] == ["Alice"]
    assert [u["name"] for u in store.find_all(db, "User", {"id": {"gt": 1, "lt": 3}})] == ["Alice"]
    assert store.find_all(db, "User", {"name": "Nobody"}) == []
    assert store.count(db, "User", {"email": None}) == 3


def test_find_one_returns_none_when_nothing_matches(db, store):
    assert store.find_one(db, "User", {"name": "Ghost"}) is None
    assert store.find_by_pk(db, "User", 99) is None


def test_malformed_predicates_are_rejected(db, store):
    with pytest.raises(ValidationError, match="unknown field"):
        store.find_all(db, "User", {"nickname": "J"})
    with pytest.raises(ValidationError, match="unknown operator"):
        store.find_all(db, "User", {"id": {"between": [1, 2]}})
    with pytest.raises(ValidationError):
        store.find_all(db, "User", {"id": "1"})
    with pytest.raises(ValidationError):
        store.find_all(db, "User", {"id": {"in": 1}})
    with pytest.raises(ValidationError):
        store.find_all(db, "User", {"id": {"gt": None}})
    with pytest.raises(ValidationError):
        store.find_all(db, "User", order=["-"])
    with pytest.raises(ValidationError):
        store.find_all(db, "User", limit=-1)


def test_update_applies_fields_and_bumps_updated_at(db, store):
    user = store.insert(db, "User", {"name": "John"})

    count = store.update(db, "User", {"name": "Johnny"}, {"id": user["id"]})
    assert count == 1

    after = store.find_one(db, "User", {"id": user["id"]})
    assert after["name"] == "Johnny"
    assert after["createdAt"] == user["createdAt"]
    assert after["updatedAt"] > user["updatedAt"]


def test_update_with_empty_fields_still_refreshes_updated_at(db, store):
    user = store.insert(db, "User", {"name": "John"})
    assert store.update(db, "User", {}, {"id": user["id"]}) == 1
    assert store.find_by_pk(db, "User", user["id"])["updatedAt"] > user["updatedAt"]


def test_update_counts_every_matching_record(db, store):
    for name in ("A", "B", "C"):
        store.insert(db, "User", {"name": name})

    assert store.update(db, "User", {"email": None}, {"name": {"ne": "B"}}) == 2
    assert store.update(db, "User", {"name": "Z"}, {"name": "missing"}) == 0


def test_update_validates_fields(db, store):
    user = store.insert(db, "User", {"name": "John"})
    with pytest.raises(ValidationError):
        store.update(db, "User", {"name": None}, {"id": user["id"]})
    with pytest.raises(ValidationError, match="system-managed"):
        store.update(db, "User", {"id": 5}, {"id": user["id"]})
    with pytest.raises(ValidationError, match="predicate"):
        store.update(db, "User", {"name": "X"}, None)

    assert store.find_by_pk(db, "User", user["id"])["name"] == "John"


def test_destroy_removes_matching_records(db, store):
    user = store.insert(db, "User", {"name": "John"})
    store.insert(db, "User", {"name": "Jane"})

    assert store.destroy(db, "User", {"id": user["id"]}) == 1
    assert store.find_one(db, "User", {"id": user["id"]}) is None
    assert store.count(db, "User") == 1


def test_destroy_missing_record_returns_zero(db, store):
    assert store.destroy(db, "User", {"id": 1}) == 0


def test_destroy_parent_cascades_to_children(db, store):
    user = store.insert(db, "User", {"name": "John"})
    store.insert(db, "Post", {"title": "Hi", "userId": user["id"]})

    assert store.destroy(db, "User", {"id": user["id"]}) == 1
    assert store.find_all(db, "Post") == []


def test_insert_child_with_missing_parent_is_rejected(db, store):
    with pytest.raises(LinkTargetNotFound) as info:
        store.insert(db, "Post", {"title": "Orphan", "userId": 404})
    assert isinstance(info.value, NotFoundError)
    assert isinstance(info.value, ConstraintError)
    assert store.count(db, "Post") == 0


def test_unique_violation_is_a_constraint_error(db, store):
    store.insert(db, "User", {"name": "John", "email": "john@example.com"})
    with pytest.raises(ConstraintError):
        store.insert(db, "User", {"name": "Other John", "email": "john@example.com"})

    # the session is usable again after the rollback
    assert store.count(db, "User") == 1


def test_storage_failure_is_wrapped(db, store):
    db.execute(text("DROP TABLE posts"))
    db.commit()

    with pytest.raises(StorageError):
        store.find_all(db, "Post")
