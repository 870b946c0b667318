from __future__ import annotations

import datetime as dt
import logging

import pytest

from recordstore.services.record_store import NotFoundError, ValidationError
from recordstore.services.resource_handler import ResourceHandler, to_payload


@pytest.fixture()
def users(store, assoc) -> ResourceHandler:
    return ResourceHandler(store, "User", associations=assoc, default_limit=2, max_limit=3)


def test_create_returns_serializable_payload(db, users):
    out = users.create(db, {"name": "John"})
    assert out["id"] == 1
    assert out["name"] == "John"
    assert isinstance(out["createdAt"], str)
    assert isinstance(out["updatedAt"], str)


def test_create_rejects_non_object_payload(db, users):
    with pytest.raises(ValidationError):
        users.create(db, ["name", "John"])


def test_retrieve_update_destroy_by_id(db, users):
    created = users.create(db, {"name": "John"})

    assert users.retrieve(db, created["id"]) == created

    updated = users.update(db, created["id"], {"email": "john@example.com"})
    assert updated["email"] == "john@example.com"
    assert dt.datetime.fromisoformat(updated["updatedAt"]) > dt.datetime.fromisoformat(created["updatedAt"])

    gone = users.destroy(db, created["id"])
    assert gone == {"message": f"User {created['id']} deleted", "deleted": 1}

    with pytest.raises(NotFoundError):
        users.retrieve(db, created["id"])
    with pytest.raises(NotFoundError):
        users.update(db, created["id"], {"name": "X"})
    with pytest.raises(NotFoundError):
        users.destroy(db, created["id"])


def test_invalid_ids_are_validation_errors(db, users):
    for bad in ("1", True, None):
        with pytest.raises(ValidationError):
            users.retrieve(db, bad)


def test_non_positive_ids_are_not_found(db, users):
    for bad in (0, -1):
        with pytest.raises(NotFoundError):
            users.retrieve(db, bad)
    with pytest.raises(NotFoundError):
        users.destroy(db, 0)


def test_list_applies_default_and_max_limit(db, users):
    for name in ("A", "B", "C", "D"):
        users.create(db, {"name": name})

    assert [u["name"] for u in users.list(db)] == ["A", "B"]
    assert [u["name"] for u in users.list(db, limit=10)] == ["A", "B", "C"]
    assert [u["name"] for u in users.list(db, limit=10, offset=2)] == ["C", "D"]
    assert [u["name"] for u in users.list(db, order=["-name"], limit=3)] == ["D", "C", "B"]
    assert [u["name"] for u in users.list(db, where={"name": "C"})] == ["C"]


def test_parse_where_coerces_query_strings(users):
    assert users.parse_where({"id": "3", "name": "John", "limit": "5", "order": "name"}) == {"id": 3, "name": "John"}
    with pytest.raises(ValidationError):
        users.parse_where({"id": "three"})
    with pytest.raises(ValidationError, match="unknown filter"):
        users.parse_where({"nickname": "J"})


def test_retrieve_with_include_embeds_children(db, users, assoc):
    john = users.create(db, {"name": "John"})
    assoc.create_child(db, john["id"], {"title": "Hi"}, child="Post")

    out = users.retrieve(db, john["id"], include=["posts"])
    assert [p["title"] for p in out["posts"]] == ["Hi"]
    assert isinstance(out["posts"][0]["createdAt"], str)

    with pytest.raises(ValidationError):
        users.retrieve(db, john["id"], include=["comments"])


def test_include_without_association_index_is_rejected(db, store):
    bare = ResourceHandler(store, "User")
    with pytest.raises(ValidationError):
        bare.list(db, include=["posts"])


def test_lifecycle_states_are_logged(db, users, caplog):
    with caplog.at_level(logging.DEBUG, logger="recordstore.services.resource_handler"):
        users.create(db, {"name": "John"})
        with pytest.raises(ValidationError):
            users.create(db, {})

    messages = [r.getMessage() for r in caplog.records]
    assert "User.create received" in messages
    assert "User.create validated" in messages
    assert "User.create executed" in messages
    assert "User.create responded" in messages
    assert any(m.startswith("User.create error_responded") for m in messages)


def test_to_payload_serializes_nested_lists():
    ts = dt.datetime(2026, 1, 1, tzinfo=dt.timezone.utc)
    out = to_payload({"id": 1, "createdAt": ts, "posts": [{"id": 2, "updatedAt": ts}]})
    assert out == {"id": 1, "createdAt": ts.isoformat(), "posts": [{"id": 2, "updatedAt": ts.isoformat()}]}


def test_list_parses_query_filters(db, users, caplog):
    for name in ("A", "B"):
        users.create(db, {"name": name})

    assert [u["name"] for u in users.list(db, query={"name": "B", "limit": "9"})] == ["B"]

    with caplog.at_level(logging.DEBUG, logger="recordstore.services.resource_handler"):
        with pytest.raises(ValidationError, match="unknown filter"):
            users.list(db, query={"nickname": "J"})

    messages = [r.getMessage() for r in caplog.records]
    assert "User.list received" in messages
    assert any(m.startswith("User.list error_responded: unknown filter") for m in messages)
