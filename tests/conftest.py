from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from recordstore.api.app import create_app
from recordstore.core.settings import Settings
from recordstore.db.base import Base
from recordstore.db.session import create_engine_and_sessionmaker
from recordstore.services.associations import AssociationIndex
from recordstore.services.collections import build_default_registry
from recordstore.services.record_store import RecordStore


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    db_path = tmp_path / "test.db"
    return Settings(
        env="dev",
        database_url=f"sqlite:///{db_path}",
        auto_create_db=True,
        log_to_db=False,
        default_page_limit=50,
        max_page_limit=200,
    )


@pytest.fixture()
def client(settings: Settings):
    app = create_app(settings)
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def db_runtime(settings: Settings):
    rt = create_engine_and_sessionmaker(settings.database_url)
    Base.metadata.create_all(bind=rt.engine)
    try:
        yield rt
    finally:
        rt.engine.dispose()


@pytest.fixture()
def db(db_runtime):
    with db_runtime.SessionLocal() as session:
        yield session


@pytest.fixture()
def store() -> RecordStore:
    return RecordStore(build_default_registry())


@pytest.fixture()
def assoc(store: RecordStore) -> AssociationIndex:
    return AssociationIndex(store)
