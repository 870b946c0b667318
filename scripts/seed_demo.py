#!/usr/bin/env python3
"""
Seed a demo user with a couple of posts.

Usage:
  python scripts/seed_demo.py
"""

import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from recordstore.core.settings import Settings
from recordstore.db.session import create_engine_and_sessionmaker
from recordstore.services.associations import AssociationIndex
from recordstore.services.collections import build_default_registry
from recordstore.services.record_store import RecordStore


def seed_demo():
    """
    Create user "John" and two posts linked to him, unless John already exists.
    """
    settings = Settings()
    db_runtime = create_engine_and_sessionmaker(settings.database_url)

    store = RecordStore(build_default_registry())
    assoc = AssociationIndex(store)

    with db_runtime.SessionLocal() as db:
        existing = store.find_one(db, "User", {"name": "John"})
        if existing is not None:
            print(f"User John already exists (id={existing['id']}); nothing to do.")
            return

        john = store.insert(db, "User", {"name": "John", "email": "john@example.com"})
        print(f"Created user John (id={john['id']}).")

        for title in ("Hi", "Second post"):
            post = assoc.create_child(db, john["id"], {"title": title}, child="Post", parent="User")
            print(f"  Created post {post['title']!r} (id={post['id']}).")

    db_runtime.engine.dispose()


if __name__ == "__main__":
    seed_demo()
