import logging

from sqlalchemy import inspect

from recordstore.core.logging_config import configure_logging
from recordstore.core.settings import Settings
from recordstore.db.session import create_engine_and_sessionmaker
from recordstore.services.collections import build_default_registry
from recordstore.services.record_store import RecordStore, StorageError

logger = logging.getLogger(__name__)


def main():
    settings = Settings()
    configure_logging(settings.log_level)
    logger.info("DB: %s", settings.database_url)

    db_rt = create_engine_and_sessionmaker(settings.database_url)
    inspector = inspect(db_rt.engine)
    tables = set(inspector.get_table_names())

    store = RecordStore(build_default_registry())
    with db_rt.SessionLocal() as db:
        for name in store.registry.names():
            coll = store.collection(name)
            if coll.table_name not in tables:
                logger.error("Table %s (collection %s) is missing", coll.table_name, name)
                continue
            logger.info("Table %s (collection %s)", coll.table_name, name)
            for col in inspector.get_columns(coll.table_name):
                logger.info("  %s %s nullable=%s", col["name"], col["type"], col["nullable"])
            try:
                logger.info("  rows: %d", store.count(db, name))
            except StorageError as e:
                logger.error("  cannot count rows: %s", e)
    db_rt.engine.dispose()


if __name__ == '__main__':
    main()
