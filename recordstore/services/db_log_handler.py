from __future__ import annotations

import logging
from typing import Callable

from sqlalchemy.orm import Session

from recordstore.db.models import ServerLog


class DBLogHandler(logging.Handler):
    """Writes selected log records to the server_logs table.

    To avoid recursive logging loops, attach this handler only to the
    package logger and keep a WARNING threshold.
    """

    def __init__(
        self,
        sessionmaker: Callable[[], Session],
        *,
        level: int = logging.WARNING,
    ) -> None:
        super().__init__(level=level)
        self._sessionmaker = sessionmaker

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            with self._sessionmaker() as db:
                db.add(
                    ServerLog(
                        level=record.levelname,
                        logger=getattr(record, "name", None),
                        message=msg,
                        meta={"pathname": record.pathname, "lineno": record.lineno},
                    )
                )
                db.commit()
        except Exception:
            # Never raise from logging
            self.handleError(record)
