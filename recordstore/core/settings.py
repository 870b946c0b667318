from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import List


def _env_bool(key: str, default: str = "1") -> bool:
    return os.getenv(key, default).strip().lower() not in ("0", "false", "no", "off")


def _env_int(key: str, default: str) -> int:
    raw = os.getenv(key, default)
    try:
        return int(str(raw).strip())
    except ValueError:
        return int(default)


def _env_list(key: str, default: str = "") -> List[str]:
    raw = os.getenv(key, default).strip()
    if not raw:
        return []
    if raw == "*":
        return ["*"]
    if raw.startswith("["):
        try:
            v = json.loads(raw)
            if isinstance(v, list):
                return [str(x) for x in v if str(x).strip()]
        except ValueError:
            pass
    return [x.strip() for x in raw.split(",") if x.strip()]


@dataclass(frozen=True, slots=True)
class Settings:
    env: str = field(default_factory=lambda: os.getenv("APP_ENV", "dev").strip())

    # Database
    database_url: str = field(default_factory=lambda: os.getenv("DATABASE_URL", "sqlite:///./recordstore.db"))
    db_echo: bool = field(default_factory=lambda: _env_bool("DB_ECHO", "0"))
    # NOTE: In production, use Alembic migrations (alembic upgrade head). AUTO_CREATE_DB is a dev/test escape hatch.
    auto_create_db: bool = field(default_factory=lambda: _env_bool("AUTO_CREATE_DB", "0"))

    # Logging
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").strip().upper())
    # Persist WARNING+ records of the recordstore logger into server_logs.
    log_to_db: bool = field(default_factory=lambda: _env_bool("LOG_TO_DB", "0"))

    # CORS defaults to locked-down (no cross-origin). Set CORS_ALLOW_ORIGINS to enable a UI on another origin.
    cors_allow_origins: List[str] = field(default_factory=lambda: _env_list("CORS_ALLOW_ORIGINS", ""))
    cors_allow_methods: List[str] = field(default_factory=lambda: _env_list("CORS_ALLOW_METHODS", "GET,POST,PUT,DELETE,OPTIONS"))
    cors_allow_headers: List[str] = field(default_factory=lambda: _env_list("CORS_ALLOW_HEADERS", "Content-Type"))
    cors_allow_credentials: bool = field(default_factory=lambda: _env_bool("CORS_ALLOW_CREDENTIALS", "0"))

    # Request limits
    max_request_size_bytes: int = field(default_factory=lambda: _env_int("MAX_REQUEST_SIZE_BYTES", str(1024 * 1024)))

    # List pagination
    default_page_limit: int = field(default_factory=lambda: _env_int("DEFAULT_PAGE_LIMIT", "100"))
    max_page_limit: int = field(default_factory=lambda: _env_int("MAX_PAGE_LIMIT", "1000"))
