"""ASGI entrypoint: `uvicorn main:app`."""

from recordstore.api.app import create_app
from recordstore.core.logging_config import configure_logging
from recordstore.core.settings import Settings

settings = Settings()
configure_logging(settings.log_level)

app = create_app(settings)
