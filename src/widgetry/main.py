"""ASGI entry point: `uvicorn widgetry.main:app`."""

import uvicorn

from widgetry.api import create_app
from widgetry.config import get_settings

app = create_app()


def run() -> None:
    """Console script: serve the API with uvicorn."""
    settings = get_settings()
    uvicorn.run(
        "widgetry.main:app",
        host=settings.host,
        port=settings.port,
        log_config=None,
    )
