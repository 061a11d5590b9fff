"""FastAPI application entrypoint for the loyalty ledger."""

from fastapi import FastAPI

from . import __version__
from .api.v1.router import api_router
from .core.logging_config import setup_logging
from .jobs import register_scheduler


def create_app() -> FastAPI:
    """Instantiate and configure the FastAPI application."""
    setup_logging()
    app = FastAPI(title="Loyalty Ledger API", version=__version__)
    app.include_router(api_router, prefix="/api/v1")
    register_scheduler(app)
    return app


app = create_app()
