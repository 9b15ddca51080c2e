"""FastAPI application entry point."""

from fastapi import FastAPI

from .config import AppConfig, load_config
from .dependencies import include_routers
from .logging import configure_logging


def create_app(config: AppConfig | None = None) -> FastAPI:
    """Build FastAPI instance with configured dependencies."""
    cfg = config or load_config()
    configure_logging(cfg.settings.log_level)
    app = FastAPI(title="Carpool Scheduler")
    include_routers(app, cfg)
    return app
