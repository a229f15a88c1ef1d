# partkeeper/main.py

from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI

from . import __version__
from .config import Settings, load_settings
from .deps import build_maintainer
from .logging_config import configure_logging
from .middleware import request_id_middleware
from .routers import maintenance
from .services import Maintainer


@asynccontextmanager
async def lifespan(app: FastAPI):
    if app.state.maintainer is None:
        app.state.maintainer = build_maintainer(app.state.settings)
    yield
    app.state.maintainer.target.close()


def create_app(settings: Optional[Settings] = None, maintainer: Optional[Maintainer] = None) -> FastAPI:
    """HTTP surface for status checks and on-demand cycles of one table."""
    if settings is None:
        load_dotenv()
        settings = load_settings()
        configure_logging(settings.LOG_LEVEL, settings.ENVIRONMENT)

    app = FastAPI(
        title="partkeeper",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.maintainer = maintainer

    # ---------------------------------------------
    # MIDDLEWARE
    # ---------------------------------------------
    app.middleware("http")(request_id_middleware)

    # ---------------------------------------------
    # ROUTERS
    # ---------------------------------------------
    app.include_router(maintenance.router, prefix="/v1/maintenance", tags=["Maintenance"])

    @app.get("/health")
    def health():
        return {"ok": True, "table": f"{settings.PARTITION_SCHEMA}.{settings.PARTITION_TABLE}"}

    return app
