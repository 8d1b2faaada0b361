"""App factory and ASGI entrypoint for the Social Media Server.

- Installs the request-processing middleware chain (body parsing, security
  headers, access log, body size ceiling, CORS)
- Registers routers for health, status and asset uploads
- Mounts the assets directory under `/assets`
- Attaches the upload storage policy to `app.state.storage`
"""

from typing import Iterable, Optional

from fastapi import APIRouter, FastAPI
from starlette.staticfiles import StaticFiles

from . import __version__
from .core.config import ASSETS_ROUTE, Settings, get_settings
from .middleware import build_middleware
from .routers import health, uploads
from .storage import DiskStorage


def create_app(
    settings: Optional[Settings] = None,
    routers: Iterable[APIRouter] = (),
) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(
        title="Social Media Server",
        version=__version__,
        description="HTTP backend with asset uploads backed by a document database",
        middleware=build_middleware(settings),
    )
    app.state.settings = settings
    app.state.storage = DiskStorage(settings.assets_path)
    app.state.db = None
    app.state.server_state = "idle"

    # Register routers
    app.include_router(health.router)
    app.include_router(uploads.router)
    for router in routers:
        app.include_router(router)

    # Static assets (uploads land in the same directory)
    app.mount(
        ASSETS_ROUTE,
        StaticFiles(directory=settings.assets_path, check_dir=False),
        name="assets",
    )

    return app


# ASGI entrypoint (uvicorn: `uvicorn server.main:app`), serves without the database gate
app = create_app()
