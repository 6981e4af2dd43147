"""File Maps FastAPI backend: main application entry point."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from filemaps import __version__, config
from filemaps.map_registry import MapRegistry
from filemaps.observability import initialize as initialize_observability, shutdown as shutdown_observability
from filemaps.routers.maps import maps_router
from filemaps.routers.resources import resources_router
from filemaps.services.file_opener import CommandFileOpener

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("filemaps")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    logger.info("File Maps backend starting up (config dir %s)", config.CONFIG_DIR)
    initialize_observability(app)

    registry = MapRegistry(config.CONFIG_DIR / config.MAPS_FILE_NAME)
    registry.read()
    app.state.map_registry = registry
    app.state.file_opener = CommandFileOpener()

    yield

    logger.info("File Maps backend shutting down")
    try:
        registry.flush_all()
    except Exception as exc:  # noqa: BLE001
        logger.error("Could not persist maps on shutdown: %s", exc)
    shutdown_observability(app)


app = FastAPI(
    title="File Maps API",
    description="Backend API for arranging files and directories on spatial maps",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        config.FRONTEND_ORIGIN,
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(maps_router)
app.include_router(resources_router)


@app.get("/api/health")
def health():
    """Health check endpoint."""
    registry = getattr(app.state, "map_registry", None)
    return {
        "status": "ok",
        "maps": len(registry.list_maps()) if registry else 0,
    }


def run() -> None:
    import uvicorn

    uvicorn.run("filemaps.main:app", host=config.HOST, port=config.PORT)
