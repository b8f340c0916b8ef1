"""FastAPI application factory."""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from models.errors import PersistenceError
from server.routes import engines, health, search
from utils.logger import get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan event handler for startup/shutdown logic."""
    logger.info("FastAPI server starting up")

    required_keys = ["API_KEYS"]
    missing = [k for k in required_keys if not os.getenv(k)]
    if missing:
        logger.warning(f"Missing environment variables: {missing}")

    yield

    from server.dependencies import get_orchestrator

    orchestrator = getattr(get_orchestrator, "_instance", None)
    if orchestrator is not None:
        await orchestrator.cancel_search()
        orchestrator.close()
    logger.info("FastAPI server shutting down")


async def persistence_error_handler(request: Request, exc: PersistenceError):
    logger.error(
        f"State store unavailable: {exc.message}",
        extra={"extra_fields": {"path": request.url.path, "error_kind": exc.kind.value}},
    )
    return JSONResponse(status_code=503, content={"detail": exc.message, "error": exc.to_dict()})


def create_app() -> FastAPI:
    """Factory function to create FastAPI application."""
    app = FastAPI(
        title="MagnetCurator API",
        description="Aggregated magnet search with AI extraction and curation",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(PersistenceError, persistence_error_handler)

    app.include_router(health.router)
    app.include_router(search.router)
    app.include_router(engines.router)

    return app
