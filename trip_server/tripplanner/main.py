# tripplanner/main.py
# -*- coding: utf-8 -*-
"""
Trip Planner Server — FastAPI application entrypoint
----------------------------------------------------
This file wires everything together:

- Sets up central logging.
- Builds the Trip Store, Model Client and Session Registry.
- Creates the FastAPI app with a lifespan hook that runs the registry's
  idle sweeper.
- Adds middleware (CORS for dev) and the TripError → JSON handler.
- Mounts routers:
    * /trips/*  (HTTP) → create / get / chat / messages
- Exposes an ASGI `app` object for uvicorn.

Typical run command (dev), from trip_server/:

    uvicorn tripplanner.main:app --host 0.0.0.0 --port 8000 --reload

"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tripplanner.core.config import Settings, settings
from tripplanner.core.errors import TripError
from tripplanner.providers.client import LLMModelClient
from tripplanner.routers.trips import router as trips_router
from tripplanner.runtime_state import FileTripStore, SessionRegistry
from tripplanner.utils import get_logger, setup_logging

setup_logging(debug=settings.debug)
logger = get_logger(__name__)


def build_registry(cfg: Settings) -> SessionRegistry:
    """Default wiring: file-backed store + HTTP model backends."""
    return SessionRegistry(
        FileTripStore(cfg.data_dir),
        LLMModelClient(cfg),
        cfg=cfg,
    )


def create_app(
    cfg: Optional[Settings] = None,
    registry: Optional[SessionRegistry] = None,
) -> FastAPI:
    """
    Application factory.

    Returns a configured FastAPI instance ready for uvicorn. Tests pass
    their own settings and a registry built on in-memory fakes.
    """
    cfg = cfg or settings
    registry = registry or build_registry(cfg)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        registry.start()
        try:
            yield
        finally:
            await registry.stop()

    app = FastAPI(
        title=cfg.app_name,
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.settings = cfg
    app.state.registry = registry

    if cfg.environment != "production":
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=False,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.exception_handler(TripError)
    async def trip_error_handler(request: Request, exc: TripError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_dict()})

    app.include_router(trips_router)

    # ------------------------------------------------------------------
    # Meta / health endpoints
    # ------------------------------------------------------------------

    @app.get("/", tags=["meta"])
    async def root():
        return {
            "name": cfg.app_name,
            "environment": cfg.environment,
            "message": "Trip planner server is running.",
        }

    @app.get("/health", tags=["meta"])
    async def health_check():
        """
        Lightweight health check for monitoring scripts.
        """
        return {
            "status": "ok",
            "environment": cfg.environment,
            "active_sessions": len(registry),
            "online_enabled": cfg.online_enabled,
            "local_enabled": cfg.local_enabled,
            "template_enabled": cfg.template_enabled,
        }

    logger.info("FastAPI app created (env=%s, data_dir=%s)", cfg.environment, cfg.data_dir)
    return app


# ASGI app for uvicorn / gunicorn
app = create_app()


if __name__ == "__main__":
    """
    Allow `python3 -m tripplanner.main` during development.
    """
    import uvicorn

    uvicorn.run(
        "tripplanner.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=(settings.environment != "production"),
    )
