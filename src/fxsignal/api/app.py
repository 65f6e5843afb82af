"""FastAPI application factory for the engine's JSON surface."""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI

from fxsignal.api.routes import api, push


def create_app(lifespan: Any = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        lifespan: Optional async context manager for application lifespan events.
                  Used by main.py to inject startup/shutdown logic.

    Route handlers read components from app.state: ``context`` (EngineContext)
    and ``orchestrator``.
    """
    app = FastAPI(
        title="FX Signal Engine",
        lifespan=lifespan,
    )

    app.include_router(push.router)
    app.include_router(api.router, prefix="/api")

    return app
