"""FastAPI application serving competitive-programming profile statistics."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .profiles import ProfilePipeline
from .routes import router
from .settings import ApiSettings, load_settings

logger = logging.getLogger("api")


def _configure_logging(level: str) -> None:
    if logger.handlers:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("[%(asctime)s] %(levelname)s: %(message)s"))
    logger.setLevel(level)
    logger.addHandler(handler)


def create_app(
    settings: Optional[ApiSettings] = None,
    pipeline: Optional[ProfilePipeline] = None,
) -> FastAPI:
    settings = settings or load_settings()
    _configure_logging(settings.log_level)
    pipeline = pipeline or ProfilePipeline(settings.pipeline, logger=logger)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await pipeline.start()
        try:
            yield
        finally:
            await pipeline.stop()

    app = FastAPI(title="Profile Stats API", lifespan=lifespan)
    app.state.settings = settings
    app.state.pipeline = pipeline

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors.allow_origins,
        allow_methods=settings.cors.allow_methods,
        allow_headers=settings.cors.allow_headers,
        expose_headers=["X-Trace-Id", "Retry-After"],
        max_age=settings.cors.max_age,
    )
    app.include_router(router, prefix="/api")

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok"}

    return app
