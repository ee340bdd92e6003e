"""
FastAPI application entry point.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from musclerise.config import Settings, get_settings
from musclerise.dependencies import open_record_store
from musclerise.errors import StoreError
from musclerise.routes import router

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        with open_record_store(settings) as store:
            app.state.record_store = store
            yield

    app = FastAPI(title="MuscleRise Backend", version="0.1.0", lifespan=lifespan)
    app.include_router(router, prefix=settings.api_prefix)

    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
        # Error kinds stay in the logs; clients only see a generic failure.
        logger.error(
            "Storage failure on %s %s: %s",
            request.method,
            request.url.path,
            exc,
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500, content={"detail": "Internal server error"}
        )

    return app


app = create_app()
