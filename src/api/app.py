from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Awaitable, Callable

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.api.errors import (
    APIError,
    api_error_handler,
    http_error_handler,
    unhandled_error_handler,
    validation_error_handler,
)
from src.api.responses import apply_cors_headers, json_response
from src.config.load_config import AppConfig, load_app_config
from src.storage.dataset_store import DatasetStore
from src.utils.logging_setup import setup_logging

from .routers.datasets import router as datasets_router
from .routers.health import router as health_router


logger = logging.getLogger(__name__)


def create_app(*, config: AppConfig | None = None, store: DatasetStore | None = None) -> FastAPI:
    """Build the HTTP app.

    `store` is an explicit dependency: pass an InMemoryDatasetStore in tests.
    When omitted, the configured backend is built on first use and closed on
    shutdown.
    """
    cfg = config or load_app_config()
    setup_logging(cfg.logging.level, cfg.logging.format)

    @asynccontextmanager
    async def lifespan(app: FastAPI):  # noqa: ANN202
        logger.info(
            "Atlas Sync starting",
            extra={"backend": cfg.storage.backend if store is None else store.describe()},
        )
        try:
            yield
        finally:
            owned = getattr(app.state, "dataset_store", None)
            if owned is not None and getattr(app.state, "owns_dataset_store", False):
                owned.close()
                app.state.dataset_store = None
                app.state.owns_dataset_store = False

    app = FastAPI(title="Atlas Sync API", version="0.1.0", lifespan=lifespan, docs_url=None, redoc_url=None)
    app.state.config = cfg
    app.state.dataset_store = store
    app.state.owns_dataset_store = False

    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    @app.middleware("http")
    async def cors_envelope(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        # Preflight never reaches routing or handlers.
        if request.method == "OPTIONS":
            return json_response(200, {})
        response = await call_next(request)
        apply_cors_headers(response.headers)
        return response

    app.include_router(datasets_router, tags=["datasets"])
    app.include_router(health_router, tags=["system"])

    return app


app = create_app()
