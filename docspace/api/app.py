"""
DocSpace API Application — FastAPI app factory.

    app = create_app(config)

The runtime is started in the app lifespan and stored on ``app.state``.
DocSpaceError subclasses map to their ``http_status`` with the body
``{"message": ..., "errorType": ...}``. Upstream failures only ever expose
a generic message; the full error goes to the log.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from docspace import __version__
from docspace.api.routes import files, folders, onlyoffice
from docspace.api.schemas import HealthOut
from docspace.engine.config import DocSpaceConfig, get_config
from docspace.engine.errors import DocSpaceError, RangeNotSatisfiableError
from docspace.engine.runtime import Runtime
from docspace.storage.ranges import unsatisfied_content_range

logger = logging.getLogger("docspace.api.app")


def create_app(
    config: Optional[DocSpaceConfig] = None,
    runtime: Optional[Runtime] = None,
    create_schema: bool = False,
) -> FastAPI:
    """Build the HTTP application around a (possibly injected) runtime."""
    config = config or get_config()
    runtime = runtime or Runtime(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await runtime.startup(create_schema=create_schema)
        try:
            yield
        finally:
            await runtime.shutdown()

    app = FastAPI(
        title=config.platform.name,
        description="Permission-aware file/folder store with collaborative document editing",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.runtime = runtime

    @app.exception_handler(DocSpaceError)
    async def handle_docspace_error(request: Request, exc: DocSpaceError) -> JSONResponse:
        if exc.http_status >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc!r}", extra={"error": exc.to_dict()})
        else:
            logger.info(f"{request.method} {request.url.path} -> {exc.http_status}: {exc.message}")
        headers = {}
        if isinstance(exc, RangeNotSatisfiableError) and exc.size is not None:
            headers["Content-Range"] = unsatisfied_content_range(exc.size)
        return JSONResponse(
            status_code=exc.http_status,
            content={"message": exc.public_message(), "errorType": exc.error_type},
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={
                "message": "Invalid request",
                "errorType": "ValidationError",
                "details": [
                    {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
                    for err in exc.errors()
                ],
            },
        )

    @app.get("/health", response_model=HealthOut, tags=["health"])
    async def health():
        return HealthOut(**await runtime.health())

    # file routes share the /folders prefix; register them first
    app.include_router(files.router)
    app.include_router(folders.router)
    app.include_router(onlyoffice.router)
    return app
