"""FastAPI app factory for the PI Finder API."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from pi_finder.api.investigators import router as investigators_router
from pi_finder.api.results import router as results_router
from pi_finder.api.trial_meta import router as trial_meta_router
from pi_finder.errors import PiFinderError
from pi_finder.observability import configure_logging

LOGGER = logging.getLogger(__name__)


async def _pi_finder_error_handler(request: Request, exc: PiFinderError) -> JSONResponse:
    """Render domain errors as ``{"error": message}`` with their mapped status."""

    if exc.status_code >= 500:
        LOGGER.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse({"error": exc.message}, status_code=exc.status_code)


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed query strings or bodies use the same error shape as domain validation."""

    messages = [str(error.get("msg", "invalid value")) for error in exc.errors()]
    return JSONResponse({"error": "; ".join(messages) or "Invalid request"}, status_code=400)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI instance.
    """
    configure_logging()
    app = FastAPI(title="PI Finder API", version="0.1")
    app.include_router(investigators_router)
    app.include_router(trial_meta_router)
    app.include_router(results_router)
    app.add_exception_handler(PiFinderError, _pi_finder_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)

    @app.get("/healthz", tags=["health"])
    def healthz() -> dict[str, str]:
        return {"status": "ok"}

    return app


# For uvicorn, expose `app` at module level
app = create_app()

__all__ = ["app", "create_app"]
