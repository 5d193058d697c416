"""FastAPI app entrypoint."""

from __future__ import annotations

import logging

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from mcprelay.api.routes.connections import router as connections_router
from mcprelay.api.routes.relay import router as relay_router
from mcprelay.config import get_settings
from mcprelay.errors import ProviderError, RelayError

logger = logging.getLogger(__name__)

CORS_ALLOW_METHODS = ["GET", "POST", "PUT", "DELETE", "OPTIONS"]
CORS_ALLOW_HEADERS = ["Content-Type", "Authorization", "X-Client-Info", "Apikey"]


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def _validation_message(exc: RequestValidationError) -> str:
    fields = []
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query")]
        fields.append(".".join(location) or "body")
    if not fields:
        return "Invalid request"
    return f"Invalid request: {', '.join(fields)}"


def create_app() -> FastAPI:
    app = FastAPI(title="MCP Relay API", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=CORS_ALLOW_METHODS,
        allow_headers=CORS_ALLOW_HEADERS,
    )
    app.include_router(relay_router)
    app.include_router(connections_router)

    @app.exception_handler(RelayError)
    async def relay_error(_: Request, exc: RelayError) -> JSONResponse:
        if isinstance(exc, ProviderError):
            logger.warning("provider answered %s: %s", exc.upstream_status, exc.message)
        elif exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
            logger.error("request failed: %s", exc.message)
        return _error(exc.message, exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_error(_: Request, exc: RequestValidationError) -> JSONResponse:
        return _error(_validation_message(exc), status.HTTP_400_BAD_REQUEST)

    @app.exception_handler(Exception)
    async def unhandled_error(_: Request, exc: Exception) -> JSONResponse:
        logger.exception("unhandled relay error")
        return _error(str(exc) or type(exc).__name__, status.HTTP_500_INTERNAL_SERVER_ERROR)

    @app.get("/api/v1/health", tags=["system"])
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def run() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)
    uvicorn.run("mcprelay.api.app:app", host="0.0.0.0", port=8000, reload=False)
