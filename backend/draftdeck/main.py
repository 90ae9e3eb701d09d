"""DraftDeck FastAPI application factory."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from draftdeck import __version__
from draftdeck.config import settings
from draftdeck.errors import DraftDeckError, RemoteApiError, ValidationError
from draftdeck.services import build_services, shutdown_services, start_services

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    # === STARTUP ===
    _setup_logging()
    logger.info("DraftDeck v%s started — listening on %s:%s", __version__, settings.host, settings.port)
    if not settings.has_server_token:
        logger.warning(
            "No server Figma token (DRAFTDECK_FIGMA_ACCESS_TOKEN) — "
            "clients must send x-figma-token"
        )
    start_services(app.state.services)

    try:
        yield
    finally:
        # === SHUTDOWN ===
        shutdown_services(app.state.services)
        logger.info("DraftDeck shutting down")


def _setup_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    for noisy in ("httpx", "httpcore", "apscheduler"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def _remote_error_body(exc: RemoteApiError) -> tuple[int, dict[str, Any]]:
    """Map a Figma failure onto the status and message shown to the user."""
    if exc.is_forbidden:
        return exc.status_code, {
            "error": "Access denied. Check the token's permissions for this resource.",
            "details": exc.message,
            "code": exc.code,
        }
    if exc.is_not_found:
        return 404, {"error": "Not found or not accessible.", "details": exc.message, "code": exc.code}
    return 500, {"error": "Figma API request failed", "details": exc.message, "code": exc.code}


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(DraftDeckError)
    async def _draftdeck_error(request: Request, exc: DraftDeckError):
        if isinstance(exc, RemoteApiError):
            status_code, body = _remote_error_body(exc)
        else:
            status_code, body = exc.status_code, exc.to_dict()
        logger.warning("%s %s -> %d: %s", request.method, request.url.path, status_code, exc.message)
        return JSONResponse(status_code=status_code, content=body)

    @app.exception_handler(RequestValidationError)
    async def _request_validation_error(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        details = "; ".join(
            f"{'.'.join(str(p) for p in e.get('loc', ()))}: {e.get('msg')}" for e in errors
        )
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid request", "details": details, "code": ValidationError.code},
        )


def create_app() -> FastAPI:
    """Application factory — every app gets its own cache and reference store."""
    from draftdeck.api.routes import api_router

    app = FastAPI(
        title=settings.app_name,
        version=__version__,
        debug=settings.debug,
        lifespan=_lifespan,
    )
    app.state.services = build_services(settings)

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_error_handlers(app)
    app.include_router(api_router, prefix=settings.api_prefix)
    return app


app = create_app()


def run(**kwargs: Any) -> None:
    import uvicorn

    uvicorn.run(
        "draftdeck.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
        **kwargs,
    )


if __name__ == "__main__":
    run()
