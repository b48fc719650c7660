"""Punto de entrada principal para la aplicación FastAPI."""

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from marketplace.api.routes.health import router as health_router
from marketplace.core.config import settings
from marketplace.core.logging import configure_logging, get_logger, resolve_log_level
from marketplace.core.middleware import RequestLoggingMiddleware
from marketplace.messaging.router import router as messaging_router
from marketplace.services import supabase

log = get_logger("marketplace")


@asynccontextmanager
async def lifespan(_: FastAPI):
    if settings.supabase_url:
        supabase.init_client(settings)
    else:
        log.warning("supabase.not_configured")
    try:
        yield
    finally:
        await supabase.close_client()


def _setup_logging() -> None:
    default_level = logging.DEBUG if settings.environment != "production" else logging.INFO
    per_logger_files: dict[str, str] = {}
    if settings.log_file_path:
        log_dir = Path(settings.log_file_path).parent
        per_logger_files = {
            "marketplace.request": str(log_dir / "request.log"),
            "marketplace.messaging": str(log_dir / "messaging.log"),
        }
    configure_logging(
        level=resolve_log_level(settings.log_level, default=default_level),
        log_file=settings.log_file_path,
        per_logger_files=per_logger_files,
    )


def create_app() -> FastAPI:
    """Crea y configura la instancia de FastAPI."""
    _setup_logging()

    app = FastAPI(
        title="Campus Marketplace API", version="0.1.0", root_path="/api", lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(health_router)
    app.include_router(messaging_router)
    return app


app = create_app()
