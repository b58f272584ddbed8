from __future__ import annotations

import logging
import os
import sys
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, UTC
from typing import List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from api_routes import router
from core.database import initialize_database
from core.error_handlers import (
    generic_exception_handler,
    http_exception_handler,
    runtime_error_handler,
    validation_error_handler,
    value_error_handler,
)

CORS_ALLOW_HEADERS = [
    "Content-Type",
    "X-Amz-Date",
    "Authorization",
    "X-Api-Key",
    "X-Amz-Security-Token",
    "X-Amz-User-Agent",
]


@dataclass
class AppConfig:
    """Settings for one deployment flavour of the MoneyMind API (Lambda or local)."""

    title: str
    description: str
    version: str = "1.0.0"
    environment: Optional[str] = None
    root_message: str = "Welcome to MoneyMind API"
    log_context: Optional[str] = None
    cors_origins: List[str] = field(default_factory=lambda: ["*"])

    @property
    def context_label(self) -> str:
        """Label written in startup and shutdown log lines."""
        return self.log_context or self.title


def _configure_logging() -> logging.Logger:
    """Send log records to stdout (CloudWatch picks them up) at LOG_LEVEL."""
    level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stdout,
    )
    logger = logging.getLogger("moneymind.api")
    logger.setLevel(level)
    return logger


def create_app(config: AppConfig) -> FastAPI:
    """Build the MoneyMind FastAPI app around the shared /api router."""
    logger = _configure_logging()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Ensure the expenses table exists before serving requests."""
        logger.info("Starting %s", config.context_label)
        try:
            if initialize_database():
                logger.info("Expenses table ready")
            else:
                logger.error("Expenses table could not be initialized")
        except Exception as exc:  # pragma: no cover - startup must not crash the app
            logger.error("Expenses table initialization error: %s", exc)

        yield

        logger.info("Shutting down %s", config.context_label)

    app = FastAPI(
        title=config.title,
        description=config.description,
        version=config.version,
        lifespan=lifespan,
    )

    app.state.config = config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=CORS_ALLOW_HEADERS,
    )

    # Every error is rendered as {"success": false, "error": ...}
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(ValueError, value_error_handler)
    app.add_exception_handler(RuntimeError, runtime_error_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log method, URL, status and latency for each call."""
        start_time = datetime.now(UTC)
        logger.info("Request: %s %s", request.method, request.url)

        response = await call_next(request)

        process_time = (datetime.now(UTC) - start_time).total_seconds()
        logger.info("Response: %s - %.3fs", response.status_code, process_time)

        return response

    app.include_router(router)
    return app
