from __future__ import annotations

import logging
import os

import uvicorn
from fastapi import FastAPI

from app.config import get_report_engine_settings, load_env_files


def _configure_logging() -> None:
    """
    Configure root logging once for the API process.
    """

    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.
    """

    load_env_files()
    _configure_logging()

    settings = get_report_engine_settings()
    logging.getLogger(__name__).info(
        "Report engine configured max_concurrent_queries=%d query_timeout_seconds=%.1f "
        "batch_deadline_seconds=%.1f",
        settings.max_concurrent_queries,
        settings.query_timeout_seconds,
        settings.batch_deadline_seconds,
    )

    application = FastAPI(
        title="Regional Traffic Report API",
        version="1.0.0",
    )

    from app.api.routers import report_router

    application.include_router(report_router)

    @application.get("/health")
    def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    return application


app = create_app()


def run() -> None:
    """
    Serve the API with uvicorn; host and port come from HOST and PORT.
    """

    uvicorn.run(
        "app.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().lower(),
    )


if __name__ == "__main__":
    run()
