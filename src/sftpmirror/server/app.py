"""FastAPI application for the sftpmirror service.

This module creates and configures the FastAPI application with:
- REST API for sync items, jobs and settings
- Lifespan management of the worker loop and the cron scheduler

Usage:
    uvicorn sftpmirror.server.app:app_factory --factory --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path

from fastapi import FastAPI

from sftpmirror.core.config import AppConfig, ConnectionConfig
from sftpmirror.server.api.router import router as api_router
from sftpmirror.server.database import Database
from sftpmirror.server.scheduler import SyncScheduler
from sftpmirror.sync.connection import SFTPConnectionProvider
from sftpmirror.sync.control import ControllerRegistry
from sftpmirror.sync.service import MirrorService
from sftpmirror.sync.worker import SyncWorker

logger = logging.getLogger(__name__)


def setup_logging(log_path: Path) -> None:
    """Configure logging to output to both file and stdout.

    Args:
        log_path: Path to the log file.
    """
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    formatter = logging.Formatter(log_format)

    # Root logger for sftpmirror
    root_logger = logging.getLogger("sftpmirror")
    root_logger.setLevel(logging.INFO)

    # Stdout handler
    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(formatter)
    root_logger.addHandler(stdout_handler)

    # File handler
    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    # Also capture uvicorn logs to file
    for uvicorn_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(uvicorn_name)
        uvicorn_logger.addHandler(file_handler)


@dataclass
class Runtime:
    """Wired components of one service process."""

    db: Database
    service: MirrorService
    worker: SyncWorker
    scheduler: SyncScheduler


def build_runtime(config: AppConfig) -> Runtime:
    """Wire database, connection provider, worker, scheduler and service.

    Connection parameters are re-read from the environment for every
    session; the retry budget follows the ``connection_timeout_minutes``
    setting.
    """
    db = Database(config.db_path)
    provider = SFTPConnectionProvider(
        ConnectionConfig.from_env,
        retry_budget=lambda: db.get_connection_timeout_minutes() * 60,
    )
    registry = ControllerRegistry()
    worker = SyncWorker(
        db,
        provider,
        registry=registry,
        tick_interval=config.tick_interval,
        chunk_size=config.chunk_size,
    )
    scheduler = SyncScheduler(db)
    service = MirrorService(db, provider, registry=registry, scheduler=scheduler)
    return Runtime(db=db, service=service, worker=worker, scheduler=scheduler)


def create_app(
    service: MirrorService,
    worker: SyncWorker | None = None,
    scheduler: SyncScheduler | None = None,
) -> FastAPI:
    """Create FastAPI application around a mirror service.

    The worker and scheduler, when given, run for the application's lifetime.
    Tests pass only a service and drive the worker themselves.

    Args:
        service: Mirror service instance.
        worker: Optional worker loop to start and stop with the app.
        scheduler: Optional cron scheduler to start and stop with the app.

    Returns:
        Configured FastAPI application.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler for startup/shutdown."""
        # Startup
        logger.info("=" * 60)
        logger.info("sftpmirror starting")
        logger.info("=" * 60)
        logger.info("  Database: %s", service.db.path)
        logger.info("  Remote:   %s", ConnectionConfig.from_env().masked())
        logger.info("=" * 60)
        if scheduler is not None:
            scheduler.start()
        if worker is not None:
            worker.start()

        yield

        # Shutdown
        logger.info("sftpmirror shutting down")
        if scheduler is not None:
            scheduler.stop()
        if worker is not None:
            worker.stop()

    application = FastAPI(
        title="sftpmirror",
        description="One-way SFTP mirroring service",
        version="0.1.0",
        lifespan=lifespan,
    )

    application.state.service = service
    application.state.worker = worker
    application.state.scheduler = scheduler

    application.include_router(api_router)

    return application


def app_factory() -> FastAPI:
    """Factory function for uvicorn --factory mode."""
    config = AppConfig.from_env()
    setup_logging(config.log_path)
    runtime = build_runtime(config)
    return create_app(runtime.service, worker=runtime.worker, scheduler=runtime.scheduler)
