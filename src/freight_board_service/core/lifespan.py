"""Application lifecycle management."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from freight_board_service.clients.identity_client import IdentityClient
from freight_board_service.config import get_settings
from freight_board_service.core.state import init_app_state
from freight_board_service.logging import get_logger, setup_logging
from freight_board_service.services.assignment_engine import AssignmentEngine
from freight_board_service.services.bid_manager import BidManager
from freight_board_service.services.task_manager import TaskManager
from freight_board_service.services.task_query import TaskQuery
from freight_board_service.services.task_store import TaskStore

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from fastapi import FastAPI


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifecycle."""
    # === STARTUP ===
    settings = get_settings()

    setup_logging(settings.logging.level, settings.service.name, settings.logging.directory)
    logger = get_logger(__name__)

    state = init_app_state()

    # Identity service: bearer token resolution and user lookups
    identity_client = IdentityClient(
        base_url=settings.identity.base_url,
        me_path=settings.identity.me_path,
        users_path=settings.identity.users_path,
        timeout_seconds=settings.identity.timeout_seconds,
    )
    state.identity_client = identity_client

    # One store (one SQLite connection) shared by every component
    store = TaskStore(db_path=settings.database.path)
    task_manager = TaskManager(
        store=store,
        user_directory=identity_client,
        activation_delay_seconds=settings.listing.activation_delay_seconds,
    )
    state.task_manager = task_manager
    state.bid_manager = BidManager(store=store)
    state.assignment_engine = AssignmentEngine(
        store=store,
        user_directory=identity_client,
        copy_bid_amount_to_price=settings.assignment.copy_bid_amount_to_price,
    )
    state.task_query = TaskQuery(
        store=store,
        default_page_size=settings.listing.default_page_size,
        max_page_size=settings.listing.max_page_size,
    )

    logger.info(
        "Service starting",
        extra={
            "service": settings.service.name,
            "version": settings.service.version,
            "port": settings.server.port,
            "db_path": settings.database.path,
            "identity_base_url": settings.identity.base_url,
        },
    )

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Service shutting down", extra={"uptime_seconds": state.uptime_seconds})

    # Closes the shared SQLite connection
    task_manager.close()

    await identity_client.close()
