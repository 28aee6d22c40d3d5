"""API routers."""

from freight_board_service.routers import bids, health, tasks

__all__ = ["bids", "health", "tasks"]
