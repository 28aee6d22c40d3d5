"""Service layer components."""

from freight_board_service.services.assignment_engine import AssignmentEngine
from freight_board_service.services.bid_manager import BidManager
from freight_board_service.services.task_manager import TaskManager
from freight_board_service.services.task_query import TaskQuery
from freight_board_service.services.task_store import TaskStore

__all__ = [
    "AssignmentEngine",
    "BidManager",
    "TaskManager",
    "TaskQuery",
    "TaskStore",
]
