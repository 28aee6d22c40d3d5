"""Application state management."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from freight_board_service.clients.identity_client import IdentityClient
    from freight_board_service.services.assignment_engine import AssignmentEngine
    from freight_board_service.services.bid_manager import BidManager
    from freight_board_service.services.task_manager import TaskManager
    from freight_board_service.services.task_query import TaskQuery


@dataclass
class AppState:
    """Runtime application state."""

    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    task_manager: TaskManager | None = None
    bid_manager: BidManager | None = None
    assignment_engine: AssignmentEngine | None = None
    task_query: TaskQuery | None = None
    identity_client: IdentityClient | None = None

    def __setattr__(self, name: str, value: Any) -> None:
        """Keep the user directory of the managers in sync with identity_client."""
        super().__setattr__(name, value)

        if name == "identity_client" and value is not None:
            for holder in ("task_manager", "assignment_engine"):
                component = self.__dict__.get(holder)
                if component is not None:
                    component.set_user_directory(value)
        elif name in ("task_manager", "assignment_engine") and value is not None:
            identity_client = self.__dict__.get("identity_client")
            if identity_client is not None:
                value.set_user_directory(identity_client)

    @property
    def uptime_seconds(self) -> float:
        """Calculate uptime in seconds."""
        return (datetime.now(UTC) - self.start_time).total_seconds()

    @property
    def started_at(self) -> str:
        """ISO format start time."""
        return self.start_time.isoformat(timespec="seconds").replace("+00:00", "Z")


# Global application state container
_state_container: dict[str, AppState | None] = {"app_state": None}


def get_app_state() -> AppState:
    """Get the current application state."""
    app_state = _state_container["app_state"]
    if app_state is None:
        msg = "Application state not initialized"
        raise RuntimeError(msg)
    return app_state


def init_app_state() -> AppState:
    """Initialize application state. Called during startup."""
    app_state = AppState()
    _state_container["app_state"] = app_state
    return app_state


def reset_app_state() -> None:
    """Reset application state. Used in testing."""
    _state_container["app_state"] = None
