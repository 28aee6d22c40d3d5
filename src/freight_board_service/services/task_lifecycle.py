"""Task and bid status vocabulary and the task state machine."""

from __future__ import annotations

from enum import StrEnum

from freight_board_service.errors import ConflictError, ValidationError


class TaskStatus(StrEnum):
    """Lifecycle status of a transport task."""

    NEW = "NEW"
    PLANNED = "PLANNED"
    IN_PROGRESS = "IN_PROGRESS"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class BidStatus(StrEnum):
    """Status of a carrier bid. ACCEPTED and REJECTED are final."""

    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


TERMINAL_STATUSES: frozenset[TaskStatus] = frozenset({TaskStatus.DELIVERED, TaskStatus.CANCELLED})

ALLOWED_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.NEW: frozenset({TaskStatus.PLANNED, TaskStatus.CANCELLED}),
    TaskStatus.PLANNED: frozenset({TaskStatus.IN_PROGRESS, TaskStatus.CANCELLED}),
    TaskStatus.IN_PROGRESS: frozenset({TaskStatus.DELIVERED, TaskStatus.CANCELLED}),
    TaskStatus.DELIVERED: frozenset(),
    TaskStatus.CANCELLED: frozenset(),
}

# Statuses in which a task may carry an assigned carrier.
ASSIGNED_STATUSES: frozenset[TaskStatus] = frozenset(
    {TaskStatus.PLANNED, TaskStatus.IN_PROGRESS, TaskStatus.DELIVERED}
)


def parse_task_status(value: object) -> TaskStatus:
    """Parse a requested status, raising INVALID_STATUS_VALUE for non-members."""
    if not isinstance(value, str):
        raise ValidationError(
            "INVALID_STATUS_VALUE",
            "status must be a string",
            details={"allowed": [status.value for status in TaskStatus]},
        )
    try:
        return TaskStatus(value.strip().upper())
    except ValueError as exc:
        raise ValidationError(
            "INVALID_STATUS_VALUE",
            f"Unknown task status: {value}",
            details={"allowed": [status.value for status in TaskStatus]},
        ) from exc


def is_terminal(status: TaskStatus) -> bool:
    """Return True when no further transitions are permitted."""
    return status in TERMINAL_STATUSES


def check_transition(current: TaskStatus, requested: TaskStatus) -> None:
    """
    Validate a status change against the transition table.

    A same-status request is an error rather than a silent success, and
    terminal states accept no transitions at all.

    Raises:
        ConflictError: NO_OP or INVALID_TRANSITION, both rendered as 400.
    """
    details = {"current": current.value, "next": requested.value}
    if current == requested:
        raise ConflictError(
            "NO_OP",
            f"Task is already {current.value}",
            400,
            details,
        )
    if requested not in ALLOWED_TRANSITIONS[current]:
        raise ConflictError(
            "INVALID_TRANSITION",
            f"Illegal transition {current.value} -> {requested.value}",
            400,
            details,
        )
