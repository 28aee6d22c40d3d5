"""Role-scoped, filtered and paginated task listings."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from freight_board_service.errors import ValidationError
from freight_board_service.services.principal import Principal, Role
from freight_board_service.services.task_lifecycle import parse_task_status
from freight_board_service.services.task_store import utc_now_iso
from freight_board_service.services.views import task_to_response

if TYPE_CHECKING:
    from freight_board_service.services.task_store import TaskStore

MAX_QUERY_LENGTH = 200


class TaskQuery:
    """
    Read side of the task board.

    Admins list every task, customers their own tasks, and carriers the
    open board (published, past its visibility delay, biddable and not
    whitelisted away from them) plus the tasks assigned to them.
    """

    def __init__(self, store: TaskStore, default_page_size: int, max_page_size: int) -> None:
        self._store = store
        self._default_page_size = default_page_size
        self._max_page_size = max_page_size

    def _validate_page(self, page: int | None, page_size: int | None) -> tuple[int, int]:
        resolved_page = 1 if page is None else page
        resolved_size = self._default_page_size if page_size is None else page_size
        if resolved_page < 1:
            raise ValidationError(
                "INVALID_PAGINATION",
                "page must be at least 1",
                details={"page": resolved_page},
            )
        if resolved_size < 1 or resolved_size > self._max_page_size:
            raise ValidationError(
                "INVALID_PAGINATION",
                f"page_size must be between 1 and {self._max_page_size}",
                details={"page_size": resolved_size},
            )
        return resolved_page, resolved_size

    async def list_tasks(
        self,
        principal: Principal,
        *,
        q: str | None = None,
        status: str | None = None,
        page: int | None = None,
        page_size: int | None = None,
    ) -> dict[str, Any]:
        """Return one page of tasks visible to the caller, newest first."""
        resolved_page, resolved_size = self._validate_page(page, page_size)
        status_filter = None if status is None else parse_task_status(status).value

        title_contains = q.strip() if q is not None else None
        if title_contains is not None and len(title_contains) > MAX_QUERY_LENGTH:
            raise ValidationError(
                "INVALID_PAYLOAD",
                f"q must not exceed {MAX_QUERY_LENGTH} characters",
            )

        customer_id = principal.id if principal.role is Role.CUSTOMER else None
        carrier_scope = principal.id if principal.role is Role.CARRIER else None

        total, rows = self._store.query_tasks(
            status=status_filter,
            title_contains=title_contains or None,
            customer_id=customer_id,
            carrier_scope=carrier_scope,
            now=utc_now_iso() if carrier_scope is not None else None,
            limit=resolved_size,
            offset=(resolved_page - 1) * resolved_size,
        )
        return {
            "total": total,
            "items": [task_to_response(row) for row in rows],
            "page": resolved_page,
            "page_size": resolved_size,
        }
