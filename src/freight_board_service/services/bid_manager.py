"""Carrier bid submission and carrier-side bid listing."""

from __future__ import annotations

from typing import Any

from freight_board_service.errors import ConflictError, NotFoundError
from freight_board_service.logging import get_logger
from freight_board_service.services.principal import (
    Principal,
    Role,
    require_approved_carrier,
    require_role,
)
from freight_board_service.services.task_fields import (
    MAX_MESSAGE_LENGTH,
    optional_text,
    parse_money,
)
from freight_board_service.services.task_lifecycle import BidStatus, TaskStatus, is_terminal
from freight_board_service.services.task_store import (
    DuplicateBidError,
    TaskStore,
    TransactionAbortedError,
    utc_now_iso,
)
from freight_board_service.services.views import bid_to_response, carrier_bid_to_response


class BidManager:
    """
    Accepts bids from carriers.

    Every bid starts PENDING. Only the assignment engine moves a bid to
    ACCEPTED or REJECTED.
    """

    def __init__(self, store: TaskStore) -> None:
        self._store = store
        self._logger = get_logger(__name__)

    async def submit_bid(
        self,
        principal: Principal,
        task_id: int,
        amount: object,
        message: object = None,
    ) -> dict[str, Any]:
        """
        Submit a bid on a task.

        Input is validated before the store is touched. The duplicate check
        is the INSERT itself, run against the unique (task, carrier) index
        inside the same transaction that re-reads the task. A task the carrier
        cannot see on the board is reported as missing.

        Raises:
            ForbiddenError: FORBIDDEN or CARRIER_NOT_APPROVED
            ValidationError: INVALID_AMOUNT or INVALID_PAYLOAD
            NotFoundError: TASK_NOT_FOUND
            ConflictError: TASK_CLOSED or DUPLICATE_BID
        """
        require_approved_carrier(principal)
        parsed_amount = parse_money(amount, field="amount", error_code="INVALID_AMOUNT")
        parsed_message = optional_text({"message": message}, "message", MAX_MESSAGE_LENGTH)

        now = utc_now_iso()
        try:
            with self._store.unit_of_work() as uow:
                task = uow.get_task(task_id)
                if task is None:
                    raise NotFoundError("TASK_NOT_FOUND", "Task not found")
                if is_terminal(TaskStatus(task["status"])) or bool(task["paid"]):
                    raise ConflictError(
                        "TASK_CLOSED",
                        "Task is no longer accepting bids",
                        details={"status": task["status"], "paid": bool(task["paid"])},
                    )
                # Drafts, delayed and whitelisted-away tasks look missing, as in get_task
                if task["carrier_id"] != principal.id and not uow.is_visible_to_carrier(
                    task_id, principal.id, now
                ):
                    raise NotFoundError("TASK_NOT_FOUND", "Task not found")
                bid_id = uow.insert_bid(
                    {
                        "task_id": task_id,
                        "carrier_id": principal.id,
                        "amount": str(parsed_amount),
                        "message": parsed_message,
                        "status": BidStatus.PENDING.value,
                        "created_at": now,
                    }
                )
                bid = uow.get_bid(bid_id)
        except DuplicateBidError as exc:
            raise ConflictError(
                "DUPLICATE_BID",
                "This carrier has already bid on this task",
                details={"task_id": task_id, "carrier_id": principal.id},
            ) from exc
        except TransactionAbortedError as exc:
            raise ConflictError(
                "TRANSACTION_ABORTED",
                "Bid could not be stored, nothing was changed",
            ) from exc

        if bid is None:
            msg = f"Bid {bid_id} vanished after insert"
            raise RuntimeError(msg)

        self._logger.info(
            "Bid submitted",
            extra={
                "bid_id": bid_id,
                "task_id": task_id,
                "carrier_id": principal.id,
                "amount": str(parsed_amount),
            },
        )
        return bid_to_response(bid)

    async def list_my_bids(self, principal: Principal) -> dict[str, Any]:
        """List the calling carrier's bids, newest first, each with a task summary."""
        require_role(principal, Role.CARRIER)
        rows = self._store.get_bids_for_carrier(principal.id)
        return {"bids": [carrier_bid_to_response(row) for row in rows]}
