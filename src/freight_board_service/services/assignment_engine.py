"""Carrier assignment: bid acceptance, admin reassignment, retender and whitelists."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from freight_board_service.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from freight_board_service.logging import get_logger
from freight_board_service.services.principal import Principal, Role, require_role
from freight_board_service.services.task_lifecycle import (
    BidStatus,
    TaskStatus,
    check_transition,
    is_terminal,
)
from freight_board_service.services.task_store import TransactionAbortedError, utc_now_iso
from freight_board_service.services.views import bid_to_response, task_to_response

if TYPE_CHECKING:
    from freight_board_service.services.principal import UserDirectory
    from freight_board_service.services.task_store import TaskStore


class AssignmentEngine:
    """
    Decides which carrier performs a task.

    accept_bid is the only path that changes bid statuses together with the
    task; it runs as one unit of work so that no reader ever sees an accepted
    bid without the matching task assignment, or two accepted bids on a task.
    """

    def __init__(
        self,
        store: TaskStore,
        user_directory: UserDirectory,
        copy_bid_amount_to_price: bool,
    ) -> None:
        self._store = store
        self._user_directory = user_directory
        self._copy_bid_amount_to_price = copy_bid_amount_to_price
        self._logger = get_logger(__name__)

    def set_user_directory(self, user_directory: UserDirectory) -> None:
        """Replace the user directory (used when app state swaps the identity client)."""
        self._user_directory = user_directory

    def _require_task(self, task_id: int) -> dict[str, Any]:
        task = self._store.get_task(task_id)
        if task is None:
            raise NotFoundError("TASK_NOT_FOUND", "Task not found")
        return task

    async def _require_eligible_carrier(self, carrier_id: int) -> None:
        user = await self._user_directory.get_user(carrier_id)
        if user is None or not user.is_eligible_carrier:
            raise ValidationError(
                "INVALID_CARRIER",
                "Carrier must be an approved, active carrier account",
                details={"carrier_id": carrier_id},
            )

    # ------------------------------------------------------------------
    # Accept bid
    # ------------------------------------------------------------------

    async def accept_bid(self, principal: Principal, bid_id: int) -> dict[str, Any]:
        """
        Accept a bid on behalf of the task owner or an admin.

        Inside one transaction: the bid becomes ACCEPTED, every other bid on
        the task becomes REJECTED, and the task gets the bid's carrier and
        moves to PLANNED. Preconditions are checked against rows re-read
        inside that transaction, in this order:

        Raises:
            ForbiddenError: FORBIDDEN (carrier caller) or NOT_YOUR_TASK
            NotFoundError: BID_NOT_FOUND
            ConflictError: TASK_CLOSED, BID_NOT_PENDING, INVALID_TRANSITION,
                TRANSACTION_ABORTED
        """
        require_role(principal, Role.CUSTOMER, Role.ADMIN)

        now = utc_now_iso()
        try:
            with self._store.unit_of_work() as uow:
                bid = uow.get_bid(bid_id)
                if bid is None:
                    raise NotFoundError("BID_NOT_FOUND", "Bid not found")

                task_id = int(bid["task_id"])
                task = uow.get_task(task_id)
                if task is None:
                    raise NotFoundError("TASK_NOT_FOUND", "Task not found")

                if not principal.is_admin and task["customer_id"] != principal.id:
                    raise ForbiddenError(
                        "NOT_YOUR_TASK",
                        "Only the task owner can accept bids",
                    )

                current = TaskStatus(task["status"])
                if is_terminal(current) or bool(task["paid"]):
                    raise ConflictError(
                        "TASK_CLOSED",
                        "Task is closed",
                        details={"status": current.value, "paid": bool(task["paid"])},
                    )

                if bid["status"] != BidStatus.PENDING:
                    raise ConflictError(
                        "BID_NOT_PENDING",
                        f"Bid is already {bid['status']}",
                        details={"bid_id": bid_id, "status": bid["status"]},
                    )

                if current is TaskStatus.NEW:
                    check_transition(current, TaskStatus.PLANNED)
                elif current is not TaskStatus.PLANNED:
                    raise ConflictError(
                        "INVALID_TRANSITION",
                        f"Illegal transition {current.value} -> {TaskStatus.PLANNED.value}",
                        details={"current": current.value, "next": TaskStatus.PLANNED.value},
                    )

                uow.set_bid_status(bid_id, BidStatus.ACCEPTED.value, now)
                rejected = uow.reject_other_bids(task_id, bid_id, now)

                updates: dict[str, Any] = {
                    "carrier_id": bid["carrier_id"],
                    "status": TaskStatus.PLANNED.value,
                    "updated_at": now,
                }
                if self._copy_bid_amount_to_price:
                    updates["price"] = bid["amount"]
                changed = uow.update_task(task_id, updates, expected_status=current.value)
                if changed != 1:
                    raise ConflictError(
                        "CONCURRENT_UPDATE",
                        "Task changed while the bid was being accepted",
                    )

                accepted_bid = uow.get_bid(bid_id)
                updated_task = uow.get_task(task_id)
        except TransactionAbortedError as exc:
            self._logger.error(
                "Bid acceptance rolled back",
                extra={"bid_id": bid_id, "error": str(exc.__cause__ or exc)},
            )
            raise ConflictError(
                "TRANSACTION_ABORTED",
                "Bid acceptance failed, nothing was changed",
                details={"bid_id": bid_id},
            ) from exc

        if accepted_bid is None or updated_task is None:
            msg = f"Bid {bid_id} or its task vanished inside the acceptance transaction"
            raise RuntimeError(msg)

        self._logger.info(
            "Bid accepted",
            extra={
                "bid_id": bid_id,
                "task_id": task_id,
                "carrier_id": accepted_bid["carrier_id"],
                "rejected_bids": rejected,
                "accepted_by": principal.id,
            },
        )
        return {
            "task": task_to_response(updated_task),
            "bid": bid_to_response(accepted_bid),
        }

    # ------------------------------------------------------------------
    # Admin operations
    # ------------------------------------------------------------------

    async def reassign_carrier(
        self,
        principal: Principal,
        task_id: int,
        carrier_id: int | None,
    ) -> dict[str, Any]:
        """
        Set or clear the task's carrier directly.

        Bid records are left as they are and the status is not changed.
        """
        require_role(principal, Role.ADMIN)
        self._require_task(task_id)
        if carrier_id is not None:
            await self._require_eligible_carrier(carrier_id)

        self._store.update_task(
            task_id,
            {"carrier_id": carrier_id, "updated_at": utc_now_iso()},
            expected_status=None,
        )
        self._logger.info(
            "Carrier reassigned",
            extra={"task_id": task_id, "carrier_id": carrier_id, "admin_id": principal.id},
        )
        return task_to_response(self._require_task(task_id))

    async def retender(
        self,
        principal: Principal,
        task_id: int,
        clear_whitelist: bool,
    ) -> dict[str, Any]:
        """
        Put a task back on the open board.

        Clears the carrier, republishes the task as of now and demotes any
        previously accepted bid to REJECTED. Whitelist rows are removed when
        clear_whitelist is set. The status is left unchanged.
        """
        require_role(principal, Role.ADMIN)

        now = utc_now_iso()
        try:
            with self._store.unit_of_work() as uow:
                if uow.get_task(task_id) is None:
                    raise NotFoundError("TASK_NOT_FOUND", "Task not found")
                uow.update_task(
                    task_id,
                    {
                        "carrier_id": None,
                        "is_published": 1,
                        "visible_after": now,
                        "updated_at": now,
                    },
                    expected_status=None,
                )
                demoted = uow.reject_accepted_bids(task_id, now)
                purged = uow.clear_whitelist(task_id) if clear_whitelist else 0
                task = uow.get_task(task_id)
        except TransactionAbortedError as exc:
            raise ConflictError(
                "TRANSACTION_ABORTED",
                "Retender failed, nothing was changed",
                details={"task_id": task_id},
            ) from exc

        if task is None:
            msg = f"Task {task_id} vanished inside the retender transaction"
            raise RuntimeError(msg)

        self._logger.info(
            "Task retendered",
            extra={
                "task_id": task_id,
                "demoted_bids": demoted,
                "whitelist_rows_removed": purged,
                "admin_id": principal.id,
            },
        )
        return task_to_response(task)

    async def add_to_whitelist(
        self,
        principal: Principal,
        task_id: int,
        carrier_id: int,
    ) -> dict[str, Any]:
        """Allow a carrier to see a task on the board. Adding twice is a no-op."""
        require_role(principal, Role.ADMIN)
        self._require_task(task_id)
        await self._require_eligible_carrier(carrier_id)

        self._store.add_to_whitelist(task_id, carrier_id)
        self._logger.info(
            "Carrier whitelisted",
            extra={"task_id": task_id, "carrier_id": carrier_id, "admin_id": principal.id},
        )
        return {"task_id": task_id, "carrier_ids": self._store.get_whitelist(task_id)}
