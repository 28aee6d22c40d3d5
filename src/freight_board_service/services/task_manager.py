"""Task creation, detail views, admin edits, activation, status transitions and deletion."""

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
from freight_board_service.services.task_fields import (
    MAX_ADDRESS_LENGTH,
    MAX_NOTES_LENGTH,
    normalize_category,
    normalize_items,
    normalize_service_level,
    optional_bool,
    optional_datetime,
    optional_text,
    optional_user_id,
    parse_money,
    required_title,
)
from freight_board_service.services.task_lifecycle import (
    TaskStatus,
    check_transition,
    parse_task_status,
)
from freight_board_service.services.task_store import TransactionAbortedError, utc_iso_in, utc_now_iso
from freight_board_service.services.views import bid_to_response, item_to_response, task_to_response

if TYPE_CHECKING:
    from freight_board_service.services.principal import UserDirectory
    from freight_board_service.services.task_store import TaskStore

# Fields only an admin may set when creating a task.
_ADMIN_ONLY_FIELDS = ("customer_id", "is_published")

# Fields accepted by the admin edit. Status, carrier and payment have their own operations.
_EDITABLE_FIELDS = frozenset(
    {
        "title",
        "pickup",
        "dropoff",
        "notes",
        "scheduled_at",
        "price",
        "category",
        "service_level",
        "items",
        "publish_now",
        "unpublish",
        "visible_in_seconds",
        "requires_activation",
    }
)
MAX_VISIBILITY_DELAY_SECONDS = 365 * 24 * 3600


class TaskManager:
    """
    Manages tasks outside of bidding: creation, detail views, admin edits,
    activation, status transitions and deletion.

    Delegates persistence to TaskStore and customer lookups to the
    user directory.
    """

    def __init__(
        self,
        store: TaskStore,
        user_directory: UserDirectory,
        *,
        activation_delay_seconds: int = 0,
    ) -> None:
        self._store = store
        self._user_directory = user_directory
        self._activation_delay_seconds = activation_delay_seconds
        self._logger = get_logger(__name__)

    def set_user_directory(self, user_directory: UserDirectory) -> None:
        """Replace the user directory (used when app state swaps the identity client)."""
        self._user_directory = user_directory

    def _require_task(self, task_id: int) -> dict[str, Any]:
        task = self._store.get_task(task_id)
        if task is None:
            raise NotFoundError("TASK_NOT_FOUND", "Task not found")
        return task

    def _is_owner(self, principal: Principal, task: dict[str, Any]) -> bool:
        return principal.role is Role.CUSTOMER and task["customer_id"] == principal.id

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_task(self, principal: Principal, data: dict[str, Any]) -> dict[str, Any]:
        """
        Create a task in status NEW.

        Customers always own the tasks they create and publish them
        immediately. Admins may create a task on behalf of a customer and
        choose whether it is published. A task created with
        requires_activation stays off the board until it is activated.

        Raises:
            ForbiddenError: FORBIDDEN for carriers or for admin-only fields
            ValidationError: INVALID_PAYLOAD, TITLE_TOO_LONG, INVALID_PRICE,
                INVALID_CUSTOMER
        """
        require_role(principal, Role.CUSTOMER, Role.ADMIN)

        if not principal.is_admin:
            for field in _ADMIN_ONLY_FIELDS:
                if field in data:
                    raise ForbiddenError(
                        "FORBIDDEN",
                        f"Only admins may set {field}",
                        details={"field": field},
                    )

        title = required_title(data)
        pickup = optional_text(data, "pickup", MAX_ADDRESS_LENGTH)
        dropoff = optional_text(data, "dropoff", MAX_ADDRESS_LENGTH)
        notes = optional_text(data, "notes", MAX_NOTES_LENGTH)
        scheduled_at = optional_datetime(data, "scheduled_at")
        raw_price = data.get("price")
        price = (
            None
            if raw_price is None
            else str(parse_money(raw_price, field="price", error_code="INVALID_PRICE"))
        )
        category = normalize_category(data.get("category"))
        service_level = normalize_service_level(data.get("service_level"))
        requires_activation = optional_bool(data, "requires_activation")
        items = normalize_items(data.get("items"))

        if principal.is_admin:
            customer_id = optional_user_id(data, "customer_id")
            is_published = optional_bool(data, "is_published")
            if is_published is None:
                is_published = True
        else:
            customer_id = principal.id
            is_published = True
        if requires_activation:
            is_published = False

        if principal.is_admin and customer_id is not None:
            customer = await self._user_directory.get_user(customer_id)
            if customer is None or customer.role is not Role.CUSTOMER:
                raise ValidationError(
                    "INVALID_CUSTOMER",
                    "customer_id must reference a customer account",
                    details={"customer_id": customer_id},
                )

        now = utc_now_iso()
        task_data: dict[str, Any] = {
            "customer_id": customer_id,
            "carrier_id": None,
            "title": title,
            "pickup": pickup,
            "dropoff": dropoff,
            "notes": notes,
            "scheduled_at": scheduled_at,
            "price": price,
            "status": TaskStatus.NEW.value,
            "paid": 0,
            "category": category,
            "service_level": service_level,
            "is_published": 1 if is_published else 0,
            "visible_after": now if is_published else None,
            "requires_activation": 1 if requires_activation else 0,
            "created_at": now,
            "updated_at": now,
        }
        task_id = self._store.insert_task(task_data, items)

        self._logger.info(
            "Task created",
            extra={
                "task_id": task_id,
                "customer_id": customer_id,
                "created_by": principal.id,
                "items": len(items),
            },
        )
        return await self.get_task(principal, task_id)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_task(self, principal: Principal, task_id: int) -> dict[str, Any]:
        """
        Return a task detail scoped to the caller.

        Admins see every task with its bids and whitelist. Customers see
        their own tasks with bids. Carriers see tasks assigned to them or
        visible to them on the board; other tasks are reported as missing.
        """
        task = self._require_task(task_id)

        if principal.role is Role.CUSTOMER and not self._is_owner(principal, task):
            raise ForbiddenError("NOT_YOUR_TASK", "Task belongs to another customer")
        if (
            principal.role is Role.CARRIER
            and task["carrier_id"] != principal.id
            and not self._store.is_visible_to_carrier(task_id, principal.id, utc_now_iso())
        ):
            raise NotFoundError("TASK_NOT_FOUND", "Task not found")

        response = task_to_response(task)
        items = self._store.get_items_for_task(task_id)
        response["items"] = [item_to_response(item) for item in items]
        if principal.role is not Role.CARRIER:
            bids = self._store.get_bids_for_task(task_id)
            response["bids"] = [bid_to_response(bid) for bid in bids]
        if principal.is_admin:
            response["whitelist"] = self._store.get_whitelist(task_id)
        return response

    async def list_bids(self, principal: Principal, task_id: int) -> dict[str, Any]:
        """List all bids on a task, newest first. Admin or owning customer only."""
        require_role(principal, Role.CUSTOMER, Role.ADMIN)
        task = self._require_task(task_id)
        if not principal.is_admin and not self._is_owner(principal, task):
            raise ForbiddenError("NOT_YOUR_TASK", "Task belongs to another customer")

        bids = self._store.get_bids_for_task(task_id)
        return {"task_id": task_id, "bids": [bid_to_response(bid) for bid in bids]}

    # ------------------------------------------------------------------
    # Admin edits and customer activation
    # ------------------------------------------------------------------

    def _edit_updates(self, data: dict[str, Any]) -> tuple[dict[str, Any], list[dict[str, Any]] | None]:
        """Validate an admin edit body and return the column updates and replacement items."""
        unknown = sorted(field for field in data if field not in _EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(
                "INVALID_PAYLOAD",
                f"Field cannot be edited: {unknown[0]}",
                details={"field": unknown[0], "allowed": sorted(_EDITABLE_FIELDS)},
            )
        if len(data) == 0:
            raise ValidationError("INVALID_PAYLOAD", "No fields to update")

        updates: dict[str, Any] = {}
        if "title" in data:
            updates["title"] = required_title(data)
        for field in ("pickup", "dropoff"):
            if field in data:
                updates[field] = optional_text(data, field, MAX_ADDRESS_LENGTH)
        if "notes" in data:
            updates["notes"] = optional_text(data, "notes", MAX_NOTES_LENGTH)
        if "scheduled_at" in data:
            updates["scheduled_at"] = optional_datetime(data, "scheduled_at")
        if "price" in data:
            raw_price = data["price"]
            updates["price"] = (
                None
                if raw_price is None
                else str(parse_money(raw_price, field="price", error_code="INVALID_PRICE"))
            )
        if "category" in data:
            updates["category"] = normalize_category(data["category"])
        if "service_level" in data:
            updates["service_level"] = normalize_service_level(data["service_level"])
        items = normalize_items(data["items"]) if "items" in data else None

        publish_now = optional_bool(data, "publish_now")
        unpublish = optional_bool(data, "unpublish")
        requires_activation = optional_bool(data, "requires_activation")
        if publish_now and unpublish:
            raise ValidationError(
                "INVALID_PAYLOAD",
                "publish_now and unpublish cannot be combined",
            )
        delay = data.get("visible_in_seconds")
        if delay is not None and (
            isinstance(delay, bool)
            or not isinstance(delay, int)
            or not 0 <= delay <= MAX_VISIBILITY_DELAY_SECONDS
        ):
            raise ValidationError(
                "INVALID_PAYLOAD",
                f"visible_in_seconds must be an integer between 0 and {MAX_VISIBILITY_DELAY_SECONDS}",
                details={"field": "visible_in_seconds"},
            )

        # Applied in order, so an explicit requires_activation wins over publish_now
        if publish_now:
            updates["is_published"] = 1
            updates["visible_after"] = utc_now_iso()
            updates["requires_activation"] = 0
        if unpublish:
            updates["is_published"] = 0
        if delay is not None:
            updates["visible_after"] = utc_iso_in(delay)
        if requires_activation is not None:
            updates["requires_activation"] = 1 if requires_activation else 0

        updates["updated_at"] = utc_now_iso()
        return updates, items

    async def update_task(
        self,
        principal: Principal,
        task_id: int,
        data: dict[str, Any],
    ) -> dict[str, Any]:
        """
        Edit task details and board visibility. Admin only.

        Accepts the descriptive fields (title, addresses, notes, schedule,
        price, category, service level), a full replacement of the line
        items, and the publication controls publish_now, unpublish,
        visible_in_seconds and requires_activation. Status, carrier and
        payment are never changed here.

        Raises:
            ForbiddenError: FORBIDDEN
            ValidationError: INVALID_PAYLOAD, TITLE_TOO_LONG or INVALID_PRICE
            NotFoundError: TASK_NOT_FOUND
        """
        require_role(principal, Role.ADMIN)
        updates, items = self._edit_updates(data)

        try:
            with self._store.unit_of_work() as uow:
                if uow.get_task(task_id) is None:
                    raise NotFoundError("TASK_NOT_FOUND", "Task not found")
                uow.update_task(task_id, updates, expected_status=None)
                if items is not None:
                    uow.replace_items(task_id, items)
        except TransactionAbortedError as exc:
            raise ConflictError(
                "TRANSACTION_ABORTED",
                "Task could not be updated, nothing was changed",
            ) from exc

        self._logger.info(
            "Task updated",
            extra={
                "task_id": task_id,
                "fields": sorted(data),
                "admin_id": principal.id,
            },
        )
        return await self.get_task(principal, task_id)

    async def activate_task(self, principal: Principal, task_id: int) -> dict[str, Any]:
        """
        Put a task that awaits activation on the board.

        The task becomes published and visible to carriers after the
        configured activation delay.

        Raises:
            ForbiddenError: FORBIDDEN or NOT_YOUR_TASK
            NotFoundError: TASK_NOT_FOUND
            ConflictError: NOT_AWAITING_ACTIVATION
        """
        require_role(principal, Role.CUSTOMER, Role.ADMIN)
        task = self._require_task(task_id)
        if not principal.is_admin and not self._is_owner(principal, task):
            raise ForbiddenError("NOT_YOUR_TASK", "Task belongs to another customer")
        if not bool(task["requires_activation"]):
            raise ConflictError(
                "NOT_AWAITING_ACTIVATION",
                "Task does not require activation",
                details={"task_id": task_id},
            )

        visible_after = utc_iso_in(self._activation_delay_seconds)
        self._store.update_task(
            task_id,
            {
                "requires_activation": 0,
                "is_published": 1,
                "visible_after": visible_after,
                "updated_at": utc_now_iso(),
            },
            expected_status=None,
        )

        self._logger.info(
            "Task activated",
            extra={
                "task_id": task_id,
                "visible_after": visible_after,
                "activated_by": principal.id,
            },
        )
        return await self.get_task(principal, task_id)

    # ------------------------------------------------------------------
    # Status transitions and deletion
    # ------------------------------------------------------------------

    async def transition_status(
        self,
        principal: Principal,
        task_id: int,
        next_status: object,
    ) -> dict[str, Any]:
        """
        Move a task to another status following the transition table.

        Only the status column changes. The write is guarded by the status
        that was read, so a concurrent change makes it fail instead of
        overwriting.

        Raises:
            ForbiddenError: FORBIDDEN
            ValidationError: INVALID_STATUS_VALUE
            NotFoundError: TASK_NOT_FOUND
            ConflictError: NO_OP or INVALID_TRANSITION (400), CONCURRENT_UPDATE (409)
        """
        require_role(principal, Role.ADMIN)
        requested = parse_task_status(next_status)
        task = self._require_task(task_id)
        current = TaskStatus(task["status"])
        check_transition(current, requested)

        changed = self._store.update_task(
            task_id,
            {"status": requested.value, "updated_at": utc_now_iso()},
            expected_status=current.value,
        )
        if changed != 1:
            raise ConflictError(
                "CONCURRENT_UPDATE",
                "Task status changed concurrently",
                details={"current": current.value, "next": requested.value},
            )

        self._logger.info(
            "Task status changed",
            extra={
                "task_id": task_id,
                "from_status": current.value,
                "to_status": requested.value,
                "admin_id": principal.id,
            },
        )
        return task_to_response(self._require_task(task_id))

    async def delete_task(self, principal: Principal, task_id: int) -> dict[str, Any]:
        """Delete a task with its bids, items and whitelist rows. Admin only."""
        require_role(principal, Role.ADMIN)
        if self._store.delete_task(task_id) == 0:
            raise NotFoundError("TASK_NOT_FOUND", "Task not found")

        self._logger.info("Task deleted", extra={"task_id": task_id, "admin_id": principal.id})
        return {"task_id": task_id, "deleted": True}

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def get_stats(self) -> dict[str, Any]:
        """Return task counts for the health endpoint."""
        by_status = self._store.count_tasks_by_status()
        return {
            "total_tasks": self._store.count_tasks(),
            "tasks_by_status": {
                status.value: by_status.get(status.value, 0) for status in TaskStatus
            },
        }

    def close(self) -> None:
        """Close the underlying store."""
        self._store.close()
