"""Shared test helpers: principals, a fake user directory, config and task seeding."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from freight_board_service.services.principal import Principal, Role
from freight_board_service.services.task_store import utc_now_iso

if TYPE_CHECKING:
    from pathlib import Path

    from freight_board_service.services.task_store import TaskStore

# ---------------------------------------------------------------------------
# Fixed principals
# ---------------------------------------------------------------------------
ADMIN = Principal(id=1, role=Role.ADMIN, approved=True, active=True)
CUSTOMER = Principal(id=10, role=Role.CUSTOMER, approved=True, active=True)
OTHER_CUSTOMER = Principal(id=11, role=Role.CUSTOMER, approved=True, active=True)
CARRIER_A = Principal(id=20, role=Role.CARRIER, approved=True, active=True)
CARRIER_B = Principal(id=21, role=Role.CARRIER, approved=True, active=True)
CARRIER_C = Principal(id=22, role=Role.CARRIER, approved=True, active=True)
UNAPPROVED_CARRIER = Principal(id=23, role=Role.CARRIER, approved=False, active=True)
INACTIVE_CARRIER = Principal(id=24, role=Role.CARRIER, approved=True, active=False)

ALL_PRINCIPALS: tuple[Principal, ...] = (
    ADMIN,
    CUSTOMER,
    OTHER_CUSTOMER,
    CARRIER_A,
    CARRIER_B,
    CARRIER_C,
    UNAPPROVED_CARRIER,
    INACTIVE_CARRIER,
)


class FakeUserDirectory:
    """In-memory user lookup with the same interface as IdentityClient.get_user."""

    def __init__(self, principals: tuple[Principal, ...] = ALL_PRINCIPALS) -> None:
        self._users = {principal.id: principal for principal in principals}
        self.lookups: list[int] = []

    async def get_user(self, user_id: int) -> Principal | None:
        self.lookups.append(user_id)
        return self._users.get(user_id)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------
def make_config_yaml(
    db_path: str,
    log_directory: str,
    *,
    copy_bid_amount_to_price: bool = True,
    max_body_size: int = 1048576,
    activation_delay_seconds: int = 0,
) -> str:
    """Render a complete service configuration."""
    return f"""\
service:
  name: "freight-board"
  version: "0.1.0"
server:
  host: "0.0.0.0"
  port: 8003
  log_level: "info"
logging:
  level: "WARNING"
  directory: "{log_directory}"
database:
  path: "{db_path}"
identity:
  base_url: "http://localhost:8001"
  me_path: "/auth/me"
  users_path: "/users"
  timeout_seconds: 10
request:
  max_body_size: {max_body_size}
assignment:
  copy_bid_amount_to_price: {"true" if copy_bid_amount_to_price else "false"}
listing:
  default_page_size: 20
  max_page_size: 100
  activation_delay_seconds: {activation_delay_seconds}
"""


def write_config(tmp_path: Path, **kwargs: Any) -> Path:
    """Write a config file into tmp_path and return its path."""
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        make_config_yaml(
            str(tmp_path / "freight-board.db"),
            str(tmp_path / "logs"),
            **kwargs,
        )
    )
    return config_path


# ---------------------------------------------------------------------------
# Store seeding
# ---------------------------------------------------------------------------
def task_data(**overrides: Any) -> dict[str, Any]:
    """A complete task row for TaskStore.insert_task with sensible defaults."""
    now = utc_now_iso()
    data: dict[str, Any] = {
        "customer_id": CUSTOMER.id,
        "carrier_id": None,
        "title": "Move a sofa",
        "pickup": "Main St 1",
        "dropoff": "Harbor Rd 9",
        "notes": None,
        "scheduled_at": None,
        "price": None,
        "status": "NEW",
        "paid": 0,
        "category": None,
        "service_level": None,
        "is_published": 1,
        "visible_after": now,
        "requires_activation": 0,
        "created_at": now,
        "updated_at": now,
    }
    data.update(overrides)
    return data


def seed_task(store: TaskStore, items: list[dict[str, Any]] | None = None, **overrides: Any) -> int:
    """Insert a task and return its id."""
    return store.insert_task(task_data(**overrides), items or [])


def seed_bid(store: TaskStore, task_id: int, carrier_id: int, amount: str, status: str = "PENDING") -> int:
    """Insert a bid directly through a unit of work and return its id."""
    with store.unit_of_work() as uow:
        return uow.insert_bid(
            {
                "task_id": task_id,
                "carrier_id": carrier_id,
                "amount": amount,
                "message": None,
                "status": status,
                "created_at": utc_now_iso(),
            }
        )
