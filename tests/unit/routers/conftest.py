"""Router test fixtures with a mocked Identity service."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, Any
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

from freight_board_service.app import create_app
from freight_board_service.config import clear_settings_cache
from freight_board_service.core.lifespan import lifespan
from freight_board_service.core.state import get_app_state, reset_app_state
from freight_board_service.errors import UnauthorizedError, UpstreamError
from freight_board_service.services.principal import Principal
from tests.helpers import (
    ADMIN,
    CARRIER_A,
    CARRIER_B,
    CARRIER_C,
    CUSTOMER,
    INACTIVE_CARRIER,
    OTHER_CUSTOMER,
    UNAPPROVED_CARRIER,
    FakeUserDirectory,
    write_config,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path

# ---------------------------------------------------------------------------
# Bearer tokens known to the mocked Identity service
# ---------------------------------------------------------------------------
TOKENS: dict[str, Principal] = {
    "admin-token": ADMIN,
    "customer-token": CUSTOMER,
    "other-customer-token": OTHER_CUSTOMER,
    "carrier-a-token": CARRIER_A,
    "carrier-b-token": CARRIER_B,
    "carrier-c-token": CARRIER_C,
    "unapproved-carrier-token": UNAPPROVED_CARRIER,
    "inactive-carrier-token": INACTIVE_CARRIER,
}


def auth(token: str) -> dict[str, str]:
    """Authorization header for a known token."""
    return {"Authorization": f"Bearer {token}"}


ADMIN_AUTH = auth("admin-token")
CUSTOMER_AUTH = auth("customer-token")
OTHER_CUSTOMER_AUTH = auth("other-customer-token")
CARRIER_A_AUTH = auth("carrier-a-token")
CARRIER_B_AUTH = auth("carrier-b-token")


async def _resolve_token(token: str) -> Principal:
    principal = TOKENS.get(token)
    if principal is None:
        raise UnauthorizedError("UNAUTHORIZED", "Authentication required")
    return principal


# ---------------------------------------------------------------------------
# App + client fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
async def app(tmp_path: Path) -> AsyncIterator[Any]:
    """Create a test app with temp database and mocked Identity service."""
    config_path = write_config(tmp_path, max_body_size=4096)

    old_config = os.environ.get("CONFIG_PATH")
    os.environ["CONFIG_PATH"] = str(config_path)

    clear_settings_cache()
    reset_app_state()

    test_app = create_app()
    async with lifespan(test_app):
        state = get_app_state()

        # Mock Identity client; managers pick it up through AppState
        directory = FakeUserDirectory()
        mock_identity = AsyncMock()
        mock_identity.close = AsyncMock()
        mock_identity.resolve_token = AsyncMock(side_effect=_resolve_token)
        mock_identity.get_user = AsyncMock(side_effect=directory.get_user)
        state.identity_client = mock_identity

        yield test_app

    reset_app_state()
    clear_settings_cache()
    if old_config is None:
        os.environ.pop("CONFIG_PATH", None)
    else:
        os.environ["CONFIG_PATH"] = old_config


@pytest.fixture
async def client(app: Any) -> AsyncIterator[AsyncClient]:
    """Create an async HTTP client for the test app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


# ---------------------------------------------------------------------------
# Mock override fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def mock_identity_unavailable(_app: Any) -> None:
    """Configure the Identity mock to simulate service unavailability."""
    state = get_app_state()
    state.identity_client.resolve_token = AsyncMock(
        side_effect=UpstreamError("IDENTITY_SERVICE_UNAVAILABLE", "Cannot connect to Identity service")
    )


# ---------------------------------------------------------------------------
# Request helpers
# ---------------------------------------------------------------------------
async def create_task(client: AsyncClient, headers: dict[str, str] | None = None, **fields: Any) -> dict[str, Any]:
    """Create a task through the API and return its body."""
    body = {"title": "Move a sofa", "pickup": "Main St 1", "dropoff": "Harbor Rd 9"}
    body.update(fields)
    response = await client.post("/tasks", json=body, headers=headers or CUSTOMER_AUTH)
    assert response.status_code == 201, response.text
    return response.json()


async def submit_bid(client: AsyncClient, task_id: int, headers: dict[str, str], amount: Any) -> dict[str, Any]:
    """Submit a bid through the API and return its body."""
    response = await client.post(f"/tasks/{task_id}/bids", json={"amount": amount}, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()
