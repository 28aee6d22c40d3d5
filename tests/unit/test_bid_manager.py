"""Unit tests for BidManager."""

from __future__ import annotations

import pytest

from freight_board_service.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from freight_board_service.services.bid_manager import BidManager
from freight_board_service.services.task_store import TaskStore
from tests.helpers import (
    CARRIER_A,
    CARRIER_B,
    CUSTOMER,
    INACTIVE_CARRIER,
    UNAPPROVED_CARRIER,
    seed_task,
)


@pytest.fixture
def bids(store: TaskStore) -> BidManager:
    return BidManager(store=store)


@pytest.mark.unit
async def test_submit_bid_creates_pending_bid(bids: BidManager, store: TaskStore) -> None:
    task_id = seed_task(store)

    bid = await bids.submit_bid(CARRIER_A, task_id, "500", "Can do Tuesday")

    assert bid["status"] == "PENDING"
    assert bid["amount"] == "500.00"
    assert bid["carrier_id"] == CARRIER_A.id
    assert bid["task_id"] == task_id
    assert bid["message"] == "Can do Tuesday"
    assert store.get_bid(bid["bid_id"]) is not None


@pytest.mark.unit
async def test_duplicate_bid_rejected(bids: BidManager, store: TaskStore) -> None:
    """A second bid by the same carrier fails and leaves exactly one bid."""
    task_id = seed_task(store)
    await bids.submit_bid(CARRIER_A, task_id, 500)

    with pytest.raises(ConflictError) as exc_info:
        await bids.submit_bid(CARRIER_A, task_id, 450)
    assert exc_info.value.error == "DUPLICATE_BID"
    assert exc_info.value.status_code == 409

    rows = store.get_bids_for_task(task_id)
    assert len(rows) == 1
    assert rows[0]["amount"] == "500.00"


@pytest.mark.unit
async def test_different_carriers_may_bid_on_one_task(bids: BidManager, store: TaskStore) -> None:
    task_id = seed_task(store)
    await bids.submit_bid(CARRIER_A, task_id, 500)
    await bids.submit_bid(CARRIER_B, task_id, 600)
    assert len(store.get_bids_for_task(task_id)) == 2


@pytest.mark.unit
@pytest.mark.parametrize(
    "overrides",
    [{"status": "DELIVERED"}, {"status": "CANCELLED"}, {"paid": 1}],
)
async def test_closed_task_rejects_bids(
    bids: BidManager,
    store: TaskStore,
    overrides: dict[str, object],
) -> None:
    """Terminal or paid tasks accept no bids and no bid row is created."""
    task_id = seed_task(store, **overrides)

    with pytest.raises(ConflictError) as exc_info:
        await bids.submit_bid(CARRIER_A, task_id, 500)
    assert exc_info.value.error == "TASK_CLOSED"
    assert store.get_bids_for_task(task_id) == []


@pytest.mark.unit
async def test_bid_on_missing_task(bids: BidManager) -> None:
    with pytest.raises(NotFoundError) as exc_info:
        await bids.submit_bid(CARRIER_A, 999, 500)
    assert exc_info.value.error == "TASK_NOT_FOUND"


@pytest.mark.unit
@pytest.mark.parametrize(
    "overrides",
    [
        {"is_published": 0, "visible_after": None},
        {"visible_after": "2999-01-01T00:00:00.000000Z"},
        {"is_published": 0, "visible_after": None, "requires_activation": 1},
    ],
    ids=["draft", "delayed", "awaiting-activation"],
)
async def test_task_hidden_from_board_rejects_bids(
    bids: BidManager,
    store: TaskStore,
    overrides: dict[str, object],
) -> None:
    """A task the carrier cannot see is reported as missing and no bid is stored."""
    task_id = seed_task(store, **overrides)

    with pytest.raises(NotFoundError) as exc_info:
        await bids.submit_bid(CARRIER_A, task_id, 500)
    assert exc_info.value.error == "TASK_NOT_FOUND"
    assert store.get_bids_for_task(task_id) == []


@pytest.mark.unit
async def test_whitelist_limits_who_may_bid(bids: BidManager, store: TaskStore) -> None:
    task_id = seed_task(store)
    store.add_to_whitelist(task_id, CARRIER_B.id)

    with pytest.raises(NotFoundError):
        await bids.submit_bid(CARRIER_A, task_id, 500)
    bid = await bids.submit_bid(CARRIER_B, task_id, 600)

    assert [row["bid_id"] for row in store.get_bids_for_task(task_id)] == [bid["bid_id"]]


@pytest.mark.unit
async def test_assigned_carrier_may_bid_on_unpublished_task(bids: BidManager, store: TaskStore) -> None:
    task_id = seed_task(store, is_published=0, visible_after=None, carrier_id=CARRIER_A.id)

    bid = await bids.submit_bid(CARRIER_A, task_id, 500)

    assert bid["status"] == "PENDING"


@pytest.mark.unit
@pytest.mark.parametrize("amount", [0, -1, "abc", None, True, "1e30", 1e300])
async def test_invalid_amount_checked_before_store(bids: BidManager, amount: object) -> None:
    """Amount validation wins even when the task does not exist."""
    with pytest.raises(ValidationError) as exc_info:
        await bids.submit_bid(CARRIER_A, 999, amount)
    assert exc_info.value.error == "INVALID_AMOUNT"


@pytest.mark.unit
async def test_message_too_long(bids: BidManager, store: TaskStore) -> None:
    task_id = seed_task(store)
    with pytest.raises(ValidationError) as exc_info:
        await bids.submit_bid(CARRIER_A, task_id, 500, "x" * 501)
    assert exc_info.value.error == "INVALID_PAYLOAD"


@pytest.mark.unit
async def test_only_approved_active_carriers_may_bid(bids: BidManager, store: TaskStore) -> None:
    task_id = seed_task(store)

    with pytest.raises(ForbiddenError) as exc_info:
        await bids.submit_bid(CUSTOMER, task_id, 500)
    assert exc_info.value.error == "FORBIDDEN"

    for principal in (UNAPPROVED_CARRIER, INACTIVE_CARRIER):
        with pytest.raises(ForbiddenError) as exc_info:
            await bids.submit_bid(principal, task_id, 500)
        assert exc_info.value.error == "CARRIER_NOT_APPROVED"

    assert store.get_bids_for_task(task_id) == []


@pytest.mark.unit
async def test_list_my_bids(bids: BidManager, store: TaskStore) -> None:
    first = seed_task(store, title="Sofa")
    second = seed_task(store, title="Piano")
    await bids.submit_bid(CARRIER_A, first, 100)
    await bids.submit_bid(CARRIER_A, second, 200)
    await bids.submit_bid(CARRIER_B, second, 250)

    result = await bids.list_my_bids(CARRIER_A)

    assert [bid["task"]["title"] for bid in result["bids"]] == ["Piano", "Sofa"]
    assert all(bid["carrier_id"] == CARRIER_A.id for bid in result["bids"])


@pytest.mark.unit
async def test_list_my_bids_is_carrier_only(bids: BidManager) -> None:
    with pytest.raises(ForbiddenError):
        await bids.list_my_bids(CUSTOMER)
