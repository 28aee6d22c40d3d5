"""Bid submission, listing, and acceptance endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from freight_board_service.core.state import get_app_state
from freight_board_service.routers.auth import current_principal
from freight_board_service.routers.validation import ResourceId, parse_json_body, require_field

router = APIRouter()


# ---------------------------------------------------------------------------
# POST /tasks/{task_id}/bids: submit bid
# ---------------------------------------------------------------------------


@router.post("/tasks/{task_id}/bids", status_code=201)
async def submit_bid(task_id: ResourceId, request: Request) -> JSONResponse:
    """Submit a bid on a task."""
    principal = await current_principal(request)
    data = parse_json_body(await request.body())
    amount = require_field(data, "amount")

    state = get_app_state()
    if state.bid_manager is None:
        msg = "BidManager not initialized"
        raise RuntimeError(msg)

    result = await state.bid_manager.submit_bid(principal, task_id, amount, data.get("message"))
    return JSONResponse(status_code=201, content=result)


# ---------------------------------------------------------------------------
# GET /tasks/{task_id}/bids: list bids on a task
# ---------------------------------------------------------------------------


@router.get("/tasks/{task_id}/bids")
async def list_bids(task_id: ResourceId, request: Request) -> dict[str, Any]:
    """List bids on a task. Admin or owning customer only."""
    principal = await current_principal(request)

    state = get_app_state()
    if state.task_manager is None:
        msg = "TaskManager not initialized"
        raise RuntimeError(msg)

    return await state.task_manager.list_bids(principal, task_id)


# ---------------------------------------------------------------------------
# GET /bids/mine: the calling carrier's bids
# ---------------------------------------------------------------------------


@router.get("/bids/mine")
async def list_my_bids(request: Request) -> dict[str, Any]:
    """List the calling carrier's bids with a task summary."""
    principal = await current_principal(request)

    state = get_app_state()
    if state.bid_manager is None:
        msg = "BidManager not initialized"
        raise RuntimeError(msg)

    return await state.bid_manager.list_my_bids(principal)


# ---------------------------------------------------------------------------
# POST /bids/{bid_id}/accept: accept bid
# ---------------------------------------------------------------------------


@router.post("/bids/{bid_id}/accept")
async def accept_bid(bid_id: ResourceId, request: Request) -> dict[str, Any]:
    """Accept a bid, reject the others and assign the carrier."""
    principal = await current_principal(request)

    state = get_app_state()
    if state.assignment_engine is None:
        msg = "AssignmentEngine not initialized"
        raise RuntimeError(msg)

    return await state.assignment_engine.accept_bid(principal, bid_id)
