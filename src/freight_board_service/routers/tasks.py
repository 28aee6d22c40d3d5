"""Task endpoints: creation, listing, detail, edits, activation, status and admin operations."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from freight_board_service.core.state import get_app_state
from freight_board_service.errors import ValidationError
from freight_board_service.routers.auth import current_principal
from freight_board_service.routers.validation import (
    ResourceId,
    parse_json_body,
    parse_optional_json_body,
    parse_query_int,
    require_field,
)
from freight_board_service.services.task_fields import optional_bool, optional_user_id

router = APIRouter()


# ---------------------------------------------------------------------------
# POST /tasks: create task
# ---------------------------------------------------------------------------


@router.post("/tasks", status_code=201)
async def create_task(request: Request) -> JSONResponse:
    """Create a task in status NEW."""
    principal = await current_principal(request)
    data = parse_json_body(await request.body())

    state = get_app_state()
    if state.task_manager is None:
        msg = "TaskManager not initialized"
        raise RuntimeError(msg)

    result = await state.task_manager.create_task(principal, data)
    return JSONResponse(status_code=201, content=result)


# ---------------------------------------------------------------------------
# GET /tasks: list tasks (MUST be before GET /tasks/{task_id})
# ---------------------------------------------------------------------------


@router.get("/tasks")
async def list_tasks(request: Request) -> dict[str, Any]:
    """List tasks visible to the caller with optional filters."""
    principal = await current_principal(request)

    q = request.query_params.get("q")
    status = request.query_params.get("status") or None
    page = parse_query_int(request.query_params.get("page"), "page")
    page_size = parse_query_int(request.query_params.get("page_size"), "page_size")

    state = get_app_state()
    if state.task_query is None:
        msg = "TaskQuery not initialized"
        raise RuntimeError(msg)

    return await state.task_query.list_tasks(
        principal,
        q=q,
        status=status,
        page=page,
        page_size=page_size,
    )


# ---------------------------------------------------------------------------
# GET /tasks/{task_id}: task detail
# ---------------------------------------------------------------------------


@router.get("/tasks/{task_id}")
async def get_task(task_id: ResourceId, request: Request) -> dict[str, Any]:
    """Get a task with its items, and bids where the caller may see them."""
    principal = await current_principal(request)

    state = get_app_state()
    if state.task_manager is None:
        msg = "TaskManager not initialized"
        raise RuntimeError(msg)

    return await state.task_manager.get_task(principal, task_id)


# ---------------------------------------------------------------------------
# PATCH /tasks/{task_id}: admin edit and publication controls
# ---------------------------------------------------------------------------


@router.patch("/tasks/{task_id}")
async def update_task(task_id: ResourceId, request: Request) -> dict[str, Any]:
    """Edit task details, replace items, and publish or unpublish the task."""
    principal = await current_principal(request)
    data = parse_json_body(await request.body())

    state = get_app_state()
    if state.task_manager is None:
        msg = "TaskManager not initialized"
        raise RuntimeError(msg)

    return await state.task_manager.update_task(principal, task_id, data)


# ---------------------------------------------------------------------------
# POST /tasks/{task_id}/activate: customer activation
# ---------------------------------------------------------------------------


@router.post("/tasks/{task_id}/activate")
async def activate_task(task_id: ResourceId, request: Request) -> dict[str, Any]:
    """Put a task that awaits activation on the board."""
    principal = await current_principal(request)

    state = get_app_state()
    if state.task_manager is None:
        msg = "TaskManager not initialized"
        raise RuntimeError(msg)

    return await state.task_manager.activate_task(principal, task_id)


# ---------------------------------------------------------------------------
# DELETE /tasks/{task_id}: admin delete
# ---------------------------------------------------------------------------


@router.delete("/tasks/{task_id}")
async def delete_task(task_id: ResourceId, request: Request) -> dict[str, Any]:
    """Delete a task together with its bids, items and whitelist."""
    principal = await current_principal(request)

    state = get_app_state()
    if state.task_manager is None:
        msg = "TaskManager not initialized"
        raise RuntimeError(msg)

    return await state.task_manager.delete_task(principal, task_id)


# ---------------------------------------------------------------------------
# PATCH /tasks/{task_id}/status: status transition
# ---------------------------------------------------------------------------


@router.patch("/tasks/{task_id}/status")
async def transition_status(task_id: ResourceId, request: Request) -> dict[str, Any]:
    """Move a task along the status transition table."""
    principal = await current_principal(request)
    data = parse_json_body(await request.body())
    next_status = require_field(data, "status")

    state = get_app_state()
    if state.task_manager is None:
        msg = "TaskManager not initialized"
        raise RuntimeError(msg)

    return await state.task_manager.transition_status(principal, task_id, next_status)


# ---------------------------------------------------------------------------
# PATCH /tasks/{task_id}/carrier: admin reassignment
# ---------------------------------------------------------------------------


@router.patch("/tasks/{task_id}/carrier")
async def reassign_carrier(task_id: ResourceId, request: Request) -> dict[str, Any]:
    """Set or clear the carrier of a task directly."""
    principal = await current_principal(request)
    data = parse_json_body(await request.body())
    require_field(data, "carrier_id")
    carrier_id = optional_user_id(data, "carrier_id")

    state = get_app_state()
    if state.assignment_engine is None:
        msg = "AssignmentEngine not initialized"
        raise RuntimeError(msg)

    return await state.assignment_engine.reassign_carrier(principal, task_id, carrier_id)


# ---------------------------------------------------------------------------
# POST /tasks/{task_id}/retender: put a task back on the board
# ---------------------------------------------------------------------------


@router.post("/tasks/{task_id}/retender")
async def retender(task_id: ResourceId, request: Request) -> dict[str, Any]:
    """Clear the carrier and republish the task."""
    principal = await current_principal(request)
    data = parse_optional_json_body(await request.body())
    clear_whitelist = optional_bool(data, "clear_whitelist")

    state = get_app_state()
    if state.assignment_engine is None:
        msg = "AssignmentEngine not initialized"
        raise RuntimeError(msg)

    return await state.assignment_engine.retender(
        principal,
        task_id,
        clear_whitelist=bool(clear_whitelist),
    )


# ---------------------------------------------------------------------------
# POST /tasks/{task_id}/whitelist: whitelist a carrier
# ---------------------------------------------------------------------------


@router.post("/tasks/{task_id}/whitelist")
async def add_to_whitelist(task_id: ResourceId, request: Request) -> dict[str, Any]:
    """Allow a carrier to see the task on the board."""
    principal = await current_principal(request)
    data = parse_json_body(await request.body())
    carrier_id = optional_user_id(data, "carrier_id")
    if carrier_id is None:
        raise ValidationError("INVALID_PAYLOAD", "carrier_id is required")

    state = get_app_state()
    if state.assignment_engine is None:
        msg = "AssignmentEngine not initialized"
        raise RuntimeError(msg)

    return await state.assignment_engine.add_to_whitelist(principal, task_id, carrier_id)
