"""Conversion of store rows into response dicts."""

from __future__ import annotations

from typing import Any

from freight_board_service.services.task_fields import format_money


def task_to_response(row: dict[str, Any]) -> dict[str, Any]:
    """Convert a task row to its public representation."""
    return {
        "task_id": row["task_id"],
        "customer_id": row["customer_id"],
        "carrier_id": row["carrier_id"],
        "title": row["title"],
        "pickup": row["pickup"],
        "dropoff": row["dropoff"],
        "notes": row["notes"],
        "scheduled_at": row["scheduled_at"],
        "price": format_money(row["price"]),
        "status": row["status"],
        "paid": bool(row["paid"]),
        "category": row["category"],
        "service_level": row["service_level"],
        "is_published": bool(row["is_published"]),
        "visible_after": row["visible_after"],
        "requires_activation": bool(row["requires_activation"]),
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
    }


def bid_to_response(row: dict[str, Any]) -> dict[str, Any]:
    """Convert a bid row to its public representation."""
    return {
        "bid_id": row["bid_id"],
        "task_id": row["task_id"],
        "carrier_id": row["carrier_id"],
        "amount": format_money(row["amount"]),
        "message": row["message"],
        "status": row["status"],
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
    }


def carrier_bid_to_response(row: dict[str, Any]) -> dict[str, Any]:
    """A carrier's own bid with a short summary of the task it targets."""
    response = bid_to_response(row)
    response["task"] = {
        "task_id": row["task_id"],
        "title": row["task_title"],
        "status": row["task_status"],
        "price": format_money(row["task_price"]),
    }
    return response


def item_to_response(row: dict[str, Any]) -> dict[str, Any]:
    return {
        "item_id": row["item_id"],
        "type": row["item_type"],
        "description": row["description"],
        "length_cm": row["length_cm"],
        "width_cm": row["width_cm"],
        "height_cm": row["height_cm"],
        "weight_kg": row["weight_kg"],
        "count": row["count"],
    }
