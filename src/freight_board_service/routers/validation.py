"""Shared request validation helpers for freight board routers."""

from __future__ import annotations

import json
from typing import Annotated, Any

from fastapi import Path

from freight_board_service.errors import UnauthorizedError, ValidationError

# Largest value an SQLite INTEGER column holds.
MAX_RESOURCE_ID = 2**63 - 1

# Path parameter for task and bid ids. Out-of-range values are rejected by
# FastAPI and rendered as INVALID_PARAMETER.
ResourceId = Annotated[int, Path(ge=1, le=MAX_RESOURCE_ID)]


def parse_json_body(raw_body: bytes) -> dict[str, Any]:
    """Parse JSON body, raising ValidationError on failure."""
    try:
        data = json.loads(raw_body)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ValidationError(
            "INVALID_JSON",
            "Request body is not valid JSON",
        ) from exc

    if not isinstance(data, dict):
        raise ValidationError(
            "INVALID_JSON",
            "Request body must be a JSON object",
        )

    return data


def parse_optional_json_body(raw_body: bytes) -> dict[str, Any]:
    """Parse a JSON body that may be empty."""
    if raw_body.strip() == b"":
        return {}
    return parse_json_body(raw_body)


def require_field(data: dict[str, Any], field_name: str) -> Any:
    """Return a field that must be present in the body (it may still be null)."""
    if field_name not in data:
        raise ValidationError(
            "INVALID_PAYLOAD",
            f"Missing required field: {field_name}",
            details={"field": field_name},
        )
    return data[field_name]


def parse_query_int(raw: str | None, name: str) -> int | None:
    """Parse an optional integer query parameter."""
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise ValidationError(
            "INVALID_PAGINATION",
            f"{name} must be an integer",
            details={name: raw},
        ) from exc


def extract_bearer_token(authorization: str | None) -> str:
    """Extract the bearer token from the Authorization header."""
    if authorization is None:
        raise UnauthorizedError("UNAUTHORIZED", "Missing Authorization header")

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer":
        raise UnauthorizedError(
            "UNAUTHORIZED",
            "Authorization header must use Bearer scheme",
        )

    token = token.strip()
    if not token:
        raise UnauthorizedError("UNAUTHORIZED", "Bearer token must not be empty")

    return token
