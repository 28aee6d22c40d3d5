"""Resolution of the calling principal from the Authorization header."""

from __future__ import annotations

from typing import TYPE_CHECKING

from freight_board_service.core.state import get_app_state
from freight_board_service.errors import ForbiddenError
from freight_board_service.routers.validation import extract_bearer_token

if TYPE_CHECKING:
    from fastapi import Request

    from freight_board_service.services.principal import Principal


async def current_principal(request: Request) -> Principal:
    """
    Resolve the bearer token on the request through the Identity service.

    Raises:
        UnauthorizedError: UNAUTHORIZED (401) for a missing, malformed or rejected token
        ForbiddenError: ACCOUNT_INACTIVE (403) for a deactivated account
        UpstreamError: IDENTITY_SERVICE_UNAVAILABLE (502)
    """
    token = extract_bearer_token(request.headers.get("authorization"))

    state = get_app_state()
    if state.identity_client is None:
        msg = "IdentityClient not initialized"
        raise RuntimeError(msg)

    principal = await state.identity_client.resolve_token(token)
    if not principal.active:
        raise ForbiddenError("ACCOUNT_INACTIVE", "Account is inactive")
    return principal
