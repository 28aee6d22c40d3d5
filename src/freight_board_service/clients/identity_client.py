"""Async HTTP client for the Identity service."""

from __future__ import annotations

from typing import Any

import httpx

from freight_board_service.errors import UnauthorizedError, UpstreamError
from freight_board_service.logging import get_logger
from freight_board_service.services.principal import Principal


class IdentityClient:
    """
    Client for the Identity service.

    Resolves bearer tokens to principals and looks up other users by id.
    Credential handling, sessions and password flows stay inside the
    Identity service; this service only consumes the resulting principal.
    """

    def __init__(
        self,
        base_url: str,
        me_path: str,
        users_path: str,
        timeout_seconds: int,
    ) -> None:
        self._base_url = base_url
        self._me_path = me_path
        self._users_path = users_path.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout_seconds),
        )
        self._logger = get_logger(__name__)

    async def _get(self, path: str, headers: dict[str, str] | None = None) -> httpx.Response:
        try:
            return await self._client.get(path, headers=headers)
        except (httpx.ConnectError, httpx.TimeoutException) as exc:
            self._logger.warning(
                "Identity service connection failed",
                extra={"error": str(exc), "base_url": self._base_url},
            )
            raise UpstreamError(
                "IDENTITY_SERVICE_UNAVAILABLE",
                "Cannot connect to Identity service",
            ) from exc
        except httpx.HTTPError as exc:
            self._logger.warning(
                "Identity service HTTP error",
                extra={"error": str(exc), "base_url": self._base_url},
            )
            raise UpstreamError(
                "IDENTITY_SERVICE_UNAVAILABLE",
                "Identity service request failed",
            ) from exc

    def _parse_body(self, response: httpx.Response) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError as exc:
            raise UpstreamError(
                "IDENTITY_SERVICE_UNAVAILABLE",
                "Identity service returned a malformed response",
            ) from exc
        if not isinstance(body, dict):
            raise UpstreamError(
                "IDENTITY_SERVICE_UNAVAILABLE",
                "Identity service returned a malformed response",
            )
        return body

    async def resolve_token(self, token: str) -> Principal:
        """
        Resolve a bearer token to the principal it belongs to.

        Raises:
            UnauthorizedError: UNAUTHORIZED (401) if the Identity service rejects the token
            UpstreamError: IDENTITY_SERVICE_UNAVAILABLE (502) on connection or protocol errors
        """
        response = await self._get(self._me_path, headers={"Authorization": f"Bearer {token}"})

        if response.status_code in (401, 403):
            raise UnauthorizedError("UNAUTHORIZED", "Authentication required")

        if response.status_code != 200:
            self._logger.warning(
                "Identity service unexpected status",
                extra={"status_code": response.status_code, "base_url": self._base_url},
            )
            raise UpstreamError(
                "IDENTITY_SERVICE_UNAVAILABLE",
                "Identity service returned unexpected status",
            )

        return Principal.from_payload(self._parse_body(response))

    async def get_user(self, user_id: int) -> Principal | None:
        """Look up a user by id. Returns None if the user does not exist."""
        response = await self._get(f"{self._users_path}/{user_id}")

        if response.status_code == 404:
            return None

        if response.status_code != 200:
            self._logger.warning(
                "Identity service unexpected status",
                extra={"status_code": response.status_code, "base_url": self._base_url},
            )
            raise UpstreamError(
                "IDENTITY_SERVICE_UNAVAILABLE",
                "Identity service returned unexpected status",
            )

        try:
            return Principal.from_payload(self._parse_body(response))
        except UnauthorizedError:
            # A user record with an unknown role cannot take part in assignment.
            return None

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()
