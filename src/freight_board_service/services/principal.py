"""Authenticated caller identity and role checks."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Protocol

from freight_board_service.errors import ForbiddenError, UnauthorizedError


class Role(StrEnum):
    """Closed set of roles known to the marketplace."""

    ADMIN = "ADMIN"
    CUSTOMER = "CUSTOMER"
    CARRIER = "CARRIER"

    @classmethod
    def parse(cls, raw: object) -> Role:
        """
        Normalize a role string coming from the identity service.

        This is the only place role casing is handled. Anything outside
        the closed set raises ValueError.
        """
        if not isinstance(raw, str):
            msg = f"Role must be a string, got {type(raw).__name__}"
            raise ValueError(msg)
        return cls(raw.strip().upper())


@dataclass(frozen=True)
class Principal:
    """The caller of a core operation, as resolved by the identity provider."""

    id: int
    role: Role
    approved: bool
    active: bool

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> Principal:
        """Build a Principal from an identity service response body."""
        user_id = payload.get("id")
        if not isinstance(user_id, int) or isinstance(user_id, bool) or user_id <= 0:
            raise UnauthorizedError("UNAUTHORIZED", "Identity response has no valid user id")
        try:
            role = Role.parse(payload.get("role"))
        except ValueError as exc:
            raise UnauthorizedError("UNAUTHORIZED", "Identity response has an unknown role") from exc
        return cls(
            id=user_id,
            role=role,
            approved=bool(payload.get("approved", False)),
            active=bool(payload.get("active", False)),
        )

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    @property
    def is_eligible_carrier(self) -> bool:
        """True for an approved, active carrier."""
        return self.role is Role.CARRIER and self.approved and self.active


class UserDirectory(Protocol):
    """Lookup of other users, implemented by the identity client."""

    async def get_user(self, user_id: int) -> Principal | None: ...


def require_role(principal: Principal, *roles: Role) -> None:
    """Raise FORBIDDEN unless the principal holds one of the given roles."""
    if principal.role not in roles:
        allowed = ", ".join(role.value for role in roles)
        raise ForbiddenError(
            "FORBIDDEN",
            f"This operation requires role {allowed}",
            details={"role": principal.role.value},
        )


def require_approved_carrier(principal: Principal) -> None:
    """Raise unless the principal is a carrier that may bid."""
    require_role(principal, Role.CARRIER)
    if not principal.approved or not principal.active:
        raise ForbiddenError(
            "CARRIER_NOT_APPROVED",
            "Carrier account must be approved and active",
        )
