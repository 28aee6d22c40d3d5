"""HTTP clients for collaborator services."""

from freight_board_service.clients.identity_client import IdentityClient

__all__ = ["IdentityClient"]
