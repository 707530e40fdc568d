"""Identity providers injected into services.

The development bypass is an ordinary provider built from ``AuthConfig`` and
passed in explicitly, so tests swap real and mock identities freely.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from studiodesk.config import AuthConfig
from studiodesk.gateway.client import GatewayClient
from studiodesk.gateway.errors import AuthorizationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Identity:
    user_id: str
    email: str | None = None
    role: str | None = None


class IdentityProvider(Protocol):
    async def current(self) -> Identity: ...


class SessionIdentityProvider:
    """Resolves the identity behind the gateway's current session token."""

    def __init__(self, gateway: GatewayClient):
        self.gateway = gateway
        self._cached: Identity | None = None

    async def current(self) -> Identity:
        if self._cached is not None:
            return self._cached

        user = await self.gateway.get_user()
        user_id = user.get("id")
        if not user_id:
            raise AuthorizationError("Not authenticated. Please log in.")

        metadata = user.get("app_metadata") or {}
        self._cached = Identity(
            user_id=user_id,
            email=user.get("email"),
            role=metadata.get("role") or user.get("role"),
        )
        return self._cached

    def forget(self) -> None:
        """Drop the cached identity (after sign-out or token change)."""
        self._cached = None


class BypassIdentityProvider:
    """Fixed identity for local development without a session."""

    def __init__(self, identity: Identity):
        self.identity = identity

    async def current(self) -> Identity:
        return self.identity


def build_identity_provider(config: AuthConfig, gateway: GatewayClient) -> IdentityProvider:
    if config.bypass_enabled:
        logger.warning("auth_bypass_enabled: user_id=%s", config.bypass_user_id)
        return BypassIdentityProvider(
            Identity(
                user_id=config.bypass_user_id,
                email=config.bypass_email,
                role=config.bypass_role,
            )
        )
    return SessionIdentityProvider(gateway)
