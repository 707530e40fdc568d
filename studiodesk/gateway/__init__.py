"""Remote data gateway client and error taxonomy."""

from studiodesk.gateway.client import GatewayClient
from studiodesk.gateway.errors import (
    AuthorizationError,
    FormValidationError,
    GatewayError,
    NotFoundError,
    RemoteCallFailed,
    TransportError,
    VerificationMismatch,
    unwrap_envelope,
)

__all__ = [
    "GatewayClient",
    "GatewayError",
    "TransportError",
    "AuthorizationError",
    "NotFoundError",
    "RemoteCallFailed",
    "VerificationMismatch",
    "FormValidationError",
    "unwrap_envelope",
]
