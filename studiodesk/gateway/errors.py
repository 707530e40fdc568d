"""Error taxonomy for calls against the hosted data platform."""

from __future__ import annotations

from typing import Any

# Message fragments the store uses when a policy rejects an operation
_AUTHORIZATION_MARKERS = (
    "permission denied",
    "row-level security",
    "not authorized",
    "jwt",
    "not authenticated",
)


class GatewayError(Exception):
    """Base class for every failure reported by the remote gateway."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        code: str | None = None,
        details: Any = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code
        self.details = details


class TransportError(GatewayError):
    """The request could not complete (network failure, timeout)."""


class AuthorizationError(GatewayError):
    """The store rejected the operation for the current session."""


class NotFoundError(GatewayError):
    """The requested row or object does not exist."""


class RemoteCallFailed(GatewayError):
    """A remote procedure answered with ``success: false``."""


class VerificationMismatch(GatewayError):
    """The remote call succeeded but echoed a different value than requested."""

    def __init__(self, expected: Any, actual: Any):
        super().__init__(f"Expected remote value {expected!r}, got {actual!r}")
        self.expected = expected
        self.actual = actual


class FormValidationError(ValueError):
    """Local, pre-submission validation failure; never reaches the network."""

    def __init__(self, errors: dict[str, str]):
        super().__init__("; ".join(f"{k}: {v}" for k, v in errors.items()))
        self.errors = errors


def looks_like_authorization_failure(message: str | None) -> bool:
    if not message:
        return False
    lowered = message.lower()
    return any(marker in lowered for marker in _AUTHORIZATION_MARKERS)


def error_from_response(status_code: int, payload: Any, fallback: str) -> GatewayError:
    """Classify a failed HTTP response into the gateway error taxonomy."""
    code: str | None = None
    message = fallback
    if isinstance(payload, dict):
        code = payload.get("code") or payload.get("error_code")
        message = (
            payload.get("message")
            or payload.get("error_description")
            or payload.get("error")
            or payload.get("msg")
            or fallback
        )
        if not isinstance(message, str):
            message = str(message)

    if status_code in (401, 403) or looks_like_authorization_failure(message):
        return AuthorizationError(
            message, status_code=status_code, code=code, details=payload
        )
    if status_code == 404 or code == "PGRST116":
        return NotFoundError(message, status_code=status_code, code=code, details=payload)
    return GatewayError(message, status_code=status_code, code=code, details=payload)


def unwrap_envelope(data: Any, operation: str) -> dict[str, Any]:
    """Return an RPC success envelope, raising when it reports failure.

    Remote procedures answer either ``{"success": bool, "error": ..., ...}`` or
    a raw row. Raw rows are returned unchanged.
    """
    if isinstance(data, list):
        data = data[0] if data else {}
    if not isinstance(data, dict):
        raise RemoteCallFailed(f"{operation} returned an unexpected payload", details=data)

    if "success" in data and not data["success"]:
        message = data.get("error") or f"{operation} failed"
        code = data.get("error_code")
        if looks_like_authorization_failure(message):
            raise AuthorizationError(message, code=code, details=data)
        raise RemoteCallFailed(message, code=code, details=data)
    return data
