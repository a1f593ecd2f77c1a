"""
Error taxonomy shared by the authority and the client.

Every outcome travels inside the JSON body, so each error knows its wire tag
and how to render itself to (and be rebuilt from) an `{error, message}` payload.
"""

from typing import Any, Dict, Optional


class InventoryError(Exception):
    error: str = "server"
    status_code: int = 500
    blocking: bool = False
    retryable: bool = False

    def __init__(self, message: str = "", **details: Any):
        super().__init__(message or self.error)
        self.message = message or self.error
        self.details = details

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.error, "message": self.message}
        payload.update({k: v for k, v in self.details.items() if v is not None})
        if self.retryable:
            payload["retryable"] = True
        return payload


class ValidationError(InventoryError):
    error = "validation"
    status_code = 400


class NotFoundError(InventoryError):
    error = "not-found"
    status_code = 404

    def __init__(self, kind: str, value: Any, message: str = ""):
        super().__init__(message or f"{kind} '{value}' not found", kind=kind, value=value)
        self.kind = kind
        self.value = value


class Unauthorized(InventoryError):
    error = "unauthorized"
    status_code = 401
    blocking = True


class ConcurrencyError(InventoryError):
    error = "concurrency"
    status_code = 409
    retryable = True


class ConfigurationError(InventoryError):
    error = "configuration"
    status_code = 500
    blocking = True


class TransportError(InventoryError):
    """Network failure between client and authority.

    For commands the outcome is unknown: the authority may or may not have
    applied the request.
    """

    error = "transport"
    status_code = 502

    def __init__(self, message: str = "", outcome_unknown: bool = False):
        super().__init__(message)
        self.outcome_unknown = outcome_unknown


_BY_TAG = {
    cls.error: cls
    for cls in (ValidationError, Unauthorized, ConcurrencyError, ConfigurationError)
}


def error_from_payload(payload: Dict[str, Any]) -> Optional[InventoryError]:
    """Rebuild the matching exception from a response body, or None on success."""
    tag = payload.get("error")
    if not tag:
        return None
    tag = str(tag)
    message = str(payload.get("message") or tag)

    if tag == NotFoundError.error or tag == "not found":
        return NotFoundError(
            str(payload.get("kind") or "item"),
            payload.get("value"),
            message=message,
        )
    cls = _BY_TAG.get(tag)
    if cls is not None:
        return cls(message)
    return InventoryError(message)
