"""
gateway.py

Request/response client for the inventory authority.

What it provides:
- Bootstrap(identity): user, locations and the full item list for a session
- LookupLegacy(code): stateless single-item fetch (no session needed)
- SubmitTransaction(payload): apply one signed-quantity delta

Every outcome is read from the JSON body (`error` present means failure);
the HTTP status is not trusted. Nothing here retries: a transaction whose
response is lost may already have been applied, so it surfaces as a
TransportError with `outcome_unknown=True` and is only resubmitted by the user.

Environment variables (see config.py):
- INVENTORY_API_URL: e.g. "https://your-domain.com/api/"
- INVENTORY_API_TIMEOUT: seconds (optional, default 30)
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests
import structlog

from core.errors import ConfigurationError, TransportError, ValidationError, error_from_payload
from .config import ClientSettings, client_settings

logger = structlog.get_logger(__name__)


@dataclass
class SyncGateway:
    base_url: str
    timeout: float = 30.0
    http: Optional[Any] = None  # requests.Session-like; module-level requests when None

    def _send(
        self,
        method: str,
        *,
        params: Dict[str, Any] | None = None,
        json: Any = None,
        command: bool = False,
    ) -> Dict[str, Any]:
        client = self.http if self.http is not None else requests
        try:
            resp = client.request(
                method,
                self.base_url,
                params=params,
                json=json,
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning("gateway_transport_failed", method=method, command=command, error=str(e))
            raise TransportError(
                f"{method} request failed: {e}", outcome_unknown=command
            ) from e

        try:
            data = resp.json()
        except ValueError as e:
            raise TransportError(
                f"{method} returned an unreadable response ({resp.status_code})",
                outcome_unknown=command,
            ) from e
        if not isinstance(data, dict):
            raise TransportError(f"{method} returned an unexpected response", outcome_unknown=command)

        error = error_from_payload(data)
        if error is not None:
            raise error
        return data

    def bootstrap(self, identity: str) -> Dict[str, Any]:
        """GET ?action=bootstrap&identity=..."""
        return self._send("GET", params={"action": "bootstrap", "identity": identity})

    def lookup_legacy(self, code: str) -> Dict[str, Any]:
        """GET ?code=... ; raises NotFoundError for unknown codes."""
        return self._send("GET", params={"code": code})

    def submit_transaction(
        self,
        *,
        item_code: str,
        qty: float,
        location: str,
        user: str,
        comments: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        POST {item_code, qty, location, user, comments}

        Sent exactly once. On transport failure the caller cannot know whether
        the delta was applied.
        """
        if not item_code:
            raise ValidationError("item_code is required")
        try:
            qty = float(qty)
        except (TypeError, ValueError):
            raise ValidationError("qty is required and must be a number") from None
        if not math.isfinite(qty):
            raise ValidationError("qty must be a finite number")
        if not location:
            raise ValidationError("location is required")
        if not user:
            raise ValidationError("user is required")

        payload = {
            "item_code": item_code,
            "qty": qty,
            "location": location,
            "user": user,
            "comments": comments or "",
        }
        return self._send("POST", json=payload, command=True)


def make_gateway_from_env(settings: ClientSettings = client_settings) -> SyncGateway:
    if not settings.api_url:
        raise ConfigurationError("Missing INVENTORY_API_URL")

    return SyncGateway(base_url=settings.api_url, timeout=settings.api_timeout)
