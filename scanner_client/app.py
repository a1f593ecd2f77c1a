"""
Client controller: sign-in, lookups, scanning and transaction submission.

Single-threaded. While a network call is outstanding `busy` is set and a
second submit is ignored; a submission is never cancelled once sent.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import structlog

from core.errors import (
    ConfigurationError,
    InventoryError,
    NotFoundError,
    TransportError,
    Unauthorized,
)
from .config import ClientSettings, client_settings
from .gateway import make_gateway_from_env
from .preferences import PreferenceStore
from .scanning import ScanStream
from .session import Session

logger = structlog.get_logger(__name__)

# Seconds before a non-blocking status message disappears
STATUS_DURATIONS = {"success": 5.0, "info": 3.0, "warning": 5.0, "error": 5.0}


@dataclass
class StatusMessage:
    text: str
    category: str = "info"
    blocking: bool = False
    expires_at: Optional[float] = None

    def visible(self, now: float) -> bool:
        return self.blocking or self.expires_at is None or now < self.expires_at


class InventoryApp:
    def __init__(
        self,
        gateway,
        preferences: Optional[PreferenceStore] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.gateway = gateway
        self.preferences = preferences if preferences is not None else PreferenceStore()
        self.clock = clock
        self.session: Optional[Session] = None
        self.current_item: Optional[Dict[str, Any]] = None
        self.busy = False
        self._status: Optional[StatusMessage] = None

    # ----------------------------
    # Status messages
    # ----------------------------

    @property
    def status(self) -> Optional[StatusMessage]:
        if self._status is not None and not self._status.visible(self.clock()):
            self._status = None
        return self._status

    def show_status(self, text: str, category: str = "info", duration: Optional[float] = None, blocking: bool = False) -> StatusMessage:
        if blocking:
            expires_at = None
        else:
            seconds = STATUS_DURATIONS.get(category, 5.0) if duration is None else duration
            expires_at = self.clock() + seconds if seconds > 0 else None
        self._status = StatusMessage(text, category, blocking, expires_at)
        return self._status

    def hide_status(self) -> None:
        self._status = None

    def show_error(self, error: InventoryError) -> StatusMessage:
        if isinstance(error, TransportError) and error.outcome_unknown:
            return self.show_status(
                "Connection lost: the transaction may or may not have been recorded. "
                "Check the quantity before submitting again.",
                "error",
                blocking=True,
            )
        if isinstance(error, TransportError):
            return self.show_status("Failed to connect to the server. Please try again.", "error")
        if isinstance(error, Unauthorized):
            return self.show_status(
                f"{error.message}. Please contact the administrator to request access.",
                "error",
                blocking=True,
            )
        if isinstance(error, ConfigurationError):
            return self.show_status(f"Server configuration problem: {error.message}", "error", blocking=True)
        if error.retryable:
            return self.show_status(f"{error.message}", "warning")
        return self.show_status(error.message, "error")

    # ----------------------------
    # Session lifecycle
    # ----------------------------

    def sign_in(self, identity: Optional[str] = None) -> Optional[Session]:
        """Bootstrap a session; without an identity the remembered one is used."""
        if identity is None:
            identity = self.preferences.remembered_identity
        identity = (identity or "").strip()
        if not identity:
            self.show_status("Please sign in with an email address", "error")
            return None
        if self.busy:
            return None

        self.busy = True
        try:
            self.session = Session.bootstrap(self.gateway, identity, self.preferences)
        except InventoryError as e:
            self.session = None
            logger.warning("sign_in_failed", identity=identity, error=e.error)
            self.show_error(e)
            return None
        finally:
            self.busy = False

        self.preferences.set("identity", identity)
        self.hide_status()
        return self.session

    def sign_out(self) -> None:
        if self.session is not None:
            self.session.close()
        self.session = None
        self.current_item = None
        self.hide_status()

    def select_location(self, name: str) -> Optional[str]:
        if self.session is None:
            return None
        try:
            chosen = self.session.select_location(name)
        except NotFoundError as e:
            self.show_error(e)
            return None
        self.preferences.set("location", chosen)
        return chosen

    # ----------------------------
    # Lookup and scanning
    # ----------------------------

    def lookup(self, code: str) -> Optional[Dict[str, Any]]:
        """Find an item: from the session map when signed in, else via LookupLegacy."""
        self.hide_status()
        code = (code or "").strip()
        if not code:
            self.show_status("Please enter an item code", "error")
            return None

        if self.session is not None:
            item = self.session.lookup(code)
        else:
            try:
                item = self.gateway.lookup_legacy(code)
            except NotFoundError:
                item = None
            except InventoryError as e:
                self.current_item = None
                self.show_error(e)
                return None

        self.current_item = item
        if item is None:
            self.show_status(f'Item code "{code}" not found in inventory', "error")
            return None
        self.show_status("Item found!", "success", duration=2.0)
        return item

    def scan(self, stream: ScanStream) -> Optional[Dict[str, Any]]:
        """Take one decoded code from the stream, stop capture, look it up."""
        stream.start()
        code = stream.next_code()
        stream.stop()
        if code is None:
            self.show_status("Scanner stopped", "info", duration=2.0)
            return None
        logger.debug("code_scanned", code=code)
        return self.lookup(code)

    # ----------------------------
    # Transactions
    # ----------------------------

    def submit(self, qty, location: Optional[str] = None, comments: str = "") -> Optional[Dict[str, Any]]:
        if self.busy:
            return None
        if self.session is None:
            self.show_status("Please sign in first", "error")
            return None
        if self.current_item is None:
            self.show_status("Please look up an item first", "error")
            return None

        try:
            delta = float(qty)
        except (TypeError, ValueError):
            delta = math.nan
        if not math.isfinite(delta):
            self.show_status("Please enter a valid quantity", "error")
            return None

        location = (location or self.session.selected_location or "").strip()
        if not location:
            self.show_status("Please select a location", "error")
            return None

        item = self.current_item
        self.busy = True
        self.show_status("Submitting transaction...", "info", duration=0)
        try:
            result = self.gateway.submit_transaction(
                item_code=item.get("code"),
                qty=delta,
                location=location,
                user=self.session.display_name,
                comments=(comments or "").strip(),
            )
        except InventoryError as e:
            logger.warning("transaction_failed", item_code=item.get("code"), error=e.error)
            self.show_error(e)
            return None
        finally:
            self.busy = False

        self.session.apply_result(result)
        qty_text = f"+{result.get('delta', delta)}" if delta > 0 else f"{result.get('delta', delta)}"
        self.show_status(
            f"Transaction recorded: {qty_text} {result.get('item_name') or item.get('name')} "
            f"at {result.get('location', location)} (New qty: {result.get('new_qty')})",
            "success",
        )
        self.current_item = None
        return result


def make_app_from_env(settings: ClientSettings = client_settings) -> InventoryApp:
    preferences = PreferenceStore(Path(settings.preferences_path).expanduser())
    return InventoryApp(make_gateway_from_env(settings), preferences)
