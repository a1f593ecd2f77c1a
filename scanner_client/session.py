from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import structlog

from core.codes import normalize
from core.errors import NotFoundError

logger = structlog.get_logger(__name__)


@dataclass
class Session:
    """Per-login snapshot of user, locations and items.

    Built once by `bootstrap`; afterwards every lookup is served from the
    in-memory map. A confirmed transaction patches only the affected item.
    Sign-out discards the whole object via `close`.
    """

    identity: str
    user: Dict[str, Any]
    locations: List[Dict[str, Any]]
    items: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    selected_location: Optional[str] = None
    closed: bool = False

    @classmethod
    def bootstrap(cls, gateway, identity: str, preferences=None) -> "Session":
        data = gateway.bootstrap(identity)

        items: Dict[str, Dict[str, Any]] = {}
        for item in data.get("items") or []:
            items[normalize(item.get("code"))] = item

        session = cls(
            identity=identity.strip(),
            user=dict(data.get("user") or {}),
            locations=list(data.get("locations") or []),
            items=items,
        )
        session.selected_location = session._initial_location(preferences)
        logger.info(
            "session_bootstrapped",
            identity=session.identity,
            locations=len(session.locations),
            items=len(session.items),
        )
        return session

    def _initial_location(self, preferences) -> Optional[str]:
        default = self.user.get("default_location")
        if default and self.has_location(default):
            return self.location_name(default)
        remembered = preferences.get("location") if preferences is not None else None
        if remembered and self.has_location(remembered):
            return self.location_name(remembered)
        return None

    @property
    def display_name(self) -> str:
        return self.user.get("name") or self.user.get("email") or self.identity

    def location_name(self, value: str) -> Optional[str]:
        key = (value or "").strip().lower()
        for loc in self.locations:
            if key in ((loc.get("name") or "").strip().lower(), (loc.get("code") or "").strip().lower()):
                return loc.get("name")
        return None

    def has_location(self, value: str) -> bool:
        return self.location_name(value) is not None

    def select_location(self, value: str) -> str:
        name = self.location_name(value)
        if name is None:
            raise NotFoundError("location", value)
        self.selected_location = name
        return name

    def lookup(self, code: str) -> Optional[Dict[str, Any]]:
        return self.items.get(normalize(code))

    def apply_result(self, result: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Patch the single item a confirmed transaction touched."""
        key = normalize(result.get("item_code"))
        snapshot = result.get("item")
        if snapshot:
            self.items[key] = snapshot
            return snapshot

        item = self.items.get(key)
        if item is None:
            return None
        if isinstance(item.get("locations"), dict):
            item["locations"][result.get("location")] = result.get("new_qty")
        else:
            item["total"] = result.get("new_qty")
        if result.get("timestamp"):
            item["last_update"] = result["timestamp"]
        return item

    def close(self) -> None:
        self.items.clear()
        self.locations = []
        self.user = {}
        self.selected_location = None
        self.closed = True
