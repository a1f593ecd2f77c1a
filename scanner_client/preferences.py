import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional


class PreferenceStore:
    """Device-scoped key/value store (remembered identity, last location).

    Outlives sessions: signing out does not clear it. Backed by a JSON file
    when a path is given, in memory otherwise.
    """

    def __init__(self, path: Optional[os.PathLike] = None):
        self.path = Path(path) if path else None
        self._data: Dict[str, Any] = self._read()

    def _read(self) -> Dict[str, Any]:
        if self.path is None or not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except json.JSONDecodeError:
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".prefs-")
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(self._data, fh, indent=2, sort_keys=True)
        os.replace(tmp, self.path)

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value
        self._write()

    def delete(self, key: str) -> None:
        if self._data.pop(key, None) is not None:
            self._write()

    @property
    def remembered_identity(self) -> Optional[str]:
        return self.get("identity")
