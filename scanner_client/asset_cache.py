"""
Offline asset cache for the client's static resources.

Policy, per fetch:
- only same-origin GET requests take part; anything else goes straight to
  the network and is never stored
- network first: a successful response is copied into the current cache
  generation and returned
- on network failure the stored copy is served; with no stored copy the
  fetch fails with TransportError

Generations are named `<prefix>-<version>`. Activating a generation deletes
every other namespace in the storage.
"""

from __future__ import annotations

import hashlib
import json
import os
import shutil
import tempfile
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import urldefrag, urljoin, urlsplit

import requests
import structlog

from core.errors import ConfigurationError, TransportError
from .config import ClientSettings, client_settings

logger = structlog.get_logger(__name__)

DEFAULT_PORTS = {"http": 80, "https": 443}

# Core resources cached at install time
CORE_ASSETS = (
    "/",
    "/index.html",
    "/css/styles.css",
    "/js/app.js",
    "/js/scanner.js",
    "/js/api.js",
    "/manifest.json",
)


@dataclass
class CachedResponse:
    url: str
    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)
    content: bytes = b""
    from_cache: bool = False

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300 and self.status_code != 206

    @classmethod
    def from_requests(cls, resp, url: str) -> "CachedResponse":
        return cls(
            url=url,
            status_code=int(resp.status_code),
            headers=dict(resp.headers or {}),
            content=resp.content or b"",
        )

    def clone(self) -> "CachedResponse":
        return replace(self, headers=dict(self.headers))


def _origin_of(url: str):
    parts = urlsplit(url)
    scheme = (parts.scheme or "").lower()
    return scheme, (parts.hostname or "").lower(), parts.port or DEFAULT_PORTS.get(scheme)


class CacheNamespace:
    """One named cache: request URL -> stored response, on disk."""

    def __init__(self, root: Path):
        self.root = root

    @staticmethod
    def _key(url: str) -> str:
        return hashlib.sha256(url.encode("utf-8")).hexdigest()

    def put(self, url: str, response: CachedResponse) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        key = self._key(url)
        (self.root / f"{key}.body").write_bytes(response.content)
        meta = {"url": url, "status_code": response.status_code, "headers": response.headers}
        fd, tmp = tempfile.mkstemp(dir=self.root, prefix=".entry-")
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(meta, fh)
        # Metadata lands last: an entry without it is incomplete and ignored
        os.replace(tmp, self.root / f"{key}.json")

    def match(self, url: str) -> Optional[CachedResponse]:
        key = self._key(url)
        body_path = self.root / f"{key}.body"
        if url not in self or not body_path.exists():
            return None
        meta = json.loads((self.root / f"{key}.json").read_text(encoding="utf-8"))
        return CachedResponse(
            url=meta.get("url", url),
            status_code=int(meta.get("status_code", 200)),
            headers=dict(meta.get("headers") or {}),
            content=body_path.read_bytes(),
            from_cache=True,
        )

    def __contains__(self, url: str) -> bool:
        return (self.root / f"{self._key(url)}.json").exists()


class CacheStorage:
    """Set of named cache namespaces under one directory."""

    def __init__(self, root: os.PathLike):
        self.root = Path(root)

    def open(self, name: str) -> CacheNamespace:
        path = self.root / name
        path.mkdir(parents=True, exist_ok=True)
        return CacheNamespace(path)

    def keys(self) -> List[str]:
        if not self.root.exists():
            return []
        return sorted(p.name for p in self.root.iterdir() if p.is_dir())

    def has(self, name: str) -> bool:
        return (self.root / name).is_dir()

    def delete(self, name: str) -> bool:
        path = self.root / name
        if not path.is_dir():
            return False
        shutil.rmtree(path)
        return True


class AssetCache:
    def __init__(
        self,
        origin: str,
        version: str,
        storage: CacheStorage,
        *,
        prefix: str = "inventory-assets",
        http: Optional[Any] = None,
        timeout: float = 15.0,
        precache: Iterable[str] = CORE_ASSETS,
    ):
        self.origin = origin.rstrip("/")
        self.cache_name = f"{prefix}-{version}"
        self.storage = storage
        self.http = http
        self.timeout = timeout
        self.precache = tuple(precache)
        self._origin_key = _origin_of(self.origin)

    def resolve(self, url: str) -> str:
        absolute = urljoin(self.origin + "/", url)
        return urldefrag(absolute)[0]

    def participates(self, url: str, method: str = "GET") -> bool:
        if (method or "GET").upper() != "GET":
            return False
        return _origin_of(self.resolve(url)) == self._origin_key

    def _network(self, method: str, url: str, **kwargs) -> CachedResponse:
        client = self.http if self.http is not None else requests
        resp = client.request(method, url, timeout=self.timeout, **kwargs)
        return CachedResponse.from_requests(resp, url)

    def fetch(self, url: str, method: str = "GET", **kwargs) -> CachedResponse:
        url = self.resolve(url)
        if not self.participates(url, method):
            try:
                return self._network(method, url, **kwargs)
            except requests.RequestException as e:
                raise TransportError(f"{method} {url} failed: {e}") from e

        try:
            response = self._network("GET", url, **kwargs)
        except requests.RequestException as e:
            cached = self.storage.open(self.cache_name).match(url)
            if cached is None:
                logger.warning("asset_cache_miss", url=url, error=str(e))
                raise TransportError(f"GET {url} failed and no cached copy exists: {e}") from e
            logger.info("asset_cache_fallback", url=url, cache=self.cache_name)
            return cached

        if response.ok:
            self.storage.open(self.cache_name).put(url, response.clone())
        return response

    def install(self) -> int:
        """Fetch the core assets into the current generation, all or nothing."""
        fetched = []
        for path in self.precache:
            url = self.resolve(path)
            try:
                response = self._network("GET", url)
            except requests.RequestException as e:
                raise TransportError(f"Install failed fetching {url}: {e}") from e
            if not response.ok:
                raise TransportError(f"Install failed fetching {url}: status {response.status_code}")
            fetched.append((url, response))

        namespace = self.storage.open(self.cache_name)
        for url, response in fetched:
            namespace.put(url, response)
        logger.info("asset_cache_installed", cache=self.cache_name, assets=len(fetched))
        return len(fetched)

    def activate(self) -> List[str]:
        """Delete every namespace that is not the current generation."""
        removed = [name for name in self.storage.keys() if name != self.cache_name]
        for name in removed:
            self.storage.delete(name)
        if removed:
            logger.info("asset_cache_activated", cache=self.cache_name, removed=removed)
        return removed


def make_asset_cache_from_env(settings: ClientSettings = client_settings) -> AssetCache:
    origin = settings.asset_origin or settings.api_url
    if not origin:
        raise ConfigurationError("Missing INVENTORY_ASSET_ORIGIN")
    storage = CacheStorage(Path(settings.asset_cache_dir).expanduser())
    return AssetCache(origin, settings.asset_cache_version, storage)
