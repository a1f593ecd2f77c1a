"""Client side of the inventory ledger: session cache, sync gateway, scanning and offline assets."""

from .app import InventoryApp, StatusMessage, make_app_from_env
from .asset_cache import AssetCache, CacheStorage, CachedResponse, make_asset_cache_from_env
from .gateway import SyncGateway, make_gateway_from_env
from .preferences import PreferenceStore
from .scanning import ScanStream
from .session import Session

__all__ = [
    "AssetCache",
    "CacheStorage",
    "CachedResponse",
    "InventoryApp",
    "PreferenceStore",
    "ScanStream",
    "Session",
    "StatusMessage",
    "SyncGateway",
    "make_app_from_env",
    "make_asset_cache_from_env",
    "make_gateway_from_env",
]
