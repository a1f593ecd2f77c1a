import os
from dotenv import load_dotenv

load_dotenv()


class ClientSettings:
    api_url: str = os.getenv("INVENTORY_API_URL", "").strip()
    api_timeout: float = float(os.getenv("INVENTORY_API_TIMEOUT", "30") or 30)

    # Device-scoped preferences (remembered identity, last location)
    preferences_path: str = os.getenv("INVENTORY_PREFERENCES_PATH", "~/.inventory/preferences.json")

    # Offline asset cache
    asset_origin: str = os.getenv("INVENTORY_ASSET_ORIGIN", "").strip()
    asset_cache_dir: str = os.getenv("INVENTORY_ASSET_CACHE_DIR", "~/.inventory/assets")
    asset_cache_version: str = os.getenv("INVENTORY_ASSET_CACHE_VERSION", "v2")


client_settings = ClientSettings()
