import os
from dotenv import load_dotenv

load_dotenv()


def _as_bool(value: str) -> bool:
    return (value or "").strip().lower() in {"1", "true", "yes", "on"}


class Settings:
    database_url: str = os.getenv(
        "DATABASE_URL",
        "sqlite+aiosqlite:///./inventory.db"
    )
    database_echo: bool = _as_bool(os.getenv("DATABASE_ECHO", "False"))

    # Table names (the item table's header row defines its columns)
    items_table: str = os.getenv("ITEMS_TABLE", "items")
    transactions_table: str = os.getenv("TRANSACTIONS_TABLE", "transactions")

    # Bounded wait for the (item, location) critical section
    lock_timeout_seconds: float = float(os.getenv("LOCK_TIMEOUT_SECONDS", "5.0"))

    # Logging
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_json: bool = _as_bool(os.getenv("LOG_JSON", "False"))


settings = Settings()
