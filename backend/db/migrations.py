"""Database migration utilities"""
from typing import Iterable, List

import structlog
from sqlalchemy import inspect, text
from sqlalchemy.ext.asyncio import AsyncEngine

from core.errors import ConfigurationError
from .inventory.item_table import header_key, reserved_role

logger = structlog.get_logger(__name__)


async def add_location_columns(engine: AsyncEngine, table_name: str, locations: Iterable) -> List[str]:
    """Add a per-location quantity column to the item table for each location that has none.

    `locations` are registered locations (`code`, `name`). A column named by
    either one already serves the location; new columns take the display name.
    Returns the names of the columns that were added.
    """
    added: List[str] = []
    async with engine.begin() as conn:
        # Check which columns exist
        def _columns(sync_conn):
            insp = inspect(sync_conn)
            if not insp.has_table(table_name):
                return None
            return [c["name"] for c in insp.get_columns(table_name)]

        existing = await conn.run_sync(_columns)
        if existing is None:
            raise ConfigurationError(f"Item table '{table_name}' does not exist")
        existing_keys = {header_key(c) for c in existing}

        preparer = conn.dialect.identifier_preparer
        for loc in locations:
            name = " ".join(str(loc.name or "").split())
            if not name:
                continue
            if reserved_role(name):
                raise ConfigurationError(f"Location '{name}' collides with a reserved item column")
            if {header_key(name), header_key(loc.code)} & existing_keys:
                logger.debug("location_column_exists", table=table_name, location=name)
                continue

            await conn.execute(
                text(f"ALTER TABLE {preparer.quote(table_name)} ADD COLUMN {preparer.quote(name)} FLOAT")
            )
            existing_keys.add(header_key(name))
            added.append(name)
            logger.info("location_column_added", table=table_name, column=name)

    return added
