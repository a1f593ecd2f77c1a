from datetime import datetime
from typing import List, Optional

import structlog
from sqlalchemy import MetaData, Table, func, select, update
from sqlalchemy.exc import NoSuchTableError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncSession

from core.codes import normalize
from core.errors import ConfigurationError
from ..location import Location
from .item_table import CatalogSchema, header_key, location_keys, missing_location_columns

logger = structlog.get_logger(__name__)


class CatalogStore:
    """Item records and their quantity cells.

    The schema is reflected from the database, so the set of location columns
    is whatever the item table's header holds. It is validated against the
    registered locations when loaded.
    """

    def __init__(self, table_name: str):
        self.table_name = table_name
        self._schema: Optional[CatalogSchema] = None

    @property
    def schema(self) -> CatalogSchema:
        if self._schema is None:
            raise ConfigurationError("Catalog schema has not been loaded")
        return self._schema

    async def load(self, conn: AsyncConnection) -> CatalogSchema:
        def _reflect(sync_conn):
            return Table(self.table_name, MetaData(), autoload_with=sync_conn)

        try:
            table = await conn.run_sync(_reflect)
        except NoSuchTableError:
            logger.error("catalog_table_missing", table=self.table_name)
            raise ConfigurationError(f"Item table '{self.table_name}' does not exist") from None

        res = await conn.execute(select(Location))
        locations = res.all()
        try:
            schema = CatalogSchema(table, location_keys(locations))
        except ConfigurationError as e:
            logger.error("catalog_schema_invalid", table=self.table_name, reason=e.message)
            raise

        missing = missing_location_columns(table, locations)
        if missing:
            logger.warning("catalog_locations_without_column", table=self.table_name, locations=missing)

        self._schema = schema
        logger.info(
            "catalog_schema_loaded",
            table=self.table_name,
            reserved=sorted(schema.roles),
            locations=sorted(schema.location_columns.values()),
        )
        return schema

    async def reload(self, session: AsyncSession) -> CatalogSchema:
        conn = await session.connection()
        return await self.load(conn)

    async def list_locations(self, session: AsyncSession) -> List[Location]:
        res = await session.execute(select(Location).order_by(Location.id))
        return list(res.scalars().all())

    async def resolve_location(self, session: AsyncSession, name: str) -> Optional[Location]:
        """Find a registered location by display name or code (trimmed, case-insensitive)."""
        key = header_key(name)
        if not key:
            return None
        res = await session.execute(
            select(Location).where(
                (func.lower(Location.name) == key) | (func.lower(Location.code) == key)
            )
        )
        return res.scalars().first()

    async def all_items(self, session: AsyncSession) -> List[dict]:
        schema = self.schema
        res = await session.execute(select(schema.table).order_by(schema.code_column))
        return [dict(r) for r in res.mappings().all()]

    async def find_item(self, session: AsyncSession, code: str) -> Optional[dict]:
        """Row whose code normalizes to the same key, or None.

        A scan over the code column; more than one match means the catalog
        breaks code uniqueness.
        """
        key = normalize(code)
        if not key:
            return None
        schema = self.schema
        res = await session.execute(select(schema.code_column))
        matches = [c for (c,) in res.all() if normalize(c) == key]
        if not matches:
            return None
        if len(matches) > 1:
            logger.error("catalog_duplicate_code", key=key, codes=matches)
            raise ConfigurationError(f"Item code '{key}' is not unique: {matches}")
        res = await session.execute(select(schema.table).where(schema.code_column == matches[0]))
        row = res.mappings().first()
        return dict(row) if row else None

    async def read_row_for_update(self, session: AsyncSession, stored_code: str) -> Optional[dict]:
        schema = self.schema
        res = await session.execute(
            select(schema.table).where(schema.code_column == stored_code).with_for_update()
        )
        row = res.mappings().first()
        return dict(row) if row else None

    async def write_cell(
        self,
        session: AsyncSession,
        stored_code: str,
        column: str,
        value: float,
        timestamp: datetime,
    ) -> None:
        schema = self.schema
        values = {column: value}
        last_update = schema.roles.get("last_update")
        if last_update:
            values[last_update] = timestamp
        await session.execute(
            update(schema.table).where(schema.code_column == stored_code).values(**values)
        )
