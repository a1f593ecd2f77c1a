import asyncio
from datetime import datetime, timezone

import pytest
from sqlalchemy import insert, select
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy.pool import NullPool

from core.aggregator import Aggregator
from core.config import settings
from core.locks import KeyedLocks
from db.database import create_db_and_tables, make_engine
from db.inventory.catalog import CatalogStore
from db.inventory.item_table import build_item_table
from db.inventory.ledger import TransactionLedger
from db.location import Location
from db.users import AllowedUser

LOCATIONS = [
    {"code": "WA", "name": "Warehouse A"},
    {"code": "WB", "name": "Warehouse B"},
]

USERS = [
    {"email": "dana@example.com", "name": "Dana", "default_location": "WB"},
    {"email": "lee@example.com", "name": None, "default_location": None},
]

ITEMS = [
    # per-location row
    {"code": "BK-001", "series": "Atlas", "name": "Alpha", "volume": "1", "Warehouse A": 10.0},
    # aggregate-only row
    {"code": "TT-9", "series": "", "name": "Tote", "volume": "", "quantity": 7.0},
    # stamped in the future, for last_update ordering
    {
        "code": "BK-002",
        "series": "Atlas",
        "name": "Beta",
        "volume": "2",
        "Warehouse B": 1.0,
        "last_update": datetime(2030, 1, 1, tzinfo=timezone.utc),
    },
]


def run(coro):
    return asyncio.run(coro)


async def seed(engine, locations=LOCATIONS, users=USERS, items=ITEMS):
    location_columns = [loc["name"] for loc in locations]
    await create_db_and_tables(engine, location_columns=location_columns)
    table = build_item_table(settings.items_table, location_columns)
    async with engine.begin() as conn:
        if locations:
            await conn.execute(insert(Location.__table__), locations)
        if users:
            await conn.execute(insert(AllowedUser.__table__), users)
        for item in items:
            await conn.execute(insert(table).values(**item))


@pytest.fixture()
def engine(tmp_path):
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'inventory.db'}", poolclass=NullPool)
    yield engine
    run(engine.dispose())


@pytest.fixture()
def seeded(engine):
    run(seed(engine))
    return engine


@pytest.fixture()
def session_maker(seeded):
    return async_sessionmaker(seeded, expire_on_commit=False)


@pytest.fixture()
def catalog(seeded):
    catalog = CatalogStore(settings.items_table)

    async def _load():
        async with seeded.connect() as conn:
            await catalog.load(conn)

    run(_load())
    return catalog


@pytest.fixture()
def aggregator(session_maker, catalog):
    return Aggregator(session_maker, catalog, TransactionLedger(), KeyedLocks(timeout=2.0))


@pytest.fixture()
def item_row(seeded):
    """Read one stored item row by its exact code."""
    table = build_item_table(settings.items_table, [loc["name"] for loc in LOCATIONS])

    def _read(code):
        async def _go():
            async with seeded.connect() as conn:
                res = await conn.execute(select(table).where(table.c.code == code))
                row = res.mappings().first()
                return dict(row) if row else None

        return run(_go())

    return _read


@pytest.fixture()
def ledger_count(session_maker):
    def _count(item_code=None):
        async def _go():
            async with session_maker() as session:
                return await TransactionLedger().count(session, item_code)

        return run(_go())

    return _count
