from collections.abc import AsyncGenerator
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from core.config import settings


class Base(DeclarativeBase):
    pass


def make_engine(url: str = settings.database_url, **kwargs) -> AsyncEngine:
    return create_async_engine(url, echo=settings.database_echo, **kwargs)


engine = make_engine()
async_session_maker = async_sessionmaker(engine, expire_on_commit=False)


async def create_db_and_tables(bind: AsyncEngine = engine, location_columns=()):
    """Create the fixed tables plus the item table with its reserved columns.

    Existing tables are left untouched; per-location columns on an existing
    item table are added through db.migrations.
    """
    # Import models so they register on Base.metadata
    from .location import Location  # noqa: F401
    from .users import AllowedUser  # noqa: F401
    from .inventory.transaction import LedgerTransaction  # noqa: F401
    from .inventory.item_table import build_item_table

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        item_table = build_item_table(settings.items_table, location_columns)
        await conn.run_sync(item_table.metadata.create_all)


async def get_async_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    session_maker = getattr(request.app.state, "session_maker", async_session_maker)
    async with session_maker() as session:
        yield session
