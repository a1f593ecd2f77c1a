import argparse
import asyncio
import csv
import sys
from datetime import datetime, timezone
from pathlib import Path

"""
Seed the catalog from CSV files:
- locations.csv: code,name
- users.csv: email,name,default_location  (the allow-list)
- items.csv: row-oriented item table; the first row is the header. Reserved
  headers (code/series/name/volume/quantity/last_update and their aliases)
  fill the fixed columns, every other header is a per-location quantity and
  must name a registered location.

Existing rows are updated in place (matched by location code, user email and
item code). Quantities for existing items are only written with --overwrite-quantities.

Run:
- inside backend/: `python scripts/seed_catalog.py --locations l.csv --users u.csv --items i.csv`
"""

# Allow running from repo root by ensuring `backend/` is on sys.path
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

import structlog  # noqa: E402
from sqlalchemy import MetaData, Table, func, insert, select, update  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker  # noqa: E402

from core.codes import normalize  # noqa: E402
from core.config import settings  # noqa: E402
from core.errors import ConfigurationError  # noqa: E402
from core.logging import configure_logging  # noqa: E402
from db.database import create_db_and_tables, engine  # noqa: E402
from db.inventory.item_table import header_key, reserved_role  # noqa: E402
from db.location import Location  # noqa: E402
from db.migrations import add_location_columns  # noqa: E402
from db.users import AllowedUser  # noqa: E402

logger = structlog.get_logger(__name__)


def _read_csv(path: Path) -> list[dict]:
    with path.open(newline="", encoding="utf-8-sig") as fh:
        return [
            {(k or "").strip(): (v or "").strip() for k, v in row.items()}
            for row in csv.DictReader(fh)
        ]


def _number(value: str):
    value = (value or "").strip()
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        raise ConfigurationError(f"Quantity '{value}' is not a number") from None


async def seed_locations(rows: list[dict], bind: AsyncEngine = engine) -> int:
    n = 0
    async with async_sessionmaker(bind)() as db:
        for row in rows:
            code = row.get("code") or row.get("name")
            name = row.get("name") or code
            if not code:
                continue
            res = await db.execute(select(Location).where(func.lower(Location.code) == code.lower()))
            loc = res.scalar_one_or_none()
            if loc is None:
                db.add(Location(code=code, name=name))
            else:
                loc.name = name
            n += 1
        await db.commit()
    return n


async def seed_users(rows: list[dict], bind: AsyncEngine = engine) -> int:
    n = 0
    async with async_sessionmaker(bind)() as db:
        for row in rows:
            email = (row.get("email") or "").strip()
            if not email:
                continue
            res = await db.execute(
                select(AllowedUser).where(func.lower(AllowedUser.email) == email.lower())
            )
            user = res.scalar_one_or_none()
            if user is None:
                user = AllowedUser(email=email)
                db.add(user)
            user.name = row.get("name") or None
            user.default_location = row.get("default_location") or None
            n += 1
        await db.commit()
    return n


async def seed_items(rows: list[dict], overwrite_quantities: bool = False, bind: AsyncEngine = engine) -> int:
    if not rows:
        return 0

    session_maker = async_sessionmaker(bind)
    async with session_maker() as db:
        locations = (await db.execute(select(Location))).scalars().all()
    # header key (location code or name) -> registered location
    registered = {}
    for loc in locations:
        registered[header_key(loc.code)] = loc
        registered[header_key(loc.name)] = loc

    headers = list(rows[0].keys())
    location_headers = [h for h in headers if not reserved_role(h)]
    unknown = [h for h in location_headers if header_key(h) not in registered]
    if unknown:
        raise ConfigurationError(f"Item headers do not match any registered location: {unknown}")
    if not any(reserved_role(h) == "code" for h in headers):
        raise ConfigurationError("Item CSV has no code column")

    wanted = {}
    for h in location_headers:
        loc = registered[header_key(h)]
        wanted[loc.id] = loc
    await add_location_columns(bind, settings.items_table, list(wanted.values()))

    async with bind.connect() as conn:
        table = await conn.run_sync(
            lambda sync_conn: Table(settings.items_table, MetaData(), autoload_with=sync_conn)
        )
    column_by_key = {header_key(c.name): c.name for c in table.columns}

    def _column(header: str) -> str:
        role = reserved_role(header)
        if role:
            for alias_key, name in column_by_key.items():
                if reserved_role(alias_key) == role:
                    return name
            raise ConfigurationError(f"Item table has no '{role}' column")
        loc = registered[header_key(header)]
        present = {
            column_by_key[k] for k in (header_key(loc.name), header_key(loc.code)) if k in column_by_key
        }
        if len(present) != 1:
            raise ConfigurationError(
                f"Location '{loc.name}' needs exactly one item column, found {sorted(present)}"
            )
        return present.pop()

    code_col = _column(next(h for h in headers if reserved_role(h) == "code"))
    now = datetime.now(timezone.utc)
    n = 0
    async with session_maker() as db:
        existing = {
            normalize(c): c for (c,) in (await db.execute(select(table.c[code_col]))).all()
        }
        for row in rows:
            code = row.get(next(h for h in headers if reserved_role(h) == "code"))
            if not code:
                continue
            values = {}
            for header, raw in row.items():
                role = reserved_role(header)
                column = _column(header)
                if role in (None, "quantity"):
                    values[column] = _number(raw)
                elif role == "last_update":
                    continue
                else:
                    values[column] = raw or None

            stored = existing.get(normalize(code))
            if stored is None:
                values[code_col] = code
                await db.execute(insert(table).values(**values))
                existing[normalize(code)] = code
            else:
                if not overwrite_quantities:
                    values = {
                        k: v for k, v in values.items()
                        if reserved_role(k) not in (None, "quantity")
                    }
                values.pop(code_col, None)
                if values:
                    await db.execute(update(table).where(table.c[code_col] == stored).values(**values))
            n += 1

        last_update = next((c.name for c in table.columns if reserved_role(c.name) == "last_update"), None)
        if last_update:
            await db.execute(update(table).where(table.c[last_update].is_(None)).values({last_update: now}))
        await db.commit()
    return n


async def main() -> None:
    parser = argparse.ArgumentParser(description="Seed locations, allow-listed users and items from CSV")
    parser.add_argument("--locations", type=Path, help="CSV with code,name")
    parser.add_argument("--users", type=Path, help="CSV with email,name,default_location")
    parser.add_argument("--items", type=Path, help="Item table CSV (header row first)")
    parser.add_argument("--overwrite-quantities", action="store_true", help="Replace quantities of existing items")
    args = parser.parse_args()

    configure_logging(settings.log_level, json=settings.log_json)
    await create_db_and_tables(engine)

    if args.locations:
        n = await seed_locations(_read_csv(args.locations))
        logger.info("seeded_locations", count=n)
    if args.users:
        n = await seed_users(_read_csv(args.users))
        logger.info("seeded_users", count=n)
    if args.items:
        n = await seed_items(_read_csv(args.items), overwrite_quantities=args.overwrite_quantities)
        logger.info("seeded_items", count=n)

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
