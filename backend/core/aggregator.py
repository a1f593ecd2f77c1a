import math
from datetime import datetime, timezone
from typing import Any, Callable, Mapping

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.codes import normalize
from core.errors import ConcurrencyError, NotFoundError, ValidationError
from core.locks import KeyedLocks
from db.inventory.catalog import CatalogStore
from db.inventory.item_table import as_number, as_utc
from db.inventory.ledger import TransactionLedger

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _parse_qty(value: Any) -> float:
    if value is None or isinstance(value, bool):
        raise ValidationError("qty is required and must be a number")
    if isinstance(value, str):
        if not value.strip():
            raise ValidationError("qty is required and must be a number")
        try:
            value = float(value)
        except ValueError:
            raise ValidationError(f"qty must be a number, got '{value}'") from None
    try:
        qty = float(value)
    except (TypeError, ValueError):
        raise ValidationError("qty must be a number") from None
    if not math.isfinite(qty):
        raise ValidationError("qty must be a finite number")
    return qty


class Aggregator:
    """Validates a transaction and applies it to the stored quantities.

    Applying is a unit of work: the ledger record and the quantity write commit
    in the same database transaction, under a lock scoped to the
    (item, storage cell) pair.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker,
        catalog: CatalogStore,
        ledger: TransactionLedger,
        locks: KeyedLocks,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.session_maker = session_maker
        self.catalog = catalog
        self.ledger = ledger
        self.locks = locks
        self.clock = clock

    def validate(self, payload: Mapping[str, Any]) -> dict:
        item_code = _text(payload.get("item_code"))
        if not item_code:
            raise ValidationError("item_code is required")
        qty = _parse_qty(payload.get("qty"))
        location = _text(payload.get("location"))
        user = _text(payload.get("user"))
        if not location:
            raise ValidationError("location is required")
        if not user:
            raise ValidationError("user is required")
        return {
            "item_code": item_code,
            "qty": qty,
            "location": location,
            "user": user,
            "comments": _text(payload.get("comments")),
        }

    async def _resolve(self, session: AsyncSession, tx: dict):
        row = await self.catalog.find_item(session, tx["item_code"])
        if row is None:
            raise NotFoundError("item", tx["item_code"])

        location = await self.catalog.resolve_location(session, tx["location"])
        if location is None:
            raise NotFoundError("location", tx["location"])

        cell = self.catalog.schema.cell_for(row, location.name)
        if cell is None:
            # The location may have gained its column after the schema was loaded
            await self.catalog.reload(session)
            cell = self.catalog.schema.cell_for(row, location.name)
        if cell is None:
            raise NotFoundError("location", tx["location"])
        return row, location, cell

    async def submit(self, payload: Mapping[str, Any]) -> dict:
        try:
            tx = self.validate(payload)
            async with self.session_maker() as session:
                row, location, cell = await self._resolve(session, tx)
        except (ValidationError, NotFoundError) as e:
            logger.info("transaction_rejected", reason=e.error, message=e.message)
            raise

        schema = self.catalog.schema
        stored_code = row[schema.roles["code"]]
        key = (normalize(stored_code), cell.column)

        async with self.locks.hold(key):
            async with self.session_maker() as session:
                async with session.begin():
                    now = self.clock()
                    record = await self.ledger.append(
                        session,
                        item_code=stored_code,
                        qty=tx["qty"],
                        location=location.name,
                        user=tx["user"],
                        timestamp=now,
                        comments=tx["comments"],
                    )

                    current = await self.catalog.read_row_for_update(session, stored_code)
                    if current is None:
                        raise NotFoundError("item", tx["item_code"])
                    cell = schema.cell_for(current, location.name)
                    if cell is None:
                        raise NotFoundError("location", tx["location"])
                    if cell.column != key[1]:
                        # Row switched quantity variant after the lock key was chosen
                        raise ConcurrencyError(f"Item {stored_code} changed while updating; try again")

                    old_qty = float(current.get(cell.column) or 0)
                    new_qty = old_qty + tx["qty"]

                    # last_update never moves backwards
                    previous = current.get(schema.roles.get("last_update", ""))
                    stamp = now
                    if isinstance(previous, datetime) and as_utc(previous) > as_utc(now):
                        stamp = as_utc(previous)

                    await self.catalog.write_cell(session, stored_code, cell.column, new_qty, stamp)

                    current[cell.column] = new_qty
                    if "last_update" in schema.roles:
                        current[schema.roles["last_update"]] = stamp

        logger.info(
            "transaction_applied",
            transaction_id=str(record.id),
            item_code=stored_code,
            location=cell.location,
            delta=tx["qty"],
            old_qty=old_qty,
            new_qty=new_qty,
            user=tx["user"],
        )
        item = schema.item_to_dict(current)
        return {
            "success": True,
            "item_code": stored_code,
            "item_name": item["name"],
            "location": cell.location,
            "old_qty": as_number(old_qty),
            "new_qty": as_number(new_qty),
            "delta": as_number(tx["qty"]),
            "timestamp": as_utc(now),
            "item": item,
        }
