from datetime import datetime
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .transaction import LedgerTransaction


class TransactionLedger:
    """Append-only record of applied deltas.

    The ledger never updates or deletes; `append` joins the caller's unit of
    work so the record commits together with the quantity write.
    """

    async def append(
        self,
        session: AsyncSession,
        *,
        item_code: str,
        qty: float,
        location: str,
        user: str,
        timestamp: datetime,
        comments: Optional[str] = None,
    ) -> LedgerTransaction:
        record = LedgerTransaction(
            item_code=item_code,
            qty=qty,
            location=location,
            user=user,
            timestamp=timestamp,
            comments=comments or None,
        )
        session.add(record)
        await session.flush()
        return record

    async def count(self, session: AsyncSession, item_code: Optional[str] = None) -> int:
        stmt = select(func.count()).select_from(LedgerTransaction)
        if item_code is not None:
            stmt = stmt.where(LedgerTransaction.item_code == item_code)
        return int((await session.execute(stmt)).scalar_one())
