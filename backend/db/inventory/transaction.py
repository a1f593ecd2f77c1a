import uuid

from sqlalchemy import Column, DateTime, Float, String, Text, Uuid

from core.config import settings
from ..database import Base


class LedgerTransaction(Base):
    """One applied delta. Rows are appended and never updated or deleted."""
    __tablename__ = settings.transactions_table

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    item_code = Column(String, nullable=False, index=True)
    qty = Column(Float, nullable=False)
    location = Column(String, nullable=False, index=True)
    timestamp = Column(DateTime(timezone=True), nullable=False, index=True)
    user = Column(String, nullable=False)
    comments = Column(Text, nullable=True)

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "item_code": self.item_code,
            "qty": self.qty,
            "location": self.location,
            "timestamp": self.timestamp,
            "user": self.user,
            "comments": self.comments,
        }
