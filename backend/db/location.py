from sqlalchemy import Column, Integer, String
from .database import Base


class Location(Base):
    """Named stock-keeping bucket. Reference data, seeded externally."""
    __tablename__ = "locations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String, nullable=False, unique=True, index=True)
    name = Column(String, nullable=False, unique=True)

    @property
    def to_schema(self):
        return {
            "code": self.code,
            "name": self.name,
        }
