from sqlalchemy import Column, Integer, String
from .database import Base


class AllowedUser(Base):
    """Flat allow-list of identities that may bootstrap a session."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String, nullable=False, unique=True, index=True)
    name = Column(String, nullable=True)
    default_location = Column(String, nullable=True)

    @property
    def to_schema(self):
        """Allow-list entry as sent to the client at bootstrap"""
        return {
            "email": self.email,
            "name": self.name,
            "default_location": self.default_location,
        }
