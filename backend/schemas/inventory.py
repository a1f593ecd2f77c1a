from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

Quantity = Union[int, float]


class TransactionCreate(BaseModel):
    """Body of a transaction command.

    Fields are lenient; required-ness and number checks happen in the
    aggregator, in a fixed order.
    """
    model_config = ConfigDict(populate_by_name=True)

    item_code: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("item_code", "book_code")
    )
    qty: Any = None
    location: Optional[str] = None
    user: Optional[str] = None
    comments: Optional[str] = None

    @field_validator("item_code", "location", "user", "comments", mode="before")
    @classmethod
    def _as_text(cls, v):
        if v is None or isinstance(v, str):
            return v
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        raise ValueError("must be a string")


class LocationRead(BaseModel):
    code: str
    name: str


class UserRead(BaseModel):
    email: str
    name: Optional[str] = None
    default_location: Optional[str] = None


class ItemRead(BaseModel):
    code: str
    series: str = ""
    name: str = ""
    volume: str = ""
    total: Optional[Quantity] = None
    locations: Optional[Dict[str, Quantity]] = None
    last_update: Optional[datetime] = None


class BootstrapRead(BaseModel):
    success: bool = True
    user: UserRead
    locations: List[LocationRead]
    items: List[ItemRead]


class TransactionResult(BaseModel):
    success: bool = True
    item_code: str
    item_name: str = ""
    location: str
    old_qty: Quantity
    new_qty: Quantity
    delta: Quantity
    timestamp: datetime
    item: Optional[ItemRead] = None


class ErrorRead(BaseModel):
    error: str
    message: Optional[str] = None
