"""
Item table schema.

The item table is row-oriented: its header (the column names) defines what is
stored. A fixed set of reserved columns holds the descriptive fields and the
single aggregate quantity; every other column is a per-location quantity cell
and must name a registered location.
"""

from datetime import datetime, timezone
from typing import Dict, Iterable, List, NamedTuple, Optional

from sqlalchemy import Column, DateTime, Float, MetaData, String, Table

from core.errors import ConfigurationError

# role -> accepted header spellings (compared case-insensitively)
RESERVED_COLUMNS: Dict[str, tuple] = {
    "code": ("code", "item_code", "book_code"),
    "series": ("series", "book_series"),
    "name": ("name", "item_name", "book_name"),
    "volume": ("volume",),
    "quantity": ("quantity", "total", "qty"),
    "last_update": ("last_update", "last_updated", "updated_at"),
}

_ROLE_BY_HEADER = {
    alias: role for role, aliases in RESERVED_COLUMNS.items() for alias in aliases
}

SHAPE_TOTAL = "total"
SHAPE_LOCATIONS = "locations"


def header_key(name) -> str:
    return " ".join(str(name or "").split()).lower()


def reserved_role(column_name: str) -> Optional[str]:
    return _ROLE_BY_HEADER.get(header_key(column_name))


def build_item_table(name: str, location_columns: Iterable[str] = (), metadata: Optional[MetaData] = None) -> Table:
    """Table definition with the reserved columns plus the given location columns."""
    metadata = metadata if metadata is not None else MetaData()
    columns = [
        Column("code", String, primary_key=True),
        Column("series", String, nullable=True),
        Column("name", String, nullable=True),
        Column("volume", String, nullable=True),
        Column("quantity", Float, nullable=True),
        Column("last_update", DateTime(timezone=True), nullable=True),
    ]
    columns += [Column(c, Float, nullable=True) for c in location_columns]
    return Table(name, metadata, *columns)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def as_number(value):
    if value is None:
        return 0
    value = float(value)
    return int(value) if value.is_integer() else value


class Cell(NamedTuple):
    """A concrete storage cell for one (item, location) pair."""
    column: str
    location: str
    shape: str


class CatalogSchema:
    """Validated view of the item table's header.

    `locations` maps every registered location (by name and by code, lower-cased)
    to its display name; a non-reserved column that matches neither is a
    configuration error.
    """

    def __init__(self, table: Table, locations: Dict[str, str]):
        self.table = table
        self.roles: Dict[str, str] = {}
        self.location_columns: Dict[str, str] = {}  # column name -> location display name
        self._column_by_location: Dict[str, str] = {}

        for col in table.columns:
            role = reserved_role(col.name)
            if role:
                if role in self.roles:
                    raise ConfigurationError(
                        f"Item table '{table.name}' has two '{role}' columns: "
                        f"'{self.roles[role]}' and '{col.name}'"
                    )
                self.roles[role] = col.name
                continue
            display = locations.get(header_key(col.name))
            if display is None:
                raise ConfigurationError(
                    f"Item table column '{col.name}' does not match any registered location"
                )
            claimed = self._column_by_location.get(header_key(display))
            if claimed is not None:
                raise ConfigurationError(
                    f"Item table columns '{claimed}' and '{col.name}' both map to location '{display}'"
                )
            self.location_columns[col.name] = display
            self._column_by_location[header_key(display)] = col.name

        if "code" not in self.roles:
            raise ConfigurationError(f"Item table '{table.name}' has no code column")
        if "quantity" not in self.roles and not self.location_columns:
            raise ConfigurationError(
                f"Item table '{table.name}' has neither a quantity column nor location columns"
            )

    @property
    def code_column(self):
        return self.table.c[self.roles["code"]]

    def shape_of(self, row) -> str:
        """Which quantity variant a row uses.

        Rows with any per-location value, or without an aggregate value, are
        per-location when the table has location columns.
        """
        if not self.location_columns:
            return SHAPE_TOTAL
        quantity = self.roles.get("quantity")
        if quantity is None:
            return SHAPE_LOCATIONS
        if any(row.get(c) is not None for c in self.location_columns):
            return SHAPE_LOCATIONS
        if row.get(quantity) is not None:
            return SHAPE_TOTAL
        return SHAPE_LOCATIONS

    def cell_for(self, row, location_name: str) -> Optional[Cell]:
        shape = self.shape_of(row)
        if shape == SHAPE_TOTAL:
            return Cell(self.roles["quantity"], location_name, shape)
        column = self._column_by_location.get(header_key(location_name))
        if column is None:
            return None
        return Cell(column, self.location_columns[column], shape)

    def item_to_dict(self, row) -> dict:
        def _text(role):
            name = self.roles.get(role)
            value = row.get(name) if name else None
            return "" if value is None else str(value)

        out = {
            "code": _text("code"),
            "series": _text("series"),
            "name": _text("name"),
            "volume": _text("volume"),
        }
        if self.shape_of(row) == SHAPE_TOTAL:
            out["total"] = as_number(row.get(self.roles["quantity"]))
        else:
            out["locations"] = {
                display: as_number(row.get(column))
                for column, display in self.location_columns.items()
            }
        last = row.get(self.roles["last_update"]) if "last_update" in self.roles else None
        out["last_update"] = as_utc(last) if isinstance(last, datetime) else last
        return out


def location_keys(locations) -> Dict[str, str]:
    """Lookup keys (name and code, lower-cased) -> display name."""
    keys: Dict[str, str] = {}
    for loc in locations:
        keys[header_key(loc.code)] = loc.name
        keys[header_key(loc.name)] = loc.name
    return keys


def missing_location_columns(table: Table, locations) -> List[str]:
    """Registered location names that have no column on the item table."""
    present = {header_key(c.name) for c in table.columns}
    return [
        loc.name for loc in locations
        if header_key(loc.name) not in present and header_key(loc.code) not in present
    ]
