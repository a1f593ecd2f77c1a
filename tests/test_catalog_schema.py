from datetime import datetime, timezone
from types import SimpleNamespace

import pytest
from sqlalchemy import Column, DateTime, Float, MetaData, String, Table

from core.errors import ConfigurationError
from db.inventory.item_table import (
    SHAPE_LOCATIONS,
    SHAPE_TOTAL,
    CatalogSchema,
    as_number,
    build_item_table,
    location_keys,
    missing_location_columns,
    reserved_role,
)

LOCATIONS = [
    SimpleNamespace(code="WA", name="Warehouse A"),
    SimpleNamespace(code="WB", name="Warehouse B"),
]


def _table(*columns):
    return Table("items", MetaData(), *columns)


def _schema(table):
    return CatalogSchema(table, location_keys(LOCATIONS))


class TestReservedColumns:
    @pytest.mark.parametrize(
        "header, role",
        [
            ("code", "code"),
            ("Book_Code", "code"),
            ("ITEM_CODE", "code"),
            ("book_name", "name"),
            ("Total", "quantity"),
            ("Updated_At", "last_update"),
            ("Warehouse A", None),
        ],
    )
    def test_reserved_role(self, header, role):
        assert reserved_role(header) == role

    def test_alias_headers_map_to_roles(self):
        table = _table(
            Column("Book_Code", String, primary_key=True),
            Column("Book_Name", String),
            Column("Total", Float),
            Column("Updated_At", DateTime(timezone=True)),
        )
        schema = _schema(table)
        assert schema.roles == {
            "code": "Book_Code",
            "name": "Book_Name",
            "quantity": "Total",
            "last_update": "Updated_At",
        }
        assert schema.location_columns == {}

    def test_two_columns_for_one_role_is_rejected(self):
        table = _table(Column("code", String, primary_key=True), Column("item_code", String))
        with pytest.raises(ConfigurationError, match="two 'code' columns"):
            _schema(table)

    def test_code_column_is_required(self):
        table = _table(Column("name", String, primary_key=True), Column("quantity", Float))
        with pytest.raises(ConfigurationError, match="no code column"):
            _schema(table)

    def test_some_quantity_column_is_required(self):
        table = _table(Column("code", String, primary_key=True), Column("name", String))
        with pytest.raises(ConfigurationError, match="neither a quantity column"):
            _schema(table)


class TestLocationColumns:
    def test_columns_match_location_name_or_code(self):
        table = _table(
            Column("code", String, primary_key=True),
            Column("warehouse a", Float),
            Column("WB", Float),
        )
        schema = _schema(table)
        assert schema.location_columns == {"warehouse a": "Warehouse A", "WB": "Warehouse B"}

    def test_unregistered_column_is_a_configuration_error(self):
        table = _table(Column("code", String, primary_key=True), Column("Attic", Float))
        with pytest.raises(ConfigurationError, match="Attic"):
            _schema(table)

    def test_two_columns_for_one_location_are_rejected(self):
        table = _table(
            Column("code", String, primary_key=True),
            Column("WA", Float),
            Column("Warehouse A", Float),
        )
        with pytest.raises(ConfigurationError, match="'WA' and 'Warehouse A' both map to location 'Warehouse A'"):
            _schema(table)

    def test_missing_location_columns(self):
        table = _table(Column("code", String, primary_key=True), Column("WA", Float))
        assert missing_location_columns(table, LOCATIONS) == ["Warehouse B"]


class TestShapes:
    @pytest.fixture()
    def schema(self):
        return _schema(build_item_table("items", ["Warehouse A", "Warehouse B"]))

    def test_row_with_location_values_is_per_location(self, schema):
        assert schema.shape_of({"Warehouse A": 3.0, "quantity": None}) == SHAPE_LOCATIONS

    def test_row_with_only_aggregate_is_total(self, schema):
        assert schema.shape_of({"Warehouse A": None, "quantity": 4.0}) == SHAPE_TOTAL

    def test_empty_row_defaults_to_per_location(self, schema):
        assert schema.shape_of({}) == SHAPE_LOCATIONS

    def test_table_without_location_columns_is_always_total(self):
        schema = _schema(build_item_table("items"))
        assert schema.shape_of({"quantity": None}) == SHAPE_TOTAL

    def test_cell_for_per_location_row(self, schema):
        cell = schema.cell_for({"Warehouse A": 1.0}, "warehouse b")
        assert cell.column == "Warehouse B"
        assert cell.location == "Warehouse B"
        assert cell.shape == SHAPE_LOCATIONS

    def test_cell_for_total_row_uses_aggregate(self, schema):
        cell = schema.cell_for({"quantity": 2.0}, "Warehouse A")
        assert cell.column == "quantity"
        assert cell.location == "Warehouse A"
        assert cell.shape == SHAPE_TOTAL

    def test_cell_for_unknown_location(self, schema):
        assert schema.cell_for({"Warehouse A": 1.0}, "Attic") is None

    def test_item_to_dict(self, schema):
        stamp = datetime(2026, 5, 1, 12, 0)
        row = {
            "code": "BK-001",
            "series": None,
            "name": "Alpha",
            "volume": "1",
            "quantity": None,
            "last_update": stamp,
            "Warehouse A": 10.0,
            "Warehouse B": 2.5,
        }
        item = schema.item_to_dict(row)
        assert item == {
            "code": "BK-001",
            "series": "",
            "name": "Alpha",
            "volume": "1",
            "locations": {"Warehouse A": 10, "Warehouse B": 2.5},
            "last_update": stamp.replace(tzinfo=timezone.utc),
        }
        assert isinstance(item["locations"]["Warehouse A"], int)


def test_as_number():
    assert as_number(None) == 0
    assert as_number(3.0) == 3 and isinstance(as_number(3.0), int)
    assert as_number(-2.5) == -2.5
