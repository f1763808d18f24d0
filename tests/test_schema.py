"""
Tests for column coercion, defaults and column-level constraints
"""

import pytest
from datetime import datetime, timezone, timedelta
from decimal import Decimal

from luckypay.errors import (
    DatabaseError, UndefinedColumnError, NotNullViolation, CheckViolation
)
from luckypay.models import TransactionType
from luckypay.schema import (
    Column, ColumnType, TableSchema, profiles_table, transactions_table,
    DEFAULT_BALANCE
)


class TestColumnCoercion:
    """Test conversion of Python values to stored form"""
    
    def test_numeric_is_two_decimal_string(self):
        column = Column("amount", ColumnType.NUMERIC)
        assert column.coerce(Decimal("6000")) == "6000.00"
        assert column.coerce(6000) == "6000.00"
        assert column.coerce("12.5") == "12.50"
    
    def test_numeric_rejects_invalid_input(self):
        column = Column("amount", ColumnType.NUMERIC)
        with pytest.raises(DatabaseError, match="invalid input syntax for type numeric"):
            column.coerce("six thousand")
        with pytest.raises(DatabaseError):
            column.coerce("NaN")
    
    def test_numeric_overflow(self):
        column = Column("amount", ColumnType.NUMERIC)  # NUMERIC(15, 2)
        assert column.coerce(Decimal("9999999999999.99")) == "9999999999999.99"
        with pytest.raises(DatabaseError, match="numeric field overflow"):
            column.coerce(Decimal("10000000000000"))
    
    def test_enum_values_unwrapped_for_text(self):
        column = Column("type", ColumnType.TEXT)
        assert column.coerce(TransactionType.DEPOSIT) == "deposit"
    
    def test_boolean_requires_bool(self):
        column = Column("flag", ColumnType.BOOLEAN)
        assert column.coerce(True) is True
        with pytest.raises(DatabaseError):
            column.coerce("yes")
    
    def test_timestamp_normalised_to_utc(self):
        column = Column("at", ColumnType.TIMESTAMPTZ)
        lagos = timezone(timedelta(hours=1))
        stored = column.coerce(datetime(2025, 7, 22, 7, 0, tzinfo=lagos))
        assert stored == "2025-07-22T06:00:00+00:00"
        
        naive = column.coerce(datetime(2025, 7, 22, 6, 0))
        assert naive.endswith("+00:00")
    
    def test_timestamp_rejects_garbage(self):
        column = Column("at", ColumnType.TIMESTAMPTZ)
        with pytest.raises(DatabaseError):
            column.coerce("yesterday")
    
    def test_json_round_trips_decimals_as_strings(self):
        column = Column("data", ColumnType.JSON)
        assert column.coerce({"balance": Decimal("1.50")}) == {"balance": "1.50"}
    
    def test_none_passes_through(self):
        assert Column("amount", ColumnType.NUMERIC).coerce(None) is None


class TestTableSchema:
    """Test row construction and validation"""
    
    def test_exactly_one_primary_key_required(self):
        with pytest.raises(ValueError):
            TableSchema("broken", [Column("a", ColumnType.TEXT)])
    
    def test_build_row_applies_defaults(self):
        row = profiles_table().build_row({"id": "u1"})
        assert row["balance"] == DEFAULT_BALANCE
        assert row["is_verified"] is False
        assert row["has_paid_verification"] is False
        assert row["full_name"] is None
        assert row["created_at"] is not None
    
    def test_build_row_generates_ids_and_references(self):
        row = transactions_table().build_row({"type": "deposit", "amount": 10})
        assert row["id"]
        assert row["reference"]
        assert row["reference"] != row["id"]
        assert row["status"] == "pending"
    
    def test_unknown_column(self):
        with pytest.raises(UndefinedColumnError):
            transactions_table().build_row({"colour": "blue"})
    
    def test_not_null_violation(self):
        schema = transactions_table()
        row = schema.build_row({"type": "deposit"})
        with pytest.raises(NotNullViolation) as exc_info:
            schema.validate(row)
        assert exc_info.value.column == "amount"
    
    def test_check_violation(self):
        schema = transactions_table()
        row = schema.build_row({"type": "refund", "amount": 10})
        with pytest.raises(CheckViolation, match="transactions_type_check"):
            schema.validate(row)
    
    def test_check_skipped_for_null(self):
        schema = transactions_table()
        row = schema.build_row({"type": "deposit", "amount": 10, "status": None})
        schema.validate(row)
    
    def test_unique_and_foreign_key_columns(self):
        schema = transactions_table()
        assert {c.name for c in schema.unique_columns()} == {"id", "reference"}
        assert [c.name for c in schema.foreign_keys()] == ["user_id"]
