"""
Schema Module

Column and table definitions with their defaults and column-level
constraints (NOT NULL, CHECK, UNIQUE, PRIMARY KEY, FOREIGN KEY). Values are
coerced to a JSON-friendly form on the way in: uuids and text as strings,
numerics as two-decimal strings, timestamps as UTC ISO-8601 strings.
"""

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from .currency import to_decimal
from .errors import (
    DatabaseError, UndefinedColumnError, NotNullViolation, CheckViolation
)


class ColumnType(Enum):
    UUID = "uuid"
    TEXT = "text"
    NUMERIC = "numeric"
    BOOLEAN = "boolean"
    TIMESTAMPTZ = "timestamptz"
    JSON = "jsonb"


def gen_random_uuid() -> str:
    return str(uuid.uuid4())


def now() -> str:
    return datetime.now(timezone.utc).isoformat()


def constant(value: Any) -> Callable[[], Any]:
    return lambda: value


@dataclass
class ForeignKey:
    """REFERENCES <table>(<column>) ON DELETE CASCADE"""
    table: str
    column: str = "id"
    on_delete_cascade: bool = True


@dataclass
class Column:
    name: str
    type: ColumnType
    default: Optional[Callable[[], Any]] = None
    nullable: bool = True
    primary_key: bool = False
    unique: bool = False
    allowed: Optional[Tuple[str, ...]] = None  # CHECK (col IN (...))
    references: Optional[ForeignKey] = None
    precision: int = 15  # NUMERIC(precision, scale)
    scale: int = 2
    
    def coerce(self, value: Any, table: Optional[str] = None) -> Any:
        """Convert a Python value to its stored representation"""
        if value is None:
            return None
        
        if self.type in (ColumnType.UUID, ColumnType.TEXT):
            if isinstance(value, Enum):
                value = value.value
            return str(value)
        
        if self.type == ColumnType.NUMERIC:
            try:
                amount = to_decimal(value)
            except ValueError:
                raise DatabaseError(
                    f'invalid input syntax for type numeric: "{value}"', table
                )
            if not amount.is_finite():
                raise DatabaseError(f'invalid input syntax for type numeric: "{value}"', table)
            try:
                amount = amount.quantize(Decimal(1).scaleb(-self.scale), rounding=ROUND_HALF_UP)
            except InvalidOperation:
                raise DatabaseError("numeric field overflow", table)
            if abs(amount) >= Decimal(10) ** (self.precision - self.scale):
                raise DatabaseError("numeric field overflow", table)
            return str(amount)
        
        if self.type == ColumnType.BOOLEAN:
            if not isinstance(value, bool):
                raise DatabaseError(f'invalid input syntax for type boolean: "{value}"', table)
            return value
        
        if self.type == ColumnType.TIMESTAMPTZ:
            if isinstance(value, str):
                try:
                    value = datetime.fromisoformat(value)
                except ValueError:
                    raise DatabaseError(f'invalid input syntax for type timestamp: "{value}"', table)
            if not isinstance(value, datetime):
                raise DatabaseError(f'invalid input syntax for type timestamp: "{value}"', table)
            if value.tzinfo is None:
                value = value.replace(tzinfo=timezone.utc)
            return value.astimezone(timezone.utc).isoformat()
        
        if self.type == ColumnType.JSON:
            return json.loads(json.dumps(value, default=str))
        
        return value


@dataclass
class TableSchema:
    name: str
    columns: List[Column]
    row_level_security: bool = False
    _by_name: Dict[str, Column] = field(default_factory=dict, init=False, repr=False)
    
    def __post_init__(self):
        self._by_name = {c.name: c for c in self.columns}
        keys = [c.name for c in self.columns if c.primary_key]
        if len(keys) != 1:
            raise ValueError(f"Table {self.name} must declare exactly one primary key column")
    
    @property
    def primary_key(self) -> str:
        return next(c.name for c in self.columns if c.primary_key)
    
    def column(self, name: str) -> Column:
        try:
            return self._by_name[name]
        except KeyError:
            raise UndefinedColumnError(
                f'column "{name}" of relation "{self.name}" does not exist', self.name
            )
    
    def has_column(self, name: str) -> bool:
        return name in self._by_name
    
    def coerce_values(self, values: Dict[str, Any]) -> Dict[str, Any]:
        """Coerce a partial row (for updates and filters)"""
        return {
            key: self.column(key).coerce(value, self.name)
            for key, value in values.items()
        }
    
    def build_row(self, values: Dict[str, Any]) -> Dict[str, Any]:
        """Apply column defaults for an INSERT and coerce every value"""
        supplied = self.coerce_values(values)
        row = {}
        for column in self.columns:
            if column.name in supplied:
                row[column.name] = supplied[column.name]
            elif column.default is not None:
                row[column.name] = column.coerce(column.default(), self.name)
            else:
                row[column.name] = None
        return row
    
    def validate(self, row: Dict[str, Any]) -> None:
        """Enforce NOT NULL and CHECK constraints on a complete row"""
        for column in self.columns:
            value = row.get(column.name)
            if value is None:
                if not column.nullable or column.primary_key:
                    raise NotNullViolation(
                        f'null value in column "{column.name}" of relation "{self.name}" '
                        f'violates not-null constraint',
                        self.name, column.name
                    )
                continue
            if column.allowed is not None and value not in column.allowed:
                raise CheckViolation(
                    f'new row for relation "{self.name}" violates check constraint '
                    f'"{self.name}_{column.name}_check"',
                    self.name, column.name
                )
    
    def unique_columns(self) -> List[Column]:
        return [c for c in self.columns if c.unique or c.primary_key]
    
    def foreign_keys(self) -> List[Column]:
        return [c for c in self.columns if c.references is not None]


AUTH_USERS = "auth_users"
PROFILES = "profiles"
TRANSACTIONS = "transactions"
BANK_ACCOUNTS = "bank_accounts"
AUDIT_LOGS = "audit_logs"

TRANSACTION_TYPES = ("deposit", "withdrawal", "transfer", "verification_payment")
TRANSACTION_STATUSES = ("pending", "completed", "failed")

DEFAULT_BALANCE = "100000.00"
MAX_TRANSACTION_AMOUNT = Decimal("100000000")


def _owner(name: str = "user_id") -> Column:
    return Column(name, ColumnType.UUID, references=ForeignKey(AUTH_USERS))


def auth_users_table() -> TableSchema:
    """Identities owned by the authentication subsystem"""
    return TableSchema(AUTH_USERS, [
        Column("id", ColumnType.UUID, default=gen_random_uuid, primary_key=True),
        Column("phone", ColumnType.TEXT, unique=True),
        Column("password_hash", ColumnType.TEXT, nullable=False),
        Column("password_salt", ColumnType.TEXT, nullable=False),
        Column("raw_user_meta_data", ColumnType.JSON, default=dict),
        Column("created_at", ColumnType.TIMESTAMPTZ, default=now),
    ])


def profiles_table() -> TableSchema:
    return TableSchema(PROFILES, [
        Column("id", ColumnType.UUID, primary_key=True, references=ForeignKey(AUTH_USERS)),
        Column("phone_number", ColumnType.TEXT, unique=True),
        Column("full_name", ColumnType.TEXT),
        Column("balance", ColumnType.NUMERIC, default=constant(DEFAULT_BALANCE)),
        Column("is_verified", ColumnType.BOOLEAN, default=constant(False)),
        Column("has_paid_verification", ColumnType.BOOLEAN, default=constant(False)),
        Column("created_at", ColumnType.TIMESTAMPTZ, default=now),
        Column("updated_at", ColumnType.TIMESTAMPTZ, default=now),
    ])


def transactions_table() -> TableSchema:
    return TableSchema(TRANSACTIONS, [
        Column("id", ColumnType.UUID, default=gen_random_uuid, primary_key=True),
        _owner(),
        Column("type", ColumnType.TEXT, nullable=False, allowed=TRANSACTION_TYPES),
        Column("amount", ColumnType.NUMERIC, nullable=False),
        Column("recipient_account", ColumnType.TEXT),
        Column("recipient_name", ColumnType.TEXT),
        Column("recipient_bank", ColumnType.TEXT),
        Column("status", ColumnType.TEXT, default=constant("pending"), allowed=TRANSACTION_STATUSES),
        Column("reference", ColumnType.TEXT, default=gen_random_uuid, unique=True),
        Column("description", ColumnType.TEXT),
        Column("created_at", ColumnType.TIMESTAMPTZ, default=now),
    ])


def bank_accounts_table() -> TableSchema:
    return TableSchema(BANK_ACCOUNTS, [
        Column("id", ColumnType.UUID, default=gen_random_uuid, primary_key=True),
        _owner(),
        Column("account_number", ColumnType.TEXT, nullable=False),
        Column("account_name", ColumnType.TEXT, nullable=False),
        Column("bank_name", ColumnType.TEXT, nullable=False),
        Column("bank_code", ColumnType.TEXT),
        Column("is_primary", ColumnType.BOOLEAN, default=constant(False)),
        Column("created_at", ColumnType.TIMESTAMPTZ, default=now),
    ])


def audit_logs_table() -> TableSchema:
    return TableSchema(AUDIT_LOGS, [
        Column("id", ColumnType.UUID, default=gen_random_uuid, primary_key=True),
        _owner(),
        Column("action", ColumnType.TEXT, nullable=False),
        Column("table_name", ColumnType.TEXT, nullable=False),
        Column("old_values", ColumnType.JSON),
        Column("new_values", ColumnType.JSON),
        Column("ip_address", ColumnType.TEXT),
        Column("user_agent", ColumnType.TEXT),
        Column("created_at", ColumnType.TIMESTAMPTZ, default=now),
    ])
