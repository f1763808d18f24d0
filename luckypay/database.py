"""
Database Module

Executes INSERT, SELECT, UPDATE and DELETE statements against a storage
backend the way a hosted relational platform would: column defaults, BEFORE
and AFTER triggers, NOT NULL / CHECK / UNIQUE / FOREIGN KEY constraints,
row-level security and ON DELETE CASCADE. Each write statement, together
with every trigger it fires, runs in one atomic storage transaction, so a
failure anywhere leaves no partial effect.
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from .errors import (
    DatabaseError, UndefinedTableError, UniqueViolation, ForeignKeyViolation,
    RowLevelSecurityError
)
from .schema import TableSchema, Column, ColumnType, auth_users_table
from .security import PolicyRegistry, Policy, Command, Predicate, service_role
from .storage import StorageInterface
from .triggers import (
    TriggerRegistry, Trigger, TriggerTiming, TriggerEvent, TriggerFunction
)


logger = logging.getLogger(__name__)


def _sort_value(column: Column, value: Any):
    if value is None:
        return (True, None)
    if column.type == ColumnType.NUMERIC:
        return (False, Decimal(value))
    if column.type == ColumnType.TIMESTAMPTZ:
        return (False, datetime.fromisoformat(value))
    return (False, value)


class Database:
    """
    Statement executor over a catalog of tables, policies and triggers.
    
    The identity table ``auth_users`` belongs to the platform and exists
    before any migration runs.
    """
    
    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.policies = PolicyRegistry()
        self.triggers = TriggerRegistry()
        self._tables: Dict[str, TableSchema] = {}
        self.create_table(auth_users_table())
    
    # Catalog
    
    def create_table(self, schema: TableSchema, if_not_exists: bool = False) -> TableSchema:
        if schema.name in self._tables:
            if if_not_exists:
                return self._tables[schema.name]
            raise DatabaseError(f'relation "{schema.name}" already exists', schema.name)
        self._tables[schema.name] = schema
        if schema.row_level_security:
            self.policies.enable_row_level_security(schema.name)
        logger.debug(f"Created table {schema.name}")
        return schema
    
    def drop_table(self, name: str) -> None:
        self.table(name)
        del self._tables[name]
        self.policies.drop_table(name)
        self.triggers.drop_table(name)
        self.storage.clear_table(name)
        logger.debug(f"Dropped table {name}")
    
    def has_table(self, name: str) -> bool:
        return name in self._tables
    
    def table(self, name: str) -> TableSchema:
        try:
            return self._tables[name]
        except KeyError:
            raise UndefinedTableError(f'relation "{name}" does not exist', name)
    
    def tables(self) -> List[str]:
        return list(self._tables)
    
    def enable_row_level_security(self, table: str) -> None:
        self.table(table)
        self.policies.enable_row_level_security(table)
    
    def create_policy(
        self,
        name: str,
        table: str,
        command: Command,
        using: Optional[Predicate] = None,
        with_check: Optional[Predicate] = None
    ) -> Policy:
        self.table(table)
        return self.policies.create_policy(Policy(name, table, command, using, with_check))
    
    def drop_policy(self, table: str, name: str) -> bool:
        return self.policies.drop_policy(table, name)
    
    def create_trigger(
        self,
        name: str,
        table: str,
        timing: TriggerTiming,
        events: Iterable[TriggerEvent],
        function: TriggerFunction,
        security_definer: bool = True
    ) -> Trigger:
        self.table(table)
        return self.triggers.create_trigger(
            Trigger(name, table, timing, tuple(events), function, security_definer)
        )
    
    def drop_trigger(self, table: str, name: str) -> bool:
        return self.triggers.drop_trigger(table, name)
    
    @contextmanager
    def transaction(self):
        """
        Atomic block covering rows and the catalog.
    
        On failure stored rows roll back with the storage transaction and
        tables, policies and triggers return to their state at entry.
        """
        tables = dict(self._tables)
        policies = self.policies.copy()
        triggers = self.triggers.copy()
        try:
            with self.storage.atomic():
                yield self
        except BaseException:
            self._tables = tables
            self.policies = policies
            self.triggers = triggers
            raise
    
    # Statements
    
    def insert(self, table: str, values: Dict[str, Any]) -> Dict[str, Any]:
        """INSERT one row and return it as stored"""
        schema = self.table(table)
        
        with self.storage.atomic():
            row = schema.build_row(values)
            row = self.triggers.fire(self, table, TriggerTiming.BEFORE, TriggerEvent.INSERT, new=row)
            row = schema.coerce_values(row)
            
            if not self.policies.new_row_allowed(table, Command.INSERT, row):
                raise RowLevelSecurityError(
                    f'new row violates row-level security policy for table "{table}"', table
                )
            self._check_constraints(schema, row)
            
            self.storage.save(table, row[schema.primary_key], row)
            self.triggers.fire(self, table, TriggerTiming.AFTER, TriggerEvent.INSERT, new=row)
        
        logger.debug(f"Inserted row {row[schema.primary_key]} into {table}")
        return dict(row)
    
    def select(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """
        SELECT rows matching equality filters.
        
        Rows hidden by row-level security are dropped silently, before
        ordering and limiting.
        """
        schema = self.table(table)
        criteria = schema.coerce_values(filters or {})
        
        rows = [
            row for row in self.storage.find(table, criteria)
            if self.policies.row_visible(table, Command.SELECT, row)
        ]
        
        if order_by:
            column = schema.column(order_by)
            rows.sort(key=lambda r: _sort_value(column, r.get(order_by)), reverse=descending)
        
        if limit is not None:
            rows = rows[:limit]
        return rows
    
    def select_one(self, table: str, filters: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        rows = self.select(table, filters, limit=1)
        return rows[0] if rows else None
    
    def update(self, table: str, filters: Dict[str, Any], changes: Dict[str, Any]) -> List[Dict[str, Any]]:
        """
        UPDATE matching rows and return them as stored.
        
        Rows the caller may not update are skipped silently; a rewritten row
        the caller may not write raises RowLevelSecurityError.
        """
        schema = self.table(table)
        criteria = schema.coerce_values(filters)
        new_values = schema.coerce_values(changes)
        pk = schema.primary_key
        updated = []
        
        with self.storage.atomic():
            for old in self.storage.find(table, criteria):
                if not self.policies.row_visible(table, Command.UPDATE, old):
                    continue
                
                new = dict(old)
                new.update(new_values)
                new = self.triggers.fire(
                    self, table, TriggerTiming.BEFORE, TriggerEvent.UPDATE, old=old, new=new
                )
                new = schema.coerce_values(new)
                if new[pk] != old[pk]:
                    raise DatabaseError(f'updating column "{pk}" is not supported', table)
                
                if not self.policies.new_row_allowed(table, Command.UPDATE, new):
                    raise RowLevelSecurityError(
                        f'new row violates row-level security policy for table "{table}"', table
                    )
                self._check_constraints(schema, new, existing_id=old[pk])
                
                self.storage.save(table, new[pk], new)
                self.triggers.fire(
                    self, table, TriggerTiming.AFTER, TriggerEvent.UPDATE, old=old, new=new
                )
                updated.append(new)
        
        logger.debug(f"Updated {len(updated)} row(s) in {table}")
        return updated
    
    def delete(self, table: str, filters: Dict[str, Any]) -> int:
        """DELETE matching rows the caller may delete; return how many were removed"""
        schema = self.table(table)
        criteria = schema.coerce_values(filters)
        pk = schema.primary_key
        deleted = 0
        
        with self.storage.atomic():
            for row in self.storage.find(table, criteria):
                if not self.policies.row_visible(table, Command.DELETE, row):
                    continue
                
                self.triggers.fire(self, table, TriggerTiming.BEFORE, TriggerEvent.DELETE, old=row)
                if not self.storage.delete(table, row[pk]):
                    continue
                self._cascade_delete(table, row)
                self.triggers.fire(self, table, TriggerTiming.AFTER, TriggerEvent.DELETE, old=row)
                deleted += 1
        
        logger.debug(f"Deleted {deleted} row(s) from {table}")
        return deleted
    
    # Constraints
    
    def _check_constraints(self, schema: TableSchema, row: Dict[str, Any],
                           existing_id: Optional[str] = None) -> None:
        schema.validate(row)
        pk = schema.primary_key
        
        for column in schema.unique_columns():
            value = row.get(column.name)
            if value is None:
                continue
            clashes = [
                other for other in self.storage.find(schema.name, {column.name: value})
                if other[pk] != existing_id
            ]
            if clashes:
                constraint = "pkey" if column.primary_key else f"{column.name}_key"
                raise UniqueViolation(
                    f'duplicate key value violates unique constraint "{schema.name}_{constraint}"',
                    schema.name, column.name
                )
        
        for column in schema.foreign_keys():
            value = row.get(column.name)
            if value is None:
                continue
            ref = column.references
            if not self.storage.find(ref.table, {ref.column: value}):
                raise ForeignKeyViolation(
                    f'insert or update on table "{schema.name}" violates foreign key '
                    f'constraint "{schema.name}_{column.name}_fkey"',
                    schema.name, column.name
                )
    
    def _cascade_delete(self, table: str, row: Dict[str, Any]) -> None:
        for dependent in list(self._tables.values()):
            for column in dependent.foreign_keys():
                ref = column.references
                if ref.table != table:
                    continue
                value = row.get(ref.column)
                if not self.storage.find(dependent.name, {column.name: value}):
                    continue
                if not ref.on_delete_cascade:
                    raise ForeignKeyViolation(
                        f'update or delete on table "{table}" violates foreign key '
                        f'constraint "{dependent.name}_{column.name}_fkey"',
                        dependent.name, column.name
                    )
                with service_role():
                    self.delete(dependent.name, {column.name: value})
