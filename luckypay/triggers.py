"""
Trigger Module

Functions invoked automatically by the database before or after a row is
inserted or updated, inside the same transaction as the statement that fired
them. A BEFORE trigger may return a rewritten row; raising from any trigger
aborts the statement and rolls back everything it did.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, TYPE_CHECKING

from .errors import TransactionAmountError, UniqueViolation
from .schema import (
    PROFILES, TRANSACTIONS, AUDIT_LOGS, MAX_TRANSACTION_AMOUNT, now
)
from .security import service_role

if TYPE_CHECKING:
    from .database import Database


logger = logging.getLogger(__name__)


class TriggerTiming(Enum):
    BEFORE = "BEFORE"
    AFTER = "AFTER"


class TriggerEvent(Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass
class TriggerContext:
    """What a trigger function sees: TG_OP, TG_TABLE_NAME, OLD and NEW"""
    database: 'Database'
    operation: TriggerEvent
    table_name: str
    old: Optional[Dict[str, Any]]
    new: Optional[Dict[str, Any]]


TriggerFunction = Callable[[TriggerContext], Optional[Dict[str, Any]]]


@dataclass
class Trigger:
    name: str
    table: str
    timing: TriggerTiming
    events: Tuple[TriggerEvent, ...]
    function: TriggerFunction
    security_definer: bool = True  # run with row-level security bypassed


class TriggerRegistry:
    """Per-table trigger catalog"""
    
    def __init__(self):
        self._triggers: Dict[str, List[Trigger]] = {}
    
    def create_trigger(self, trigger: Trigger) -> Trigger:
        existing = self._triggers.setdefault(trigger.table, [])
        if any(t.name == trigger.name for t in existing):
            raise ValueError(f'trigger "{trigger.name}" for relation "{trigger.table}" already exists')
        existing.append(trigger)
        return trigger
    
    def drop_trigger(self, table: str, name: str) -> bool:
        triggers = self._triggers.get(table, [])
        remaining = [t for t in triggers if t.name != name]
        self._triggers[table] = remaining
        return len(remaining) != len(triggers)
    
    def drop_table(self, table: str) -> None:
        self._triggers.pop(table, None)
    
    def copy(self) -> 'TriggerRegistry':
        registry = TriggerRegistry()
        registry._triggers = {table: list(triggers) for table, triggers in self._triggers.items()}
        return registry
    
    def triggers_for(self, table: str, timing: TriggerTiming, event: TriggerEvent) -> List[Trigger]:
        """Matching triggers in name order"""
        matching = [
            t for t in self._triggers.get(table, [])
            if t.timing == timing and event in t.events
        ]
        return sorted(matching, key=lambda t: t.name)
    
    def fire(
        self,
        database: 'Database',
        table: str,
        timing: TriggerTiming,
        event: TriggerEvent,
        old: Optional[Dict[str, Any]] = None,
        new: Optional[Dict[str, Any]] = None
    ) -> Optional[Dict[str, Any]]:
        """
        Run every matching trigger and return the (possibly rewritten) NEW row
        
        Raises whatever the trigger function raises.
        """
        row = new
        for trigger in self.triggers_for(table, timing, event):
            context = TriggerContext(
                database=database,
                operation=event,
                table_name=table,
                old=dict(old) if old is not None else None,
                new=dict(row) if row is not None else None
            )
            logger.debug(f"Firing {timing.value} {event.value} trigger {trigger.name} on {table}")
            if trigger.security_definer:
                with service_role():
                    result = trigger.function(context)
            else:
                result = trigger.function(context)
            
            if timing == TriggerTiming.BEFORE and result is not None:
                row = result
        return row


# Trigger functions

def handle_new_user(ctx: TriggerContext) -> Dict[str, Any]:
    """Provision exactly one profile for a newly created identity"""
    new = ctx.new
    metadata = new.get("raw_user_meta_data") or {}
    full_name = metadata.get("full_name")
    
    ctx.database.insert(PROFILES, {
        "id": new["id"],
        "phone_number": new.get("phone"),
        "full_name": "" if full_name is None else str(full_name),
    })
    return new


def update_updated_at_column(ctx: TriggerContext) -> Dict[str, Any]:
    new = ctx.new
    new["updated_at"] = now()
    return new


def _is_distinct(old: Any, new: Any) -> bool:
    """IS DISTINCT FROM for stored numerics (NULL-safe)"""
    if old is None or new is None:
        return (old is None) != (new is None)
    return Decimal(str(old)) != Decimal(str(new))


def log_balance_change(ctx: TriggerContext) -> Dict[str, Any]:
    """Append an audit row whenever a profile's balance actually changes"""
    old_balance = ctx.old.get("balance")
    new_balance = ctx.new.get("balance")
    
    if _is_distinct(old_balance, new_balance):
        ctx.database.insert(AUDIT_LOGS, {
            "user_id": ctx.new["id"],
            "action": ctx.operation.value,
            "table_name": ctx.table_name,
            "old_values": {"balance": old_balance},
            "new_values": {"balance": new_balance},
        })
    return ctx.new


def validate_transaction_amount(ctx: TriggerContext) -> Dict[str, Any]:
    """Reject amounts that are not positive or exceed 100 million"""
    amount = ctx.new.get("amount")
    if amount is None:
        # NULL comparisons are unknown; the NOT NULL constraint reports it
        return ctx.new
    
    value = Decimal(str(amount))
    if value <= 0:
        raise TransactionAmountError("Transaction amount must be positive", ctx.table_name)
    if value > MAX_TRANSACTION_AMOUNT:
        raise TransactionAmountError("Transaction amount exceeds maximum limit", ctx.table_name)
    return ctx.new


def enforce_single_pending_verification(ctx: TriggerContext) -> Dict[str, Any]:
    """Reject a second pending verification payment for the same identity"""
    new = ctx.new
    if new.get("type") != "verification_payment" or new.get("status") != "pending":
        return new
    
    pending = ctx.database.select(TRANSACTIONS, {
        "user_id": new.get("user_id"),
        "type": "verification_payment",
        "status": "pending",
    })
    if any(row["id"] != new["id"] for row in pending):
        raise UniqueViolation(
            "a pending verification payment already exists for this account",
            ctx.table_name, "type"
        )
    return new
