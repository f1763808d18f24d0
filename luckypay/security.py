"""
Row-Level Security Module

Per-table access rules evaluated per row against the caller's identity.
The caller travels in a context variable set around each request, so every
statement sees the identity of the session that issued it without any
process-wide mutable state.
"""

import contextvars
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set


class Command(Enum):
    """Statement kinds a policy can apply to"""
    ALL = "ALL"
    SELECT = "SELECT"
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


# (row, caller identity) -> allowed
Predicate = Callable[[Dict[str, Any], Optional[str]], bool]


_current_identity = contextvars.ContextVar('current_identity', default=None)
_service_role = contextvars.ContextVar('service_role', default=False)


def auth_uid() -> Optional[str]:
    """Identity of the caller for this context, None when anonymous"""
    return _current_identity.get()


def is_service_role() -> bool:
    """True while running as trusted server code that bypasses policies"""
    return _service_role.get()


@contextmanager
def identity_context(identity_id: Optional[str]):
    """Run the enclosed statements as the given identity"""
    token = _current_identity.set(identity_id)
    try:
        yield
    finally:
        _current_identity.reset(token)


@contextmanager
def service_role():
    """Run the enclosed statements with row-level security bypassed"""
    token = _service_role.set(True)
    try:
        yield
    finally:
        _service_role.reset(token)


def owner_is_caller(column: str) -> Predicate:
    """Predicate ``auth.uid() = <column>``"""
    def predicate(row: Dict[str, Any], uid: Optional[str]) -> bool:
        return uid is not None and row.get(column) == uid
    predicate.__name__ = f"auth_uid_eq_{column}"
    return predicate


def allow_all(row: Dict[str, Any], uid: Optional[str]) -> bool:
    """Predicate ``true``"""
    return True


@dataclass
class Policy:
    """
    A permissive row-level security policy.
    
    ``using`` decides which existing rows are visible to SELECT, UPDATE and
    DELETE; ``with_check`` decides which new rows INSERT and UPDATE may
    write. An UPDATE policy without ``with_check`` reuses ``using``.
    """
    name: str
    table: str
    command: Command
    using: Optional[Predicate] = None
    with_check: Optional[Predicate] = None
    
    def applies_to(self, command: Command) -> bool:
        return self.command == Command.ALL or self.command == command


class PolicyRegistry:
    """Holds which tables have row-level security enabled and their policies"""
    
    def __init__(self):
        self._enabled: Set[str] = set()
        self._policies: Dict[str, List[Policy]] = {}
    
    def enable_row_level_security(self, table: str) -> None:
        self._enabled.add(table)
    
    def disable_row_level_security(self, table: str) -> None:
        self._enabled.discard(table)
    
    def is_enabled(self, table: str) -> bool:
        return table in self._enabled
    
    def copy(self) -> 'PolicyRegistry':
        registry = PolicyRegistry()
        registry._enabled = set(self._enabled)
        registry._policies = {table: list(policies) for table, policies in self._policies.items()}
        return registry
    
    def create_policy(self, policy: Policy) -> Policy:
        """Register a policy; names are unique per table"""
        existing = self._policies.setdefault(policy.table, [])
        if any(p.name == policy.name for p in existing):
            raise ValueError(f'Policy "{policy.name}" for table "{policy.table}" already exists')
        existing.append(policy)
        return policy
    
    def drop_policy(self, table: str, name: str) -> bool:
        policies = self._policies.get(table, [])
        remaining = [p for p in policies if p.name != name]
        self._policies[table] = remaining
        return len(remaining) != len(policies)
    
    def drop_table(self, table: str) -> None:
        self._policies.pop(table, None)
        self._enabled.discard(table)
    
    def policies_for(self, table: str, command: Optional[Command] = None) -> List[Policy]:
        policies = self._policies.get(table, [])
        if command is None:
            return list(policies)
        return [p for p in policies if p.applies_to(command)]
    
    def _bypass(self, table: str) -> bool:
        return is_service_role() or table not in self._enabled
    
    def row_visible(self, table: str, command: Command, row: Dict[str, Any]) -> bool:
        """USING check: may this statement see/touch the existing row?"""
        if self._bypass(table):
            return True
        uid = auth_uid()
        return any(
            p.using is not None and p.using(row, uid)
            for p in self.policies_for(table, command)
        )
    
    def new_row_allowed(self, table: str, command: Command, row: Dict[str, Any]) -> bool:
        """WITH CHECK: may this statement write the new row?"""
        if self._bypass(table):
            return True
        uid = auth_uid()
        for policy in self.policies_for(table, command):
            check = policy.with_check
            if check is None and command == Command.UPDATE:
                check = policy.using
            if check is not None and check(row, uid):
                return True
        return False
