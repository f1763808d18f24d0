"""
Domain Models

Typed views over stored rows. Amounts come back as Decimal and timestamps as
timezone-aware datetimes.
"""

from decimal import Decimal
from datetime import datetime
from dataclasses import dataclass, field
from typing import Dict, Optional, Any
from enum import Enum


class TransactionType(Enum):
    """Kinds of money movement"""
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    TRANSFER = "transfer"
    VERIFICATION_PAYMENT = "verification_payment"


class TransactionStatus(Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


def _decimal(value: Any) -> Optional[Decimal]:
    return Decimal(str(value)) if value is not None else None


def _timestamp(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class Identity:
    """An authenticated principal managed by the identity provider"""
    id: str
    phone: Optional[str]
    created_at: Optional[datetime] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    
    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'Identity':
        return cls(
            id=row["id"],
            phone=row.get("phone"),
            created_at=_timestamp(row.get("created_at")),
            metadata=row.get("raw_user_meta_data") or {}
        )
    
    @property
    def full_name(self) -> Optional[str]:
        return self.metadata.get("full_name")


@dataclass
class Profile:
    """Per-identity account record"""
    id: str
    phone_number: Optional[str]
    full_name: Optional[str]
    balance: Decimal
    is_verified: bool
    has_paid_verification: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    
    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'Profile':
        return cls(
            id=row["id"],
            phone_number=row.get("phone_number"),
            full_name=row.get("full_name"),
            balance=_decimal(row.get("balance")) or Decimal("0"),
            is_verified=bool(row.get("is_verified")),
            has_paid_verification=bool(row.get("has_paid_verification")),
            created_at=_timestamp(row.get("created_at")),
            updated_at=_timestamp(row.get("updated_at"))
        )
    
    @property
    def withdrawals_enabled(self) -> bool:
        return self.has_paid_verification
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "phone_number": self.phone_number,
            "full_name": self.full_name,
            "balance": str(self.balance),
            "is_verified": self.is_verified,
            "has_paid_verification": self.has_paid_verification,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at)
        }


@dataclass
class Transaction:
    """A money-movement record owned by one identity"""
    id: str
    user_id: Optional[str]
    type: TransactionType
    amount: Decimal
    status: Optional[TransactionStatus]
    reference: Optional[str] = None
    recipient_account: Optional[str] = None
    recipient_name: Optional[str] = None
    recipient_bank: Optional[str] = None
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    
    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'Transaction':
        status = row.get("status")
        return cls(
            id=row["id"],
            user_id=row.get("user_id"),
            type=TransactionType(row["type"]),
            amount=_decimal(row["amount"]),
            status=TransactionStatus(status) if status else None,
            reference=row.get("reference"),
            recipient_account=row.get("recipient_account"),
            recipient_name=row.get("recipient_name"),
            recipient_bank=row.get("recipient_bank"),
            description=row.get("description"),
            created_at=_timestamp(row.get("created_at"))
        )
    
    @property
    def is_credit(self) -> bool:
        return self.type == TransactionType.DEPOSIT
    
    @property
    def label(self) -> str:
        """Description, or ``recipient_name - recipient_bank`` when there is none"""
        if self.description:
            return self.description
        return f"{self.recipient_name} - {self.recipient_bank}"
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "type": self.type.value,
            "amount": str(self.amount),
            "status": self.status.value if self.status else None,
            "reference": self.reference,
            "recipient_account": self.recipient_account,
            "recipient_name": self.recipient_name,
            "recipient_bank": self.recipient_bank,
            "description": self.description,
            "created_at": _iso(self.created_at)
        }


@dataclass
class BankAccount:
    """An external account linked by its owner"""
    id: str
    user_id: Optional[str]
    account_number: str
    account_name: str
    bank_name: str
    bank_code: Optional[str] = None
    is_primary: bool = False
    created_at: Optional[datetime] = None
    
    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'BankAccount':
        return cls(
            id=row["id"],
            user_id=row.get("user_id"),
            account_number=row["account_number"],
            account_name=row["account_name"],
            bank_name=row["bank_name"],
            bank_code=row.get("bank_code"),
            is_primary=bool(row.get("is_primary")),
            created_at=_timestamp(row.get("created_at"))
        )
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "account_number": self.account_number,
            "account_name": self.account_name,
            "bank_name": self.bank_name,
            "bank_code": self.bank_code,
            "is_primary": self.is_primary,
            "created_at": _iso(self.created_at)
        }


@dataclass
class AuditLogEntry:
    id: str
    user_id: Optional[str]
    action: str
    table_name: str
    old_values: Optional[Dict[str, Any]] = None
    new_values: Optional[Dict[str, Any]] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: Optional[datetime] = None
    
    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'AuditLogEntry':
        return cls(
            id=row["id"],
            user_id=row.get("user_id"),
            action=row["action"],
            table_name=row["table_name"],
            old_values=row.get("old_values"),
            new_values=row.get("new_values"),
            ip_address=row.get("ip_address"),
            user_agent=row.get("user_agent"),
            created_at=_timestamp(row.get("created_at"))
        )
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "action": self.action,
            "table_name": self.table_name,
            "old_values": self.old_values,
            "new_values": self.new_values,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "created_at": _iso(self.created_at)
        }
