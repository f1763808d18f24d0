"""
Error Taxonomy

Every failure is scoped to the single statement or request that produced it.
Validation errors (constraints, trigger rejections) and authorization errors
(row-level security) both surface as a rejected write with no partial effect.
"""

from typing import Optional


class DatabaseError(Exception):
    """Base class for errors raised while executing a statement"""
    
    def __init__(self, message: str, table: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.table = table


class UndefinedTableError(DatabaseError):
    """Statement referenced a table that is not in the catalog"""


class UndefinedColumnError(DatabaseError):
    """Statement referenced a column the table does not define"""


class StorageError(DatabaseError):
    """The storage backend failed or its connection is closed"""


class IntegrityError(DatabaseError):
    """Base class for constraint violations"""
    
    def __init__(self, message: str, table: Optional[str] = None, column: Optional[str] = None):
        super().__init__(message, table)
        self.column = column


class NotNullViolation(IntegrityError):
    """A NOT NULL column received no value"""


class CheckViolation(IntegrityError):
    """A column-level CHECK constraint rejected the value"""


class UniqueViolation(IntegrityError):
    """A PRIMARY KEY or UNIQUE constraint rejected the value"""


class ForeignKeyViolation(IntegrityError):
    """A referenced row does not exist"""


class TriggerError(DatabaseError):
    """A trigger function aborted the statement"""


class TransactionAmountError(TriggerError):
    """Transaction amount is not positive or exceeds the maximum limit"""


class RowLevelSecurityError(DatabaseError):
    """The new row violates a row-level security policy"""


class AuthenticationError(Exception):
    """Identity or session could not be established"""


class DataAccessError(Exception):
    """
    Raised by the client data-access layer.
    
    Wraps the underlying database or platform error so the presentation
    layer can show a single transient notification.
    """
    
    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause
