"""
Database Migration System

Versioned migrations that install tables, row-level security policies and
triggers. Applied versions are recorded in ``schema_migrations``; because the
catalog of policies and triggers lives in the process, versions already
applied to a persistent store are replayed into the catalog on startup
without being recorded again.
"""

from typing import Callable, List, Optional, Dict, Any
from datetime import datetime, timezone
import hashlib
import inspect
import logging

from .database import Database
from .schema import (
    AUTH_USERS, PROFILES, TRANSACTIONS, BANK_ACCOUNTS, AUDIT_LOGS,
    profiles_table, transactions_table, bank_accounts_table, audit_logs_table
)
from .security import Command, owner_is_caller, allow_all
from .triggers import (
    TriggerTiming, TriggerEvent, handle_new_user, update_updated_at_column,
    log_balance_change, validate_transaction_amount
)


logger = logging.getLogger(__name__)

MigrationStep = Callable[[Database], None]


class Migration:
    """Represents a single database migration"""
    
    def __init__(self, version: int, name: str, up: MigrationStep, down: Optional[MigrationStep] = None):
        self.version = version
        self.name = name
        self.up = up
        self.down = down
        self.applied_at: Optional[datetime] = None
    
    @property
    def checksum(self) -> str:
        try:
            source = inspect.getsource(self.up)
        except (OSError, TypeError):
            source = f"{self.version}:{self.name}:{self.up.__qualname__}"
        return hashlib.md5(source.encode()).hexdigest()
    
    def __str__(self) -> str:
        return f"Migration v{self.version:03d}: {self.name}"
    
    def __repr__(self) -> str:
        return f"Migration(version={self.version}, name='{self.name}')"


# v001

def _create_core_tables(db: Database) -> None:
    db.create_table(profiles_table())
    db.create_table(transactions_table())
    db.create_table(bank_accounts_table())
    
    for table in (PROFILES, TRANSACTIONS, BANK_ACCOUNTS):
        db.enable_row_level_security(table)
    
    db.create_policy("Users can view their own profile", PROFILES, Command.SELECT,
                     using=owner_is_caller("id"))
    db.create_policy("Users can update their own profile", PROFILES, Command.UPDATE,
                     using=owner_is_caller("id"))
    db.create_policy("Users can insert their own profile", PROFILES, Command.INSERT,
                     with_check=owner_is_caller("id"))
    
    db.create_policy("Users can view their own transactions", TRANSACTIONS, Command.SELECT,
                     using=owner_is_caller("user_id"))
    db.create_policy("Users can insert their own transactions", TRANSACTIONS, Command.INSERT,
                     with_check=owner_is_caller("user_id"))
    
    db.create_policy("Users can view their own bank accounts", BANK_ACCOUNTS, Command.SELECT,
                     using=owner_is_caller("user_id"))
    db.create_policy("Users can insert their own bank accounts", BANK_ACCOUNTS, Command.INSERT,
                     with_check=owner_is_caller("user_id"))
    db.create_policy("Users can update their own bank accounts", BANK_ACCOUNTS, Command.UPDATE,
                     using=owner_is_caller("user_id"))
    
    db.create_trigger("on_auth_user_created", AUTH_USERS, TriggerTiming.AFTER,
                      [TriggerEvent.INSERT], handle_new_user)
    db.create_trigger("update_profiles_updated_at", PROFILES, TriggerTiming.BEFORE,
                      [TriggerEvent.UPDATE], update_updated_at_column, security_definer=False)


def _drop_core_tables(db: Database) -> None:
    db.drop_trigger(AUTH_USERS, "on_auth_user_created")
    for table in (BANK_ACCOUNTS, TRANSACTIONS, PROFILES):
        db.drop_table(table)


# v002

def _apply_security_fixes(db: Database) -> None:
    # Functions now run as security definer
    db.drop_trigger(PROFILES, "update_profiles_updated_at")
    db.create_trigger("update_profiles_updated_at", PROFILES, TriggerTiming.BEFORE,
                      [TriggerEvent.UPDATE], update_updated_at_column)
    
    db.create_policy("Users can delete their own transactions", TRANSACTIONS, Command.DELETE,
                     using=owner_is_caller("user_id"))
    db.create_policy("Users can delete their own bank accounts", BANK_ACCOUNTS, Command.DELETE,
                     using=owner_is_caller("user_id"))
    db.create_policy("Users can update their own transactions", TRANSACTIONS, Command.UPDATE,
                     using=owner_is_caller("user_id"))
    
    db.create_table(audit_logs_table())
    db.enable_row_level_security(AUDIT_LOGS)
    db.create_policy("Users can view their own audit logs", AUDIT_LOGS, Command.SELECT,
                     using=owner_is_caller("user_id"))
    db.create_policy("System can insert audit logs", AUDIT_LOGS, Command.INSERT,
                     with_check=allow_all)
    
    db.create_trigger("log_profile_balance_changes", PROFILES, TriggerTiming.AFTER,
                      [TriggerEvent.UPDATE], log_balance_change)
    db.create_trigger("validate_transaction_amount_trigger", TRANSACTIONS, TriggerTiming.BEFORE,
                      [TriggerEvent.INSERT, TriggerEvent.UPDATE], validate_transaction_amount)


def _revert_security_fixes(db: Database) -> None:
    db.drop_trigger(TRANSACTIONS, "validate_transaction_amount_trigger")
    db.drop_trigger(PROFILES, "log_profile_balance_changes")
    db.drop_table(AUDIT_LOGS)
    
    db.drop_policy(TRANSACTIONS, "Users can update their own transactions")
    db.drop_policy(BANK_ACCOUNTS, "Users can delete their own bank accounts")
    db.drop_policy(TRANSACTIONS, "Users can delete their own transactions")
    
    db.drop_trigger(PROFILES, "update_profiles_updated_at")
    db.create_trigger("update_profiles_updated_at", PROFILES, TriggerTiming.BEFORE,
                      [TriggerEvent.UPDATE], update_updated_at_column, security_definer=False)


class MigrationManager:
    """Manages database migrations"""
    
    def __init__(self, database: Database):
        self.database = database
        self.storage = database.storage
        self.migrations: List[Migration] = []
        self._migration_table = "schema_migrations"
        self._loaded: set = set()
        self._init_migrations()
    
    def _init_migrations(self) -> None:
        """Initialize built-in migrations"""
        self.add_migration(1, "Create user profiles, transactions and bank accounts",
                           _create_core_tables, _drop_core_tables)
        self.add_migration(2, "Critical database security fixes",
                           _apply_security_fixes, _revert_security_fixes)
    
    def add_migration(self, version: int, name: str, up: MigrationStep,
                      down: Optional[MigrationStep] = None) -> None:
        """Add a migration to the manager"""
        if any(m.version == version for m in self.migrations):
            raise ValueError(f"Migration v{version:03d} already defined")
        self.migrations.append(Migration(version, name, up, down))
        # Keep migrations sorted by version
        self.migrations.sort(key=lambda m: m.version)
    
    def get_applied_migrations(self) -> List[Dict[str, Any]]:
        """Get list of applied migration records, oldest version first"""
        records = self.storage.load_all(self._migration_table)
        return sorted(records, key=lambda r: r["version"])
    
    def get_current_version(self) -> int:
        """Get the current database version"""
        versions = [r["version"] for r in self.get_applied_migrations()]
        return max(versions) if versions else 0
    
    def get_pending_migrations(self, target_version: Optional[int] = None) -> List[Migration]:
        """Get list of pending migrations"""
        current_version = self.get_current_version()
        max_version = target_version or max((m.version for m in self.migrations), default=0)
        
        return [
            m for m in self.migrations
            if current_version < m.version <= max_version
        ]
    
    def load_applied(self) -> List[Migration]:
        """
        Replay migrations already recorded in storage into the catalog.
        
        Runs each recorded version's ``up`` step once per process and writes
        nothing to ``schema_migrations``.
        """
        replayed = []
        for record in self.get_applied_migrations():
            version = record["version"]
            if version in self._loaded:
                continue
            migration = self._get(version)
            if migration is None:
                logger.warning(f"Applied migration v{version} not found in definitions")
                continue
            migration.up(self.database)
            self._loaded.add(version)
            replayed.append(migration)
        
        if replayed:
            logger.info(f"Loaded {len(replayed)} applied migrations into the catalog")
        return replayed
    
    def migrate_up(self, target_version: Optional[int] = None) -> List[Migration]:
        """Apply pending migrations up to target version"""
        self.load_applied()
        pending = self.get_pending_migrations(target_version)
        applied = []
        
        if not pending:
            logger.info("No pending migrations to apply")
            return applied
        
        logger.info(f"Applying {len(pending)} pending migrations")
        
        for migration in pending:
            try:
                logger.info(f"Applying {migration}")
                
                with self.database.transaction():
                    migration.up(self.database)
                    
                    migration_record = {
                        "version": migration.version,
                        "name": migration.name,
                        "applied_at": datetime.now(timezone.utc).isoformat(),
                        "checksum": migration.checksum
                    }
                    self.storage.save(
                        self._migration_table,
                        f"v{migration.version:03d}",
                        migration_record
                    )
                
                self._loaded.add(migration.version)
                migration.applied_at = datetime.now(timezone.utc)
                applied.append(migration)
                logger.info(f"Successfully applied {migration}")
                
            except Exception as e:
                logger.error(f"Failed to apply {migration}: {e}")
                raise RuntimeError(f"Migration failed: {migration}") from e
        
        logger.info(f"Successfully applied {len(applied)} migrations")
        return applied
    
    def migrate_down(self, target_version: int) -> List[Migration]:
        """Rollback migrations down to target version"""
        self.load_applied()
        current_version = self.get_current_version()
        
        if target_version >= current_version:
            logger.info("Target version is not lower than current version")
            return []
        
        rollback_migrations = [
            m for m in reversed(self.migrations)
            if target_version < m.version <= current_version
        ]
        rolledback = []
        
        logger.info(f"Rolling back {len(rollback_migrations)} migrations")
        
        for migration in rollback_migrations:
            if migration.down is None:
                raise RuntimeError(f"No rollback defined for {migration}")
            try:
                logger.info(f"Rolling back {migration}")
                
                with self.database.transaction():
                    migration.down(self.database)
                    self.storage.delete(self._migration_table, f"v{migration.version:03d}")
                
                self._loaded.discard(migration.version)
                rolledback.append(migration)
                logger.info(f"Successfully rolled back {migration}")
                
            except Exception as e:
                logger.error(f"Failed to rollback {migration}: {e}")
                raise RuntimeError(f"Rollback failed: {migration}") from e
        
        logger.info(f"Successfully rolled back {len(rolledback)} migrations")
        return rolledback
    
    def validate_migrations(self) -> bool:
        """Validate that applied migrations match expected checksums"""
        for record in self.get_applied_migrations():
            version = record["version"]
            migration = self._get(version)
            if migration is None:
                logger.warning(f"Applied migration v{version} not found in definitions")
                continue
            
            if record.get("checksum") != migration.checksum:
                logger.error(
                    f"Checksum mismatch for v{version}: expected {migration.checksum}, "
                    f"got {record.get('checksum')}"
                )
                return False
        
        logger.info("All applied migrations validated successfully")
        return True
    
    def get_migration_status(self) -> Dict[str, Any]:
        """Get detailed migration status"""
        pending = self.get_pending_migrations()
        applied = self.get_applied_migrations()
        
        return {
            "current_version": self.get_current_version(),
            "latest_version": max((m.version for m in self.migrations), default=0),
            "pending_count": len(pending),
            "applied_count": len(applied),
            "pending_migrations": [
                {"version": m.version, "name": m.name} for m in pending
            ],
            "needs_migration": len(pending) > 0
        }
    
    def _get(self, version: int) -> Optional[Migration]:
        return next((m for m in self.migrations if m.version == version), None)
