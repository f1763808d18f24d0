"""
System Wiring

Builds storage, the database catalog, migrations and the identity provider
from configuration.
"""

import logging
from typing import Optional

from .client import LuckyPayClient
from .config import LuckyPayConfig, get_config
from .database import Database
from .identity import IdentityProvider
from .migrations import MigrationManager
from .schema import AUDIT_LOGS, TRANSACTIONS
from .storage import StorageInterface, create_storage
from .triggers import TriggerTiming, TriggerEvent, enforce_single_pending_verification


logger = logging.getLogger(__name__)


class LuckyPaySystem:
    """LuckyPay backend with all components initialized"""
    
    def __init__(self, config: Optional[LuckyPayConfig] = None,
                 storage: Optional[StorageInterface] = None):
        self.config = config or get_config()
        self.storage = storage or create_storage(self.config.database_url)
        self.database = Database(self.storage)
        self.migrations = MigrationManager(self.database)
        
        if self.config.auto_migrate:
            self.migrations.migrate_up()
        else:
            self.migrations.load_applied()
        
        if self.migrations.get_current_version() >= 2:
            self._apply_policy_options()
        
        self.identity = IdentityProvider(self.database, self.config)
        logger.info(f"LuckyPay initialized at schema version {self.migrations.get_current_version()}")
    
    def _apply_policy_options(self) -> None:
        if self.config.restrict_audit_inserts:
            self.database.drop_policy(AUDIT_LOGS, "System can insert audit logs")
            logger.info("Client inserts into audit_logs disabled")
        
        if self.config.single_pending_verification:
            self.database.create_trigger(
                "enforce_single_pending_verification", TRANSACTIONS,
                TriggerTiming.BEFORE, [TriggerEvent.INSERT],
                enforce_single_pending_verification
            )
            logger.info("Single pending verification payment enforced")
    
    def client(self) -> LuckyPayClient:
        """A data-access client for one session"""
        return LuckyPayClient(self.database)
    
    def close(self) -> None:
        self.storage.close()
