"""
Vault System

Wires storage, profiles, ledger, goals and transfers together and owns the
account lifecycle: opening an account creates the profile and its three
vaults in one unit, closing it removes them once every vault is empty.
"""

from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from .config import VaultLedgerConfig, get_config
from .goals import GoalTracker
from .ledger import VaultLedger
from .locking import RowLockManager
from .logging_config import get_logger, log_action
from .profiles import Profile, ProfileStore
from .storage import StorageInterface, create_storage
from .transaction_log import TransactionLog
from .transfers import TransferCoordinator
from .vaults import Vault
from .vesting import PensionStatus, pension_status


class VaultSystem:
    """All ledger components sharing one storage backend and lock manager"""

    def __init__(
        self,
        storage: Optional[StorageInterface] = None,
        config: Optional[VaultLedgerConfig] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.config = config or get_config()
        self.storage = storage or create_storage(
            self.config.storage_backend, self.config.database_path
        )
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.lock_manager = RowLockManager()

        self.profiles = ProfileStore(self.storage, self.config, self.clock)
        self.transaction_log = TransactionLog(self.storage)
        self.ledger = VaultLedger(
            self.storage, self.profiles, self.config, self.clock,
            self.lock_manager, self.transaction_log
        )
        self.goals = GoalTracker(self.storage, self.lock_manager, self.clock)
        self.transfers = TransferCoordinator(self.ledger, self.goals, self.profiles)
        self.logger = get_logger("vault_ledger.system")

    def open_account(
        self,
        display_name: str,
        email: str,
        pension_target_year: Optional[int] = None
    ) -> Tuple[Profile, List[Vault]]:
        """
        Register an owner with one vault of each type

        Returns:
            The new profile and its vaults (general, emergency, pension)
        """
        with self.storage.atomic():
            profile = self.profiles.create_profile(display_name, email)
            vaults = self.ledger.open_vaults(profile.id)
            if pension_target_year is not None:
                profile = self.profiles.set_pension_target_year(profile.id, pension_target_year)

        log_action(
            self.logger, "info", "Account opened",
            owner_id=profile.id, action="open_account", resource="profile",
            extra={"public_id": profile.public_id}
        )
        return profile, vaults

    def close_account(self, owner_id: str) -> None:
        """
        Remove an owner's vaults, goals and profile

        The transaction log is retained. Every vault must be empty.
        """
        self.profiles.get_profile(owner_id)

        def remove_owner_records() -> None:
            self.goals.delete_owner_goals(owner_id)
            self.profiles.delete_profile(owner_id)

        self.ledger.close_vaults(owner_id, also=remove_owner_records)

        log_action(
            self.logger, "info", "Account closed",
            owner_id=owner_id, action="close_account", resource="profile"
        )

    def pension_status(self, owner_id: str) -> PensionStatus:
        vault = self.ledger.get_owner_vault(owner_id, "pension")
        profile = self.profiles.get_profile(owner_id)
        return pension_status(
            vault, profile.pension_target_year, self.clock(),
            self.config.vesting_bonus_rate, self.config.vesting_period_years
        )

    def set_pension_target_year(self, owner_id: str, year: int) -> Profile:
        return self.profiles.set_pension_target_year(owner_id, year)

    def close(self) -> None:
        self.storage.close()
