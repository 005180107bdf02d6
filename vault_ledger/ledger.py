"""
Vault Ledger Module

Owns the three vaults of every owner and applies every balance change:
deposits, fee-bearing withdrawals, full pension withdrawals with vesting
bonus, and parking incentives. Each operation runs as one atomic unit
(ordered row locks, then a storage transaction) and appends signed entries
to the transaction log so that for every vault

    balance == opening_balance + sum(transaction amounts)
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, TypeVar, Union

from .calculator import (
    is_withdrawal_unlocked, parking_incentive, vesting_bonus, withdrawal_fee,
)
from .config import VaultLedgerConfig, get_config
from .errors import (
    ConflictError, InsufficientFundsError, LockedError, NotFoundError,
    ValidationError, VaultLedgerError,
)
from .locking import RowLockManager, vault_key
from .logging_config import get_logger, log_action
from .money import Money, parse_amount
from .profiles import ProfileStore
from .storage import StorageInterface
from .transaction_log import Transaction, TransactionKind, TransactionLog
from .vaults import Vault, VaultType, parse_vault_type, vault_from_dict, vault_to_dict
from . import vesting


T = TypeVar('T')

VAULT_ORDER = [VaultType.GENERAL, VaultType.EMERGENCY, VaultType.PENSION]


class DepositMethod(Enum):
    """Funding channels offered when depositing"""
    EXCHANGE_PARTNERS = "exchange_partners"
    WALLET_TOPUP = "wallet_topup"

    @property
    def description_suffix(self) -> str:
        if self is DepositMethod.EXCHANGE_PARTNERS:
            return " via Money Exchange Partners"
        if self is DepositMethod.WALLET_TOPUP:
            return " via WealthNest Wallet Top Up"
        raise ValueError(f"Unhandled deposit method: {self}")


def _percent(rate: Decimal) -> str:
    return f"{(rate * 100).normalize():f}"


@dataclass
class LedgerReceipt:
    """Outcome of a committed ledger operation"""
    vault_id: str
    new_balance: Money
    transactions: List[Transaction]
    fee: Money = field(default_factory=Money.zero)
    bonus: Money = field(default_factory=Money.zero)
    incentive: Money = field(default_factory=Money.zero)
    payout: Money = field(default_factory=Money.zero)

    @property
    def transaction_ids(self) -> List[str]:
        return [txn.id for txn in self.transactions]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'vault_id': self.vault_id,
            'new_balance': str(self.new_balance.amount),
            'fee': str(self.fee.amount),
            'bonus': str(self.bonus.amount),
            'incentive': str(self.incentive.amount),
            'payout': str(self.payout.amount),
            'transaction_ids': self.transaction_ids,
        }


@dataclass
class Reconciliation:
    """Result of checking a vault against its transaction log"""
    vault_id: str
    balance: Money
    opening_balance: Money
    transaction_total: Money
    transaction_count: int
    chain_valid: bool

    @property
    def balanced(self) -> bool:
        return self.balance == self.opening_balance + self.transaction_total

    @property
    def ok(self) -> bool:
        return self.balanced and self.chain_valid


class VaultLedger:
    """
    Vault store and balance-changing operations

    Every public operation takes the authenticated owner id; vaults owned
    by someone else are reported exactly like missing ones.
    """

    def __init__(
        self,
        storage: StorageInterface,
        profiles: ProfileStore,
        config: Optional[VaultLedgerConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
        lock_manager: Optional[RowLockManager] = None,
        transaction_log: Optional[TransactionLog] = None
    ):
        self.storage = storage
        self.profiles = profiles
        self.config = config or get_config()
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.lock_manager = lock_manager or RowLockManager()
        self.log = transaction_log or TransactionLog(storage)
        self.vaults_table = "vaults"
        self.logger = get_logger("vault_ledger.ledger")

    # ------------------------------------------------------------------
    # Atomic units
    # ------------------------------------------------------------------

    def run_atomic(
        self,
        keys: Iterable[str],
        operation: Callable[[], T],
        action: str = "ledger_operation",
        owner_id: Optional[str] = None
    ) -> T:
        """
        Run operation under the row locks for keys and one storage transaction

        A ConflictError is retried (config.conflict_retries times) with the
        operation re-reading and re-validating everything. Any other error
        rolls the unit back and propagates.
        """
        keys = list(keys)
        attempts = 1 + max(0, self.config.conflict_retries)

        for attempt in range(1, attempts + 1):
            try:
                with self.lock_manager.hold(keys):
                    with self.storage.atomic():
                        return operation()
            except ConflictError as e:
                log_action(
                    self.logger, "warning", f"Conflict during {action}: {e.message}",
                    owner_id=owner_id, action=action, resource="vault",
                    extra={"attempt": attempt, "max_attempts": attempts}
                )
                if attempt >= attempts:
                    raise
            except VaultLedgerError as e:
                log_action(
                    self.logger, "warning", f"{action} rejected: {e.message}",
                    owner_id=owner_id, action=action, resource="vault",
                    extra={"error": e.code}
                )
                raise

        raise ConflictError(f"{action} could not be completed")

    def load_vault_for_update(self, owner_id: str, vault_id: str) -> Vault:
        """Read a vault inside a unit, hiding vaults of other owners"""
        data = self.storage.load(self.vaults_table, vault_id)
        if not data or data.get('owner_id') != owner_id:
            raise NotFoundError("Vault not found")
        return vault_from_dict(data)

    def save_vault(self, vault: Vault, now: datetime) -> None:
        """
        Write a vault back, checking nobody else changed it since it was read

        Raises:
            ConflictError: If the stored version moved on
        """
        stored = self.storage.load(self.vaults_table, vault.id)
        stored_version = stored.get('version', 0) if stored else None
        if stored_version != vault.version:
            raise ConflictError("Vault was modified by another operation")

        vault.version += 1
        vault.updated_at = now
        self.storage.save(self.vaults_table, vault.id, vault_to_dict(vault))

    # ------------------------------------------------------------------
    # Balance effects (call only inside run_atomic)
    # ------------------------------------------------------------------

    def apply_credit(
        self,
        vault: Vault,
        amount: Money,
        description: str,
        kind: TransactionKind,
        now: datetime,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Transaction:
        vault.balance = vault.balance + amount
        return self.log.append(vault, amount, description, kind, now, metadata)

    def apply_debit(
        self,
        vault: Vault,
        amount: Money,
        description: str,
        kind: TransactionKind,
        now: datetime,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Transaction:
        if amount > vault.balance:
            raise InsufficientFundsError(
                f"Insufficient funds in {vault.name}. "
                f"Requested {amount}, available {vault.balance}",
                requested=amount.amount,
                available=vault.balance.amount,
            )
        vault.balance = vault.balance - amount
        return self.log.append(vault, -amount, description, kind, now, metadata)

    def apply_deposit_effect(
        self,
        vault: Vault,
        amount: Money,
        description: str,
        kind: TransactionKind,
        now: datetime,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Transaction:
        """
        Credit a vault the way a deposit does

        Pension vaults require the owner's retirement target year and start
        their lock on the first deposit into an unfunded vault.
        """
        if vault.is_pension:
            profile = self.profiles.get_profile(vault.owner_id)
            if profile.pension_target_year is None:
                raise ValidationError(
                    "Please set your retirement target year before depositing to Pension Nest"
                )
            if vesting.is_first_deposit(vault):
                vesting.start_lock(vault, now, self.config.pension_lock_years)

        return self.apply_credit(vault, amount, description, kind, now, metadata)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def deposit(
        self,
        owner_id: str,
        vault_id: str,
        amount: Union[str, int, Decimal, Money],
        note: Optional[str] = None,
        method: Optional[Union[str, DepositMethod]] = None
    ) -> LedgerReceipt:
        """
        Add funds to one of the owner's vaults

        Args:
            owner_id: Authenticated owner
            vault_id: Target vault
            amount: Positive amount up to the configured deposit cap
            note: Optional free text recorded with the transaction
            method: Funding channel, shown in the description

        Returns:
            LedgerReceipt with the single credit transaction
        """
        amount = parse_amount(amount)
        if amount.amount > self.config.max_deposit_amount:
            raise ValidationError(
                f"Maximum deposit amount is {Money(self.config.max_deposit_amount)}"
            )
        deposit_method = self._parse_method(method)

        def operation() -> LedgerReceipt:
            now = self.clock()
            vault = self.load_vault_for_update(owner_id, vault_id)

            description = f"Deposit to {vault.name}"
            if deposit_method:
                description += deposit_method.description_suffix
            if note and note.strip():
                description += f" ({note.strip()})"

            txn = self.apply_deposit_effect(
                vault, amount, description, TransactionKind.DEPOSIT, now,
                {'method': deposit_method, 'note': note}
            )
            self.save_vault(vault, now)
            return LedgerReceipt(vault.id, vault.balance, [txn])

        receipt = self.run_atomic([vault_key(vault_id)], operation, "deposit", owner_id)

        log_action(
            self.logger, "info", f"Deposit of {amount} completed",
            owner_id=owner_id, action="deposit", resource="vault",
            vault_id=vault_id, amount=amount,
            extra={"new_balance": str(receipt.new_balance.amount)}
        )
        return receipt

    def withdraw(
        self,
        owner_id: str,
        vault_id: str,
        amount: Union[str, int, Decimal, Money]
    ) -> LedgerReceipt:
        """
        Withdraw from a general or emergency vault, charging the withdrawal fee

        The amount and its fee are debited as two transactions in the same
        unit; a fee that rounds to zero is not recorded.

        Raises:
            ValidationError: For pension vaults (use withdraw_pension_full)
            InsufficientFundsError: If amount plus fee exceeds the balance
        """
        amount = parse_amount(amount)

        def operation() -> LedgerReceipt:
            now = self.clock()
            vault = self.load_vault_for_update(owner_id, vault_id)

            if not vault.vault_type.allows_partial_withdrawal:
                raise ValidationError(
                    f"Partial withdrawals are not allowed from {vault.name}; "
                    f"withdraw the full balance once unlocked"
                )

            fee = Money.zero()
            if vault.vault_type.charges_withdrawal_fee:
                fee = withdrawal_fee(amount, self.config.withdrawal_fee_rate)
            total = amount + fee

            if total > vault.balance:
                raise InsufficientFundsError(
                    f"Insufficient funds. Withdrawal of {amount} plus {fee} fee "
                    f"requires {total}, available balance is {vault.balance}",
                    requested=amount.amount,
                    available=vault.balance.amount,
                    fee=fee.amount,
                )

            txns = [self.apply_debit(
                vault, amount, f"Withdrawal from {vault.name}",
                TransactionKind.WITHDRAWAL, now
            )]
            if fee.is_positive():
                txns.append(self.apply_debit(
                    vault, fee, f"{vault.name} withdrawal fee",
                    TransactionKind.WITHDRAWAL_FEE, now,
                    {'withdrawal_amount': amount, 'rate': self.config.withdrawal_fee_rate}
                ))

            self.save_vault(vault, now)
            return LedgerReceipt(vault.id, vault.balance, txns, fee=fee, payout=amount)

        receipt = self.run_atomic([vault_key(vault_id)], operation, "withdraw", owner_id)

        log_action(
            self.logger, "info", f"Withdrawal of {amount} completed",
            owner_id=owner_id, action="withdraw", resource="vault",
            vault_id=vault_id, amount=amount,
            extra={
                "fee": str(receipt.fee.amount),
                "new_balance": str(receipt.new_balance.amount),
            }
        )
        return receipt

    def withdraw_pension_full(self, owner_id: str, vault_id: str) -> LedgerReceipt:
        """
        Pay out the whole pension balance plus any vesting bonus

        The bonus is credited and paid out in the same unit, so the log
        reads +bonus, -balance, -bonus and the vault ends at zero with its
        lock and vesting dates cleared.

        Raises:
            LockedError: Before the lock period ends
            ValidationError: If the vault is not a pension vault or is empty
        """
        def operation() -> LedgerReceipt:
            now = self.clock()
            vault = self.load_vault_for_update(owner_id, vault_id)

            if not vault.is_pension:
                raise ValidationError("Full withdrawal is only available for Pension Nest")
            if not is_withdrawal_unlocked(vault, now):
                raise LockedError(
                    f"Pension Nest is locked until {vault.locked_until:%B %d, %Y}",
                    unlock_date=vault.locked_until,
                )
            if not vault.balance.is_positive():
                raise ValidationError("Pension Nest has no balance to withdraw")

            profile = self.profiles.get_profile(owner_id)
            bonus = vesting_bonus(
                vault, profile.pension_target_year, now,
                self.config.vesting_bonus_rate, self.config.vesting_period_years
            )
            balance = vault.balance

            txns = []
            if bonus.is_positive():
                txns.append(self.apply_credit(
                    vault, bonus,
                    f"Pension Nest {self.config.vesting_period_years}-year vesting bonus "
                    f"({_percent(self.config.vesting_bonus_rate)}%)",
                    TransactionKind.VESTING_BONUS_CREDIT, now,
                    {'rate': self.config.vesting_bonus_rate}
                ))
            txns.append(self.apply_debit(
                vault, balance, "Pension Nest withdrawal",
                TransactionKind.PENSION_WITHDRAWAL, now
            ))
            if bonus.is_positive():
                txns.append(self.apply_debit(
                    vault, bonus, "Pension Nest vesting bonus payout",
                    TransactionKind.VESTING_BONUS_PAYOUT, now
                ))

            vesting.reset(vault)
            self.save_vault(vault, now)
            return LedgerReceipt(
                vault.id, vault.balance, txns, bonus=bonus, payout=balance + bonus
            )

        receipt = self.run_atomic(
            [vault_key(vault_id)], operation, "withdraw_pension_full", owner_id
        )

        log_action(
            self.logger, "info", f"Pension withdrawal of {receipt.payout} completed",
            owner_id=owner_id, action="withdraw_pension_full", resource="vault",
            vault_id=vault_id, amount=receipt.payout,
            extra={"bonus": str(receipt.bonus.amount)}
        )
        return receipt

    def apply_parking_incentive(self, owner_id: str, vault_id: str) -> LedgerReceipt:
        """
        Credit the parking incentive on a general or emergency vault balance

        With parking_incentive_cooldown_days > 0 the incentive can be applied
        once per cooldown window.
        """
        def operation() -> LedgerReceipt:
            now = self.clock()
            vault = self.load_vault_for_update(owner_id, vault_id)

            if vault.is_pension:
                raise ValidationError("Parking incentive is not available for Pension Nest")

            cooldown = self.config.parking_incentive_cooldown_days
            if cooldown > 0 and vault.last_incentive_at is not None:
                next_eligible = vault.last_incentive_at + timedelta(days=cooldown)
                if now < next_eligible:
                    raise ValidationError(
                        f"Parking incentive already applied; next eligible on {next_eligible:%B %d, %Y}"
                    )

            incentive = parking_incentive(vault.balance, self.config.parking_incentive_rate)
            if not incentive.is_positive():
                raise ValidationError("Balance is too small to earn a parking incentive")

            txn = self.apply_credit(
                vault, incentive,
                f"{vault.name} parking incentive ({_percent(self.config.parking_incentive_rate)}%)",
                TransactionKind.PARKING_INCENTIVE, now,
                {'rate': self.config.parking_incentive_rate}
            )
            vault.last_incentive_at = now
            self.save_vault(vault, now)
            return LedgerReceipt(vault.id, vault.balance, [txn], incentive=incentive)

        receipt = self.run_atomic(
            [vault_key(vault_id)], operation, "apply_parking_incentive", owner_id
        )

        log_action(
            self.logger, "info", f"Parking incentive of {receipt.incentive} applied",
            owner_id=owner_id, action="apply_parking_incentive", resource="vault",
            vault_id=vault_id, amount=receipt.incentive,
            extra={"new_balance": str(receipt.new_balance.amount)}
        )
        return receipt

    # ------------------------------------------------------------------
    # Vault lifecycle and queries
    # ------------------------------------------------------------------

    def open_vaults(self, owner_id: str) -> List[Vault]:
        """Create the owner's general, emergency and pension vaults"""
        with self.storage.atomic():
            if self.storage.find(self.vaults_table, {'owner_id': owner_id}):
                raise ValidationError("Vaults already exist for this owner")

            now = self.clock()
            vaults = []
            for vault_type in VAULT_ORDER:
                vault = Vault(
                    id=str(uuid.uuid4()),
                    created_at=now,
                    updated_at=now,
                    owner_id=owner_id,
                    vault_type=vault_type,
                    balance=Money.zero(),
                    opening_balance=Money.zero(),
                )
                self.storage.save(self.vaults_table, vault.id, vault_to_dict(vault))
                vaults.append(vault)

        log_action(
            self.logger, "info", "Vaults opened",
            owner_id=owner_id, action="open_vaults", resource="vault",
            extra={"vault_ids": [v.id for v in vaults]}
        )
        return vaults

    def get_vault(self, owner_id: str, vault_id: str) -> Vault:
        return self.load_vault_for_update(owner_id, vault_id)

    def get_owner_vault(self, owner_id: str, vault_type: Union[str, VaultType]) -> Vault:
        vault_type = parse_vault_type(vault_type)
        rows = self.storage.find(
            self.vaults_table, {'owner_id': owner_id, 'vault_type': vault_type.value}
        )
        if not rows:
            raise NotFoundError("Vault not found")
        return vault_from_dict(rows[0])

    def list_vaults(self, owner_id: str) -> List[Vault]:
        rows = self.storage.find(self.vaults_table, {'owner_id': owner_id})
        vaults = [vault_from_dict(row) for row in rows]
        vaults.sort(key=lambda v: VAULT_ORDER.index(v.vault_type))
        return vaults

    def total_balance(self, owner_id: str) -> Money:
        total = Money.zero()
        for vault in self.list_vaults(owner_id):
            total = total + vault.balance
        return total

    def list_transactions(
        self,
        owner_id: str,
        vault_id: Optional[str] = None,
        limit: Optional[int] = None
    ) -> List[Transaction]:
        """Owner's transactions newest first, optionally for one vault"""
        if vault_id is not None:
            self.get_vault(owner_id, vault_id)
            txns = list(reversed(self.log.list_for_vault(vault_id)))
            return txns[:limit] if limit else txns
        return self.log.list_for_owner(owner_id, limit)

    def reconcile(self, vault_id: str) -> Reconciliation:
        """Compare a vault's balance with its log and verify the hash chain"""
        data = self.storage.load(self.vaults_table, vault_id)
        if not data:
            raise NotFoundError("Vault not found")
        vault = vault_from_dict(data)
        txns = self.log.list_for_vault(vault_id)

        total = Money.zero()
        for txn in txns:
            total = total + txn.amount

        result = Reconciliation(
            vault_id=vault_id,
            balance=vault.balance,
            opening_balance=vault.opening_balance,
            transaction_total=total,
            transaction_count=len(txns),
            chain_valid=self.log.verify_chain(vault),
        )
        if not result.ok:
            log_action(
                self.logger, "error", "Vault failed reconciliation",
                owner_id=vault.owner_id, action="reconcile", resource="vault",
                vault_id=vault_id,
                extra={
                    "balance": str(vault.balance.amount),
                    "transaction_total": str(total.amount),
                    "chain_valid": result.chain_valid,
                }
            )
        return result

    def close_vaults(self, owner_id: str, also: Optional[Callable[[], None]] = None) -> int:
        """
        Delete the owner's vaults; the transaction log is kept

        Args:
            owner_id: Owner whose vaults are closed
            also: Extra deletions to run inside the same unit

        Raises:
            ValidationError: If any vault still holds a balance
        """
        vault_ids = [v.id for v in self.list_vaults(owner_id)]

        def operation() -> int:
            vaults = [self.load_vault_for_update(owner_id, vid) for vid in vault_ids]
            non_empty = [v.name for v in vaults if not v.balance.is_zero()]
            if non_empty:
                raise ValidationError(
                    f"Withdraw all funds before closing: {', '.join(non_empty)}"
                )
            for vault in vaults:
                self.storage.delete(self.vaults_table, vault.id)
            if also is not None:
                also()
            return len(vaults)

        closed = self.run_atomic(
            [vault_key(vid) for vid in vault_ids], operation, "close_vaults", owner_id
        )

        log_action(
            self.logger, "info", "Vaults closed",
            owner_id=owner_id, action="close_vaults", resource="vault",
            extra={"closed": closed}
        )
        return closed

    @staticmethod
    def _parse_method(method: Optional[Union[str, DepositMethod]]) -> Optional[DepositMethod]:
        if method is None or isinstance(method, DepositMethod):
            return method
        try:
            return DepositMethod(method)
        except ValueError:
            raise ValidationError(f"Unknown deposit method: {method}")
