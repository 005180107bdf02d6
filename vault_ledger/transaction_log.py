"""
Transaction Log Module

Append-only record of every balance change. Each vault's transactions form
a SHA-256 hash chain: an entry stores the hash of the vault's previous
entry, and the vault record keeps the position and hash of its latest one.
"""

import hashlib
import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from .money import Money
from .storage import StorageInterface, StorageRecord, parse_datetime
from .vaults import Vault


GENESIS_HASH = ""


class TransactionKind(Enum):
    """What produced a transaction"""
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    WITHDRAWAL_FEE = "withdrawal_fee"
    PENSION_WITHDRAWAL = "pension_withdrawal"
    VESTING_BONUS_CREDIT = "vesting_bonus_credit"
    VESTING_BONUS_PAYOUT = "vesting_bonus_payout"
    PARKING_INCENTIVE = "parking_incentive"
    TRANSFER_OUT = "transfer_out"
    TRANSFER_IN = "transfer_in"
    GOAL_ALLOCATION = "goal_allocation"


@dataclass
class Transaction(StorageRecord):
    """
    Immutable ledger entry with a signed amount

    Credits are positive, debits negative.
    """
    owner_id: str
    vault_id: str
    amount: Money
    description: str
    kind: TransactionKind
    sequence: int
    previous_hash: str
    current_hash: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)

    def calculate_hash(self) -> str:
        """SHA-256 over every field except current_hash"""
        hash_data = {
            'id': self.id,
            'created_at': self.created_at.isoformat(),
            'owner_id': self.owner_id,
            'vault_id': self.vault_id,
            'amount': str(self.amount.amount),
            'description': self.description,
            'kind': self.kind.value,
            'sequence': self.sequence,
            'previous_hash': self.previous_hash,
            'metadata': self.metadata,
        }
        json_data = json.dumps(hash_data, sort_keys=True, separators=(',', ':'))
        return hashlib.sha256(json_data.encode('utf-8')).hexdigest()

    def verify_hash(self) -> bool:
        return self.current_hash == self.calculate_hash()


def transaction_to_dict(txn: Transaction) -> Dict[str, Any]:
    """Convert Transaction to dictionary for storage"""
    return {
        'id': txn.id,
        'created_at': txn.created_at.isoformat(),
        'updated_at': txn.updated_at.isoformat(),
        'owner_id': txn.owner_id,
        'vault_id': txn.vault_id,
        'amount': str(txn.amount.amount),
        'description': txn.description,
        'kind': txn.kind.value,
        'sequence': txn.sequence,
        'previous_hash': txn.previous_hash,
        'current_hash': txn.current_hash,
        'metadata': txn.metadata,
    }


def transaction_from_dict(data: Dict[str, Any]) -> Transaction:
    """Convert dictionary to Transaction"""
    return Transaction(
        id=data['id'],
        created_at=parse_datetime(data['created_at']),
        updated_at=parse_datetime(data['updated_at']),
        owner_id=data['owner_id'],
        vault_id=data['vault_id'],
        amount=Money(Decimal(data['amount'])),
        description=data['description'],
        kind=TransactionKind(data['kind']),
        sequence=data['sequence'],
        previous_hash=data['previous_hash'],
        current_hash=data['current_hash'],
        metadata=data.get('metadata') or {},
    )


def _json_safe(metadata: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    def convert_value(value):
        if isinstance(value, Money):
            return str(value.amount)
        elif isinstance(value, Decimal):
            return str(value)
        elif isinstance(value, datetime):
            return value.isoformat()
        elif isinstance(value, Enum):
            return value.value
        elif isinstance(value, dict):
            return {k: convert_value(v) for k, v in value.items()}
        elif isinstance(value, list):
            return [convert_value(v) for v in value]
        return value

    return {k: convert_value(v) for k, v in (metadata or {}).items()}


class TransactionLog:
    """
    Append-only, per-vault hash-chained transaction store

    append() must run inside the caller's atomic unit while the vault is
    locked; it advances the vault's chain fields but leaves saving the
    vault to the caller.
    """

    def __init__(self, storage: StorageInterface, table_name: str = "vault_transactions"):
        self.storage = storage
        self.table_name = table_name

    def append(
        self,
        vault: Vault,
        amount: Money,
        description: str,
        kind: TransactionKind,
        now: datetime,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Transaction:
        """
        Record a signed amount against a vault

        Args:
            vault: Vault the amount was applied to (chain fields are updated)
            amount: Signed amount, never zero
            description: Human readable description
            kind: What produced the entry
            now: Timestamp of the enclosing operation
            metadata: Counterparty, goal or method details

        Returns:
            The stored Transaction
        """
        if amount.is_zero():
            raise ValueError("Transaction amount cannot be zero")

        txn = Transaction(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            owner_id=vault.owner_id,
            vault_id=vault.id,
            amount=amount,
            description=description,
            kind=kind,
            sequence=vault.log_sequence + 1,
            previous_hash=vault.log_head or GENESIS_HASH,
            metadata=_json_safe(metadata),
        )
        txn.current_hash = txn.calculate_hash()

        self.storage.save(self.table_name, txn.id, transaction_to_dict(txn))

        vault.log_sequence = txn.sequence
        vault.log_head = txn.current_hash
        return txn

    def get(self, transaction_id: str) -> Optional[Transaction]:
        data = self.storage.load(self.table_name, transaction_id)
        return transaction_from_dict(data) if data else None

    def list_for_vault(self, vault_id: str) -> List[Transaction]:
        """Entries for one vault in chain order"""
        rows = self.storage.find(self.table_name, {'vault_id': vault_id})
        txns = [transaction_from_dict(row) for row in rows]
        txns.sort(key=lambda t: t.sequence)
        return txns

    def list_for_owner(self, owner_id: str, limit: Optional[int] = None) -> List[Transaction]:
        """Entries across all of an owner's vaults, newest first"""
        rows = self.storage.find(self.table_name, {'owner_id': owner_id})
        indexed = list(enumerate(transaction_from_dict(row) for row in rows))
        # storage order breaks ties between entries written in the same instant
        indexed.sort(key=lambda pair: (pair[1].created_at, pair[0]), reverse=True)
        txns = [txn for _, txn in indexed]
        if limit:
            txns = txns[:limit]
        return txns

    def sum_for_vault(self, vault_id: str) -> Money:
        total = Money.zero()
        for txn in self.list_for_vault(vault_id):
            total = total + txn.amount
        return total

    def verify_chain(self, vault: Vault) -> bool:
        """
        Check a vault's chain end to end

        Every entry must hash to its stored value, link to its predecessor,
        carry consecutive sequence numbers, and the last entry must match the
        vault's recorded head.
        """
        previous_hash = GENESIS_HASH
        expected_sequence = 1

        for txn in self.list_for_vault(vault.id):
            if txn.sequence != expected_sequence:
                return False
            if txn.previous_hash != previous_hash:
                return False
            if not txn.verify_hash():
                return False
            previous_hash = txn.current_hash
            expected_sequence += 1

        return (
            expected_sequence - 1 == vault.log_sequence
            and previous_hash == (vault.log_head or GENESIS_HASH)
        )
