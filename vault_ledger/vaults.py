"""
Vault Records

The three vault kinds an owner holds and the stored vault record.
Balances are only ever changed through the ledger.
"""

from decimal import Decimal
from datetime import datetime
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union
from enum import Enum

from .errors import ValidationError
from .money import Money
from .storage import StorageRecord, parse_datetime


class VaultType(Enum):
    """Vault kinds; every owner holds exactly one of each"""
    GENERAL = "general"       # Micro-savings, source of transfers and goals
    EMERGENCY = "emergency"   # Fee-bearing safety net
    PENSION = "pension"       # Time-locked, full withdrawal only

    @property
    def display_name(self) -> str:
        return VAULT_DISPLAY_NAMES[self]

    @property
    def charges_withdrawal_fee(self) -> bool:
        if self is VaultType.GENERAL:
            return True
        if self is VaultType.EMERGENCY:
            return True
        if self is VaultType.PENSION:
            return False
        raise ValueError(f"Unhandled vault type: {self}")

    @property
    def allows_partial_withdrawal(self) -> bool:
        if self in (VaultType.GENERAL, VaultType.EMERGENCY):
            return True
        if self is VaultType.PENSION:
            return False
        raise ValueError(f"Unhandled vault type: {self}")


VAULT_DISPLAY_NAMES = {
    VaultType.GENERAL: "Micro-Savings Vault",
    VaultType.EMERGENCY: "Emergency Vault",
    VaultType.PENSION: "Pension Nest",
}


@dataclass
class Vault(StorageRecord):
    """
    Named balance bucket owned by one user

    log_sequence and log_head track the vault's last transaction so each
    append can extend the vault's hash chain.
    """
    owner_id: str
    vault_type: VaultType
    balance: Money
    opening_balance: Money
    vesting_start_date: Optional[datetime] = None
    locked_until: Optional[datetime] = None
    last_incentive_at: Optional[datetime] = None
    version: int = 0
    log_sequence: int = 0
    log_head: str = ""

    def __post_init__(self):
        if self.balance.is_negative():
            raise ValueError("Vault balance cannot be negative")

    @property
    def is_pension(self) -> bool:
        return self.vault_type is VaultType.PENSION

    @property
    def name(self) -> str:
        return self.vault_type.display_name


def vault_to_dict(vault: Vault) -> Dict[str, Any]:
    """Convert Vault to dictionary for storage"""
    return {
        'id': vault.id,
        'created_at': vault.created_at.isoformat(),
        'updated_at': vault.updated_at.isoformat(),
        'owner_id': vault.owner_id,
        'vault_type': vault.vault_type.value,
        'balance': str(vault.balance.amount),
        'opening_balance': str(vault.opening_balance.amount),
        'vesting_start_date': vault.vesting_start_date.isoformat() if vault.vesting_start_date else None,
        'locked_until': vault.locked_until.isoformat() if vault.locked_until else None,
        'last_incentive_at': vault.last_incentive_at.isoformat() if vault.last_incentive_at else None,
        'version': vault.version,
        'log_sequence': vault.log_sequence,
        'log_head': vault.log_head,
    }


def vault_from_dict(data: Dict[str, Any]) -> Vault:
    """Convert dictionary to Vault"""
    return Vault(
        id=data['id'],
        created_at=parse_datetime(data['created_at']),
        updated_at=parse_datetime(data['updated_at']),
        owner_id=data['owner_id'],
        vault_type=VaultType(data['vault_type']),
        balance=Money(Decimal(data['balance'])),
        opening_balance=Money(Decimal(data.get('opening_balance', '0.00'))),
        vesting_start_date=parse_datetime(data.get('vesting_start_date')),
        locked_until=parse_datetime(data.get('locked_until')),
        last_incentive_at=parse_datetime(data.get('last_incentive_at')),
        version=data.get('version', 0),
        log_sequence=data.get('log_sequence', 0),
        log_head=data.get('log_head', ''),
    )


def parse_vault_type(vault_type: Union[str, VaultType]) -> VaultType:
    """Accept a VaultType or its value, raising ValidationError otherwise"""
    if isinstance(vault_type, VaultType):
        return vault_type
    try:
        return VaultType(vault_type)
    except ValueError:
        raise ValidationError(f"Unknown vault type: {vault_type}")
