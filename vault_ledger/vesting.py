"""
Pension Vesting & Lock State Machine

A pension vault moves UNFUNDED -> LOCKED -> ELIGIBLE and back to UNFUNDED
on a full withdrawal. The lock starts with the first deposit into an
unfunded vault; a full withdrawal forfeits accrued vesting.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from .calculator import (
    PENSION_LOCK_YEARS, VESTING_BONUS_RATE, VESTING_PERIOD_YEARS,
    add_years, is_withdrawal_unlocked, target_year_reached, vesting_bonus,
    vesting_complete,
)
from .money import Money
from .vaults import Vault

DAYS_PER_YEAR = Decimal('365.25')


class VestingState(Enum):
    UNFUNDED = "unfunded"   # No balance, no lock
    LOCKED = "locked"       # Funded, lock period running
    ELIGIBLE = "eligible"   # Funded, full withdrawal allowed


def vesting_state(vault: Vault, now: datetime) -> VestingState:
    if vault.balance.is_zero() and vault.locked_until is None:
        return VestingState.UNFUNDED
    if not is_withdrawal_unlocked(vault, now):
        return VestingState.LOCKED
    if vault.balance.is_zero():
        return VestingState.UNFUNDED
    return VestingState.ELIGIBLE


def is_first_deposit(vault: Vault) -> bool:
    """A deposit into an unfunded pension vault restarts vesting"""
    return vault.vesting_start_date is None or vault.balance.is_zero()


def start_lock(vault: Vault, now: datetime, lock_years: int = PENSION_LOCK_YEARS) -> None:
    """Record the first deposit: vesting starts now, withdrawals lock for lock_years"""
    vault.vesting_start_date = now
    vault.locked_until = add_years(now, lock_years)


def reset(vault: Vault) -> None:
    """Return the vault to UNFUNDED after a full withdrawal"""
    vault.vesting_start_date = None
    vault.locked_until = None


def years_vested(vault: Vault, now: datetime) -> Decimal:
    """Elapsed vesting time in years, one decimal place"""
    if vault.vesting_start_date is None:
        return Decimal('0.0')
    days = Decimal((now - vault.vesting_start_date).days)
    return max(days / DAYS_PER_YEAR, Decimal('0')).quantize(Decimal('0.1'))


@dataclass
class PensionStatus:
    """Snapshot of a pension vault for display and withdrawal checks"""
    state: VestingState
    balance: Money
    vesting_start_date: Optional[datetime]
    locked_until: Optional[datetime]
    can_withdraw: bool
    years_vested: Decimal
    vesting_complete: bool
    target_year: Optional[int]
    target_year_reached: bool
    bonus_eligible: bool
    bonus: Money
    total_withdrawable: Money

    def to_dict(self) -> Dict[str, Any]:
        return {
            'state': self.state.value,
            'balance': str(self.balance.amount),
            'vesting_start_date': self.vesting_start_date.isoformat() if self.vesting_start_date else None,
            'locked_until': self.locked_until.isoformat() if self.locked_until else None,
            'can_withdraw': self.can_withdraw,
            'years_vested': str(self.years_vested),
            'vesting_complete': self.vesting_complete,
            'target_year': self.target_year,
            'target_year_reached': self.target_year_reached,
            'bonus_eligible': self.bonus_eligible,
            'bonus': str(self.bonus.amount),
            'total_withdrawable': str(self.total_withdrawable.amount),
        }


def pension_status(
    vault: Vault,
    target_year: Optional[int],
    now: datetime,
    rate: Decimal = VESTING_BONUS_RATE,
    vesting_years: int = VESTING_PERIOD_YEARS
) -> PensionStatus:
    state = vesting_state(vault, now)
    bonus = vesting_bonus(vault, target_year, now, rate, vesting_years)
    complete = vesting_complete(vault, now, vesting_years)
    reached = target_year_reached(target_year, now)

    return PensionStatus(
        state=state,
        balance=vault.balance,
        vesting_start_date=vault.vesting_start_date,
        locked_until=vault.locked_until,
        can_withdraw=state is VestingState.ELIGIBLE,
        years_vested=years_vested(vault, now),
        vesting_complete=complete,
        target_year=target_year,
        target_year_reached=reached,
        bonus_eligible=complete and reached,
        bonus=bonus,
        total_withdrawable=vault.balance + bonus,
    )
