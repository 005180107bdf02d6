"""
Fee & Bonus Calculator

Pure functions deriving withdrawal fees, parking incentives and pension
vesting bonuses from a vault snapshot and the current date. Nothing here
reads or writes storage.
"""

from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union

from .errors import ValidationError
from .money import Money
from .vaults import Vault


WITHDRAWAL_FEE_RATE = Decimal('0.005')       # 0.5% of the withdrawn amount
PARKING_INCENTIVE_RATE = Decimal('0.0025')   # 0.25% of the balance
VESTING_BONUS_RATE = Decimal('0.02')         # 2% of the pension balance
VESTING_PERIOD_YEARS = 10
PENSION_LOCK_YEARS = 1
RETIREMENT_MIN_YEARS_AHEAD = 10
RETIREMENT_MAX_YEARS_AHEAD = 80


def add_years(moment: datetime, years: int) -> datetime:
    """
    Move a timestamp by whole calendar years

    29 February lands on 28 February when the target year is not a leap year.
    """
    try:
        return moment.replace(year=moment.year + years)
    except ValueError:
        return moment.replace(year=moment.year + years, day=28)


def withdrawal_fee(amount: Money, rate: Decimal = WITHDRAWAL_FEE_RATE) -> Money:
    """Fee charged on a general or emergency withdrawal, rounded to cents"""
    return amount * rate


def parking_incentive(balance: Money, rate: Decimal = PARKING_INCENTIVE_RATE) -> Money:
    """
    One-off incentive credited on the current balance

    Raises:
        ValidationError: If the balance is not positive
    """
    if not balance.is_positive():
        raise ValidationError("Parking incentive requires a positive balance")
    return balance * rate


def is_withdrawal_unlocked(vault: Vault, now: datetime) -> bool:
    """True when the vault carries no lock or the lock date has passed"""
    return vault.locked_until is None or now >= vault.locked_until


def vesting_complete(
    vault: Vault,
    now: datetime,
    vesting_years: int = VESTING_PERIOD_YEARS
) -> bool:
    if vault.vesting_start_date is None:
        return False
    return now >= add_years(vault.vesting_start_date, vesting_years)


def target_year_reached(pension_target_year: Optional[int], now: datetime) -> bool:
    if pension_target_year is None:
        return False
    return pension_target_year <= now.year


def vesting_bonus(
    vault: Vault,
    pension_target_year: Optional[int],
    now: datetime,
    rate: Decimal = VESTING_BONUS_RATE,
    vesting_years: int = VESTING_PERIOD_YEARS
) -> Money:
    """
    Bonus paid out with a full pension withdrawal

    Applies only after the vesting period has elapsed since the first
    deposit and once the owner's retirement target year has arrived.
    """
    if vesting_complete(vault, now, vesting_years) and target_year_reached(pension_target_year, now):
        return vault.balance * rate
    return Money.zero()


def validate_retirement_year(
    year: Union[int, str],
    now: datetime,
    min_years_ahead: int = RETIREMENT_MIN_YEARS_AHEAD,
    max_years_ahead: int = RETIREMENT_MAX_YEARS_AHEAD
) -> int:
    """
    Check a retirement target year against the allowed window

    Returns:
        The year as int

    Raises:
        ValidationError: If the year is not a number or falls outside
            [current year + min_years_ahead, current year + max_years_ahead]
    """
    if isinstance(year, bool):
        raise ValidationError("Please enter a valid year")
    try:
        year_num = int(year)
    except (TypeError, ValueError):
        raise ValidationError("Please enter a valid year")

    current_year = now.year
    if year_num < current_year + min_years_ahead:
        raise ValidationError(
            f"Retirement year must be at least {current_year + min_years_ahead} "
            f"(minimum {min_years_ahead} years from now)"
        )
    if year_num > current_year + max_years_ahead:
        raise ValidationError("Retirement year seems too far in the future")

    return year_num


def goal_progress(saved: Money, target: Money) -> int:
    """Percentage of a goal reached, rounded half-up and capped at 100"""
    if target.is_zero():
        return 0
    percentage = (saved.amount / target.amount * Decimal('100')).quantize(
        Decimal('1'), rounding=ROUND_HALF_UP
    )
    return min(int(percentage), 100)
