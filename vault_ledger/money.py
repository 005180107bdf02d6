"""
Money Module

Fixed-point monetary amounts for the vault ledger. Every balance, fee and
bonus is a Money value backed by Decimal and quantized to cents.
NEVER uses float for monetary values.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from dataclasses import dataclass
from typing import Union

from .errors import ValidationError

# Set global decimal context for financial precision
getcontext().prec = 28

CENT = Decimal('0.01')


def quantize_cents(value: Decimal) -> Decimal:
    """Round a Decimal to two places, half-up"""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class Money:
    """
    Immutable money representation with cent precision.
    All monetary values in the ledger MUST use this class.
    """
    amount: Decimal

    def __post_init__(self):
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, 'amount', Decimal(str(self.amount)))

        if not self.amount.is_finite():
            raise ValidationError("Amount must be a finite number")

        try:
            object.__setattr__(self, 'amount', quantize_cents(self.amount))
        except InvalidOperation:
            raise ValidationError("Amount is too large")

    @classmethod
    def zero(cls) -> 'Money':
        return cls(Decimal('0'))

    def __add__(self, other: 'Money') -> 'Money':
        return Money(self.amount + other.amount)

    def __sub__(self, other: 'Money') -> 'Money':
        return Money(self.amount - other.amount)

    def __mul__(self, multiplier: Decimal) -> 'Money':
        if not isinstance(multiplier, Decimal):
            multiplier = Decimal(str(multiplier))
        return Money(self.amount * multiplier)

    def __neg__(self) -> 'Money':
        return Money(-self.amount)

    def __abs__(self) -> 'Money':
        return Money(abs(self.amount))

    def __eq__(self, other) -> bool:
        if not isinstance(other, Money):
            return False
        return self.amount == other.amount

    def __hash__(self) -> int:
        return hash(self.amount)

    def __lt__(self, other: 'Money') -> bool:
        return self.amount < other.amount

    def __le__(self, other: 'Money') -> bool:
        return self.amount <= other.amount

    def __gt__(self, other: 'Money') -> bool:
        return self.amount > other.amount

    def __ge__(self, other: 'Money') -> bool:
        return self.amount >= other.amount

    def is_zero(self) -> bool:
        """Check if amount is exactly zero"""
        return self.amount == Decimal('0')

    def is_positive(self) -> bool:
        """Check if amount is positive"""
        return self.amount > Decimal('0')

    def is_negative(self) -> bool:
        """Check if amount is negative"""
        return self.amount < Decimal('0')

    def to_string(self) -> str:
        """Format for display, e.g. $1,234.50 or -$0.25"""
        sign = "-" if self.is_negative() else ""
        return f"{sign}${abs(self.amount):,.2f}"

    def __str__(self) -> str:
        return self.to_string()


def parse_amount(value: Union[str, int, Decimal, Money], field_name: str = "amount") -> Money:
    """
    Convert caller input into a strictly positive Money amount

    Args:
        value: Amount as string, int, Decimal or Money
        field_name: Name used in validation messages

    Returns:
        Money value greater than zero

    Raises:
        ValidationError: If the value is not a finite, positive amount with
            at most two decimal places
    """
    if isinstance(value, Money):
        decimal_value = value.amount
    elif isinstance(value, bool) or isinstance(value, float):
        # floats carry binary rounding error; callers must send strings
        raise ValidationError(f"{field_name} must be given as a decimal string, not {type(value).__name__}")
    elif isinstance(value, (int, Decimal)):
        decimal_value = Decimal(value)
    elif isinstance(value, str):
        try:
            decimal_value = Decimal(value.strip())
        except InvalidOperation:
            raise ValidationError(f"Please enter a valid {field_name}")
    else:
        raise ValidationError(f"Please enter a valid {field_name}")

    if not decimal_value.is_finite():
        raise ValidationError(f"{field_name} must be a finite number")

    if decimal_value <= Decimal('0'):
        raise ValidationError(f"Please enter a valid {field_name} greater than $0")

    try:
        cents = quantize_cents(decimal_value)
    except InvalidOperation:
        # more integer digits than the decimal context can hold at cent precision
        raise ValidationError(f"Please enter a valid {field_name}")

    if decimal_value != cents:
        raise ValidationError(f"{field_name} cannot have more than two decimal places")

    return Money(decimal_value)
