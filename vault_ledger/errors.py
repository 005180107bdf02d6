"""
Error Taxonomy

Domain exceptions raised by ledger and transfer operations. Every
operation either commits completely or raises one of these with no state
changed.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional


class VaultLedgerError(Exception):
    """Base class for all ledger errors"""

    code = "vault_ledger_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "message": self.message}


class ValidationError(VaultLedgerError):
    """
    Malformed or out-of-range input: bad amount, missing or duplicate
    recipient identifier, malformed email, retirement year out of bounds.
    """

    code = "validation_error"


class InsufficientFundsError(VaultLedgerError):
    """Amount (plus fee, where one applies) exceeds the vault balance"""

    code = "insufficient_funds"

    def __init__(
        self,
        message: str,
        requested: Decimal,
        available: Decimal,
        fee: Decimal = Decimal('0.00'),
    ):
        super().__init__(message)
        self.requested = requested
        self.available = available
        self.fee = fee
        self.total = requested + fee
        self.shortfall = self.total - available

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result.update({
            "requested": str(self.requested),
            "fee": str(self.fee),
            "total": str(self.total),
            "available": str(self.available),
            "shortfall": str(self.shortfall),
        })
        return result


class NotFoundError(VaultLedgerError):
    """
    Vault, goal or recipient absent. Messages stay generic so callers
    cannot probe for other owners' records.
    """

    code = "not_found"


class LockedError(VaultLedgerError):
    """Pension withdrawal attempted before the lock period ends"""

    code = "locked"

    def __init__(self, message: str, unlock_date: Optional[datetime] = None):
        super().__init__(message)
        self.unlock_date = unlock_date

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["unlock_date"] = self.unlock_date.isoformat() if self.unlock_date else None
        return result


class ConflictError(VaultLedgerError):
    """Concurrent modification detected by the atomicity layer"""

    code = "conflict"
