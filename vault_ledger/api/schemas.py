"""
Pydantic schemas for API requests and responses
"""

from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, Field

from ..goals import Goal
from ..money import Money
from ..profiles import Profile
from ..transaction_log import Transaction
from ..vaults import Vault


class MoneyModel(BaseModel):
    amount: str = Field(..., description="Decimal amount as string")
    display: str = Field(..., description="Formatted amount, e.g. $1,234.50")

    @classmethod
    def from_money(cls, money: Money) -> 'MoneyModel':
        return cls(amount=str(money.amount), display=money.to_string())


# Account schemas
class OpenAccountRequest(BaseModel):
    display_name: str
    email: str
    pension_target_year: Optional[int] = None


class PensionTargetYearRequest(BaseModel):
    year: Union[int, str] = Field(..., description="Retirement target year")


# Vault schemas
class DepositRequest(BaseModel):
    amount: str = Field(..., description="Decimal amount as string")
    note: Optional[str] = None
    method: Optional[str] = Field(None, description="exchange_partners or wallet_topup")


class WithdrawRequest(BaseModel):
    amount: str = Field(..., description="Decimal amount as string")


# Transfer schemas
class UserTransferRequest(BaseModel):
    source_vault_id: str
    amount: str = Field(..., description="Decimal amount as string")
    public_id: Optional[Union[int, str]] = Field(None, description="Recipient 6-digit User ID")
    email: Optional[str] = Field(None, description="Recipient email address")


class OwnVaultTransferRequest(BaseModel):
    source_vault_id: str
    dest_vault_type: str = Field(..., description="emergency or pension")
    amount: str = Field(..., description="Decimal amount as string")


# Goal schemas
class CreateGoalRequest(BaseModel):
    name: str
    target_amount: str = Field(..., description="Decimal amount as string")


class UpdateGoalRequest(BaseModel):
    name: Optional[str] = None
    target_amount: Optional[str] = None


class AllocateRequest(BaseModel):
    amount: str = Field(..., description="Decimal amount as string")


def profile_response(profile: Profile) -> Dict[str, Any]:
    return {
        "id": profile.id,
        "display_name": profile.display_name,
        "email": profile.email,
        "public_id": profile.public_id,
        "pension_target_year": profile.pension_target_year,
        "created_at": profile.created_at.isoformat(),
    }


def vault_response(vault: Vault) -> Dict[str, Any]:
    return {
        "id": vault.id,
        "vault_type": vault.vault_type.value,
        "name": vault.name,
        "balance": MoneyModel.from_money(vault.balance).model_dump(),
        "vesting_start_date": vault.vesting_start_date.isoformat() if vault.vesting_start_date else None,
        "locked_until": vault.locked_until.isoformat() if vault.locked_until else None,
        "updated_at": vault.updated_at.isoformat(),
    }


def transaction_response(txn: Transaction) -> Dict[str, Any]:
    return {
        "id": txn.id,
        "vault_id": txn.vault_id,
        "kind": txn.kind.value,
        "amount": MoneyModel.from_money(txn.amount).model_dump(),
        "description": txn.description,
        "sequence": txn.sequence,
        "created_at": txn.created_at.isoformat(),
    }


def goal_response(goal: Goal) -> Dict[str, Any]:
    return {
        "id": goal.id,
        "name": goal.name,
        "target_amount": MoneyModel.from_money(goal.target_amount).model_dump(),
        "saved_amount": MoneyModel.from_money(goal.saved_amount).model_dump(),
        "status": goal.status.value,
        "progress": goal.progress,
        "created_at": goal.created_at.isoformat(),
        "completed_at": goal.completed_at.isoformat() if goal.completed_at else None,
    }


def transactions_response(txns: List[Transaction]) -> Dict[str, Any]:
    return {"transactions": [transaction_response(txn) for txn in txns]}
