"""
Vault endpoints: balances, deposits, withdrawals and incentives
"""

from typing import Optional

from fastapi import APIRouter, Depends

from .dependencies import get_owner_id, get_vault_system
from .schemas import (
    DepositRequest, MoneyModel, WithdrawRequest,
    transactions_response, vault_response,
)
from ..ledger import LedgerReceipt
from ..system import VaultSystem


router = APIRouter()


def _receipt_response(receipt: LedgerReceipt, message: str):
    result = receipt.to_dict()
    result["message"] = message
    return result


@router.get("")
def list_vaults(
    owner_id: str = Depends(get_owner_id),
    system: VaultSystem = Depends(get_vault_system)
):
    vaults = system.ledger.list_vaults(owner_id)
    return {
        "vaults": [vault_response(v) for v in vaults],
        "total_balance": MoneyModel.from_money(system.ledger.total_balance(owner_id)).model_dump()
    }


@router.get("/{vault_id}")
def get_vault(
    vault_id: str,
    owner_id: str = Depends(get_owner_id),
    system: VaultSystem = Depends(get_vault_system)
):
    return vault_response(system.ledger.get_vault(owner_id, vault_id))


@router.post("/{vault_id}/deposit")
def deposit(
    vault_id: str,
    request: DepositRequest,
    owner_id: str = Depends(get_owner_id),
    system: VaultSystem = Depends(get_vault_system)
):
    """Deposit into one of the caller's vaults"""
    receipt = system.ledger.deposit(
        owner_id, vault_id, request.amount, note=request.note, method=request.method
    )
    return _receipt_response(receipt, "Deposit processed successfully")


@router.post("/{vault_id}/withdraw")
def withdraw(
    vault_id: str,
    request: WithdrawRequest,
    owner_id: str = Depends(get_owner_id),
    system: VaultSystem = Depends(get_vault_system)
):
    """Withdraw from a general or emergency vault, fee included"""
    receipt = system.ledger.withdraw(owner_id, vault_id, request.amount)
    return _receipt_response(receipt, "Withdrawal processed successfully")


@router.post("/{vault_id}/withdraw-full")
def withdraw_pension_full(
    vault_id: str,
    owner_id: str = Depends(get_owner_id),
    system: VaultSystem = Depends(get_vault_system)
):
    """Withdraw the whole pension balance plus any vesting bonus"""
    receipt = system.ledger.withdraw_pension_full(owner_id, vault_id)
    return _receipt_response(receipt, f"Pension withdrawal of {receipt.payout} processed successfully")


@router.post("/{vault_id}/parking-incentive")
def apply_parking_incentive(
    vault_id: str,
    owner_id: str = Depends(get_owner_id),
    system: VaultSystem = Depends(get_vault_system)
):
    receipt = system.ledger.apply_parking_incentive(owner_id, vault_id)
    return _receipt_response(receipt, f"Parking incentive applied. You earned {receipt.incentive}.")


@router.get("/{vault_id}/transactions")
def get_vault_transactions(
    vault_id: str,
    limit: Optional[int] = 50,
    owner_id: str = Depends(get_owner_id),
    system: VaultSystem = Depends(get_vault_system)
):
    """Transaction history for one vault, newest first"""
    return transactions_response(system.ledger.list_transactions(owner_id, vault_id, limit))


@router.get("/{vault_id}/reconcile")
def reconcile_vault(
    vault_id: str,
    owner_id: str = Depends(get_owner_id),
    system: VaultSystem = Depends(get_vault_system)
):
    """Check the vault balance against its transaction log"""
    system.ledger.get_vault(owner_id, vault_id)
    result = system.ledger.reconcile(vault_id)
    return {
        "vault_id": result.vault_id,
        "balance": str(result.balance.amount),
        "transaction_total": str(result.transaction_total.amount),
        "transaction_count": result.transaction_count,
        "balanced": result.balanced,
        "chain_valid": result.chain_valid,
    }
