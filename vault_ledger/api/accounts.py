"""
Account (owner profile) endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends, status

from .dependencies import get_owner_id, get_vault_system
from .schemas import (
    MoneyModel, OpenAccountRequest, PensionTargetYearRequest,
    profile_response, transactions_response, vault_response,
)
from ..system import VaultSystem


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
def open_account(
    request: OpenAccountRequest,
    system: VaultSystem = Depends(get_vault_system)
):
    """Register an owner and open their three vaults"""
    profile, vaults = system.open_account(
        display_name=request.display_name,
        email=request.email,
        pension_target_year=request.pension_target_year
    )
    return {
        "profile": profile_response(profile),
        "vaults": [vault_response(v) for v in vaults],
        "message": "Account created successfully"
    }


@router.get("/me")
def get_account(
    owner_id: str = Depends(get_owner_id),
    system: VaultSystem = Depends(get_vault_system)
):
    """Profile, vaults and total balance of the caller"""
    profile = system.profiles.get_profile(owner_id)
    vaults = system.ledger.list_vaults(owner_id)
    return {
        "profile": profile_response(profile),
        "vaults": [vault_response(v) for v in vaults],
        "total_balance": MoneyModel.from_money(system.ledger.total_balance(owner_id)).model_dump()
    }


@router.delete("/me")
def close_account(
    owner_id: str = Depends(get_owner_id),
    system: VaultSystem = Depends(get_vault_system)
):
    """Close the caller's account; every vault must be empty"""
    system.close_account(owner_id)
    return {"message": "Account closed"}


@router.put("/me/pension-target-year")
def set_pension_target_year(
    request: PensionTargetYearRequest,
    owner_id: str = Depends(get_owner_id),
    system: VaultSystem = Depends(get_vault_system)
):
    profile = system.set_pension_target_year(owner_id, request.year)
    return {
        "profile": profile_response(profile),
        "message": f"Retirement target year set to {profile.pension_target_year}"
    }


@router.get("/me/pension-status")
def get_pension_status(
    owner_id: str = Depends(get_owner_id),
    system: VaultSystem = Depends(get_vault_system)
):
    return system.pension_status(owner_id).to_dict()


@router.get("/me/transactions")
def get_transactions(
    limit: Optional[int] = 50,
    owner_id: str = Depends(get_owner_id),
    system: VaultSystem = Depends(get_vault_system)
):
    """Transaction history across all of the caller's vaults, newest first"""
    return transactions_response(system.ledger.list_transactions(owner_id, limit=limit))
