"""
Transfer endpoints
"""

from fastapi import APIRouter, Depends

from .dependencies import get_owner_id, get_vault_system
from .schemas import OwnVaultTransferRequest, UserTransferRequest
from ..system import VaultSystem


router = APIRouter()


@router.post("/user")
def transfer_to_user(
    request: UserTransferRequest,
    owner_id: str = Depends(get_owner_id),
    system: VaultSystem = Depends(get_vault_system)
):
    """Send money to another owner by User ID or email"""
    receipt = system.transfers.transfer_to_user(
        owner_id,
        request.source_vault_id,
        request.amount,
        public_id=request.public_id,
        email=request.email
    )
    return receipt.to_dict()


@router.post("/own")
def transfer_between_own_vaults(
    request: OwnVaultTransferRequest,
    owner_id: str = Depends(get_owner_id),
    system: VaultSystem = Depends(get_vault_system)
):
    """Move money from the Micro-Savings Vault to the emergency or pension vault"""
    receipt = system.transfers.transfer_between_own_vaults(
        owner_id, request.source_vault_id, request.dest_vault_type, request.amount
    )
    return receipt.to_dict()
