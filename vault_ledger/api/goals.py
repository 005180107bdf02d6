"""
Savings goal endpoints
"""

from fastapi import APIRouter, Depends, status

from .dependencies import get_owner_id, get_vault_system
from .schemas import AllocateRequest, CreateGoalRequest, UpdateGoalRequest, goal_response
from ..system import VaultSystem


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
def create_goal(
    request: CreateGoalRequest,
    owner_id: str = Depends(get_owner_id),
    system: VaultSystem = Depends(get_vault_system)
):
    goal = system.goals.create_goal(owner_id, request.name, request.target_amount)
    return {
        "goal": goal_response(goal),
        "message": f"Goal \"{goal.name}\" created successfully!"
    }


@router.get("")
def list_goals(
    owner_id: str = Depends(get_owner_id),
    system: VaultSystem = Depends(get_vault_system)
):
    return {"goals": [goal_response(g) for g in system.goals.list_goals(owner_id)]}


@router.get("/{goal_id}")
def get_goal(
    goal_id: str,
    owner_id: str = Depends(get_owner_id),
    system: VaultSystem = Depends(get_vault_system)
):
    return goal_response(system.goals.get_goal(owner_id, goal_id))


@router.patch("/{goal_id}")
def update_goal(
    goal_id: str,
    request: UpdateGoalRequest,
    owner_id: str = Depends(get_owner_id),
    system: VaultSystem = Depends(get_vault_system)
):
    goal = system.goals.update_goal(
        owner_id, goal_id, name=request.name, target_amount=request.target_amount
    )
    return {"goal": goal_response(goal), "message": "Goal updated successfully!"}


@router.delete("/{goal_id}")
def delete_goal(
    goal_id: str,
    owner_id: str = Depends(get_owner_id),
    system: VaultSystem = Depends(get_vault_system)
):
    system.goals.delete_goal(owner_id, goal_id)
    return {"message": "Goal deleted successfully"}


@router.post("/{goal_id}/allocate")
def allocate_to_goal(
    goal_id: str,
    request: AllocateRequest,
    owner_id: str = Depends(get_owner_id),
    system: VaultSystem = Depends(get_vault_system)
):
    """Move money from the Micro-Savings Vault into the goal"""
    receipt = system.transfers.allocate_to_goal(owner_id, goal_id, request.amount)
    return receipt.to_dict()
