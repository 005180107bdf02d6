"""
Transfer Coordinator Module

Fund movements that touch two records at once: owner-to-owner transfers,
transfers from the general vault into the owner's emergency or pension
vault, and allocations from the general vault into a savings goal. Each
movement debits and credits inside one ledger unit.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional, Union

from .errors import InsufficientFundsError, ValidationError
from .goals import GoalStatus, GoalTracker
from .ledger import VaultLedger
from .locking import goal_key, vault_key
from .logging_config import get_logger, log_action
from .money import Money, parse_amount
from .profiles import ProfileStore, validate_recipient_identifier
from .transaction_log import Transaction, TransactionKind
from .vaults import Vault, VaultType, parse_vault_type


OWN_TRANSFER_DESTINATIONS = (VaultType.EMERGENCY, VaultType.PENSION)


@dataclass
class TransferReceipt:
    """Outcome of a committed transfer"""
    source_vault_id: str
    destination_vault_id: str
    amount: Money
    source_balance: Money
    debit: Transaction
    credit: Transaction
    recipient_public_id: Optional[str] = None
    recipient_name: Optional[str] = None

    @property
    def message(self) -> str:
        if self.recipient_name:
            return f"Transfer of {self.amount} to {self.recipient_name} successful!"
        return f"Transfer of {self.amount} successful!"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'source_vault_id': self.source_vault_id,
            'destination_vault_id': self.destination_vault_id,
            'amount': str(self.amount.amount),
            'source_balance': str(self.source_balance.amount),
            'debit_transaction_id': self.debit.id,
            'credit_transaction_id': self.credit.id,
            'recipient_public_id': self.recipient_public_id,
            'recipient_name': self.recipient_name,
            'message': self.message,
        }


@dataclass
class AllocationReceipt:
    """Outcome of a committed goal allocation"""
    goal_id: str
    goal_name: str
    vault_id: str
    amount: Money
    vault_balance: Money
    saved_amount: Money
    status: GoalStatus
    goal_completed: bool
    transaction: Transaction

    @property
    def message(self) -> str:
        if self.goal_completed:
            return f"Congratulations! You have completed your goal \"{self.goal_name}\"!"
        return f"Successfully allocated {self.amount} to {self.goal_name}!"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'goal_id': self.goal_id,
            'vault_id': self.vault_id,
            'amount': str(self.amount.amount),
            'vault_balance': str(self.vault_balance.amount),
            'saved_amount': str(self.saved_amount.amount),
            'status': self.status.value,
            'goal_completed': self.goal_completed,
            'transaction_id': self.transaction.id,
            'message': self.message,
        }


def _require_general_source(vault: Vault) -> None:
    if vault.vault_type is not VaultType.GENERAL:
        raise ValidationError(
            f"Transfers can only be made from your {VaultType.GENERAL.display_name}"
        )


def _require_funds(vault: Vault, amount: Money) -> None:
    if amount > vault.balance:
        raise InsufficientFundsError(
            f"Insufficient balance. You have {vault.balance} available.",
            requested=amount.amount,
            available=vault.balance.amount,
        )


class TransferCoordinator:
    """Moves funds between vaults, owners and goals"""

    def __init__(self, ledger: VaultLedger, goals: GoalTracker, profiles: ProfileStore):
        self.ledger = ledger
        self.goals = goals
        self.profiles = profiles
        self.logger = get_logger("vault_ledger.transfers")

    def transfer_to_user(
        self,
        owner_id: str,
        source_vault_id: str,
        amount: Union[str, int, Decimal, Money],
        public_id: Optional[Union[int, str]] = None,
        email: Optional[str] = None
    ) -> TransferReceipt:
        """
        Send funds from the owner's general vault to another owner's general vault

        Exactly one of public_id / email identifies the recipient.

        Raises:
            ValidationError: Bad identifiers or amount, self-transfer, wrong source vault
            NotFoundError: Recipient or vault not found
            InsufficientFundsError: Amount exceeds the source balance
        """
        validate_recipient_identifier(public_id, email)
        amount = parse_amount(amount, "transfer amount")

        recipient = self.profiles.resolve_recipient(public_id=public_id, email=email)
        if recipient.id == owner_id:
            raise ValidationError("You cannot transfer funds to yourself")
        destination_id = self.ledger.get_owner_vault(recipient.id, VaultType.GENERAL).id

        def operation() -> TransferReceipt:
            now = self.ledger.clock()
            source = self.ledger.load_vault_for_update(owner_id, source_vault_id)
            _require_general_source(source)
            destination = self.ledger.load_vault_for_update(recipient.id, destination_id)
            _require_funds(source, amount)

            sender = self.profiles.get_profile(owner_id)
            debit = self.ledger.apply_debit(
                source, amount, f"Transfer to {recipient.display_name}",
                TransactionKind.TRANSFER_OUT, now,
                {'counterparty_vault_id': destination.id, 'counterparty_public_id': recipient.public_id}
            )
            credit = self.ledger.apply_credit(
                destination, amount, f"Transfer from {sender.display_name}",
                TransactionKind.TRANSFER_IN, now,
                {'counterparty_vault_id': source.id, 'counterparty_public_id': sender.public_id}
            )
            self.ledger.save_vault(source, now)
            self.ledger.save_vault(destination, now)

            return TransferReceipt(
                source_vault_id=source.id,
                destination_vault_id=destination.id,
                amount=amount,
                source_balance=source.balance,
                debit=debit,
                credit=credit,
                recipient_public_id=recipient.public_id,
                recipient_name=recipient.display_name,
            )

        receipt = self.ledger.run_atomic(
            [vault_key(source_vault_id), vault_key(destination_id)],
            operation, "transfer_to_user", owner_id
        )

        log_action(
            self.logger, "info", f"Transfer of {amount} to user completed",
            owner_id=owner_id, action="transfer_to_user", resource="vault",
            vault_id=source_vault_id, amount=amount,
            extra={
                "recipient_id": recipient.id,
                "source_balance": str(receipt.source_balance.amount),
            }
        )
        return receipt

    def transfer_between_own_vaults(
        self,
        owner_id: str,
        source_vault_id: str,
        dest_vault_type: Union[str, VaultType],
        amount: Union[str, int, Decimal, Money]
    ) -> TransferReceipt:
        """
        Move funds from the general vault into the emergency or pension vault

        The destination is credited like a deposit, so a pension destination
        needs a retirement target year and starts its lock when unfunded.
        """
        amount = parse_amount(amount, "transfer amount")
        dest_type = parse_vault_type(dest_vault_type)
        if dest_type not in OWN_TRANSFER_DESTINATIONS:
            raise ValidationError(
                f"Transfers between your vaults must go to your "
                f"{VaultType.EMERGENCY.display_name} or {VaultType.PENSION.display_name}"
            )
        destination_id = self.ledger.get_owner_vault(owner_id, dest_type).id

        def operation() -> TransferReceipt:
            now = self.ledger.clock()
            source = self.ledger.load_vault_for_update(owner_id, source_vault_id)
            _require_general_source(source)
            destination = self.ledger.load_vault_for_update(owner_id, destination_id)
            _require_funds(source, amount)

            debit = self.ledger.apply_debit(
                source, amount, f"Transfer to {destination.name}",
                TransactionKind.TRANSFER_OUT, now,
                {'counterparty_vault_id': destination.id}
            )
            credit = self.ledger.apply_deposit_effect(
                destination, amount, f"Transfer from {source.name}",
                TransactionKind.TRANSFER_IN, now,
                {'counterparty_vault_id': source.id}
            )
            self.ledger.save_vault(source, now)
            self.ledger.save_vault(destination, now)

            return TransferReceipt(
                source_vault_id=source.id,
                destination_vault_id=destination.id,
                amount=amount,
                source_balance=source.balance,
                debit=debit,
                credit=credit,
            )

        receipt = self.ledger.run_atomic(
            [vault_key(source_vault_id), vault_key(destination_id)],
            operation, "transfer_between_own_vaults", owner_id
        )

        log_action(
            self.logger, "info", f"Transfer of {amount} to {dest_type.display_name} completed",
            owner_id=owner_id, action="transfer_between_own_vaults",
            resource="vault", vault_id=source_vault_id, amount=amount,
            extra={"destination_type": dest_type.value}
        )
        return receipt

    def allocate_to_goal(
        self,
        owner_id: str,
        goal_id: str,
        amount: Union[str, int, Decimal, Money]
    ) -> AllocationReceipt:
        """
        Move funds from the owner's general vault into a goal

        Returns:
            AllocationReceipt; goal_completed is True only for the allocation
            that brought the goal to its target
        """
        amount = parse_amount(amount)
        self.goals.get_goal(owner_id, goal_id)
        vault_id = self.ledger.get_owner_vault(owner_id, VaultType.GENERAL).id

        def operation() -> AllocationReceipt:
            now = self.ledger.clock()
            goal = self.goals.get_goal(owner_id, goal_id)
            if not goal.is_active:
                raise ValidationError(f"Goal \"{goal.name}\" is already completed")
            vault = self.ledger.load_vault_for_update(owner_id, vault_id)
            _require_funds(vault, amount)

            txn = self.ledger.apply_debit(
                vault, amount, f"Allocation to goal \"{goal.name}\"",
                TransactionKind.GOAL_ALLOCATION, now, {'goal_id': goal.id}
            )
            completed = self.goals.record_allocation(goal, amount, now)
            self.ledger.save_vault(vault, now)

            return AllocationReceipt(
                goal_id=goal.id,
                goal_name=goal.name,
                vault_id=vault.id,
                amount=amount,
                vault_balance=vault.balance,
                saved_amount=goal.saved_amount,
                status=goal.status,
                goal_completed=completed,
                transaction=txn,
            )

        receipt = self.ledger.run_atomic(
            [vault_key(vault_id), goal_key(goal_id)],
            operation, "allocate_to_goal", owner_id
        )

        log_action(
            self.logger, "info", f"Allocation of {amount} to goal completed",
            owner_id=owner_id, action="allocate_to_goal", resource="goal",
            vault_id=receipt.vault_id, goal_id=goal_id, amount=amount,
            extra={
                "saved_amount": str(receipt.saved_amount.amount),
                "goal_completed": receipt.goal_completed,
            }
        )
        return receipt
