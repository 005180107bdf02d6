"""
Tests for unit atomicity, conflict retries and concurrent access
"""

import pytest
import tempfile
import threading
from decimal import Decimal
from pathlib import Path
from unittest.mock import patch

from vault_ledger.errors import ConflictError
from vault_ledger.storage import InMemoryStorage, SQLiteStorage

from conftest import make_system


def balance(system, owner_id, vault_id):
    return system.ledger.get_vault(owner_id, vault_id).balance.amount


def open_pair(system, funds="100.00"):
    alice, alice_vaults = system.open_account("Alice", "alice@example.com")
    bob, bob_vaults = system.open_account("Bob", "bob@example.com")
    alice_general = next(v for v in alice_vaults if v.vault_type.value == "general")
    bob_general = next(v for v in bob_vaults if v.vault_type.value == "general")
    system.ledger.deposit(alice.id, alice_general.id, funds)
    system.ledger.deposit(bob.id, bob_general.id, funds)
    return (alice, alice_general), (bob, bob_general)


def run_threads(targets):
    errors = []

    def wrap(target):
        def runner():
            try:
                target()
            except Exception as e:  # collected and asserted on below
                errors.append(e)
        return runner

    threads = [threading.Thread(target=wrap(t)) for t in targets]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)
    assert not any(thread.is_alive() for thread in threads), "worker threads deadlocked"
    return errors


class TestUnitAtomicity:

    def test_failure_after_debit_rolls_back_transfer(self, system):
        (alice, alice_general), (bob, bob_general) = open_pair(system)

        with patch.object(system.ledger, "apply_credit", side_effect=RuntimeError("crash")):
            with pytest.raises(RuntimeError):
                system.transfers.transfer_to_user(
                    alice.id, alice_general.id, "40.00", public_id=bob.public_id
                )

        assert balance(system, alice.id, alice_general.id) == Decimal("100.00")
        assert balance(system, bob.id, bob_general.id) == Decimal("100.00")
        assert len(system.ledger.list_transactions(alice.id)) == 1
        assert len(system.ledger.list_transactions(bob.id)) == 1
        assert system.ledger.reconcile(alice_general.id).ok

    def test_failed_goal_save_rolls_back_allocation(self, system, alice):
        profile, vaults = alice
        system.ledger.deposit(profile.id, vaults["general"].id, "50.00")
        goal = system.goals.create_goal(profile.id, "Bike", "100")

        with patch.object(system.goals, "save_goal", side_effect=RuntimeError("disk full")):
            with pytest.raises(RuntimeError):
                system.transfers.allocate_to_goal(profile.id, goal.id, "20.00")

        assert balance(system, profile.id, vaults["general"].id) == Decimal("50.00")
        assert system.goals.get_goal(profile.id, goal.id).saved_amount.is_zero()
        assert system.ledger.reconcile(vaults["general"].id).ok


class TestConflictRetry:

    def test_conflict_is_retried(self, system, alice):
        profile, vaults = alice
        real_save = system.ledger.save_vault
        calls = {"count": 0}

        def flaky_save(vault, now):
            calls["count"] += 1
            if calls["count"] == 1:
                raise ConflictError("Vault was modified by another operation")
            return real_save(vault, now)

        with patch.object(system.ledger, "save_vault", side_effect=flaky_save):
            receipt = system.ledger.deposit(profile.id, vaults["general"].id, "10.00")

        assert calls["count"] == 2
        assert receipt.new_balance.amount == Decimal("10.00")
        assert len(system.ledger.list_transactions(profile.id)) == 1
        assert system.ledger.reconcile(vaults["general"].id).ok

    def test_persistent_conflict_surfaces(self, system, alice):
        profile, vaults = alice

        with patch.object(
            system.ledger, "save_vault",
            side_effect=ConflictError("Vault was modified by another operation")
        ) as save:
            with pytest.raises(ConflictError):
                system.ledger.deposit(profile.id, vaults["general"].id, "10.00")

        assert save.call_count == 1 + system.config.conflict_retries
        assert balance(system, profile.id, vaults["general"].id) == Decimal("0.00")
        assert system.ledger.list_transactions(profile.id) == []

    def test_no_retries_when_disabled(self, clock):
        system = make_system(clock=clock, conflict_retries=0)
        profile, vaults = system.open_account("Alice", "alice@example.com")

        with patch.object(
            system.ledger, "save_vault", side_effect=ConflictError("conflict")
        ) as save:
            with pytest.raises(ConflictError):
                system.ledger.deposit(profile.id, vaults[0].id, "10.00")
        assert save.call_count == 1

    def test_stale_version_is_rejected(self, system, alice):
        profile, vaults = alice
        stale = system.ledger.get_vault(profile.id, vaults["general"].id)
        system.ledger.deposit(profile.id, vaults["general"].id, "1.00")

        with pytest.raises(ConflictError):
            system.ledger.save_vault(stale, system.clock())


@pytest.fixture(params=["memory", "sqlite"])
def storage(request):
    if request.param == "memory":
        yield InMemoryStorage()
    else:
        with tempfile.TemporaryDirectory() as temp_dir:
            backend = SQLiteStorage(Path(temp_dir) / "ledger.db")
            yield backend
            backend.close()


class TestConcurrentOperations:

    def test_concurrent_deposits(self, storage, clock):
        system = make_system(clock=clock, storage=storage)
        profile, vaults = system.open_account("Alice", "alice@example.com")
        general = vaults[0]

        def depositor():
            for _ in range(20):
                system.ledger.deposit(profile.id, general.id, "1.00")

        errors = run_threads([depositor for _ in range(8)])

        assert errors == []
        assert balance(system, profile.id, general.id) == Decimal("160.00")
        reconciliation = system.ledger.reconcile(general.id)
        assert reconciliation.transaction_count == 160
        assert reconciliation.ok

    def test_opposing_transfers_do_not_deadlock(self, storage, clock):
        system = make_system(clock=clock, storage=storage)
        (alice, alice_general), (bob, bob_general) = open_pair(system)

        def alice_to_bob():
            for _ in range(25):
                system.transfers.transfer_to_user(
                    alice.id, alice_general.id, "1.00", public_id=bob.public_id
                )

        def bob_to_alice():
            for _ in range(25):
                system.transfers.transfer_to_user(
                    bob.id, bob_general.id, "2.00", email="alice@example.com"
                )

        errors = run_threads([alice_to_bob, bob_to_alice])

        assert errors == []
        alice_balance = balance(system, alice.id, alice_general.id)
        bob_balance = balance(system, bob.id, bob_general.id)
        assert alice_balance == Decimal("125.00")
        assert bob_balance == Decimal("75.00")
        assert system.ledger.reconcile(alice_general.id).ok
        assert system.ledger.reconcile(bob_general.id).ok

    def test_overdraft_race_never_goes_negative(self, storage, clock):
        system = make_system(clock=clock, storage=storage)
        profile, vaults = system.open_account("Alice", "alice@example.com")
        general = vaults[0]
        system.ledger.deposit(profile.id, general.id, "10.00")

        def spender():
            system.ledger.withdraw(profile.id, general.id, "3.00")

        errors = run_threads([spender for _ in range(6)])

        final = balance(system, profile.id, general.id)
        assert final >= Decimal("0")
        successes = 6 - len(errors)
        # each withdrawal costs 3.00 plus a 0.02 fee
        assert final == Decimal("10.00") - successes * Decimal("3.02")
        assert system.ledger.reconcile(general.id).ok
