"""
Shared fixtures for vault ledger tests
"""

import pytest
from datetime import datetime, timedelta, timezone

from vault_ledger.config import VaultLedgerConfig
from vault_ledger.storage import InMemoryStorage
from vault_ledger.system import VaultSystem


START = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Controllable replacement for the wall clock"""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def make_config(**overrides) -> VaultLedgerConfig:
    settings = {"storage_backend": "memory", "database_path": ":memory:"}
    settings.update(overrides)
    return VaultLedgerConfig(**settings)


def make_system(clock=None, storage=None, **overrides) -> VaultSystem:
    return VaultSystem(
        storage=storage or InMemoryStorage(),
        config=make_config(**overrides),
        clock=clock or FakeClock()
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def system(clock):
    return make_system(clock=clock)


@pytest.fixture
def alice(system):
    profile, vaults = system.open_account("Alice", "alice@example.com")
    return profile, {v.vault_type.value: v for v in vaults}


@pytest.fixture
def bob(system):
    profile, vaults = system.open_account("Bob", "Bob@Example.com")
    return profile, {v.vault_type.value: v for v in vaults}
