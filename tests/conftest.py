"""Shared fixtures for the SafeKey test suite."""
import pytest
from datetime import datetime, timedelta, timezone

from safekey.vault import Vault, VaultConfig

PASSWORD = "correct-horse-battery"


class FakeClock:
    """Controllable clock returning aware UTC datetimes."""

    def __init__(self, start: datetime = None):
        self.now = start or datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def tick(self, seconds: float = 1.0) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


@pytest.fixture
def password():
    return PASSWORD


@pytest.fixture
def config(tmp_path):
    """Config with a low iteration count so tests stay fast."""
    return VaultConfig(kdf_iterations=1000, vault_path=tmp_path / "vault.json")


@pytest.fixture
def vault_path(tmp_path):
    return tmp_path / "vault.json"


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def vault(vault_path, password, config, clock):
    """A freshly initialized, open vault."""
    v = Vault.initialize(vault_path, password, config=config, clock=clock)
    yield v
    v.close()


@pytest.fixture
def reopen(vault_path, password, config, clock):
    """Factory loading the vault file again from disk; closes what it opens."""
    opened = []

    def _reopen(pw: str = None) -> Vault:
        v = Vault.load(
            vault_path, password if pw is None else pw,
            config=config, clock=clock,
        )
        opened.append(v)
        return v

    yield _reopen
    for v in opened:
        v.close()
