import sys
from pathlib import Path as _Path
sys.path.insert(0, str(_Path(__file__).resolve().parents[1] / "src"))

from datetime import datetime, timedelta, timezone

import pytest

from authcore.auth.accounts import InMemoryAccountStore, LockoutPolicy
from authcore.auth.passwords import CredentialHasher
from authcore.auth.session import SessionRegistry
from authcore.config import Settings
from authcore.services.auth_service import AuthService


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


# Cheap argon2 parameters: tests exercise behaviour, not hash strength.
FAST_ARGON2 = {"time_cost": 1, "memory_cost": 8, "parallelism": 1}


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def hasher() -> CredentialHasher:
    return CredentialHasher(**FAST_ARGON2)


@pytest.fixture()
def lockout() -> LockoutPolicy:
    return LockoutPolicy(threshold=5, base_seconds=900, max_seconds=3600)


@pytest.fixture()
def accounts(clock, lockout) -> InMemoryAccountStore:
    return InMemoryAccountStore(lockout=lockout, clock=clock)


@pytest.fixture()
def sessions(clock) -> SessionRegistry:
    return SessionRegistry(clock=clock)


@pytest.fixture()
def auth(accounts, sessions, hasher, clock) -> AuthService:
    return AuthService(
        accounts=accounts,
        sessions=sessions,
        hasher=hasher,
        session_ttl=timedelta(hours=1),
        clock=clock,
    )


@pytest.fixture()
def settings(tmp_path) -> Settings:
    return Settings(
        argon2_time_cost=1,
        argon2_memory_cost=8,
        argon2_parallelism=1,
        session_ttl_seconds=3600,
        secret_key="test-secret-key",
    )
