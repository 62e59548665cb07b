"""
Shared test fixtures and configuration.

This module provides pytest fixtures for:
- The anyio backend used by async tests (asyncio only)
- In-memory collaborators with a cheap bcrypt cost
- Scripted verification provider and recording host

Test doubles themselves live in tests/support.py.
"""

import pytest

from src.adapters.local import (
    InMemoryGovernmentRecords,
    InMemoryOtpStore,
    InMemoryUserStore,
    LocalAuthProvider,
)
from src.adapters.storage import MemoryStorage
from src.domain.provisioning import AccountProvisioner
from tests.support import FakeSleep, RecordingHost, ScriptedProvider


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture
def provider() -> ScriptedProvider:
    return ScriptedProvider()


@pytest.fixture
def host() -> RecordingHost:
    return RecordingHost()


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def otp_store() -> InMemoryOtpStore:
    return InMemoryOtpStore(bcrypt_cost=4)


@pytest.fixture
def auth(otp_store: InMemoryOtpStore) -> LocalAuthProvider:
    return LocalAuthProvider(otp_store, MemoryStorage(), bcrypt_cost=4)


@pytest.fixture
def users() -> InMemoryUserStore:
    return InMemoryUserStore()


@pytest.fixture
def records() -> InMemoryGovernmentRecords:
    return InMemoryGovernmentRecords()


@pytest.fixture
def provisioner(
    auth: LocalAuthProvider, users: InMemoryUserStore, records: InMemoryGovernmentRecords
) -> AccountProvisioner:
    return AccountProvisioner(auth=auth, users=users, records=records)
