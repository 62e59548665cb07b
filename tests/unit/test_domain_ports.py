"""
Unit tests for domain ports and exceptions.

Tests verify:
- State and status enums carry their wire values
- Exceptions are classified by ErrorKind
- Adapters satisfy the ports structurally
- Domain purity (zero framework imports)
"""

import inspect
import subprocess
from enum import Enum

import pytest

from src.adapters.local import (
    InMemoryGovernmentRecords,
    InMemoryOtpStore,
    InMemoryUserStore,
    LocalAuthProvider,
    LocalVerificationProvider,
)
from src.adapters.storage import MemoryStorage
from src.domain.exceptions import (
    AccountNotFound,
    CreateSessionFailed,
    DuplicateAccount,
    ErrorKind,
    ExternalServiceError,
    IdentityAlreadyExists,
    InvalidTransition,
    NationalIdNotFound,
    PasscodeRejected,
    RecordAlreadyExists,
    RegistrationError,
    ResendTooSoon,
    ValidationFailed,
    VerificationDeclined,
)
from src.domain.ports import (
    AuthProvider,
    GovernmentRecordSource,
    KeyValueStorage,
    OtpStore,
    RegistrationState,
    UserStore,
    VerificationProvider,
    VerificationStatus,
)


class TestVerificationStatusEnum:
    """Tests for VerificationStatus."""

    def test_is_str_enum_with_provider_values(self) -> None:
        assert issubclass(VerificationStatus, Enum)
        assert VerificationStatus("Approved") is VerificationStatus.APPROVED
        assert VerificationStatus.PENDING == "Pending"

    @pytest.mark.parametrize(
        ("status", "terminal"),
        [
            (VerificationStatus.CREATED, False),
            (VerificationStatus.PENDING, False),
            (VerificationStatus.APPROVED, True),
            (VerificationStatus.DECLINED, True),
            (VerificationStatus.EXPIRED, False),
        ],
    )
    def test_terminal_statuses(self, status: VerificationStatus, terminal: bool) -> None:
        assert status.is_terminal is terminal


class TestRegistrationStateEnum:
    def test_states_in_flow_order(self) -> None:
        assert [s.value for s in RegistrationState] == [
            "capturing_identity",
            "awaiting_verification",
            "confirming_details",
            "setting_credentials",
            "provisioning",
            "completed",
        ]


class TestPortConformance:
    """Local adapters expose every method their port declares."""

    @pytest.mark.parametrize(
        ("port", "adapter"),
        [
            (KeyValueStorage, MemoryStorage),
            (VerificationProvider, LocalVerificationProvider),
            (GovernmentRecordSource, InMemoryGovernmentRecords),
            (AuthProvider, LocalAuthProvider),
            (UserStore, InMemoryUserStore),
            (OtpStore, InMemoryOtpStore),
        ],
    )
    def test_adapter_implements_port(self, port: type, adapter: type) -> None:
        methods = [
            name
            for name, member in inspect.getmembers(port, inspect.isfunction)
            if not name.startswith("_")
        ]
        assert methods
        for name in methods:
            assert callable(getattr(adapter, name, None)), f"{adapter.__name__}.{name}"


class TestDomainExceptions:
    """Tests for domain exception classification."""

    @pytest.mark.parametrize(
        ("error", "kind"),
        [
            (ValidationFailed("password", "Password is required"), ErrorKind.VALIDATION),
            (InvalidTransition("Not now"), ErrorKind.VALIDATION),
            (ResendTooSoon(42), ErrorKind.VALIDATION),
            (VerificationDeclined("Verification declined"), ErrorKind.RECOVERABLE),
            (NationalIdNotFound("No record"), ErrorKind.RECOVERABLE),
            (DuplicateAccount("Taken"), ErrorKind.RECOVERABLE),
            (AccountNotFound("Unknown"), ErrorKind.RECOVERABLE),
            (PasscodeRejected("Incorrect OTP"), ErrorKind.RECOVERABLE),
            (CreateSessionFailed("Provider down"), ErrorKind.FATAL_EXTERNAL),
        ],
    )
    def test_kind(self, error: RegistrationError, kind: ErrorKind) -> None:
        assert isinstance(error, RegistrationError)
        assert error.kind is kind
        assert error.message

    def test_validation_failed_names_field(self) -> None:
        error = ValidationFailed("phone_number", "Phone number is required")

        assert error.field == "phone_number"
        assert str(error) == "Phone number is required"

    def test_resend_too_soon_carries_retry_after(self) -> None:
        error = ResendTooSoon(42)

        assert error.retry_after == 42
        assert "42 seconds" in error.message

    def test_adapter_errors_are_not_domain_errors(self) -> None:
        """Adapter failures are translated before they reach callers."""
        for cls in (ExternalServiceError, IdentityAlreadyExists, RecordAlreadyExists):
            assert not issubclass(cls, RegistrationError)
        assert issubclass(RecordAlreadyExists, ExternalServiceError)
        assert ExternalServiceError("boom", status_code=503).status_code == 503


class TestDomainPurity:
    """Tests for domain purity - zero framework imports."""

    @pytest.mark.parametrize(
        "pattern",
        [
            "from fastapi",
            "import fastapi",
            "from pydantic",
            "import pydantic",
            "from psycopg",
            "import psycopg",
            "import httpx",
            "import redis",
        ],
    )
    def test_no_framework_imports_in_domain(self, pattern: str) -> None:
        result = subprocess.run(
            ["grep", "-r", pattern, "src/domain/"],
            capture_output=True,
            text=True,
        )
        assert result.returncode != 0, f"{pattern} found: {result.stdout}"
