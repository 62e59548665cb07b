"""
Unit tests for LoginService.

Tests passcode login with the local auth provider:
- Codes are only sent to existing accounts
- Resend cooldown
- Passcode verification, sign-out and session lookup
"""

import logging
import re
from unittest.mock import AsyncMock

import pytest

from src.adapters.local import InMemoryUserStore, LocalAuthProvider
from src.domain.exceptions import (
    AccountNotFound,
    AuthProviderError,
    ErrorKind,
    PasscodeRejected,
    ResendTooSoon,
    ValidationFailed,
)
from src.domain.login import LoginService
from src.domain.models import ContactInfo, Credentials
from src.domain.provisioning import AccountProvisioner
from tests.support import ADA, unavailable

pytestmark = pytest.mark.anyio


class Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
async def registered(provisioner: AccountProvisioner) -> str:
    """Provision Ada and return her account id."""
    account = await provisioner.provision(
        ADA,
        ContactInfo(phone_number="+15550001", email="ada@example.com"),
        Credentials("analytical1", "analytical1"),
    )
    return account.account_id


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def login(auth: LocalAuthProvider, users: InMemoryUserStore, clock: Clock) -> LoginService:
    return LoginService(auth, users, resend_cooldown=60, clock=clock)


def sent_code(caplog: pytest.LogCaptureFixture) -> str:
    match = re.findall(r"\[OTP\] Target: \S+ Code: (\d{6})", caplog.text)
    assert match, "no passcode was logged"
    return match[-1]


class TestRequestCode:
    """Tests for request_code()."""

    async def test_email_target_uses_email_channel(
        self, login: LoginService, registered: str, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.INFO):
            channel = await login.request_code(" ada@example.com ")

        assert channel == "email"
        assert sent_code(caplog)

    async def test_phone_target_uses_sms_channel(
        self, login: LoginService, registered: str
    ) -> None:
        assert await login.request_code("+15550001") == "sms"

    async def test_unknown_account(self, login: LoginService) -> None:
        with pytest.raises(AccountNotFound) as exc_info:
            await login.request_code("nobody@example.com")
        assert exc_info.value.kind == ErrorKind.RECOVERABLE

    async def test_blank_target(self, login: LoginService) -> None:
        with pytest.raises(ValidationFailed):
            await login.request_code("   ")

    async def test_resend_inside_cooldown_rejected(
        self, login: LoginService, registered: str, clock: Clock
    ) -> None:
        await login.request_code("+15550001")
        clock.now += 30

        with pytest.raises(ResendTooSoon) as exc_info:
            await login.request_code("+15550001")

        assert exc_info.value.retry_after == 31

    async def test_resend_after_cooldown_allowed(
        self, login: LoginService, registered: str, clock: Clock
    ) -> None:
        await login.request_code("+15550001")
        clock.now += 61

        assert await login.request_code("+15550001") == "sms"

    async def test_expired_cooldowns_are_forgotten(
        self, login: LoginService, registered: str, clock: Clock
    ) -> None:
        await login.request_code("+15550001")
        clock.now += 61

        await login.request_code("ada@example.com")

        assert list(login._last_sent) == ["ada@example.com"]

    async def test_provider_failure(self, users: InMemoryUserStore, registered: str) -> None:
        auth = AsyncMock()
        auth.send_one_time_passcode.side_effect = unavailable("SMS gateway down")
        login = LoginService(auth, users)

        with pytest.raises(AuthProviderError, match="SMS gateway down"):
            await login.request_code("+15550001")


class TestVerifyCode:
    """Tests for verify_code()."""

    async def test_correct_code_opens_session(
        self,
        login: LoginService,
        registered: str,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        with caplog.at_level(logging.INFO):
            await login.request_code("ada@example.com")

        session = await login.verify_code("ada@example.com", sent_code(caplog))

        assert session.identity.id == registered
        assert session.access_token
        current = await login.current_session()
        assert current.identity.id == registered
        assert (await login.current_identity()).id == registered

    async def test_wrong_code_reports_remaining_attempts(
        self, login: LoginService, registered: str, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.INFO):
            await login.request_code("ada@example.com")
        wrong = "000000" if sent_code(caplog) != "000000" else "111111"

        with pytest.raises(PasscodeRejected, match="4 attempt"):
            await login.verify_code("ada@example.com", wrong)

    async def test_malformed_code_is_validation_error(
        self, login: LoginService, registered: str
    ) -> None:
        with pytest.raises(ValidationFailed):
            await login.verify_code("ada@example.com", "12ab")

    async def test_unknown_target_is_rejected(self, login: LoginService) -> None:
        with pytest.raises(PasscodeRejected):
            await login.verify_code("nobody@example.com", "123456")


class TestSession:
    """Tests for sign_out() and session lookup."""

    async def test_sign_out_clears_session(
        self, login: LoginService, registered: str, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.INFO):
            await login.request_code("+15550001")
        await login.verify_code("+15550001", sent_code(caplog))

        await login.sign_out()

        assert await login.current_session() is None
        assert await login.current_identity() is None

    async def test_lookup_failure_reads_as_signed_out(self, users: InMemoryUserStore) -> None:
        auth = AsyncMock()
        auth.get_current_session.side_effect = unavailable()
        auth.get_current_identity.side_effect = unavailable()
        login = LoginService(auth, users)

        assert await login.current_session() is None
        assert await login.current_identity() is None
