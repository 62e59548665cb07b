"""
Adversarial tests for passcode brute forcing.

Verifies that the attempt limit on login passcodes makes guessing
infeasible: after 5 wrong codes the target is locked, and even the
correct code is refused until the lock expires.
"""

import asyncio
import logging
import re

import pytest

from src.adapters.local import InMemoryOtpStore, InMemoryUserStore, LocalAuthProvider
from src.adapters.storage import MemoryStorage
from src.domain.exceptions import PasscodeRejected
from src.domain.login import LoginService
from src.domain.models import ContactInfo, Credentials
from src.domain.provisioning import AccountProvisioner
from tests.support import ADA

pytestmark = pytest.mark.anyio


class Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def login(
    clock: Clock, users: InMemoryUserStore, records
) -> tuple[LoginService, AccountProvisioner]:
    otp = InMemoryOtpStore(max_attempts=5, lock_seconds=900, bcrypt_cost=4, clock=clock)
    auth = LocalAuthProvider(otp, MemoryStorage(), bcrypt_cost=4)
    provisioner = AccountProvisioner(auth=auth, users=users, records=records)
    return LoginService(auth, users, resend_cooldown=0, clock=clock), provisioner


async def request(service: LoginService, caplog: pytest.LogCaptureFixture) -> str:
    with caplog.at_level(logging.INFO):
        await service.request_code("+15550001")
    return re.findall(r"Code: (\d{6})", caplog.text)[-1]


def guesses(code: str, count: int) -> list[str]:
    return [f"{n:06d}" for n in range(count + 1) if f"{n:06d}" != code][:count]


class TestPasscodeLockout:
    """Guessing is cut off after the attempt limit."""

    async def test_lock_after_five_wrong_codes(
        self, login, clock: Clock, caplog: pytest.LogCaptureFixture
    ) -> None:
        service, provisioner = login
        await provisioner.provision(
            ADA, ContactInfo("+15550001"), Credentials("analytical1", "analytical1")
        )
        code = await request(service, caplog)

        messages = []
        for guess in guesses(code, 5):
            with pytest.raises(PasscodeRejected) as exc_info:
                await service.verify_code("+15550001", guess)
            messages.append(exc_info.value.message)

        assert messages[-1].startswith("Too many failed attempts")
        with pytest.raises(PasscodeRejected, match="Account locked"):
            await service.verify_code("+15550001", code)

    async def test_lock_expires(
        self, login, clock: Clock, caplog: pytest.LogCaptureFixture
    ) -> None:
        service, provisioner = login
        await provisioner.provision(
            ADA, ContactInfo("+15550001"), Credentials("analytical1", "analytical1")
        )
        code = await request(service, caplog)
        for guess in guesses(code, 5):
            with pytest.raises(PasscodeRejected):
                await service.verify_code("+15550001", guess)

        clock.now += 901
        fresh = await request(service, caplog)
        session = await service.verify_code("+15550001", fresh)

        assert session.identity.phone == "+15550001"

    async def test_new_code_does_not_reset_lock(
        self, login, clock: Clock, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Requesting a fresh code must not buy more guesses."""
        service, provisioner = login
        await provisioner.provision(
            ADA, ContactInfo("+15550001"), Credentials("analytical1", "analytical1")
        )
        code = await request(service, caplog)
        for guess in guesses(code, 5):
            with pytest.raises(PasscodeRejected):
                await service.verify_code("+15550001", guess)

        clock.now += 60
        with pytest.raises(PasscodeRejected, match="Account locked"):
            await service.request_code("+15550001")

    async def test_parallel_guesses_are_counted_exactly(
        self, login, clock: Clock, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Guesses fired at once still lock after the fifth."""
        service, provisioner = login
        await provisioner.provision(
            ADA, ContactInfo("+15550001"), Credentials("analytical1", "analytical1")
        )
        code = await request(service, caplog)

        results = await asyncio.gather(
            *(service.verify_code("+15550001", guess) for guess in guesses(code, 10)),
            return_exceptions=True,
        )

        messages = [r.message for r in results]
        assert all(isinstance(r, PasscodeRejected) for r in results)
        assert sum(m.startswith("Incorrect OTP") for m in messages) == 4
        assert sum(m.startswith("Too many failed attempts") for m in messages) == 1
        assert sum(m.startswith("Account locked") for m in messages) == 5
