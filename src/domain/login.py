"""
Login domain service - One-time passcode sign-in against the auth provider.

Flow: request_code() checks that an account exists for the phone number or
email, then asks the auth provider to deliver a passcode (email when the
target contains '@', SMS otherwise). verify_code() exchanges the passcode for
a session. Passcodes are never used to create identities.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from .exceptions import (
    AccountNotFound,
    AuthProviderError,
    ExternalServiceError,
    PasscodeRejected,
    ResendTooSoon,
    ValidationFailed,
)
from .models import AuthSession, Identity
from .ports import AuthProvider, UserStore
from .validation import validate_passcode

logger = logging.getLogger(__name__)

DEFAULT_RESEND_COOLDOWN = 60


@dataclass
class LoginService:
    """Domain service for passcode login, sign-out and session lookup."""

    auth: AuthProvider
    users: UserStore
    resend_cooldown: int = DEFAULT_RESEND_COOLDOWN
    clock: Callable[[], float] = time.monotonic
    _last_sent: dict[str, float] = field(default_factory=dict, init=False, repr=False)

    async def request_code(self, phone_or_email: str) -> str:
        """
        Send a login passcode to an existing account.

        Args:
            phone_or_email: Login target (will be stripped)

        Returns:
            Delivery channel, "email" or "sms"

        Raises:
            ValidationFailed: Empty target
            AccountNotFound: No user record for the target
            ResendTooSoon: Previous code sent inside the cooldown window
            AuthProviderError: Provider failed to send
        """
        target = self._normalize_target(phone_or_email)

        now = self.clock()
        self._forget_expired(now)
        last = self._last_sent.get(target)
        if last is not None and now - last < self.resend_cooldown:
            raise ResendTooSoon(int(self.resend_cooldown - (now - last)) + 1)

        try:
            user = await self.users.get_by_phone_or_email(target)
        except ExternalServiceError as e:
            raise AuthProviderError(e.message) from e
        if user is None:
            raise AccountNotFound("No account found for this phone number or email")

        try:
            await self.auth.send_one_time_passcode(target)
        except ExternalServiceError as e:
            raise AuthProviderError(e.message or "Failed to send OTP") from e

        self._last_sent[target] = now
        channel = "email" if "@" in target else "sms"
        logger.info("Login code sent via %s", channel)
        return channel

    async def verify_code(self, phone_or_email: str, code: str) -> AuthSession:
        """
        Exchange a passcode for a session.

        Raises:
            ValidationFailed: Empty target or code not 6 digits
            PasscodeRejected: Provider rejected the code
        """
        target = self._normalize_target(phone_or_email)
        token = validate_passcode(code)

        try:
            session = await self.auth.verify_one_time_passcode(target, token)
        except PasscodeRejected:
            raise
        except ExternalServiceError as e:
            raise PasscodeRejected(e.message or "OTP verification failed") from e

        self._last_sent.pop(target, None)
        logger.info("Identity %s signed in", session.identity.id)
        return session

    async def sign_out(self) -> None:
        try:
            await self.auth.sign_out()
        except ExternalServiceError as e:
            raise AuthProviderError(e.message or "Sign out failed") from e

    async def current_identity(self) -> Identity | None:
        try:
            return await self.auth.get_current_identity()
        except ExternalServiceError as e:
            logger.warning("Current identity lookup failed: %s", e.message)
            return None

    async def current_session(self) -> AuthSession | None:
        try:
            return await self.auth.get_current_session()
        except ExternalServiceError as e:
            logger.warning("Current session lookup failed: %s", e.message)
            return None

    def _normalize_target(self, phone_or_email: str | None) -> str:
        target = (phone_or_email or "").strip()
        if not target:
            raise ValidationFailed("phone_or_email", "Enter your phone number or email")
        return target

    def _forget_expired(self, now: float) -> None:
        expired = [t for t, sent in self._last_sent.items() if now - sent >= self.resend_cooldown]
        for target in expired:
            del self._last_sent[target]
