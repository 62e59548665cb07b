"""
In-memory passcode store - Implements OtpStore for the local auth strategy.

Rules:
- 6-digit codes from the `secrets` module, valid for 5 minutes
- 5 verification attempts, then the target is locked for 15 minutes
- A successful or expired code is consumed
- Issuing a new code does not lift a lock

Codes are stored as bcrypt hashes, never in plaintext. Calls may come from
worker threads; each issue or verify runs under one lock so attempts are
counted exactly.
"""

import math
import secrets
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

import bcrypt

from src.domain.exceptions import PasscodeRejected

OTP_LENGTH = 6


@dataclass
class _OtpRecord:
    code_hash: bytes
    expires_at: float
    attempts: int = 0
    locked_until: float | None = None


class InMemoryOtpStore:
    """Implements OtpStore protocol with a per-instance dict."""

    def __init__(
        self,
        expiry_seconds: int = 300,
        max_attempts: int = 5,
        lock_seconds: int = 900,
        bcrypt_cost: int = 10,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._expiry_seconds = expiry_seconds
        self._max_attempts = max_attempts
        self._lock_seconds = lock_seconds
        self._bcrypt_cost = bcrypt_cost
        self._clock = clock
        self._records: dict[str, _OtpRecord] = {}
        self._lock = threading.Lock()

    def issue(self, target: str) -> str:
        """
        Issue a fresh code, replacing any previous one.

        Raises:
            PasscodeRejected: Target is locked; a new code would reset the lock
        """
        code = "".join(secrets.choice("0123456789") for _ in range(OTP_LENGTH))
        code_hash = bcrypt.hashpw(code.encode(), bcrypt.gensalt(rounds=self._bcrypt_cost))
        with self._lock:
            self._check_lock(target)
            self._records[target] = _OtpRecord(
                code_hash=code_hash,
                expires_at=self._clock() + self._expiry_seconds,
            )
        return code

    def verify(self, target: str, code: str) -> None:
        with self._lock:
            self._verify(target, code)

    def _verify(self, target: str, code: str) -> None:
        record = self._records.get(target)
        now = self._clock()

        if record is None:
            raise PasscodeRejected("No OTP found. Please request a new one.")

        self._check_lock(target)

        if now > record.expires_at:
            del self._records[target]
            raise PasscodeRejected("OTP expired. Please request a new one.")

        record.attempts += 1
        if bcrypt.checkpw(code.encode(), record.code_hash):
            del self._records[target]
            return

        if record.attempts >= self._max_attempts:
            record.locked_until = now + self._lock_seconds
            raise PasscodeRejected(
                "Too many failed attempts. "
                f"Account locked for {self._lock_seconds // 60} minutes."
            )

        remaining = self._max_attempts - record.attempts
        raise PasscodeRejected(f"Incorrect OTP. {remaining} attempt(s) remaining.")

    def _check_lock(self, target: str) -> None:
        record = self._records.get(target)
        if record is None or record.locked_until is None:
            return
        now = self._clock()
        if now < record.locked_until:
            minutes_left = math.ceil((record.locked_until - now) / 60)
            raise PasscodeRejected(
                f"Account locked. Please try again in {minutes_left} minute(s)."
            )
