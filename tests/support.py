"""
Test doubles shared across unit and integration tests.
"""

import asyncio

from src.domain.exceptions import ExternalServiceError, RegistrationError, StorageError
from src.domain.models import VerificationSession, VerifiedFields
from src.domain.ports import RegistrationState, VerificationStatus

ADA = VerifiedFields(
    first_name="Ada",
    last_name="Lovelace",
    date_of_birth="1815-12-10",
    document_number="NID1234567890",
)


class FakeSleep:
    """Records requested delays and yields to the loop instead of waiting."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        await asyncio.sleep(0)


async def settle(rounds: int = 50) -> None:
    """Let background tasks run a bounded number of loop iterations."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class ScriptedProvider:
    """
    VerificationProvider whose results follow a script.

    Each get_session_result() call pops the next entry; the last entry
    repeats. Entries are VerificationStatus values, VerificationSession
    objects or exceptions to raise. APPROVED statuses carry ADA's fields.
    """

    def __init__(self, *script) -> None:
        self.script = list(script) or [VerificationStatus.PENDING]
        self.created: list[tuple[str, str]] = []
        self.fetched: list[str] = []
        self.fail_create: Exception | None = None
        self._counter = 0

    async def create_session(self, language: str, return_url: str) -> tuple[str, str]:
        if self.fail_create is not None:
            raise self.fail_create
        self._counter += 1
        session_id = f"sess-{self._counter}"
        self.created.append((language, return_url))
        return session_id, f"https://verify.example/{session_id}"

    async def get_session_result(self, session_id: str) -> VerificationSession:
        self.fetched.append(session_id)
        entry = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(entry, Exception):
            raise entry
        if isinstance(entry, VerificationSession):
            return VerificationSession(
                session_id=session_id,
                status=entry.status,
                verified_fields=entry.verified_fields,
            )
        fields = ADA if entry == VerificationStatus.APPROVED else None
        return VerificationSession(session_id=session_id, status=entry, verified_fields=fields)


class RecordingHost:
    """RegistrationHost that keeps every notification."""

    def __init__(self) -> None:
        self.states: list[RegistrationState] = []
        self.errors: list[RegistrationError] = []
        self.completed_ids: list[str] = []

    def state_changed(self, state: RegistrationState) -> None:
        self.states.append(state)

    def error(self, error: RegistrationError) -> None:
        self.errors.append(error)

    def completed(self, account_id: str) -> None:
        self.completed_ids.append(account_id)


class FailingStorage:
    """KeyValueStorage whose every call raises StorageError."""

    def get(self, key: str) -> str | None:
        raise StorageError("storage unavailable")

    def set(self, key: str, value: str) -> None:
        raise StorageError("storage unavailable")

    def remove(self, key: str) -> None:
        raise StorageError("storage unavailable")


def unavailable(message: str = "Service unavailable") -> ExternalServiceError:
    return ExternalServiceError(message, 503)
