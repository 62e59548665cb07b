"""In-memory user store - Implements UserStore for development and tests."""

from dataclasses import replace
from datetime import datetime, timezone
from typing import Any

from src.domain.exceptions import ExternalServiceError, RecordAlreadyExists
from src.domain.models import UserRecord

_UPDATABLE = {"phone_number", "email", "name", "surname", "date_of_birth", "status"}


class InMemoryUserStore:
    """Implements UserStore protocol with a dict keyed by user_id."""

    def __init__(self) -> None:
        self._records: dict[str, UserRecord] = {}

    async def create(self, record: UserRecord) -> UserRecord:
        for existing in self._records.values():
            if (
                existing.user_id == record.user_id
                or existing.phone_number == record.phone_number
                or (record.email and existing.email == record.email)
            ):
                raise RecordAlreadyExists(
                    "An account with this phone number or email already exists.", 409
                )
        stored = replace(record, created_at=datetime.now(timezone.utc))
        self._records[stored.user_id] = stored
        return replace(stored)

    async def get_by_id(self, user_id: str) -> UserRecord | None:
        record = self._records.get(user_id)
        return replace(record) if record else None

    async def get_by_phone_or_email(self, phone_or_email: str) -> UserRecord | None:
        for record in self._records.values():
            if phone_or_email in (record.phone_number, record.email):
                return replace(record)
        return None

    async def update(self, user_id: str, changes: dict[str, Any]) -> UserRecord:
        record = self._records.get(user_id)
        if record is None:
            raise ExternalServiceError("User not found", 404)
        unknown = set(changes) - _UPDATABLE
        if unknown:
            raise ExternalServiceError(f"Cannot update {', '.join(sorted(unknown))}", 400)
        self._records[user_id] = replace(record, **changes)
        return replace(self._records[user_id])

    def __len__(self) -> int:
        return len(self._records)
