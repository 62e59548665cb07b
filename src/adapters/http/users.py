"""
Users adapter - Application user store via cloud functions.

Endpoints: POST users, GET/PUT users/{id}, GET find-user?phone_or_email=.
"""

from datetime import datetime
from typing import Any

from src.domain.exceptions import ExternalServiceError, RecordAlreadyExists
from src.domain.models import UserRecord
from src.domain.ports import AccountStatus

from .functions import FunctionsClient


def record_to_json(record: UserRecord) -> dict[str, Any]:
    return {
        "user_id": record.user_id,
        "phone_number": record.phone_number,
        "email": record.email,
        "name": record.name,
        "surname": record.surname,
        "date_of_birth": record.date_of_birth,
        "national_id": record.national_id,
        "status": record.status.value,
    }


def record_from_json(data: dict[str, Any]) -> UserRecord:
    created_at = data.get("created_at")
    return UserRecord(
        user_id=str(data["user_id"]),
        phone_number=data.get("phone_number", ""),
        email=data.get("email"),
        name=data.get("name", ""),
        surname=data.get("surname", ""),
        date_of_birth=data.get("date_of_birth", ""),
        national_id=data.get("national_id", ""),
        status=AccountStatus(data.get("status") or AccountStatus.PENDING.value),
        created_at=datetime.fromisoformat(created_at) if created_at else None,
    )


def _unwrap(body: Any) -> dict[str, Any] | None:
    if not isinstance(body, dict):
        return None
    user = body.get("user", body)
    return user or None


class FunctionsUserStore:
    """Implements UserStore protocol via the users/find-user functions."""

    def __init__(self, functions: FunctionsClient) -> None:
        self._functions = functions

    async def create(self, record: UserRecord) -> UserRecord:
        try:
            body = await self._functions.call("users", method="POST", json=record_to_json(record))
        except ExternalServiceError as e:
            if e.status_code == 409:
                raise RecordAlreadyExists(e.message, e.status_code) from e
            raise
        data = _unwrap(body)
        return record_from_json(data) if data and "user_id" in data else record

    async def get_by_id(self, user_id: str) -> UserRecord | None:
        try:
            body = await self._functions.call(f"users/{user_id}")
        except ExternalServiceError as e:
            if e.status_code == 404:
                return None
            raise
        data = _unwrap(body)
        return record_from_json(data) if data else None

    async def get_by_phone_or_email(self, phone_or_email: str) -> UserRecord | None:
        try:
            body = await self._functions.call(
                "find-user", params={"phone_or_email": phone_or_email}
            )
        except ExternalServiceError as e:
            if e.status_code == 404:
                return None
            raise
        data = _unwrap(body)
        return record_from_json(data) if data else None

    async def update(self, user_id: str, changes: dict[str, Any]) -> UserRecord:
        payload = {
            key: value.value if isinstance(value, AccountStatus) else value
            for key, value in changes.items()
        }
        body = await self._functions.call(f"users/{user_id}", method="PUT", json=payload)
        data = _unwrap(body)
        if not data:
            raise ExternalServiceError("Failed to update user")
        return record_from_json(data)
