"""
Domain models - Plain dataclasses shared by services and ports.

Status enums live in ports.py next to the interfaces that produce them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .ports import AccountStatus, VerificationStatus


@dataclass(frozen=True)
class VerifiedFields:
    """Identity fields extracted by the verification provider."""

    first_name: str | None
    last_name: str | None
    date_of_birth: str | None
    document_number: str | None

    def missing(self) -> list[str]:
        """Names of required fields that are absent or blank."""
        return [
            name
            for name in ("first_name", "last_name", "date_of_birth", "document_number")
            if not (getattr(self, name) or "").strip()
        ]


@dataclass
class VerificationSession:
    session_id: str
    status: VerificationStatus
    created_at: datetime | None = None
    verified_fields: VerifiedFields | None = None


@dataclass(frozen=True)
class SessionHandle:
    """Result of starting a verification: where to send the user."""

    session_id: str
    redirect_url: str


@dataclass
class RegistrationDraft:
    """Locally staged registration fields for one verification session."""

    session_id: str
    phone_number: str = ""
    email: str = ""
    password: str | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class ContactInfo:
    phone_number: str
    email: str | None = None


@dataclass(frozen=True)
class Credentials:
    password: str
    confirmation: str


@dataclass(frozen=True)
class GovernmentRecord:
    name: str
    surname: str
    date_of_birth: str
    phone_number: str
    email: str | None = None


@dataclass
class Identity:
    """Auth-provider identity."""

    id: str
    email: str | None = None
    phone: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class AuthSession:
    identity: Identity
    access_token: str | None = None
    refresh_token: str | None = None


@dataclass
class UserRecord:
    """Application-level user row; user_id equals the auth identity id."""

    user_id: str
    phone_number: str
    name: str
    surname: str
    date_of_birth: str
    national_id: str
    status: AccountStatus
    email: str | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class ProvisionedAccount:
    account_id: str
    phone_number: str
    name: str
    surname: str
    date_of_birth: str
    national_id: str
    status: AccountStatus
    email: str | None = None

    @classmethod
    def from_record(cls, record: UserRecord) -> ProvisionedAccount:
        return cls(
            account_id=record.user_id,
            phone_number=record.phone_number,
            name=record.name,
            surname=record.surname,
            date_of_birth=record.date_of_birth,
            national_id=record.national_id,
            status=record.status,
            email=record.email,
        )
