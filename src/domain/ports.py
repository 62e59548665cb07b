"""
Port interfaces - Protocol definitions for infrastructure abstraction.

This module defines the interfaces (ports) that the domain requires
from infrastructure. Adapters implement these protocols structurally;
none of them inherit from the Protocol classes.

Network-backed ports are async (every call is a suspension point on the
event loop). KeyValueStorage is synchronous: it is backed by memory, a
local file or Redis and is only ever touched from debounced writes.
"""

from enum import Enum
from typing import Any, Protocol

from .models import (
    AuthSession,
    GovernmentRecord,
    Identity,
    UserRecord,
    VerificationSession,
)


class VerificationStatus(str, Enum):
    """
    Lifecycle of a provider verification session.

    Terminal statuses (no further change expected): APPROVED, DECLINED.
    EXPIRED ends polling as well but is not a provider decision.
    """

    CREATED = "Created"
    PENDING = "Pending"
    APPROVED = "Approved"
    DECLINED = "Declined"
    EXPIRED = "Expired"

    @property
    def is_terminal(self) -> bool:
        return self in (VerificationStatus.APPROVED, VerificationStatus.DECLINED)


class AccountStatus(str, Enum):
    """Application user record status, mutated out-of-band after creation."""

    PENDING = "pending"
    VERIFIED = "verified"
    SUSPENDED = "suspended"


class RegistrationState(str, Enum):
    """
    Registration Orchestrator states (linear, with explicit regressions).

    CAPTURING_IDENTITY -> AWAITING_VERIFICATION -> CONFIRMING_DETAILS
        -> SETTING_CREDENTIALS -> PROVISIONING -> COMPLETED

    Regressions:
    - AWAITING_VERIFICATION -> CAPTURING_IDENTITY (declined/incomplete/expired)
    - PROVISIONING -> CONFIRMING_DETAILS (recoverable provisioning error)
    - PROVISIONING -> CAPTURING_IDENTITY (national id missing/not found)
    """

    CAPTURING_IDENTITY = "capturing_identity"
    AWAITING_VERIFICATION = "awaiting_verification"
    CONFIRMING_DETAILS = "confirming_details"
    SETTING_CREDENTIALS = "setting_credentials"
    PROVISIONING = "provisioning"
    COMPLETED = "completed"


class KeyValueStorage(Protocol):
    """Port interface for durable string key-value persistence."""

    def get(self, key: str) -> str | None:
        """
        Read a value.

        Returns:
            Stored string, or None when the key is absent

        Raises:
            StorageError: Backing store unavailable
        """
        ...

    def set(self, key: str, value: str) -> None:
        """Write a value, replacing any previous one."""
        ...

    def remove(self, key: str) -> None:
        """Delete a key; deleting an absent key is not an error."""
        ...


class VerificationProvider(Protocol):
    """Port interface for the external identity-verification provider."""

    async def create_session(self, language: str, return_url: str) -> tuple[str, str]:
        """
        Create a verification session.

        Args:
            language: Two-letter UI language for the hosted flow
            return_url: Where the provider redirects when the user is done;
                the provider appends `session_id` as a query parameter

        Returns:
            (session_id, verification_url)

        Raises:
            ExternalServiceError: Transport or provider failure
        """
        ...

    async def get_session_result(self, session_id: str) -> VerificationSession:
        """
        Fetch the current state of a session.

        "Not yet decided" is a normal PENDING result, never an error.

        Raises:
            ExternalServiceError: Transport or provider failure
        """
        ...


class DocumentVerifier(Protocol):
    """Port interface for local selfie + identity document verification."""

    async def verify(self, selfie: bytes, document: bytes) -> str | None:
        """
        Verify captured images.

        Returns:
            National id number read from the document, or None if rejected
        """
        ...


class GovernmentRecordSource(Protocol):
    """Port interface for the official national-id registry."""

    async def lookup_by_national_id(self, national_id: str) -> GovernmentRecord | None:
        """Return the record for a national id, or None if not found."""
        ...


class AuthProvider(Protocol):
    """
    Port interface for the hosted auth/identity provider.

    Identities are keyed by the same stable id as the application user record.
    """

    async def create_identity(
        self, email: str, password: str, phone: str, metadata: dict[str, Any]
    ) -> AuthSession:
        """
        Create an identity.

        Raises:
            IdentityAlreadyExists: Email/phone already registered
            ExternalServiceError: Any other provider failure
        """
        ...

    async def sign_in(self, email: str, password: str) -> AuthSession:
        """Sign in with email + password; raises ExternalServiceError on failure."""
        ...

    async def update_identity(self, session: AuthSession, metadata: dict[str, Any]) -> Identity:
        """Merge metadata into the identity owning `session`."""
        ...

    async def send_one_time_passcode(self, phone_or_email: str) -> None:
        """Send a login passcode to an existing identity (never creates one)."""
        ...

    async def verify_one_time_passcode(self, phone_or_email: str, code: str) -> AuthSession:
        """Verify a login passcode and open a session."""
        ...

    async def sign_out(self) -> None:
        """Close the current session."""
        ...

    async def get_current_identity(self) -> Identity | None:
        """Identity of the current session, if any."""
        ...

    async def get_current_session(self) -> AuthSession | None:
        """Current session, if any."""
        ...


class UserStore(Protocol):
    """Port interface for the application-level user records."""

    async def create(self, record: UserRecord) -> UserRecord:
        """
        Insert a record.

        Raises:
            RecordAlreadyExists: user_id, phone or email already taken
            ExternalServiceError: Any other failure
        """
        ...

    async def get_by_id(self, user_id: str) -> UserRecord | None:
        ...

    async def get_by_phone_or_email(self, phone_or_email: str) -> UserRecord | None:
        ...

    async def update(self, user_id: str, changes: dict[str, Any]) -> UserRecord:
        ...


class OtpStore(Protocol):
    """
    Port interface for locally issued one-time passcodes.

    Injected into the local auth strategy instead of a process-wide map.
    """

    def issue(self, target: str) -> str:
        """Create (or replace) the passcode for a target and return it."""
        ...

    def verify(self, target: str, code: str) -> None:
        """
        Consume a passcode.

        Raises:
            PasscodeRejected: Missing, expired, locked or incorrect code
        """
        ...


class RegistrationHost(Protocol):
    """
    Port interface for the screen host driving a registration.

    Receives outcomes that arrive asynchronously (polling, provisioning)
    rather than as return values of a user action.
    """

    def state_changed(self, state: RegistrationState) -> None:
        ...

    def error(self, error: Exception) -> None:
        ...

    def completed(self, account_id: str) -> None:
        ...
