"""
Account Provisioner - Creates the durable account behind a registration.

A provisioned account spans two identity spaces: the auth provider's
identity and the application user record. Both share one stable id, the
auth identity id, which becomes the record's user_id.

Provisioning Algorithm (ordering is significant)
================================================

1. National id must be present and known to the government record source.
   Nothing is created for unverifiable applicants.
2. Phone ownership check: if a user record already holds the phone number,
   the submitted credentials must recover that same account (idempotent
   retry); otherwise the phone belongs to someone else -> DuplicateAccount.
3. Create the auth identity. Phone-only applicants get a deterministic
   placeholder email derived from the phone digits.
4. If the identity already exists (retry after a partial success), sign in
   with the submitted credentials to recover its id.
5. Create the user record with status=pending, or accept the existing one
   (including a concurrent create that won the race).
6. Write the user_id back into the auth identity metadata (best effort).

Provisioning calls for the same phone number are serialized, so a UI
double-submit takes the recovery path instead of racing the create.
"""

import asyncio
import logging
import re
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

from .exceptions import (
    AuthProviderError,
    DuplicateAccount,
    ExternalServiceError,
    GovernmentLookupFailed,
    IdentityAlreadyExists,
    NationalIdNotFound,
    RecordAlreadyExists,
    RecordCreationFailed,
)
from .models import (
    AuthSession,
    ContactInfo,
    Credentials,
    ProvisionedAccount,
    UserRecord,
    VerifiedFields,
)
from .ports import AccountStatus, AuthProvider, GovernmentRecordSource, UserStore
from .validation import require_national_id

logger = logging.getLogger(__name__)

DEFAULT_PLACEHOLDER_DOMAIN = "sovs.local"


@dataclass
class _PhoneLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


@dataclass
class AccountProvisioner:
    """
    Domain service for account provisioning.

    Orchestrates national-id validation, auth identity creation/recovery
    and user record creation/reconciliation.
    """

    auth: AuthProvider
    users: UserStore
    records: GovernmentRecordSource
    placeholder_domain: str = DEFAULT_PLACEHOLDER_DOMAIN
    _locks: dict[str, _PhoneLock] = field(default_factory=dict, init=False, repr=False)

    async def provision(
        self,
        identity: VerifiedFields,
        contact: ContactInfo,
        credentials: Credentials,
    ) -> ProvisionedAccount:
        """
        Provision (or recover) the account for a verified applicant.

        Args:
            identity: Verified identity fields (document_number is the national id)
            contact: Validated contact info
            credentials: Validated password

        Returns:
            ProvisionedAccount; identical inputs always yield the same account_id

        Raises:
            NationalIdMissing: No document number for the session
            NationalIdNotFound: Unknown national id
            GovernmentLookupFailed: Record source unreachable
            AuthProviderError: Auth provider failure (message verbatim)
            DuplicateAccount: Existing account could not be recovered
            RecordCreationFailed: User store failure
        """
        national_id = require_national_id(identity.document_number)
        async with self._phone_lock(contact.phone_number):
            await self._validate_national_id(national_id)
            return await self._provision(national_id, identity, contact, credentials)

    @asynccontextmanager
    async def _phone_lock(self, phone_number: str) -> AsyncIterator[None]:
        """Serialize provisioning per phone; the entry goes once nobody holds or awaits it."""
        entry = self._locks.setdefault(phone_number, _PhoneLock())
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[phone_number]

    def auth_email(self, contact: ContactInfo) -> str:
        """Real email if supplied, else `<phone digits>@<placeholder domain>`."""
        if contact.email:
            return contact.email
        digits = re.sub(r"[^0-9]", "", contact.phone_number)
        return f"{digits}@{self.placeholder_domain}"

    async def _provision(
        self,
        national_id: str,
        identity: VerifiedFields,
        contact: ContactInfo,
        credentials: Credentials,
    ) -> ProvisionedAccount:
        email = self.auth_email(contact)

        existing = await self._find_record(contact.phone_number)
        if existing is not None:
            session = await self._recover_identity(email, credentials.password)
            if session.identity.id != existing.user_id:
                raise DuplicateAccount(
                    "An account with this phone number or email already exists."
                )
            logger.info("Phone %s already provisioned as %s", contact.phone_number, existing.user_id)
            await self._link_identity(session)
            return ProvisionedAccount.from_record(existing)

        session = await self._create_identity(email, identity, contact, credentials)
        account_id = session.identity.id

        record = await self._ensure_record(
            UserRecord(
                user_id=account_id,
                phone_number=contact.phone_number,
                email=contact.email,
                name=identity.first_name or "",
                surname=identity.last_name or "",
                date_of_birth=identity.date_of_birth or "",
                national_id=national_id,
                status=AccountStatus.PENDING,
            )
        )
        await self._link_identity(session)

        logger.info("Provisioned account %s", account_id)
        return ProvisionedAccount.from_record(record)

    async def _validate_national_id(self, national_id: str) -> None:
        try:
            record = await self.records.lookup_by_national_id(national_id)
        except ExternalServiceError as e:
            raise GovernmentLookupFailed(e.message or "Failed to validate national_id") from e
        if record is None:
            raise NationalIdNotFound(
                "Your identity was verified, but no official record was found."
            )

    async def _find_record(self, phone_or_email: str) -> UserRecord | None:
        try:
            return await self.users.get_by_phone_or_email(phone_or_email)
        except ExternalServiceError as e:
            raise RecordCreationFailed(e.message or "Failed to look up user") from e

    async def _create_identity(
        self,
        email: str,
        identity: VerifiedFields,
        contact: ContactInfo,
        credentials: Credentials,
    ) -> AuthSession:
        metadata = {
            "name": f"{identity.first_name} {identity.last_name}",
            "phone_number": contact.phone_number,
        }
        try:
            return await self.auth.create_identity(
                email, credentials.password, contact.phone_number, metadata
            )
        except IdentityAlreadyExists:
            logger.info("Auth identity for %s already exists, recovering via sign-in", email)
            return await self._recover_identity(email, credentials.password)
        except ExternalServiceError as e:
            raise AuthProviderError(e.message) from e

    async def _recover_identity(self, email: str, password: str) -> AuthSession:
        try:
            session = await self.auth.sign_in(email, password)
        except ExternalServiceError as e:
            raise DuplicateAccount(e.message or "Failed to sign in existing user") from e
        if not session.identity.id:
            raise DuplicateAccount("Failed to get user ID from auth provider")
        return session

    async def _ensure_record(self, record: UserRecord) -> UserRecord:
        try:
            existing = await self.users.get_by_id(record.user_id)
            if existing is not None:
                return existing
            return await self.users.create(record)
        except RecordAlreadyExists:
            logger.info("User record %s created concurrently, accepting it", record.user_id)
            try:
                existing = await self.users.get_by_id(record.user_id)
            except ExternalServiceError as e:
                raise RecordCreationFailed(e.message) from e
            if existing is None:
                raise RecordCreationFailed(
                    "An account with this phone number or email already exists."
                ) from None
            return existing
        except ExternalServiceError as e:
            raise RecordCreationFailed(e.message or "Failed to create user") from e

    async def _link_identity(self, session: AuthSession) -> None:
        try:
            await self.auth.update_identity(session, {"user_id": session.identity.id})
        except ExternalServiceError as e:
            logger.warning(
                "Could not back-reference user_id on identity %s: %s",
                session.identity.id,
                e.message,
            )
