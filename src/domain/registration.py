"""
Registration domain service - Resumable registration state machine.

This module contains the orchestrator that walks an applicant from identity
verification to a provisioned account.

Registration State Machine
==========================

    CAPTURING_IDENTITY
        start_verification() -> AWAITING_VERIFICATION
        capture_identity()   -> CONFIRMING_DETAILS (local capture path)
    AWAITING_VERIFICATION
        reconciler approves  -> CONFIRMING_DETAILS
        reconciler fails     -> CAPTURING_IDENTITY
    CONFIRMING_DETAILS
        confirm_details()    -> SETTING_CREDENTIALS
    SETTING_CREDENTIALS
        set_credentials()    -> PROVISIONING
    PROVISIONING
        success              -> COMPLETED
        national id problem  -> CAPTURING_IDENTITY (session must be redone)
        other failure        -> CONFIRMING_DETAILS (contact info preserved)

Entering CONFIRMING_DETAILS or SETTING_CREDENTIALS persists the draft through
the DraftCache (debounced); COMPLETED clears it together with the session slot.

User actions raise validation/provisioning errors to the caller. Outcomes
that arrive asynchronously (polling results) are pushed to the host.
"""

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace

from .draft_cache import DraftCache
from .exceptions import (
    DocumentRejected,
    DocumentVerificationFailed,
    ExternalServiceError,
    GovernmentLookupFailed,
    InvalidTransition,
    NationalIdMissing,
    NationalIdNotFound,
    RegistrationError,
)
from .models import (
    ContactInfo,
    Credentials,
    ProvisionedAccount,
    RegistrationDraft,
    SessionHandle,
    VerificationSession,
    VerifiedFields,
)
from .ports import (
    DocumentVerifier,
    GovernmentRecordSource,
    RegistrationHost,
    RegistrationState,
)
from .provisioning import AccountProvisioner
from .reconciler import DEFAULT_POLL_INTERVAL, CallbackReconciler
from .validation import (
    require_national_id,
    validate_email,
    validate_password,
    validate_phone_number,
)
from .verification import VerificationSessionClient

logger = logging.getLogger(__name__)

LOCAL_SESSION_PREFIX = "local-"

_DRAFT_STATES = (RegistrationState.CONFIRMING_DETAILS, RegistrationState.SETTING_CREDENTIALS)


@dataclass
class RegistrationOrchestrator:
    """
    Domain service for one registration attempt.

    Coordinates the verification client, callback reconciler, draft cache
    and account provisioner.
    """

    sessions: VerificationSessionClient
    drafts: DraftCache
    provisioner: AccountProvisioner
    host: RegistrationHost
    documents: DocumentVerifier | None = None
    records: GovernmentRecordSource | None = None
    poll_interval: float = DEFAULT_POLL_INTERVAL
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    state: RegistrationState = field(default=RegistrationState.CAPTURING_IDENTITY, init=False)
    session_id: str | None = field(default=None, init=False)
    identity: VerifiedFields | None = field(default=None, init=False)
    draft: RegistrationDraft | None = field(default=None, init=False)
    contact: ContactInfo | None = field(default=None, init=False)
    account: ProvisionedAccount | None = field(default=None, init=False)

    def __post_init__(self) -> None:
        self.reconciler = CallbackReconciler(
            self.sessions, self, poll_interval=self.poll_interval, sleep=self.sleep
        )
        self._staged: Credentials | None = None
        self._provisioning: asyncio.Task | None = None

    # Identity capture

    async def start_verification(self, language: str, return_target: str) -> SessionHandle:
        """
        Start a provider verification session and begin polling it.

        Starting again while awaiting replaces the previous session.

        Raises:
            CreateSessionFailed: Provider could not create a session
        """
        self._require(RegistrationState.CAPTURING_IDENTITY, RegistrationState.AWAITING_VERIFICATION)

        handle = await self.sessions.start(language, return_target)
        self.session_id = handle.session_id
        self.identity = None
        self.reconciler.track(handle.session_id)
        self._transition(RegistrationState.AWAITING_VERIFICATION)
        return handle

    async def capture_identity(self, selfie: bytes, document: bytes) -> VerifiedFields:
        """
        Verify a locally captured selfie + ID and look up the official record.

        Raises:
            DocumentRejected: Images could not be verified
            NationalIdNotFound: Verified, but no government record exists
            DocumentVerificationFailed / GovernmentLookupFailed: Collaborator down
        """
        self._require(RegistrationState.CAPTURING_IDENTITY)
        if self.documents is None or self.records is None:
            raise InvalidTransition("Local identity capture is not available")

        try:
            national_id = await self.documents.verify(selfie, document)
        except ExternalServiceError as e:
            raise DocumentVerificationFailed(e.message or "Failed to verify identity") from e
        if not national_id:
            raise DocumentRejected(
                "Verification failed. Please ensure your ID is valid and your photo is clear."
            )

        try:
            record = await self.records.lookup_by_national_id(national_id)
        except ExternalServiceError as e:
            raise GovernmentLookupFailed(
                e.message or "Failed to fetch government data. Please try again."
            ) from e
        if record is None:
            raise NationalIdNotFound(
                "Your identity was verified, but no official record was found. "
                "Registration cannot be completed."
            )

        self.session_id = f"{LOCAL_SESSION_PREFIX}{uuid.uuid4().hex}"
        self.identity = VerifiedFields(
            first_name=record.name,
            last_name=record.surname,
            date_of_birth=record.date_of_birth,
            document_number=national_id,
        )
        self.draft = RegistrationDraft(
            session_id=self.session_id,
            phone_number=record.phone_number,
            email=record.email or "",
        )
        self._transition(RegistrationState.CONFIRMING_DETAILS)
        return self.identity

    async def resume(self, callback_url: str | None = None) -> RegistrationState:
        """
        Pick up a pending verification after a reload or provider redirect.

        Args:
            callback_url: Inbound callback URL; its session_id wins over the
                cached one

        Returns:
            State after the resume attempt
        """
        callback_id = self.sessions.session_id_from_callback(callback_url)

        if self.state in (
            RegistrationState.CAPTURING_IDENTITY,
            RegistrationState.AWAITING_VERIFICATION,
        ):
            candidate = callback_id or self.sessions.cached_session_id()
            if candidate is not None and candidate != self.session_id:
                self.session_id = candidate
                self._transition(RegistrationState.AWAITING_VERIFICATION)
            await self.reconciler.mount(callback_id)
        elif callback_id and callback_id != self.session_id:
            logger.info(
                "Ignoring callback for session %s while in %s", callback_id, self.state.value
            )
        return self.state

    # VerificationListener

    async def verification_approved(self, session: VerificationSession) -> None:
        self.session_id = session.session_id
        self.identity = session.verified_fields
        self.draft = self.drafts.load(session.session_id) or RegistrationDraft(
            session_id=session.session_id
        )
        self._transition(RegistrationState.CONFIRMING_DETAILS)

    async def verification_failed(self, error: RegistrationError) -> None:
        self.session_id = None
        self.identity = None
        self.draft = None
        self._transition(RegistrationState.CAPTURING_IDENTITY)
        self.host.error(error)

    # Details and credentials

    def update_contact(self, phone_number: str | None = None, email: str | None = None) -> None:
        """Stage contact field edits; persisted after the debounce window."""
        self._require(*_DRAFT_STATES)
        changes = {}
        if phone_number is not None:
            changes["phone_number"] = phone_number
        if email is not None:
            changes["email"] = email
        if not changes:
            return
        self.draft = replace(self.draft, **changes)
        self.drafts.save(self.session_id, **changes)

    def confirm_details(self, phone_number: str | None, email: str | None = None) -> ContactInfo:
        """
        Validate and confirm contact info.

        Raises:
            ValidationFailed: Missing phone or malformed email (state unchanged)
        """
        self._require(*_DRAFT_STATES)
        contact = ContactInfo(
            phone_number=validate_phone_number(phone_number),
            email=validate_email(email),
        )
        self.contact = contact
        self.draft = replace(
            self.draft, phone_number=contact.phone_number, email=contact.email or ""
        )
        self._transition(RegistrationState.SETTING_CREDENTIALS)
        return contact

    async def set_credentials(
        self, password: str | None = None, confirmation: str | None = None
    ) -> ProvisionedAccount:
        """
        Validate the password and provision the account.

        A repeated call while provisioning is in flight awaits the same
        attempt; a call after completion returns the provisioned account.
        Omitting the password reuses credentials staged by an earlier
        failed attempt.

        Raises:
            ValidationFailed: Password rules violated (state unchanged)
            RegistrationError: Provisioning failure, after the state regressed
        """
        if self.state == RegistrationState.COMPLETED and self.account is not None:
            return self.account
        if self.state == RegistrationState.PROVISIONING and self._provisioning is not None:
            return await asyncio.shield(self._provisioning)
        self._require(RegistrationState.SETTING_CREDENTIALS)

        if password is None and self._staged is not None:
            credentials = self._staged
        else:
            credentials = Credentials(
                password=validate_password(password, confirmation),
                confirmation=confirmation,
            )
        self._staged = credentials

        try:
            require_national_id(self.identity.document_number if self.identity else None)
        except NationalIdMissing:
            self._abandon_session()
            raise

        self._transition(RegistrationState.PROVISIONING)
        self._provisioning = asyncio.get_running_loop().create_task(self._provision(credentials))
        return await asyncio.shield(self._provisioning)

    async def _provision(self, credentials: Credentials) -> ProvisionedAccount:
        """Run one provisioning attempt and apply its outcome to the state machine."""
        try:
            account = await self.provisioner.provision(self.identity, self.contact, credentials)
        except (NationalIdMissing, NationalIdNotFound):
            self._provisioning = None
            self._abandon_session()
            raise
        except RegistrationError as e:
            self._provisioning = None
            logger.warning("Provisioning failed (%s): %s", e.kind.value, e.message)
            self._transition(RegistrationState.CONFIRMING_DETAILS)
            raise
        except asyncio.CancelledError:
            self._provisioning = None
            logger.warning("Provisioning cancelled")
            self._transition(RegistrationState.SETTING_CREDENTIALS)
            raise

        self._complete(account)
        return account

    # Lifecycle

    async def cancel(self) -> None:
        """Drop the current attempt: draft, session slot and staged data."""
        if self.session_id is not None:
            self.drafts.clear(self.session_id)
        self.reconciler.reset()
        self._reset_attempt()
        self._transition(RegistrationState.CAPTURING_IDENTITY)

    async def close(self) -> None:
        """Tear down polling and flush pending draft edits."""
        self.reconciler.teardown()
        await self.drafts.flush()

    def _complete(self, account: ProvisionedAccount) -> None:
        self.account = account
        self._provisioning = None
        self._staged = None
        self.drafts.clear(self.session_id)
        self.reconciler.reset()
        self._transition(RegistrationState.COMPLETED)
        self.host.completed(account.account_id)

    def _abandon_session(self) -> None:
        """National id data must be redone; the session's draft is unreachable after."""
        if self.session_id is not None:
            self.drafts.clear(self.session_id)
        self.reconciler.reset()
        self._reset_attempt()
        self._transition(RegistrationState.CAPTURING_IDENTITY)

    def _reset_attempt(self) -> None:
        self.session_id = None
        self.identity = None
        self.draft = None
        self.contact = None
        self._staged = None

    def _require(self, *states: RegistrationState) -> None:
        if self.state not in states:
            raise InvalidTransition(f"Not allowed while {self.state.value}")

    def _transition(self, state: RegistrationState) -> None:
        if state != self.state:
            logger.info("Registration %s -> %s", self.state.value, state.value)
        self.state = state
        if state in _DRAFT_STATES and self.draft is not None:
            self.drafts.save(
                self.draft.session_id,
                phone_number=self.draft.phone_number,
                email=self.draft.email,
            )
        self.host.state_changed(state)
