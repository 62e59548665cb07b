"""
Local auth adapter - In-process AuthProvider for development and tests.

Identities live in memory with bcrypt password hashes. Passcodes come from
an injected OtpStore and are logged instead of delivered; the current
session is kept in a KeyValueStorage like the hosted adapter does.
"""

import asyncio
import json
import logging
import secrets
import uuid
from typing import Any

import bcrypt

from src.domain.exceptions import ExternalServiceError, IdentityAlreadyExists, StorageError
from src.domain.models import AuthSession, Identity
from src.domain.ports import KeyValueStorage, OtpStore

logger = logging.getLogger(__name__)

SESSION_KEY = "auth:session"


class LocalAuthProvider:
    """
    Implements AuthProvider protocol in memory.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(self, otp_store: OtpStore, storage: KeyValueStorage, bcrypt_cost: int = 10) -> None:
        self._otp_store = otp_store
        self._storage = storage
        self._bcrypt_cost = bcrypt_cost
        self._identities: dict[str, Identity] = {}
        self._password_hashes: dict[str, bytes] = {}

    async def create_identity(
        self, email: str, password: str, phone: str, metadata: dict[str, Any]
    ) -> AuthSession:
        password_hash = await asyncio.to_thread(
            bcrypt.hashpw, password.encode(), bcrypt.gensalt(rounds=self._bcrypt_cost)
        )
        # No await between the uniqueness check and the insert
        if self._find(email) is not None or self._find(phone) is not None:
            raise IdentityAlreadyExists("User already registered", 422)

        identity = Identity(id=str(uuid.uuid4()), email=email, phone=phone, metadata=dict(metadata))
        self._identities[identity.id] = identity
        self._password_hashes[identity.id] = password_hash
        logger.info("[AUTH] Identity created: %s", identity.id)
        return self._open_session(identity, persist=False)

    async def sign_in(self, email: str, password: str) -> AuthSession:
        identity = self._find(email)
        if identity is None or not await asyncio.to_thread(
            bcrypt.checkpw, password.encode(), self._password_hashes[identity.id]
        ):
            raise ExternalServiceError("Invalid login credentials", 400)
        return self._open_session(identity)

    async def update_identity(self, session: AuthSession, metadata: dict[str, Any]) -> Identity:
        identity = self._identities.get(session.identity.id)
        if identity is None:
            raise ExternalServiceError("User not found", 404)
        identity.metadata.update(metadata)
        return identity

    async def send_one_time_passcode(self, phone_or_email: str) -> None:
        if self._find(phone_or_email) is None:
            raise ExternalServiceError("Signups not allowed for otp", 422)
        code = await asyncio.to_thread(self._otp_store.issue, phone_or_email)
        logger.info("[OTP] Target: %s Code: %s", phone_or_email, code)

    async def verify_one_time_passcode(self, phone_or_email: str, code: str) -> AuthSession:
        identity = self._find(phone_or_email)
        if identity is None:
            raise ExternalServiceError("User not found", 404)
        await asyncio.to_thread(self._otp_store.verify, phone_or_email, code)
        return self._open_session(identity)

    async def sign_out(self) -> None:
        try:
            self._storage.remove(SESSION_KEY)
        except StorageError as e:
            logger.warning("Could not clear stored session: %s", e)

    async def get_current_session(self) -> AuthSession | None:
        try:
            raw = self._storage.get(SESSION_KEY)
        except StorageError as e:
            logger.warning("Could not read stored session: %s", e)
            return None
        if not raw:
            return None
        try:
            data = json.loads(raw)
            identity = self._identities.get(data.get("user_id"))
        except (ValueError, AttributeError):
            logger.warning("Discarding unreadable stored session")
            return None
        if identity is None:
            return None
        return AuthSession(identity=identity, access_token=data.get("access_token"))

    async def get_current_identity(self) -> Identity | None:
        session = await self.get_current_session()
        return session.identity if session else None

    def _find(self, phone_or_email: str | None) -> Identity | None:
        if not phone_or_email:
            return None
        for identity in self._identities.values():
            if phone_or_email in (identity.email, identity.phone):
                return identity
        return None

    def _open_session(self, identity: Identity, persist: bool = True) -> AuthSession:
        session = AuthSession(
            identity=identity,
            access_token=secrets.token_urlsafe(24),
            refresh_token=secrets.token_urlsafe(24),
        )
        if persist:
            try:
                self._storage.set(
                    SESSION_KEY,
                    json.dumps({"user_id": identity.id, "access_token": session.access_token}),
                )
            except StorageError as e:
                logger.warning("Could not persist session: %s", e)
        return session
