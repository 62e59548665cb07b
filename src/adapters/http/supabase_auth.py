"""
Supabase auth adapter - AuthProvider over the GoTrue REST API.

Sessions opened by sign-in or passcode verification are persisted to a
KeyValueStorage (the equivalent of supabase-js `persistSession`), so the
current session survives restarts of the host.

GoTrue signals an existing account two ways: an explicit "User already
registered" error, or (with email confirmation enabled) a user object with
an empty `identities` list. Both become IdentityAlreadyExists.
"""

import json
import logging
from typing import Any

import httpx

from src.domain.exceptions import ExternalServiceError, IdentityAlreadyExists, StorageError
from src.domain.models import AuthSession, Identity
from src.domain.ports import KeyValueStorage

from .functions import error_message

logger = logging.getLogger(__name__)

SESSION_KEY = "auth:session"

_EXISTS_CODES = {"user_already_exists", "email_exists", "phone_exists"}


def identity_from_json(data: dict[str, Any]) -> Identity:
    return Identity(
        id=str(data.get("id") or ""),
        email=data.get("email") or None,
        phone=data.get("phone") or None,
        metadata=dict(data.get("user_metadata") or {}),
    )


def session_from_json(data: dict[str, Any]) -> AuthSession:
    return AuthSession(
        identity=identity_from_json(data.get("user") or {}),
        access_token=data.get("access_token"),
        refresh_token=data.get("refresh_token"),
    )


def session_to_json(session: AuthSession) -> dict[str, Any]:
    identity = session.identity
    return {
        "access_token": session.access_token,
        "refresh_token": session.refresh_token,
        "user": {
            "id": identity.id,
            "email": identity.email,
            "phone": identity.phone,
            "user_metadata": identity.metadata,
        },
    }


class SupabaseAuthProvider:
    """Implements AuthProvider protocol via Supabase GoTrue."""

    def __init__(
        self,
        url: str,
        anon_key: str,
        storage: KeyValueStorage,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._anon_key = anon_key
        self._storage = storage
        self._client = httpx.AsyncClient(
            base_url=url.rstrip("/") + "/auth/v1/",
            headers={"apikey": anon_key},
            timeout=timeout,
            transport=transport,
        )

    async def create_identity(
        self, email: str, password: str, phone: str, metadata: dict[str, Any]
    ) -> AuthSession:
        body = await self._request(
            "POST", "signup", json={"email": email, "password": password, "data": metadata}
        )
        if "access_token" in body:
            session = session_from_json(body)
        else:
            user = body.get("user") or body
            if user.get("identities") == []:
                raise IdentityAlreadyExists("User already registered", 422)
            session = AuthSession(identity=identity_from_json(user))

        if not session.identity.id:
            raise ExternalServiceError("Failed to get user ID from auth provider")
        return session

    async def sign_in(self, email: str, password: str) -> AuthSession:
        body = await self._request(
            "POST",
            "token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        session = session_from_json(body)
        self._persist(session)
        return session

    async def update_identity(self, session: AuthSession, metadata: dict[str, Any]) -> Identity:
        if not session.access_token:
            raise ExternalServiceError("Auth session missing!", 401)
        body = await self._request(
            "PUT", "user", json={"data": metadata}, access_token=session.access_token
        )
        return identity_from_json(body)

    async def send_one_time_passcode(self, phone_or_email: str) -> None:
        payload: dict[str, Any] = {"create_user": False}
        payload[_channel_field(phone_or_email)] = phone_or_email
        await self._request("POST", "otp", json=payload)

    async def verify_one_time_passcode(self, phone_or_email: str, code: str) -> AuthSession:
        field = _channel_field(phone_or_email)
        body = await self._request(
            "POST",
            "verify",
            json={
                "type": "email" if field == "email" else "sms",
                field: phone_or_email,
                "token": code,
            },
        )
        session = session_from_json(body)
        self._persist(session)
        return session

    async def sign_out(self) -> None:
        session = await self.get_current_session()
        if session is not None and session.access_token:
            try:
                await self._request("POST", "logout", access_token=session.access_token)
            except ExternalServiceError as e:
                # token already revoked or expired server-side
                if e.status_code not in (401, 403, 404):
                    raise
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
            return session_from_json(json.loads(raw))
        except (ValueError, AttributeError):
            logger.warning("Discarding unreadable stored session")
            return None

    async def get_current_identity(self) -> Identity | None:
        session = await self.get_current_session()
        if session is None or not session.access_token:
            return None
        body = await self._request("GET", "user", access_token=session.access_token)
        return identity_from_json(body)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: dict[str, str] | None = None,
        access_token: str | None = None,
    ) -> dict[str, Any]:
        headers = {"Authorization": f"Bearer {access_token or self._anon_key}"}
        try:
            response = await self._client.request(
                method, path, json=json, params=params, headers=headers
            )
        except httpx.HTTPError as e:
            raise ExternalServiceError(str(e) or "Network request failed") from e

        if response.is_error:
            message = error_message(response)
            if _is_exists_error(response, message):
                raise IdentityAlreadyExists(message, response.status_code)
            raise ExternalServiceError(message, response.status_code)

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise ExternalServiceError("Invalid response from auth provider") from e

    def _persist(self, session: AuthSession) -> None:
        try:
            self._storage.set(SESSION_KEY, json.dumps(session_to_json(session)))
        except StorageError as e:
            logger.warning("Could not persist session: %s", e)


def _channel_field(phone_or_email: str) -> str:
    return "email" if "@" in phone_or_email else "phone"


def _is_exists_error(response: httpx.Response, message: str) -> bool:
    if "already registered" in message:
        return True
    try:
        body = response.json()
    except ValueError:
        return False
    return isinstance(body, dict) and body.get("error_code") in _EXISTS_CODES
