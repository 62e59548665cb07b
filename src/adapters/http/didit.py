"""
Didit adapters - Hosted identity verification via cloud functions.

DiditVerificationProvider implements VerificationProvider over the
`didit-session` function (redirect flow). DiditDocumentVerifier implements
DocumentVerifier over `didit-verify` (direct document image upload).
"""

import logging

from src.domain.exceptions import ExternalServiceError
from src.domain.models import VerificationSession, VerifiedFields
from src.domain.ports import VerificationStatus

from .functions import FunctionsClient

logger = logging.getLogger(__name__)

# Didit decision vocabulary -> domain status; unknown values count as pending
_STATUS_MAP = {
    "not started": VerificationStatus.CREATED,
    "in progress": VerificationStatus.PENDING,
    "in review": VerificationStatus.PENDING,
    "approved": VerificationStatus.APPROVED,
    "declined": VerificationStatus.DECLINED,
    "expired": VerificationStatus.EXPIRED,
    "abandoned": VerificationStatus.EXPIRED,
}


def map_status(raw: str | None) -> VerificationStatus:
    return _STATUS_MAP.get((raw or "").strip().lower(), VerificationStatus.PENDING)


class DiditVerificationProvider:
    """Implements VerificationProvider protocol via the didit-session function."""

    def __init__(self, functions: FunctionsClient, vendor_data: str | None = None) -> None:
        self._functions = functions
        self._vendor_data = vendor_data

    async def create_session(self, language: str, return_url: str) -> tuple[str, str]:
        body = await self._functions.call(
            "didit-session",
            method="POST",
            json={
                "vendor_data": self._vendor_data,
                "metadata": None,
                "language": language,
                "callback": return_url,
            },
        )
        if not body.get("success", True) or not body.get("url") or not body.get("session_id"):
            raise ExternalServiceError(body.get("error") or "Failed to create verification session")
        return str(body["session_id"]), body["url"]

    async def get_session_result(self, session_id: str) -> VerificationSession:
        body = await self._functions.call(f"didit-session/{session_id}")
        status = map_status(body.get("status") or body.get("decision_status"))

        fields = None
        if status == VerificationStatus.APPROVED:
            user_data = body.get("user_data") or {}
            fields = VerifiedFields(
                first_name=user_data.get("first_name"),
                last_name=user_data.get("last_name"),
                date_of_birth=user_data.get("date_of_birth"),
                document_number=user_data.get("document_number"),
            )
        return VerificationSession(session_id=session_id, status=status, verified_fields=fields)


class DiditDocumentVerifier:
    """
    Implements DocumentVerifier protocol via the didit-verify function.

    The function runs document liveness on the uploaded ID; the selfie is
    attached for the provider's face match.
    """

    def __init__(self, functions: FunctionsClient, vendor_data: str | None = None) -> None:
        self._functions = functions
        self._vendor_data = vendor_data

    async def verify(self, selfie: bytes, document: bytes) -> str | None:
        files = {
            "front_image": ("front_image.jpg", document, "image/jpeg"),
            "selfie_image": ("selfie_image.jpg", selfie, "image/jpeg"),
        }
        data = {"perform_document_liveness": "true"}
        if self._vendor_data:
            data["vendor_data"] = self._vendor_data

        try:
            body = await self._functions.call("didit-verify", method="POST", files=files, data=data)
        except ExternalServiceError as e:
            if e.status_code is not None and 400 <= e.status_code < 500:
                logger.info("Document rejected: %s", e.message)
                return None
            raise

        if not body.get("success"):
            logger.info("Document rejected: %s", body.get("error"))
            return None
        return (body.get("data") or {}).get("document_number") or None
