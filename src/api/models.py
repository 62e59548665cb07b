"""
API request and response models.

Pydantic models for FastAPI endpoint validation and OpenAPI schema generation.
Field rules (phone required, password length, passcode digits) are enforced
by the domain so the caller sees the same messages on every surface.
"""

from typing import Literal

from pydantic import Base64Bytes, BaseModel, Field

from src.domain.ports import AccountStatus, RegistrationState, VerificationStatus
from src.domain.validation import PasswordStrength


class StartRegistrationRequest(BaseModel):
    """Request model for opening a registration."""

    method: Literal["redirect", "capture"] = Field(
        "redirect",
        description="redirect: hosted verification session; capture: upload selfie and ID",
    )
    language: str | None = Field(None, description="Verification UI language (defaults to settings)")


class StartRegistrationResponse(BaseModel):
    registration_id: str
    state: RegistrationState
    session_id: str | None = None
    verification_url: str | None = None


class CaptureIdentityRequest(BaseModel):
    """Request model for the local capture path (base64 images)."""

    selfie_image: Base64Bytes
    document_image: Base64Bytes


class IdentityResponse(BaseModel):
    first_name: str | None
    last_name: str | None
    date_of_birth: str | None
    document_number: str | None


class RegistrationStatusResponse(BaseModel):
    """Snapshot of a registration, including the last asynchronous error."""

    registration_id: str
    state: RegistrationState
    session_id: str | None = None
    identity: IdentityResponse | None = None
    phone_number: str | None = None
    email: str | None = None
    account_id: str | None = None
    error: str | None = None
    error_kind: str | None = None


class ContactUpdateRequest(BaseModel):
    """Partial contact edit; omitted fields are left alone."""

    phone_number: str | None = None
    email: str | None = None


class ContactConfirmRequest(BaseModel):
    phone_number: str | None = None
    email: str | None = None


class CredentialsRequest(BaseModel):
    """Omit both fields to retry with the credentials of a failed attempt."""

    password: str | None = None
    confirm_password: str | None = None


class AccountResponse(BaseModel):
    account_id: str
    status: AccountStatus
    name: str
    surname: str
    phone_number: str
    email: str | None = None
    message: str


class PasswordStrengthRequest(BaseModel):
    password: str


class PasswordStrengthResponse(BaseModel):
    strength: PasswordStrength


class LoginCodeRequest(BaseModel):
    phone_or_email: str = Field(..., description="Registered phone number or email")


class LoginCodeResponse(BaseModel):
    message: str
    channel: Literal["email", "sms"]


class LoginVerifyRequest(BaseModel):
    phone_or_email: str
    code: str = Field(..., description="6-digit passcode")


class SessionResponse(BaseModel):
    user_id: str
    email: str | None = None
    phone: str | None = None
    access_token: str | None = None
    refresh_token: str | None = None


class VerificationDecisionRequest(BaseModel):
    """Development-only: record a verification outcome for a local session."""

    status: VerificationStatus
    first_name: str | None = None
    last_name: str | None = None
    date_of_birth: str | None = None
    document_number: str | None = None


class VerificationDecisionResponse(BaseModel):
    callback_url: str


class ErrorResponse(BaseModel):
    """Standard error response model."""

    detail: str
    kind: str | None = Field(None, description="validation, recoverable or fatal_external")
    field: str | None = Field(None, description="Offending input field, for validation errors")
