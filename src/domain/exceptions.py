"""
Domain exceptions - Semantic error types for registration and login.

Every domain error carries an ErrorKind so outer layers can decide how to
present it without inspecting concrete classes:

- VALIDATION: user-correctable input problem, no state regression
- RECOVERABLE: external outcome that routes back to an earlier step
  (declined verification, unknown national id, unresolved duplicate)
- FATAL_EXTERNAL: collaborator/transport failure surfaced verbatim with
  a retry affordance

Adapter-level errors (ExternalServiceError and its subclasses) never reach
callers of the domain services; they are converted at the service boundary.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Presentation class of a domain error."""

    VALIDATION = "validation"
    RECOVERABLE = "recoverable"
    FATAL_EXTERNAL = "fatal_external"


class RegistrationError(Exception):
    """Base class for registration domain errors."""

    kind = ErrorKind.FATAL_EXTERNAL

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message


class ValidationFailed(RegistrationError):
    """User input rejected by a validation rule."""

    kind = ErrorKind.VALIDATION

    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field


class InvalidTransition(RegistrationError):
    """Operation is not allowed in the orchestrator's current state."""

    kind = ErrorKind.VALIDATION


# Verification


class CreateSessionFailed(RegistrationError):
    """Identity-verification provider could not create a session."""

    pass


class ResultFetchFailed(RegistrationError):
    """Verification result could not be fetched (transport/provider failure)."""

    pass


class VerificationDeclined(RegistrationError):
    """Provider declined the identity verification."""

    kind = ErrorKind.RECOVERABLE


class VerificationExpired(RegistrationError):
    """Verification session expired before a decision was reached."""

    kind = ErrorKind.RECOVERABLE


class VerificationIncomplete(RegistrationError):
    """Approved verification is missing required identity fields."""

    kind = ErrorKind.RECOVERABLE


class DocumentRejected(RegistrationError):
    """Local selfie/ID capture could not be verified."""

    kind = ErrorKind.RECOVERABLE


class DocumentVerificationFailed(RegistrationError):
    """Document verifier could not be reached."""

    pass


# Provisioning


class NationalIdMissing(RegistrationError):
    """No national id for the session; verification must be restarted."""

    kind = ErrorKind.RECOVERABLE


class NationalIdNotFound(RegistrationError):
    """National id has no matching government record."""

    kind = ErrorKind.RECOVERABLE


class GovernmentLookupFailed(RegistrationError):
    """Government record source could not be reached."""

    pass


class AuthProviderError(RegistrationError):
    """Auth provider rejected a request; message is shown verbatim."""

    pass


class DuplicateAccount(RegistrationError):
    """Account exists and could not be recovered with the given credentials."""

    kind = ErrorKind.RECOVERABLE


class RecordCreationFailed(RegistrationError):
    """Application user record could not be created (retriable)."""

    pass


# Login


class AccountNotFound(RegistrationError):
    """No account is registered for the phone number or email."""

    kind = ErrorKind.RECOVERABLE


class ResendTooSoon(RegistrationError):
    """A one-time passcode was requested again inside the cooldown window."""

    kind = ErrorKind.VALIDATION

    def __init__(self, retry_after: int) -> None:
        super().__init__(f"Please wait {retry_after} seconds before requesting a new code")
        self.retry_after = retry_after


class PasscodeRejected(RegistrationError):
    """One-time passcode missing, expired, locked or incorrect."""

    kind = ErrorKind.RECOVERABLE


# Adapter-level errors


class ExternalServiceError(Exception):
    """Transport or provider failure raised by an adapter."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class IdentityAlreadyExists(ExternalServiceError):
    """Auth provider already holds an identity for this email/phone."""

    pass


class RecordAlreadyExists(ExternalServiceError):
    """User store already holds a record with this id/phone/email."""

    pass


class StorageError(Exception):
    """Durable key-value storage failed to read or write."""

    pass
