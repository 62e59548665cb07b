"""
Domain layer - Pure orchestration logic with zero framework imports.

This package contains the registration state machine, the callback
reconciler, account provisioning and passcode login. It defines its own
port interfaces for infrastructure abstraction; adapters live in
src.adapters and are wired in by the API layer.
"""

from .draft_cache import DraftCache
from .exceptions import (
    ErrorKind,
    ExternalServiceError,
    IdentityAlreadyExists,
    RecordAlreadyExists,
    RegistrationError,
    StorageError,
    ValidationFailed,
)
from .login import LoginService
from .ports import (
    AccountStatus,
    AuthProvider,
    KeyValueStorage,
    RegistrationHost,
    RegistrationState,
    UserStore,
    VerificationProvider,
    VerificationStatus,
)
from .provisioning import AccountProvisioner
from .reconciler import CallbackReconciler, ReconcilerState
from .registration import RegistrationOrchestrator
from .verification import VerificationSessionClient

__all__ = [
    "AccountProvisioner",
    "AccountStatus",
    "AuthProvider",
    "CallbackReconciler",
    "DraftCache",
    "ErrorKind",
    "ExternalServiceError",
    "IdentityAlreadyExists",
    "KeyValueStorage",
    "LoginService",
    "ReconcilerState",
    "RecordAlreadyExists",
    "RegistrationError",
    "RegistrationHost",
    "RegistrationOrchestrator",
    "RegistrationState",
    "StorageError",
    "UserStore",
    "ValidationFailed",
    "VerificationProvider",
    "VerificationSessionClient",
    "VerificationStatus",
]
