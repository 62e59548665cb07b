"""Local adapters - In-process collaborators for the `local` backend strategy."""

from .auth import LocalAuthProvider
from .otp import InMemoryOtpStore
from .records import InMemoryGovernmentRecords, LocalDocumentVerifier
from .users import InMemoryUserStore
from .verification import LocalVerificationProvider

__all__ = [
    "InMemoryGovernmentRecords",
    "InMemoryOtpStore",
    "InMemoryUserStore",
    "LocalAuthProvider",
    "LocalDocumentVerifier",
    "LocalVerificationProvider",
]
