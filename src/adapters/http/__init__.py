"""HTTP adapters - Hosted backend collaborators over httpx."""

from .didit import DiditDocumentVerifier, DiditVerificationProvider
from .functions import FunctionsClient
from .government import FunctionsGovernmentRecords
from .supabase_auth import SupabaseAuthProvider
from .users import FunctionsUserStore

__all__ = [
    "DiditDocumentVerifier",
    "DiditVerificationProvider",
    "FunctionsClient",
    "FunctionsGovernmentRecords",
    "FunctionsUserStore",
    "SupabaseAuthProvider",
]
