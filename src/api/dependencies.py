"""
FastAPI dependencies - Service wiring and dependency injection factories.

build_services() picks collaborator implementations from Settings once at
startup (hosted backend or local stand-ins, storage backend, user store
backend). Routes receive the resulting singletons through Depends().
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from fastapi import HTTPException, Request, status
from psycopg_pool import AsyncConnectionPool

from src.adapters.http import (
    DiditDocumentVerifier,
    DiditVerificationProvider,
    FunctionsClient,
    FunctionsGovernmentRecords,
    FunctionsUserStore,
    SupabaseAuthProvider,
)
from src.adapters.local import (
    InMemoryGovernmentRecords,
    InMemoryOtpStore,
    InMemoryUserStore,
    LocalAuthProvider,
    LocalDocumentVerifier,
    LocalVerificationProvider,
)
from src.adapters.repository import PostgresUserStore, run_migrations
from src.adapters.storage import FileStorage, MemoryStorage, PrefixedStorage, RedisStorage
from src.api.registry import Registration, RegistrationRegistry
from src.config.settings import Settings
from src.domain.draft_cache import DraftCache
from src.domain.login import LoginService
from src.domain.ports import (
    AuthProvider,
    DocumentVerifier,
    GovernmentRecordSource,
    KeyValueStorage,
    RegistrationHost,
    UserStore,
    VerificationProvider,
)
from src.domain.provisioning import AccountProvisioner
from src.domain.registration import RegistrationOrchestrator
from src.domain.verification import VerificationSessionClient

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Collaborators shared by every request."""

    settings: Settings
    storage: KeyValueStorage
    verification: VerificationProvider
    documents: DocumentVerifier
    records: GovernmentRecordSource
    auth: AuthProvider
    users: UserStore
    provisioner: AccountProvisioner
    login: LoginService
    registry: RegistrationRegistry
    pool: AsyncConnectionPool | None = None
    _closers: list[Callable[[], Awaitable[None] | None]] = field(default_factory=list, repr=False)

    async def aclose(self) -> None:
        """Shut down registrations, then release clients and pools."""
        await self.registry.shutdown()
        for closer in reversed(self._closers):
            result = closer()
            if result is not None:
                await result


def build_storage(settings: Settings) -> KeyValueStorage:
    if settings.storage_backend == "file":
        return FileStorage(settings.storage_path)
    if settings.storage_backend == "redis":
        return RedisStorage.from_url(settings.redis_url, ttl_seconds=settings.storage_ttl_seconds)
    return MemoryStorage()


def callback_url(settings: Settings, registration_id: str) -> str:
    """Where the verification provider sends the applicant back to."""
    return f"{settings.public_base_url.rstrip('/')}/v1/registrations/{registration_id}/callback"


async def build_services(settings: Settings) -> Services:
    """
    Wire collaborators for the configured strategy.

    Opens the connection pool and runs migrations when the user store is
    postgres.
    """
    closers: list[Callable[[], Awaitable[None] | None]] = []
    storage = build_storage(settings)
    if isinstance(storage, RedisStorage):
        closers.append(storage.close)

    if settings.backend == "hosted":
        functions = FunctionsClient(
            settings.functions_base_url,
            api_key=settings.supabase_anon_key or None,
            timeout=settings.http_timeout_seconds,
        )
        closers.append(functions.aclose)
        verification: VerificationProvider = DiditVerificationProvider(functions)
        documents: DocumentVerifier = DiditDocumentVerifier(functions)
        records: GovernmentRecordSource = FunctionsGovernmentRecords(functions)
        supabase = SupabaseAuthProvider(
            settings.supabase_url,
            settings.supabase_anon_key,
            storage,
            timeout=settings.http_timeout_seconds,
        )
        closers.append(supabase.aclose)
        auth: AuthProvider = supabase
    else:
        functions = None
        verification = LocalVerificationProvider(
            f"{settings.public_base_url.rstrip('/')}/v1/dev/verification"
        )
        documents = LocalDocumentVerifier()
        records = InMemoryGovernmentRecords()
        otp_store = InMemoryOtpStore(
            expiry_seconds=settings.otp_expiry_seconds,
            max_attempts=settings.otp_max_attempts,
            lock_seconds=settings.otp_lock_seconds,
            bcrypt_cost=settings.bcrypt_cost,
        )
        auth = LocalAuthProvider(otp_store, storage, bcrypt_cost=settings.bcrypt_cost)

    pool = None
    if settings.user_store_backend == "postgres":
        logger.info("Connecting to database...")
        pool = AsyncConnectionPool(
            conninfo=settings.database_url,
            min_size=settings.pool_min_size,
            max_size=settings.pool_max_size,
            open=False,
        )
        await pool.open()
        closers.append(pool.close)
        logger.info("Running database migrations...")
        await run_migrations(pool)
        users: UserStore = PostgresUserStore(pool)
    elif settings.user_store_backend == "functions":
        if functions is None:
            functions = FunctionsClient(
                settings.functions_base_url,
                api_key=settings.supabase_anon_key or None,
                timeout=settings.http_timeout_seconds,
            )
            closers.append(functions.aclose)
        users = FunctionsUserStore(functions)
    else:
        users = InMemoryUserStore()

    provisioner = AccountProvisioner(
        auth=auth,
        users=users,
        records=records,
        placeholder_domain=settings.placeholder_email_domain,
    )

    def build_orchestrator(
        registration_id: str, host: RegistrationHost
    ) -> RegistrationOrchestrator:
        scoped = PrefixedStorage(storage, f"registration:{registration_id}:")
        return RegistrationOrchestrator(
            sessions=VerificationSessionClient(verification, scoped),
            drafts=DraftCache(scoped, debounce_seconds=settings.draft_debounce_seconds),
            provisioner=provisioner,
            host=host,
            documents=documents,
            records=records,
            poll_interval=settings.poll_interval_seconds,
        )

    logger.info(
        "Services wired: backend=%s storage=%s users=%s",
        settings.backend,
        settings.storage_backend,
        settings.user_store_backend,
    )
    return Services(
        settings=settings,
        storage=storage,
        verification=verification,
        documents=documents,
        records=records,
        auth=auth,
        users=users,
        provisioner=provisioner,
        login=LoginService(auth, users, resend_cooldown=settings.otp_resend_cooldown_seconds),
        registry=RegistrationRegistry(build_orchestrator),
        pool=pool,
        _closers=closers,
    )


def get_services(request: Request) -> Services:
    """
    Get wired services from app state.

    Services are built during app lifespan startup and stored in app.state.
    """
    return request.app.state.services


def get_registry(request: Request) -> RegistrationRegistry:
    return get_services(request).registry


def get_login_service(request: Request) -> LoginService:
    return get_services(request).login


async def get_registration(registration_id: str, request: Request) -> Registration:
    """Resolve the path's registration, 404 when unknown."""
    registration = await get_registry(request).get(registration_id)
    if registration is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Registration not found",
        )
    return registration
