"""
API v1 routes.

Defines REST endpoints for identity-verified registration and passcode login.
Domain errors propagate to the RegistrationError handler installed in
src.api.main, which maps ErrorKind to an HTTP status.
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status

from src.api.dependencies import (
    Services,
    callback_url,
    get_login_service,
    get_registration,
    get_registry,
    get_services,
)
from src.api.models import (
    AccountResponse,
    CaptureIdentityRequest,
    ContactConfirmRequest,
    ContactUpdateRequest,
    CredentialsRequest,
    ErrorResponse,
    IdentityResponse,
    LoginCodeRequest,
    LoginCodeResponse,
    LoginVerifyRequest,
    PasswordStrengthRequest,
    PasswordStrengthResponse,
    RegistrationStatusResponse,
    SessionResponse,
    StartRegistrationRequest,
    StartRegistrationResponse,
)
from src.api.registry import Registration, RegistrationRegistry
from src.domain.exceptions import CreateSessionFailed, RegistrationError
from src.domain.login import LoginService
from src.domain.models import AuthSession
from src.domain.validation import password_strength

router = APIRouter(tags=["v1"])

_ERRORS = {
    404: {"model": ErrorResponse, "description": "Unknown registration"},
    409: {"model": ErrorResponse, "description": "Recoverable outcome, see detail"},
    422: {"model": ErrorResponse, "description": "Validation error"},
    502: {"model": ErrorResponse, "description": "Upstream service failure"},
}


def _snapshot(registration: Registration) -> RegistrationStatusResponse:
    orchestrator = registration.orchestrator
    identity = orchestrator.identity
    draft = orchestrator.draft
    error = registration.host.last_error
    return RegistrationStatusResponse(
        registration_id=registration.registration_id,
        state=orchestrator.state,
        session_id=orchestrator.session_id,
        identity=IdentityResponse(
            first_name=identity.first_name,
            last_name=identity.last_name,
            date_of_birth=identity.date_of_birth,
            document_number=identity.document_number,
        )
        if identity
        else None,
        phone_number=(draft.phone_number or None) if draft else None,
        email=(draft.email or None) if draft else None,
        account_id=registration.host.account_id,
        error=getattr(error, "message", None) or (str(error) if error else None),
        error_kind=error.kind.value if isinstance(error, RegistrationError) else None,
    )


def _session_response(session: AuthSession) -> SessionResponse:
    return SessionResponse(
        user_id=session.identity.id,
        email=session.identity.email,
        phone=session.identity.phone,
        access_token=session.access_token,
        refresh_token=session.refresh_token,
    )


# Registration


@router.post(
    "/registrations",
    response_model=StartRegistrationResponse,
    status_code=status.HTTP_201_CREATED,
    responses={502: _ERRORS[502]},
    summary="Open a registration",
    description="Open a registration. With method=redirect a verification session is "
    "started and the applicant should be sent to verification_url.",
)
async def start_registration(
    request_data: StartRegistrationRequest,
    services: Services = Depends(get_services),
) -> StartRegistrationResponse:
    registry = services.registry
    registration = await registry.open()
    if request_data.method == "capture":
        return StartRegistrationResponse(
            registration_id=registration.registration_id,
            state=registration.orchestrator.state,
        )

    try:
        handle = await registration.orchestrator.start_verification(
            request_data.language or services.settings.default_language,
            callback_url(services.settings, registration.registration_id),
        )
    except CreateSessionFailed:
        await registry.close(registration.registration_id)
        raise
    return StartRegistrationResponse(
        registration_id=registration.registration_id,
        state=registration.orchestrator.state,
        session_id=handle.session_id,
        verification_url=handle.redirect_url,
    )


@router.get(
    "/registrations/{registration_id}",
    response_model=RegistrationStatusResponse,
    responses={404: _ERRORS[404]},
    summary="Get registration status",
)
async def get_registration_status(
    registration: Registration = Depends(get_registration),
) -> RegistrationStatusResponse:
    return _snapshot(registration)


@router.get(
    "/registrations/{registration_id}/callback",
    response_model=RegistrationStatusResponse,
    responses={404: _ERRORS[404]},
    summary="Verification provider return target",
    description="The provider redirects here with ?session_id=. That id takes "
    "precedence over any cached session for this registration.",
)
async def verification_callback(
    request: Request,
    registration: Registration = Depends(get_registration),
) -> RegistrationStatusResponse:
    await registration.orchestrator.resume(str(request.url))
    return _snapshot(registration)


@router.post(
    "/registrations/{registration_id}/identity",
    response_model=RegistrationStatusResponse,
    responses=_ERRORS,
    summary="Capture identity from selfie and ID document",
)
async def capture_identity(
    request_data: CaptureIdentityRequest,
    registration: Registration = Depends(get_registration),
) -> RegistrationStatusResponse:
    await registration.orchestrator.capture_identity(
        request_data.selfie_image, request_data.document_image
    )
    return _snapshot(registration)


@router.patch(
    "/registrations/{registration_id}/contact",
    response_model=RegistrationStatusResponse,
    responses={404: _ERRORS[404], 422: _ERRORS[422]},
    summary="Edit contact fields (draft, autosaved)",
)
async def update_contact(
    request_data: ContactUpdateRequest,
    registration: Registration = Depends(get_registration),
) -> RegistrationStatusResponse:
    registration.orchestrator.update_contact(
        phone_number=request_data.phone_number, email=request_data.email
    )
    return _snapshot(registration)


@router.put(
    "/registrations/{registration_id}/contact",
    response_model=RegistrationStatusResponse,
    responses={404: _ERRORS[404], 422: _ERRORS[422]},
    summary="Confirm contact details",
)
async def confirm_contact(
    request_data: ContactConfirmRequest,
    registration: Registration = Depends(get_registration),
) -> RegistrationStatusResponse:
    registration.orchestrator.confirm_details(request_data.phone_number, request_data.email)
    return _snapshot(registration)


@router.post(
    "/registrations/{registration_id}/credentials",
    response_model=AccountResponse,
    status_code=status.HTTP_201_CREATED,
    responses=_ERRORS,
    summary="Set password and provision the account",
    description="Validates the password and provisions the account. A repeat while "
    "provisioning is in flight shares its result. The registration is closed once "
    "the account exists.",
)
async def set_credentials(
    request_data: CredentialsRequest,
    registration: Registration = Depends(get_registration),
    registry: RegistrationRegistry = Depends(get_registry),
) -> AccountResponse:
    account = await registration.orchestrator.set_credentials(
        request_data.password, request_data.confirm_password
    )
    await registry.close(registration.registration_id)
    return AccountResponse(
        account_id=account.account_id,
        status=account.status,
        name=account.name,
        surname=account.surname,
        phone_number=account.phone_number,
        email=account.email,
        message="Registration complete",
    )


@router.delete(
    "/registrations/{registration_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: _ERRORS[404]},
    summary="Cancel a registration",
)
async def cancel_registration(
    registration: Registration = Depends(get_registration),
    registry: RegistrationRegistry = Depends(get_registry),
) -> None:
    await registration.orchestrator.cancel()
    await registry.close(registration.registration_id)


@router.post(
    "/password-strength",
    response_model=PasswordStrengthResponse,
    summary="Rate a password (advisory)",
)
async def rate_password(request_data: PasswordStrengthRequest) -> PasswordStrengthResponse:
    return PasswordStrengthResponse(strength=password_strength(request_data.password))


# Login


@router.post(
    "/login/code",
    response_model=LoginCodeResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={
        404: {"model": ErrorResponse, "description": "No account for this phone or email"},
        422: _ERRORS[422],
        429: {"model": ErrorResponse, "description": "Code requested too recently"},
        502: _ERRORS[502],
    },
    summary="Send a login passcode",
)
async def request_login_code(
    request_data: LoginCodeRequest,
    login: LoginService = Depends(get_login_service),
) -> LoginCodeResponse:
    channel = await login.request_code(request_data.phone_or_email)
    return LoginCodeResponse(message="Verification code sent", channel=channel)


@router.post(
    "/login/verify",
    response_model=SessionResponse,
    responses={409: _ERRORS[409], 422: _ERRORS[422]},
    summary="Exchange a passcode for a session",
)
async def verify_login_code(
    request_data: LoginVerifyRequest,
    login: LoginService = Depends(get_login_service),
) -> SessionResponse:
    session = await login.verify_code(request_data.phone_or_email, request_data.code)
    return _session_response(session)


@router.post(
    "/logout",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={502: _ERRORS[502]},
    summary="Sign out the current session",
)
async def logout(login: LoginService = Depends(get_login_service)) -> None:
    await login.sign_out()


@router.get(
    "/session",
    response_model=SessionResponse,
    responses={404: {"model": ErrorResponse, "description": "No active session"}},
    summary="Current session",
)
async def current_session(
    login: LoginService = Depends(get_login_service),
) -> SessionResponse:
    session = await login.current_session()
    if session is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not signed in")
    return _session_response(session)
