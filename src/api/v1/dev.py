"""
Development routes - Drive the local verification provider by hand.

Mounted only when settings.backend is "local".
"""

from fastapi import APIRouter, Depends, HTTPException, status

from src.adapters.local import LocalVerificationProvider
from src.api.dependencies import Services, get_services
from src.api.models import VerificationDecisionRequest, VerificationDecisionResponse
from src.domain.models import VerifiedFields

router = APIRouter(prefix="/dev", tags=["dev"])


@router.post(
    "/verification/{session_id}",
    response_model=VerificationDecisionResponse,
    summary="Record a verification outcome",
    description="Sets the status of a local verification session and returns the "
    "callback URL the provider would redirect the applicant to.",
)
async def decide_verification(
    session_id: str,
    request_data: VerificationDecisionRequest,
    services: Services = Depends(get_services),
) -> VerificationDecisionResponse:
    provider = services.verification
    if not isinstance(provider, LocalVerificationProvider):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not available")

    fields = VerifiedFields(
        first_name=request_data.first_name,
        last_name=request_data.last_name,
        date_of_birth=request_data.date_of_birth,
        document_number=request_data.document_number,
    )
    try:
        url = provider.decide(session_id, request_data.status, fields)
    except KeyError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Session not found"
        ) from None
    return VerificationDecisionResponse(callback_url=url)
