"""
API v1 verification routes - email and mobile ownership proofs.

Codes are never returned by these endpoints; they reach the user through
the delivery gateway.
"""

from uuid import UUID

from fastapi import APIRouter, Depends

from src.api.dependencies import get_registration_service, get_verification_service
from src.api.models import (
    CodeSentResponse,
    ErrorResponse,
    SendEmailCodeRequest,
    SendIdentityEmailCodeRequest,
    SendMobileCodeRequest,
    VerificationStatusResponse,
    VerifiedResponse,
    VerifyEmailRequest,
    VerifyMobileRequest,
)
from src.domain.ports import VerificationPurpose
from src.domain.registration import RegistrationService
from src.domain.verification import VerificationService

router = APIRouter(prefix="/verification")

_CODE_ERRORS = {400: {"model": ErrorResponse, "description": "Invalid, expired or exhausted code"}}
_SEND_ERRORS = {
    400: {"model": ErrorResponse, "description": "Validation failed"},
    500: {"model": ErrorResponse, "description": "Delivery failed, retry later"},
}


@router.post("/send-email", response_model=CodeSentResponse, responses=_SEND_ERRORS)
def send_email_code(
    request_data: SendEmailCodeRequest,
    service: VerificationService = Depends(get_verification_service),
) -> CodeSentResponse:
    """Pre-registration email proof."""
    issued = service.send_email_code(request_data.email)
    return CodeSentResponse(message="Verification code sent to your email", expires_at=issued.expires_at)


@router.post(
    "/send-email-user",
    response_model=CodeSentResponse,
    responses={**_SEND_ERRORS, 404: {"model": ErrorResponse, "description": "User not found"}},
)
def send_identity_email_code(
    request_data: SendIdentityEmailCodeRequest,
    service: VerificationService = Depends(get_verification_service),
) -> CodeSentResponse:
    """Email proof for an existing identity."""
    issued = service.send_identity_email_code(request_data.user_id)
    return CodeSentResponse(message="Verification code sent to your email", expires_at=issued.expires_at)


@router.post("/verify-email", response_model=VerifiedResponse, responses=_CODE_ERRORS)
def verify_email(
    request_data: VerifyEmailRequest,
    service: VerificationService = Depends(get_verification_service),
) -> VerifiedResponse:
    service.verify(request_data.email, request_data.code, VerificationPurpose.EMAIL)
    return VerifiedResponse()


@router.post("/send-mobile", response_model=CodeSentResponse, responses=_SEND_ERRORS)
def send_mobile_code(
    request_data: SendMobileCodeRequest,
    service: VerificationService = Depends(get_verification_service),
) -> CodeSentResponse:
    issued = service.send_mobile_code(request_data.mobile_number)
    return CodeSentResponse(message="Verification code sent to your mobile", expires_at=issued.expires_at)


@router.post("/verify-mobile", response_model=VerifiedResponse, responses=_CODE_ERRORS)
def verify_mobile(
    request_data: VerifyMobileRequest,
    service: VerificationService = Depends(get_verification_service),
) -> VerifiedResponse:
    service.verify(request_data.mobile_number, request_data.code, VerificationPurpose.MOBILE)
    return VerifiedResponse()


@router.get(
    "/status/{user_id}",
    response_model=VerificationStatusResponse,
    responses={404: {"model": ErrorResponse, "description": "User not found"}},
)
def verification_status(
    user_id: UUID,
    service: RegistrationService = Depends(get_registration_service),
) -> VerificationStatusResponse:
    identity = service.get_identity(user_id)
    return VerificationStatusResponse(
        user_id=identity.id,
        email=identity.email,
        mobile_number=identity.mobile_number,
        email_verified=identity.email_verified,
    )
