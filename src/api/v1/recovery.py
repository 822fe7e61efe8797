"""
API v1 recovery routes - password reset and username recovery.

Request endpoints answer identically whether or not the email belongs to
an account.
"""

from fastapi import APIRouter, Depends

from src.api.dependencies import get_reset_service
from src.api.models import (
    CodeSentResponse,
    ErrorResponse,
    OkResponse,
    RecoverUsernameRequest,
    ResetPasswordRequest,
    ResetRequest,
    ResetTokenResponse,
    UsernameResponse,
    VerifyResetCodeRequest,
)
from src.domain.ports import ResetType
from src.domain.reset import ResetService

router = APIRouter()

PASSWORD_RESET_MESSAGE = "If an account with this email exists, a password reset code has been sent."
USERNAME_RECOVERY_MESSAGE = "If an account with this email exists, username recovery information has been sent."

_REQUEST_ERRORS = {500: {"model": ErrorResponse, "description": "Delivery failed, retry later"}}
_CODE_ERRORS = {400: {"model": ErrorResponse, "description": "Invalid, expired or exhausted code"}}
_TOKEN_ERRORS = {400: {"model": ErrorResponse, "description": "Invalid or expired reset token"}}


@router.post("/request-password-reset", response_model=CodeSentResponse, responses=_REQUEST_ERRORS)
def request_password_reset(
    request_data: ResetRequest,
    service: ResetService = Depends(get_reset_service),
) -> CodeSentResponse:
    issued = service.request_reset(request_data.email, ResetType.PASSWORD)
    return CodeSentResponse(message=PASSWORD_RESET_MESSAGE, expires_at=issued.expires_at)


@router.post("/verify-reset-code", response_model=ResetTokenResponse, responses=_CODE_ERRORS)
def verify_reset_code(
    request_data: VerifyResetCodeRequest,
    service: ResetService = Depends(get_reset_service),
) -> ResetTokenResponse:
    token = service.verify_code(request_data.email, request_data.code, ResetType.PASSWORD)
    return ResetTokenResponse(reset_token=token)


@router.post("/reset-password", response_model=OkResponse, responses=_TOKEN_ERRORS)
def reset_password(
    request_data: ResetPasswordRequest,
    service: ResetService = Depends(get_reset_service),
) -> OkResponse:
    service.reset_password(request_data.reset_token, request_data.new_password)
    return OkResponse()


@router.post("/request-username-recovery", response_model=CodeSentResponse, responses=_REQUEST_ERRORS)
def request_username_recovery(
    request_data: ResetRequest,
    service: ResetService = Depends(get_reset_service),
) -> CodeSentResponse:
    issued = service.request_reset(request_data.email, ResetType.USERNAME)
    return CodeSentResponse(message=USERNAME_RECOVERY_MESSAGE, expires_at=issued.expires_at)


@router.post("/verify-username-code", response_model=ResetTokenResponse, responses=_CODE_ERRORS)
def verify_username_code(
    request_data: VerifyResetCodeRequest,
    service: ResetService = Depends(get_reset_service),
) -> ResetTokenResponse:
    token = service.verify_code(request_data.email, request_data.code, ResetType.USERNAME)
    return ResetTokenResponse(reset_token=token)


@router.post("/recover-username", response_model=UsernameResponse, responses=_TOKEN_ERRORS)
def recover_username(
    request_data: RecoverUsernameRequest,
    service: ResetService = Depends(get_reset_service),
) -> UsernameResponse:
    return UsernameResponse(username=service.recover_username(request_data.reset_token))
