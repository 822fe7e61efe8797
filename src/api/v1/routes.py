"""
API v1 routes - Registration and authentication endpoints.

Defines the registration steps, login and the current-user lookup, and
mounts the verification, recovery and gateway routers.
"""

from fastapi import APIRouter, Depends, status

from src.api.dependencies import (
    get_authentication_service,
    get_bearer_token,
    get_client_info,
    get_registration_service,
)
from src.api.models import (
    ErrorResponse,
    LoginRequest,
    LoginResponse,
    SecurityQuestionRequest,
    Step1Request,
    Step2Request,
    Step3Request,
    StepResponse,
    UserResponse,
    UsernameCheckRequest,
    UsernameCheckResponse,
    VerifiedResponse,
)
from src.api.v1.gateway import router as gateway_router
from src.api.v1.recovery import router as recovery_router
from src.api.v1.verification import router as verification_router
from src.domain.authentication import AuthenticationService
from src.domain.ports import PersonalInfo, Profile
from src.domain.registration import RegistrationService

router = APIRouter(tags=["v1"])


@router.post(
    "/register/step1",
    response_model=StepResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse, "description": "Validation failed or preconditions not met"},
        409: {"model": ErrorResponse, "description": "Email already registered"},
    },
    summary="Registration step 1: personal information",
)
def register_step1(
    request_data: Step1Request,
    service: RegistrationService = Depends(get_registration_service),
) -> StepResponse:
    identity = service.begin_registration(
        PersonalInfo(
            first_name=request_data.first_name,
            last_name=request_data.last_name,
            email=request_data.email,
            date_of_birth=request_data.date_of_birth,
            country=request_data.country,
            nationality=request_data.nationality,
            is_over_18=request_data.is_over_18,
            accepted_terms=request_data.accepted_terms,
        )
    )
    return StepResponse(user_id=identity.id, step=identity.registration_step)


@router.post(
    "/register/step2",
    response_model=StepResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid user or registration step"},
        409: {"model": ErrorResponse, "description": "Username already taken"},
    },
    summary="Registration step 2: account credentials",
)
def register_step2(
    request_data: Step2Request,
    service: RegistrationService = Depends(get_registration_service),
) -> StepResponse:
    step = service.set_credentials(
        request_data.user_id,
        request_data.username,
        request_data.password,
        request_data.security_question,
        request_data.security_answer,
    )
    return StepResponse(user_id=request_data.user_id, step=step)


@router.post(
    "/register/step3",
    response_model=StepResponse,
    responses={400: {"model": ErrorResponse, "description": "Invalid user or registration step"}},
    summary="Registration step 3: address and activation",
)
def register_step3(
    request_data: Step3Request,
    service: RegistrationService = Depends(get_registration_service),
) -> StepResponse:
    step = service.complete_profile(
        request_data.user_id,
        Profile(
            street=request_data.street,
            house_number=request_data.house_number,
            city=request_data.city,
            postal_code=request_data.postal_code,
            mobile_number=request_data.mobile_number,
            currency=request_data.currency,
        ),
    )
    return StepResponse(user_id=request_data.user_id, step=step, completed=True)


@router.post("/check-username", response_model=UsernameCheckResponse, summary="Check username availability")
def check_username(
    request_data: UsernameCheckRequest,
    service: RegistrationService = Depends(get_registration_service),
) -> UsernameCheckResponse:
    return UsernameCheckResponse(available=service.is_username_available(request_data.username))


@router.post(
    "/login",
    response_model=LoginResponse,
    responses={401: {"model": ErrorResponse, "description": "Invalid credentials"}},
    summary="Log in with email or username",
)
def login(
    request_data: LoginRequest,
    client: tuple[str, str | None] = Depends(get_client_info),
    service: AuthenticationService = Depends(get_authentication_service),
) -> LoginResponse:
    """
    Authenticate and issue a 24h session token.

    All failures return the same generic 401 to prevent enumeration.
    """
    ip_address, user_agent = client
    session = service.login(request_data.email_or_username, request_data.password, ip_address, user_agent)
    return LoginResponse(token=session.token, user=UserResponse.from_identity(session.identity))


@router.get(
    "/me",
    response_model=UserResponse,
    responses={401: {"model": ErrorResponse, "description": "Invalid or expired token"}},
    summary="Current user",
)
def me(
    token: str = Depends(get_bearer_token),
    service: AuthenticationService = Depends(get_authentication_service),
) -> UserResponse:
    return UserResponse.from_identity(service.current_identity(token))


@router.post(
    "/verify-security-question",
    response_model=VerifiedResponse,
    responses={401: {"model": ErrorResponse, "description": "Invalid credentials"}},
    summary="Check a security answer",
)
def verify_security_question(
    request_data: SecurityQuestionRequest,
    service: RegistrationService = Depends(get_registration_service),
) -> VerifiedResponse:
    service.verify_security_answer(request_data.email_or_username, request_data.security_answer)
    return VerifiedResponse()


router.include_router(verification_router)
router.include_router(recovery_router)
router.include_router(gateway_router)
