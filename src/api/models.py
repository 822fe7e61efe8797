"""
API request and response models.

Pydantic models for FastAPI endpoint validation and OpenAPI schema generation.
JSON field names are camelCase; Python attributes stay snake_case.
"""

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

from src.domain.ports import Currency, Identity

# Shape only; the services enforce the configured exact length (Settings.code_length)
CODE_PATTERN = r"^[0-9]{4,10}$"


class ApiModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Step1Request(ApiModel):
    """Registration step 1: personal information."""

    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: str = Field(..., min_length=1, max_length=50)
    email: EmailStr
    date_of_birth: date = Field(..., alias="dob")
    country: str = Field(..., min_length=1, max_length=100)
    nationality: str = Field(..., min_length=1, max_length=100)
    is_over_18: bool = Field(..., alias="isOver18")
    accepted_terms: bool


class Step2Request(ApiModel):
    """Registration step 2: account credentials."""

    user_id: UUID
    username: str = Field(..., min_length=3, max_length=30)
    password: str = Field(..., min_length=8, description="User password (min 8 characters)")
    security_question: str = Field(..., min_length=1, max_length=255)
    security_answer: str = Field(..., min_length=1)


class Step3Request(ApiModel):
    """Registration step 3: address and additional info."""

    user_id: UUID
    street: str = Field(..., min_length=1, max_length=255)
    house_number: str = Field(..., min_length=1, max_length=20)
    city: str = Field(..., min_length=1, max_length=100)
    postal_code: str = Field(..., min_length=1, max_length=20)
    mobile_number: str = Field(..., min_length=1, max_length=20)
    currency: Currency


class StepResponse(ApiModel):
    """Response model for a completed registration step."""

    user_id: UUID
    step: int
    completed: bool = False


class UsernameCheckRequest(ApiModel):
    username: str = Field(..., min_length=3, max_length=30)


class UsernameCheckResponse(ApiModel):
    available: bool


class LoginRequest(ApiModel):
    """Request model for login by email or username."""

    email_or_username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class UserResponse(ApiModel):
    """Public view of an identity. Never includes hashes."""

    id: UUID
    email: str
    username: str | None
    first_name: str
    last_name: str

    @classmethod
    def from_identity(cls, identity: Identity) -> "UserResponse":
        return cls(
            id=identity.id,
            email=identity.email,
            username=identity.username,
            first_name=identity.first_name,
            last_name=identity.last_name,
        )


class LoginResponse(ApiModel):
    token: str
    user: UserResponse


class SendEmailCodeRequest(ApiModel):
    email: EmailStr


class SendIdentityEmailCodeRequest(ApiModel):
    user_id: UUID


class SendMobileCodeRequest(ApiModel):
    mobile_number: str = Field(..., min_length=1, max_length=20)


class VerifyEmailRequest(ApiModel):
    email: EmailStr
    code: str = Field(..., pattern=CODE_PATTERN, description="Numeric verification code")


class VerifyMobileRequest(ApiModel):
    mobile_number: str = Field(..., min_length=1, max_length=20)
    code: str = Field(..., pattern=CODE_PATTERN, description="Numeric verification code")


class CodeSentResponse(ApiModel):
    """Issuance result. Identical for known and unknown emails on recovery routes."""

    message: str = "Verification code sent"
    expires_at: datetime


class VerifiedResponse(ApiModel):
    verified: bool = True


class VerificationStatusResponse(ApiModel):
    user_id: UUID
    email: str
    mobile_number: str | None
    email_verified: bool


class ResetRequest(ApiModel):
    email: EmailStr


class VerifyResetCodeRequest(ApiModel):
    email: EmailStr
    code: str = Field(..., pattern=CODE_PATTERN, description="Numeric reset code")


class ResetTokenResponse(ApiModel):
    reset_token: str


class ResetPasswordRequest(ApiModel):
    reset_token: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8, description="New password (min 8 characters)")


class RecoverUsernameRequest(ApiModel):
    reset_token: str = Field(..., min_length=1)


class UsernameResponse(ApiModel):
    username: str


class SecurityQuestionRequest(ApiModel):
    email_or_username: str = Field(..., min_length=1)
    security_answer: str = Field(..., min_length=1)


class SetCodeRequest(ApiModel):
    """Gateway callback payload."""

    record_id: UUID
    code: str = Field(..., pattern=CODE_PATTERN, description="Numeric code that was delivered")


class RecordResponse(ApiModel):
    id: UUID
    type: str
    email: str
    expires_at: datetime
    is_used: bool
    created_at: datetime


class OkResponse(ApiModel):
    ok: bool = True


class ErrorResponse(BaseModel):
    """Standard error response model."""

    detail: str
    errors: list[dict] | None = None
