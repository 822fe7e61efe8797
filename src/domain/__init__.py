"""
Domain layer - Pure business logic with no web or database framework imports.

This package contains the identity lifecycle core: the registration state
machine, the verification and reset code/token state machines, and
authentication with its login ledger. It defines its own port interfaces for
infrastructure abstraction.
"""

from .authentication import AuthenticationService, Session
from .codes import CodeAssignmentRouter
from .exceptions import (
    AlreadyFinalized,
    AttemptsExceeded,
    Conflict,
    DeliveryFailed,
    IdentityError,
    InvalidCode,
    InvalidOrExpired,
    InvalidState,
    NotFound,
    PreconditionFailed,
    Unauthorized,
    ValidationFailed,
)
from .ledger import LoginAttemptLedger
from .ports import (
    CodeIssuanceGateway,
    FailureReason,
    IdentityRepository,
    LoginAttemptRepository,
    RegistrationStep,
    ResetRepository,
    ResetType,
    VerificationPurpose,
    VerificationRepository,
)
from .registration import RegistrationService
from .reset import ResetService
from .verification import VerificationService

__all__ = [
    "AlreadyFinalized",
    "AttemptsExceeded",
    "AuthenticationService",
    "CodeAssignmentRouter",
    "CodeIssuanceGateway",
    "Conflict",
    "DeliveryFailed",
    "FailureReason",
    "IdentityError",
    "IdentityRepository",
    "InvalidCode",
    "InvalidOrExpired",
    "InvalidState",
    "LoginAttemptLedger",
    "LoginAttemptRepository",
    "NotFound",
    "PreconditionFailed",
    "RegistrationService",
    "RegistrationStep",
    "ResetRepository",
    "ResetService",
    "ResetType",
    "Session",
    "Unauthorized",
    "ValidationFailed",
    "VerificationPurpose",
    "VerificationRepository",
    "VerificationService",
]
