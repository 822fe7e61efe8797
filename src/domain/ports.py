"""
Port interfaces - Domain types and Protocol definitions for infrastructure abstraction.

This module defines the records the domain reasons about and the interfaces
(ports) that the domain requires from infrastructure. Adapters implement
these protocols.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum, IntEnum
from typing import Protocol
from uuid import UUID

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Timezone-aware current time, the default clock for services."""
    return datetime.now(timezone.utc)


class RegistrationStep(IntEnum):
    """
    Registration State Machine steps (forward-only).

    State Transitions:
    - PERSONAL_INFO -> CREDENTIALS (username, password, security question set)
    - CREDENTIALS -> COMPLETED (address and mobile set, account activated)

    No step may be repeated or skipped. Transitions are enforced at the
    repository level with conditional updates on the current step.
    """

    PERSONAL_INFO = 1
    CREDENTIALS = 2
    COMPLETED = 3


class VerificationPurpose(str, Enum):
    """What ownership a verification record proves."""

    EMAIL = "email"
    MOBILE = "mobile"


class ResetType(str, Enum):
    """Recovery action a reset record unlocks."""

    PASSWORD = "password"
    USERNAME = "username"


class FailureReason(str, Enum):
    """Outcome recorded for a login attempt."""

    INVALID_USERNAME = "invalid_username"
    INVALID_PASSWORD = "invalid_password"
    ACCOUNT_LOCKED = "account_locked"
    ACCOUNT_INACTIVE = "account_inactive"
    EMAIL_NOT_VERIFIED = "email_not_verified"
    MOBILE_NOT_VERIFIED = "mobile_not_verified"
    NONE = "none"


class Currency(str, Enum):
    """Bankroll currencies accepted at registration step 3."""

    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"
    BTC = "BTC"
    ETH = "ETH"
    USDT = "USDT"
    BNB = "BNB"
    ADA = "ADA"
    SOL = "SOL"
    DOT = "DOT"


class Channel(str, Enum):
    """Transport a code is delivered over."""

    EMAIL = "email"
    SMS = "sms"


class ChallengeKind(str, Enum):
    """Why a code is being delivered. Selects the message template."""

    EMAIL_VERIFICATION = "email_verification"
    MOBILE_VERIFICATION = "mobile_verification"
    PASSWORD_RESET = "password_reset"
    USERNAME_RECOVERY = "username_recovery"

    @property
    def channel(self) -> Channel:
        if self is ChallengeKind.MOBILE_VERIFICATION:
            return Channel.SMS
        return Channel.EMAIL


class ChallengeStatus(str, Enum):
    """
    Code lifecycle of a verification or reset record.

    PENDING -> CODE_ASSIGNED -> {USED | EXHAUSTED}
    EXPIRED is a read-time state: no transition is ever written for it.
    """

    PENDING = "pending"
    CODE_ASSIGNED = "code_assigned"
    USED = "used"
    EXHAUSTED = "exhausted"
    EXPIRED = "expired"


@dataclass(frozen=True)
class PendingCode:
    """The gateway has not reported a code for this record yet."""


@dataclass(frozen=True)
class AssignedCode:
    """Code reported by the gateway."""

    value: str


ChallengeCode = PendingCode | AssignedCode


def code_from_column(value: str | None) -> ChallengeCode:
    """Map a nullable storage column to the code variant."""
    if value is None:
        return PendingCode()
    return AssignedCode(value)


def challenge_status(
    code: ChallengeCode, is_used: bool, attempts: int, expires_at: datetime, now: datetime, max_attempts: int
) -> ChallengeStatus:
    if is_used:
        return ChallengeStatus.EXHAUSTED if attempts >= max_attempts else ChallengeStatus.USED
    if expires_at <= now:
        return ChallengeStatus.EXPIRED
    if isinstance(code, AssignedCode):
        return ChallengeStatus.CODE_ASSIGNED
    return ChallengeStatus.PENDING


@dataclass
class PersonalInfo:
    """Registration step 1 input."""

    first_name: str
    last_name: str
    email: str
    date_of_birth: date
    country: str
    nationality: str
    is_over_18: bool
    accepted_terms: bool


@dataclass
class Profile:
    """Registration step 3 input."""

    street: str
    house_number: str
    city: str
    postal_code: str
    mobile_number: str
    currency: Currency


@dataclass
class Identity:
    """A user account progressing through onboarding steps."""

    id: UUID
    email: str
    first_name: str
    last_name: str
    date_of_birth: date
    country: str
    nationality: str
    is_over_18: bool = False
    accepted_terms: bool = False
    username: str | None = None
    password_hash: str | None = None
    security_question: str | None = None
    security_answer_hash: str | None = None
    street: str | None = None
    house_number: str | None = None
    city: str | None = None
    postal_code: str | None = None
    mobile_number: str | None = None
    currency: Currency | None = None
    registration_step: RegistrationStep = RegistrationStep.PERSONAL_INFO
    registration_completed: bool = False
    is_active: bool = False
    email_verified: bool = False
    last_login_at: datetime | None = None
    created_at: datetime = field(default_factory=utc_now)


@dataclass
class VerificationRecord:
    """Time-boxed, attempt-limited proof-of-ownership challenge."""

    id: UUID
    address: str
    purpose: VerificationPurpose
    expires_at: datetime
    identity_id: UUID | None = None
    code: ChallengeCode = field(default_factory=PendingCode)
    is_used: bool = False
    attempts: int = 0
    created_at: datetime = field(default_factory=utc_now)

    def is_active(self, now: datetime) -> bool:
        return not self.is_used and self.expires_at > now

    def status(self, now: datetime, max_attempts: int) -> ChallengeStatus:
        return challenge_status(self.code, self.is_used, self.attempts, self.expires_at, now, max_attempts)


@dataclass
class ResetRecord:
    """Time-boxed, attempt-limited challenge plus a single-use opaque token."""

    id: UUID
    identity_id: UUID
    email: str
    reset_token: str
    reset_type: ResetType
    expires_at: datetime
    code: ChallengeCode = field(default_factory=PendingCode)
    is_used: bool = False
    attempts: int = 0
    created_at: datetime = field(default_factory=utc_now)
    verified_at: datetime | None = None
    used_at: datetime | None = None

    def is_active(self, now: datetime) -> bool:
        return not self.is_used and self.expires_at > now

    def status(self, now: datetime, max_attempts: int) -> ChallengeStatus:
        return challenge_status(self.code, self.is_used, self.attempts, self.expires_at, now, max_attempts)


@dataclass(frozen=True)
class LoginAttempt:
    """Append-only audit entry for an authentication attempt."""

    username: str
    ip_address: str
    success: bool
    failure_reason: FailureReason
    identity_id: UUID | None = None
    user_agent: str | None = None
    attempted_at: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class IssuedChallenge:
    """Caller-facing result of an issuance. Never carries the code."""

    record_id: UUID | None
    expires_at: datetime


@dataclass(frozen=True)
class DeliveryRequest:
    """What the gateway needs to deliver a code for one record."""

    record_id: UUID
    kind: ChallengeKind
    address: str
    expires_at: datetime

    @property
    def channel(self) -> Channel:
        return self.kind.channel


class IdentityRepository(Protocol):
    """Port interface for identity persistence."""

    def create(self, identity: Identity) -> bool:
        """
        Insert a step-1 identity.

        Returns:
            True if created, False if the email already owns an identity
        """
        ...

    def get(self, identity_id: UUID) -> Identity | None: ...

    def find_by_email(self, email: str) -> Identity | None: ...

    def find_by_login(self, identifier: str) -> Identity | None:
        """Resolve an identity by email (case-insensitive) or exact username."""
        ...

    def username_exists(self, username: str) -> bool: ...

    def set_credentials(
        self,
        identity_id: UUID,
        username: str,
        password_hash: str,
        security_question: str,
        security_answer_hash: str,
    ) -> bool:
        """
        Apply step 2 only if the identity is currently at step 1.

        Returns:
            True if applied, False if the identity is missing or not at step 1

        Raises:
            Conflict: If the username was taken concurrently
        """
        ...

    def complete_profile(self, identity_id: UUID, profile: Profile) -> bool:
        """Apply step 3 only if the identity is currently at step 2."""
        ...

    def update_password(self, identity_id: UUID, password_hash: str) -> bool: ...

    def mark_email_verified(self, identity_id: UUID) -> None: ...

    def record_login(self, identity_id: UUID, at: datetime) -> None: ...


class VerificationRepository(Protocol):
    """Port interface for verification record persistence."""

    def issue(
        self,
        address: str,
        purpose: VerificationPurpose,
        identity_id: UUID | None,
        expires_at: datetime,
        now: datetime,
    ) -> VerificationRecord:
        """
        Invalidate every active record for (address, purpose) and create a
        pending one, as one atomic unit.
        """
        ...

    def get(self, record_id: UUID) -> VerificationRecord | None: ...

    def delete(self, record_id: UUID) -> None: ...

    def assign_code(self, record_id: UUID, code: str, now: datetime) -> bool:
        """Set the code only while the record is unused and unexpired."""
        ...

    def consume_matching(
        self, address: str, purpose: VerificationPurpose, code: str, now: datetime
    ) -> VerificationRecord | None:
        """Atomically mark the active record holding `code` as used and return it."""
        ...

    def increment_attempts(
        self, address: str, purpose: VerificationPurpose, now: datetime, max_attempts: int
    ) -> int:
        """Atomically bump attempts on every active record. Returns rows touched."""
        ...

    def active_records(
        self, address: str, purpose: VerificationPurpose, now: datetime
    ) -> list[VerificationRecord]: ...


class ResetRepository(Protocol):
    """Port interface for password-reset and username-recovery records."""

    def issue(
        self,
        identity_id: UUID,
        email: str,
        reset_type: ResetType,
        reset_token: str,
        expires_at: datetime,
        now: datetime,
    ) -> ResetRecord:
        """Invalidate active records for (email, reset_type) and create a pending one."""
        ...

    def get(self, record_id: UUID) -> ResetRecord | None: ...

    def delete(self, record_id: UUID) -> None: ...

    def assign_code(self, record_id: UUID, code: str, now: datetime) -> bool: ...

    def verify_code(
        self, email: str, reset_type: ResetType, code: str, now: datetime, max_attempts: int
    ) -> ResetRecord | None:
        """
        Atomically settle a code match.

        Under the attempt limit the record is stamped `verified_at`; at or over
        it the record is marked used. Returns the updated record, or None if
        no active record holds `code`.
        """
        ...

    def increment_attempts(
        self, email: str, reset_type: ResetType, now: datetime, max_attempts: int
    ) -> int: ...

    def consume_token(self, reset_token: str, reset_type: ResetType, now: datetime) -> ResetRecord | None:
        """Atomically mark a verified, active record used. None if not consumable."""
        ...

    def active_records(self, email: str, reset_type: ResetType, now: datetime) -> list[ResetRecord]: ...


class LoginAttemptRepository(Protocol):
    """Port interface for the append-only login audit."""

    def add(self, attempt: LoginAttempt) -> None: ...

    def find_by_username(self, username: str) -> list[LoginAttempt]: ...


class CodeIssuanceGateway(Protocol):
    """Port interface for the external code delivery channel."""

    def request_delivery(self, request: DeliveryRequest) -> None:
        """
        Hand a record to the delivery channel.

        The code is reported back later via the assign-code callback.

        Raises:
            DeliveryFailed: If the channel could not accept the request
        """
        ...
