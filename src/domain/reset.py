"""
Reset domain service - password reset and username recovery.

Both protocols share one state machine, discriminated by ResetType:

    request_reset()  -> PENDING        token generated, code requested
    assign_code()    -> CODE_ASSIGNED  gateway reports the code
    verify_code()    -> verified       returns the reset token
    consume()        -> USED           single permitted use of the token

Requests for unknown emails return the same result as for known ones and
create nothing, so the endpoint leaks no existence signal.
"""

import logging
import secrets
from dataclasses import dataclass, field
from datetime import timedelta
from uuid import UUID

from .exceptions import (
    AlreadyFinalized,
    AttemptsExceeded,
    InvalidCode,
    InvalidOrExpired,
    NotFound,
    ValidationFailed,
)
from .passwords import DEFAULT_BCRYPT_COST, hash_secret
from .ports import (
    ChallengeKind,
    Clock,
    CodeIssuanceGateway,
    DeliveryRequest,
    IdentityRepository,
    IssuedChallenge,
    ResetRepository,
    ResetType,
    utc_now,
)
from .verification import (
    DEFAULT_CODE_LENGTH,
    DEFAULT_MAX_ATTEMPTS,
    is_well_formed_code,
    issue_with_compensation,
    normalize_email,
)

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8

_KIND_BY_TYPE = {
    ResetType.PASSWORD: ChallengeKind.PASSWORD_RESET,
    ResetType.USERNAME: ChallengeKind.USERNAME_RECOVERY,
}


def generate_reset_token() -> str:
    """256 bits of randomness, hex encoded."""
    return secrets.token_hex(32)


@dataclass
class ResetService:
    """Domain service for password reset and username recovery."""

    repository: ResetRepository
    identities: IdentityRepository
    gateway: CodeIssuanceGateway
    ttl_seconds: int = 3600
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    code_length: int = DEFAULT_CODE_LENGTH
    bcrypt_cost: int = DEFAULT_BCRYPT_COST
    clock: Clock = field(default=utc_now)

    def request_reset(self, email: str, reset_type: ResetType) -> IssuedChallenge:
        """
        Start a reset for the identity owning `email`.

        Returns:
            IssuedChallenge. For an unknown email `record_id` is None and
            nothing is stored; callers must not expose `record_id`.

        Raises:
            DeliveryFailed: If the gateway rejected the request
        """
        email = normalize_email(email)
        now = self.clock()
        expires_at = now + timedelta(seconds=self.ttl_seconds)

        identity = self.identities.find_by_email(email)
        if identity is None:
            logger.info("%s reset requested for unknown email", reset_type.value)
            return IssuedChallenge(record_id=None, expires_at=expires_at)

        record = self.repository.issue(
            identity.id, identity.email, reset_type, generate_reset_token(), expires_at, now
        )
        logger.info("Issued %s reset record %s", reset_type.value, record.id)

        request = DeliveryRequest(
            record_id=record.id,
            kind=_KIND_BY_TYPE[reset_type],
            address=identity.email,
            expires_at=record.expires_at,
        )
        issue_with_compensation(self.gateway, request, self.repository.delete)
        return IssuedChallenge(record_id=record.id, expires_at=record.expires_at)

    def assign_code(self, record_id: UUID, code: str) -> None:
        """Gateway callback for reset records. Same rules as verification records."""
        if not is_well_formed_code(code, self.code_length):
            raise InvalidCode(f"Code must be a {self.code_length} digit numeric string")

        record = self.repository.get(record_id)
        if record is None:
            raise NotFound("Reset record not found")

        now = self.clock()
        if not record.is_active(now) or not self.repository.assign_code(record_id, code, now):
            raise AlreadyFinalized()
        logger.info("Code assigned to reset record %s", record_id)

    def verify_code(self, email: str, code: str, reset_type: ResetType) -> str:
        """
        Exchange a correct code for the reset token.

        Returns:
            The opaque reset token of the matching record

        Raises:
            ValidationFailed: If the code is malformed
            InvalidOrExpired: If no active record holds the code
            AttemptsExceeded: If the matching record was out of attempts
        """
        if not is_well_formed_code(code, self.code_length):
            raise ValidationFailed(f"Verification code must be {self.code_length} digits")

        email = normalize_email(email)
        now = self.clock()

        record = self.repository.verify_code(email, reset_type, code, now, self.max_attempts)
        if record is None:
            self.repository.increment_attempts(email, reset_type, now, self.max_attempts)
            raise InvalidOrExpired()

        if record.is_used:
            logger.info("Reset record %s exhausted after %d attempts", record.id, record.attempts)
            raise AttemptsExceeded()

        return record.reset_token

    def consume(self, reset_token: str, reset_type: ResetType, new_password: str | None = None) -> str | None:
        """
        Perform the recovery action a token unlocks.

        Returns:
            The username for USERNAME tokens, None for PASSWORD tokens
        """
        match reset_type:
            case ResetType.PASSWORD:
                if new_password is None:
                    raise ValidationFailed("New password is required")
                self.reset_password(reset_token, new_password)
                return None
            case ResetType.USERNAME:
                return self.recover_username(reset_token)

    def reset_password(self, reset_token: str, new_password: str) -> None:
        """
        Consume a password-reset token and apply the new password.

        Raises:
            ValidationFailed: If the new password is too short
            InvalidOrExpired: If the token is unknown, unverified, used or expired
        """
        if len(new_password) < MIN_PASSWORD_LENGTH:
            raise ValidationFailed(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

        # Hash before consuming so a slow hash cannot fail after the token is spent.
        password_hash = hash_secret(new_password, self.bcrypt_cost)
        record = self._consume(reset_token, ResetType.PASSWORD)

        if not self.identities.update_password(record.identity_id, password_hash):
            raise NotFound("User not found")
        logger.info("Password reset applied for identity %s", record.identity_id)

    def recover_username(self, reset_token: str) -> str:
        """Consume a username-recovery token and return the username."""
        record = self._consume(reset_token, ResetType.USERNAME)

        identity = self.identities.get(record.identity_id)
        if identity is None or identity.username is None:
            raise NotFound("User not found")
        return identity.username

    def _consume(self, reset_token: str, reset_type: ResetType):
        if not reset_token:
            raise InvalidOrExpired("Invalid or expired reset token")

        record = self.repository.consume_token(reset_token, reset_type, self.clock())
        if record is None:
            raise InvalidOrExpired("Invalid or expired reset token")
        return record
