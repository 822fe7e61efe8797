"""
Verification domain service - ownership proofs for email and mobile addresses.

Code Lifecycle (Two-Phase Issuance)
===================================

    issue()        -> PENDING        record created without a code
    assign_code()  -> CODE_ASSIGNED  gateway reports the code it delivered
    verify()       -> USED           correct code, under the attempt limit
                   -> EXHAUSTED      correct code, attempt limit reached

EXPIRED is evaluated lazily at read time against `expires_at`; nothing
sweeps expired rows.

Invariants (enforced atomically by the repository):
- At most one active (unused, unexpired) record per (address, purpose).
  Issuance invalidates the previous active record in the same transaction.
- A wrong guess increments `attempts` on every active record for the
  (address, purpose) with a single UPDATE, never read-modify-write.
- A record is consumed at most once: the successful match and the
  `is_used` flip are one conditional UPDATE.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import timedelta
from uuid import UUID

from .exceptions import (
    AlreadyFinalized,
    AttemptsExceeded,
    DeliveryFailed,
    InvalidCode,
    InvalidOrExpired,
    NotFound,
    ValidationFailed,
)
from .ports import (
    ChallengeKind,
    Clock,
    CodeIssuanceGateway,
    DeliveryRequest,
    IdentityRepository,
    IssuedChallenge,
    VerificationPurpose,
    VerificationRecord,
    VerificationRepository,
    utc_now,
)

logger = logging.getLogger(__name__)

DEFAULT_CODE_LENGTH = 6
DEFAULT_MAX_ATTEMPTS = 5

_KIND_BY_PURPOSE = {
    VerificationPurpose.EMAIL: ChallengeKind.EMAIL_VERIFICATION,
    VerificationPurpose.MOBILE: ChallengeKind.MOBILE_VERIFICATION,
}


def normalize_email(email: str) -> str:
    """Strip whitespace and lowercase."""
    return email.strip().lower()


def normalize_mobile(mobile_number: str) -> str:
    """Drop spaces, dashes and parentheses, keep a leading +."""
    return re.sub(r"[\s\-()]", "", mobile_number.strip())


def normalize_address(address: str, purpose: VerificationPurpose) -> str:
    if purpose is VerificationPurpose.MOBILE:
        return normalize_mobile(address)
    return normalize_email(address)


def is_well_formed_code(code: str, length: int = DEFAULT_CODE_LENGTH) -> bool:
    """True for an ASCII numeric string of exactly `length` digits."""
    return re.fullmatch(rf"[0-9]{{{length}}}", code) is not None


def issue_with_compensation(
    gateway: CodeIssuanceGateway,
    request: DeliveryRequest,
    rollback,
) -> None:
    """
    Hand a freshly issued record to the gateway.

    If the hand-off fails the record is deleted through `rollback` so no
    pending record without a deliverable code remains, and the failure
    surfaces as a single DeliveryFailed.
    """
    try:
        gateway.request_delivery(request)
    except DeliveryFailed:
        logger.warning("Delivery failed for record %s, rolling back", request.record_id)
        rollback(request.record_id)
        raise
    except Exception as e:
        logger.error("Gateway error for record %s: %s", request.record_id, e)
        rollback(request.record_id)
        raise DeliveryFailed() from e


@dataclass
class VerificationService:
    """
    Domain service for email and mobile ownership proofs.

    Orchestrates issuance, gateway hand-off, code assignment and
    bounded-attempt verification over the verification repository.
    """

    repository: VerificationRepository
    identities: IdentityRepository
    gateway: CodeIssuanceGateway
    ttl_seconds: int = 300
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    code_length: int = DEFAULT_CODE_LENGTH
    clock: Clock = field(default=utc_now)

    def issue(
        self, address: str, purpose: VerificationPurpose, identity_id: UUID | None = None
    ) -> IssuedChallenge:
        """
        Create a new pending challenge and request its delivery.

        Args:
            address: Email or mobile number (normalized here)
            purpose: Which ownership the challenge proves
            identity_id: Owning identity, None for pre-registration proofs

        Returns:
            Record id and expiry. The code is never returned.

        Raises:
            DeliveryFailed: If the gateway rejected the request
        """
        address = normalize_address(address, purpose)
        now = self.clock()
        expires_at = now + timedelta(seconds=self.ttl_seconds)

        record = self.repository.issue(address, purpose, identity_id, expires_at, now)
        logger.info("Issued %s verification record %s", purpose.value, record.id)

        request = DeliveryRequest(
            record_id=record.id,
            kind=_KIND_BY_PURPOSE[purpose],
            address=address,
            expires_at=record.expires_at,
        )
        issue_with_compensation(self.gateway, request, self.repository.delete)
        return IssuedChallenge(record_id=record.id, expires_at=record.expires_at)

    def send_email_code(self, email: str) -> IssuedChallenge:
        """Pre-registration email proof. Refuses emails that already own an identity."""
        if self.identities.find_by_email(normalize_email(email)) is not None:
            raise ValidationFailed("Email is already registered")
        return self.issue(email, VerificationPurpose.EMAIL)

    def send_identity_email_code(self, identity_id: UUID) -> IssuedChallenge:
        """Email proof bound to an existing identity."""
        identity = self.identities.get(identity_id)
        if identity is None:
            raise NotFound("User not found")
        if identity.email_verified:
            raise ValidationFailed("Email is already verified")
        return self.issue(identity.email, VerificationPurpose.EMAIL, identity.id)

    def send_mobile_code(self, mobile_number: str, identity_id: UUID | None = None) -> IssuedChallenge:
        return self.issue(mobile_number, VerificationPurpose.MOBILE, identity_id)

    def assign_code(self, record_id: UUID, code: str) -> None:
        """
        Gateway callback: attach the delivered code to a pending record.

        Raises:
            InvalidCode: If the code is not numeric of the configured length
            NotFound: If no such record exists
            AlreadyFinalized: If the record is used or expired
        """
        if not is_well_formed_code(code, self.code_length):
            raise InvalidCode(f"Code must be a {self.code_length} digit numeric string")

        record = self.repository.get(record_id)
        if record is None:
            raise NotFound("Verification record not found")

        now = self.clock()
        if not record.is_active(now) or not self.repository.assign_code(record_id, code, now):
            raise AlreadyFinalized()
        logger.info("Code assigned to verification record %s", record_id)

    def verify(self, address: str, code: str, purpose: VerificationPurpose) -> VerificationRecord:
        """
        Verify a code against the active record for (address, purpose).

        A miss increments attempts on every active record for the pair, even
        when none of them has a code yet. A hit consumes the record; if the
        attempt limit had already been reached it fails and a new code must
        be requested.

        Raises:
            ValidationFailed: If the code is malformed (no mutation happens)
            InvalidOrExpired: If no active record holds the code
            AttemptsExceeded: If the matching record was out of attempts
        """
        if not is_well_formed_code(code, self.code_length):
            raise ValidationFailed(f"Verification code must be {self.code_length} digits")

        address = normalize_address(address, purpose)
        now = self.clock()

        record = self.repository.consume_matching(address, purpose, code, now)
        if record is None:
            self.repository.increment_attempts(address, purpose, now, self.max_attempts)
            raise InvalidOrExpired()

        if record.attempts >= self.max_attempts:
            logger.info("Verification record %s exhausted after %d attempts", record.id, record.attempts)
            raise AttemptsExceeded()

        if record.identity_id is not None and purpose is VerificationPurpose.EMAIL:
            self.identities.mark_email_verified(record.identity_id)
        logger.info("Verification record %s verified", record.id)
        return record
