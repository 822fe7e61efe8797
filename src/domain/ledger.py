"""
Login attempt ledger - best-effort, append-only audit of authentication attempts.

Writes never fail the caller's primary operation: a failed insert is logged
and dropped. Nothing in this module reads the ledger back to make
decisions; in particular no lockout threshold is derived from it.
"""

import logging
from dataclasses import dataclass
from uuid import UUID

from .ports import FailureReason, LoginAttempt, LoginAttemptRepository

logger = logging.getLogger(__name__)


@dataclass
class LoginAttemptLedger:
    """Non-blocking writer for LoginAttempt records."""

    repository: LoginAttemptRepository

    def record(
        self,
        username: str,
        ip_address: str,
        user_agent: str | None,
        success: bool,
        reason: FailureReason = FailureReason.NONE,
        identity_id: UUID | None = None,
    ) -> None:
        attempt = LoginAttempt(
            username=username,
            identity_id=identity_id,
            ip_address=ip_address,
            user_agent=user_agent,
            success=success,
            failure_reason=FailureReason.NONE if success else reason,
        )
        try:
            self.repository.add(attempt)
        except Exception:
            logger.exception("Failed to log login attempt for %s", username)
