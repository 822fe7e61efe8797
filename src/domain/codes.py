"""
Gateway callback routing.

The delivery relay only knows record ids. This module resolves an id in
the verification store first, then the reset store.
"""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from .exceptions import NotFound
from .reset import ResetService
from .verification import VerificationService


@dataclass(frozen=True)
class RecordSummary:
    """What the relay may see about a record. Never includes the code."""

    id: UUID
    type: str
    email: str
    expires_at: datetime
    is_used: bool
    created_at: datetime


@dataclass
class CodeAssignmentRouter:
    verification: VerificationService
    resets: ResetService

    def assign_code(self, record_id: UUID, code: str) -> None:
        """
        Raises:
            InvalidCode, AlreadyFinalized: From the owning store
            NotFound: If neither store has the record
        """
        if self.verification.repository.get(record_id) is not None:
            self.verification.assign_code(record_id, code)
            return
        self.resets.assign_code(record_id, code)

    def describe(self, record_id: UUID) -> RecordSummary:
        record = self.verification.repository.get(record_id)
        if record is not None:
            return RecordSummary(
                id=record.id,
                type=record.purpose.value,
                email=record.address,
                expires_at=record.expires_at,
                is_used=record.is_used,
                created_at=record.created_at,
            )

        reset = self.resets.repository.get(record_id)
        if reset is None:
            raise NotFound("Record not found")
        return RecordSummary(
            id=reset.id,
            type=reset.reset_type.value,
            email=reset.email,
            expires_at=reset.expires_at,
            is_used=reset.is_used,
            created_at=reset.created_at,
        )
