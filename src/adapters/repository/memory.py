"""
In-memory repository adapters - Implement the domain repository protocols.

All four repositories share one MemoryStore whose lock serializes every
operation, which gives the same atomicity the PostgreSQL adapter gets from
transactions and conditional updates. Used by tests and by local runs with
DATABASE_URL=memory://.
"""

import threading
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from uuid import UUID

from src.domain.exceptions import Conflict
from src.domain.ports import (
    AssignedCode,
    Identity,
    LoginAttempt,
    Profile,
    RegistrationStep,
    ResetRecord,
    ResetType,
    VerificationPurpose,
    VerificationRecord,
)
from src.domain.verification import normalize_email


@dataclass
class MemoryStore:
    """Shared tables and the lock guarding them."""

    identities: dict[UUID, Identity] = field(default_factory=dict)
    verifications: dict[UUID, VerificationRecord] = field(default_factory=dict)
    resets: dict[UUID, ResetRecord] = field(default_factory=dict)
    login_attempts: list[LoginAttempt] = field(default_factory=list)
    lock: threading.Lock = field(default_factory=threading.Lock)


class InMemoryIdentityRepository:
    """Implements IdentityRepository protocol over a MemoryStore."""

    def __init__(self, store: MemoryStore) -> None:
        self._store = store

    def create(self, identity: Identity) -> bool:
        with self._store.lock:
            if any(i.email == identity.email for i in self._store.identities.values()):
                return False
            self._store.identities[identity.id] = replace(identity)
            return True

    def get(self, identity_id: UUID) -> Identity | None:
        with self._store.lock:
            identity = self._store.identities.get(identity_id)
            return replace(identity) if identity is not None else None

    def find_by_email(self, email: str) -> Identity | None:
        with self._store.lock:
            for identity in self._store.identities.values():
                if identity.email == email:
                    return replace(identity)
        return None

    def find_by_login(self, identifier: str) -> Identity | None:
        email = normalize_email(identifier)
        with self._store.lock:
            for identity in self._store.identities.values():
                if identity.email == email or identity.username == identifier:
                    return replace(identity)
        return None

    def username_exists(self, username: str) -> bool:
        with self._store.lock:
            return any(i.username == username for i in self._store.identities.values())

    def set_credentials(
        self,
        identity_id: UUID,
        username: str,
        password_hash: str,
        security_question: str,
        security_answer_hash: str,
    ) -> bool:
        with self._store.lock:
            identity = self._store.identities.get(identity_id)
            if identity is None or identity.registration_step != RegistrationStep.PERSONAL_INFO:
                return False
            if any(i.username == username for i in self._store.identities.values()):
                raise Conflict("Username already taken")
            identity.username = username
            identity.password_hash = password_hash
            identity.security_question = security_question
            identity.security_answer_hash = security_answer_hash
            identity.registration_step = RegistrationStep.CREDENTIALS
            return True

    def complete_profile(self, identity_id: UUID, profile: Profile) -> bool:
        with self._store.lock:
            identity = self._store.identities.get(identity_id)
            if identity is None or identity.registration_step != RegistrationStep.CREDENTIALS:
                return False
            if any(
                i.mobile_number == profile.mobile_number
                for i in self._store.identities.values()
                if i.id != identity_id
            ):
                raise Conflict("Mobile number already registered")
            identity.street = profile.street
            identity.house_number = profile.house_number
            identity.city = profile.city
            identity.postal_code = profile.postal_code
            identity.mobile_number = profile.mobile_number
            identity.currency = profile.currency
            identity.registration_step = RegistrationStep.COMPLETED
            identity.registration_completed = True
            identity.is_active = True
            return True

    def update_password(self, identity_id: UUID, password_hash: str) -> bool:
        with self._store.lock:
            identity = self._store.identities.get(identity_id)
            if identity is None:
                return False
            identity.password_hash = password_hash
            return True

    def mark_email_verified(self, identity_id: UUID) -> None:
        with self._store.lock:
            identity = self._store.identities.get(identity_id)
            if identity is not None:
                identity.email_verified = True

    def record_login(self, identity_id: UUID, at: datetime) -> None:
        with self._store.lock:
            identity = self._store.identities.get(identity_id)
            if identity is not None:
                identity.last_login_at = at


class InMemoryVerificationRepository:
    """Implements VerificationRepository protocol over a MemoryStore."""

    def __init__(self, store: MemoryStore) -> None:
        self._store = store

    def _active(self, address: str, purpose: VerificationPurpose, now: datetime) -> list[VerificationRecord]:
        return [
            r
            for r in self._store.verifications.values()
            if r.address == address and r.purpose == purpose and r.is_active(now)
        ]

    def issue(
        self,
        address: str,
        purpose: VerificationPurpose,
        identity_id: UUID | None,
        expires_at: datetime,
        now: datetime,
    ) -> VerificationRecord:
        with self._store.lock:
            for record in self._active(address, purpose, now):
                record.is_used = True
            record = VerificationRecord(
                id=uuid.uuid4(),
                address=address,
                purpose=purpose,
                identity_id=identity_id,
                expires_at=expires_at,
                created_at=now,
            )
            self._store.verifications[record.id] = record
            return replace(record)

    def get(self, record_id: UUID) -> VerificationRecord | None:
        with self._store.lock:
            record = self._store.verifications.get(record_id)
            return replace(record) if record is not None else None

    def delete(self, record_id: UUID) -> None:
        with self._store.lock:
            self._store.verifications.pop(record_id, None)

    def assign_code(self, record_id: UUID, code: str, now: datetime) -> bool:
        with self._store.lock:
            record = self._store.verifications.get(record_id)
            if record is None or not record.is_active(now):
                return False
            record.code = AssignedCode(code)
            return True

    def consume_matching(
        self, address: str, purpose: VerificationPurpose, code: str, now: datetime
    ) -> VerificationRecord | None:
        with self._store.lock:
            for record in self._active(address, purpose, now):
                if record.code == AssignedCode(code):
                    record.is_used = True
                    return replace(record)
        return None

    def increment_attempts(
        self, address: str, purpose: VerificationPurpose, now: datetime, max_attempts: int
    ) -> int:
        with self._store.lock:
            active = self._active(address, purpose, now)
            for record in active:
                record.attempts = min(record.attempts + 1, max_attempts)
            return len(active)

    def active_records(
        self, address: str, purpose: VerificationPurpose, now: datetime
    ) -> list[VerificationRecord]:
        with self._store.lock:
            return [replace(r) for r in self._active(address, purpose, now)]


class InMemoryResetRepository:
    """Implements ResetRepository protocol over a MemoryStore."""

    def __init__(self, store: MemoryStore) -> None:
        self._store = store

    def _active(self, email: str, reset_type: ResetType, now: datetime) -> list[ResetRecord]:
        return [
            r
            for r in self._store.resets.values()
            if r.email == email and r.reset_type == reset_type and r.is_active(now)
        ]

    def issue(
        self,
        identity_id: UUID,
        email: str,
        reset_type: ResetType,
        reset_token: str,
        expires_at: datetime,
        now: datetime,
    ) -> ResetRecord:
        with self._store.lock:
            if any(r.reset_token == reset_token for r in self._store.resets.values()):
                raise Conflict("Reset token collision")
            for record in self._active(email, reset_type, now):
                record.is_used = True
            record = ResetRecord(
                id=uuid.uuid4(),
                identity_id=identity_id,
                email=email,
                reset_token=reset_token,
                reset_type=reset_type,
                expires_at=expires_at,
                created_at=now,
            )
            self._store.resets[record.id] = record
            return replace(record)

    def get(self, record_id: UUID) -> ResetRecord | None:
        with self._store.lock:
            record = self._store.resets.get(record_id)
            return replace(record) if record is not None else None

    def delete(self, record_id: UUID) -> None:
        with self._store.lock:
            self._store.resets.pop(record_id, None)

    def assign_code(self, record_id: UUID, code: str, now: datetime) -> bool:
        with self._store.lock:
            record = self._store.resets.get(record_id)
            if record is None or not record.is_active(now):
                return False
            record.code = AssignedCode(code)
            return True

    def verify_code(
        self, email: str, reset_type: ResetType, code: str, now: datetime, max_attempts: int
    ) -> ResetRecord | None:
        with self._store.lock:
            for record in self._active(email, reset_type, now):
                if record.code == AssignedCode(code):
                    if record.attempts >= max_attempts:
                        record.is_used = True
                    elif record.verified_at is None:
                        record.verified_at = now
                    return replace(record)
        return None

    def increment_attempts(self, email: str, reset_type: ResetType, now: datetime, max_attempts: int) -> int:
        with self._store.lock:
            active = self._active(email, reset_type, now)
            for record in active:
                record.attempts = min(record.attempts + 1, max_attempts)
            return len(active)

    def consume_token(self, reset_token: str, reset_type: ResetType, now: datetime) -> ResetRecord | None:
        with self._store.lock:
            for record in self._store.resets.values():
                if (
                    record.reset_token == reset_token
                    and record.reset_type == reset_type
                    and record.is_active(now)
                    and record.verified_at is not None
                ):
                    record.is_used = True
                    record.used_at = now
                    return replace(record)
        return None

    def active_records(self, email: str, reset_type: ResetType, now: datetime) -> list[ResetRecord]:
        with self._store.lock:
            return [replace(r) for r in self._active(email, reset_type, now)]


class InMemoryLoginAttemptRepository:
    """Implements LoginAttemptRepository protocol over a MemoryStore."""

    def __init__(self, store: MemoryStore) -> None:
        self._store = store

    def add(self, attempt: LoginAttempt) -> None:
        with self._store.lock:
            self._store.login_attempts.append(attempt)

    def find_by_username(self, username: str) -> list[LoginAttempt]:
        with self._store.lock:
            return [a for a in self._store.login_attempts if a.username == username]
