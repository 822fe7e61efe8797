"""
PostgreSQL repository adapters - Implement the domain repository protocols.

This module provides the PostgreSQL implementations of the domain's
repository ports using psycopg3 with raw SQL.

Concurrency Design:
-------------------
1. **Issuance** (invalidate-then-create) runs in one transaction holding
   `pg_advisory_xact_lock` on the (address, purpose) or (email, reset_type)
   key. Two concurrent issuances for the same key serialize, so exactly one
   record is left active.

2. **Attempt counting** is a single `UPDATE ... SET attempts = LEAST(attempts + 1, max)`.
   No value is read into Python and written back, so concurrent wrong
   guesses cannot under-count.

3. **Consumption** is a conditional `UPDATE ... WHERE is_used = FALSE ...
   RETURNING`. Of two concurrent consumers of one record, only one gets a row.

4. **Registration steps** are conditional updates on `registration_step`,
   so a replayed or out-of-order step changes nothing.

Expiry is compared against the timestamp passed in by the domain service.
"""

import logging
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any
from uuid import UUID

from psycopg import errors
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from src.domain.exceptions import Conflict
from src.domain.ports import (
    Currency,
    FailureReason,
    Identity,
    LoginAttempt,
    Profile,
    RegistrationStep,
    ResetRecord,
    ResetType,
    VerificationPurpose,
    VerificationRecord,
    code_from_column,
)
from src.domain.verification import normalize_email

logger = logging.getLogger(__name__)

_IDENTITY_COLUMNS = """
    id, email, first_name, last_name, date_of_birth, country, nationality,
    is_over_18, accepted_terms, username, password_hash, security_question,
    security_answer_hash, street, house_number, city, postal_code, mobile_number,
    currency, registration_step, registration_completed, is_active, email_verified,
    last_login_at, created_at
"""

_VERIFICATION_COLUMNS = "id, identity_id, address, purpose, code, expires_at, is_used, attempts, created_at"

_RESET_COLUMNS = """
    id, identity_id, email, reset_token, reset_code, reset_type, expires_at,
    is_used, attempts, created_at, verified_at, used_at
"""


def _identity_from_row(row: dict[str, Any]) -> Identity:
    return Identity(
        id=row["id"],
        email=row["email"],
        first_name=row["first_name"],
        last_name=row["last_name"],
        date_of_birth=row["date_of_birth"],
        country=row["country"],
        nationality=row["nationality"],
        is_over_18=row["is_over_18"],
        accepted_terms=row["accepted_terms"],
        username=row["username"],
        password_hash=row["password_hash"],
        security_question=row["security_question"],
        security_answer_hash=row["security_answer_hash"],
        street=row["street"],
        house_number=row["house_number"],
        city=row["city"],
        postal_code=row["postal_code"],
        mobile_number=row["mobile_number"],
        currency=Currency(row["currency"]) if row["currency"] else None,
        registration_step=RegistrationStep(row["registration_step"]),
        registration_completed=row["registration_completed"],
        is_active=row["is_active"],
        email_verified=row["email_verified"],
        last_login_at=row["last_login_at"],
        created_at=row["created_at"],
    )


def _verification_from_row(row: dict[str, Any]) -> VerificationRecord:
    return VerificationRecord(
        id=row["id"],
        identity_id=row["identity_id"],
        address=row["address"],
        purpose=VerificationPurpose(row["purpose"]),
        code=code_from_column(row["code"]),
        expires_at=row["expires_at"],
        is_used=row["is_used"],
        attempts=row["attempts"],
        created_at=row["created_at"],
    )


def _reset_from_row(row: dict[str, Any]) -> ResetRecord:
    return ResetRecord(
        id=row["id"],
        identity_id=row["identity_id"],
        email=row["email"],
        reset_token=row["reset_token"],
        code=code_from_column(row["reset_code"]),
        reset_type=ResetType(row["reset_type"]),
        expires_at=row["expires_at"],
        is_used=row["is_used"],
        attempts=row["attempts"],
        created_at=row["created_at"],
        verified_at=row["verified_at"],
        used_at=row["used_at"],
    )


class PostgresIdentityRepository:
    """
    Implements IdentityRepository protocol via psycopg3.

    Uses structural subtyping - no explicit inheritance from Protocol.
    All SQL uses parameterized queries.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def _fetch_one(self, sql: str, params: tuple) -> Identity | None:
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(sql, params)
            row = cursor.fetchone()
        return _identity_from_row(row) if row is not None else None

    def create(self, identity: Identity) -> bool:
        """
        Insert a step-1 identity.

        ON CONFLICT (email) DO NOTHING makes concurrent registrations for the
        same email race-free: exactly one insert reports a row.
        """
        sql = """
            INSERT INTO identities (
                id, email, first_name, last_name, date_of_birth, country, nationality,
                is_over_18, accepted_terms, registration_step, created_at
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, 1, %s)
            ON CONFLICT (email) DO NOTHING
        """
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(
                sql,
                (
                    identity.id,
                    identity.email,
                    identity.first_name,
                    identity.last_name,
                    identity.date_of_birth,
                    identity.country,
                    identity.nationality,
                    identity.is_over_18,
                    identity.accepted_terms,
                    identity.created_at,
                ),
            )
            conn.commit()
            return cursor.rowcount == 1

    def get(self, identity_id: UUID) -> Identity | None:
        return self._fetch_one(f"SELECT {_IDENTITY_COLUMNS} FROM identities WHERE id = %s", (identity_id,))

    def find_by_email(self, email: str) -> Identity | None:
        return self._fetch_one(f"SELECT {_IDENTITY_COLUMNS} FROM identities WHERE email = %s", (email,))

    def find_by_login(self, identifier: str) -> Identity | None:
        sql = f"""
            SELECT {_IDENTITY_COLUMNS} FROM identities
            WHERE email = %s OR username = %s
            ORDER BY (email = %s) DESC
            LIMIT 1
        """
        email = normalize_email(identifier)
        return self._fetch_one(sql, (email, identifier, email))

    def username_exists(self, username: str) -> bool:
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute("SELECT 1 FROM identities WHERE username = %s", (username,))
            return cursor.fetchone() is not None

    def set_credentials(
        self,
        identity_id: UUID,
        username: str,
        password_hash: str,
        security_question: str,
        security_answer_hash: str,
    ) -> bool:
        sql = """
            UPDATE identities
            SET username = %s,
                password_hash = %s,
                security_question = %s,
                security_answer_hash = %s,
                registration_step = 2
            WHERE id = %s AND registration_step = 1
        """
        with self._pool.connection() as conn, conn.cursor() as cursor:
            try:
                cursor.execute(
                    sql, (username, password_hash, security_question, security_answer_hash, identity_id)
                )
            except errors.UniqueViolation:
                conn.rollback()
                raise Conflict("Username already taken") from None
            conn.commit()
            return cursor.rowcount == 1

    def complete_profile(self, identity_id: UUID, profile: Profile) -> bool:
        sql = """
            UPDATE identities
            SET street = %s,
                house_number = %s,
                city = %s,
                postal_code = %s,
                mobile_number = %s,
                currency = %s,
                registration_step = 3,
                registration_completed = TRUE,
                is_active = TRUE
            WHERE id = %s AND registration_step = 2
        """
        with self._pool.connection() as conn, conn.cursor() as cursor:
            try:
                cursor.execute(
                    sql,
                    (
                        profile.street,
                        profile.house_number,
                        profile.city,
                        profile.postal_code,
                        profile.mobile_number,
                        profile.currency.value,
                        identity_id,
                    ),
                )
            except errors.UniqueViolation:
                conn.rollback()
                raise Conflict("Mobile number already registered") from None
            conn.commit()
            return cursor.rowcount == 1

    def update_password(self, identity_id: UUID, password_hash: str) -> bool:
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute("UPDATE identities SET password_hash = %s WHERE id = %s", (password_hash, identity_id))
            conn.commit()
            return cursor.rowcount == 1

    def mark_email_verified(self, identity_id: UUID) -> None:
        with self._pool.connection() as conn:
            conn.execute("UPDATE identities SET email_verified = TRUE WHERE id = %s", (identity_id,))
            conn.commit()

    def record_login(self, identity_id: UUID, at: datetime) -> None:
        with self._pool.connection() as conn:
            conn.execute("UPDATE identities SET last_login_at = %s WHERE id = %s", (at, identity_id))
            conn.commit()


class PostgresVerificationRepository:
    """Implements VerificationRepository protocol via psycopg3."""

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def issue(
        self,
        address: str,
        purpose: VerificationPurpose,
        identity_id: UUID | None,
        expires_at: datetime,
        now: datetime,
    ) -> VerificationRecord:
        lock_sql = "SELECT pg_advisory_xact_lock(hashtextextended(%s, 0))"
        invalidate_sql = """
            UPDATE verification_records
            SET is_used = TRUE
            WHERE address = %s AND purpose = %s AND is_used = FALSE AND expires_at > %s
        """
        insert_sql = f"""
            INSERT INTO verification_records (id, identity_id, address, purpose, expires_at, created_at)
            VALUES (%s, %s, %s, %s, %s, %s)
            RETURNING {_VERIFICATION_COLUMNS}
        """
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(lock_sql, (f"verification:{purpose.value}:{address}",))
            cursor.execute(invalidate_sql, (address, purpose.value, now))
            cursor.execute(insert_sql, (uuid.uuid4(), identity_id, address, purpose.value, expires_at, now))
            row = cursor.fetchone()
            conn.commit()
        return _verification_from_row(row)

    def get(self, record_id: UUID) -> VerificationRecord | None:
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(f"SELECT {_VERIFICATION_COLUMNS} FROM verification_records WHERE id = %s", (record_id,))
            row = cursor.fetchone()
        return _verification_from_row(row) if row is not None else None

    def delete(self, record_id: UUID) -> None:
        with self._pool.connection() as conn:
            conn.execute("DELETE FROM verification_records WHERE id = %s", (record_id,))
            conn.commit()

    def assign_code(self, record_id: UUID, code: str, now: datetime) -> bool:
        sql = """
            UPDATE verification_records
            SET code = %s
            WHERE id = %s AND is_used = FALSE AND expires_at > %s
        """
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (code, record_id, now))
            conn.commit()
            return cursor.rowcount == 1

    def consume_matching(
        self, address: str, purpose: VerificationPurpose, code: str, now: datetime
    ) -> VerificationRecord | None:
        sql = f"""
            UPDATE verification_records
            SET is_used = TRUE
            WHERE id = (
                SELECT id FROM verification_records
                WHERE address = %s AND purpose = %s AND code = %s
                  AND is_used = FALSE AND expires_at > %s
                ORDER BY created_at DESC
                LIMIT 1
                FOR UPDATE
            )
            AND is_used = FALSE
            RETURNING {_VERIFICATION_COLUMNS}
        """
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(sql, (address, purpose.value, code, now))
            row = cursor.fetchone()
            conn.commit()
        return _verification_from_row(row) if row is not None else None

    def increment_attempts(
        self, address: str, purpose: VerificationPurpose, now: datetime, max_attempts: int
    ) -> int:
        sql = """
            UPDATE verification_records
            SET attempts = LEAST(attempts + 1, %s)
            WHERE address = %s AND purpose = %s AND is_used = FALSE AND expires_at > %s
        """
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (max_attempts, address, purpose.value, now))
            conn.commit()
            return cursor.rowcount

    def active_records(
        self, address: str, purpose: VerificationPurpose, now: datetime
    ) -> list[VerificationRecord]:
        sql = f"""
            SELECT {_VERIFICATION_COLUMNS} FROM verification_records
            WHERE address = %s AND purpose = %s AND is_used = FALSE AND expires_at > %s
        """
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(sql, (address, purpose.value, now))
            return [_verification_from_row(row) for row in cursor.fetchall()]


class PostgresResetRepository:
    """Implements ResetRepository protocol via psycopg3."""

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def issue(
        self,
        identity_id: UUID,
        email: str,
        reset_type: ResetType,
        reset_token: str,
        expires_at: datetime,
        now: datetime,
    ) -> ResetRecord:
        lock_sql = "SELECT pg_advisory_xact_lock(hashtextextended(%s, 0))"
        invalidate_sql = """
            UPDATE reset_records
            SET is_used = TRUE
            WHERE email = %s AND reset_type = %s AND is_used = FALSE AND expires_at > %s
        """
        insert_sql = f"""
            INSERT INTO reset_records (id, identity_id, email, reset_token, reset_type, expires_at, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            RETURNING {_RESET_COLUMNS}
        """
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(lock_sql, (f"reset:{reset_type.value}:{email}",))
            cursor.execute(invalidate_sql, (email, reset_type.value, now))
            try:
                cursor.execute(
                    insert_sql,
                    (uuid.uuid4(), identity_id, email, reset_token, reset_type.value, expires_at, now),
                )
            except errors.UniqueViolation:
                conn.rollback()
                raise Conflict("Reset token collision") from None
            row = cursor.fetchone()
            conn.commit()
        return _reset_from_row(row)

    def get(self, record_id: UUID) -> ResetRecord | None:
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(f"SELECT {_RESET_COLUMNS} FROM reset_records WHERE id = %s", (record_id,))
            row = cursor.fetchone()
        return _reset_from_row(row) if row is not None else None

    def delete(self, record_id: UUID) -> None:
        with self._pool.connection() as conn:
            conn.execute("DELETE FROM reset_records WHERE id = %s", (record_id,))
            conn.commit()

    def assign_code(self, record_id: UUID, code: str, now: datetime) -> bool:
        sql = """
            UPDATE reset_records
            SET reset_code = %s
            WHERE id = %s AND is_used = FALSE AND expires_at > %s
        """
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (code, record_id, now))
            conn.commit()
            return cursor.rowcount == 1

    def verify_code(
        self, email: str, reset_type: ResetType, code: str, now: datetime, max_attempts: int
    ) -> ResetRecord | None:
        # Under the limit: stamp verified_at. At the limit: burn the record.
        sql = f"""
            UPDATE reset_records
            SET is_used = (attempts >= %s),
                verified_at = CASE
                    WHEN attempts < %s THEN COALESCE(verified_at, %s)
                    ELSE verified_at
                END
            WHERE id = (
                SELECT id FROM reset_records
                WHERE email = %s AND reset_type = %s AND reset_code = %s
                  AND is_used = FALSE AND expires_at > %s
                ORDER BY created_at DESC
                LIMIT 1
                FOR UPDATE
            )
            AND is_used = FALSE
            RETURNING {_RESET_COLUMNS}
        """
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(sql, (max_attempts, max_attempts, now, email, reset_type.value, code, now))
            row = cursor.fetchone()
            conn.commit()
        return _reset_from_row(row) if row is not None else None

    def increment_attempts(self, email: str, reset_type: ResetType, now: datetime, max_attempts: int) -> int:
        sql = """
            UPDATE reset_records
            SET attempts = LEAST(attempts + 1, %s)
            WHERE email = %s AND reset_type = %s AND is_used = FALSE AND expires_at > %s
        """
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (max_attempts, email, reset_type.value, now))
            conn.commit()
            return cursor.rowcount

    def consume_token(self, reset_token: str, reset_type: ResetType, now: datetime) -> ResetRecord | None:
        sql = f"""
            UPDATE reset_records
            SET is_used = TRUE, used_at = %s
            WHERE reset_token = %s AND reset_type = %s
              AND is_used = FALSE AND expires_at > %s AND verified_at IS NOT NULL
            RETURNING {_RESET_COLUMNS}
        """
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(sql, (now, reset_token, reset_type.value, now))
            row = cursor.fetchone()
            conn.commit()
        return _reset_from_row(row) if row is not None else None

    def active_records(self, email: str, reset_type: ResetType, now: datetime) -> list[ResetRecord]:
        sql = f"""
            SELECT {_RESET_COLUMNS} FROM reset_records
            WHERE email = %s AND reset_type = %s AND is_used = FALSE AND expires_at > %s
        """
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(sql, (email, reset_type.value, now))
            return [_reset_from_row(row) for row in cursor.fetchall()]


class PostgresLoginAttemptRepository:
    """Implements LoginAttemptRepository protocol via psycopg3. Insert-only."""

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def add(self, attempt: LoginAttempt) -> None:
        sql = """
            INSERT INTO login_attempts
                (username, identity_id, ip_address, user_agent, success, failure_reason, attempted_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
        """
        with self._pool.connection() as conn:
            conn.execute(
                sql,
                (
                    attempt.username,
                    attempt.identity_id,
                    attempt.ip_address,
                    attempt.user_agent,
                    attempt.success,
                    attempt.failure_reason.value,
                    attempt.attempted_at,
                ),
            )
            conn.commit()

    def find_by_username(self, username: str) -> list[LoginAttempt]:
        sql = """
            SELECT username, identity_id, ip_address, user_agent, success, failure_reason, attempted_at
            FROM login_attempts
            WHERE username = %s
            ORDER BY attempted_at
        """
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(sql, (username,))
            rows = cursor.fetchall()
        return [
            LoginAttempt(
                username=row["username"],
                identity_id=row["identity_id"],
                ip_address=row["ip_address"],
                user_agent=row["user_agent"],
                success=row["success"],
                failure_reason=FailureReason(row["failure_reason"]),
                attempted_at=row["attempted_at"],
            )
            for row in rows
        ]


def run_migrations(pool: ConnectionPool) -> None:
    """
    Execute all SQL migration files from the migrations directory.

    Migrations are executed in sorted order (alphabetically by filename).
    Each migration is idempotent (IF NOT EXISTS).

    Args:
        pool: psycopg3 ConnectionPool instance
    """
    # Structure: src/adapters/repository/postgres.py -> migrations/
    migrations_dir = Path(__file__).parent.parent.parent.parent / "migrations"

    if not migrations_dir.exists():
        logger.warning(f"Migrations directory not found: {migrations_dir}")
        return

    sql_files = sorted(migrations_dir.glob("*.sql"))

    if not sql_files:
        logger.info("No migration files found")
        return

    logger.info(f"Running {len(sql_files)} migration(s)")

    for sql_file in sql_files:
        logger.info(f"Executing migration: {sql_file.name}")
        try:
            sql_content = sql_file.read_text()

            with pool.connection() as conn:
                conn.execute(sql_content)

            logger.info(f"Migration complete: {sql_file.name}")
        except Exception as e:
            logger.error(f"Migration failed: {sql_file.name} - {e}")
            raise RuntimeError(f"Database migration failed: {sql_file.name}") from e
