"""
Authentication domain service - credential checks and session tokens.

Login checks run in a fixed order and stop at the first failure:

    existence -> is_active -> registration_completed -> password

Every outcome is written to the login ledger with the first failing
reason, or success. Callers always see the same generic Unauthorized.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

import jwt

from .exceptions import Unauthorized
from .ledger import LoginAttemptLedger
from .passwords import check_secret
from .ports import Clock, FailureReason, Identity, IdentityRepository, utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Session:
    """Successful login: signed token plus the identity it was issued for."""

    token: str
    identity: Identity


@dataclass
class AuthenticationService:
    """Validates credentials against completed accounts and issues session tokens."""

    identities: IdentityRepository
    ledger: LoginAttemptLedger
    secret: str
    algorithm: str = "HS256"
    session_ttl_hours: int = 24
    clock: Clock = field(default=utc_now)

    def login(
        self,
        identifier: str,
        password: str,
        ip_address: str = "unknown",
        user_agent: str | None = None,
    ) -> Session:
        """
        Authenticate by email or username.

        Raises:
            Unauthorized: On any failed check (message is generic)
        """
        identifier = identifier.strip()
        identity = self.identities.find_by_login(identifier)

        # An incomplete registration is never active, so it is reported as
        # account_inactive: the reason set has no dedicated value for it.
        if identity is None:
            check_secret(password, None)
            reason = FailureReason.INVALID_USERNAME
        elif not identity.is_active or not identity.registration_completed:
            reason = FailureReason.ACCOUNT_INACTIVE
        elif not check_secret(password, identity.password_hash):
            reason = FailureReason.INVALID_PASSWORD
        else:
            reason = FailureReason.NONE

        identity_id = identity.id if identity is not None else None
        if reason is not FailureReason.NONE:
            self.ledger.record(identifier, ip_address, user_agent, False, reason, identity_id)
            logger.info("Login failed for %s: %s", identifier, reason.value)
            raise Unauthorized()

        now = self.clock()
        self.identities.record_login(identity.id, now)
        identity.last_login_at = now
        token = self.issue_token(identity)
        self.ledger.record(identifier, ip_address, user_agent, True, identity_id=identity.id)
        return Session(token=token, identity=identity)

    def issue_token(self, identity: Identity) -> str:
        now = self.clock()
        claims = {
            "sub": str(identity.id),
            "email": identity.email,
            "username": identity.username,
            "iat": now,
            "exp": now + timedelta(hours=self.session_ttl_hours),
        }
        return jwt.encode(claims, self.secret, algorithm=self.algorithm)

    def decode_token(self, token: str) -> dict[str, Any]:
        """
        Validate signature and expiry.

        Raises:
            Unauthorized: If the token is malformed, tampered with or expired
        """
        try:
            return jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError:
            raise Unauthorized("Token expired") from None
        except jwt.InvalidTokenError:
            raise Unauthorized("Invalid token") from None

    def current_identity(self, token: str) -> Identity:
        """Resolve a bearer token to an active identity."""
        claims = self.decode_token(token)
        try:
            identity_id = uuid.UUID(claims["sub"])
        except (KeyError, ValueError):
            raise Unauthorized("Invalid token") from None

        identity = self.identities.get(identity_id)
        if identity is None or not identity.is_active:
            raise Unauthorized("Invalid user or account deactivated")
        return identity
