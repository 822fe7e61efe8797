"""
Registration domain service - three-step onboarding state machine.

Registration State Machine (Forward-Only Transitions)
=====================================================

States:
- PERSONAL_INFO (1): identity created from personal details
- CREDENTIALS (2): username, password and security question set
- COMPLETED (3): address and mobile set, account active

Valid Transitions:
    (none)        -> PERSONAL_INFO  begin_registration()
    PERSONAL_INFO -> CREDENTIALS    set_credentials()
    CREDENTIALS   -> COMPLETED      complete_profile()

Replaying a step, or calling one out of order, fails with InvalidState and
never mutates the identity. Each transition is applied by the repository as
a conditional update on the current step, so two concurrent requests for
the same step cannot both succeed.
"""

import logging
import uuid
from dataclasses import dataclass
from uuid import UUID

from .exceptions import Conflict, InvalidState, NotFound, PreconditionFailed, Unauthorized
from .passwords import DEFAULT_BCRYPT_COST, check_secret, hash_secret, normalize_security_answer
from .ports import Identity, IdentityRepository, PersonalInfo, Profile, RegistrationStep
from .verification import normalize_email, normalize_mobile

logger = logging.getLogger(__name__)


@dataclass
class RegistrationService:
    """
    Domain service for multi-step user registration.

    Orchestrates the registration flow: email normalization, precondition
    checks, credential hashing and step persistence.
    """

    identities: IdentityRepository
    bcrypt_cost: int = DEFAULT_BCRYPT_COST

    def begin_registration(self, info: PersonalInfo) -> Identity:
        """
        Step 1: create the identity from personal information.

        Raises:
            Conflict: If the email already owns an identity
            PreconditionFailed: If age or terms were not confirmed
        """
        email = normalize_email(info.email)
        if self.identities.find_by_email(email) is not None:
            raise Conflict("User with this email already exists")
        if not info.is_over_18:
            raise PreconditionFailed("You must be over 18 to register")
        if not info.accepted_terms:
            raise PreconditionFailed("You must accept the terms and conditions")

        identity = Identity(
            id=uuid.uuid4(),
            email=email,
            first_name=info.first_name.strip(),
            last_name=info.last_name.strip(),
            date_of_birth=info.date_of_birth,
            country=info.country.strip(),
            nationality=info.nationality.strip(),
            is_over_18=info.is_over_18,
            accepted_terms=info.accepted_terms,
        )
        if not self.identities.create(identity):
            raise Conflict("User with this email already exists")

        logger.info("Registration started for identity %s", identity.id)
        return identity

    def set_credentials(
        self,
        identity_id: UUID,
        username: str,
        password: str,
        security_question: str,
        security_answer: str,
    ) -> RegistrationStep:
        """
        Step 2: set username, password and security question.

        Raises:
            InvalidState: If the identity is missing or not at step 1
            Conflict: If the username is taken
        """
        identity = self.identities.get(identity_id)
        if identity is None or identity.registration_step != RegistrationStep.PERSONAL_INFO:
            raise InvalidState()

        username = username.strip()
        if self.identities.username_exists(username):
            raise Conflict("Username already taken")

        password_hash = hash_secret(password, self.bcrypt_cost)
        answer_hash = hash_secret(normalize_security_answer(security_answer), self.bcrypt_cost)

        applied = self.identities.set_credentials(
            identity_id, username, password_hash, security_question.strip(), answer_hash
        )
        if not applied:
            raise InvalidState()

        logger.info("Credentials set for identity %s", identity_id)
        return RegistrationStep.CREDENTIALS

    def complete_profile(self, identity_id: UUID, profile: Profile) -> RegistrationStep:
        """
        Step 3: set address and mobile, then activate the account.

        Raises:
            InvalidState: If the identity is missing or not at step 2
        """
        identity = self.identities.get(identity_id)
        if identity is None or identity.registration_step != RegistrationStep.CREDENTIALS:
            raise InvalidState()

        profile.mobile_number = normalize_mobile(profile.mobile_number)
        if not self.identities.complete_profile(identity_id, profile):
            raise InvalidState()

        logger.info("Registration completed for identity %s", identity_id)
        return RegistrationStep.COMPLETED

    def is_username_available(self, username: str) -> bool:
        return not self.identities.username_exists(username.strip())

    def verify_security_answer(self, identifier: str, answer: str) -> Identity:
        """
        Alternative recovery check against the stored security answer.

        Raises:
            Unauthorized: For unknown identities, unset questions and wrong answers alike
        """
        identity = self.identities.find_by_login(identifier.strip())
        answer_hash = identity.security_answer_hash if identity is not None else None
        if not check_secret(normalize_security_answer(answer), answer_hash) or identity is None:
            raise Unauthorized("Invalid credentials or security question not set")
        return identity

    def get_identity(self, identity_id: UUID) -> Identity:
        identity = self.identities.get(identity_id)
        if identity is None:
            raise NotFound("User not found")
        return identity
