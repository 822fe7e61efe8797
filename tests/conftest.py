"""
Shared test fixtures and configuration.

This module provides pytest fixtures for:
- An in-memory store and repositories over it
- Domain services wired to a controllable clock and a recording gateway
- Helpers that walk an identity through registration
"""

from collections.abc import Callable
from datetime import date, datetime, timedelta, timezone
from uuid import UUID

import pytest

from src.adapters.repository.memory import (
    InMemoryIdentityRepository,
    InMemoryLoginAttemptRepository,
    InMemoryResetRepository,
    InMemoryVerificationRepository,
    MemoryStore,
)
from src.domain.authentication import AuthenticationService
from src.domain.codes import CodeAssignmentRouter
from src.domain.ledger import LoginAttemptLedger
from src.domain.ports import Currency, DeliveryRequest, Identity, PersonalInfo, Profile
from src.domain.registration import RegistrationService
from src.domain.reset import ResetService
from src.domain.verification import VerificationService

# bcrypt's minimum cost keeps hashing fast in tests
TEST_BCRYPT_COST = 4
TEST_JWT_SECRET = "test-secret-key-with-at-least-32-bytes!"


class FrozenClock:
    """Controllable clock. Call to read, advance() to move forward."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime.now(timezone.utc).replace(microsecond=0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class RecordingGateway:
    """CodeIssuanceGateway that stores requests instead of delivering them."""

    def __init__(self) -> None:
        self.requests: list[DeliveryRequest] = []
        self.error: Exception | None = None

    def request_delivery(self, request: DeliveryRequest) -> None:
        if self.error is not None:
            raise self.error
        self.requests.append(request)

    @property
    def last_record_id(self) -> UUID:
        return self.requests[-1].record_id


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def identities(store: MemoryStore) -> InMemoryIdentityRepository:
    return InMemoryIdentityRepository(store)


@pytest.fixture
def verifications(store: MemoryStore) -> InMemoryVerificationRepository:
    return InMemoryVerificationRepository(store)


@pytest.fixture
def resets(store: MemoryStore) -> InMemoryResetRepository:
    return InMemoryResetRepository(store)


@pytest.fixture
def login_attempts(store: MemoryStore) -> InMemoryLoginAttemptRepository:
    return InMemoryLoginAttemptRepository(store)


@pytest.fixture
def gateway() -> RecordingGateway:
    return RecordingGateway()


@pytest.fixture
def verification_service(verifications, identities, gateway, clock) -> VerificationService:
    return VerificationService(
        repository=verifications,
        identities=identities,
        gateway=gateway,
        clock=clock,
    )


@pytest.fixture
def reset_service(resets, identities, gateway, clock) -> ResetService:
    return ResetService(
        repository=resets,
        identities=identities,
        gateway=gateway,
        bcrypt_cost=TEST_BCRYPT_COST,
        clock=clock,
    )


@pytest.fixture
def registration_service(identities) -> RegistrationService:
    return RegistrationService(identities=identities, bcrypt_cost=TEST_BCRYPT_COST)


@pytest.fixture
def ledger(login_attempts) -> LoginAttemptLedger:
    return LoginAttemptLedger(login_attempts)


@pytest.fixture
def auth_service(identities, ledger, clock) -> AuthenticationService:
    return AuthenticationService(
        identities=identities,
        ledger=ledger,
        secret=TEST_JWT_SECRET,
        clock=clock,
    )


@pytest.fixture
def code_router(verification_service, reset_service) -> CodeAssignmentRouter:
    return CodeAssignmentRouter(verification=verification_service, resets=reset_service)


def personal_info(email: str = "alice@example.com", **overrides) -> PersonalInfo:
    values = {
        "first_name": "Alice",
        "last_name": "Liddell",
        "email": email,
        "date_of_birth": date(1990, 5, 17),
        "country": "UK",
        "nationality": "British",
        "is_over_18": True,
        "accepted_terms": True,
    }
    values.update(overrides)
    return PersonalInfo(**values)


def profile(mobile_number: str = "+44 7700 900123") -> Profile:
    return Profile(
        street="Rabbit Hole Lane",
        house_number="7",
        city="Oxford",
        postal_code="OX1 1AA",
        mobile_number=mobile_number,
        currency=Currency.GBP,
    )


@pytest.fixture
def register_user(registration_service, identities) -> Callable[..., Identity]:
    """Run steps 1-3 (or fewer) and return the stored identity."""

    def _register(
        email: str = "alice@example.com",
        username: str = "alice",
        password: str = "wonderland1",
        security_answer: str = "Dinah",
        mobile_number: str = "+44 7700 900123",
        steps: int = 3,
    ) -> Identity:
        identity = registration_service.begin_registration(personal_info(email))
        if steps >= 2:
            registration_service.set_credentials(
                identity.id, username, password, "Name of your first cat?", security_answer
            )
        if steps >= 3:
            registration_service.complete_profile(identity.id, profile(mobile_number))
        return identities.get(identity.id)

    return _register
