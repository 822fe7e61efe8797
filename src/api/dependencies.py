"""
FastAPI dependencies - Dependency injection factories.

This module provides Depends() factories for injecting
domain services and infrastructure adapters into routes.
"""

from dataclasses import dataclass
from functools import lru_cache

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from src.adapters.delivery import (
    ConsoleDeliveryStrategy,
    DeliveryStrategy,
    FailoverCodeGateway,
    SmtpDeliveryStrategy,
)
from src.adapters.repository import (
    InMemoryIdentityRepository,
    InMemoryLoginAttemptRepository,
    InMemoryResetRepository,
    InMemoryVerificationRepository,
    PostgresIdentityRepository,
    PostgresLoginAttemptRepository,
    PostgresResetRepository,
    PostgresVerificationRepository,
)
from src.config.settings import Settings, get_settings
from src.domain.authentication import AuthenticationService
from src.domain.codes import CodeAssignmentRouter
from src.domain.ledger import LoginAttemptLedger
from src.domain.ports import (
    IdentityRepository,
    LoginAttemptRepository,
    ResetRepository,
    VerificationRepository,
)
from src.domain.registration import RegistrationService
from src.domain.reset import ResetService
from src.domain.verification import VerificationService


@dataclass
class Repositories:
    """Repository adapters bound to one store for the current request."""

    identities: IdentityRepository
    verifications: VerificationRepository
    resets: ResetRepository
    login_attempts: LoginAttemptRepository


def get_repositories(request: Request) -> Repositories:
    """
    Create repositories over the store held in app state.

    The store (connection pool or MemoryStore) is created during app
    lifespan startup.
    """
    store = getattr(request.app.state, "memory_store", None)
    if store is not None:
        return Repositories(
            identities=InMemoryIdentityRepository(store),
            verifications=InMemoryVerificationRepository(store),
            resets=InMemoryResetRepository(store),
            login_attempts=InMemoryLoginAttemptRepository(store),
        )

    pool = request.app.state.pool
    return Repositories(
        identities=PostgresIdentityRepository(pool),
        verifications=PostgresVerificationRepository(pool),
        resets=PostgresResetRepository(pool),
        login_attempts=PostgresLoginAttemptRepository(pool),
    )


def build_delivery_strategies(settings: Settings) -> list[DeliveryStrategy]:
    """
    Ordered failover chain: primary SMTP on each configured port, the
    fallback provider, then console logging when enabled.
    """
    strategies: list[DeliveryStrategy] = []
    if settings.smtp_host:
        for port in settings.smtp_ports:
            strategies.append(
                SmtpDeliveryStrategy(
                    host=settings.smtp_host,
                    port=port,
                    sender=settings.from_email,
                    username=settings.smtp_username,
                    password=settings.smtp_password,
                    use_ssl=port == 465,
                    starttls=settings.smtp_use_tls,
                    timeout=settings.smtp_timeout_seconds,
                )
            )
    if settings.fallback_smtp_host:
        strategies.append(
            SmtpDeliveryStrategy(
                host=settings.fallback_smtp_host,
                port=settings.fallback_smtp_port,
                sender=settings.from_email,
                username=settings.fallback_smtp_username,
                password=settings.fallback_smtp_password,
                use_ssl=settings.fallback_smtp_port == 465,
                timeout=settings.smtp_timeout_seconds,
            )
        )
    if settings.uses_console_delivery:
        strategies.append(ConsoleDeliveryStrategy())
    return strategies


@lru_cache
def get_delivery_strategies() -> tuple[DeliveryStrategy, ...]:
    """Strategies are stateless - built once from settings."""
    return tuple(build_delivery_strategies(get_settings()))


def get_code_router(
    repositories: Repositories = Depends(get_repositories),
    strategies: tuple[DeliveryStrategy, ...] = Depends(get_delivery_strategies),
) -> CodeAssignmentRouter:
    """
    Wire the verification and reset services around one gateway.

    In inline mode the gateway reports generated codes back through the
    router, the same path the relay's HTTP callback takes.
    """
    settings = get_settings()
    gateway = FailoverCodeGateway(strategies, code_length=settings.code_length)

    verification = VerificationService(
        repository=repositories.verifications,
        identities=repositories.identities,
        gateway=gateway,
        ttl_seconds=settings.verification_ttl_seconds,
        max_attempts=settings.max_attempts,
        code_length=settings.code_length,
    )
    resets = ResetService(
        repository=repositories.resets,
        identities=repositories.identities,
        gateway=gateway,
        ttl_seconds=settings.reset_ttl_seconds,
        max_attempts=settings.max_attempts,
        code_length=settings.code_length,
        bcrypt_cost=settings.bcrypt_cost,
    )
    router = CodeAssignmentRouter(verification=verification, resets=resets)
    if settings.inline_code_reporting:
        gateway.reporter = router.assign_code
    return router


def get_verification_service(router: CodeAssignmentRouter = Depends(get_code_router)) -> VerificationService:
    return router.verification


def get_reset_service(router: CodeAssignmentRouter = Depends(get_code_router)) -> ResetService:
    return router.resets


def get_registration_service(repositories: Repositories = Depends(get_repositories)) -> RegistrationService:
    return RegistrationService(identities=repositories.identities, bcrypt_cost=get_settings().bcrypt_cost)


def get_authentication_service(
    repositories: Repositories = Depends(get_repositories),
) -> AuthenticationService:
    settings = get_settings()
    return AuthenticationService(
        identities=repositories.identities,
        ledger=LoginAttemptLedger(repositories.login_attempts),
        secret=settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
        session_ttl_hours=settings.session_ttl_hours,
    )


def get_client_info(request: Request) -> tuple[str, str | None]:
    """Client IP and User-Agent for the login ledger."""
    ip_address = request.client.host if request.client else "unknown"
    return ip_address, request.headers.get("user-agent")


# HTTP Bearer security scheme for OpenAPI documentation
http_bearer = HTTPBearer()


def get_bearer_token(credentials: HTTPAuthorizationCredentials = Depends(http_bearer)) -> str:
    """
    Extract the session token from the Authorization header.

    FastAPI's HTTPBearer rejects a missing or non-Bearer header before
    this runs.
    """
    return credentials.credentials
