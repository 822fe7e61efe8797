"""Repository adapters - Database and in-memory implementations."""

from .memory import (
    InMemoryIdentityRepository,
    InMemoryLoginAttemptRepository,
    InMemoryResetRepository,
    InMemoryVerificationRepository,
    MemoryStore,
)
from .postgres import (
    PostgresIdentityRepository,
    PostgresLoginAttemptRepository,
    PostgresResetRepository,
    PostgresVerificationRepository,
    run_migrations,
)

__all__ = [
    "InMemoryIdentityRepository",
    "InMemoryLoginAttemptRepository",
    "InMemoryResetRepository",
    "InMemoryVerificationRepository",
    "MemoryStore",
    "PostgresIdentityRepository",
    "PostgresLoginAttemptRepository",
    "PostgresResetRepository",
    "PostgresVerificationRepository",
    "run_migrations",
]
