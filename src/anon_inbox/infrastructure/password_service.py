"""
Anon-Inbox Service - Password Service.

New passwords are hashed with Argon2id. Accounts imported from the earlier
bcrypt-based deployment still verify, and sign-in hands back an Argon2id
replacement hash so the caller can migrate them.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import structlog
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError
from passlib.hash import bcrypt
from pydantic import BaseModel, Field

logger = structlog.get_logger(__name__)


class HashAlgorithm(str, Enum):
    """Algorithms a stored hash may come from."""
    ARGON2 = "argon2"
    BCRYPT = "bcrypt"


class PasswordConfig(BaseModel):
    """Argon2id cost parameters."""
    argon2_time_cost: int = Field(default=2, description="Number of iterations")
    argon2_memory_cost: int = Field(default=65536, description="Memory in KB")


@dataclass
class PasswordVerificationResult:
    """Outcome of a password check; `new_hash` is set when the stored hash should be replaced."""
    is_valid: bool
    algorithm_used: HashAlgorithm | None
    new_hash: str | None = None

    @property
    def needs_rehash(self) -> bool:
        return self.new_hash is not None


class PasswordService:
    """Hashes and verifies account passwords."""

    def __init__(self, config: PasswordConfig | None = None):
        self.config = config or PasswordConfig()
        self._hasher = PasswordHasher(
            time_cost=self.config.argon2_time_cost,
            memory_cost=self.config.argon2_memory_cost,
        )

    def hash_password(self, password: str) -> str:
        return self._hasher.hash(password)

    def verify_password(self, password: str, password_hash: str) -> PasswordVerificationResult:
        """
        Check a password against its stored hash.

        A replacement hash is returned for verified bcrypt hashes and for
        Argon2id hashes made with other cost parameters.
        """
        algorithm = self.get_algorithm(password_hash)

        if algorithm is HashAlgorithm.ARGON2:
            try:
                self._hasher.verify(password_hash, password)
            except (VerificationError, InvalidHashError):
                return PasswordVerificationResult(is_valid=False, algorithm_used=algorithm)
            stale = self._hasher.check_needs_rehash(password_hash)
            return PasswordVerificationResult(
                is_valid=True,
                algorithm_used=algorithm,
                new_hash=self.hash_password(password) if stale else None,
            )

        if algorithm is HashAlgorithm.BCRYPT:
            try:
                is_valid = bcrypt.verify(password, password_hash)
            except (ValueError, TypeError) as e:
                logger.warning("bcrypt_verification_error", error=str(e))
                is_valid = False
            if not is_valid:
                return PasswordVerificationResult(is_valid=False, algorithm_used=algorithm)
            logger.info("bcrypt_hash_verified", migration="argon2")
            return PasswordVerificationResult(
                is_valid=True,
                algorithm_used=algorithm,
                new_hash=self.hash_password(password),
            )

        logger.warning("unknown_hash_algorithm", hash_prefix=password_hash[:4])
        return PasswordVerificationResult(is_valid=False, algorithm_used=None)

    @staticmethod
    def get_algorithm(password_hash: str) -> HashAlgorithm | None:
        """Detect which algorithm produced the hash."""
        if password_hash.startswith("$argon2"):
            return HashAlgorithm.ARGON2
        if password_hash.startswith(("$2a$", "$2b$", "$2y$")):
            return HashAlgorithm.BCRYPT
        return None
