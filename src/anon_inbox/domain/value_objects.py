"""
Anon-Inbox Service - Domain Value Objects.

Value objects are immutable objects defined by their attributes.
They have no identity and describe characteristics of domain entities.

Architecture Layer: Domain
Principles: Immutability, Value Equality, Self-Validation
"""
from __future__ import annotations

import re
from enum import Enum

from pydantic import BaseModel, Field

USERNAME_REGEX = re.compile(r"^[a-zA-Z0-9_]+$")
USERNAME_MIN_LENGTH = 2
USERNAME_MAX_LENGTH = 20


class ErrorKind(str, Enum):
    """
    Failure taxonomy shared by every service operation.

    Kinds:
    - UNAUTHENTICATED: No resolvable session for an authenticated operation
    - NOT_FOUND: Target user or target message is absent
    - FORBIDDEN: Operation refused by the target's state (acceptance disabled,
      account not verified)
    - CONFLICT: Uniqueness violation (username or email already registered)
    - VALIDATION_ERROR: Input rejected by a business rule
    - SERVICE_UNAVAILABLE: External collaborator not configured
    - INTERNAL_ERROR: Storage or unexpected failure
    """

    UNAUTHENTICATED = "unauthenticated"
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    CONFLICT = "conflict"
    VALIDATION_ERROR = "validation_error"
    SERVICE_UNAVAILABLE = "service_unavailable"
    INTERNAL_ERROR = "internal_error"

    @property
    def http_status(self) -> int:
        """HTTP status code used when the failure reaches the API boundary."""
        return _HTTP_STATUS[self]


_HTTP_STATUS: dict[ErrorKind, int] = {
    ErrorKind.UNAUTHENTICATED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.VALIDATION_ERROR: 400,
    ErrorKind.SERVICE_UNAVAILABLE: 503,
    ErrorKind.INTERNAL_ERROR: 500,
}


def validate_username(value: str) -> str:
    """
    Validate username format.

    Business Rule: 2-20 characters, letters, digits and underscore only.

    Raises:
        ValueError: If the username does not satisfy the rule
    """
    trimmed = value.strip()
    if len(trimmed) < USERNAME_MIN_LENGTH:
        raise ValueError(f"Username must be at least {USERNAME_MIN_LENGTH} characters")
    if len(trimmed) > USERNAME_MAX_LENGTH:
        raise ValueError(f"Username must be no more than {USERNAME_MAX_LENGTH} characters")
    if not USERNAME_REGEX.match(trimmed):
        raise ValueError("Username must not contain special characters")
    return trimmed


class PasswordPolicy(BaseModel):
    """
    Password policy value object defining password requirements.

    Immutable: Password policies are configuration-driven.
    """

    min_length: int = Field(default=6, ge=6, le=128, description="Minimum password length")
    max_length: int = Field(default=128, ge=8, le=1024, description="Maximum password length")

    model_config = {"frozen": True}

    def validate_password(self, password: str) -> tuple[bool, str | None]:
        """
        Validate password against policy.

        Returns:
            Tuple of (is_valid, error_message)
        """
        if len(password) < self.min_length:
            return False, f"Password must be at least {self.min_length} characters"

        if len(password) > self.max_length:
            return False, f"Password must be no more than {self.max_length} characters"

        return True, None

    @staticmethod
    def default() -> PasswordPolicy:
        """Get default password policy."""
        return PasswordPolicy()
