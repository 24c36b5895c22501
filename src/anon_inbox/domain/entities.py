"""
Anon-Inbox Service - Domain Entities.

Core business entities following Domain-Driven Design (DDD) principles.
Entities have identity and lifecycle. They encapsulate business rules and invariants.

Architecture Layer: Domain
Principles: Clean Architecture, SOLID, Immutability where possible
"""
from __future__ import annotations

import re
import secrets
from datetime import datetime, timedelta, timezone
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, field_validator
import structlog

from .value_objects import validate_username

logger = structlog.get_logger(__name__)

EMAIL_REGEX = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
VERIFY_CODE_LENGTH = 6


def generate_verify_code() -> str:
    """Generate a six-digit numeric verification code."""
    return f"{secrets.randbelow(10 ** VERIFY_CODE_LENGTH):0{VERIFY_CODE_LENGTH}d}"


def newest_first(messages: list[Message]) -> list[Message]:
    """Order messages by created_at descending; ties keep the latest arrival first."""
    return sorted(reversed(messages), key=lambda m: m.created_at, reverse=True)


class Message(BaseModel):
    """
    Anonymous message delivered to a user's inbox.

    Business Rules:
    - Author is anonymous (no sender identity is stored)
    - Created only through the acceptance gate
    - Never updated in place; removed only by the owning user

    Invariants:
    - message_id is assigned at creation and never changes
    - content is non-empty after trimming
    - created_at is assigned by the server and never mutated
    """

    message_id: UUID = Field(default_factory=uuid4, description="Immutable message identifier")
    content: str = Field(..., min_length=1, description="Message text")
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Server-assigned creation timestamp (immutable)"
    )

    model_config = {"frozen": True}

    @field_validator("content")
    @classmethod
    def validate_content(cls, v: str) -> str:
        """Trim content and reject blank messages."""
        trimmed = v.strip()
        if not trimmed:
            raise ValueError("Message content cannot be empty")
        return trimmed


class User(BaseModel):
    """
    User aggregate root owning an anonymous inbox.

    Business Rules:
    - Username and email are globally unique (enforced at repository layer)
    - Password is stored as an opaque hash, never plaintext
    - Unverified users cannot sign in
    - Only the user can toggle is_accepting_messages
    - Messages are owned exclusively by this aggregate and die with it

    Invariants:
    - user_id is immutable once created
    - email is valid and lowercase
    - created_at cannot be changed
    """

    user_id: UUID = Field(default_factory=uuid4, description="Immutable user identifier")
    username: str = Field(..., description="Unique public username (inbox address)")
    email: str = Field(..., min_length=5, max_length=255, description="User email (unique, lowercase)")
    password_hash: str = Field(..., description="Password hash (never plaintext)")

    is_verified: bool = Field(default=False, description="Account verification status")
    verify_code: str | None = Field(default=None, description="Pending verification code")
    verify_code_expires_at: datetime | None = Field(default=None, description="Verification code expiry")

    is_accepting_messages: bool = Field(default=True, description="Inbox admits anonymous messages")
    messages: list[Message] = Field(default_factory=list, description="Inbox, in arrival order")

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Entity creation timestamp (immutable)"
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Last update timestamp"
    )

    model_config = {"frozen": False, "validate_assignment": True}

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        return validate_username(v)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        """Validate email format and normalize to lowercase."""
        normalized = v.strip().lower()
        if not EMAIL_REGEX.match(normalized):
            raise ValueError("Invalid email format")
        return normalized

    def issue_verify_code(self, expiry_minutes: int = 60) -> str:
        """
        Replace the pending verification code.

        Args:
            expiry_minutes: Lifetime of the new code

        Returns:
            The new code
        """
        self.verify_code = generate_verify_code()
        self.verify_code_expires_at = datetime.now(timezone.utc) + timedelta(minutes=expiry_minutes)
        self.updated_at = datetime.now(timezone.utc)
        return self.verify_code

    def verify_code_expired(self) -> bool:
        """Check if the pending verification code has expired."""
        if not self.verify_code_expires_at:
            return True
        return datetime.now(timezone.utc) >= self.verify_code_expires_at

    def mark_verified(self) -> None:
        """
        Mark the account verified and discard the pending code.

        Business Rule: Verification is one-way.
        """
        self.is_verified = True
        self.verify_code = None
        self.verify_code_expires_at = None
        self.updated_at = datetime.now(timezone.utc)
        logger.info("user_verified", user_id=str(self.user_id))

    def can_sign_in(self) -> tuple[bool, str | None]:
        """
        Check if user can sign in.

        Returns:
            Tuple of (can_sign_in, error_message)
        """
        if not self.is_verified:
            return False, "Please verify your account before signing in"
        return True, None

    def set_accepting_messages(self, accept: bool) -> None:
        """Overwrite the acceptance flag."""
        self.is_accepting_messages = accept
        self.updated_at = datetime.now(timezone.utc)

    def receive(self, message: Message) -> None:
        """
        Append an admitted message to the inbox.

        Business Rule: Only admits while the inbox is accepting messages.
        """
        if not self.is_accepting_messages:
            raise ValueError("User is not accepting messages")
        self.messages = [*self.messages, message]
        self.updated_at = datetime.now(timezone.utc)

    def remove_message(self, message_id: UUID) -> bool:
        """
        Remove one message by id.

        Returns:
            True if the message was present and removed
        """
        remaining = [m for m in self.messages if m.message_id != message_id]
        if len(remaining) == len(self.messages):
            return False
        self.messages = remaining
        self.updated_at = datetime.now(timezone.utc)
        return True

    def messages_newest_first(self) -> list[Message]:
        return newest_first(self.messages)
