"""
Test fixtures for the Anon-Inbox service.

Test doubles and seeding helpers shared by the test modules.
"""
from __future__ import annotations

from datetime import datetime, timezone

from anon_inbox.auth import AuthenticatedIdentity
from anon_inbox.domain.entities import Message, User
from anon_inbox.events import DomainEvent
from anon_inbox.infrastructure.repository import InMemoryUserRepository

TEST_SECRET = "test_secret_key_for_pytest_only_not_for_production_use_minimum_32_chars"


class RecordingEventPublisher:
    """Event publisher that keeps every published event."""

    def __init__(self) -> None:
        self.events: list[DomainEvent] = []

    async def publish(self, event: DomainEvent) -> None:
        self.events.append(event)


class MockPasswordService:
    """Mock password service for testing."""

    def hash_password(self, password: str) -> str:
        return f"hashed_{password}"

    def verify_password(self, password: str, password_hash: str) -> MockVerifyResult:
        return MockVerifyResult(is_valid=password_hash == f"hashed_{password}")


class MockVerifyResult:
    """Mock verify result."""

    def __init__(self, is_valid: bool):
        self.is_valid = is_valid
        self.needs_rehash = False
        self.new_hash = None


class RecordingCodeSender:
    """Verification code sender that remembers the last code per username."""

    def __init__(self, succeed: bool = True) -> None:
        self.codes: dict[str, str] = {}
        self._succeed = succeed

    async def send_code(self, email: str, username: str, code: str) -> bool:
        self.codes[username] = code
        return self._succeed


class FailingUserRepository(InMemoryUserRepository):
    """Repository whose inbox operations fail like an unreachable database."""

    async def append_message(self, username, message):
        raise ConnectionError("storage unavailable")

    async def list_messages(self, user_id):
        raise ConnectionError("storage unavailable")

    async def remove_message(self, user_id, message_id):
        raise ConnectionError("storage unavailable")

    async def set_accepting_messages(self, user_id, accept):
        raise ConnectionError("storage unavailable")

    async def get_accepting_messages(self, user_id):
        raise ConnectionError("storage unavailable")


async def seed_user(
    repository: InMemoryUserRepository,
    username: str,
    *,
    email: str | None = None,
    password_hash: str = "hashed_secret1",
    is_verified: bool = True,
    is_accepting_messages: bool = True,
) -> User:
    """Store a user and return it."""
    user = User(
        username=username,
        email=email or f"{username.lower()}@example.com",
        password_hash=password_hash,
        is_verified=is_verified,
        is_accepting_messages=is_accepting_messages,
    )
    return await repository.save(user)


def identity_for(user: User) -> AuthenticatedIdentity:
    """Build the authenticated identity of a stored user."""
    return AuthenticatedIdentity(user_id=user.user_id, username=user.username)


def message_at(content: str, year: int = 2024, month: int = 1, day: int = 1, hour: int = 0) -> Message:
    """Build a message with a fixed creation time."""
    return Message(content=content, created_at=datetime(year, month, day, hour, tzinfo=timezone.utc))
