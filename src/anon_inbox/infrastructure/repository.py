"""
Anon-Inbox Service - Repository Layer.

Repository abstractions and implementations for user and inbox persistence.
Messages are embedded in their owning user record; every inbox mutation is a
single-record operation so the storage backend's per-record atomicity applies.

Architecture Layer: Infrastructure
Principles: Repository Pattern, Dependency Inversion, Interface Segregation
"""
from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Any
from uuid import UUID

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
import structlog

from ..domain.entities import Message, User

logger = structlog.get_logger(__name__)


# --- Configuration ---


class RepositoryConfig(BaseSettings):
    """Repository configuration settings."""

    use_mongo: bool = Field(
        default=False,
        description="Use MongoDB repositories (False = in-memory for development/testing)",
    )

    model_config = SettingsConfigDict(
        env_prefix="INBOX_REPO_",
        env_file=".env",
        extra="ignore",
    )


# --- Exceptions ---


class RepositoryError(Exception):
    """Base exception for repository errors."""
    pass


class EntityNotFoundError(RepositoryError):
    """Entity not found in repository."""

    def __init__(self, entity_type: str, entity_id: UUID | str) -> None:
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} with ID {entity_id} not found")


class DuplicateEntityError(RepositoryError):
    """Duplicate entity in repository."""

    def __init__(self, entity_type: str, identifier: str) -> None:
        self.entity_type = entity_type
        self.identifier = identifier
        super().__init__(f"{entity_type} with identifier {identifier} already exists")


# --- Abstract Repository ---


class UserRepository(ABC):
    """
    Abstract repository for users and their embedded inboxes.

    Implementations may use different storage backends
    (MongoDB, in-memory for testing).
    """

    @abstractmethod
    async def save(self, user: User) -> User:
        """
        Save a new user.

        Raises:
            DuplicateEntityError: If username or email already exists
        """

    @abstractmethod
    async def get_by_id(self, user_id: UUID) -> User | None:
        """Get user by ID."""

    @abstractmethod
    async def get_by_username(self, username: str) -> User | None:
        """Get user by username (exact match)."""

    @abstractmethod
    async def get_by_email(self, email: str) -> User | None:
        """Get user by email address (case-insensitive)."""

    async def get_by_identifier(self, identifier: str) -> User | None:
        """Get user by email or username."""
        user = await self.get_by_email(identifier)
        if user is None:
            user = await self.get_by_username(identifier)
        return user

    @abstractmethod
    async def update(self, user: User) -> User:
        """
        Update account fields of an existing user (never the inbox).

        Raises:
            EntityNotFoundError: If user doesn't exist
            DuplicateEntityError: If the new username or email is taken
        """

    @abstractmethod
    async def delete(self, user_id: UUID) -> bool:
        """Delete a user and its inbox. Returns False if not found."""

    @abstractmethod
    async def append_message(self, username: str, message: Message) -> bool:
        """
        Append a message to the inbox of `username` if it is accepting messages.

        The acceptance check and the append are one atomic operation.

        Returns:
            True if the message was stored, False if the user is missing
            or not accepting messages
        """

    @abstractmethod
    async def list_messages(self, user_id: UUID) -> list[Message] | None:
        """
        Get the user's messages, newest first.

        Returns:
            Ordered messages, or None if the user does not exist
        """

    @abstractmethod
    async def remove_message(self, user_id: UUID, message_id: UUID) -> bool:
        """
        Remove one message from the user's own inbox.

        Returns:
            True if exactly one message was removed
        """

    @abstractmethod
    async def set_accepting_messages(self, user_id: UUID, accept: bool) -> bool:
        """
        Overwrite the acceptance flag.

        Returns:
            True if the user exists
        """

    @abstractmethod
    async def get_accepting_messages(self, user_id: UUID) -> bool | None:
        """Get the acceptance flag, or None if the user does not exist."""

    @abstractmethod
    async def count(self) -> int:
        """Count registered users."""


# --- In-Memory Implementation ---


class InMemoryUserRepository(UserRepository):
    """
    In-memory user repository for testing and development.

    NOT suitable for production - data is lost on restart.
    Writes are serialized with an asyncio lock; stored users are copied
    on the way in and out so callers never share mutable state.
    """

    def __init__(self) -> None:
        self._users: dict[UUID, User] = {}
        self._users_by_username: dict[str, UUID] = {}
        self._users_by_email: dict[str, UUID] = {}
        self._lock = asyncio.Lock()
        self.operations = 0

    def _copy(self, user: User) -> User:
        return user.model_copy(deep=True)

    async def save(self, user: User) -> User:
        """Save a new user."""
        self.operations += 1
        async with self._lock:
            if user.username in self._users_by_username:
                raise DuplicateEntityError("User", user.username)
            if user.email.lower() in self._users_by_email:
                raise DuplicateEntityError("User", user.email)

            self._users[user.user_id] = self._copy(user)
            self._users_by_username[user.username] = user.user_id
            self._users_by_email[user.email.lower()] = user.user_id

            logger.debug("user_saved", user_id=str(user.user_id), username=user.username)
            return self._copy(user)

    async def get_by_id(self, user_id: UUID) -> User | None:
        """Get user by ID."""
        self.operations += 1
        user = self._users.get(user_id)
        return self._copy(user) if user else None

    async def get_by_username(self, username: str) -> User | None:
        """Get user by username."""
        user_id = self._users_by_username.get(username)
        if user_id:
            return await self.get_by_id(user_id)
        self.operations += 1
        return None

    async def get_by_email(self, email: str) -> User | None:
        """Get user by email."""
        user_id = self._users_by_email.get(email.strip().lower())
        if user_id:
            return await self.get_by_id(user_id)
        self.operations += 1
        return None

    async def update(self, user: User) -> User:
        """Update account fields of an existing user."""
        self.operations += 1
        async with self._lock:
            if user.user_id not in self._users:
                raise EntityNotFoundError("User", user.user_id)

            stored = self._users[user.user_id]

            if stored.username != user.username:
                if user.username in self._users_by_username:
                    raise DuplicateEntityError("User", user.username)
                del self._users_by_username[stored.username]
                self._users_by_username[user.username] = user.user_id

            if stored.email.lower() != user.email.lower():
                if user.email.lower() in self._users_by_email:
                    raise DuplicateEntityError("User", user.email)
                del self._users_by_email[stored.email.lower()]
                self._users_by_email[user.email.lower()] = user.user_id

            # The inbox and the acceptance flag are owned by their dedicated operations
            updated = self._copy(user)
            updated.messages = stored.messages
            updated.is_accepting_messages = stored.is_accepting_messages
            self._users[user.user_id] = updated

            logger.debug("user_updated", user_id=str(user.user_id))
            return self._copy(updated)

    async def delete(self, user_id: UUID) -> bool:
        """Delete a user by ID (hard delete, inbox included)."""
        self.operations += 1
        async with self._lock:
            user = self._users.pop(user_id, None)
            if user is None:
                return False
            del self._users_by_username[user.username]
            del self._users_by_email[user.email.lower()]
            logger.debug("user_deleted", user_id=str(user_id))
            return True

    async def append_message(self, username: str, message: Message) -> bool:
        """Append a message while the inbox is accepting."""
        self.operations += 1
        async with self._lock:
            user_id = self._users_by_username.get(username)
            if user_id is None:
                return False
            user = self._users[user_id]
            if not user.is_accepting_messages:
                return False
            user.receive(message)
            logger.debug("message_appended", user_id=str(user_id), message_id=str(message.message_id))
            return True

    async def list_messages(self, user_id: UUID) -> list[Message] | None:
        """Get messages newest first."""
        self.operations += 1
        user = self._users.get(user_id)
        if user is None:
            return None
        return user.messages_newest_first()

    async def remove_message(self, user_id: UUID, message_id: UUID) -> bool:
        """Remove one message scoped to its owner."""
        self.operations += 1
        async with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return False
            return user.remove_message(message_id)

    async def set_accepting_messages(self, user_id: UUID, accept: bool) -> bool:
        """Overwrite the acceptance flag."""
        self.operations += 1
        async with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return False
            user.set_accepting_messages(accept)
            return True

    async def get_accepting_messages(self, user_id: UUID) -> bool | None:
        """Get the acceptance flag."""
        self.operations += 1
        user = self._users.get(user_id)
        return user.is_accepting_messages if user else None

    async def count(self) -> int:
        """Count registered users."""
        return len(self._users)

    # --- Testing Utilities ---

    def clear(self) -> None:
        """Clear all data (for testing)."""
        self._users.clear()
        self._users_by_username.clear()
        self._users_by_email.clear()
        self.operations = 0


# --- Repository Factory ---


class RepositoryFactory:
    """
    Factory for creating repository instances.

    Supports different storage backends based on configuration.
    Caches the repository instance for the lifetime of the factory.
    """

    def __init__(
        self,
        config: RepositoryConfig | None = None,
        mongo_database: Any | None = None,
        users_collection: str = "users",
    ) -> None:
        self._config = config or RepositoryConfig()
        self._mongo_database = mongo_database
        self._users_collection = users_collection
        self._user_repo: UserRepository | None = None

    def get_user_repository(self) -> UserRepository:
        """Get or create user repository."""
        if self._user_repo is None:
            if self._config.use_mongo and self._mongo_database is not None:
                from .mongo_repository import MongoUserRepository
                self._user_repo = MongoUserRepository(
                    self._mongo_database[self._users_collection],
                )
                logger.info("user_repository_created", type="mongo")
            else:
                self._user_repo = InMemoryUserRepository()
                logger.info("user_repository_created", type="in_memory")
        return self._user_repo

    def reset(self) -> None:
        """Reset repositories (for testing)."""
        self._user_repo = None
