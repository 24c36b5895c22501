"""
Tests for the in-memory repository and the repository factory.
"""
from __future__ import annotations

import asyncio
from uuid import uuid4

import pytest

from anon_inbox.domain.entities import Message, User
from anon_inbox.infrastructure.repository import (
    DuplicateEntityError,
    EntityNotFoundError,
    InMemoryUserRepository,
    RepositoryConfig,
    RepositoryFactory,
)

from .fixtures import message_at, seed_user


class TestUserPersistence:
    """Tests for account storage."""

    @pytest.mark.asyncio
    async def test_save_and_lookup(self, user_repository: InMemoryUserRepository) -> None:
        """Test a saved user is found by id, username, email and identifier."""
        user = await seed_user(user_repository, "erin")

        assert (await user_repository.get_by_id(user.user_id)).username == "erin"
        assert (await user_repository.get_by_username("erin")).user_id == user.user_id
        assert (await user_repository.get_by_email("ERIN@example.com")).user_id == user.user_id
        assert (await user_repository.get_by_identifier("erin@example.com")).user_id == user.user_id
        assert (await user_repository.get_by_identifier("erin")).user_id == user.user_id

    @pytest.mark.asyncio
    async def test_username_lookup_is_exact(self, user_repository: InMemoryUserRepository) -> None:
        await seed_user(user_repository, "erin")

        assert await user_repository.get_by_username("Erin") is None

    @pytest.mark.asyncio
    async def test_duplicate_username(self, user_repository: InMemoryUserRepository) -> None:
        await seed_user(user_repository, "erin")

        with pytest.raises(DuplicateEntityError):
            await seed_user(user_repository, "erin", email="other@example.com")

    @pytest.mark.asyncio
    async def test_duplicate_email(self, user_repository: InMemoryUserRepository) -> None:
        await seed_user(user_repository, "erin")

        with pytest.raises(DuplicateEntityError):
            await seed_user(user_repository, "frank", email="erin@example.com")

    @pytest.mark.asyncio
    async def test_returned_users_are_copies(self, user_repository: InMemoryUserRepository) -> None:
        """Test mutating a returned user does not change storage."""
        user = await seed_user(user_repository, "erin")

        fetched = await user_repository.get_by_id(user.user_id)
        fetched.is_verified = False

        assert (await user_repository.get_by_id(user.user_id)).is_verified is True

    @pytest.mark.asyncio
    async def test_update_keeps_inbox_and_flag(self, user_repository: InMemoryUserRepository) -> None:
        """Test account updates never overwrite inbox state."""
        user = await seed_user(user_repository, "erin")
        await user_repository.append_message("erin", Message(content="kept"))
        await user_repository.set_accepting_messages(user.user_id, False)

        user.password_hash = "hashed_new"
        await user_repository.update(user)

        stored = await user_repository.get_by_id(user.user_id)
        assert stored.password_hash == "hashed_new"
        assert [m.content for m in stored.messages] == ["kept"]
        assert stored.is_accepting_messages is False

    @pytest.mark.asyncio
    async def test_update_renames_username_index(self, user_repository: InMemoryUserRepository) -> None:
        user = await seed_user(user_repository, "erin")

        user.username = "erin2"
        await user_repository.update(user)

        assert await user_repository.get_by_username("erin") is None
        assert (await user_repository.get_by_username("erin2")).user_id == user.user_id

    @pytest.mark.asyncio
    async def test_update_missing_user(self, user_repository: InMemoryUserRepository) -> None:
        user = User(username="ghost", email="ghost@example.com", password_hash="x")

        with pytest.raises(EntityNotFoundError):
            await user_repository.update(user)

    @pytest.mark.asyncio
    async def test_delete_removes_inbox(self, user_repository: InMemoryUserRepository) -> None:
        """Test deleting a user removes its messages."""
        user = await seed_user(user_repository, "erin")
        await user_repository.append_message("erin", Message(content="bye"))

        assert await user_repository.delete(user.user_id) is True
        assert await user_repository.list_messages(user.user_id) is None
        assert await user_repository.delete(user.user_id) is False
        assert await user_repository.count() == 0


class TestInboxOperations:
    """Tests for inbox storage operations."""

    @pytest.mark.asyncio
    async def test_append_only_while_accepting(self, user_repository: InMemoryUserRepository) -> None:
        user = await seed_user(user_repository, "erin", is_accepting_messages=False)

        assert await user_repository.append_message("erin", Message(content="no")) is False
        await user_repository.set_accepting_messages(user.user_id, True)
        assert await user_repository.append_message("erin", Message(content="yes")) is True

        assert [m.content for m in await user_repository.list_messages(user.user_id)] == ["yes"]

    @pytest.mark.asyncio
    async def test_append_unknown_user(self, user_repository: InMemoryUserRepository) -> None:
        assert await user_repository.append_message("ghost", Message(content="hi")) is False

    @pytest.mark.asyncio
    async def test_list_orders_newest_first(self, user_repository: InMemoryUserRepository) -> None:
        user = await seed_user(user_repository, "erin")
        await user_repository.append_message("erin", message_at("b", day=2))
        await user_repository.append_message("erin", message_at("c", day=3))
        await user_repository.append_message("erin", message_at("a", day=1))

        messages = await user_repository.list_messages(user.user_id)

        assert [m.content for m in messages] == ["c", "b", "a"]

    @pytest.mark.asyncio
    async def test_remove_is_scoped_to_owner(self, user_repository: InMemoryUserRepository) -> None:
        erin = await seed_user(user_repository, "erin")
        frank = await seed_user(user_repository, "frank")
        message = Message(content="for frank")
        await user_repository.append_message("frank", message)

        assert await user_repository.remove_message(erin.user_id, message.message_id) is False
        assert await user_repository.remove_message(frank.user_id, message.message_id) is True
        assert await user_repository.remove_message(frank.user_id, message.message_id) is False

    @pytest.mark.asyncio
    async def test_concurrent_deletes_succeed_once(self, user_repository: InMemoryUserRepository) -> None:
        """Test at most one of several concurrent deletes of an id succeeds."""
        user = await seed_user(user_repository, "erin")
        message = Message(content="once")
        await user_repository.append_message("erin", message)

        results = await asyncio.gather(
            *(user_repository.remove_message(user.user_id, message.message_id) for _ in range(5))
        )

        assert results.count(True) == 1

    @pytest.mark.asyncio
    async def test_acceptance_flag_for_missing_user(self, user_repository: InMemoryUserRepository) -> None:
        assert await user_repository.get_accepting_messages(uuid4()) is None
        assert await user_repository.set_accepting_messages(uuid4(), True) is False

    @pytest.mark.asyncio
    async def test_clear(self, user_repository: InMemoryUserRepository) -> None:
        await seed_user(user_repository, "erin")

        user_repository.clear()

        assert await user_repository.count() == 0
        assert user_repository.operations == 0


class TestRepositoryFactory:
    """Tests for repository selection."""

    def test_defaults_to_in_memory(self) -> None:
        factory = RepositoryFactory(RepositoryConfig(use_mongo=False))

        assert isinstance(factory.get_user_repository(), InMemoryUserRepository)

    def test_caches_repository(self) -> None:
        factory = RepositoryFactory(RepositoryConfig(use_mongo=False))

        assert factory.get_user_repository() is factory.get_user_repository()

    def test_reset_creates_new_repository(self) -> None:
        factory = RepositoryFactory(RepositoryConfig(use_mongo=False))
        first = factory.get_user_repository()

        factory.reset()

        assert factory.get_user_repository() is not first

    def test_mongo_repository_uses_collection(self) -> None:
        from anon_inbox.infrastructure.mongo_repository import MongoUserRepository

        database = {"inbox_users": object()}
        factory = RepositoryFactory(
            RepositoryConfig(use_mongo=True),
            mongo_database=database,
            users_collection="inbox_users",
        )

        repository = factory.get_user_repository()

        assert isinstance(repository, MongoUserRepository)

    def test_mongo_without_database_falls_back(self) -> None:
        factory = RepositoryFactory(RepositoryConfig(use_mongo=True))

        assert isinstance(factory.get_user_repository(), InMemoryUserRepository)
