"""
Tests for the message lifecycle service.

Tests submission, owner-scoped listing and deletion, and acceptance toggling.
"""
from __future__ import annotations

from uuid import uuid4

import pytest

from anon_inbox.domain.service import MessageService
from anon_inbox.domain.value_objects import ErrorKind
from anon_inbox.events import EventType
from anon_inbox.infrastructure.repository import InMemoryUserRepository

from .fixtures import FailingUserRepository, identity_for, message_at, seed_user


class TestSubmit:
    """Tests for anonymous submission."""

    @pytest.mark.asyncio
    async def test_submit_to_accepting_user(
        self, message_service: MessageService, user_repository: InMemoryUserRepository
    ) -> None:
        """Test submission stores exactly one message."""
        user = await seed_user(user_repository, "bob")

        result = await message_service.submit("bob", "hello")

        assert result.success is True
        assert result.message.content == "hello"
        messages = await user_repository.list_messages(user.user_id)
        assert [m.content for m in messages] == ["hello"]

    @pytest.mark.asyncio
    async def test_submit_to_non_accepting_user_is_forbidden(
        self, message_service: MessageService, user_repository: InMemoryUserRepository
    ) -> None:
        """Test nothing is stored while the target is not accepting."""
        user = await seed_user(user_repository, "bob", is_accepting_messages=False)

        result = await message_service.submit("bob", "hello")

        assert result.success is False
        assert result.error_kind == ErrorKind.FORBIDDEN
        assert result.error == "User is not accepting messages"
        assert await user_repository.list_messages(user.user_id) == []

    @pytest.mark.asyncio
    async def test_submit_to_unknown_user(self, message_service: MessageService) -> None:
        """Test submission to an absent username."""
        result = await message_service.submit("nobody", "hello")

        assert result.success is False
        assert result.error_kind == ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_submit_requires_no_identity(
        self, message_service: MessageService, user_repository: InMemoryUserRepository
    ) -> None:
        """Test anonymous senders can submit; submit takes no identity at all."""
        await seed_user(user_repository, "bob")

        result = await message_service.submit(target_username="bob", content="anonymous hi")

        assert result.success is True

    @pytest.mark.asyncio
    async def test_submit_is_not_idempotent(
        self, message_service: MessageService, user_repository: InMemoryUserRepository
    ) -> None:
        """Test repeated submissions store separate messages."""
        user = await seed_user(user_repository, "bob")

        first = await message_service.submit("bob", "same")
        second = await message_service.submit("bob", "same")

        assert first.message.message_id != second.message.message_id
        assert len(await user_repository.list_messages(user.user_id)) == 2

    @pytest.mark.asyncio
    async def test_submit_storage_failure(self) -> None:
        """Test storage failures report INTERNAL_ERROR."""
        repository = FailingUserRepository()
        await seed_user(repository, "bob")
        service = MessageService(repository)

        result = await service.submit("bob", "hello")

        assert result.success is False
        assert result.error_kind == ErrorKind.INTERNAL_ERROR

    @pytest.mark.asyncio
    async def test_submit_statistics(
        self, message_service: MessageService, user_repository: InMemoryUserRepository
    ) -> None:
        """Test submissions and rejections are counted."""
        await seed_user(user_repository, "bob")
        await message_service.submit("bob", "hello")
        await message_service.submit("nobody", "hello")

        stats = message_service.get_statistics()
        assert stats["messages_submitted"] == 1
        assert stats["messages_rejected"] == 1


class TestListMessages:
    """Tests for listing the caller's inbox."""

    @pytest.mark.asyncio
    async def test_list_newest_first(
        self, message_service: MessageService, user_repository: InMemoryUserRepository
    ) -> None:
        """Test messages are ordered by creation time, newest first."""
        user = await seed_user(user_repository, "bob")
        await user_repository.append_message("bob", message_at("middle", day=2))
        await user_repository.append_message("bob", message_at("oldest", day=1))
        await user_repository.append_message("bob", message_at("newest", day=3))

        result = await message_service.list_messages(identity_for(user))

        assert result.success is True
        assert [m.content for m in result.messages] == ["newest", "middle", "oldest"]

    @pytest.mark.asyncio
    async def test_list_ties_keep_latest_arrival_first(
        self, message_service: MessageService, user_repository: InMemoryUserRepository
    ) -> None:
        """Test messages with equal timestamps list the latest append first."""
        user = await seed_user(user_repository, "bob")
        await user_repository.append_message("bob", message_at("first"))
        await user_repository.append_message("bob", message_at("second"))

        result = await message_service.list_messages(identity_for(user))

        assert [m.content for m in result.messages] == ["second", "first"]

    @pytest.mark.asyncio
    async def test_list_empty_inbox(
        self, message_service: MessageService, user_repository: InMemoryUserRepository
    ) -> None:
        """Test an empty inbox is a successful empty list."""
        user = await seed_user(user_repository, "bob")

        result = await message_service.list_messages(identity_for(user))

        assert result.success is True
        assert result.messages == []

    @pytest.mark.asyncio
    async def test_list_never_returns_other_users_messages(
        self, message_service: MessageService, user_repository: InMemoryUserRepository
    ) -> None:
        """Test listing is scoped to the caller."""
        alice = await seed_user(user_repository, "alice")
        await seed_user(user_repository, "bob")
        await message_service.submit("bob", "for bob")
        await message_service.submit("alice", "for alice")

        result = await message_service.list_messages(identity_for(alice))

        assert [m.content for m in result.messages] == ["for alice"]

    @pytest.mark.asyncio
    async def test_list_for_missing_user_record(
        self, message_service: MessageService, user_repository: InMemoryUserRepository
    ) -> None:
        """Test a session whose user no longer exists."""
        user = await seed_user(user_repository, "bob")
        await user_repository.delete(user.user_id)

        result = await message_service.list_messages(identity_for(user))

        assert result.success is False
        assert result.error_kind == ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_list_storage_failure(self) -> None:
        """Test storage failures report INTERNAL_ERROR."""
        repository = FailingUserRepository()
        user = await seed_user(repository, "bob")

        result = await MessageService(repository).list_messages(identity_for(user))

        assert result.success is False
        assert result.error_kind == ErrorKind.INTERNAL_ERROR


class TestDeleteMessage:
    """Tests for deleting messages."""

    @pytest.mark.asyncio
    async def test_delete_then_delete_again(
        self, message_service: MessageService, user_repository: InMemoryUserRepository
    ) -> None:
        """Test the second delete of an id reports NOT_FOUND."""
        user = await seed_user(user_repository, "bob")
        submitted = await message_service.submit("bob", "hello")
        message_id = submitted.message.message_id

        first = await message_service.delete_message(identity_for(user), message_id)
        second = await message_service.delete_message(identity_for(user), message_id)

        assert first.success is True
        assert second.success is False
        assert second.error_kind == ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_delete_absent_id_changes_nothing(
        self, message_service: MessageService, user_repository: InMemoryUserRepository
    ) -> None:
        """Test deleting an unknown id leaves the inbox intact."""
        user = await seed_user(user_repository, "bob")
        await message_service.submit("bob", "keep me")

        result = await message_service.delete_message(identity_for(user), uuid4())

        assert result.error_kind == ErrorKind.NOT_FOUND
        assert len(await user_repository.list_messages(user.user_id)) == 1

    @pytest.mark.asyncio
    async def test_delete_malformed_id(
        self, message_service: MessageService, user_repository: InMemoryUserRepository
    ) -> None:
        """Test a malformed id is NOT_FOUND and leaves the inbox intact."""
        user = await seed_user(user_repository, "bob")
        await message_service.submit("bob", "keep me")

        result = await message_service.delete_message(identity_for(user), "not-a-uuid")

        assert result.error_kind == ErrorKind.NOT_FOUND
        assert len(await user_repository.list_messages(user.user_id)) == 1

    @pytest.mark.asyncio
    async def test_delete_accepts_string_id(
        self, message_service: MessageService, user_repository: InMemoryUserRepository
    ) -> None:
        user = await seed_user(user_repository, "bob")
        submitted = await message_service.submit("bob", "bye")

        result = await message_service.delete_message(identity_for(user), str(submitted.message.message_id))

        assert result.success is True

    @pytest.mark.asyncio
    async def test_cannot_delete_another_users_message(
        self, message_service: MessageService, user_repository: InMemoryUserRepository
    ) -> None:
        """Test deletion is scoped to the caller's own inbox."""
        alice = await seed_user(user_repository, "alice")
        bob = await seed_user(user_repository, "bob")
        submitted = await message_service.submit("bob", "bob's message")

        result = await message_service.delete_message(identity_for(alice), submitted.message.message_id)

        assert result.error_kind == ErrorKind.NOT_FOUND
        assert len(await user_repository.list_messages(bob.user_id)) == 1

    @pytest.mark.asyncio
    async def test_delete_storage_failure(self) -> None:
        """Test storage failures report INTERNAL_ERROR."""
        repository = FailingUserRepository()
        user = await seed_user(repository, "bob")

        result = await MessageService(repository).delete_message(identity_for(user), uuid4())

        assert result.error_kind == ErrorKind.INTERNAL_ERROR


class TestAcceptance:
    """Tests for toggling message acceptance."""

    @pytest.mark.asyncio
    async def test_set_false_then_get(
        self, message_service: MessageService, user_repository: InMemoryUserRepository
    ) -> None:
        """Test the flag reads back as written."""
        user = await seed_user(user_repository, "bob")

        set_result = await message_service.set_acceptance(identity_for(user), False)
        get_result = await message_service.get_acceptance(identity_for(user))

        assert set_result.success is True
        assert set_result.is_accepting_messages is False
        assert get_result.is_accepting_messages is False

    @pytest.mark.asyncio
    async def test_toggle_twice_restores(
        self, message_service: MessageService, user_repository: InMemoryUserRepository
    ) -> None:
        """Test toggling off and on restores the original value."""
        user = await seed_user(user_repository, "bob")
        identity = identity_for(user)

        await message_service.set_acceptance(identity, False)
        await message_service.set_acceptance(identity, True)

        result = await message_service.get_acceptance(identity)
        assert result.is_accepting_messages is True

    @pytest.mark.asyncio
    async def test_set_is_idempotent(
        self, message_service: MessageService, user_repository: InMemoryUserRepository
    ) -> None:
        """Test setting the same value twice succeeds both times."""
        user = await seed_user(user_repository, "bob")

        first = await message_service.set_acceptance(identity_for(user), False)
        second = await message_service.set_acceptance(identity_for(user), False)

        assert first.success is True
        assert second.success is True
        assert await user_repository.get_accepting_messages(user.user_id) is False

    @pytest.mark.asyncio
    async def test_disabling_blocks_submissions(
        self, message_service: MessageService, user_repository: InMemoryUserRepository
    ) -> None:
        """Test submissions are rejected after acceptance is turned off."""
        user = await seed_user(user_repository, "bob")
        await message_service.set_acceptance(identity_for(user), False)

        result = await message_service.submit("bob", "hello")

        assert result.error_kind == ErrorKind.FORBIDDEN

    @pytest.mark.asyncio
    async def test_acceptance_for_missing_user_record(
        self, message_service: MessageService, user_repository: InMemoryUserRepository
    ) -> None:
        """Test set and get report NOT_FOUND when the user is gone."""
        user = await seed_user(user_repository, "bob")
        await user_repository.delete(user.user_id)

        set_result = await message_service.set_acceptance(identity_for(user), True)
        get_result = await message_service.get_acceptance(identity_for(user))

        assert set_result.error_kind == ErrorKind.NOT_FOUND
        assert get_result.error_kind == ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_acceptance_storage_failure(self) -> None:
        """Test storage failures report INTERNAL_ERROR."""
        repository = FailingUserRepository()
        user = await seed_user(repository, "bob")
        service = MessageService(repository)

        set_result = await service.set_acceptance(identity_for(user), False)
        get_result = await service.get_acceptance(identity_for(user))

        assert set_result.error_kind == ErrorKind.INTERNAL_ERROR
        assert get_result.error_kind == ErrorKind.INTERNAL_ERROR


class TestUnauthenticated:
    """Tests for owner operations without a session."""

    @pytest.mark.asyncio
    async def test_owner_operations_require_identity(
        self, message_service: MessageService, user_repository: InMemoryUserRepository
    ) -> None:
        """Test every owner operation rejects a missing identity without touching storage."""
        await seed_user(user_repository, "bob")
        operations_before = user_repository.operations

        results = [
            await message_service.list_messages(None),
            await message_service.delete_message(None, uuid4()),
            await message_service.delete_message(None, "not-a-uuid"),
            await message_service.get_acceptance(None),
            await message_service.set_acceptance(None, False),
        ]

        assert all(r.success is False for r in results)
        assert all(r.error_kind == ErrorKind.UNAUTHENTICATED for r in results)
        assert user_repository.operations == operations_before


class TestEvents:
    """Tests for domain events published by the service."""

    @pytest.mark.asyncio
    async def test_lifecycle_events(
        self, message_service: MessageService, user_repository: InMemoryUserRepository, event_publisher
    ) -> None:
        """Test submit, delete and toggle each publish one event without content."""
        user = await seed_user(user_repository, "bob")
        submitted = await message_service.submit("bob", "secret words")
        await message_service.delete_message(identity_for(user), submitted.message.message_id)
        await message_service.set_acceptance(identity_for(user), False)

        assert [e.event_type for e in event_publisher.events] == [
            EventType.MESSAGE_RECEIVED,
            EventType.MESSAGE_DELETED,
            EventType.ACCEPTANCE_CHANGED,
        ]
        assert all(e.aggregate_id == user.user_id for e in event_publisher.events)
        assert all("secret words" not in str(e.to_dict()) for e in event_publisher.events)

    @pytest.mark.asyncio
    async def test_rejections_publish_nothing(
        self, message_service: MessageService, user_repository: InMemoryUserRepository, event_publisher
    ) -> None:
        """Test failed operations publish no events."""
        user = await seed_user(user_repository, "bob", is_accepting_messages=False)
        await message_service.submit("bob", "hello")
        await message_service.delete_message(identity_for(user), uuid4())

        assert event_publisher.events == []


class TestAliceScenario:
    """End-to-end inbox scenario."""

    @pytest.mark.asyncio
    async def test_submit_list_delete(
        self, message_service: MessageService, user_repository: InMemoryUserRepository
    ) -> None:
        """Test two submissions list newest first and deletion leaves the other."""
        alice = await seed_user(user_repository, "alice")
        identity = identity_for(alice)
        await user_repository.append_message("alice", message_at("hi", hour=1))
        await user_repository.append_message("alice", message_at("there", hour=2))

        listed = await message_service.list_messages(identity)
        assert [m.content for m in listed.messages] == ["there", "hi"]

        hi = next(m for m in listed.messages if m.content == "hi")
        deleted = await message_service.delete_message(identity, hi.message_id)
        assert deleted.success is True

        remaining = await message_service.list_messages(identity)
        assert [m.content for m in remaining.messages] == ["there"]

    @pytest.mark.asyncio
    async def test_submit_through_service(
        self, message_service: MessageService, user_repository: InMemoryUserRepository
    ) -> None:
        """Test the scenario using anonymous submissions."""
        alice = await seed_user(user_repository, "alice")
        await message_service.submit("alice", "hi")
        await message_service.submit("alice", "there")

        listed = await message_service.list_messages(identity_for(alice))

        assert [m.content for m in listed.messages] == ["there", "hi"]
