"""Pytest configuration for Anon-Inbox tests."""
from __future__ import annotations

import pytest

from anon_inbox.domain.acceptance import AcceptanceGate
from anon_inbox.domain.service import MessageService
from anon_inbox.infrastructure.repository import InMemoryUserRepository

from .fixtures import RecordingEventPublisher


@pytest.fixture
def user_repository() -> InMemoryUserRepository:
    """Create user repository."""
    return InMemoryUserRepository()


@pytest.fixture
def event_publisher() -> RecordingEventPublisher:
    """Create recording event publisher."""
    return RecordingEventPublisher()


@pytest.fixture
def acceptance_gate(
    user_repository: InMemoryUserRepository,
    event_publisher: RecordingEventPublisher,
) -> AcceptanceGate:
    """Create acceptance gate with the default message length limit."""
    return AcceptanceGate(user_repository, event_publisher=event_publisher)


@pytest.fixture
def message_service(
    user_repository: InMemoryUserRepository,
    acceptance_gate: AcceptanceGate,
    event_publisher: RecordingEventPublisher,
) -> MessageService:
    """Create message service with dependencies."""
    return MessageService(
        user_repository,
        acceptance_gate=acceptance_gate,
        event_publisher=event_publisher,
    )
