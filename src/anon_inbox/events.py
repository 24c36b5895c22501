"""
Anon-Inbox Service - Domain Events.

Domain events represent significant state changes in the domain.
Message content is never carried by an event.

Architecture Layer: Domain
Principles: Pub/Sub, Immutability
"""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Protocol
from uuid import UUID, uuid4

from pydantic import BaseModel, Field
import structlog

logger = structlog.get_logger(__name__)


class EventType(str, Enum):
    """Domain event types for inbox lifecycle."""

    USER_REGISTERED = "user.registered"
    USER_VERIFIED = "user.verified"

    MESSAGE_RECEIVED = "inbox.message_received"
    MESSAGE_DELETED = "inbox.message_deleted"
    ACCEPTANCE_CHANGED = "inbox.acceptance_changed"


class DomainEvent(BaseModel):
    """
    Base domain event.

    Attributes:
        event_id: Unique identifier for this event
        event_type: Type of domain event
        aggregate_id: ID of the user that owns the affected inbox
        occurred_at: Timestamp when event occurred
        version: Event schema version
        metadata: Optional additional metadata
    """

    event_id: UUID = Field(default_factory=uuid4, description="Unique event identifier")
    event_type: EventType = Field(..., description="Type of domain event")
    aggregate_id: UUID = Field(..., description="User ID that generated the event")
    aggregate_type: str = Field(default="user", description="Aggregate type (user)")

    occurred_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Event occurrence timestamp"
    )
    version: str = Field(default="1.0", description="Event schema version")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Additional metadata")

    model_config = {"frozen": True}

    def to_dict(self) -> dict[str, Any]:
        """Convert event to dictionary for serialization."""
        return {
            "event_id": str(self.event_id),
            "event_type": self.event_type.value,
            "aggregate_id": str(self.aggregate_id),
            "aggregate_type": self.aggregate_type,
            "occurred_at": self.occurred_at.isoformat(),
            "version": self.version,
            "metadata": self.metadata,
        }


class UserRegisteredEvent(DomainEvent):
    """Event published when a new account is created."""
    event_type: EventType = Field(default=EventType.USER_REGISTERED)
    username: str

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base["username"] = self.username
        return base


class UserVerifiedEvent(DomainEvent):
    """Event published when an account passes verification."""
    event_type: EventType = Field(default=EventType.USER_VERIFIED)


class MessageReceivedEvent(DomainEvent):
    """Event published when a message is admitted to an inbox."""
    event_type: EventType = Field(default=EventType.MESSAGE_RECEIVED)
    message_id: UUID

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base["message_id"] = str(self.message_id)
        return base


class MessageDeletedEvent(DomainEvent):
    """Event published when the owner deletes a message."""
    event_type: EventType = Field(default=EventType.MESSAGE_DELETED)
    message_id: UUID

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base["message_id"] = str(self.message_id)
        return base


class AcceptanceChangedEvent(DomainEvent):
    """Event published when the owner toggles message acceptance."""
    event_type: EventType = Field(default=EventType.ACCEPTANCE_CHANGED)
    is_accepting_messages: bool

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base["is_accepting_messages"] = self.is_accepting_messages
        return base


class EventPublisher(Protocol):
    """Port for event publishing."""
    async def publish(self, event: DomainEvent) -> None: ...


class LoggingEventPublisher:
    """Publishes domain events to the structured log."""

    def __init__(self) -> None:
        self._published = 0

    @property
    def published_count(self) -> int:
        return self._published

    async def publish(self, event: DomainEvent) -> None:
        self._published += 1
        logger.info("domain_event", **event.to_dict())
