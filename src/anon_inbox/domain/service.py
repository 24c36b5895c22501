"""
Anon-Inbox Service - Message Lifecycle Service.

Business logic for submitting, listing, deleting messages and toggling
message acceptance. Every owner operation acts on the caller's own inbox only.

Architecture Layer: Domain
Principles: Single Responsibility, Dependency Inversion, Domain Events
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from ..events import AcceptanceChangedEvent, EventPublisher, MessageDeletedEvent
from .acceptance import AcceptanceGate
from .entities import Message
from .value_objects import ErrorKind

if TYPE_CHECKING:
    from ..auth import AuthenticatedIdentity
    from ..infrastructure.repository import UserRepository

logger = structlog.get_logger(__name__)

NOT_AUTHENTICATED_MESSAGE = "Not authenticated"
USER_NOT_FOUND_MESSAGE = "User not found"
MESSAGE_NOT_FOUND_MESSAGE = "Message not found or already deleted"


# --- Result Types ---


@dataclass
class SubmitMessageResult:
    """Result of an anonymous submission."""
    success: bool = False
    message: Message | None = None
    error: str | None = None
    error_kind: ErrorKind | None = None


@dataclass
class ListMessagesResult:
    """Result of listing the caller's inbox."""
    success: bool = False
    messages: list[Message] = field(default_factory=list)
    error: str | None = None
    error_kind: ErrorKind | None = None


@dataclass
class DeleteMessageResult:
    """Result of deleting one message."""
    success: bool = False
    error: str | None = None
    error_kind: ErrorKind | None = None


@dataclass
class AcceptanceResult:
    """Result of reading or changing the acceptance flag."""
    success: bool = False
    is_accepting_messages: bool | None = None
    error: str | None = None
    error_kind: ErrorKind | None = None


class MessageService:
    """
    Message lifecycle service.

    Responsibilities:
    - Anonymous submission through the acceptance gate
    - Owner-only listing, deletion and acceptance toggling
    - Domain event publishing

    Unauthenticated callers are rejected before any storage access.
    """

    def __init__(
        self,
        user_repository: UserRepository,
        acceptance_gate: AcceptanceGate | None = None,
        event_publisher: EventPublisher | None = None,
    ) -> None:
        self._user_repo = user_repository
        self._gate = acceptance_gate or AcceptanceGate(user_repository, event_publisher)
        self._event_publisher = event_publisher

        self._stats = {
            "messages_submitted": 0,
            "messages_rejected": 0,
            "messages_deleted": 0,
            "acceptance_changes": 0,
        }

    # --- Anonymous ---

    async def submit(self, target_username: str, content: str) -> SubmitMessageResult:
        """
        Submit an anonymous message to `target_username`.

        Not idempotent: a retry after a transient failure may store a duplicate.
        """
        result = await self._gate.admit(target_username, content)
        if not result.success:
            self._stats["messages_rejected"] += 1
            return SubmitMessageResult(error=result.error, error_kind=result.error_kind)

        self._stats["messages_submitted"] += 1
        return SubmitMessageResult(success=True, message=result.message)

    # --- Owner Operations ---

    async def list_messages(self, identity: AuthenticatedIdentity | None) -> ListMessagesResult:
        """
        List the caller's messages, newest first.

        An empty inbox is a successful, empty list.
        """
        if identity is None:
            return ListMessagesResult(error=NOT_AUTHENTICATED_MESSAGE, error_kind=ErrorKind.UNAUTHENTICATED)

        try:
            messages = await self._user_repo.list_messages(identity.user_id)
            if messages is None:
                return ListMessagesResult(error=USER_NOT_FOUND_MESSAGE, error_kind=ErrorKind.NOT_FOUND)

            logger.debug("messages_listed", user_id=str(identity.user_id), count=len(messages))
            return ListMessagesResult(success=True, messages=messages)

        except Exception as e:
            logger.error("messages_list_failed", user_id=str(identity.user_id), error=str(e))
            return ListMessagesResult(error="Error retrieving messages", error_kind=ErrorKind.INTERNAL_ERROR)

    async def delete_message(
        self,
        identity: AuthenticatedIdentity | None,
        message_id: UUID | str,
    ) -> DeleteMessageResult:
        """
        Delete one message from the caller's own inbox.

        Business Rules:
        - Deletion is scoped by owner and message id in one storage operation
        - A message owned by another user is indistinguishable from an absent one
        - Deleting an already deleted id reports NOT_FOUND
        - A malformed id names no message and reports NOT_FOUND
        """
        if identity is None:
            return DeleteMessageResult(error=NOT_AUTHENTICATED_MESSAGE, error_kind=ErrorKind.UNAUTHENTICATED)

        if not isinstance(message_id, UUID):
            try:
                message_id = UUID(message_id)
            except ValueError:
                return DeleteMessageResult(error=MESSAGE_NOT_FOUND_MESSAGE, error_kind=ErrorKind.NOT_FOUND)

        try:
            removed = await self._user_repo.remove_message(identity.user_id, message_id)
            if not removed:
                return DeleteMessageResult(error=MESSAGE_NOT_FOUND_MESSAGE, error_kind=ErrorKind.NOT_FOUND)

            self._stats["messages_deleted"] += 1

            if self._event_publisher:
                await self._event_publisher.publish(
                    MessageDeletedEvent(aggregate_id=identity.user_id, message_id=message_id)
                )

            logger.info("message_deleted", user_id=str(identity.user_id), message_id=str(message_id))
            return DeleteMessageResult(success=True)

        except Exception as e:
            logger.error(
                "message_delete_failed",
                user_id=str(identity.user_id),
                message_id=str(message_id),
                error=str(e),
            )
            return DeleteMessageResult(error="Error deleting message", error_kind=ErrorKind.INTERNAL_ERROR)

    async def set_acceptance(
        self,
        identity: AuthenticatedIdentity | None,
        accept: bool,
    ) -> AcceptanceResult:
        """Overwrite the caller's acceptance flag. Idempotent."""
        if identity is None:
            return AcceptanceResult(error=NOT_AUTHENTICATED_MESSAGE, error_kind=ErrorKind.UNAUTHENTICATED)

        try:
            if not await self._user_repo.set_accepting_messages(identity.user_id, accept):
                return AcceptanceResult(error=USER_NOT_FOUND_MESSAGE, error_kind=ErrorKind.NOT_FOUND)

            self._stats["acceptance_changes"] += 1

            if self._event_publisher:
                await self._event_publisher.publish(
                    AcceptanceChangedEvent(aggregate_id=identity.user_id, is_accepting_messages=accept)
                )

            logger.info("acceptance_changed", user_id=str(identity.user_id), is_accepting_messages=accept)
            return AcceptanceResult(success=True, is_accepting_messages=accept)

        except Exception as e:
            logger.error("acceptance_update_failed", user_id=str(identity.user_id), error=str(e))
            return AcceptanceResult(
                error="Error updating message acceptance status",
                error_kind=ErrorKind.INTERNAL_ERROR,
            )

    async def get_acceptance(self, identity: AuthenticatedIdentity | None) -> AcceptanceResult:
        """Read the caller's acceptance flag."""
        if identity is None:
            return AcceptanceResult(error=NOT_AUTHENTICATED_MESSAGE, error_kind=ErrorKind.UNAUTHENTICATED)

        try:
            accepting = await self._user_repo.get_accepting_messages(identity.user_id)
            if accepting is None:
                return AcceptanceResult(error=USER_NOT_FOUND_MESSAGE, error_kind=ErrorKind.NOT_FOUND)
            return AcceptanceResult(success=True, is_accepting_messages=accepting)

        except Exception as e:
            logger.error("acceptance_read_failed", user_id=str(identity.user_id), error=str(e))
            return AcceptanceResult(
                error="Error retrieving message acceptance status",
                error_kind=ErrorKind.INTERNAL_ERROR,
            )

    # --- Statistics ---

    def get_statistics(self) -> dict[str, int]:
        """Get service statistics."""
        return self._stats.copy()

    def reset_statistics(self) -> None:
        """Reset service statistics."""
        for key in self._stats:
            self._stats[key] = 0
