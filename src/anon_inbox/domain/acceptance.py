"""
Anon-Inbox Service - Acceptance Gate.

Decides whether an anonymous message is admitted into a user's inbox.
Senders are anonymous: admission never requires a session.

Architecture Layer: Domain
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog
from pydantic import ValidationError

from ..events import EventPublisher, MessageReceivedEvent
from .entities import Message
from .value_objects import ErrorKind

if TYPE_CHECKING:
    from ..infrastructure.repository import UserRepository

logger = structlog.get_logger(__name__)

NOT_ACCEPTING_MESSAGE = "User is not accepting messages"


@dataclass
class AdmissionResult:
    """Result of an admission decision."""
    success: bool = False
    message: Message | None = None
    error: str | None = None
    error_kind: ErrorKind | None = None


class AcceptanceGate:
    """
    Admission control for anonymous messages.

    Business Rules:
    - The target username must resolve to exactly one user
    - Nothing is stored while the target is not accepting messages
    - Content is trimmed, non-empty and bounded in length
    - The acceptance check and the append are a single storage operation,
      so a concurrent toggle can never let a message through
    """

    def __init__(
        self,
        user_repository: UserRepository,
        event_publisher: EventPublisher | None = None,
        max_length: int = 300,
    ) -> None:
        self._user_repo = user_repository
        self._event_publisher = event_publisher
        self._max_length = max_length

    @property
    def max_length(self) -> int:
        return self._max_length

    async def admit(self, target_username: str, content: str) -> AdmissionResult:
        """
        Admit a message into the inbox of `target_username`.

        Args:
            target_username: Public username of the inbox owner
            content: Message text

        Returns:
            AdmissionResult with the stored message or the rejection reason
        """
        try:
            user = await self._user_repo.get_by_username(target_username.strip())
            if user is None:
                return AdmissionResult(error="User not found", error_kind=ErrorKind.NOT_FOUND)

            if not user.is_accepting_messages:
                logger.info("message_rejected", user_id=str(user.user_id), reason="not_accepting")
                return AdmissionResult(error=NOT_ACCEPTING_MESSAGE, error_kind=ErrorKind.FORBIDDEN)

            error = self._check_content(content)
            if error:
                return AdmissionResult(error=error, error_kind=ErrorKind.VALIDATION_ERROR)

            message = Message(content=content)

            if not await self._user_repo.append_message(user.username, message):
                # The flag flipped, or the user vanished, between the read and the append
                accepting = await self._user_repo.get_accepting_messages(user.user_id)
                if accepting is None:
                    return AdmissionResult(error="User not found", error_kind=ErrorKind.NOT_FOUND)
                logger.info("message_rejected", user_id=str(user.user_id), reason="acceptance_changed")
                return AdmissionResult(error=NOT_ACCEPTING_MESSAGE, error_kind=ErrorKind.FORBIDDEN)

            if self._event_publisher:
                await self._event_publisher.publish(
                    MessageReceivedEvent(aggregate_id=user.user_id, message_id=message.message_id)
                )

            logger.info(
                "message_admitted",
                user_id=str(user.user_id),
                message_id=str(message.message_id),
            )
            return AdmissionResult(success=True, message=message)

        except ValidationError as e:
            logger.debug("message_content_invalid", error=str(e))
            return AdmissionResult(
                error="Message content cannot be empty",
                error_kind=ErrorKind.VALIDATION_ERROR,
            )
        except Exception as e:
            logger.error("message_admission_failed", error=str(e))
            return AdmissionResult(
                error="Error adding message",
                error_kind=ErrorKind.INTERNAL_ERROR,
            )

    def _check_content(self, content: str) -> str | None:
        trimmed = content.strip()
        if not trimmed:
            return "Message content cannot be empty"
        if len(trimmed) > self._max_length:
            return f"Message must be no longer than {self._max_length} characters"
        return None
