"""
Anon-Inbox Service - Domain Layer.

Public API for the inbox domain: entities, value objects, the acceptance
gate and the message lifecycle service.
"""
from .entities import Message, User
from .value_objects import ErrorKind, PasswordPolicy
from .acceptance import AcceptanceGate, AdmissionResult
from .service import (
    AcceptanceResult,
    DeleteMessageResult,
    ListMessagesResult,
    MessageService,
    SubmitMessageResult,
)

__all__ = [
    # Entities
    "Message",
    "User",
    # Value Objects
    "ErrorKind",
    "PasswordPolicy",
    # Services
    "AcceptanceGate",
    "AdmissionResult",
    "MessageService",
    "SubmitMessageResult",
    "ListMessagesResult",
    "DeleteMessageResult",
    "AcceptanceResult",
]
