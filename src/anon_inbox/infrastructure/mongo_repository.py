"""
Anon-Inbox Service - MongoDB Repository Implementation.

MongoDB-backed repository storing one document per user with the inbox
embedded as an array. Uses the PyMongo async API.

Document layout:
    {
        "_id": "<user uuid>",
        "username": str, "email": str, "password_hash": str,
        "is_verified": bool, "verify_code": str | None,
        "verify_code_expires_at": datetime | None,
        "is_accepting_messages": bool,
        "messages": [{"_id": "<message uuid>", "content": str, "created_at": datetime}],
        "created_at": datetime, "updated_at": datetime,
    }

Architecture Layer: Infrastructure
Principles: Repository Pattern, Dependency Inversion
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import UUID

import structlog
from pymongo import ASCENDING
from pymongo.errors import DuplicateKeyError

from ..domain.entities import Message, User, newest_first
from .repository import DuplicateEntityError, EntityNotFoundError, UserRepository

logger = structlog.get_logger(__name__)

_ACCOUNT_FIELDS = (
    "username",
    "email",
    "password_hash",
    "is_verified",
    "verify_code",
    "verify_code_expires_at",
    "updated_at",
)


def _as_utc(value: datetime | None) -> datetime | None:
    """MongoDB returns naive UTC datetimes unless the client is tz-aware."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class MongoUserRepository(UserRepository):
    """MongoDB implementation of the user repository."""

    def __init__(self, collection: Any) -> None:
        self._collection = collection

    async def ensure_indexes(self) -> None:
        """Create the unique indexes backing username/email uniqueness."""
        await self._collection.create_index([("username", ASCENDING)], unique=True)
        await self._collection.create_index([("email", ASCENDING)], unique=True)
        logger.info("mongo_indexes_ensured", collection=getattr(self._collection, "name", "users"))

    async def save(self, user: User) -> User:
        """Insert a new user document."""
        try:
            await self._collection.insert_one(self._entity_to_document(user))
        except DuplicateKeyError as e:
            key = "email" if "email" in str(e) else "username"
            raise DuplicateEntityError("User", getattr(user, key)) from e
        logger.debug("user_saved_mongo", user_id=str(user.user_id), username=user.username)
        return user

    async def get_by_id(self, user_id: UUID) -> User | None:
        doc = await self._collection.find_one({"_id": str(user_id)})
        return self._document_to_entity(doc) if doc else None

    async def get_by_username(self, username: str) -> User | None:
        doc = await self._collection.find_one({"username": username})
        return self._document_to_entity(doc) if doc else None

    async def get_by_email(self, email: str) -> User | None:
        doc = await self._collection.find_one({"email": email.strip().lower()})
        return self._document_to_entity(doc) if doc else None

    async def update(self, user: User) -> User:
        """Update account fields; the inbox and acceptance flag are left untouched."""
        fields = {name: getattr(user, name) for name in _ACCOUNT_FIELDS}
        try:
            result = await self._collection.update_one(
                {"_id": str(user.user_id)},
                {"$set": fields},
            )
        except DuplicateKeyError as e:
            raise DuplicateEntityError("User", user.username) from e
        if result.matched_count == 0:
            raise EntityNotFoundError("User", user.user_id)
        logger.debug("user_updated_mongo", user_id=str(user.user_id))
        return user

    async def delete(self, user_id: UUID) -> bool:
        result = await self._collection.delete_one({"_id": str(user_id)})
        return result.deleted_count > 0

    async def append_message(self, username: str, message: Message) -> bool:
        """Conditional push: matches only while the inbox is accepting."""
        result = await self._collection.update_one(
            {"username": username, "is_accepting_messages": True},
            {
                "$push": {"messages": self._message_to_document(message)},
                "$set": {"updated_at": datetime.now(timezone.utc)},
            },
        )
        return result.modified_count == 1

    async def list_messages(self, user_id: UUID) -> list[Message] | None:
        """
        Fetch the inbox and order it newest first.

        $push keeps the array in arrival order, which breaks created_at ties.
        """
        doc = await self._collection.find_one({"_id": str(user_id)}, {"messages": 1})
        if doc is None:
            return None
        return newest_first([self._document_to_message(m) for m in doc.get("messages", [])])

    async def remove_message(self, user_id: UUID, message_id: UUID) -> bool:
        """Single scoped $pull; concurrent deletes of one id succeed at most once."""
        result = await self._collection.update_one(
            {"_id": str(user_id), "messages._id": str(message_id)},
            {
                "$pull": {"messages": {"_id": str(message_id)}},
                "$set": {"updated_at": datetime.now(timezone.utc)},
            },
        )
        return result.modified_count == 1

    async def set_accepting_messages(self, user_id: UUID, accept: bool) -> bool:
        result = await self._collection.update_one(
            {"_id": str(user_id)},
            {"$set": {"is_accepting_messages": accept, "updated_at": datetime.now(timezone.utc)}},
        )
        return result.matched_count == 1

    async def get_accepting_messages(self, user_id: UUID) -> bool | None:
        doc = await self._collection.find_one(
            {"_id": str(user_id)},
            projection={"is_accepting_messages": True},
        )
        if doc is None:
            return None
        return bool(doc.get("is_accepting_messages", True))

    async def count(self) -> int:
        return await self._collection.count_documents({})

    # --- Mapping ---

    @staticmethod
    def _message_to_document(message: Message) -> dict[str, Any]:
        return {
            "_id": str(message.message_id),
            "content": message.content,
            "created_at": message.created_at,
        }

    @staticmethod
    def _document_to_message(doc: dict[str, Any]) -> Message:
        return Message(
            message_id=UUID(doc["_id"]),
            content=doc["content"],
            created_at=_as_utc(doc["created_at"]),
        )

    def _entity_to_document(self, user: User) -> dict[str, Any]:
        return {
            "_id": str(user.user_id),
            "username": user.username,
            "email": user.email,
            "password_hash": user.password_hash,
            "is_verified": user.is_verified,
            "verify_code": user.verify_code,
            "verify_code_expires_at": user.verify_code_expires_at,
            "is_accepting_messages": user.is_accepting_messages,
            "messages": [self._message_to_document(m) for m in user.messages],
            "created_at": user.created_at,
            "updated_at": user.updated_at,
        }

    def _document_to_entity(self, doc: dict[str, Any]) -> User:
        return User(
            user_id=UUID(doc["_id"]),
            username=doc["username"],
            email=doc["email"],
            password_hash=doc["password_hash"],
            is_verified=doc.get("is_verified", False),
            verify_code=doc.get("verify_code"),
            verify_code_expires_at=_as_utc(doc.get("verify_code_expires_at")),
            is_accepting_messages=doc.get("is_accepting_messages", True),
            messages=[self._document_to_message(m) for m in doc.get("messages", [])],
            created_at=_as_utc(doc["created_at"]),
            updated_at=_as_utc(doc["updated_at"]),
        )
