"""
Anon-Inbox Service - Infrastructure Layer.

Storage, session tokens, password hashing and the suggestion provider client.
"""
from .jwt_service import (
    IssuedToken,
    JWTConfig,
    JWTService,
    TokenExpiredError,
    TokenInvalidError,
    TokenPayload,
)
from .password_service import PasswordService
from .repository import (
    DuplicateEntityError,
    EntityNotFoundError,
    InMemoryUserRepository,
    RepositoryConfig,
    RepositoryError,
    RepositoryFactory,
    UserRepository,
)
from .suggestion_service import SuggestionConfig, SuggestionResult, SuggestionService

__all__ = [
    "IssuedToken",
    "JWTConfig",
    "JWTService",
    "TokenExpiredError",
    "TokenInvalidError",
    "TokenPayload",
    "PasswordService",
    "DuplicateEntityError",
    "EntityNotFoundError",
    "InMemoryUserRepository",
    "RepositoryConfig",
    "RepositoryError",
    "RepositoryFactory",
    "UserRepository",
    "SuggestionConfig",
    "SuggestionResult",
    "SuggestionService",
]
