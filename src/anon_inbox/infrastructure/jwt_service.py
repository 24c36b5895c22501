"""
Anon-Inbox Service - JWT Service.

Issues and verifies the signed session tokens that carry an authenticated
identity between requests. Tokens are stateless: verifying one never
touches storage.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID, uuid4

import jwt
import structlog
from pydantic import BaseModel, Field

logger = structlog.get_logger(__name__)

SESSION_TOKEN_TYPE = "session"


class JWTConfig(BaseModel):
    """JWT service configuration."""
    secret_key: str = Field(..., description="Secret key for signing tokens")
    algorithm: str = Field(default="HS256", description="JWT signing algorithm")
    access_token_expire_minutes: int = Field(default=1440, description="Session token lifetime")
    issuer: str = Field(default="anon-inbox", description="Token issuer")
    audience: str = Field(default="anon-inbox-api", description="Token audience")


@dataclass
class TokenPayload:
    """JWT token payload data."""
    user_id: UUID
    username: str
    is_verified: bool
    jti: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert payload to dictionary."""
        d: dict[str, Any] = {
            "user_id": str(self.user_id),
            "username": self.username,
            "is_verified": self.is_verified,
            "type": SESSION_TOKEN_TYPE,
        }
        if self.jti:
            d["jti"] = self.jti
        return d


@dataclass
class IssuedToken:
    """Signed session token."""
    access_token: str
    token_type: str = "Bearer"
    expires_in: int = 86400


class JWTError(Exception):
    """Base exception for JWT errors."""
    pass


class TokenExpiredError(JWTError):
    """Raised when token has expired."""
    pass


class TokenInvalidError(JWTError):
    """Raised when token is invalid."""
    pass


class JWTService:
    """
    JWT Service for session token generation and verification.

    Provides:
    - Session token issuing with expiry
    - Signature, issuer, audience and type validation
    - Bearer header parsing
    """

    def __init__(self, config: JWTConfig):
        self.config = config
        self.logger = structlog.get_logger(__name__)

    def issue_token(self, user_id: UUID, username: str, is_verified: bool) -> IssuedToken:
        """
        Issue a session token for a signed-in user.

        Args:
            user_id: User ID
            username: Username
            is_verified: Verification state at sign-in

        Returns:
            IssuedToken with the encoded JWT
        """
        expires_delta = timedelta(minutes=self.config.access_token_expire_minutes)
        token = self._generate_token(
            payload=TokenPayload(user_id=user_id, username=username, is_verified=is_verified),
            expires_delta=expires_delta,
        )

        self.logger.info("session_token_issued", user_id=str(user_id), username=username)

        return IssuedToken(
            access_token=token,
            expires_in=int(expires_delta.total_seconds()),
        )

    def verify_token(self, token: str) -> TokenPayload:
        """
        Verify and decode a session token.

        Args:
            token: JWT token string

        Returns:
            TokenPayload with identity information

        Raises:
            TokenExpiredError: If token has expired
            TokenInvalidError: If token is invalid
        """
        try:
            payload = jwt.decode(
                token,
                self.config.secret_key,
                algorithms=[self.config.algorithm],
                audience=self.config.audience,
                issuer=self.config.issuer,
            )

            if payload.get("type") != SESSION_TOKEN_TYPE:
                raise TokenInvalidError(f"Expected {SESSION_TOKEN_TYPE} token")

            token_payload = TokenPayload(
                user_id=UUID(payload["user_id"]),
                username=payload["username"],
                is_verified=bool(payload["is_verified"]),
                jti=payload.get("jti"),
            )

            self.logger.debug("token_verified", user_id=payload["user_id"])
            return token_payload

        except jwt.ExpiredSignatureError as e:
            self.logger.warning("token_expired", error=str(e))
            raise TokenExpiredError("Token has expired") from e
        except jwt.InvalidTokenError as e:
            self.logger.warning("token_invalid", error=str(e))
            raise TokenInvalidError("Invalid token") from e
        except (KeyError, ValueError) as e:
            self.logger.warning("token_malformed", error=str(e))
            raise TokenInvalidError("Malformed token payload") from e

    def _generate_token(
        self,
        payload: TokenPayload,
        expires_delta: timedelta,
    ) -> str:
        now = datetime.now(timezone.utc)

        jwt_payload = {
            **payload.to_dict(),
            "jti": str(uuid4()),
            "exp": now + expires_delta,
            "iat": now,
            "nbf": now,
            "iss": self.config.issuer,
            "aud": self.config.audience,
        }

        return jwt.encode(
            jwt_payload,
            self.config.secret_key,
            algorithm=self.config.algorithm,
        )

    @staticmethod
    def extract_token_from_header(authorization: str) -> str:
        """
        Extract JWT token from Authorization header.

        Args:
            authorization: Authorization header value (e.g., "Bearer <token>")

        Raises:
            TokenInvalidError: If header format is invalid
        """
        if not authorization:
            raise TokenInvalidError("Missing authorization header")

        parts = authorization.split()

        if len(parts) != 2 or parts[0].lower() != "bearer":
            raise TokenInvalidError("Invalid authorization header format")

        return parts[1]

