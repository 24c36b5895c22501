"""
Anon-Inbox Service - Session Resolution.

Resolves the identity behind an incoming request from its session token,
carried either in the `Authorization: Bearer` header or in the session cookie.
Resolution is stateless and never touches storage.

Architecture Layer: Application
Principles: Single Responsibility, Explicit Capabilities
"""
from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from fastapi import Request
import structlog

from .infrastructure.jwt_service import JWTError, JWTService

logger = structlog.get_logger(__name__)

DEFAULT_SESSION_COOKIE = "anon_inbox_session"


@dataclass(frozen=True)
class AuthenticatedIdentity:
    """Identity of a signed-in, verified user."""
    user_id: UUID
    username: str


class IdentityResolver:
    """
    Resolves request sessions to identities.

    Expired, malformed and unverified-claim tokens all resolve to None;
    the caller decides whether an identity is required.
    """

    def __init__(self, jwt_service: JWTService, cookie_name: str = DEFAULT_SESSION_COOKIE) -> None:
        self._jwt_service = jwt_service
        self._cookie_name = cookie_name

    @property
    def cookie_name(self) -> str:
        return self._cookie_name

    def resolve_token(self, token: str | None) -> AuthenticatedIdentity | None:
        """Resolve a raw session token."""
        if not token:
            return None
        try:
            payload = self._jwt_service.verify_token(token)
        except JWTError:
            return None

        if not payload.is_verified:
            logger.info("session_rejected", user_id=str(payload.user_id), reason="unverified")
            return None

        return AuthenticatedIdentity(user_id=payload.user_id, username=payload.username)

    async def resolve(self, request: Request) -> AuthenticatedIdentity | None:
        """
        Resolve the identity of a request.

        The Authorization header takes precedence over the session cookie.
        """
        authorization = request.headers.get("Authorization")
        if authorization:
            try:
                token = self._jwt_service.extract_token_from_header(authorization)
            except JWTError:
                return None
            return self.resolve_token(token)

        return self.resolve_token(request.cookies.get(self._cookie_name))


class LoggingCodeSender:
    """
    Verification code sender for development.

    Logs that a code was issued; the code itself is only written to the
    log when `log_codes` is enabled (never in production).
    """

    def __init__(self, log_codes: bool = False) -> None:
        self._log_codes = log_codes

    async def send_code(self, email: str, username: str, code: str) -> bool:
        if self._log_codes:
            logger.info("verification_code_issued", username=username, code=code)
        else:
            logger.info("verification_code_issued", username=username)
        return True
