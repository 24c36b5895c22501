"""
Anon-Inbox Service - Identity Service.

Account workflows that produce an identity able to own an inbox:
sign-up with a verification code, verification, credential sign-in
issuing a session token, and username availability checks.

Architecture Layer: Domain
Principles: Single Responsibility, Dependency Inversion, Domain Events
"""
from __future__ import annotations

import secrets
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

import structlog

from ..events import EventPublisher, UserRegisteredEvent, UserVerifiedEvent
from ..infrastructure.repository import DuplicateEntityError
from .entities import EMAIL_REGEX, User
from .value_objects import ErrorKind, PasswordPolicy, validate_username

if TYPE_CHECKING:
    from ..infrastructure.jwt_service import IssuedToken, JWTService
    from ..infrastructure.password_service import PasswordService
    from ..infrastructure.repository import UserRepository

logger = structlog.get_logger(__name__)


class VerificationCodeSender(Protocol):
    """Port for delivering sign-up verification codes."""
    async def send_code(self, email: str, username: str, code: str) -> bool: ...


# --- Result Types ---


@dataclass
class RegisterResult:
    """Result of sign-up."""
    success: bool = False
    user: User | None = None
    code_sent: bool = False
    error: str | None = None
    error_kind: ErrorKind | None = None


@dataclass
class VerifyResult:
    """Result of account verification."""
    success: bool = False
    error: str | None = None
    error_kind: ErrorKind | None = None


@dataclass
class SignInResult:
    """Result of credential sign-in."""
    success: bool = False
    user: User | None = None
    token: IssuedToken | None = None
    error: str | None = None
    error_kind: ErrorKind | None = None


@dataclass
class UsernameCheckResult:
    """Result of a username availability check."""
    success: bool = False
    available: bool = False
    pending: bool = False
    error: str | None = None
    error_kind: ErrorKind | None = None


class IdentityService:
    """
    Identity service coordinating account workflows.

    Business Rules:
    - A username or email held by a verified account cannot be re-registered
    - Signing up again with the email of an unverified account refreshes its
      password and verification code
    - Verification codes expire; an expired code requires signing up again
    - Unverified accounts never receive a session
    """

    def __init__(
        self,
        user_repository: UserRepository,
        password_service: PasswordService,
        jwt_service: JWTService,
        event_publisher: EventPublisher | None = None,
        code_sender: VerificationCodeSender | None = None,
        password_policy: PasswordPolicy | None = None,
        verify_code_expiry_minutes: int = 60,
    ) -> None:
        self._user_repo = user_repository
        self._password_service = password_service
        self._jwt_service = jwt_service
        self._event_publisher = event_publisher
        self._code_sender = code_sender
        self._password_policy = password_policy or PasswordPolicy.default()
        self._verify_code_expiry_minutes = verify_code_expiry_minutes

        self._stats = {
            "users_registered": 0,
            "users_verified": 0,
            "sign_ins": 0,
            "failed_sign_ins": 0,
            "password_migrations": 0,
        }

    # --- Sign-up ---

    async def register(self, username: str, email: str, password: str) -> RegisterResult:
        """
        Register a new unverified account and issue a verification code.

        Args:
            username: Requested public username
            email: Email address (normalized to lowercase)
            password: Plain text password (hashed before storage)

        Returns:
            RegisterResult with the stored user or error
        """
        try:
            username = validate_username(username)
        except ValueError as e:
            return RegisterResult(error=str(e), error_kind=ErrorKind.VALIDATION_ERROR)

        is_valid, policy_error = self._password_policy.validate_password(password)
        if not is_valid:
            return RegisterResult(error=policy_error, error_kind=ErrorKind.VALIDATION_ERROR)

        email = email.strip().lower()
        if not EMAIL_REGEX.match(email):
            return RegisterResult(error="Invalid email address", error_kind=ErrorKind.VALIDATION_ERROR)

        try:
            by_username = await self._user_repo.get_by_username(username)
            if by_username and by_username.is_verified:
                return RegisterResult(error="Username is already taken", error_kind=ErrorKind.CONFLICT)

            password_hash = self._password_service.hash_password(password)
            existing = await self._user_repo.get_by_email(email)

            if existing:
                if existing.is_verified:
                    return RegisterResult(
                        error="User already exists with this email",
                        error_kind=ErrorKind.CONFLICT,
                    )
                if by_username and by_username.user_id != existing.user_id:
                    return RegisterResult(error="Username is already taken", error_kind=ErrorKind.CONFLICT)

                existing.username = username
                existing.password_hash = password_hash
                code = existing.issue_verify_code(self._verify_code_expiry_minutes)
                user = await self._user_repo.update(existing)
                logger.info("registration_refreshed", user_id=str(user.user_id))
            else:
                if by_username:
                    return RegisterResult(error="Username is already taken", error_kind=ErrorKind.CONFLICT)

                user = User(username=username, email=email, password_hash=password_hash)
                code = user.issue_verify_code(self._verify_code_expiry_minutes)
                user = await self._user_repo.save(user)
                self._stats["users_registered"] += 1

                if self._event_publisher:
                    await self._event_publisher.publish(
                        UserRegisteredEvent(aggregate_id=user.user_id, username=user.username)
                    )
                logger.info("user_registered", user_id=str(user.user_id), username=user.username)

            code_sent = False
            if self._code_sender:
                code_sent = await self._code_sender.send_code(user.email, user.username, code)
                if not code_sent:
                    logger.warning("verification_code_not_sent", user_id=str(user.user_id))

            return RegisterResult(success=True, user=user, code_sent=code_sent)

        except DuplicateEntityError:
            return RegisterResult(error="Username or email already registered", error_kind=ErrorKind.CONFLICT)
        except Exception as e:
            logger.error("registration_failed", error=str(e))
            return RegisterResult(error="Error registering user", error_kind=ErrorKind.INTERNAL_ERROR)

    async def verify(self, username: str, code: str) -> VerifyResult:
        """
        Verify an account with its sign-up code.

        Business Rules:
        - Codes are compared in constant time
        - Verifying an already verified account succeeds without change
        """
        try:
            user = await self._user_repo.get_by_username(username.strip())
            if user is None:
                return VerifyResult(error="User not found", error_kind=ErrorKind.NOT_FOUND)

            if user.is_verified:
                return VerifyResult(success=True)

            entered = code.strip().encode()
            if not user.verify_code or not secrets.compare_digest(entered, user.verify_code.encode()):
                return VerifyResult(error="Incorrect verification code", error_kind=ErrorKind.VALIDATION_ERROR)

            if user.verify_code_expired():
                return VerifyResult(
                    error="Verification code has expired, please sign up again to get a new code",
                    error_kind=ErrorKind.VALIDATION_ERROR,
                )

            user.mark_verified()
            await self._user_repo.update(user)
            self._stats["users_verified"] += 1

            if self._event_publisher:
                await self._event_publisher.publish(UserVerifiedEvent(aggregate_id=user.user_id))

            return VerifyResult(success=True)

        except Exception as e:
            logger.error("verification_failed", error=str(e))
            return VerifyResult(error="Error verifying user", error_kind=ErrorKind.INTERNAL_ERROR)

    # --- Sign-in ---

    async def sign_in(self, identifier: str, password: str) -> SignInResult:
        """
        Authenticate with username or email and password.

        Legacy bcrypt hashes are replaced by an Argon2id hash on success.

        Returns:
            SignInResult carrying a session token on success
        """
        try:
            user = await self._user_repo.get_by_identifier(identifier.strip())
            if user is None:
                self._stats["failed_sign_ins"] += 1
                return SignInResult(error="No user found with this email or username", error_kind=ErrorKind.NOT_FOUND)

            allowed, reason = user.can_sign_in()
            if not allowed:
                self._stats["failed_sign_ins"] += 1
                return SignInResult(error=reason, error_kind=ErrorKind.FORBIDDEN)

            verification = self._password_service.verify_password(password, user.password_hash)
            if not verification.is_valid:
                self._stats["failed_sign_ins"] += 1
                logger.info("sign_in_rejected", user_id=str(user.user_id), reason="invalid_password")
                return SignInResult(error="Invalid password", error_kind=ErrorKind.UNAUTHENTICATED)

            if verification.needs_rehash and verification.new_hash:
                user.password_hash = verification.new_hash
                user = await self._user_repo.update(user)
                self._stats["password_migrations"] += 1
                logger.info(
                    "password_hash_migrated",
                    user_id=str(user.user_id),
                    from_algorithm=verification.algorithm_used.value,
                )

            token = self._jwt_service.issue_token(user.user_id, user.username, user.is_verified)
            self._stats["sign_ins"] += 1
            logger.info("user_signed_in", user_id=str(user.user_id))
            return SignInResult(success=True, user=user, token=token)

        except Exception as e:
            logger.error("sign_in_failed", error=str(e))
            return SignInResult(error="Error signing in", error_kind=ErrorKind.INTERNAL_ERROR)

    async def is_username_available(self, username: str) -> UsernameCheckResult:
        """
        Check whether a username is well-formed and free for a new account.

        A username held by an unverified account is not free: only the owner
        of that pending sign-up can claim it. `pending` marks that case.
        """
        try:
            username = validate_username(username)
        except ValueError as e:
            return UsernameCheckResult(error=str(e), error_kind=ErrorKind.VALIDATION_ERROR)

        try:
            user = await self._user_repo.get_by_username(username)
            if user is None:
                return UsernameCheckResult(success=True, available=True)
            return UsernameCheckResult(success=True, available=False, pending=not user.is_verified)
        except Exception as e:
            logger.error("username_check_failed", error=str(e))
            return UsernameCheckResult(error="Error checking username", error_kind=ErrorKind.INTERNAL_ERROR)

    # --- Statistics ---

    def get_statistics(self) -> dict[str, int]:
        """Get service statistics."""
        return self._stats.copy()
