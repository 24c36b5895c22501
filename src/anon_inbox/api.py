"""
Anon-Inbox Service - REST API Endpoints.

Provides anonymous message submission, owner inbox management, account
sign-up/sign-in and message suggestions. Every body is JSON with a
`success` flag and a human-readable `message`; field names are camelCase.

Architecture Layer: Presentation
Principles: Clean API Design, Dependency Injection, DTOs
"""
from __future__ import annotations

from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel
import structlog

from .auth import AuthenticatedIdentity, IdentityResolver
from .domain.entities import Message
from .domain.identity import IdentityService
from .domain.service import MessageService
from .domain.value_objects import ErrorKind
from .infrastructure.suggestion_service import SuggestionService

logger = structlog.get_logger(__name__)
router = APIRouter()


# --- Request/Response Models ---


class CamelModel(BaseModel):
    """Base DTO serialized with camelCase field names."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ApiResponse(CamelModel):
    """Common response envelope."""
    success: bool = Field(..., description="Operation outcome")
    message: str = Field(..., description="Human-readable outcome")


class SendMessageRequest(CamelModel):
    """Anonymous message submission. The target may be given as `username` or `targetUsername`."""
    username: str | None = Field(default=None, description="Target username")
    target_username: str | None = Field(default=None, description="Target username")
    content: str = Field(..., description="Message text")

    @model_validator(mode="after")
    def require_target(self) -> SendMessageRequest:
        if not (self.username or self.target_username):
            raise ValueError("Target username is required")
        return self

    @property
    def target(self) -> str:
        return self.username or self.target_username or ""


class MessageResponse(CamelModel):
    """Stored message."""
    id: UUID = Field(..., description="Message ID")
    content: str = Field(..., description="Message text")
    created_at: datetime = Field(..., description="Creation timestamp")


class SendMessageResponse(ApiResponse):
    data: MessageResponse


class MessagesResponse(ApiResponse):
    messages: list[MessageResponse] = Field(default_factory=list)


class AcceptMessagesRequest(CamelModel):
    """Acceptance toggle request."""
    accept_messages: bool = Field(..., description="Accept anonymous messages")


class AcceptMessagesResponse(ApiResponse):
    is_accepting_messages: bool


class SignUpRequest(CamelModel):
    """Account registration request."""
    username: str = Field(..., description="Public username")
    email: str = Field(..., min_length=5, max_length=255, description="User email")
    password: str = Field(..., max_length=128, description="Password")

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        """Validate and normalize email."""
        from email_validator import validate_email as _validate_email, EmailNotValidError
        try:
            result = _validate_email(v, check_deliverability=False)
            return result.normalized
        except EmailNotValidError as e:
            raise ValueError(f"Invalid email: {e}")


class SignUpResponse(ApiResponse):
    username: str


class VerifyRequest(CamelModel):
    """Account verification request."""
    username: str = Field(..., description="Username")
    code: str = Field(..., min_length=1, max_length=16, description="Verification code")


class SignInRequest(CamelModel):
    """Credential sign-in request."""
    identifier: str = Field(..., min_length=1, description="Username or email")
    password: str = Field(..., min_length=1, description="Password")


class SignInResponse(ApiResponse):
    username: str
    access_token: str
    token_type: str = "Bearer"
    expires_in: int


class UsernameCheckResponse(ApiResponse):
    available: bool


class SuggestionsResponse(ApiResponse):
    suggestions: list[str] = Field(default_factory=list)


# --- Dependencies ---


def get_message_service(request: Request) -> MessageService:
    """Get message service from app state."""
    state = request.app.state.service
    if not state.message_service:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Message service not available",
        )
    return state.message_service


def get_identity_service(request: Request) -> IdentityService:
    """Get identity service from app state."""
    state = request.app.state.service
    if not state.identity_service:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Identity service not available",
        )
    return state.identity_service


def get_suggestion_service(request: Request) -> SuggestionService:
    """Get suggestion client from app state."""
    state = request.app.state.service
    if not state.suggestion_service:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Suggestion service not available",
        )
    return state.suggestion_service


def get_identity_resolver(request: Request) -> IdentityResolver:
    """Get identity resolver from app state."""
    state = request.app.state.service
    if not state.identity_resolver:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Identity resolver not available",
        )
    return state.identity_resolver


async def get_identity(request: Request) -> AuthenticatedIdentity | None:
    """
    Resolve the caller's identity, if any.

    Never rejects: services decide when an identity is required.
    """
    return await get_identity_resolver(request).resolve(request)


Identity = Annotated[AuthenticatedIdentity | None, Depends(get_identity)]


# --- Helper Functions ---


def failure_response(error_kind: ErrorKind | None, message: str | None) -> JSONResponse:
    """Convert a failed service result into an error response."""
    kind = error_kind or ErrorKind.INTERNAL_ERROR
    headers = {"WWW-Authenticate": "Bearer"} if kind is ErrorKind.UNAUTHENTICATED else None
    return JSONResponse(
        status_code=kind.http_status,
        content={"success": False, "message": message or "Request failed"},
        headers=headers,
    )


def message_to_response(message: Message) -> MessageResponse:
    """Convert Message entity to MessageResponse DTO."""
    return MessageResponse(id=message.message_id, content=message.content, created_at=message.created_at)


# --- Message Endpoints ---


@router.post(
    "/messages/send",
    response_model=SendMessageResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Messages"],
)
async def send_message(
    body: SendMessageRequest,
    message_service: Annotated[MessageService, Depends(get_message_service)],
):
    """Send an anonymous message to a user's inbox. No session required."""
    result = await message_service.submit(body.target, body.content)
    if not result.success:
        return failure_response(result.error_kind, result.error)

    return SendMessageResponse(
        success=True,
        message="Message sent successfully",
        data=message_to_response(result.message),
    )


@router.get("/messages", response_model=MessagesResponse, tags=["Messages"])
async def get_messages(
    identity: Identity,
    message_service: Annotated[MessageService, Depends(get_message_service)],
):
    """List the caller's messages, newest first."""
    result = await message_service.list_messages(identity)
    if not result.success:
        return failure_response(result.error_kind, result.error)

    return MessagesResponse(
        success=True,
        message="Messages retrieved successfully",
        messages=[message_to_response(m) for m in result.messages],
    )


@router.delete("/messages/{message_id}", response_model=ApiResponse, tags=["Messages"])
async def delete_message(
    message_id: str,
    identity: Identity,
    message_service: Annotated[MessageService, Depends(get_message_service)],
):
    """Delete one message from the caller's inbox. An unparseable id is reported as not found."""
    result = await message_service.delete_message(identity, message_id)
    if not result.success:
        return failure_response(result.error_kind, result.error)

    return ApiResponse(success=True, message="Message deleted")


@router.get("/accept-messages", response_model=AcceptMessagesResponse, tags=["Messages"])
async def get_accept_messages(
    identity: Identity,
    message_service: Annotated[MessageService, Depends(get_message_service)],
):
    """Read the caller's message acceptance status."""
    result = await message_service.get_acceptance(identity)
    if not result.success:
        return failure_response(result.error_kind, result.error)

    return AcceptMessagesResponse(
        success=True,
        message="Message acceptance status retrieved",
        is_accepting_messages=result.is_accepting_messages,
    )


@router.post("/accept-messages", response_model=AcceptMessagesResponse, tags=["Messages"])
async def set_accept_messages(
    body: AcceptMessagesRequest,
    identity: Identity,
    message_service: Annotated[MessageService, Depends(get_message_service)],
):
    """Turn anonymous message acceptance on or off for the caller."""
    result = await message_service.set_acceptance(identity, body.accept_messages)
    if not result.success:
        return failure_response(result.error_kind, result.error)

    return AcceptMessagesResponse(
        success=True,
        message="Message acceptance status updated successfully",
        is_accepting_messages=result.is_accepting_messages,
    )


# --- Authentication Endpoints ---


@router.post(
    "/auth/sign-up",
    response_model=SignUpResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Authentication"],
)
async def sign_up(
    body: SignUpRequest,
    identity_service: Annotated[IdentityService, Depends(get_identity_service)],
):
    """Register an account. The account must be verified before signing in."""
    result = await identity_service.register(body.username, body.email, body.password)
    if not result.success:
        return failure_response(result.error_kind, result.error)

    return SignUpResponse(
        success=True,
        message="User registered successfully. Please verify your account.",
        username=result.user.username,
    )


@router.post("/auth/verify", response_model=ApiResponse, tags=["Authentication"])
async def verify(
    body: VerifyRequest,
    identity_service: Annotated[IdentityService, Depends(get_identity_service)],
):
    """Verify an account with its sign-up code."""
    result = await identity_service.verify(body.username, body.code)
    if not result.success:
        return failure_response(result.error_kind, result.error)

    return ApiResponse(success=True, message="Account verified successfully")


@router.post("/auth/sign-in", response_model=SignInResponse, tags=["Authentication"])
async def sign_in(
    body: SignInRequest,
    request: Request,
    response: Response,
    identity_service: Annotated[IdentityService, Depends(get_identity_service)],
):
    """Sign in with username or email. The session is returned and set as a cookie."""
    result = await identity_service.sign_in(body.identifier, body.password)
    if not result.success:
        return failure_response(result.error_kind, result.error)

    state = request.app.state.service
    response.set_cookie(
        key=get_identity_resolver(request).cookie_name,
        value=result.token.access_token,
        max_age=result.token.expires_in,
        httponly=True,
        samesite="lax",
        secure=bool(state.settings and state.settings.service.session_cookie_secure),
    )

    return SignInResponse(
        success=True,
        message="Signed in successfully",
        username=result.user.username,
        access_token=result.token.access_token,
        token_type=result.token.token_type,
        expires_in=result.token.expires_in,
    )


@router.post("/auth/sign-out", response_model=ApiResponse, tags=["Authentication"])
async def sign_out(request: Request, response: Response):
    """Clear the session cookie. Tokens are stateless and expire on their own."""
    response.delete_cookie(get_identity_resolver(request).cookie_name)
    return ApiResponse(success=True, message="Signed out")


@router.get("/auth/check-username", response_model=UsernameCheckResponse, tags=["Authentication"])
async def check_username(
    identity_service: Annotated[IdentityService, Depends(get_identity_service)],
    username: str = Query(..., description="Username to check"),
):
    """Check whether a username is free for a new account."""
    result = await identity_service.is_username_available(username)
    if not result.success:
        return failure_response(result.error_kind, result.error)

    if result.available:
        message = "Username is unique"
    elif result.pending:
        message = "Username is reserved by an account awaiting verification"
    else:
        message = "Username is already taken"
    return UsernameCheckResponse(success=True, message=message, available=result.available)


# --- Suggestion Endpoints ---


@router.post("/suggest-messages", response_model=SuggestionsResponse, tags=["Suggestions"])
async def suggest_messages(
    suggestion_service: Annotated[SuggestionService, Depends(get_suggestion_service)],
):
    """Generate prompts a visitor may send anonymously."""
    result = await suggestion_service.suggest()
    if not result.success:
        return failure_response(result.error_kind, result.error)

    return SuggestionsResponse(
        success=True,
        message="Suggestions generated",
        suggestions=result.suggestions,
    )
