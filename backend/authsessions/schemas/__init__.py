"""Pydantic schemas for API validation"""

from authsessions.schemas.auth import (
    LoginRequest,
    RefreshTokenRequest,
    LogoutRequest,
    TerminateAllSessionsRequest,
    UserResponse,
    LoginResponse,
    TokenRefreshResponse,
    SessionItem,
    SessionsListResponse,
    MessageResponse,
    AllSessionsTerminatedResponse,
)
from authsessions.schemas.audit import AuditDetails
from authsessions.schemas.response import ErrorResponse, HealthResponse

__all__ = [
    "LoginRequest", "RefreshTokenRequest", "LogoutRequest", "TerminateAllSessionsRequest",
    "UserResponse", "LoginResponse", "TokenRefreshResponse",
    "SessionItem", "SessionsListResponse", "MessageResponse", "AllSessionsTerminatedResponse",
    "AuditDetails",
    "ErrorResponse", "HealthResponse",
]
