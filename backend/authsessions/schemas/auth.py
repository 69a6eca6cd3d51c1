"""Authentication and session-management schemas"""

from pydantic import BaseModel, ConfigDict, EmailStr, Field, StrictBool, field_validator
from typing import List, Optional
from datetime import datetime


class LoginRequest(BaseModel):
    """Login request body"""
    model_config = ConfigDict(populate_by_name=True)

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=256)
    remember_me: StrictBool = Field(False, alias="rememberMe")


class RefreshTokenRequest(BaseModel):
    """Refresh token request"""
    refresh_token: str

    @field_validator("refresh_token")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("refresh_token must not be empty")
        return v


class LogoutRequest(BaseModel):
    """Logout request; without a token the caller's current session is ended"""
    refresh_token: Optional[str] = None


class TerminateAllSessionsRequest(BaseModel):
    """Bulk termination request"""
    model_config = ConfigDict(populate_by_name=True)

    refresh_token: Optional[str] = None
    keep_current: StrictBool = Field(False, alias="keepCurrent")


class UserResponse(BaseModel):
    """User response schema"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    is_active: bool
    created_at: Optional[datetime] = None
    last_login: Optional[datetime] = None


class LoginResponse(BaseModel):
    """Tokens issued at login"""
    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int
    user: UserResponse


class TokenRefreshResponse(BaseModel):
    """Tokens issued by a successful rotation"""
    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int


class SessionItem(BaseModel):
    """One active session as shown in the session list"""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    device: str
    browser: str
    ip: str
    last_activity: datetime = Field(..., alias="lastActivity")
    created_at: datetime = Field(..., alias="createdAt")
    current: bool


class SessionsListResponse(BaseModel):
    sessions: List[SessionItem]


class MessageResponse(BaseModel):
    message: str


class AllSessionsTerminatedResponse(BaseModel):
    message: str = "All sessions terminated"
    count: int
