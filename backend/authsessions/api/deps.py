"""API dependencies - authentication, request context and rate limiting"""

from dataclasses import dataclass
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from typing import Optional

from authsessions.config import settings
from authsessions.core.database import get_db
from authsessions.core.security import AccessTokenCheck, verify_access_token
from authsessions.core.exceptions import (
    AuthenticationError,
    InvalidAccessTokenError,
    RateLimitExceededError,
)
from authsessions.models.user import User
from authsessions.services.rate_limiter import rate_limiter
from authsessions.services.request_context import RequestContext, extract_request_context, get_client_ip
from authsessions.services.user_service import user_service

# HTTP Bearer token scheme; missing credentials are reported as 401 below
security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AuthenticatedCaller:
    """The user behind an access token and the lineage it was issued for"""

    user: User
    session_id: str


def get_access_token_check(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> AccessTokenCheck:
    """
    Verify the bearer access token

    Raises:
        AuthenticationError: No bearer token supplied
        InvalidAccessTokenError: Bad signature, wrong type or expired
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Not authenticated")

    check = verify_access_token(credentials.credentials)
    if not check.valid:
        raise InvalidAccessTokenError(check.error or "invalid")
    return check


def get_current_caller(
    check: AccessTokenCheck = Depends(get_access_token_check),
    db: Session = Depends(get_db),
) -> AuthenticatedCaller:
    """
    Resolve the user and session id carried by the access token

    Args:
        check: Verified access token
        db: Database session

    Returns:
        Authenticated caller

    Raises:
        AuthenticationError: If the user no longer exists or is disabled
    """
    user_id = check.user_id
    if user_id is None:
        raise InvalidAccessTokenError("malformed")

    user = user_service.get_user_by_id(db, user_id)
    if not user:
        raise AuthenticationError("User not found")

    if not user.is_active:
        raise AuthenticationError("User account is disabled")

    return AuthenticatedCaller(user=user, session_id=check.session_id)


def get_current_user(caller: AuthenticatedCaller = Depends(get_current_caller)) -> User:
    return caller.user


def get_request_context(request: Request) -> RequestContext:
    return extract_request_context(request)


def enforce_login_rate_limit(request: Request) -> None:
    """Throttle login attempts per client address"""
    client_ip = get_client_ip(request) or "unknown"
    allowed = rate_limiter.allow_all([
        (f"login:min:{client_ip}", settings.LOGIN_RATE_LIMIT_PER_MINUTE, 60),
        (f"login:hour:{client_ip}", settings.LOGIN_RATE_LIMIT_PER_HOUR, 3600),
    ])
    if not allowed:
        raise RateLimitExceededError("Too many login attempts. Please try again later.")


def enforce_refresh_rate_limit(request: Request) -> None:
    """Throttle refresh attempts per client address"""
    client_ip = get_client_ip(request) or "unknown"
    allowed = rate_limiter.allow_all([
        (f"refresh:min:{client_ip}", settings.REFRESH_RATE_LIMIT_PER_MINUTE, 60),
        (f"refresh:hour:{client_ip}", settings.REFRESH_RATE_LIMIT_PER_HOUR, 3600),
    ])
    if not allowed:
        raise RateLimitExceededError("Too many refresh attempts. Slow down.")
