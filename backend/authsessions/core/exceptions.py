"""Custom exception classes for the application"""

from typing import Optional, Dict, Any


class BaseAPIException(Exception):
    """Base exception for all API errors"""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.headers = headers
        super().__init__(self.message)


# Authentication Errors
class AuthenticationError(BaseAPIException):
    """Base authentication error"""
    def __init__(self, message: str = "Authentication failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message,
            status_code=401,
            details=details,
            headers={"WWW-Authenticate": "Bearer"},
        )


class InvalidCredentialsError(AuthenticationError):
    """Invalid email or password (never says which)"""
    def __init__(self):
        super().__init__("Invalid email or password")


class InvalidAccessTokenError(AuthenticationError):
    """Access token has a bad signature, is malformed or has expired"""
    def __init__(self, reason: str = "invalid"):
        super().__init__("Invalid or expired access token", details={"reason": reason})


class InvalidRefreshTokenError(AuthenticationError):
    """Refresh token is unknown, malformed or expired"""
    def __init__(self, message: str = "Invalid or expired refresh token"):
        super().__init__(message)


class ReuseDetectedError(AuthenticationError):
    """A consumed refresh token was presented again; its session is now revoked"""
    def __init__(self):
        super().__init__("Refresh token reuse detected. The session has been revoked.")


# Authorization Errors
class AuthorizationError(BaseAPIException):
    """Insufficient permissions"""
    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(message, status_code=403)


class SessionNotFoundError(AuthorizationError):
    """Session missing, already terminated or owned by someone else"""
    def __init__(self):
        super().__init__("Session not found, already terminated, or does not belong to you")


# Validation Errors
class ValidationError(BaseAPIException):
    """Validation error"""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=400, details=details)


# System Errors
class StoreUnavailableError(BaseAPIException):
    """Session store failed or timed out; nothing was changed"""
    def __init__(self, message: str = "Session store temporarily unavailable"):
        super().__init__(message, status_code=503)


class RateLimitExceededError(BaseAPIException):
    """Rate limit exceeded"""
    def __init__(self, message: str = "Rate limit exceeded. Please try again later."):
        super().__init__(message, status_code=429)
