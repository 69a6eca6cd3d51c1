"""Security utilities - JWT access tokens, refresh secrets, password hashing"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any, Tuple
from jose import ExpiredSignatureError, JWTError, jwt
import bcrypt
import hashlib
import hmac
import secrets

from authsessions.config import settings

ACCESS_TOKEN_TYPE = "access"

# 48 random bytes -> 384 bits of entropy, 64 url-safe characters
REFRESH_SECRET_BYTES = 48


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a password against its hash

    Args:
        plain_password: Plain text password
        hashed_password: Hashed password

    Returns:
        bool: True if password matches
    """
    return bcrypt.checkpw(
        plain_password.encode('utf-8'),
        hashed_password.encode('utf-8')
    )


def get_password_hash(password: str) -> str:
    """
    Hash a password using bcrypt

    Args:
        password: Plain text password

    Returns:
        str: Hashed password
    """
    return bcrypt.hashpw(
        password.encode('utf-8'),
        bcrypt.gensalt()
    ).decode('utf-8')


def access_token_lifetime() -> timedelta:
    return timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)


def create_access_token(
    user_id: int,
    session_id: str,
    expires_delta: Optional[timedelta] = None,
) -> Tuple[str, int]:
    """
    Create a signed, short-lived access token bound to a session lineage

    Args:
        user_id: Owning user
        session_id: Lineage the token was issued for (``sid`` claim)
        expires_delta: Override for the configured lifetime

    Returns:
        Tuple of (encoded JWT, lifetime in seconds)
    """
    lifetime = expires_delta or access_token_lifetime()
    now = datetime.now(timezone.utc)

    to_encode = {
        "sub": str(user_id),
        "sid": session_id,
        "typ": ACCESS_TOKEN_TYPE,
        "iat": now,
        "exp": now + lifetime,
        "jti": secrets.token_urlsafe(16),
    }

    encoded_jwt = jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    return encoded_jwt, int(lifetime.total_seconds())


@dataclass(frozen=True)
class AccessTokenCheck:
    """Outcome of verifying an access token. ``error`` is set instead of raising."""

    payload: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @property
    def valid(self) -> bool:
        return self.error is None and self.payload is not None

    @property
    def user_id(self) -> Optional[int]:
        if not self.valid:
            return None
        try:
            return int(self.payload["sub"])
        except (KeyError, TypeError, ValueError):
            return None

    @property
    def session_id(self) -> Optional[str]:
        return self.payload.get("sid") if self.valid else None


def verify_access_token(token: str) -> AccessTokenCheck:
    """
    Verify signature, expiry and token type without touching the store

    Returns:
        AccessTokenCheck with ``error`` one of: expired, invalid_signature,
        malformed, wrong_type
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except ExpiredSignatureError:
        return AccessTokenCheck(error="expired")
    except JWTError as exc:
        # jose reports both tampering and garbage as JWTError
        if "Signature verification failed" in str(exc):
            return AccessTokenCheck(error="invalid_signature")
        return AccessTokenCheck(error="malformed")

    if payload.get("typ") != ACCESS_TOKEN_TYPE:
        return AccessTokenCheck(error="wrong_type")
    if not payload.get("sub") or not payload.get("sid"):
        return AccessTokenCheck(error="malformed")
    return AccessTokenCheck(payload=payload)


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Decode and verify an access token

    Args:
        token: JWT token string

    Returns:
        Optional[Dict]: Decoded token data or None if invalid
    """
    check = verify_access_token(token)
    return check.payload if check.valid else None


def hash_refresh_secret(raw_secret: str) -> str:
    """Keyed one-way hash of a refresh secret, stable for equality lookup"""
    return hmac.new(
        settings.get_refresh_pepper().encode("utf-8"),
        raw_secret.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def generate_refresh_secret() -> Tuple[str, str]:
    """
    Generate an opaque refresh secret

    The raw value goes to the client once and is never persisted.

    Returns:
        Tuple of (raw secret, storage hash)
    """
    raw_secret = secrets.token_urlsafe(REFRESH_SECRET_BYTES)
    return raw_secret, hash_refresh_secret(raw_secret)


def refresh_lifetime(remember_me: bool) -> timedelta:
    """Absolute lifetime of a session lineage"""
    if remember_me:
        return timedelta(days=settings.REMEMBER_ME_REFRESH_TOKEN_EXPIRE_DAYS)
    return timedelta(hours=settings.REFRESH_TOKEN_EXPIRE_HOURS)


def idle_cutoff(now: datetime) -> Optional[datetime]:
    """
    Oldest ``last_activity_at`` a lineage may have and still be usable at ``now``

    Returns:
        None when the idle timeout is disabled
    """
    if settings.SESSION_IDLE_TIMEOUT_MINUTES <= 0:
        return None
    return now - timedelta(minutes=settings.SESSION_IDLE_TIMEOUT_MINUTES)
