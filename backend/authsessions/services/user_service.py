"""User service - credential verification for login"""

from sqlalchemy.orm import Session
from typing import Optional
from datetime import timedelta
from authsessions.config import settings
from authsessions.models.user import User
from authsessions.core.timeutil import naive_utc, utcnow
from authsessions.core.security import get_password_hash, verify_password
from authsessions.core.exceptions import (
    InvalidCredentialsError,
    ValidationError,
)
import logging

logger = logging.getLogger(__name__)


class UserService:
    """Minimal user access needed by the session subsystem"""

    @staticmethod
    def create_user(db: Session, email: str, password: str, is_active: bool = True) -> User:
        """
        Create a user account

        Args:
            db: Database session
            email: Login email, stored lower-cased
            password: Plain text password
            is_active: Whether the account may log in

        Returns:
            Created user
        """
        email = email.strip().lower()
        if db.query(User).filter(User.email == email).first():
            raise ValidationError("Email already registered")

        user = User(
            email=email,
            password_hash=get_password_hash(password),
            is_active=is_active,
            failed_login_attempts=0,
        )
        db.add(user)
        db.commit()
        db.refresh(user)

        logger.info("Created user id=%s", user.id)
        return user

    @staticmethod
    def authenticate_user(db: Session, email: str, password: str) -> User:
        """
        Authenticate user with account lockout protection

        Unknown email, wrong password, inactive account and locked account all
        raise the same InvalidCredentialsError so account existence is not
        revealed. The lock itself is only visible in the server log.

        Args:
            db: Database session
            email: Email
            password: Password

        Returns:
            Authenticated user
        """
        user = db.query(User).filter(User.email == email.strip().lower()).first()

        if not user or not user.is_active:
            raise InvalidCredentialsError()

        locked_until = naive_utc(user.locked_until)
        if locked_until and locked_until > utcnow():
            logger.info("Login refused for locked user id=%s until %s", user.id, locked_until.isoformat())
            raise InvalidCredentialsError()

        if not verify_password(password, user.password_hash):
            user.failed_login_attempts = (user.failed_login_attempts or 0) + 1

            if user.failed_login_attempts >= settings.MAX_FAILED_LOGIN_ATTEMPTS:
                user.locked_until = utcnow() + timedelta(minutes=settings.LOCKOUT_DURATION_MINUTES)
                user.failed_login_attempts = 0
                db.commit()
                logger.warning("Account locked for user id=%s until %s", user.id, user.locked_until.isoformat())
                raise InvalidCredentialsError()

            db.commit()
            raise InvalidCredentialsError()

        user.failed_login_attempts = 0
        user.locked_until = None
        db.commit()
        return user

    @staticmethod
    def get_user_by_id(db: Session, user_id: int) -> Optional[User]:
        """Get user by ID"""
        return db.query(User).filter(User.id == user_id).first()


# Singleton instance
user_service = UserService()
