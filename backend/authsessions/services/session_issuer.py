"""Session issuer - login, refresh and logout orchestration"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from authsessions.core.exceptions import (
    InvalidRefreshTokenError,
    ReuseDetectedError,
    StoreUnavailableError,
)
from authsessions.core.metrics import SESSIONS_ISSUED, SESSIONS_REVOKED
from authsessions.core.security import (
    create_access_token,
    generate_refresh_secret,
    hash_refresh_secret,
    refresh_lifetime,
)
from authsessions.core.timeutil import utcnow
from authsessions.models.session import RevocationReason
from authsessions.models.user import User
from authsessions.schemas.audit import AuditDetails
from authsessions.services.audit_service import audit_service
from authsessions.services.request_context import RequestContext
from authsessions.services.rotation_engine import RotationEngine, RotationOutcome, rotation_engine
from authsessions.services.session_store import SessionStore, session_store

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionBundle:
    """What the client receives; the refresh secret is never stored in clear"""

    session_id: str
    user_id: int
    access_token: str
    refresh_token: str
    expires_in: int


class SessionIssuer:
    """Entry point for creating and refreshing session lineages"""

    def __init__(
        self,
        engine: RotationEngine = rotation_engine,
        store: SessionStore = session_store,
    ) -> None:
        self.engine = engine
        self.store = store

    def login(
        self,
        db: Session,
        user: User,
        context: Optional[RequestContext] = None,
        remember_me: bool = False,
    ) -> SessionBundle:
        """
        Start a new lineage for an already authenticated user

        Args:
            db: Database session
            user: Authenticated user
            context: Client metadata shown in the session list
            remember_me: Selects the long refresh lifetime

        Returns:
            Access token, first refresh secret and access lifetime
        """
        context = context or RequestContext()
        now = utcnow()
        raw_secret, token_hash = generate_refresh_secret()

        try:
            session = self.store.create_session(
                db,
                user_id=user.id,
                token_hash=token_hash,
                remember_me=remember_me,
                expires_at=now + refresh_lifetime(remember_me),
                context=context,
                now=now,
            )
            user.last_login = now
            session_id, user_id = session.id, user.id
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Login could not create a session: %s", exc)
            raise StoreUnavailableError() from exc

        access_token, expires_in = create_access_token(user_id, session_id)
        SESSIONS_ISSUED.inc()
        logger.info("Session %s issued for user %s (remember_me=%s)", session_id, user_id, remember_me)

        audit_service.log_event(
            db,
            user_id=user_id,
            action="login",
            ip_address=context.ip_address,
            details=AuditDetails(session_id=session_id, remember_me=remember_me, device=context.device),
        )

        return SessionBundle(
            session_id=session_id,
            user_id=user_id,
            access_token=access_token,
            refresh_token=raw_secret,
            expires_in=expires_in,
        )

    def refresh(
        self,
        db: Session,
        presented_secret: str,
        context: Optional[RequestContext] = None,
    ) -> SessionBundle:
        """
        Rotate a refresh secret

        Raises:
            InvalidRefreshTokenError: Unknown, expired, idle or unusable secret
            ReuseDetectedError: Secret was already consumed; lineage revoked
            StoreUnavailableError: Store failed, nothing changed
        """
        context = context or RequestContext()
        result = self.engine.rotate(db, presented_secret, context)

        if result.outcome is RotationOutcome.ROTATED:
            return SessionBundle(
                session_id=result.session_id,
                user_id=result.user_id,
                access_token=result.access_token,
                refresh_token=result.refresh_token,
                expires_in=result.expires_in,
            )

        if result.outcome is RotationOutcome.REUSE_DETECTED:
            audit_service.log_event(
                db,
                user_id=result.user_id,
                action="refresh_reuse_detected",
                ip_address=context.ip_address,
                details=AuditDetails(
                    session_id=result.session_id,
                    reason=RevocationReason.REUSE_DETECTED.value,
                    device=context.device,
                ),
            )
            raise ReuseDetectedError()

        if result.session_id is not None:
            audit_service.log_event(
                db,
                user_id=result.user_id,
                action="refresh_failed",
                ip_address=context.ip_address,
                details=AuditDetails(session_id=result.session_id, reason=result.outcome.value),
            )
        if result.outcome is RotationOutcome.EXPIRED:
            raise InvalidRefreshTokenError("Refresh token expired")
        if result.outcome is RotationOutcome.IDLE_TIMEOUT:
            raise InvalidRefreshTokenError("Session expired due to inactivity")
        raise InvalidRefreshTokenError()

    def logout(
        self,
        db: Session,
        user_id: int,
        refresh_token: Optional[str] = None,
        current_session_id: Optional[str] = None,
        context: Optional[RequestContext] = None,
    ) -> bool:
        """
        End one of the caller's own sessions

        The lineage behind ``refresh_token`` wins over ``current_session_id``.
        A token or session that is not the caller's is ignored.

        Returns:
            True if a session was revoked by this call
        """
        context = context or RequestContext()
        try:
            session_id = current_session_id
            if refresh_token:
                session = self.store.find_session_by_token_hash(db, hash_refresh_secret(refresh_token))
                session_id = session.id if session is not None and session.user_id == user_id else None

            revoked = False
            if session_id:
                revoked = self.store.revoke_session(
                    db,
                    session_id,
                    reason=RevocationReason.LOGOUT.value,
                    now=utcnow(),
                    user_id=user_id,
                )
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Logout failed for user %s: %s", user_id, exc)
            raise StoreUnavailableError() from exc

        if revoked:
            SESSIONS_REVOKED.labels(RevocationReason.LOGOUT.value).inc()
        logger.info("User %s logged out (session=%s, revoked=%s)", user_id, session_id, revoked)

        audit_service.log_event(
            db,
            user_id=user_id,
            action="logout",
            ip_address=context.ip_address,
            details=AuditDetails(session_id=session_id),
        )
        return revoked


session_issuer = SessionIssuer()
