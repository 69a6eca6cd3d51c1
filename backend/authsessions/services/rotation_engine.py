"""Refresh-token rotation state machine.

Per lineage:

    active --rotate--> active' --rotate--> ... --revoke--> revoked (terminal)

Presenting any secret that is no longer live, or that belongs to a revoked
lineage, is treated as theft and revokes the whole lineage on the spot.
Expected failures come back as a ``RotationResult`` outcome; only
infrastructure faults raise (``StoreUnavailableError``).
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from authsessions.config import settings
from authsessions.core.exceptions import StoreUnavailableError
from authsessions.core.metrics import ROTATION_OUTCOMES, SESSIONS_REVOKED
from authsessions.core.security import (
    create_access_token,
    generate_refresh_secret,
    hash_refresh_secret,
    idle_cutoff,
)
from authsessions.core.timeutil import naive_utc, utcnow
from authsessions.models.session import RevocationReason
from authsessions.services.request_context import RequestContext
from authsessions.services.session_store import SessionStore, session_store
from authsessions.services.user_service import user_service

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("authsessions.security")


class RotationOutcome(str, enum.Enum):
    ROTATED = "rotated"
    INVALID = "invalid"
    EXPIRED = "expired"
    IDLE_TIMEOUT = "idle_timeout"
    REUSE_DETECTED = "reuse_detected"


@dataclass(frozen=True)
class RotationResult:
    outcome: RotationOutcome
    session_id: Optional[str] = None
    user_id: Optional[int] = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.outcome is RotationOutcome.ROTATED


class RotationEngine:
    """Validates a presented refresh secret and rotates or revokes its lineage"""

    def __init__(self, store: SessionStore = session_store, max_attempts: Optional[int] = None) -> None:
        self.store = store
        self.max_attempts = max_attempts or settings.ROTATION_MAX_ATTEMPTS

    def rotate(
        self,
        db: Session,
        presented_secret: str,
        context: Optional[RequestContext] = None,
    ) -> RotationResult:
        """
        Exchange a live refresh secret for a new access token and secret

        Args:
            db: Database session; committed or rolled back before returning
            presented_secret: Raw refresh secret from the client
            context: Client metadata to record on the lineage

        Returns:
            RotationResult; ``ok`` only when the lineage advanced
        """
        context = context or RequestContext()
        token_hash = hash_refresh_secret(presented_secret)

        try:
            result = self._rotate(db, token_hash, context)
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Rotation aborted by store failure: %s", exc)
            raise StoreUnavailableError() from exc

        ROTATION_OUTCOMES.labels(result.outcome.value).inc()
        return result

    def _rotate(self, db: Session, token_hash: str, context: RequestContext) -> RotationResult:
        for attempt in range(1, self.max_attempts + 1):
            now = utcnow()
            entry = self.store.find_history_entry(db, token_hash)
            if entry is None:
                db.rollback()
                return RotationResult(RotationOutcome.INVALID)

            session = self.store.get_session(db, entry.session_id)
            if session is None:
                db.rollback()
                return RotationResult(RotationOutcome.INVALID)

            session_id, user_id = session.id, session.user_id
            if not entry.is_live or not session.is_active:
                return self._contain_reuse(db, session_id, user_id, context, now)

            if naive_utc(session.expires_at) <= now:
                self._revoke(db, session_id, RevocationReason.EXPIRED, now)
                return RotationResult(RotationOutcome.EXPIRED, session_id=session_id, user_id=user_id)

            cutoff = idle_cutoff(now)
            if cutoff is not None and naive_utc(session.last_activity_at) <= cutoff:
                self._revoke(db, session_id, RevocationReason.IDLE_TIMEOUT, now)
                return RotationResult(RotationOutcome.IDLE_TIMEOUT, session_id=session_id, user_id=user_id)

            user = user_service.get_user_by_id(db, user_id)
            if user is None or not user.is_active:
                self._revoke(db, session_id, RevocationReason.USER_INACTIVE, now)
                return RotationResult(RotationOutcome.INVALID, session_id=session_id, user_id=user_id)

            new_secret, new_hash = generate_refresh_secret()
            advanced = self.store.advance_lineage(
                db,
                session_id=session_id,
                old_hash=token_hash,
                new_hash=new_hash,
                context=context,
                now=now,
            )
            if not advanced:
                # Lost the race: look again, the secret may now be consumed
                db.rollback()
                logger.info("Rotation race on session %s (attempt %d), re-checking", session_id, attempt)
                continue

            db.commit()
            access_token, expires_in = create_access_token(user_id, session_id)
            logger.debug("Rotated refresh token for session %s", session_id)
            return RotationResult(
                RotationOutcome.ROTATED,
                session_id=session_id,
                user_id=user_id,
                access_token=access_token,
                refresh_token=new_secret,
                expires_in=expires_in,
            )

        # Still contended after every retry; fail closed without touching the lineage
        db.rollback()
        logger.warning("Rotation gave up after %d contended attempts", self.max_attempts)
        return RotationResult(RotationOutcome.INVALID)

    def _contain_reuse(
        self,
        db: Session,
        session_id: str,
        user_id: int,
        context: RequestContext,
        now: datetime,
    ) -> RotationResult:
        revoked = self._revoke(db, session_id, RevocationReason.REUSE_DETECTED, now)
        security_logger.warning(
            "Refresh token reuse detected: session=%s user=%s ip=%s lineage_revoked_now=%s",
            session_id,
            user_id,
            context.ip_address,
            revoked,
        )
        return RotationResult(RotationOutcome.REUSE_DETECTED, session_id=session_id, user_id=user_id)

    def _revoke(self, db: Session, session_id: str, reason: RevocationReason, now: datetime) -> bool:
        revoked = self.store.revoke_session(db, session_id, reason=reason.value, now=now)
        db.commit()
        if revoked:
            SESSIONS_REVOKED.labels(reason.value).inc()
        return revoked


rotation_engine = RotationEngine()
