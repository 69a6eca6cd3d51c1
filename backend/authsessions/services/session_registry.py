"""Session registry - listing and terminating a user's session lineages"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from authsessions.core.exceptions import SessionNotFoundError, StoreUnavailableError
from authsessions.core.metrics import SESSIONS_REVOKED
from authsessions.core.security import hash_refresh_secret, idle_cutoff
from authsessions.core.timeutil import utcnow
from authsessions.models.session import AuthSession, RevocationReason
from authsessions.services.request_context import UNKNOWN_BROWSER, UNKNOWN_DEVICE
from authsessions.services.session_store import SessionStore, session_store

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionSummary:
    id: str
    device: str
    browser: str
    ip: str
    last_activity: datetime
    created_at: datetime
    current: bool

    @classmethod
    def from_session(cls, session: AuthSession, current_session_id: Optional[str]) -> "SessionSummary":
        return cls(
            id=session.id,
            device=session.device or UNKNOWN_DEVICE,
            browser=session.browser or UNKNOWN_BROWSER,
            ip=session.ip_address or "Unknown",
            last_activity=session.last_activity_at or session.created_at,
            created_at=session.created_at,
            current=current_session_id is not None and session.id == current_session_id,
        )


class SessionRegistry:
    """Read and administrative surface over the session store"""

    def __init__(self, store: SessionStore = session_store) -> None:
        self.store = store

    def list_sessions(
        self,
        db: Session,
        user_id: int,
        current_session_id: Optional[str] = None,
    ) -> List[SessionSummary]:
        """
        Active sessions of a user, most recent activity first

        Args:
            db: Database session
            user_id: Owner
            current_session_id: Lineage of the caller, flagged ``current``

        Returns:
            Session summaries
        """
        try:
            now = utcnow()
            sessions = self.store.list_active_sessions(db, user_id, now, idle_before=idle_cutoff(now))
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Listing sessions failed for user %s: %s", user_id, exc)
            raise StoreUnavailableError() from exc
        return [SessionSummary.from_session(s, current_session_id) for s in sessions]

    def resolve_current_session_id(
        self,
        db: Session,
        user_id: int,
        refresh_token: Optional[str] = None,
        fallback_session_id: Optional[str] = None,
    ) -> Optional[str]:
        """Lineage identified by the caller's refresh token if it is theirs, else the fallback"""
        if refresh_token:
            try:
                session = self.store.find_session_by_token_hash(db, hash_refresh_secret(refresh_token))
            except SQLAlchemyError as exc:
                db.rollback()
                raise StoreUnavailableError() from exc
            if session is not None and session.user_id == user_id:
                return session.id
        return fallback_session_id

    def terminate(self, db: Session, user_id: int, session_id: str) -> None:
        """
        Revoke one of the user's sessions

        Missing, foreign, already revoked, expired and idle sessions are
        indistinguishable to the caller. Expired and idle lineages do not
        appear in the list, so they are left for the rotation engine.

        Raises:
            SessionNotFoundError: Nothing active with that id belongs to the user
        """
        try:
            now = utcnow()
            revoked = self.store.revoke_session(
                db,
                session_id,
                reason=RevocationReason.TERMINATED.value,
                now=now,
                user_id=user_id,
                listed_only=True,
                idle_before=idle_cutoff(now),
            )
            if not revoked:
                db.rollback()
                raise SessionNotFoundError()
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Terminating session %s failed: %s", session_id, exc)
            raise StoreUnavailableError() from exc

        SESSIONS_REVOKED.labels(RevocationReason.TERMINATED.value).inc()
        logger.info("Session %s terminated for user %s", session_id, user_id)

    def terminate_all(
        self,
        db: Session,
        user_id: int,
        keep_session_id: Optional[str] = None,
    ) -> int:
        """
        Revoke every session of the user that ``list_sessions`` would show

        Args:
            keep_session_id: Lineage to leave untouched, usually the caller's own

        Returns:
            Number of sessions revoked
        """
        try:
            now = utcnow()
            count = self.store.revoke_user_sessions(
                db,
                user_id,
                reason=RevocationReason.TERMINATED_ALL.value,
                now=now,
                keep_session_id=keep_session_id,
                listed_only=True,
                idle_before=idle_cutoff(now),
            )
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Terminating all sessions failed for user %s: %s", user_id, exc)
            raise StoreUnavailableError() from exc

        if count:
            SESSIONS_REVOKED.labels(RevocationReason.TERMINATED_ALL.value).inc(count)
        logger.info(
            "All sessions (%d) terminated for user %s (kept: %s)",
            count,
            user_id,
            keep_session_id or "none",
        )
        return count


session_registry = SessionRegistry()
