"""Session store - data access for session lineages and their token history.

No policy lives here. Every write that can race uses a conditional UPDATE and
reports whether it matched, so callers can decide what a lost race means.
Nothing in this module commits; transaction boundaries belong to the caller.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from authsessions.models.session import AuthSession, SessionState, TokenHistoryEntry
from authsessions.services.request_context import RequestContext


class SessionStore:
    """Repository over ``auth_sessions`` and ``session_token_history``"""

    @staticmethod
    def create_session(
        db: Session,
        *,
        user_id: int,
        token_hash: str,
        remember_me: bool,
        expires_at: datetime,
        context: RequestContext,
        now: datetime,
    ) -> AuthSession:
        """Insert a new active lineage together with its first live history entry"""
        session = AuthSession(
            user_id=user_id,
            current_token_hash=token_hash,
            state=SessionState.ACTIVE.value,
            device=context.device,
            browser=context.browser,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
            remember_me=remember_me,
            created_at=now,
            last_activity_at=now,
            expires_at=expires_at,
        )
        db.add(session)
        db.flush()

        db.add(TokenHistoryEntry(session_id=session.id, token_hash=token_hash, issued_at=now))
        db.flush()
        return session

    @staticmethod
    def get_session(db: Session, session_id: str) -> Optional[AuthSession]:
        return db.get(AuthSession, session_id)

    @staticmethod
    def find_history_entry(db: Session, token_hash: str) -> Optional[TokenHistoryEntry]:
        return db.execute(
            select(TokenHistoryEntry).where(TokenHistoryEntry.token_hash == token_hash)
        ).scalar_one_or_none()

    @staticmethod
    def find_session_by_token_hash(db: Session, token_hash: str) -> Optional[AuthSession]:
        """Lineage that issued ``token_hash``, live or not"""
        entry = SessionStore.find_history_entry(db, token_hash)
        if entry is None:
            return None
        return SessionStore.get_session(db, entry.session_id)

    @staticmethod
    def live_entries(db: Session, session_id: str) -> List[TokenHistoryEntry]:
        return list(
            db.execute(
                select(TokenHistoryEntry).where(
                    TokenHistoryEntry.session_id == session_id,
                    TokenHistoryEntry.consumed_at.is_(None),
                )
            ).scalars()
        )

    @staticmethod
    def advance_lineage(
        db: Session,
        *,
        session_id: str,
        old_hash: str,
        new_hash: str,
        context: RequestContext,
        now: datetime,
    ) -> bool:
        """
        Replace the live secret of an active lineage

        The pointer swap is conditioned on ``old_hash`` still being current and
        the lineage still being active; the history consume is conditioned on
        the entry still being live. Either condition missing means another
        request got there first.

        Returns:
            True when the lineage advanced; False on a lost race, in which case
            the caller must roll back.
        """
        moved = db.execute(
            update(AuthSession)
            .where(
                AuthSession.id == session_id,
                AuthSession.current_token_hash == old_hash,
                AuthSession.state == SessionState.ACTIVE.value,
            )
            .values(
                current_token_hash=new_hash,
                last_activity_at=now,
                device=context.device,
                browser=context.browser,
                ip_address=context.ip_address,
                user_agent=context.user_agent,
            )
            .execution_options(synchronize_session=False)
        )
        if moved.rowcount != 1:
            return False

        consumed = db.execute(
            update(TokenHistoryEntry)
            .where(
                TokenHistoryEntry.token_hash == old_hash,
                TokenHistoryEntry.consumed_at.is_(None),
            )
            .values(consumed_at=now, superseded_by_hash=new_hash)
            .execution_options(synchronize_session=False)
        )
        if consumed.rowcount != 1:
            return False

        db.add(TokenHistoryEntry(session_id=session_id, token_hash=new_hash, issued_at=now))
        db.flush()
        return True

    @staticmethod
    def _consume_live_entries(db: Session, session_ids: Sequence[str], now: datetime) -> None:
        if not session_ids:
            return
        db.execute(
            update(TokenHistoryEntry)
            .where(
                TokenHistoryEntry.session_id.in_(list(session_ids)),
                TokenHistoryEntry.consumed_at.is_(None),
            )
            .values(consumed_at=now)
            .execution_options(synchronize_session=False)
        )

    @staticmethod
    def _listable_conditions(now: datetime, idle_before: Optional[datetime] = None) -> list:
        """Active, unexpired and, when ``idle_before`` is set, recently used"""
        conditions = [
            AuthSession.state == SessionState.ACTIVE.value,
            AuthSession.expires_at > now,
        ]
        if idle_before is not None:
            conditions.append(AuthSession.last_activity_at > idle_before)
        return conditions

    @staticmethod
    def revoke_session(
        db: Session,
        session_id: str,
        *,
        reason: str,
        now: datetime,
        user_id: Optional[int] = None,
        listed_only: bool = False,
        idle_before: Optional[datetime] = None,
    ) -> bool:
        """
        Move an active lineage to ``revoked`` and consume its live entry

        Args:
            session_id: Lineage to revoke
            reason: Stored in ``revoked_reason``
            now: Revocation timestamp
            user_id: When given, the lineage must also belong to this user
            listed_only: Only match a lineage ``list_active_sessions`` would show
            idle_before: Idle cutoff applied together with ``listed_only``

        Returns:
            True if this call performed the transition
        """
        if listed_only:
            conditions = SessionStore._listable_conditions(now, idle_before)
        else:
            conditions = [AuthSession.state == SessionState.ACTIVE.value]
        conditions.append(AuthSession.id == session_id)
        if user_id is not None:
            conditions.append(AuthSession.user_id == user_id)

        result = db.execute(
            update(AuthSession)
            .where(*conditions)
            .values(state=SessionState.REVOKED.value, revoked_at=now, revoked_reason=reason)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False

        SessionStore._consume_live_entries(db, [session_id], now)
        return True

    @staticmethod
    def revoke_user_sessions(
        db: Session,
        user_id: int,
        *,
        reason: str,
        now: datetime,
        keep_session_id: Optional[str] = None,
        listed_only: bool = False,
        idle_before: Optional[datetime] = None,
    ) -> int:
        """
        Revoke every active lineage of a user, optionally sparing one

        With ``listed_only`` expired and idle lineages are left for the
        rotation engine to revoke under their own reason, so the count matches
        what the session list showed.
        """
        if listed_only:
            conditions = SessionStore._listable_conditions(now, idle_before)
        else:
            conditions = [AuthSession.state == SessionState.ACTIVE.value]
        query = select(AuthSession.id).where(AuthSession.user_id == user_id, *conditions)
        if keep_session_id is not None:
            query = query.where(AuthSession.id != keep_session_id)
        session_ids = list(db.execute(query).scalars())
        if not session_ids:
            return 0

        result = db.execute(
            update(AuthSession)
            .where(
                AuthSession.id.in_(session_ids),
                AuthSession.state == SessionState.ACTIVE.value,
            )
            .values(state=SessionState.REVOKED.value, revoked_at=now, revoked_reason=reason)
            .execution_options(synchronize_session=False)
        )
        SessionStore._consume_live_entries(db, session_ids, now)
        return result.rowcount

    @staticmethod
    def list_active_sessions(
        db: Session,
        user_id: int,
        now: datetime,
        idle_before: Optional[datetime] = None,
    ) -> List[AuthSession]:
        """Active, unexpired, not idle lineages, most recently used first"""
        return list(
            db.execute(
                select(AuthSession)
                .where(AuthSession.user_id == user_id, *SessionStore._listable_conditions(now, idle_before))
                .order_by(AuthSession.last_activity_at.desc(), AuthSession.created_at.desc())
            ).scalars()
        )


session_store = SessionStore()
