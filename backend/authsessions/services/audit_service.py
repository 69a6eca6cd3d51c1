"""Audit service for session lifecycle events."""

from __future__ import annotations

import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from authsessions.models.audit import AuditEvent
from authsessions.schemas.audit import AuditDetails

logger = logging.getLogger(__name__)


class AuditService:
    """Persist immutable audit trail entries.

    Writes are best-effort: they run in a separate ORM session on the caller's
    bind, after the caller has committed, and never raise.
    """

    @staticmethod
    def log_event(
        db: Session,
        *,
        action: str,
        user_id: Optional[int] = None,
        ip_address: Optional[str] = None,
        details: Optional[AuditDetails] = None,
    ) -> Optional[AuditEvent]:
        """Record ``action``; the lineage id is lifted out of ``details`` into its own column."""
        details = details or AuditDetails()
        event = AuditEvent(
            action=action,
            user_id=user_id,
            session_id=details.session_id,
            ip_address=ip_address,
            details_json=details.to_json(),
        )
        try:
            with Session(bind=db.get_bind(), expire_on_commit=False) as audit_db:
                audit_db.add(event)
                audit_db.commit()
        except SQLAlchemyError as exc:
            logger.error(
                "Audit write failed for action=%s user_id=%s session_id=%s: %s",
                action,
                user_id,
                details.session_id,
                exc,
            )
            return None
        return event

    @staticmethod
    def session_history(db: Session, session_id: str) -> List[AuditEvent]:
        """Audit events of one lineage, oldest first"""
        return list(
            db.execute(
                select(AuditEvent)
                .where(AuditEvent.session_id == session_id)
                .order_by(AuditEvent.created_at, AuditEvent.id)
            ).scalars()
        )


audit_service = AuditService()
