"""Audit trail of session lifecycle events"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, Index
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from authsessions.core.database import Base


class AuditEvent(Base):
    """
    One login, rotation failure, reuse or termination event

    ``session_id`` is not a foreign key: failed logins have no lineage, and
    the trail must outlive retention cleanup of ``auth_sessions``.
    """

    __tablename__ = "audit_events"

    id = Column(Integer, primary_key=True)
    action = Column(String(64), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    session_id = Column(String(36), nullable=True)
    ip_address = Column(String(64), nullable=True)
    details_json = Column(Text, nullable=False, default="{}")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    user = relationship("User")

    __table_args__ = (
        Index("idx_audit_events_session_created", "session_id", "created_at"),
        Index("idx_audit_events_user_created", "user_id", "created_at"),
        Index("idx_audit_events_action", "action"),
    )

    def __repr__(self):
        return f"<AuditEvent(action='{self.action}', user_id={self.user_id}, session_id='{self.session_id}')>"
