"""Session lineage and refresh-token history models"""

import enum
import uuid

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Index, CheckConstraint
from sqlalchemy.orm import relationship

from authsessions.core.database import Base


class SessionState(str, enum.Enum):
    """Lineage state; rotation never changes it"""
    ACTIVE = "active"
    REVOKED = "revoked"


class RevocationReason(str, enum.Enum):
    TERMINATED = "terminated"
    TERMINATED_ALL = "terminated_all"
    REUSE_DETECTED = "reuse_detected"
    EXPIRED = "expired"
    IDLE_TIMEOUT = "idle_timeout"
    LOGOUT = "logout"
    USER_INACTIVE = "user_inactive"


class AuthSession(Base):
    """One login lineage. ``id`` is stable across every rotation."""

    __tablename__ = "auth_sessions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    current_token_hash = Column(String(64), unique=True, nullable=False)
    state = Column(String(16), default=SessionState.ACTIVE.value, nullable=False)
    device = Column(String(128), nullable=True)
    browser = Column(String(64), nullable=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(512), nullable=True)
    remember_me = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    last_activity_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    revoked_at = Column(DateTime(timezone=True), nullable=True)
    revoked_reason = Column(String(32), nullable=True)

    user = relationship("User", back_populates="sessions")
    token_history = relationship(
        "TokenHistoryEntry",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="TokenHistoryEntry.issued_at",
    )

    __table_args__ = (
        Index("idx_auth_sessions_user_state", "user_id", "state"),
        Index("idx_auth_sessions_last_activity", "last_activity_at"),
        CheckConstraint("state IN ('active', 'revoked')", name="chk_auth_session_state"),
    )

    @property
    def is_active(self) -> bool:
        return self.state == SessionState.ACTIVE.value

    def __repr__(self):
        return f"<AuthSession(id='{self.id}', user_id={self.user_id}, state='{self.state}')>"


class TokenHistoryEntry(Base):
    """Append-only record of every refresh secret issued for a lineage"""

    __tablename__ = "session_token_history"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(String(36), ForeignKey("auth_sessions.id", ondelete="CASCADE"), nullable=False)
    token_hash = Column(String(64), unique=True, nullable=False, index=True)
    issued_at = Column(DateTime(timezone=True), nullable=False)
    consumed_at = Column(DateTime(timezone=True), nullable=True)
    superseded_by_hash = Column(String(64), nullable=True)

    session = relationship("AuthSession", back_populates="token_history")

    __table_args__ = (
        Index("idx_token_history_session_live", "session_id", "consumed_at"),
    )

    @property
    def is_live(self) -> bool:
        return self.consumed_at is None

    def __repr__(self):
        return f"<TokenHistoryEntry(session_id='{self.session_id}', consumed={self.consumed_at is not None})>"
