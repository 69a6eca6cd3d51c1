"""Database models"""

from authsessions.models.user import User
from authsessions.models.session import AuthSession, TokenHistoryEntry, SessionState, RevocationReason
from authsessions.models.audit import AuditEvent

__all__ = ["User", "AuthSession", "TokenHistoryEntry", "SessionState", "RevocationReason", "AuditEvent"]
