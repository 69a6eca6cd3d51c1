"""Audit event schemas."""

from typing import Dict, Optional

from pydantic import BaseModel, Field


class AuditDetails(BaseModel):
    """Structured audit metadata with an explicit field set.

    Anything that does not fit a named field goes into ``extensions`` as
    string pairs.
    """

    session_id: Optional[str] = None
    email: Optional[str] = None
    reason: Optional[str] = None
    count: Optional[int] = None
    preserved_current: Optional[bool] = None
    remember_me: Optional[bool] = None
    device: Optional[str] = None
    extensions: Dict[str, str] = Field(default_factory=dict)

    def to_json(self) -> str:
        # session_id is stored in its own indexed column
        return self.model_dump_json(exclude={"session_id"}, exclude_none=True, exclude_defaults=True)
