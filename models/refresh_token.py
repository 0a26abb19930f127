"""
RefreshToken model: one row per issued refresh token so sessions can be
revoked and rotated server-side.
Fields:
- token (unique, opaque string; the store never decodes it)
- user_id (String(36)) - FK to users.id
- expires_at (absolute)
- revoked_at (null while the token is live)
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import Column, String, ForeignKey
from sqlalchemy.orm import relationship

from models.base_model import BaseModel, Base, UTCDateTime, utcnow


class RefreshToken(BaseModel, Base):
    __tablename__ = "refresh_tokens"

    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token = Column(String(1024), nullable=False, unique=True)
    expires_at = Column(UTCDateTime, nullable=False, index=True)
    revoked_at = Column(UTCDateTime, nullable=True)

    user = relationship("User", back_populates="refresh_tokens")

    @property
    def is_revoked(self) -> bool:
        return self.revoked_at is not None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) >= self.expires_at

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        """Valid iff not revoked and not yet expired."""
        return not self.is_revoked and not self.is_expired(now)

    def revoke(self, now: Optional[datetime] = None):
        """Mark as revoked; an already revoked token keeps its first timestamp."""
        if self.revoked_at is None:
            self.revoked_at = now or utcnow()

    def __repr__(self):
        return f"<RefreshToken user_id={self.user_id} revoked={self.is_revoked}>"
