from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, Column, String, UniqueConstraint
from sqlalchemy.orm import relationship

from models.base_model import Base, BaseModel, UTCDateTime


class User(BaseModel, Base):
    """
    Account record.

    A user holds a password hash, an OAuth link, or both (linked account).
    Verification and reset tokens are independent, single-use, and cleared
    as soon as they are consumed.
    """
    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("oauth_provider", "oauth_id", name="unique_oauth_provider_id"),
        CheckConstraint(
            "password_hash IS NOT NULL OR (oauth_provider IS NOT NULL AND oauth_id IS NOT NULL)",
            name="user_has_credential",
        ),
    )

    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=True)
    name = Column(String(255), nullable=False)
    phone = Column(String(64), nullable=True)
    avatar_url = Column(String(1024), nullable=True)

    oauth_provider = Column(String(50), nullable=True)
    oauth_id = Column(String(255), nullable=True)

    email_verified = Column(Boolean, nullable=False, default=False)
    verification_token = Column(String(255), nullable=True, index=True)
    verification_token_expires_at = Column(UTCDateTime, nullable=True)
    reset_password_token = Column(String(255), nullable=True, index=True)
    reset_password_token_expires_at = Column(UTCDateTime, nullable=True)

    refresh_tokens = relationship(
        "RefreshToken",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    avatar = relationship(
        "Avatar",
        back_populates="user",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def password(self):
        raise AttributeError("Password: Write-only field")

    @property
    def is_oauth_user(self) -> bool:
        return bool(self.oauth_provider and self.oauth_id)

    @property
    def has_password(self) -> bool:
        return bool(self.password_hash)

    def set_verification_token(self, token: str, expires_at: datetime):
        self.verification_token = token
        self.verification_token_expires_at = expires_at

    def clear_verification_token(self):
        self.verification_token = None
        self.verification_token_expires_at = None

    def set_reset_token(self, token: str, expires_at: datetime):
        self.reset_password_token = token
        self.reset_password_token_expires_at = expires_at

    def clear_reset_token(self):
        self.reset_password_token = None
        self.reset_password_token_expires_at = None

    def link_oauth(self, provider: str, oauth_id: str, avatar_url: Optional[str] = None):
        """Attach an external identity; keep an existing avatar."""
        self.oauth_provider = provider
        self.oauth_id = oauth_id
        if not self.avatar_url and avatar_url:
            self.avatar_url = avatar_url

    def __repr__(self):
        return f"<User id={self.id} email_verified={self.email_verified}>"
