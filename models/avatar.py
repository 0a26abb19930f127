from sqlalchemy import Column, String, ForeignKey
from sqlalchemy.orm import relationship

from models.base_model import Base, BaseModel


class Avatar(BaseModel, Base):
    """Uploaded profile image; storage_key is what the avatar storage deletes by."""
    __tablename__ = "avatars"

    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True, index=True)
    storage_key = Column(String(255), nullable=False)
    url = Column(String(1024), nullable=False)

    user = relationship("User", back_populates="avatar")

    def __repr__(self):
        return f"<Avatar user_id={self.user_id} key={self.storage_key}>"
