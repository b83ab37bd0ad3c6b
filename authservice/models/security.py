"""Security-related persistence models."""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from authservice.core.database import Base


class Authentication(Base):
    """Active refresh token; the token is redeemable while its row exists."""

    __tablename__ = "authentications"

    token = Column(String, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    user = relationship("User", back_populates="authentications")

    def __repr__(self):
        return f"<Authentication(user_id={self.user_id}, token='{self.token[:10]}...')>"
