# app/models/gmail_credential.py
"""
Gmail OAuth credentials per (user, mail account).
Tokens are stored encrypted; see app.core.security.
"""
from sqlalchemy import Column, String, Text, DateTime, Boolean, Integer, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from app.models.base import BaseModel


class GmailCredential(BaseModel):
    __tablename__ = "gmail_credentials"
    __table_args__ = (
        UniqueConstraint('user_id', 'email', name='uq_user_gmail_account'),
    )

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    email = Column(String(255), index=True, nullable=False)

    access_token = Column(Text, nullable=False)  # encrypted
    refresh_token = Column(Text, nullable=True)  # encrypted
    expires_at = Column(DateTime, nullable=True)
    scope = Column(Text, nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)

    user = relationship("User", back_populates="credentials")

    def __repr__(self):
        return f"<GmailCredential user_id={self.user_id} email={self.email} active={self.is_active}>"

    def to_dict(self, exclude=()):
        """Convert to dictionary without token material"""
        return super().to_dict(exclude=tuple(exclude) + ("access_token", "refresh_token"))
