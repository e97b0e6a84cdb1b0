# app/models/email_log.py
"""
Email send log.
One append-only row per recipient outcome; authoritative when
reconciling campaign counters.
"""
from datetime import datetime
from sqlalchemy import Column, String, Text, Integer, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from app.models.base import BaseModel


class EmailLogStatus:
    SENT = "sent"
    FAILED = "failed"


class EmailLog(BaseModel):
    __tablename__ = "email_logs"

    campaign_id = Column(Integer, ForeignKey("email_campaigns.id", ondelete="CASCADE"), index=True, nullable=False)
    recipient_email = Column(String(320), index=True, nullable=False)
    recipient_name = Column(String(255), nullable=True)

    status = Column(String(20), index=True, nullable=False)  # 'sent' or 'failed'
    message_id = Column(String(255), nullable=True)
    transport = Column(String(50), nullable=True)  # sender strategy that delivered
    attempts = Column(Integer, default=1, nullable=False)
    error_message = Column(Text, nullable=True)
    sent_at = Column(DateTime, default=datetime.utcnow, index=True, nullable=False)

    campaign = relationship("Campaign", back_populates="logs")

    def __repr__(self):
        return f"<EmailLog {self.status} to {self.recipient_email}>"
