# app/models/campaign.py
"""
Email campaign model.
One bulk-send job: templates, recipient source, cached recipient snapshot,
status and progress counters.
"""
import enum
from sqlalchemy import Column, String, Text, Integer, JSON, Boolean, DateTime, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import relationship
from app.models.base import BaseModel


class CampaignStatus(str, enum.Enum):
    """Campaign lifecycle states"""
    CREATED = "created"
    DRAFT = "draft"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({
    CampaignStatus.COMPLETED,
    CampaignStatus.COMPLETED_WITH_ERRORS,
    CampaignStatus.FAILED,
})


class Campaign(BaseModel):
    __tablename__ = "email_campaigns"

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    name = Column(String(255), nullable=False)
    subject = Column(Text, nullable=False)
    body = Column(Text, nullable=False)
    sender_email = Column(String(255), nullable=False)
    google_sheet_url = Column(Text, nullable=False)

    status = Column(
        SQLEnum(
            CampaignStatus,
            native_enum=False,
            length=32,
            values_callable=lambda statuses: [s.value for s in statuses],
        ),
        default=CampaignStatus.CREATED,
        index=True,
        nullable=False,
    )

    # Progress tracking
    total_recipients = Column(Integer, default=0, nullable=False)
    processed_count = Column(Integer, default=0, nullable=False)
    sent_count = Column(Integer, default=0, nullable=False)
    failed_count = Column(Integer, default=0, nullable=False)
    progress_percentage = Column(Integer, default=0, nullable=False)

    # Recipient snapshot, written once on the first batch
    recipients_data = Column(JSON, nullable=True)
    needs_continuation = Column(Boolean, default=False, nullable=False)

    # Lifecycle timestamps
    started_at = Column(DateTime, nullable=True)
    paused_at = Column(DateTime, nullable=True)
    resumed_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    failed_at = Column(DateTime, nullable=True)
    error_message = Column(Text, nullable=True)

    logs = relationship(
        "EmailLog",
        back_populates="campaign",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def has_snapshot(self) -> bool:
        return self.recipients_data is not None

    def __repr__(self):
        return f"<Campaign {self.id} '{self.name}' - {self.status}>"

    def to_dict(self, exclude=()):
        """Convert to dictionary; the recipient snapshot is left out"""
        data = super().to_dict(exclude=tuple(exclude) + ("recipients_data",))
        if isinstance(self.status, CampaignStatus):
            data["status"] = self.status.value
        return data
