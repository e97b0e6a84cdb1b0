# app/services/campaign_mailer.py
"""
Delivers one campaign email to one recipient and records the outcome.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from app.core.exceptions import SendFailure
from app.models.campaign import Campaign
from app.models.email_log import EmailLog, EmailLogStatus
from app.services.mail_transport import MailTransport
from app.services.personalization import compose_message
from app.services.recipient_source import RecipientRecord
from app.services.throttle import RetryExhausted, RetryPolicy

log = logging.getLogger("bulkmail.campaigns.mailer")


@dataclass
class DeliveryResult:
    recipient: str
    success: bool
    attempts: int
    message_id: Optional[str] = None
    transport: Optional[str] = None
    error: Optional[str] = None


class CampaignMailer:
    """
    Personalize, send with retry, then append exactly one email log row.

    Any error raised by the transport is treated as a failed attempt so
    the log entry is always written before control returns.
    """

    def __init__(self, retry_policy: Optional[RetryPolicy] = None):
        self.retry_policy = retry_policy or RetryPolicy()

    def deliver(
        self,
        db: Session,
        campaign: Campaign,
        recipient: RecipientRecord,
        transport: MailTransport
    ) -> DeliveryResult:
        try:
            message = compose_message(campaign.sender_email, recipient, campaign.subject, campaign.body)
        except Exception as e:
            log.error(f"❌ Could not compose message for {recipient.email}: {e}")
            result = DeliveryResult(recipient.email, False, attempts=0, error=f"Message composition failed: {e}")
        else:
            try:
                sent, attempts = self.retry_policy.run(
                    lambda: transport.send(message),
                    label=recipient.email
                )
                result = DeliveryResult(
                    recipient.email, True, attempts,
                    message_id=sent.message_id,
                    transport=sent.transport
                )
            except RetryExhausted as e:
                reason = e.last_error.reason if isinstance(e.last_error, SendFailure) else str(e.last_error)
                result = DeliveryResult(recipient.email, False, e.attempts, error=reason)

        self._record(db, campaign, recipient, result)

        if result.success:
            log.info(f"✅ Campaign {campaign.id}: sent to {recipient.email} via {result.transport}")
        else:
            log.error(f"❌ Campaign {campaign.id}: failed to send to {recipient.email} after "
                      f"{result.attempts} attempt(s): {result.error}")
        return result

    def _record(self, db: Session, campaign: Campaign, recipient: RecipientRecord, result: DeliveryResult):
        entry = EmailLog(
            campaign_id=campaign.id,
            recipient_email=recipient.email,
            recipient_name=recipient.name or None,
            status=EmailLogStatus.SENT if result.success else EmailLogStatus.FAILED,
            message_id=result.message_id,
            transport=result.transport,
            attempts=max(1, result.attempts),
            error_message=result.error,
            sent_at=datetime.utcnow(),
        )
        db.add(entry)
        db.commit()
