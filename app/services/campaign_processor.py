# app/services/campaign_processor.py
"""
Campaign batch processor.

Each call to ``process_batch`` advances one campaign by at most one
bounded slice of recipients:

    load → (terminal? no-op) → snapshot recipients once → slice from
    processed_count → send with retry and throttling → persist checkpoint
    → finalize when nothing remains

The recipient snapshot is fetched on the first call only and never
re-read. ``processed_count`` is the checkpoint; it is written with a
compare-and-swap so two writers can never both advance the same slice.
"""
import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import EMAIL_BATCH_SIZE, EMAIL_DELAY_MS
from app.core.exceptions import (
    CampaignBusy, CampaignNotFound, CredentialsInvalid, CredentialsNotFound,
    RecipientSourceError,
)
from app.models.campaign import Campaign, CampaignStatus
from app.models.email_log import EmailLog, EmailLogStatus
from app.services.campaign_mailer import CampaignMailer, DeliveryResult
from app.services.campaign_state import (
    BatchOutcome, CampaignProgress, advance, progress_percentage, reconcile,
)
from app.services.mail_transport import GmailTransportFactory
from app.services.recipient_source import RecipientRecord, SheetsRecipientSource
from app.services.throttle import SendThrottle

log = logging.getLogger("bulkmail.campaigns.processor")

# One advisory lock per campaign id, shared by every processor in the process
_campaign_locks: Dict[int, threading.Lock] = {}
_campaign_locks_guard = threading.Lock()


def _campaign_lock(campaign_id: int) -> threading.Lock:
    with _campaign_locks_guard:
        return _campaign_locks.setdefault(campaign_id, threading.Lock())


@dataclass
class ProcessingConfig:
    batch_size: int = EMAIL_BATCH_SIZE
    send_interval_seconds: float = EMAIL_DELAY_MS / 1000.0

    @classmethod
    def from_settings(cls) -> "ProcessingConfig":
        return cls(
            batch_size=EMAIL_BATCH_SIZE,
            send_interval_seconds=EMAIL_DELAY_MS / 1000.0,
        )


@dataclass
class BatchResult:
    """Machine-checkable outcome of one process_batch call"""
    campaign_id: int
    completed: bool
    status: str
    processed_count: int
    total_recipients: int
    remaining_count: Optional[int] = None
    progress_percentage: Optional[int] = None
    sent: int = 0
    failed: int = 0
    success: bool = True
    message: Optional[str] = None
    deliveries: List[DeliveryResult] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "success": self.success,
            "completed": self.completed,
            "status": self.status,
            "processedCount": self.processed_count,
            "totalRecipients": self.total_recipients,
            "batchSent": self.sent,
            "batchFailed": self.failed,
        }
        if self.remaining_count is not None:
            data["remainingCount"] = self.remaining_count
        if self.progress_percentage is not None:
            data["progressPercentage"] = self.progress_percentage
        if self.message:
            data["message"] = self.message
        return data


def _status_value(status) -> str:
    return status.value if isinstance(status, CampaignStatus) else str(status)


class CampaignProcessor:
    """Drives campaigns through bounded, checkpointed batches"""

    def __init__(
        self,
        credential_service,
        recipient_source: Optional[SheetsRecipientSource] = None,
        transport_factory: Optional[GmailTransportFactory] = None,
        mailer: Optional[CampaignMailer] = None,
        config: Optional[ProcessingConfig] = None,
        throttle_factory: Optional[Callable[[float], SendThrottle]] = None
    ):
        self.credential_service = credential_service
        self.recipient_source = recipient_source or SheetsRecipientSource()
        self.transport_factory = transport_factory or GmailTransportFactory(credential_service)
        self.mailer = mailer or CampaignMailer()
        self.config = config or ProcessingConfig.from_settings()
        self.throttle_factory = throttle_factory or (lambda interval: SendThrottle(interval))

    # ────────────────────────────────────────────
    # Public API
    # ────────────────────────────────────────────

    def process_batch(self, db: Session, campaign_id: int, batch_size: Optional[int] = None) -> BatchResult:
        """
        Process the next slice of a campaign.

        Args:
            db: Database session
            campaign_id: Campaign to advance
            batch_size: Slice size (defaults to EMAIL_BATCH_SIZE)

        Returns:
            BatchResult; ``completed`` is True once the campaign is terminal

        Raises:
            CampaignNotFound: Unknown campaign
            CampaignBusy: Another batch holds this campaign
            RecipientSourceError: Recipient fetch failed (campaign untouched)
            Exception: Anything unexpected (campaign failed, error re-raised)
            TransportSetupFailure: Mail session could not be opened (campaign failed)
        """
        campaign = self._load(db, campaign_id)

        if campaign.is_terminal:
            log.info(f"⏭️ Campaign {campaign_id} already {_status_value(campaign.status)}, nothing to do")
            return self._terminal_result(campaign)

        lock = _campaign_lock(campaign_id)
        if not lock.acquire(blocking=False):
            raise CampaignBusy(f"Campaign {campaign_id} is already being processed")
        try:
            return self._run_batch(db, campaign_id, batch_size or self.config.batch_size)
        finally:
            lock.release()

    def finalize(self, db: Session, campaign_id: int) -> Campaign:
        """
        Reconcile counters against the email log and close the campaign.
        No-op for campaigns that are already terminal.
        """
        campaign = self._load(db, campaign_id)
        if campaign.is_terminal:
            return campaign

        counts = self.get_stats(db, campaign_id)
        progress = reconcile(
            CampaignProgress(
                total=campaign.total_recipients,
                processed=campaign.processed_count,
                sent=campaign.sent_count,
                failed=campaign.failed_count,
            ),
            counts
        )

        campaign.sent_count = progress.sent
        campaign.failed_count = progress.failed
        campaign.status = CampaignStatus.COMPLETED if progress.failed == 0 else CampaignStatus.COMPLETED_WITH_ERRORS
        campaign.progress_percentage = 100
        campaign.needs_continuation = False
        campaign.completed_at = datetime.utcnow()
        db.commit()
        db.refresh(campaign)

        log.info(
            f"🏁 Campaign {campaign_id} finalized: {_status_value(campaign.status)} "
            f"({progress.sent} sent, {progress.failed} failed of {progress.total})"
        )
        return campaign

    def get_stats(self, db: Session, campaign_id: int) -> Dict[str, int]:
        """Email log counts by status"""
        rows = db.query(EmailLog.status, func.count(EmailLog.id)).filter(
            EmailLog.campaign_id == campaign_id
        ).group_by(EmailLog.status).all()
        counts = {EmailLogStatus.SENT: 0, EmailLogStatus.FAILED: 0}
        counts.update({status: count for status, count in rows})
        return counts

    def mark_failed(self, db: Session, campaign_id: int, error_message: str):
        """Move a campaign to ``failed`` and record why"""
        try:
            campaign = db.get(Campaign, campaign_id)
            if campaign is None:
                log.warning(f"⚠️ Campaign {campaign_id} vanished before it could be marked failed")
                return
            campaign.status = CampaignStatus.FAILED
            campaign.error_message = error_message
            campaign.failed_at = datetime.utcnow()
            campaign.needs_continuation = False
            db.commit()
            log.error(f"💥 Campaign {campaign_id} failed: {error_message}")
        except SQLAlchemyError as e:
            db.rollback()
            log.critical(f"❌ Could not record failure of campaign {campaign_id}: {e}")

    # ────────────────────────────────────────────
    # Internals
    # ────────────────────────────────────────────

    def _load(self, db: Session, campaign_id: int) -> Campaign:
        campaign = db.get(Campaign, campaign_id)
        if campaign is None:
            raise CampaignNotFound(campaign_id)
        return campaign

    def _terminal_result(self, campaign: Campaign) -> BatchResult:
        return BatchResult(
            campaign_id=campaign.id,
            completed=True,
            status=_status_value(campaign.status),
            processed_count=campaign.processed_count,
            total_recipients=campaign.total_recipients,
            remaining_count=0,
            progress_percentage=campaign.progress_percentage,
            message="Campaign already completed",
        )

    def _run_batch(self, db: Session, campaign_id: int, batch_size: int) -> BatchResult:
        campaign = self._load(db, campaign_id)

        try:
            recipients = self._ensure_snapshot(db, campaign)
        except (RecipientSourceError, CredentialsNotFound, CredentialsInvalid) as e:
            db.rollback()
            log.warning(f"⚠️ Campaign {campaign_id}: recipients unavailable: {e}")
            raise
        except Exception as e:
            db.rollback()
            self.mark_failed(db, campaign_id, str(e))
            raise

        try:
            return self._send_slice(db, campaign, recipients, batch_size)
        except (CampaignNotFound, CampaignBusy):
            raise
        except Exception as e:
            db.rollback()
            self.mark_failed(db, campaign_id, str(e))
            raise

    def _ensure_snapshot(self, db: Session, campaign: Campaign) -> List[RecipientRecord]:
        """Return the cached recipients, fetching and caching them on the first call"""
        now = datetime.utcnow()

        if not campaign.has_snapshot:
            log.info(f"📥 Campaign {campaign.id}: fetching recipients from {campaign.google_sheet_url}")
            credentials = self.credential_service.google_credentials(db, campaign.user_id)
            records = self.recipient_source.fetch(campaign.google_sheet_url, credentials)

            campaign.recipients_data = [r.to_dict() for r in records]
            campaign.total_recipients = len(records)
            campaign.processed_count = 0
            campaign.sent_count = 0
            campaign.failed_count = 0
            campaign.progress_percentage = 0
            campaign.started_at = campaign.started_at or now
            log.info(f"👥 Campaign {campaign.id}: cached {len(records)} recipients")
        else:
            records = [RecipientRecord.from_dict(item) for item in campaign.recipients_data]

        if campaign.status == CampaignStatus.PAUSED:
            campaign.resumed_at = now
            log.info(f"▶️ Campaign {campaign.id} resumed at {campaign.processed_count}/{campaign.total_recipients}")
        if campaign.status != CampaignStatus.RUNNING:
            campaign.status = CampaignStatus.RUNNING
            campaign.started_at = campaign.started_at or now
        campaign.needs_continuation = False
        db.commit()
        db.refresh(campaign)
        return records

    def _send_slice(
        self,
        db: Session,
        campaign: Campaign,
        recipients: List[RecipientRecord],
        batch_size: int
    ) -> BatchResult:
        campaign_id = campaign.id
        start = campaign.processed_count
        total = campaign.total_recipients
        remaining = recipients[start:]

        if not remaining:
            campaign = self.finalize(db, campaign_id)
            return self._terminal_result(campaign)

        batch = remaining[:max(1, batch_size)]
        log.info(f"📦 Campaign {campaign_id}: batch of {len(batch)} starting at {start}/{total}")

        transport = self.transport_factory.open(db, campaign.user_id, campaign.sender_email)
        throttle = self.throttle_factory(self.config.send_interval_seconds)

        deliveries = []
        started = time.monotonic()
        for recipient in batch:
            throttle.wait()
            deliveries.append(self.mailer.deliver(db, campaign, recipient, transport))

        sent = sum(1 for d in deliveries if d.success)
        outcome = BatchOutcome(processed=len(batch), sent=sent, failed=len(batch) - sent)
        progress = self._persist(db, campaign_id, start, total, outcome)

        log.info(
            f"📊 Campaign {campaign_id}: batch done in {time.monotonic() - started:.1f}s "
            f"({outcome.sent} sent, {outcome.failed} failed) - {progress.processed}/{total} ({progress.percentage}%)"
        )

        if progress.is_done:
            campaign = self.finalize(db, campaign_id)
            result = self._terminal_result(campaign)
            result.message = "Campaign completed"
        else:
            result = BatchResult(
                campaign_id=campaign_id,
                completed=False,
                status=CampaignStatus.RUNNING.value,
                processed_count=progress.processed,
                total_recipients=total,
                remaining_count=progress.remaining,
                progress_percentage=progress.percentage,
            )
        result.sent = outcome.sent
        result.failed = outcome.failed
        result.deliveries = deliveries
        return result

    def _persist(self, db: Session, campaign_id: int, start: int, total: int, outcome: BatchOutcome) -> CampaignProgress:
        """Write the new checkpoint only if nobody else moved it since ``start``"""
        progress = advance(CampaignProgress(total=total, processed=start), outcome)

        updated = db.query(Campaign).filter(
            Campaign.id == campaign_id,
            Campaign.processed_count == start
        ).update({
            Campaign.processed_count: progress.processed,
            Campaign.sent_count: Campaign.sent_count + outcome.sent,
            Campaign.failed_count: Campaign.failed_count + outcome.failed,
            Campaign.progress_percentage: progress.percentage,
            Campaign.updated_at: datetime.utcnow(),
        }, synchronize_session=False)

        if updated == 0:
            db.rollback()
            if db.get(Campaign, campaign_id) is None:
                raise CampaignNotFound(campaign_id, message=f"Campaign {campaign_id} was deleted during processing")
            raise CampaignBusy(f"Campaign {campaign_id} checkpoint moved past {start} during this batch")

        db.commit()
        return progress
