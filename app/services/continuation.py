# app/services/continuation.py
"""
Time-boxed campaign runs and their continuation.

CampaignRunner loops process_batch until the campaign finishes or the
run nears MAX_PROCESSING_TIME. It then checkpoints the campaign as
paused and, in production, schedules a continuation in a fresh
session after CONTINUATION_DELAY_MS.
"""
import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session

from app.core.config import (
    BATCH_PAUSE_MS, CONTINUATION_DELAY_MS, CONTINUATION_SAFETY_MARGIN_MS,
    IS_PRODUCTION, LEGACY_BATCH_SIZE, MAX_PROCESSING_TIME_MS,
)
from app.core.exceptions import CampaignBusy, CampaignNotFound
from app.db.session import get_db_session
from app.models.campaign import Campaign, CampaignStatus
from app.services.campaign_processor import CampaignProcessor

log = logging.getLogger("bulkmail.campaigns.continuation")


@dataclass
class RunnerConfig:
    max_processing_ms: int = MAX_PROCESSING_TIME_MS
    safety_margin_ms: int = CONTINUATION_SAFETY_MARGIN_MS
    batch_size: int = LEGACY_BATCH_SIZE
    batch_pause_ms: int = BATCH_PAUSE_MS
    continuation_delay_ms: int = CONTINUATION_DELAY_MS
    auto_continue: bool = IS_PRODUCTION

    @property
    def budget_seconds(self) -> float:
        return max(0, self.max_processing_ms - self.safety_margin_ms) / 1000.0


@dataclass
class RunResult:
    campaign_id: int
    status: str
    processed_count: int
    total_recipients: int
    batches: int
    paused: bool = False
    continuation_scheduled: bool = False


class ContinuationScheduler:
    """Runs a callback later on a daemon timer thread"""

    def __init__(self, timer_factory: Callable[..., Any] = threading.Timer):
        self._timer_factory = timer_factory

    def schedule(self, delay_seconds: float, callback: Callable[..., Any], *args):
        timer = self._timer_factory(delay_seconds, callback, args=args)
        timer.daemon = True
        timer.start()
        return timer


class CampaignRunner:
    """Whole-campaign processing with a time budget"""

    def __init__(
        self,
        processor: CampaignProcessor,
        config: Optional[RunnerConfig] = None,
        scheduler: Optional[ContinuationScheduler] = None,
        session_factory: Callable[[], Any] = get_db_session,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Any] = time.sleep
    ):
        self.processor = processor
        self.config = config or RunnerConfig()
        self.scheduler = scheduler or ContinuationScheduler()
        self.session_factory = session_factory
        self._clock = clock
        self._sleep = sleep

    def run(self, db: Session, campaign_id: int) -> RunResult:
        """
        Process batches until the campaign is terminal or the time budget
        is spent. Errors from process_batch propagate; the campaign is
        already marked failed where that applies.
        """
        started = self._clock()
        batches = 0
        log.info(f"🚀 Campaign {campaign_id}: run started (budget {self.config.budget_seconds:.0f}s)")

        while True:
            if batches and self._clock() - started >= self.config.budget_seconds:
                log.warning(f"⏰ Campaign {campaign_id}: time budget reached after {batches} batch(es)")
                scheduled = self.schedule_continuation(db, campaign_id)
                campaign = db.get(Campaign, campaign_id)
                return RunResult(
                    campaign_id=campaign_id,
                    status=CampaignStatus.PAUSED.value,
                    processed_count=campaign.processed_count,
                    total_recipients=campaign.total_recipients,
                    batches=batches,
                    paused=True,
                    continuation_scheduled=scheduled,
                )

            result = self.processor.process_batch(db, campaign_id, self.config.batch_size)
            batches += 1

            if result.completed:
                log.info(f"✅ Campaign {campaign_id}: run finished as {result.status} after {batches} batch(es)")
                return RunResult(
                    campaign_id=campaign_id,
                    status=result.status,
                    processed_count=result.processed_count,
                    total_recipients=result.total_recipients,
                    batches=batches,
                )

            if self.config.batch_pause_ms:
                self._sleep(self.config.batch_pause_ms / 1000.0)

    def schedule_continuation(self, db: Session, campaign_id: int) -> bool:
        """
        Checkpoint the campaign as paused; in production also schedule
        the continuation. Returns True when one was scheduled.
        """
        campaign = db.get(Campaign, campaign_id)
        if campaign is None:
            raise CampaignNotFound(campaign_id)

        campaign.status = CampaignStatus.PAUSED
        campaign.needs_continuation = True
        campaign.paused_at = datetime.utcnow()
        db.commit()
        log.info(f"⏸️ Campaign {campaign_id} paused at {campaign.processed_count}/{campaign.total_recipients}")

        if not self.config.auto_continue:
            log.info(f"ℹ️ Campaign {campaign_id}: automatic continuation disabled outside production")
            return False

        self.scheduler.schedule(
            self.config.continuation_delay_ms / 1000.0,
            self.resume_in_background,
            campaign_id
        )
        log.info(f"🔁 Campaign {campaign_id}: continuation scheduled in {self.config.continuation_delay_ms}ms")
        return True

    def claim_continuation(self, db: Session, campaign_id: int) -> bool:
        """Atomically clear needs_continuation on a paused campaign"""
        claimed = db.query(Campaign).filter(
            Campaign.id == campaign_id,
            Campaign.status == CampaignStatus.PAUSED,
            Campaign.needs_continuation == True  # noqa: E712
        ).update({Campaign.needs_continuation: False}, synchronize_session=False)
        db.commit()
        return claimed == 1

    def continue_campaign(self, db: Session, campaign_id: int) -> Optional[RunResult]:
        """Resume from the stored checkpoint; None if there was nothing to resume"""
        if not self.claim_continuation(db, campaign_id):
            log.info(f"⏭️ Campaign {campaign_id} does not need continuation")
            return None
        log.info(f"▶️ Continuing campaign {campaign_id}")
        return self.run(db, campaign_id)

    def resume_in_background(self, campaign_id: int):
        """Entry point for timers and background tasks; owns its session"""
        with self.session_factory() as db:
            try:
                self.continue_campaign(db, campaign_id)
            except CampaignBusy:
                db.rollback()
                log.warning(f"⚠️ Campaign {campaign_id} is being processed elsewhere, leaving the run to that caller")
            except Exception as e:
                db.rollback()
                log.exception(f"❌ Continuation of campaign {campaign_id} failed")
                self.processor.mark_failed(db, campaign_id, f"Continuation failed: {e}")
