# tests/test_continuation.py
from collections import Counter

import pytest

from app.core.exceptions import CampaignNotFound, NoEmailColumn
from app.models.campaign import Campaign, CampaignStatus
from app.models.email_log import EmailLog
from app.services.campaign_processor import _campaign_lock
from app.services.continuation import CampaignRunner, ContinuationScheduler, RunnerConfig
from tests.conftest import make_recipients


class RecordingScheduler:
    def __init__(self):
        self.calls = []

    def schedule(self, delay_seconds, callback, *args):
        self.calls.append((delay_seconds, callback, args))


class FakeTimer:
    def __init__(self, interval, function, args=()):
        self.interval = interval
        self.function = function
        self.args = args
        self.daemon = False
        self.started = False

    def start(self):
        self.started = True


def runner_config(**overrides):
    values = dict(
        max_processing_ms=600000,
        safety_margin_ms=0,
        batch_size=5,
        batch_pause_ms=0,
        continuation_delay_ms=1000,
        auto_continue=False,
    )
    values.update(overrides)
    return RunnerConfig(**values)


class TestPauseAndResume:

    def test_resume_continues_from_checkpoint_without_duplicates(self, db, make_campaign, build_processor, clock):
        processor, source, transport = build_processor(recipients=make_recipients(20), batch_size=7)
        runner = CampaignRunner(processor, runner_config(), RecordingScheduler(),
                                clock=clock.monotonic, sleep=clock.sleep)
        campaign = make_campaign()

        processor.process_batch(db, campaign.id)
        assert runner.schedule_continuation(db, campaign.id) is False

        db.refresh(campaign)
        assert campaign.status == CampaignStatus.PAUSED
        assert campaign.needs_continuation is True
        assert campaign.paused_at is not None
        assert campaign.processed_count == 7

        result = runner.continue_campaign(db, campaign.id)

        assert result.status == "completed"
        assert result.processed_count == 20
        assert result.batches == 3
        emails = [row.recipient_email for row in db.query(EmailLog).filter(EmailLog.campaign_id == campaign.id)]
        assert len(emails) == 20
        assert all(count == 1 for count in Counter(emails).values())
        assert transport.delivered_to == [f"r{i}@example.com" for i in range(1, 21)]
        assert source.fetches == 1
        db.refresh(campaign)
        assert campaign.resumed_at is not None
        assert campaign.needs_continuation is False
        assert (campaign.sent_count, campaign.failed_count) == (20, 0)

    def test_run_pauses_when_time_budget_is_spent(self, db, make_campaign, build_processor, clock):
        processor, _, _ = build_processor(recipients=make_recipients(10), interval=2.0)
        runner = CampaignRunner(processor, runner_config(max_processing_ms=3000, batch_size=2),
                                RecordingScheduler(), clock=clock.monotonic, sleep=clock.sleep)
        campaign = make_campaign()

        result = runner.run(db, campaign.id)

        # Each batch of two spends one 2s gap between its sends
        assert result.paused is True
        assert result.batches == 2
        assert result.processed_count == 4
        assert result.continuation_scheduled is False
        db.refresh(campaign)
        assert campaign.status == CampaignStatus.PAUSED
        assert campaign.needs_continuation is True

    def test_run_always_makes_progress(self, db, make_campaign, build_processor, clock):
        processor, _, _ = build_processor(recipients=make_recipients(4))
        runner = CampaignRunner(processor, runner_config(max_processing_ms=0, batch_size=2),
                                RecordingScheduler(), clock=clock.monotonic, sleep=clock.sleep)
        campaign = make_campaign()

        result = runner.run(db, campaign.id)

        assert result.batches == 1
        assert result.processed_count == 2

    def test_run_to_completion_with_pauses_between_batches(self, db, make_campaign, build_processor, clock):
        processor, _, _ = build_processor(recipients=make_recipients(5), interval=0)
        runner = CampaignRunner(processor, runner_config(batch_size=2, batch_pause_ms=500),
                                RecordingScheduler(), clock=clock.monotonic, sleep=clock.sleep)
        campaign = make_campaign()

        result = runner.run(db, campaign.id)

        assert result.status == "completed"
        assert result.batches == 3
        assert clock.sleeps == [0.5, 0.5]


class TestContinuationScheduling:

    def test_production_schedules_background_resume(self, db, make_campaign, build_processor):
        processor, _, _ = build_processor()
        scheduler = RecordingScheduler()
        runner = CampaignRunner(processor, runner_config(auto_continue=True), scheduler)
        campaign = make_campaign(status=CampaignStatus.RUNNING)

        assert runner.schedule_continuation(db, campaign.id) is True

        delay, callback, args = scheduler.calls[0]
        assert delay == 1.0
        assert callback == runner.resume_in_background
        assert args == (campaign.id,)

    def test_development_only_pauses(self, db, make_campaign, build_processor):
        processor, _, _ = build_processor()
        scheduler = RecordingScheduler()
        runner = CampaignRunner(processor, runner_config(auto_continue=False), scheduler)
        campaign = make_campaign(status=CampaignStatus.RUNNING)

        runner.schedule_continuation(db, campaign.id)

        assert scheduler.calls == []

    def test_unknown_campaign(self, db, build_processor):
        processor, _, _ = build_processor()
        runner = CampaignRunner(processor, runner_config(), RecordingScheduler())

        with pytest.raises(CampaignNotFound):
            runner.schedule_continuation(db, 424242)

    def test_timer_thread_is_daemon(self):
        timers = []

        def factory(*args, **kwargs):
            timers.append(FakeTimer(*args, **kwargs))
            return timers[-1]

        ContinuationScheduler(timer_factory=factory).schedule(1.5, print, 7)

        assert timers[0].interval == 1.5
        assert timers[0].args == (7,)
        assert timers[0].daemon is True
        assert timers[0].started is True


class TestContinueCampaign:

    def test_noop_unless_paused_and_flagged(self, db, make_campaign, build_processor):
        processor, source, _ = build_processor()
        runner = CampaignRunner(processor, runner_config(), RecordingScheduler())
        running = make_campaign(status=CampaignStatus.RUNNING, needs_continuation=True)
        paused = make_campaign(status=CampaignStatus.PAUSED, needs_continuation=False)

        assert runner.continue_campaign(db, running.id) is None
        assert runner.continue_campaign(db, paused.id) is None
        assert source.fetches == 0

    def test_claim_is_single_use(self, db, make_campaign, build_processor):
        processor, _, _ = build_processor()
        runner = CampaignRunner(processor, runner_config(), RecordingScheduler())
        campaign = make_campaign(status=CampaignStatus.PAUSED, needs_continuation=True)

        assert runner.claim_continuation(db, campaign.id) is True
        assert runner.claim_continuation(db, campaign.id) is False


class TestResumeInBackground:

    def test_resumes_in_its_own_session(self, db, make_campaign, build_processor, session_factory, clock):
        processor, _, _ = build_processor(recipients=make_recipients(3))
        runner = CampaignRunner(processor, runner_config(), RecordingScheduler(),
                                session_factory=session_factory, clock=clock.monotonic, sleep=clock.sleep)
        campaign = make_campaign(status=CampaignStatus.PAUSED, needs_continuation=True)

        runner.resume_in_background(campaign.id)

        db.expire_all()
        refreshed = db.get(Campaign, campaign.id)
        assert refreshed.status == CampaignStatus.COMPLETED
        assert refreshed.processed_count == 3

    def test_failure_marks_campaign_failed(self, db, make_campaign, build_processor, session_factory):
        processor, _, _ = build_processor(source_error=NoEmailColumn(["phone"]))
        runner = CampaignRunner(processor, runner_config(), RecordingScheduler(), session_factory=session_factory)
        campaign = make_campaign(status=CampaignStatus.PAUSED, needs_continuation=True)

        runner.resume_in_background(campaign.id)

        db.expire_all()
        refreshed = db.get(Campaign, campaign.id)
        assert refreshed.status == CampaignStatus.FAILED
        assert refreshed.error_message.startswith("Continuation failed:")
        assert refreshed.failed_at is not None

    def test_busy_campaign_is_left_to_the_running_batch(self, db, make_campaign, build_processor, session_factory):
        processor, source, transport = build_processor(recipients=make_recipients(3))
        runner = CampaignRunner(processor, runner_config(), RecordingScheduler(), session_factory=session_factory)
        campaign = make_campaign(status=CampaignStatus.PAUSED, needs_continuation=True)
        lock = _campaign_lock(campaign.id)
        lock.acquire()
        try:
            runner.resume_in_background(campaign.id)
        finally:
            lock.release()

        db.expire_all()
        refreshed = db.get(Campaign, campaign.id)
        assert refreshed.status == CampaignStatus.PAUSED
        assert refreshed.error_message is None
        assert refreshed.failed_at is None
        assert source.fetches == 0
        assert transport.opened == 0
