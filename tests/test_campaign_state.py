# tests/test_campaign_state.py
import pytest

from app.services.campaign_state import (
    BatchOutcome, CampaignProgress, advance, progress_percentage, reconcile,
)


class TestAdvance:

    def test_adds_batch_to_checkpoint(self):
        progress = advance(CampaignProgress(total=5), BatchOutcome(processed=3, sent=2, failed=1))

        assert (progress.processed, progress.sent, progress.failed) == (3, 2, 1)
        assert progress.remaining == 2
        assert not progress.is_done

    def test_cannot_pass_total(self):
        with pytest.raises(ValueError):
            advance(CampaignProgress(total=5, processed=4), BatchOutcome(processed=2, sent=2, failed=0))

    def test_outcome_must_add_up(self):
        with pytest.raises(ValueError):
            advance(CampaignProgress(total=5), BatchOutcome(processed=3, sent=1, failed=1))


class TestProgressPercentage:

    def test_rounds_half_up(self):
        assert progress_percentage(1, 8) == 13
        assert progress_percentage(1, 3) == 33
        assert progress_percentage(3, 5) == 60

    def test_empty_campaign_is_complete(self):
        assert progress_percentage(0, 0) == 100


class TestReconcile:

    def test_takes_maximum_of_counter_and_log(self):
        progress = CampaignProgress(total=5, processed=5, sent=3, failed=1)

        final = reconcile(progress, {"sent": 4, "failed": 1})

        assert (final.sent, final.failed) == (4, 1)

    def test_missing_outcomes_count_as_failed(self):
        progress = CampaignProgress(total=5, processed=5, sent=3, failed=0)

        final = reconcile(progress, {"sent": 2})

        assert (final.sent, final.failed) == (3, 2)
        assert final.sent + final.failed == final.processed
