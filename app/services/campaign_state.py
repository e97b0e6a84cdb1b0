# app/services/campaign_state.py
"""
Pure campaign progress arithmetic.

Nothing here touches the database; the processor loads a
CampaignProgress, applies a BatchOutcome and writes the result back.
"""
import logging
from dataclasses import dataclass, replace
from typing import Mapping

log = logging.getLogger("bulkmail.campaigns.state")


@dataclass(frozen=True)
class CampaignProgress:
    total: int
    processed: int = 0
    sent: int = 0
    failed: int = 0

    @property
    def remaining(self) -> int:
        return max(0, self.total - self.processed)

    @property
    def is_done(self) -> bool:
        return self.processed >= self.total

    @property
    def percentage(self) -> int:
        return progress_percentage(self.processed, self.total)


@dataclass(frozen=True)
class BatchOutcome:
    """What one batch did"""
    processed: int
    sent: int
    failed: int


def progress_percentage(processed: int, total: int) -> int:
    if total <= 0:
        return 100
    # Half-up rounding; builtin round() rounds half to even
    return min(100, int(processed * 100 / total + 0.5))


def advance(progress: CampaignProgress, outcome: BatchOutcome) -> CampaignProgress:
    """Apply a batch to the checkpoint. processed never passes total."""
    if outcome.processed < 0:
        raise ValueError("A batch cannot un-process recipients")
    if outcome.sent + outcome.failed != outcome.processed:
        raise ValueError(
            f"Batch outcome mismatch: {outcome.sent} sent + {outcome.failed} failed != {outcome.processed}"
        )
    processed = progress.processed + outcome.processed
    if processed > progress.total:
        raise ValueError(f"Batch would move processed_count past total ({processed} > {progress.total})")
    return replace(
        progress,
        processed=processed,
        sent=progress.sent + outcome.sent,
        failed=progress.failed + outcome.failed,
    )


def reconcile(progress: CampaignProgress, log_counts: Mapping[str, int]) -> CampaignProgress:
    """
    Final sent/failed counts: the larger of the running counter and the
    email log count for each.

    Recipients processed but missing from both sources count as failed.
    """
    sent = max(progress.sent, int(log_counts.get("sent", 0)))
    failed = max(progress.failed, int(log_counts.get("failed", 0)))

    if sent + failed < progress.processed:
        failed = progress.processed - sent
    elif sent + failed > progress.processed:
        log.warning(
            f"⚠️ Counters exceed processed_count ({sent} + {failed} > {progress.processed}); "
            "email log holds duplicate entries"
        )

    return replace(progress, sent=sent, failed=failed)
