"""
batch.py – One sync run over the inventory: eligibility, per-record
orchestration, batch cap, manual start row and run-level error reporting.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from .exceptions import RunError, ValidationError
from .models import Outcome, SyncResult, SyncStage
from .notify import Notifier
from .record_manager import RecordManager
from .sources import RecordSource
from .state import SyncState

logger = logging.getLogger(__name__)

FIRST_DATA_ROW = 2


@dataclass
class BatchReport:
    """Summary of one run; ``error`` is set when the run was aborted."""

    processed: int = 0
    results: list[SyncResult] = field(default_factory=list)
    next_start_row: Optional[int] = None
    error: Optional[RunError] = None

    def count(self, outcome: Outcome) -> int:
        return sum(1 for r in self.results if r.outcome is outcome)

    def summary(self) -> str:
        parts = [f"{self.processed} processed"]
        for outcome in Outcome:
            n = self.count(outcome)
            if n:
                parts.append(f"{n} {outcome.value}")
        if self.error:
            parts.append(f"aborted: {self.error}")
        return ", ".join(parts)


def run_batch(
    source: RecordSource,
    manager: RecordManager,
    state: SyncState,
    *,
    batch_size: int = 5,
    delay: float = 2.0,
    notifier: Optional[Notifier] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> BatchReport:
    """
    Synchronise up to *batch_size* eligible records in source order.

    With ``state.manual_start_row`` set, the run starts at that row, ignores
    modification timestamps and stores the row to resume from when the cap is
    reached (or clears it once the end of the data is reached).
    """
    report = BatchReport()
    try:
        records = source.read_records()
        manual = state.manual_start_row is not None
        start = 0
        if manual:
            if state.manual_start_row < FIRST_DATA_ROW:
                logger.warning(
                    "Invalid manual start row %s; starting from the first data row",
                    state.manual_start_row,
                )
            else:
                start = state.manual_start_row - FIRST_DATA_ROW
                logger.info("Manual run starting at row %s", state.manual_start_row)

        for record in records[start:]:
            result = manager.sync_record(record, manual=manual)
            if result.stage is SyncStage.INELIGIBLE:
                continue
            report.results.append(result)
            if isinstance(result.error, ValidationError):
                continue

            report.processed += 1
            if report.processed >= batch_size:
                logger.info("Batch limit of %d records reached", batch_size)
                if manual:
                    state.manual_start_row = record.row_number + 1
                    report.next_start_row = state.manual_start_row
                    logger.info("Next manual run will start at row %s", state.manual_start_row)
                break
            sleep(delay)
        else:
            if manual:
                logger.info("Manual run reached the end of the data; clearing the start row")
                state.manual_start_row = None

        if report.processed == 0:
            logger.info("No rows were processed in this run")
    except Exception as exc:
        logger.exception("Sync run aborted")
        error = RunError(f"Sync run aborted: {exc}")
        error.__cause__ = exc
        report.error = error
        if notifier is not None:
            notifier.notify(str(error))

    logger.info("Sync run finished: %s", report.summary())
    return report
