"""
payroll_batch.domain.types -- Pure frozen dataclasses for batch payroll runs.

ZERO I/O.  Frozen dataclasses with enum status fields and tuples for
immutable collections.

Invariants enforced:
    - Every bundle submitted to a run has exactly one BatchItemResult.
    - A successful item carries its PayrollCalculation; any other item
      carries an error code (or none, when it never ran).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from payroll_engines.composer import PayrollCalculation


# =============================================================================
# Status enums
# =============================================================================


class BatchJobStatus(str, Enum):
    """Run-level outcome."""

    COMPLETED = "completed"  # Every worker calculated
    PARTIALLY_COMPLETED = "partially_completed"  # Some workers failed
    FAILED = "failed"  # No worker calculated
    CANCELLED = "cancelled"  # cancel() called before every worker ran
    HALTED = "halted"  # A corrupt tax table stopped the run


class BatchItemStatus(str, Enum):
    """Per-worker outcome within a run."""

    SUCCEEDED = "succeeded"  # PayrollCalculation produced
    FAILED = "failed"  # Malformed input or rate-data error
    TIMED_OUT = "timed_out"  # Exceeded the per-worker timeout
    CANCELLED = "cancelled"  # Not run because the batch was cancelled
    HALTED = "halted"  # Not run because the batch halted


# =============================================================================
# Result DTOs
# =============================================================================


@dataclass(frozen=True)
class BatchItemResult:
    """Outcome for one worker's bundle."""

    item_index: int  # 0-indexed position in the submitted bundles
    worker_id: str
    status: BatchItemStatus
    calculation: PayrollCalculation | None = None
    error_code: str | None = None
    error_message: str | None = None
    duration_ms: int = 0

    @property
    def succeeded(self) -> bool:
        return self.status == BatchItemStatus.SUCCEEDED


@dataclass(frozen=True)
class BatchRunResult:
    """Outcome of one ``PayrollBatchRunner.run`` call."""

    batch_id: str
    status: BatchJobStatus
    item_results: tuple[BatchItemResult, ...] = ()
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int = 0
    halt_reason: str | None = None

    @property
    def total_items(self) -> int:
        return len(self.item_results)

    def _count(self, status: BatchItemStatus) -> int:
        return sum(1 for r in self.item_results if r.status == status)

    @property
    def succeeded(self) -> int:
        return self._count(BatchItemStatus.SUCCEEDED)

    @property
    def failed(self) -> int:
        return self._count(BatchItemStatus.FAILED) + self._count(BatchItemStatus.TIMED_OUT)

    @property
    def calculations(self) -> tuple[PayrollCalculation, ...]:
        return tuple(
            r.calculation for r in self.item_results if r.calculation is not None
        )

    @property
    def errors(self) -> tuple[BatchItemResult, ...]:
        """Per-worker error list shown alongside the calculations."""
        return tuple(
            r for r in self.item_results
            if r.status in (BatchItemStatus.FAILED, BatchItemStatus.TIMED_OUT)
        )
