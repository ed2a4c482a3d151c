"""
payroll_batch -- Batch payroll runs over many workers.

Maps the per-worker calculation over a pay period's bundles with a thread
pool, per-worker error isolation, cooperative cancellation, an optional
per-worker timeout, and a halt when a tax table proves corrupt.

Architecture:
    payroll_batch/ is a top-level package.  Nothing in payroll_kernel/,
    payroll_engines/ or payroll_config/ imports from payroll_batch.
"""

from payroll_batch.domain.types import (
    BatchItemResult,
    BatchItemStatus,
    BatchJobStatus,
    BatchRunResult,
)
from payroll_batch.runner import PayrollBatchRunner

__all__ = [
    "BatchItemResult",
    "BatchItemStatus",
    "BatchJobStatus",
    "BatchRunResult",
    "PayrollBatchRunner",
]
