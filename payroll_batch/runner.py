"""
PayrollBatchRunner -- parallel map of the payroll calculation over workers.

Contract:
    ``run(bundles)`` calculates every worker's bundle with a
    ``ThreadPoolExecutor`` and returns one ``BatchRunResult`` holding a
    ``BatchItemResult`` per bundle, in submission order.

Architecture: payroll_batch.  Imports from payroll_batch.domain,
    payroll_engines and payroll_kernel.  Nothing in the kernel or the
    engines imports from payroll_batch.

Invariants enforced:
    - Per-worker isolation: MalformedInputError and rate-data errors are
      recorded on that worker's item and the run continues.
    - Halt on corrupt tables: an error with ``halts_batch`` set
      (TaxTableCorruptError) stops the run.  Workers
      not yet started are reported HALTED and the error is re-raised
      (unless ``raise_on_halt=False``).
    - Cooperative cancellation: ``cancel()`` is checked before each worker
      starts; a worker already calculating always completes, so no
      calculation is ever half-applied.
    - YTD snapshots are never advanced here; accepting calculations and
      persisting YTD is the caller's job.
    - All timestamps come from the injected Clock.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Sequence
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor
from uuid import uuid4

from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.dtos import PayrollTables
from payroll_kernel.exceptions import PayrollEngineError
from payroll_kernel.logging_config import LogContext, get_logger
from payroll_engines.composer import EngineRules, PayrollInput, calculate_payroll
from payroll_engines.wages import WageRateTable

from payroll_batch.domain.types import (
    BatchItemResult,
    BatchItemStatus,
    BatchJobStatus,
    BatchRunResult,
)

logger = get_logger("batch.runner")


class PayrollBatchRunner:
    """Embarrassingly parallel payroll run over many workers.

    Contract:
        - ``run()`` executes one batch and returns its result.
        - ``cancel()`` abandons the workers of the current run that have
          not started yet.

    Non-goals:
        - Does NOT persist calculations or YTD snapshots.
        - Does NOT retry: calculations are deterministic, so a retry with
          the same input fails the same way.
    """

    def __init__(
        self,
        tables: PayrollTables,
        rules: EngineRules | None = None,
        *,
        max_workers: int = 1,
        per_worker_timeout: float | None = None,
        clock: Clock | None = None,
    ):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        if per_worker_timeout is not None and per_worker_timeout <= 0:
            raise ValueError("per_worker_timeout must be positive")

        self._tables = tables
        self._rules = rules or EngineRules()
        self._max_workers = max_workers
        self._per_worker_timeout = per_worker_timeout
        self._clock = clock or SystemClock()
        # Built once per runner; a key with overlapping rates fails only its workers
        self._rate_table = WageRateTable(tables.wage_rates)
        self._cancel_event = threading.Event()
        self._halt_event = threading.Event()
        self._halt_error: PayrollEngineError | None = None
        self._halt_lock = threading.Lock()
        self.last_result: BatchRunResult | None = None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def cancel(self) -> None:
        """Abandon every worker of the current run that has not started."""
        self._cancel_event.set()
        logger.info("payroll_batch_cancel_requested")

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_event.is_set()

    def run(
        self,
        bundles: Sequence[PayrollInput],
        *,
        batch_id: str | None = None,
        raise_on_halt: bool = True,
    ) -> BatchRunResult:
        """Calculate every bundle and collect the per-worker outcomes.

        Raises:
            PayrollEngineError: a worker raised an error flagged
                ``halts_batch`` (TaxTableCorruptError) and
                ``raise_on_halt`` is True.  ``last_result`` still holds
                the HALTED run result.
        """
        batch_id = batch_id or str(uuid4())
        self._cancel_event.clear()
        self._halt_event.clear()
        self._halt_error = None

        started_at = self._clock.now()
        start_time = time.monotonic()

        with LogContext.bind(batch_id=batch_id):
            logger.info("payroll_batch_started", extra={
                "worker_count": len(bundles),
                "max_workers": self._max_workers,
                "per_worker_timeout": self._per_worker_timeout,
                "tax_year": self._tables.tax_year,
            })

            results: list[BatchItemResult] = []
            executor = ThreadPoolExecutor(
                max_workers=self._max_workers,
                thread_name_prefix="payroll-batch",
            )
            try:
                futures = [
                    executor.submit(self._process, index, bundle, batch_id)
                    for index, bundle in enumerate(bundles)
                ]
                for index, (bundle, future) in enumerate(zip(bundles, futures)):
                    results.append(self._collect(index, bundle, future))
                    if self._halt_event.is_set() or self._cancel_event.is_set():
                        for pending in futures[index + 1:]:
                            pending.cancel()
            finally:
                executor.shutdown(wait=False, cancel_futures=True)

            result = BatchRunResult(
                batch_id=batch_id,
                status=self._final_status(results),
                item_results=tuple(results),
                started_at=started_at,
                completed_at=self._clock.now(),
                duration_ms=int((time.monotonic() - start_time) * 1000),
                halt_reason=str(self._halt_error) if self._halt_error else None,
            )
            self.last_result = result

            logger.info("payroll_batch_completed", extra={
                "status": result.status.value,
                "total": result.total_items,
                "succeeded": result.succeeded,
                "failed": result.failed,
                "duration_ms": result.duration_ms,
            })

            if result.status == BatchJobStatus.HALTED:
                logger.critical("payroll_batch_halted", extra={
                    "reason": result.halt_reason,
                })
                if raise_on_halt and self._halt_error is not None:
                    raise self._halt_error

        return result

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _process(
        self, index: int, bundle: PayrollInput, batch_id: str,
    ) -> BatchItemResult:
        """Run one worker's calculation (executes on a pool thread)."""
        if self._halt_event.is_set():
            return BatchItemResult(index, bundle.worker_id, BatchItemStatus.HALTED)
        if self._cancel_event.is_set():
            return BatchItemResult(index, bundle.worker_id, BatchItemStatus.CANCELLED)

        item_start = time.monotonic()
        with LogContext.bind(batch_id=batch_id):
            try:
                calculation = calculate_payroll(
                    bundle=bundle,
                    tables=self._tables,
                    rules=self._rules,
                    rate_table=self._rate_table,
                )
            except PayrollEngineError as exc:
                if exc.halts_batch:
                    with self._halt_lock:
                        if self._halt_error is None:
                            self._halt_error = exc
                    self._halt_event.set()
                    return self._failure(index, bundle, exc.code, str(exc), item_start)
                logger.warning("payroll_worker_failed", extra={
                    "worker_id": bundle.worker_id,
                    "error_code": exc.code,
                })
                return self._failure(index, bundle, exc.code, str(exc), item_start)
            except Exception as exc:
                logger.exception("payroll_worker_unhandled_exception", extra={
                    "worker_id": bundle.worker_id,
                })
                return self._failure(
                    index, bundle, "UNHANDLED_EXCEPTION", str(exc), item_start,
                )

        return BatchItemResult(
            item_index=index,
            worker_id=bundle.worker_id,
            status=BatchItemStatus.SUCCEEDED,
            calculation=calculation,
            duration_ms=int((time.monotonic() - item_start) * 1000),
        )

    @staticmethod
    def _failure(
        index: int,
        bundle: PayrollInput,
        code: str,
        message: str,
        item_start: float,
    ) -> BatchItemResult:
        return BatchItemResult(
            item_index=index,
            worker_id=bundle.worker_id,
            status=BatchItemStatus.FAILED,
            error_code=code,
            error_message=message,
            duration_ms=int((time.monotonic() - item_start) * 1000),
        )

    def _collect(
        self, index: int, bundle: PayrollInput, future: Future,
    ) -> BatchItemResult:
        try:
            return future.result(timeout=self._per_worker_timeout)
        except CancelledError:
            status = (
                BatchItemStatus.HALTED if self._halt_event.is_set()
                else BatchItemStatus.CANCELLED
            )
            return BatchItemResult(index, bundle.worker_id, status)
        except TimeoutError:
            future.cancel()
            logger.warning("payroll_worker_timed_out", extra={
                "worker_id": bundle.worker_id,
                "timeout_seconds": self._per_worker_timeout,
            })
            return BatchItemResult(
                item_index=index,
                worker_id=bundle.worker_id,
                status=BatchItemStatus.TIMED_OUT,
                error_code="WORKER_TIMEOUT",
                error_message=(
                    f"no result within {self._per_worker_timeout} seconds"
                ),
            )

    def _final_status(self, results: list[BatchItemResult]) -> BatchJobStatus:
        if self._halt_event.is_set():
            return BatchJobStatus.HALTED
        if any(r.status == BatchItemStatus.CANCELLED for r in results):
            return BatchJobStatus.CANCELLED
        succeeded = sum(1 for r in results if r.succeeded)
        if succeeded == len(results):
            return BatchJobStatus.COMPLETED
        if succeeded == 0:
            return BatchJobStatus.FAILED
        return BatchJobStatus.PARTIALLY_COMPLETED
