"""
Tracking for bulk forecast runs.

Holds progress counters and the cancellation flag of each run so the
HTTP layer can poll and cancel while the worker pool is busy.
Runs live in process memory and expire after batch_run_ttl_minutes.
"""

import threading
import uuid
from datetime import datetime, timedelta
from typing import Optional
import structlog

from config import settings
from models.forecast import BatchProgress, BatchReport, BatchStatus
from exceptions import BatchRunNotFoundError

logger = structlog.get_logger(__name__)


class BatchRun:
    """
    State of one bulk run.

    Counters are updated from worker threads; every access goes
    through the lock.
    """

    def __init__(self, run_id: Optional[str] = None):
        self.run_id = run_id or str(uuid.uuid4())
        self.created_at = datetime.utcnow()
        self.finished_at: Optional[datetime] = None
        self.report: Optional[BatchReport] = None
        self.error: Optional[str] = None
        self._status = BatchStatus.PENDING
        self._completed = 0
        self._total = 0
        self._succeeded = 0
        self._failed = 0
        self._cancel = threading.Event()
        self._lock = threading.Lock()

    # ===================
    # CANCELLATION
    # ===================

    def cancel(self) -> None:
        """Stop scheduling new work; in-flight items still finish."""
        self._cancel.set()

    @property
    def cancel_requested(self) -> bool:
        return self._cancel.is_set()

    # ===================
    # PROGRESS
    # ===================

    def start(self, total: int) -> None:
        with self._lock:
            self._status = BatchStatus.RUNNING
            self._total = total

    def record(self, success: bool) -> tuple[int, int]:
        """Count one finished item. Returns (completed, total)."""
        with self._lock:
            self._completed += 1
            if success:
                self._succeeded += 1
            else:
                self._failed += 1
            return self._completed, self._total

    def finish(self, report: BatchReport) -> None:
        with self._lock:
            self.report = report
            self.finished_at = report.finished_at or datetime.utcnow()
            self._status = BatchStatus.CANCELLED if report.cancelled else BatchStatus.COMPLETED

    def fail(self, error: str) -> None:
        with self._lock:
            self.error = error
            self.finished_at = datetime.utcnow()
            self._status = BatchStatus.FAILED

    @property
    def status(self) -> BatchStatus:
        with self._lock:
            return self._status

    @property
    def is_finished(self) -> bool:
        return self.status in (BatchStatus.COMPLETED, BatchStatus.CANCELLED, BatchStatus.FAILED)

    def progress(self) -> BatchProgress:
        with self._lock:
            return BatchProgress(
                run_id=self.run_id,
                status=self._status,
                completed=self._completed,
                total=self._total,
                succeeded_count=self._succeeded,
                failed_count=self._failed,
            )


# ===================
# REGISTRY
# ===================

_runs: dict[str, BatchRun] = {}
_registry_lock = threading.Lock()


def start_run() -> BatchRun:
    """Register a new pending run."""
    run = BatchRun()
    with _registry_lock:
        _cleanup_expired()
        _runs[run.run_id] = run
    logger.info("batch_run_registered", run_id=run.run_id)
    return run


def get_run(run_id: str) -> BatchRun:
    """
    Look up a run.

    Raises:
        BatchRunNotFoundError: If unknown or expired
    """
    with _registry_lock:
        _cleanup_expired()
        run = _runs.get(run_id)
    if run is None:
        raise BatchRunNotFoundError(run_id)
    return run


def cancel_run(run_id: str) -> BatchProgress:
    """Request cancellation of a run and return its progress."""
    run = get_run(run_id)
    run.cancel()
    logger.info("batch_run_cancel_requested", run_id=run_id, status=run.status.value)
    return run.progress()


def cancel_active_runs() -> int:
    """Request cancellation of every unfinished run. Returns how many."""
    with _registry_lock:
        active = [run for run in _runs.values() if not run.is_finished]
    for run in active:
        run.cancel()
    if active:
        logger.info("batch_runs_cancelled", count=len(active))
    return len(active)


def clear_runs() -> None:
    """Forget every run (tests and restarts)."""
    with _registry_lock:
        _runs.clear()


def _cleanup_expired() -> None:
    """Remove finished runs older than the TTL. Caller holds the registry lock."""
    cutoff = datetime.utcnow() - timedelta(minutes=settings.batch_run_ttl_minutes)
    expired = [
        run_id for run_id, run in _runs.items()
        if run.finished_at is not None and run.finished_at < cutoff
    ]
    for run_id in expired:
        del _runs[run_id]
