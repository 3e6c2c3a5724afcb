"""Single-flight supervisor for price recalculation runs.

Owns the only "is a run live" guard in the process:

- trigger with nothing live  -> create a ``running`` job row, start a worker
- trigger while a run is live -> cancel that worker and remember the trigger
  as the next run (last trigger wins); nothing new starts yet
- worker exits               -> finalize ``cancelled`` if it stopped on the
  signal, then immediately start the remembered trigger, if any

The same lock guards the cancellation signal and the worker's own terminal
write, so a run can never be finalized both ``completed`` and ``cancelled``.
If the service ever runs as several processes this lock has to become an
external one (e.g. a database advisory lock); the partial unique index on
``status = 'running'`` is the storage-side backstop.
"""
from __future__ import annotations

import threading
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from pricing_service import database
from pricing_service.jobs import job_store
from pricing_service.jobs.recalculation_job import RecalculationTrigger, fatal_error_entry
from pricing_service.jobs.worker_recalculation import RecalculationWorker
from pricing_service.models.db.enums import JobStatus, TriggerSource
from pricing_service.services.price_calculator import PriceFunction
from pricing_service.utils import format_elapsed, get_logger, log_business_event

logger = get_logger(__name__)

ORPHANED_JOB_MESSAGE = "Interrupted by process restart"
UNFINALIZED_JOB_MESSAGE = "Recalculation worker exited without recording an outcome"

_KNOWN_SOURCES = {s.value for s in TriggerSource}


def normalize_source(source: TriggerSource | str) -> str:
    value = source.value if isinstance(source, TriggerSource) else str(source)
    if value not in _KNOWN_SOURCES:
        logger.warning("Unknown price recalculation trigger source", source=value)
    return value


class RecalculationSupervisor:
    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        *,
        price_fn: Optional[PriceFunction] = None,
        worker_options: Optional[dict[str, Any]] = None,
    ) -> None:
        self._session_factory = session_factory or database.SessionLocal
        self._price_fn = price_fn
        self._worker_options = dict(worker_options or {})
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._active: RecalculationWorker | None = None
        self._pending: RecalculationTrigger | None = None
        self._shutdown = False

    # ------------------------------ public API ------------------------------ #
    def trigger(self, source: TriggerSource | str, user_id: Optional[int] = None) -> bool:
        """Request a fresh run. Never raises; faults are logged.

        Returns False when the request was dropped (shut down, or the run
        could not be started).
        """
        try:
            request = RecalculationTrigger(source=normalize_source(source), user_id=user_id)
            with self._lock:
                if self._shutdown:
                    logger.warning("Trigger ignored; supervisor shut down", source=request.source, user_id=user_id)
                    return False
                if self._active is not None:
                    superseded = self._pending
                    self._pending = request
                    self._active.cancel()
                    logger.info(
                        "A recalculation is already running, it will be cancelled and restarted",
                        job_id=self._active.job_id,
                        source=request.source,
                        user_id=user_id,
                        superseded_source=superseded.source if superseded else None,
                    )
                    return True
                self._start_locked(request)
                return True
        except Exception as e:
            logger.error("Price recalculation trigger failed", source=str(source), error=str(e), exc_info=True)
            return False

    def recover_orphaned_jobs(self) -> list[int]:
        """Fail rows left ``running`` by a previous process. Only runs while idle."""
        with self._lock:
            if self._active is not None:
                return []
            session = self._session_factory()
            try:
                recovered = job_store.fail_orphaned_jobs(session, ORPHANED_JOB_MESSAGE)
            finally:
                session.close()
        if recovered:
            logger.warning("Orphaned recalculation jobs marked failed", job_ids=recovered)
        return recovered

    def wait_until_idle(self, timeout: Optional[float] = None) -> bool:
        with self._idle:
            return self._idle.wait_for(lambda: self._active is None and self._pending is None, timeout)

    def shutdown(self, timeout: Optional[float] = None) -> None:
        with self._lock:
            self._shutdown = True
            self._pending = None
            worker = self._active
            if worker is not None:
                worker.cancel()
        if worker is not None:
            worker.join(timeout)
            if worker.is_alive():
                logger.warning("Recalculation worker still running after shutdown timeout", job_id=worker.job_id)
        logger.info("Price recalculation supervisor stopped")

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            active = self._active
            return {
                "active_job_id": active.job_id if active else None,
                "cancel_requested": active.cancel_requested if active else False,
                "pending_trigger": self._pending.as_dict() if self._pending else None,
                "shutdown": self._shutdown,
            }

    # ---------------------------- lock-held helpers ---------------------------- #
    def _create_job_row(self, request: RecalculationTrigger) -> int:
        session = self._session_factory()
        try:
            try:
                return job_store.create_running_job(session, request.source, request.user_id).id
            except IntegrityError:
                # Nothing is live in this process, so any running row is stale.
                session.rollback()
                stale = job_store.fail_orphaned_jobs(session, ORPHANED_JOB_MESSAGE)
                logger.warning("Stale running job rows released", job_ids=stale)
                return job_store.create_running_job(session, request.source, request.user_id).id
        finally:
            session.close()

    def _start_locked(self, request: RecalculationTrigger) -> None:
        job_id = self._create_job_row(request)
        worker = RecalculationWorker(
            job_id,
            session_factory=self._session_factory,
            finalize_lock=self._lock,
            on_exit=self._on_worker_exit,
            price_fn=self._price_fn,
            **self._worker_options,
        )
        self._active = worker
        try:
            worker.start()
        except Exception:
            self._active = None
            self._finalize_unrecorded(job_id)
            raise
        log_business_event(
            event_type="price_recalculation_started",
            details={"job_id": job_id, "trigger_source": request.source},
            user_id=request.user_id,
        )

    def _finalize_unrecorded(self, job_id: int) -> None:
        session = self._session_factory()
        try:
            job = job_store.get_job(session, job_id)
            errors = list(job.error_details or []) if job else []
            errors.append(fatal_error_entry(UNFINALIZED_JOB_MESSAGE))
            if job_store.finalize_job(session, job_id, JobStatus.FAILED, error_details=errors):
                logger.error("Recalculation job failed without an outcome", job_id=job_id)
        finally:
            session.close()

    # ------------------------------ worker exit ------------------------------ #
    def _on_worker_exit(self, worker: RecalculationWorker, outcome: JobStatus) -> None:
        with self._lock:
            try:
                self._record_exit(worker, outcome)
            except Exception as e:
                logger.error("Finalizing recalculation job failed", job_id=worker.job_id, error=str(e), exc_info=True)
            finally:
                if self._active is worker:
                    self._active = None
                pending, self._pending = self._pending, None
                if pending is not None and not self._shutdown:
                    try:
                        self._start_locked(pending)
                    except Exception as e:
                        logger.error(
                            "Starting queued recalculation failed",
                            source=pending.source,
                            error=str(e),
                            exc_info=True,
                        )
                if self._active is None:
                    self._idle.notify_all()

    def _record_exit(self, worker: RecalculationWorker, outcome: JobStatus) -> None:
        session = self._session_factory()
        try:
            if outcome is JobStatus.CANCELLED:
                job_store.finalize_job(session, worker.job_id, JobStatus.CANCELLED)
                logger.info("Price recalculation job cancelled", job_id=worker.job_id)
            else:
                # No-op when the worker already wrote its own terminal status.
                self._finalize_unrecorded(worker.job_id)
            session.expire_all()
            job = job_store.get_job(session, worker.job_id)
            details: dict[str, Any] = {"job_id": worker.job_id, "status": outcome.value}
            if job is not None:
                details.update(
                    status=job.status.value,
                    total_products=job.total_products,
                    processed_products=job.processed_products,
                    failed_products=job.failed_products,
                )
                if job.started_at is not None:
                    details["duration"] = format_elapsed(job.started_at, job.completed_at)
        finally:
            session.close()
        log_business_event(event_type="price_recalculation_finished", details=details)


__all__ = ["RecalculationSupervisor", "normalize_source", "ORPHANED_JOB_MESSAGE", "UNFINALIZED_JOB_MESSAGE"]
