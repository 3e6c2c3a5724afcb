"""Persistence for the price recalculation job ledger.

Plain functions over a Session, no scheduling logic. Every write commits.
Progress and terminal writes are conditional on ``status = 'running'`` so a
row that has already reached a terminal state is never rewritten.
"""
from __future__ import annotations

from typing import Any, Iterable, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from pricing_service.models.db import PriceRecalculationJob
from pricing_service.models.db.enums import JobStatus
from pricing_service.utils import get_logger, utc_now

logger = get_logger(__name__)


def _running(job_id: int):
    return update(PriceRecalculationJob).where(
        PriceRecalculationJob.id == job_id,
        PriceRecalculationJob.status == JobStatus.RUNNING,
    )


def create_running_job(session: Session, trigger_source: str, triggered_by: Optional[int]) -> PriceRecalculationJob:
    now = utc_now()
    job = PriceRecalculationJob(
        status=JobStatus.RUNNING,
        trigger_source=trigger_source,
        triggered_by=triggered_by,
        total_products=None,
        processed_products=0,
        failed_products=0,
        error_details=[],
        started_at=now,
        created_at=now,
    )
    session.add(job)
    session.commit()
    session.refresh(job)
    return job


def set_total_products(session: Session, job_id: int, total: int) -> bool:
    result = session.execute(_running(job_id).values(total_products=total))
    session.commit()
    return result.rowcount == 1


def record_progress(
    session: Session,
    job_id: int,
    processed: int,
    failed: int,
    error_details: Iterable[dict[str, Any]],
) -> bool:
    result = session.execute(
        _running(job_id).values(
            processed_products=processed,
            failed_products=failed,
            error_details=list(error_details),
        )
    )
    session.commit()
    return result.rowcount == 1


def finalize_job(
    session: Session,
    job_id: int,
    status: JobStatus,
    *,
    processed: Optional[int] = None,
    failed: Optional[int] = None,
    error_details: Optional[Iterable[dict[str, Any]]] = None,
) -> bool:
    """Move a running job to a terminal status.

    Returns False when the row was not running any more (already terminal or
    missing); nothing is written in that case.
    """
    if not status.is_terminal:
        raise ValueError(f"{status.value!r} is not a terminal status")
    values: dict[str, Any] = {"status": status, "completed_at": utc_now()}
    if processed is not None:
        values["processed_products"] = processed
    if failed is not None:
        values["failed_products"] = failed
    if error_details is not None:
        values["error_details"] = list(error_details)
    result = session.execute(_running(job_id).values(**values))
    session.commit()
    transitioned = result.rowcount == 1
    if not transitioned:
        logger.debug("Finalize skipped; job not running", job_id=job_id, status=status.value)
    return transitioned


def get_job(session: Session, job_id: int) -> Optional[PriceRecalculationJob]:
    return session.get(PriceRecalculationJob, job_id)


def get_running_job(session: Session) -> Optional[PriceRecalculationJob]:
    return session.scalars(
        select(PriceRecalculationJob).where(PriceRecalculationJob.status == JobStatus.RUNNING).limit(1)
    ).first()


def list_jobs(session: Session, limit: int) -> list[PriceRecalculationJob]:
    stmt = (
        select(PriceRecalculationJob)
        .order_by(PriceRecalculationJob.created_at.desc(), PriceRecalculationJob.id.desc())
        .limit(limit)
    )
    return list(session.scalars(stmt).all())


def fail_orphaned_jobs(session: Session, message: str) -> list[int]:
    """Finalize rows left running by a previous process as failed."""
    orphans = session.scalars(
        select(PriceRecalculationJob).where(PriceRecalculationJob.status == JobStatus.RUNNING)
    ).all()
    recovered: list[int] = []
    for job in orphans:
        errors = list(job.error_details or [])
        errors.append({"product_id": None, "product_name": None, "message": message})
        if finalize_job(session, job.id, JobStatus.FAILED, error_details=errors):
            recovered.append(job.id)
    return recovered


__all__ = [
    "create_running_job",
    "set_total_products",
    "record_progress",
    "finalize_job",
    "get_job",
    "get_running_job",
    "list_jobs",
    "fail_orphaned_jobs",
]
