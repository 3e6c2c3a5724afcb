from __future__ import annotations
"""SQLAlchemy model for the price recalculation job ledger.

One row per run; append-only. The partial unique index enforces, at the
storage layer, that at most one row is ``running`` at any instant.
"""
from datetime import datetime

from sqlalchemy import Integer, String, DateTime, ForeignKey, Enum, JSON, Index, text
from sqlalchemy.orm import Mapped, mapped_column

from pricing_service.database import Base
from pricing_service.utils.time import utc_now
from .enums import JobStatus


class PriceRecalculationJob(Base):
    __tablename__ = "price_recalculation_jobs"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    status: Mapped[JobStatus] = mapped_column(
        Enum(
            JobStatus,
            native_enum=False,
            length=16,
            values_callable=lambda members: [m.value for m in members],
        ),
        nullable=False,
        default=JobStatus.RUNNING,
        index=True,
    )
    # Free-form tag; known values live in TriggerSource.
    trigger_source: Mapped[str] = mapped_column(String(64), nullable=False)
    triggered_by: Mapped[int | None] = mapped_column(Integer, ForeignKey("users.id"), nullable=True)

    # None until the worker has taken its snapshot
    total_products: Mapped[int | None] = mapped_column(Integer, nullable=True)
    processed_products: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed_products: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # [{"product_id": ..., "product_name": ..., "message": ...}, ...]
    error_details: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utc_now, index=True)

    __table_args__ = (
        Index(
            "uq_price_recalculation_jobs_single_running",
            "status",
            unique=True,
            sqlite_where=text("status = 'running'"),
            postgresql_where=text("status = 'running'"),
        ),
    )

    def __repr__(self) -> str:
        return f"<PriceRecalculationJob(id={self.id}, status='{self.status.value}', source='{self.trigger_source}')>"
