"""
Pydantic schemas for price recalculation jobs.
"""
from datetime import datetime
from typing import Optional, List, Any, Dict
from pydantic import BaseModel, Field, ConfigDict

from pricing_service.models.db.enums import JobStatus


class JobErrorDetail(BaseModel):
    """One product that could not be repriced (product_id is None for run-level failures)."""
    product_id: Optional[int] = None
    product_name: Optional[str] = None
    message: str


class PriceRecalculationJobRead(BaseModel):
    id: int
    status: JobStatus
    trigger_source: str
    triggered_by: Optional[int]
    total_products: Optional[int] = Field(None, description="Snapshot size; unset until the run has taken its snapshot")
    processed_products: int
    failed_products: int
    error_details: List[JobErrorDetail] = Field(default_factory=list)
    started_at: Optional[datetime]
    completed_at: Optional[datetime]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RecalculationStatusRead(BaseModel):
    running: bool
    job: Optional[PriceRecalculationJobRead] = None
    supervisor: Dict[str, Any] = Field(default_factory=dict)
