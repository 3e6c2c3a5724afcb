"""
Price recalculation endpoints: job history, live status and manual trigger.
"""
import time
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from pricing_service.api.deps import get_db, get_current_user, get_supervisor
from pricing_service.config import PRICE_RECALCULATION_SETTINGS
from pricing_service.jobs import job_store
from pricing_service.jobs.supervisor import RecalculationSupervisor
from pricing_service.models.db import User
from pricing_service.models.db.enums import TriggerSource
from pricing_service.models.schemas import ResponseBase, PriceRecalculationJobRead, RecalculationStatusRead
from pricing_service.services import price_recalculation
from pricing_service.utils import get_logger, log_performance

router = APIRouter()
logger = get_logger(__name__)

_DEFAULT_LIMIT = int(PRICE_RECALCULATION_SETTINGS["list_default_limit"])
_MAX_LIMIT = int(PRICE_RECALCULATION_SETTINGS["list_max_limit"])


@router.get(
    "/jobs",
    response_model=ResponseBase,
    summary="List recent price recalculation jobs (newest first)"
)
async def list_recalculation_jobs(
    request: Request,
    limit: int = Query(_DEFAULT_LIMIT, ge=1, le=_MAX_LIMIT),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ResponseBase:
    start_time = time.time()
    request_id = getattr(request.state, "request_id", None)
    try:
        jobs = job_store.list_jobs(db, limit)
    except Exception as e:
        logger.error("Listing recalculation jobs failed", error=str(e), request_id=request_id, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error while retrieving recalculation jobs"
        )
    items = [PriceRecalculationJobRead.model_validate(job).model_dump(mode="json") for job in jobs]
    log_performance(
        operation="list_recalculation_jobs",
        duration_ms=(time.time() - start_time) * 1000,
        additional_data={"results_returned": len(items), "limit": limit}
    )
    return ResponseBase(
        success=True,
        message="Recalculation jobs fetched successfully",
        data={"items": items, "count": len(items)}
    )


@router.get(
    "/status",
    response_model=ResponseBase,
    summary="Is a price recalculation in progress"
)
async def recalculation_status(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    supervisor: RecalculationSupervisor = Depends(get_supervisor),
) -> ResponseBase:
    job = job_store.get_running_job(db)
    payload = RecalculationStatusRead(
        running=job is not None,
        job=PriceRecalculationJobRead.model_validate(job) if job else None,
        supervisor=supervisor.snapshot(),
    )
    return ResponseBase(
        success=True,
        message="Recalculation status fetched successfully",
        data=payload.model_dump(mode="json")
    )


@router.post(
    "/trigger",
    response_model=ResponseBase,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Manually trigger a full-catalog price recalculation"
)
async def trigger_recalculation(
    request: Request,
    current_user: User = Depends(get_current_user),
) -> ResponseBase:
    request_id = getattr(request.state, "request_id", None)
    logger.info("Manual price recalculation requested", user_id=current_user.id, request_id=request_id)
    price_recalculation.trigger(TriggerSource.MANUAL, current_user.id, request_id=request_id)
    return ResponseBase(
        success=True,
        message="Price recalculation triggered successfully",
        data={"trigger_source": TriggerSource.MANUAL.value}
    )
