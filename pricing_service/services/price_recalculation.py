"""Trigger gateway for price recalculation.

Master-data modules call ``trigger(source, user_id)`` right after committing
a pricing-input change. The call returns immediately and never raises;
it only reports whether the request was accepted. Run outcomes are visible
through the job ledger.
"""
from __future__ import annotations

from typing import Optional

from pricing_service.jobs.supervisor import RecalculationSupervisor
from pricing_service.models.db.enums import TriggerSource
from pricing_service.utils import get_logger, log_business_event

logger = get_logger(__name__)

# Process-owned; installed by the application lifespan.
_supervisor: RecalculationSupervisor | None = None


def install_supervisor(supervisor: RecalculationSupervisor | None) -> None:
    global _supervisor
    _supervisor = supervisor


def get_supervisor() -> RecalculationSupervisor | None:
    return _supervisor


def trigger(source: TriggerSource | str, user_id: Optional[int] = None, *, request_id: Optional[str] = None) -> bool:
    source_value = source.value if isinstance(source, TriggerSource) else str(source)
    supervisor = _supervisor
    if supervisor is None:
        logger.error("Price recalculation requested before the engine started", source=source_value, user_id=user_id)
        return False
    try:
        accepted = supervisor.trigger(source, user_id)
    except Exception as e:  # pragma: no cover - supervisor already contains its faults
        logger.error("Price recalculation trigger failed", source=source_value, error=str(e), exc_info=True)
        return False
    if not accepted:
        return False
    log_business_event(
        event_type="price_recalculation_triggered",
        details={"trigger_source": source_value},
        user_id=user_id,
        request_id=request_id,
    )
    return True


__all__ = ["install_supervisor", "get_supervisor", "trigger"]
