from .base import ResponseBase
from .price_recalculation import JobErrorDetail, PriceRecalculationJobRead, RecalculationStatusRead

__all__ = [
    "ResponseBase",
    "JobErrorDetail",
    "PriceRecalculationJobRead",
    "RecalculationStatusRead",
]
