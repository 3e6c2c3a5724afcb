"""Recalculation trigger payload and per-run progress structures."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from pricing_service.utils import utc_now


@dataclass(frozen=True, slots=True)
class RecalculationTrigger:
    source: str
    user_id: Optional[int] = None
    requested_at: datetime = field(default_factory=utc_now)

    def as_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "user_id": self.user_id,
            "requested_at": self.requested_at.isoformat(),
        }


@dataclass(slots=True)
class RunProgress:
    """Counters owned exclusively by the worker of one run."""
    processed: int = 0
    failed: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)

    @property
    def handled(self) -> int:
        return self.processed + self.failed

    def record_failure(self, product_id: Any, product_name: Optional[str], message: str) -> None:
        self.failed += 1
        self.errors.append({"product_id": product_id, "product_name": product_name, "message": message})


def fatal_error_entry(message: str) -> dict[str, Any]:
    return {"product_id": None, "product_name": None, "message": message}


__all__ = ["RecalculationTrigger", "RunProgress", "fatal_error_entry"]
