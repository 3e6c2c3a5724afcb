"""Core application configuration & tunable recalculation settings.

Values that operators may want to tune (chunk size, checkpoint cadence,
currency/tax rules) are centralized here so they can be adjusted without
diving into job logic. Deployments override via environment variables;
tests monkeypatch the dict entries directly.
"""
from __future__ import annotations

import os


def _env_bool(name: str, default: bool) -> bool:
	raw = os.getenv(name)
	if raw is None or not raw.strip():
		return default
	return raw.strip().lower() in {"1", "true", "yes", "on"}


# -------------------------- Price Recalculation -------------------------- #
PRICE_RECALCULATION_SETTINGS: dict[str, int | float] = {
	# Products loaded per query while walking the snapshot.
	"batch_size": int(os.getenv("PRICE_RECALC_BATCH_SIZE", "100")),
	# Products between progress checkpoints written to the job row.
	"check_interval": int(os.getenv("PRICE_RECALC_CHECK_INTERVAL", "10")),
	# Optional pause between chunks (seconds) to keep the API responsive.
	"chunk_pause_seconds": float(os.getenv("PRICE_RECALC_CHUNK_PAUSE", "0")),
	# GET /jobs paging bounds
	"list_default_limit": 100,
	"list_max_limit": 500,
	# How long shutdown waits for a cancelled worker to exit
	"shutdown_timeout_seconds": float(os.getenv("PRICE_RECALC_SHUTDOWN_TIMEOUT", "10")),
}

# -------------------------------- Currency -------------------------------- #
# All persisted prices are integer subunits (paise / cents).
CURRENCY_SETTINGS: dict[str, str | int | float | bool] = {
	"code": os.getenv("CURRENCY_CODE", "INR"),
	"subunits": 100,
	"include_tax": _env_bool("PRICES_INCLUDE_TAX", True),
	"tax_rate_percent": float(os.getenv("TAX_RATE_PERCENT", "3")),
}

__all__ = [
	"PRICE_RECALCULATION_SETTINGS",
	"CURRENCY_SETTINGS",
]
