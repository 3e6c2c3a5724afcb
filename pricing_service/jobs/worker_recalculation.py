"""Background worker that executes one price recalculation run.

Each worker owns a daemon thread and a private database session. It takes a
snapshot of eligible product ids, walks it in chunks, reprices each product
in its own transaction and checkpoints counters onto the job row.

Cancellation is cooperative: the supervisor sets an event which is polled
before every product. Terminal writes for ``completed`` / ``failed`` happen
under the supervisor's lock so they can never race a cancellation request.
"""
from __future__ import annotations

import threading
import time
from typing import Any, Callable, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload, sessionmaker
from sqlalchemy.orm.exc import ObjectDeletedError, StaleDataError

from pricing_service.config import PRICE_RECALCULATION_SETTINGS
from pricing_service.jobs import job_store
from pricing_service.jobs.recalculation_job import RunProgress, fatal_error_entry
from pricing_service.models.db import Product
from pricing_service.models.db.enums import JobStatus, ProductStatus
from pricing_service.services.price_calculator import PriceFunction, calculate_variant_pricing
from pricing_service.services.pricing_inputs import PricingInputs, load_pricing_inputs
from pricing_service.utils import get_logger, log_performance, utc_now

logger = get_logger(__name__)

ExitCallback = Callable[["RecalculationWorker", JobStatus], None]


def snapshot_product_ids(session: Session) -> list[int]:
    """Ids of every non-archived product, in catalog order."""
    stmt = (
        select(Product.id)
        .where(Product.status != ProductStatus.ARCHIVED)
        .order_by(Product.created_at, Product.id)
    )
    return list(session.scalars(stmt).all())


def _chunks(ids: Sequence[int], size: int):
    for start in range(0, len(ids), size):
        yield ids[start:start + size]


class RecalculationWorker:
    def __init__(
        self,
        job_id: int,
        *,
        session_factory: sessionmaker,
        finalize_lock: threading.Lock,
        on_exit: ExitCallback,
        price_fn: Optional[PriceFunction] = None,
        batch_size: Optional[int] = None,
        check_interval: Optional[int] = None,
        chunk_pause_seconds: Optional[float] = None,
    ):
        self.job_id = job_id
        self._session_factory = session_factory
        self._finalize_lock = finalize_lock
        self._on_exit = on_exit
        self._price_fn: PriceFunction = price_fn or calculate_variant_pricing
        self._batch_size = max(1, int(batch_size or PRICE_RECALCULATION_SETTINGS["batch_size"]))
        self._check_interval = max(1, int(check_interval or PRICE_RECALCULATION_SETTINGS["check_interval"]))
        pause = PRICE_RECALCULATION_SETTINGS["chunk_pause_seconds"] if chunk_pause_seconds is None else chunk_pause_seconds
        self._chunk_pause = max(0.0, float(pause))
        self._cancel_event = threading.Event()
        self._thread: threading.Thread | None = None
        self.outcome: JobStatus | None = None

    # ----------------------------- handle API ----------------------------- #
    def start(self) -> None:
        if self._thread and self._thread.is_alive():  # pragma: no cover
            return
        self._thread = threading.Thread(target=self._run, name=f"price-recalc-{self.job_id}", daemon=True)
        self._thread.start()
        logger.info("Price recalculation worker started", job_id=self.job_id)

    def cancel(self) -> None:
        if not self._cancel_event.is_set():
            self._cancel_event.set()
            logger.info("Price recalculation cancellation requested", job_id=self.job_id)

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_event.is_set()

    def is_alive(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)

    # ------------------------------- run loop ------------------------------ #
    def _run(self) -> None:
        started = time.monotonic()
        outcome = JobStatus.FAILED
        try:
            outcome = self._execute()
        except Exception as e:
            logger.error("Price recalculation worker crashed", job_id=self.job_id, error=str(e), exc_info=True)
        finally:
            self.outcome = outcome
            log_performance(
                operation="price_recalculation_run",
                duration_ms=round((time.monotonic() - started) * 1000, 2),
                additional_data={"job_id": self.job_id, "status": outcome.value},
            )
            self._on_exit(self, outcome)

    def _execute(self) -> JobStatus:
        # Loaded chunks must survive the per-product commits.
        session: Session = self._session_factory(expire_on_commit=False)
        progress = RunProgress()
        try:
            try:
                product_ids = snapshot_product_ids(session)
                job_store.set_total_products(session, self.job_id, len(product_ids))
                inputs = load_pricing_inputs(session)
            except Exception as e:
                return self._finish_failed(session, progress, e)

            logger.info("Price recalculation snapshot taken", job_id=self.job_id, total_products=len(product_ids))

            for chunk in _chunks(product_ids, self._batch_size):
                if self._cancel_event.is_set():
                    return self._stop_cancelled(progress)
                try:
                    products = self._load_chunk(session, chunk)
                except Exception as e:
                    return self._finish_failed(session, progress, e)

                for product_id in chunk:
                    if self._cancel_event.is_set():
                        return self._stop_cancelled(progress)
                    self._reprice_product(session, product_id, products.get(product_id), inputs, progress)
                    if progress.handled % self._check_interval == 0:
                        self._checkpoint(session, progress)

                if self._chunk_pause:
                    # wakes early on cancellation
                    self._cancel_event.wait(self._chunk_pause)

            return self._finish_completed(session, progress)
        finally:
            session.close()

    def _load_chunk(self, session: Session, chunk: Sequence[int]) -> dict[int, Product]:
        stmt = select(Product).options(selectinload(Product.variants)).where(Product.id.in_(chunk))
        return {p.id: p for p in session.scalars(stmt).all()}

    def _reprice_product(
        self,
        session: Session,
        product_id: int,
        product: Optional[Product],
        inputs: PricingInputs,
        progress: RunProgress,
    ) -> None:
        if product is None:
            # deleted after the snapshot; nothing left to price
            logger.debug("Product missing from catalog; skipped", job_id=self.job_id, product_id=product_id)
            progress.processed += 1
            return

        product_name: Optional[str] = None
        try:
            product_name = product.display_name
            prices: list[int] = []
            for variant in product.variants:
                pricing = self._price_fn(product.product_type, variant.meta or {}, product.meta or {}, inputs)
                variant.price = pricing.selling_price.final_price
                variant.compare_at_price = pricing.compare_at_price.final_price
                variant.cost_price = pricing.cost_price.final_price
                variant.price_components = pricing.to_dict()
                prices.append(variant.price)
            if prices:
                product.min_price = min(prices)
                product.max_price = max(prices)
                product.updated_at = utc_now()
                session.commit()
            progress.processed += 1
        except (ObjectDeletedError, StaleDataError):
            # deleted while this run held it
            session.rollback()
            logger.debug("Product deleted during repricing; skipped", job_id=self.job_id, product_id=product_id)
            progress.processed += 1
        except Exception as e:
            session.rollback()
            message = str(e) or type(e).__name__
            progress.record_failure(product_id, product_name, message)
            logger.warning(
                "Product repricing failed",
                job_id=self.job_id,
                product_id=product_id,
                error=message,
            )

    # ---------------------------- job row writes ---------------------------- #
    def _checkpoint(self, session: Session, progress: RunProgress) -> None:
        try:
            job_store.record_progress(session, self.job_id, progress.processed, progress.failed, progress.errors)
        except Exception as e:
            session.rollback()
            logger.error("Progress checkpoint failed", job_id=self.job_id, error=str(e), exc_info=True)

    def _stop_cancelled(self, progress: RunProgress) -> JobStatus:
        # Counters stay at the last checkpoint; the supervisor writes the terminal status.
        logger.info(
            "Price recalculation stopping on cancellation",
            job_id=self.job_id,
            processed=progress.processed,
            failed=progress.failed,
        )
        return JobStatus.CANCELLED

    def _finish_completed(self, session: Session, progress: RunProgress) -> JobStatus:
        with self._finalize_lock:
            if self._cancel_event.is_set():
                return self._stop_cancelled(progress)
            job_store.finalize_job(
                session,
                self.job_id,
                JobStatus.COMPLETED,
                processed=progress.processed,
                failed=progress.failed,
                error_details=progress.errors,
            )
        logger.info(
            "Price recalculation completed",
            job_id=self.job_id,
            processed=progress.processed,
            failed=progress.failed,
        )
        return JobStatus.COMPLETED

    def _finish_failed(self, session: Session, progress: RunProgress, error: Exception) -> JobStatus:
        session.rollback()
        message = str(error) or type(error).__name__
        logger.error("Price recalculation failed", job_id=self.job_id, error=message, exc_info=error)
        errors: list[dict[str, Any]] = [*progress.errors, fatal_error_entry(message)]
        with self._finalize_lock:
            job_store.finalize_job(
                session,
                self.job_id,
                JobStatus.FAILED,
                processed=progress.processed,
                failed=progress.failed,
                error_details=errors,
            )
        return JobStatus.FAILED


__all__ = ["RecalculationWorker", "snapshot_product_ids"]
