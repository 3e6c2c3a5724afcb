import threading

from sqlalchemy import event, select

from pricing_service.jobs import job_store
from pricing_service.jobs import worker_recalculation
from pricing_service.jobs.worker_recalculation import RecalculationWorker, snapshot_product_ids
from pricing_service.models.db import Product, ProductVariant
from pricing_service.models.db.enums import JobStatus, ProductStatus
from pricing_service.services.price_calculator import calculate_variant_pricing

from conftest import TEST_WORKER_OPTIONS, TestingSessionLocal, engine


def run_worker(price_fn=None, *, timeout: float = 30.0, **options):
    """Run one worker to completion outside the supervisor; returns (job_id, outcome)."""
    session = TestingSessionLocal()
    try:
        job_id = job_store.create_running_job(session, "manual", None).id
    finally:
        session.close()
    done = threading.Event()
    outcomes = []
    def _on_exit(worker, outcome):
        outcomes.append(outcome)
        done.set()
    worker = RecalculationWorker(
        job_id,
        session_factory=TestingSessionLocal,
        finalize_lock=threading.Lock(),
        on_exit=_on_exit,
        price_fn=price_fn,
        **{**TEST_WORKER_OPTIONS, **options},
    )
    worker.start()
    assert done.wait(timeout), "worker did not finish"
    worker.join(timeout)
    return job_id, outcomes[0]


def _variant_prices(db_session):
    db_session.expire_all()
    return {v.id: (v.price, v.compare_at_price, v.cost_price) for v in db_session.scalars(select(ProductVariant))}


def test_full_catalog_completes(db_session, product_factory):
    product_factory(120)
    job_id, outcome = run_worker()
    assert outcome == JobStatus.COMPLETED
    job = job_store.get_job(db_session, job_id)
    assert job.status == JobStatus.COMPLETED
    assert job.total_products == 120
    assert job.processed_products + job.failed_products == job.total_products
    assert job.failed_products == 0 and job.error_details == []
    assert job.completed_at is not None

    prices = _variant_prices(db_session)
    assert len(prices) == 120
    # 2.5 g of 22K: 15000.00 metal + 2000.00 making, 3% tax; MRP marks making up 20%
    assert set(prices.values()) == {(1_751_000, 1_792_200, 1_751_000)}
    product = db_session.scalars(select(Product)).first()
    assert product.min_price == product.max_price == 1_751_000
    assert product.updated_at is not None
    assert product.variants[0].price_components["selling_price"]["metal_price"] == 1_500_000


def test_rerun_without_input_changes_is_idempotent(db_session, product_factory):
    product_factory(5, variants=2)
    run_worker()
    first = _variant_prices(db_session)
    run_worker()
    assert _variant_prices(db_session) == first


def test_single_product_failure_does_not_abort(db_session, product_factory):
    product_factory(4)
    bad_id = product_factory(1, product_meta={"label": "cursed"})[0]
    product_factory(4)

    def _price(product_type, variant_meta, product_meta, inputs):
        if product_meta.get("label") == "cursed":
            raise ValueError("missing metal purity")
        return calculate_variant_pricing(product_type, variant_meta, product_meta, inputs)

    job_id, outcome = run_worker(_price)
    assert outcome == JobStatus.COMPLETED
    job = job_store.get_job(db_session, job_id)
    assert (job.total_products, job.processed_products, job.failed_products) == (9, 8, 1)
    assert len(job.error_details) == 1
    entry = job.error_details[0]
    assert entry["product_id"] == bad_id
    assert entry["product_name"].startswith("Ring ")
    assert entry["message"] == "missing metal purity"
    bad = db_session.get(Product, bad_id)
    assert bad.min_price is None


def test_product_write_is_atomic(db_session, product_factory):
    product_id = product_factory(1, variants=2)[0]
    calls = {"n": 0}

    def _price(product_type, variant_meta, product_meta, inputs):
        calls["n"] += 1
        if calls["n"] == 2:
            raise RuntimeError("second variant exploded")
        return calculate_variant_pricing(product_type, variant_meta, product_meta, inputs)

    job_id, _ = run_worker(_price)
    job = job_store.get_job(db_session, job_id)
    assert job.failed_products == 1
    product = db_session.get(Product, product_id)
    # the first variant's price was rolled back with the rest of the product
    assert [v.price for v in product.variants] == [None, None]


def test_archived_products_are_excluded(db_session, product_factory):
    product_factory(3)
    product_factory(1, status=ProductStatus.DRAFT)
    archived = product_factory(2, status=ProductStatus.ARCHIVED)
    assert len(snapshot_product_ids(db_session)) == 4

    job_id, _ = run_worker()
    job = job_store.get_job(db_session, job_id)
    assert job.total_products == 4
    for product_id in archived:
        assert db_session.get(Product, product_id).variants[0].price is None


def test_product_without_variants_counts_as_processed(db_session, product_factory):
    product_id = product_factory(1, variants=0)[0]
    job_id, _ = run_worker()
    job = job_store.get_job(db_session, job_id)
    assert (job.processed_products, job.failed_products) == (1, 0)
    assert db_session.get(Product, product_id).min_price is None


def test_empty_catalog_completes_immediately(db_session):
    job_id, outcome = run_worker()
    assert outcome == JobStatus.COMPLETED
    job = job_store.get_job(db_session, job_id)
    assert (job.total_products, job.processed_products, job.failed_products) == (0, 0, 0)


def test_input_load_failure_fails_the_job(db_session, product_factory, monkeypatch):
    product_factory(3)

    def _broken(session):
        raise RuntimeError("pricing inputs unavailable")

    monkeypatch.setattr(worker_recalculation, "load_pricing_inputs", _broken)
    job_id, outcome = run_worker()
    assert outcome == JobStatus.FAILED
    job = job_store.get_job(db_session, job_id)
    assert job.status == JobStatus.FAILED
    assert job.completed_at is not None
    # the snapshot is taken before the inputs are read
    assert (job.total_products, job.processed_products, job.failed_products) == (3, 0, 0)
    assert job.error_details[-1] == {"product_id": None, "product_name": None, "message": "pricing inputs unavailable"}


def _delete_product(product_id):
    session = TestingSessionLocal()
    try:
        session.delete(session.get(Product, product_id))
        session.commit()
    finally:
        session.close()


def test_product_deleted_mid_run_counts_as_processed(db_session, product_factory):
    ids = product_factory(3)
    deleted = []

    def _price(product_type, variant_meta, product_meta, inputs):
        # the whole chunk is already loaded when the last product goes away
        if not deleted:
            _delete_product(ids[2])
            deleted.append(ids[2])
        return calculate_variant_pricing(product_type, variant_meta, product_meta, inputs)

    job_id, outcome = run_worker(_price)
    assert outcome == JobStatus.COMPLETED
    job = job_store.get_job(db_session, job_id)
    assert (job.total_products, job.processed_products, job.failed_products) == (3, 3, 0)
    assert job.error_details == []
    assert db_session.get(Product, ids[0]).min_price == 1_751_000


def test_product_deleted_after_a_failure_counts_as_processed(db_session, product_factory):
    first = product_factory(1)[0]
    bad = product_factory(1, product_meta={"label": "cursed"})[0]
    last = product_factory(1)[0]

    def _price(product_type, variant_meta, product_meta, inputs):
        if product_meta.get("label") == "cursed":
            # the failure rolls back and expires the rest of the chunk
            _delete_product(last)
            raise ValueError("missing metal purity")
        return calculate_variant_pricing(product_type, variant_meta, product_meta, inputs)

    job_id, _ = run_worker(_price)
    job = job_store.get_job(db_session, job_id)
    assert (job.processed_products, job.failed_products) == (2, 1)
    assert [e["product_id"] for e in job.error_details] == [bad]
    assert db_session.get(Product, first).min_price == 1_751_000


def test_chunk_is_loaded_once(db_session, product_factory):
    product_factory(50)
    product_selects = []

    def _count(conn, cursor, statement, parameters, context, executemany):
        if statement.lstrip().upper().startswith("SELECT") and "FROM products" in statement:
            product_selects.append(statement)

    event.listen(engine, "before_cursor_execute", _count)
    try:
        job_id, _ = run_worker(batch_size=50)
    finally:
        event.remove(engine, "before_cursor_execute", _count)
    # one snapshot query plus one chunk query
    assert len(product_selects) == 2
    assert job_store.get_job(db_session, job_id).processed_products == 50
