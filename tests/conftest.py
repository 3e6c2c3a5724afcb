import os
import threading
import secrets
import sys
from pathlib import Path
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

# Ensure project root on sys.path so 'pricing_service' resolves without an install
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from pricing_service.main import app  # type: ignore
from pricing_service.database import Base  # type: ignore
from pricing_service.api import deps  # type: ignore
"""Pytest fixtures and factories.

Important: every model module must be imported before Base.metadata.create_all(),
otherwise relationship targets and the partial unique index are missing.
"""
from pricing_service.models.db import (
    User, Product, ProductVariant, MetalPurity, StonePrice, MakingCharge,
    OtherCharge, MrpMarkup, PricingRule, PriceRecalculationJob,
)
from pricing_service.models.db.enums import ProductStatus, UserRole
from pricing_service.jobs.supervisor import RecalculationSupervisor
from pricing_service.services import price_recalculation
from pricing_service.services.price_calculator import calculate_variant_pricing

# File-based SQLite so the worker thread and the test thread use separate connections.
SQLALCHEMY_TEST_URL = "sqlite+pysqlite:///./test_pricing.db"
engine = create_engine(
    SQLALCHEMY_TEST_URL,
    connect_args={"check_same_thread": False, "timeout": 30},
)

@event.listens_for(engine, "connect")
def _sqlite_pragmas(dbapi_connection, _record):
    # Runs commit once per product; skip fsync and let readers proceed during writes.
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=OFF")
    cursor.close()

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Anything that falls back to the module-level factory must see the test database.
import pricing_service.database as _app_database  # noqa: E402
_app_database.SessionLocal = TestingSessionLocal  # type: ignore

# Small chunks and frequent checkpoints keep the tests quick and observable.
TEST_WORKER_OPTIONS = {"batch_size": 50, "check_interval": 10, "chunk_pause_seconds": 0}

@pytest.fixture(scope="session", autouse=True)
def create_test_db():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    engine.dispose()
    for suffix in ("", "-wal", "-shm"):
        try:
            os.remove(f"test_pricing.db{suffix}")
        except OSError:
            pass

@pytest.fixture()
def db_session():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()

@pytest.fixture(autouse=True)
def _isolate_test_state(create_test_db):  # type: ignore[unused-argument]
    """Start every test from empty tables and no installed supervisor.

    Recalculation tests assert exact counts (jobs, products), so rows created
    by a previous test would leak into them.
    """
    yield
    price_recalculation.install_supervisor(None)
    if hasattr(app.state, "recalculation_supervisor"):
        del app.state.recalculation_supervisor  # type: ignore[attr-defined]
    session = TestingSessionLocal()
    try:
        for table in reversed(Base.metadata.sorted_tables):
            session.execute(table.delete())
        session.commit()
    finally:
        session.close()

# Override dependency
def _override_get_db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()

app.dependency_overrides[deps.get_db] = _override_get_db

@pytest.fixture()
def client():
    return TestClient(app)

# ---------- Recalculation engine ----------

@pytest.fixture()
def supervisor_factory():
    """Build supervisors bound to the test database.

    The production app creates one in lifespan; tests bypass lifespan so the
    factory installs it on app.state and on the trigger gateway instead.
    """
    created: list[RecalculationSupervisor] = []
    def _create(*, price_fn=None, **worker_options):
        options = {**TEST_WORKER_OPTIONS, **worker_options}
        supervisor = RecalculationSupervisor(TestingSessionLocal, price_fn=price_fn, worker_options=options)
        app.state.recalculation_supervisor = supervisor  # type: ignore[attr-defined]
        price_recalculation.install_supervisor(supervisor)
        created.append(supervisor)
        return supervisor
    yield _create
    for supervisor in created:
        supervisor.shutdown(timeout=10)

@pytest.fixture()
def supervisor(supervisor_factory):
    return supervisor_factory()

# ---------- Data factory helpers ----------

@pytest.fixture()
def user_factory(db_session):
    def _create(role: UserRole = UserRole.STAFF, *, is_active: bool = True):
        unique = secrets.token_hex(4)
        user = User(
            name=f"Staff {unique}",
            email=f"staff-{unique}@example.com",
            api_key=f"pk_{secrets.token_hex(12)}",
            role=role,
            is_active=is_active,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user
    return _create

@pytest.fixture()
def auth_header(user_factory):
    user = user_factory(UserRole.ADMIN)
    return {"Authorization": f"Bearer {user.api_key}"}, user

GOLD_METAL_TYPE_ID = 1

@pytest.fixture()
def pricing_inputs(db_session):
    """Seed one consistent set of pricing inputs.

    22K gold at 6000.00/g, a 10% making band over 0-100 g, a 500.00 flat
    other charge, one diamond price of 80000.00/ct and a 20% making MRP markup.
    """
    purity = MetalPurity(metal_type_id=GOLD_METAL_TYPE_ID, name="22K", price=600_000, status=True)
    diamond = StonePrice(price=8_000_000, status=True)
    db_session.add_all([
        purity,
        diamond,
        MakingCharge(
            metal_type_id=GOLD_METAL_TYPE_ID, weight_from=0, weight_to=100,
            is_fixed_pricing=False, amount=10, status=True,
        ),
        OtherCharge(name="Hallmarking", amount=50_000, status=True),
        MrpMarkup(diamond=10, gemstone=0, pearl=0, making_charge=20),
    ])
    db_session.commit()
    return {"metal_purity_id": purity.id, "diamond_price_id": diamond.id}

@pytest.fixture()
def product_factory(db_session, pricing_inputs):
    """Create ``count`` products with ``variants`` gold variants each."""
    def _create(
        count: int = 1,
        *,
        variants: int = 1,
        status: ProductStatus = ProductStatus.ACTIVE,
        product_meta: dict | None = None,
        variant_meta: dict | None = None,
    ) -> list[int]:
        meta = variant_meta or {
            "metalType": GOLD_METAL_TYPE_ID,
            "metalPurity": pricing_inputs["metal_purity_id"],
            "metalWeight": 2.5,
        }
        products = []
        for _ in range(count):
            unique = secrets.token_hex(5)
            product = Product(
                name=f"Ring {unique}",
                base_sku=f"RING-{unique}",
                status=status,
                meta=dict(product_meta or {}),
            )
            product.variants = [
                ProductVariant(sku=f"RING-{unique}-{n}", meta=dict(meta)) for n in range(variants)
            ]
            products.append(product)
        db_session.add_all(products)
        db_session.commit()
        return [p.id for p in products]
    return _create

class GatedPriceFunction:
    """Default pricing that parks the worker on the ``block_at``-th variant.

    ``reached`` is set once the worker is parked; it resumes after ``release``.
    Later calls (including later runs) pass straight through.
    """
    def __init__(self, block_at: int, *, fail_when=None):
        self.block_at = block_at
        self.fail_when = fail_when
        self.calls = 0
        self.reached = threading.Event()
        self.release = threading.Event()

    def __call__(self, product_type, variant_meta, product_meta, inputs):
        self.calls += 1
        if self.calls == self.block_at:
            self.reached.set()
            self.release.wait(10)
        if self.fail_when is not None and self.fail_when(variant_meta, product_meta):
            raise ValueError(f"cannot price {product_meta.get('label', 'variant')}")
        return calculate_variant_pricing(product_type, variant_meta, product_meta, inputs)

@pytest.fixture()
def gated_price_fn():
    created: list[GatedPriceFunction] = []
    def _create(block_at: int = 0, **kwargs):
        fn = GatedPriceFunction(block_at, **kwargs)
        created.append(fn)
        return fn
    yield _create
    # never leave a worker parked past the test
    for fn in created:
        fn.release.set()
