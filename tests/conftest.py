# tests/conftest.py
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import fulfillment.data.models  # noqa: F401
from fulfillment.data.database import Base, build_engine
from fulfillment.services.audit_service import AuditLogger
from fulfillment.services.cart_service import CartService
from fulfillment.services.checkout_service import CheckoutOrchestrator
from fulfillment.services.order_service import OrderLifecycleController
from fulfillment.services.stock_service import StockLedger
from tests.factories import seed_coupon, seed_variant


@pytest.fixture
def engine():
    engine = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def audit_entries():
    return []


@pytest.fixture
def audit(audit_entries):
    return AuditLogger(dispatch=audit_entries.append)


@pytest.fixture
def ledger(audit):
    return StockLedger(audit=audit)


@pytest.fixture
def lifecycle(ledger, audit):
    return OrderLifecycleController(ledger=ledger, audit=audit)


@pytest.fixture
def carts():
    return CartService()


@pytest.fixture
def orchestrator(audit):
    return CheckoutOrchestrator(audit=audit)


@pytest.fixture
def make_variant(db):
    def factory(**kwargs):
        return seed_variant(db, **kwargs)

    return factory


@pytest.fixture
def make_coupon(db):
    def factory(**kwargs):
        return seed_coupon(db, **kwargs)

    return factory


@pytest.fixture
def place_order(db, carts, orchestrator):
    """Fill the user's cart and check it out."""

    def factory(user_id, lines, coupon_code=None, payment_provider=None):
        for variant, quantity in lines:
            carts.add_item(db, user_id, variant.product_id, quantity, variant_id=variant.id)
        return orchestrator.checkout(db, user_id, coupon_code=coupon_code, payment_provider=payment_provider)

    return factory
