"""Pytest fixtures for storefront tests."""

import logging
import os
import tempfile
from datetime import datetime, timedelta, timezone

# configure before anything imports storefront.core.config
_TMP = tempfile.mkdtemp(prefix="storefront-tests-")
os.environ.setdefault("DATABASE_DSN", f"sqlite:///{os.path.join(_TMP, 'default.db')}")
os.environ["KAFKA_ENABLED"] = "false"
os.environ["PAYOS_VERIFY_WEBHOOK"] = "false"
os.environ.setdefault("PAYOS_CHECKSUM_KEY", "test-checksum-key")
os.environ.setdefault("JWT_SECRET", "test-secret")

import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from storefront.api.deps import get_notifier, get_payment_gateway
from storefront.core.config import settings
from storefront.core.errors import PaymentGatewayError
from storefront.db.models import Product, Voucher, VoucherType
from storefront.db.session import Base, get_db


class RecordingNotifier:
    """Notifier double that keeps every notification in memory."""

    def __init__(self):
        self.sent = []

    def notify(self, recipient, type, content):
        self.sent.append((recipient, type, content))


class FakeGateway:
    """Payment gateway double; set ``fail`` to make link creation raise."""

    def __init__(self):
        self.requests = []
        self.fail = False

    def create_payment_link(self, req):
        self.requests.append(req)
        if self.fail:
            raise PaymentGatewayError("Payment gateway unavailable")
        return f"https://pay.example.test/web/{req.order_code}"


@pytest.fixture
def engine(tmp_path):
    eng = create_engine(f"sqlite:///{tmp_path / 'storefront.db'}", connect_args={"timeout": 30})
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def product_factory(db):
    def make(amount=100000, stock=10, active=True, name=None):
        p = Product(
            name=name or f"Product {amount}/{stock}",
            description="",
            amount=amount,
            stock_quantity=stock,
            is_active=active,
        )
        db.add(p)
        db.commit()
        db.refresh(p)
        return p
    return make


@pytest.fixture
def voucher_factory(db):
    counter = {"n": 0}

    def make(type=VoucherType.FIXED_AMOUNT, value=10000, can_stack=True, usage_limit=None,
             used_count=0, start_date=None, end_date=None, active=True, code=None):
        counter["n"] += 1
        v = Voucher(
            code=code or f"VOUCHER{counter['n']}",
            name=f"Voucher {counter['n']}",
            type=type,
            value=value,
            usage_limit=usage_limit,
            used_count=used_count,
            can_stack=can_stack,
            start_date=start_date,
            end_date=end_date,
            is_active=active,
        )
        db.add(v)
        db.commit()
        db.refresh(v)
        return v
    return make


def make_token(sub: str, role: str = "customer") -> str:
    payload = {
        "sub": sub,
        "role": role,
        "type": "access",
        "exp": datetime.now(timezone.utc) + timedelta(minutes=15),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {make_token('admin-1', 'admin')}"}


@pytest.fixture
def customer_headers():
    return {"Authorization": f"Bearer {make_token('user-1')}"}


@pytest.fixture
def other_customer_headers():
    return {"Authorization": f"Bearer {make_token('user-2')}"}


@pytest.fixture
def client(session_factory, notifier, gateway):
    from storefront.main import app

    def override_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def checkout_body():
    def make(items, voucher_ids=None, **overrides):
        body = {
            "items": [{"product_id": pid, "quantity": qty} for pid, qty in items],
            "payment_method": "bank",
            "shipping_address": "12 Nguyen Hue, District 1, HCMC",
            "customer_name": "Tran Thi B",
            "customer_phone": "0901234567",
            "voucher_ids": voucher_ids or [],
        }
        body.update(overrides)
        return body
    return make


@pytest.fixture
def storefront_logs(caplog):
    """caplog wired to the package logger, which does not propagate to root."""
    logger = logging.getLogger("storefront")
    logger.addHandler(caplog.handler)
    caplog.set_level(logging.DEBUG, logger="storefront")
    try:
        yield caplog
    finally:
        logger.removeHandler(caplog.handler)
