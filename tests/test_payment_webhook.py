"""Tests for PayOS callbacks: the HTTP endpoint and the reconciliation handler."""

import pytest

from storefront.core.config import settings
from storefront.db.models import NotificationType, Order, OrderStatus, Product
from storefront.services.notifications import ADMIN_CHANNEL
from storefront.services.payos import webhook_signature, webhook_verification_ready
from storefront.services.reconciliation import Ack, PaymentReconciliationHandler

CALLBACK = "/payment/v1/payos/callback"
ACK = {"success": True}


def stock_of(session_factory, product_id):
    with session_factory() as s:
        return s.get(Product, product_id).stock_quantity


def load_order(session_factory, order_id):
    with session_factory() as s:
        order = s.get(Order, order_id)
        s.expunge(order)
        return order


def callback(order_code, code="00", desc="success", signature=None):
    data = {
        "orderCode": int(order_code),
        "amount": 100000,
        "description": f"Payment {order_code}",
        "code": code,
        "desc": desc,
    }
    return {
        "code": code,
        "desc": desc,
        "success": code == "00",
        "data": data,
        "signature": signature if signature is not None else webhook_signature(data, settings.PAYOS_CHECKSUM_KEY),
    }


@pytest.fixture
def placed(client, product_factory, checkout_body, customer_headers):
    product = product_factory(amount=100000, stock=5)
    resp = client.post("/order/v1/orders/checkout", json=checkout_body([(product.id, 2)]), headers=customer_headers)
    assert resp.status_code == 201
    return product, resp.json()["order"]


class TestCallbackEndpoint:
    @pytest.mark.parametrize("body", [{}, {"data": {}}, {"code": "00", "data": {"orderCode": None}}])
    def test_verification_ping_is_acknowledged(self, client, body):
        resp = client.post(CALLBACK, json=body)
        assert resp.status_code == 200
        assert resp.json() == ACK

    def test_unreadable_body_is_acknowledged(self, client):
        resp = client.post(CALLBACK, content=b"not json", headers={"Content-Type": "application/json"})
        assert resp.status_code == 200
        assert resp.json() == ACK

    def test_malformed_payload_is_acknowledged(self, client):
        resp = client.post(CALLBACK, json={"data": "oops"})
        assert resp.status_code == 200
        assert resp.json() == ACK

    def test_unknown_order_is_acknowledged(self, client, notifier):
        resp = client.post(CALLBACK, json=callback("123456789"))
        assert resp.status_code == 200
        assert notifier.sent == []

    def test_successful_payment_notifies_admins(self, client, session_factory, notifier, placed):
        product, order = placed
        resp = client.post(CALLBACK, json=callback(order["order_code"]))

        assert resp.json() == ACK
        assert notifier.sent == [(
            ADMIN_CHANNEL, NotificationType.ORDER_REQUESTED,
            f"A customer has placed order {order['order_code']}.",
        )]
        assert load_order(session_factory, order["id"]).status == OrderStatus.PENDING
        assert stock_of(session_factory, product.id) == 3

    def test_failed_payment_restores_stock_once(self, client, session_factory, placed):
        product, order = placed
        body = callback(order["order_code"], code="01", desc="Payment cancelled")

        for _ in range(3):
            assert client.post(CALLBACK, json=body).json() == ACK

        stored = load_order(session_factory, order["id"])
        assert stored.status == OrderStatus.PAYMENT_FAILED
        assert stored.notes.count("Payment failed: Payment cancelled") == 1
        assert stock_of(session_factory, product.id) == 5

    def test_failure_after_admin_cancel_keeps_stock(self, client, session_factory, placed, admin_headers):
        product, order = placed
        resp = client.patch(f"/order/v1/orders/{order['id']}", json={"status": "cancelled"}, headers=admin_headers)
        assert resp.status_code == 200

        client.post(CALLBACK, json=callback(order["order_code"], code="01", desc="expired"))

        assert load_order(session_factory, order["id"]).status == OrderStatus.CANCELLED
        assert stock_of(session_factory, product.id) == 5

    def test_bad_signature_is_ignored_when_verification_is_on(self, client, session_factory, placed, monkeypatch):
        monkeypatch.setattr(settings, "PAYOS_VERIFY_WEBHOOK", True)
        product, order = placed

        resp = client.post(CALLBACK, json=callback(order["order_code"], code="01", signature="deadbeef"))

        assert resp.json() == ACK
        assert load_order(session_factory, order["id"]).status == OrderStatus.PENDING
        assert stock_of(session_factory, product.id) == 3

    def test_signed_callback_is_processed_when_verification_is_on(self, client, session_factory, placed, monkeypatch):
        monkeypatch.setattr(settings, "PAYOS_VERIFY_WEBHOOK", True)
        product, order = placed

        client.post(CALLBACK, json=callback(order["order_code"], code="01"))

        assert load_order(session_factory, order["id"]).status == OrderStatus.PAYMENT_FAILED
        assert stock_of(session_factory, product.id) == 5

    def test_missing_checksum_key_is_warned_about(self, client, session_factory, placed, monkeypatch, storefront_logs):
        monkeypatch.setattr(settings, "PAYOS_VERIFY_WEBHOOK", True)
        monkeypatch.setattr(settings, "PAYOS_CHECKSUM_KEY", "")
        product, order = placed

        assert client.post(CALLBACK, json=callback(order["order_code"], code="01")).json() == ACK

        assert load_order(session_factory, order["id"]).status == OrderStatus.PENDING
        assert stock_of(session_factory, product.id) == 3
        assert any("PAYOS_CHECKSUM_KEY is empty" in r.getMessage() for r in storefront_logs.records)


class TestVerificationConfig:
    def test_ready_when_key_is_set_or_checks_are_off(self, monkeypatch):
        monkeypatch.setattr(settings, "PAYOS_VERIFY_WEBHOOK", True)
        monkeypatch.setattr(settings, "PAYOS_CHECKSUM_KEY", "k")
        assert webhook_verification_ready() is True
        monkeypatch.setattr(settings, "PAYOS_VERIFY_WEBHOOK", False)
        monkeypatch.setattr(settings, "PAYOS_CHECKSUM_KEY", "")
        assert webhook_verification_ready() is True

    def test_not_ready_without_key(self, monkeypatch, storefront_logs):
        monkeypatch.setattr(settings, "PAYOS_VERIFY_WEBHOOK", True)
        monkeypatch.setattr(settings, "PAYOS_CHECKSUM_KEY", "")
        assert webhook_verification_ready() is False
        assert [r.levelname for r in storefront_logs.records] == ["WARNING"]


class ExplodingOrders:
    def find_by_code(self, order_code):
        raise RuntimeError("connection reset")


class TestReconciliationHandler:
    def test_outcomes(self, db, notifier, placed):
        _, order = placed
        handler = PaymentReconciliationHandler(db, notifier)

        assert handler.handle_callback(None, None) == Ack(outcome="ping")
        assert handler.handle_callback("42", "00") == Ack(outcome="unknown_order")
        assert handler.handle_callback(order["order_code"], "00") == Ack(outcome="paid")
        assert handler.handle_callback(order["order_code"], "01", "expired") == Ack(outcome="payment_failed")
        assert handler.handle_callback(order["order_code"], "01", "expired") == Ack(outcome="duplicate")

    def test_internal_errors_are_acknowledged(self, db, notifier):
        handler = PaymentReconciliationHandler(db, notifier, orders=ExplodingOrders())
        ack = handler.handle_callback("1", "01")
        assert ack.success is True
        assert ack.outcome == "error"
