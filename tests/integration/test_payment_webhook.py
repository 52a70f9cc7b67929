import json
import time
from decimal import Decimal

import pytest
from sqlalchemy import select

from schoolpay.core.config import settings
from schoolpay.core.security import WebhookSignatureVerifier
from schoolpay.models import Notification, PaymentTransaction, StudentArticle


def transaction_event(reference, status="approved", metadata=None, event="transaction.approved"):
    return {
        "event": event,
        "entity": {
            "name": "Transaction",
            "object": {"id": reference, "status": status, "amount": 6000, "metadata": metadata or {}},
        },
    }


@pytest.fixture
def pending_gateway_payment(make_student, make_article_order, make_transaction):
    student = make_student()
    order = make_article_order(student, amount="10000", amount_paid="4000", status="partial")
    transaction = make_transaction(
        student, amount="6000", payment_method="fedapay", order=order, transaction_ref="104455",
    )
    return student, order, transaction


class TestWebhookRouting:

    def test_non_transaction_entity_is_acknowledged(self, client):
        response = client.post("/api/payment-webhook", json={"entity": {"name": "Customer"}, "event": "customer.created"})
        assert response.status_code == 200
        assert response.json() == {"message": "Non-transaction event ignored"}

    def test_body_without_entity_is_acknowledged(self, client):
        response = client.post("/api/payment-webhook", json={"hello": "world"})
        assert response.status_code == 200
        assert response.json() == {"message": "Non-transaction event ignored"}

    def test_invalid_json(self, client):
        response = client.post(
            "/api/payment-webhook", content=b"{oops", headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid JSON body"}

    def test_unknown_transaction(self, client):
        response = client.post("/api/payment-webhook", json=transaction_event("999999"))
        assert response.status_code == 404
        assert response.json() == {"error": "Transaction not found"}


class TestWebhookReconciliation:

    def test_approved_completes_and_applies(self, client, db, pending_gateway_payment):
        student, order, transaction = pending_gateway_payment

        response = client.post("/api/payment-webhook", json=transaction_event("104455"))

        assert response.status_code == 200
        assert response.json() == {"success": True}

        db.expire_all()
        assert db.get(PaymentTransaction, transaction.id).status == "completed"
        order = db.get(StudentArticle, order.id)
        assert order.amount_paid == Decimal("10000")
        assert order.status == "paid"
        assert order.payment_date is not None

        notification = db.execute(
            select(Notification).where(Notification.user_id == student.user_id)
        ).scalar_one()
        assert notification.type == "payment"
        assert notification.title == "Payment confirmed"
        assert notification.message == "Your payment of 6000 FCFA has been confirmed."
        assert notification.meta == {"type": "payment", "transaction_id": str(transaction.id)}

    def test_replayed_approval_is_applied_once(self, client, db, pending_gateway_payment):
        student, order, transaction = pending_gateway_payment

        first = client.post("/api/payment-webhook", json=transaction_event("104455"))
        second = client.post("/api/payment-webhook", json=transaction_event("104455"))

        assert first.status_code == second.status_code == 200
        db.expire_all()
        assert db.get(StudentArticle, order.id).amount_paid == Decimal("10000")
        assert len(db.execute(select(Notification)).scalars().all()) == 1

    @pytest.mark.parametrize("gateway_status", ["declined", "cancelled", "refunded"])
    def test_failure_statuses(self, client, db, pending_gateway_payment, gateway_status):
        student, order, transaction = pending_gateway_payment

        response = client.post("/api/payment-webhook", json=transaction_event("104455", status=gateway_status))

        assert response.status_code == 200
        db.expire_all()
        assert db.get(PaymentTransaction, transaction.id).status == "failed"
        assert db.get(StudentArticle, order.id).amount_paid == Decimal("4000")
        assert db.execute(select(Notification)).first() is None

    def test_unknown_status_stays_pending(self, client, db, pending_gateway_payment):
        _, _, transaction = pending_gateway_payment

        response = client.post("/api/payment-webhook", json=transaction_event("104455", status="transferred"))

        assert response.status_code == 200
        db.expire_all()
        assert db.get(PaymentTransaction, transaction.id).status == "pending"

    def test_pending_event_does_not_reopen_completed_transaction(self, client, db, pending_gateway_payment):
        _, _, transaction = pending_gateway_payment
        client.post("/api/payment-webhook", json=transaction_event("104455"))

        response = client.post("/api/payment-webhook", json=transaction_event("104455", status="pending"))

        assert response.status_code == 200
        db.expire_all()
        assert db.get(PaymentTransaction, transaction.id).status == "completed"

    def test_refund_then_reapproval_applies_payment_once(self, client, db, pending_gateway_payment):
        student, order, transaction = pending_gateway_payment

        for gateway_status in ("approved", "refunded", "approved"):
            response = client.post(
                "/api/payment-webhook",
                json=transaction_event("104455", status=gateway_status, event=f"transaction.{gateway_status}"),
            )
            assert response.status_code == 200
            assert response.json() == {"success": True}

        db.expire_all()
        assert db.get(PaymentTransaction, transaction.id).status == "completed"
        assert db.get(StudentArticle, order.id).amount_paid == Decimal("10000")
        notifications = db.execute(
            select(Notification).where(Notification.user_id == student.user_id)
        ).scalars().all()
        assert len(notifications) == 1

    def test_approval_after_decline_leaves_transaction_failed(self, client, db, pending_gateway_payment):
        _, order, transaction = pending_gateway_payment
        client.post("/api/payment-webhook", json=transaction_event("104455", status="declined"))

        response = client.post("/api/payment-webhook", json=transaction_event("104455"))

        assert response.status_code == 200
        db.expire_all()
        assert db.get(PaymentTransaction, transaction.id).status == "failed"
        assert db.get(StudentArticle, order.id).amount_paid == Decimal("4000")
        assert db.execute(select(Notification)).first() is None

    def test_event_without_status_leaves_transaction_pending(self, client, db, pending_gateway_payment):
        _, order, transaction = pending_gateway_payment

        response = client.post(
            "/api/payment-webhook",
            json={"event": "transaction.updated", "entity": {"name": "Transaction", "object": {"id": "104455"}}},
        )

        assert response.status_code == 200
        assert response.json() == {"success": True}
        db.expire_all()
        assert db.get(PaymentTransaction, transaction.id).status == "pending"
        assert db.get(StudentArticle, order.id).amount_paid == Decimal("4000")

    def test_lookup_falls_back_to_metadata_transaction_id(self, client, db, pending_gateway_payment):
        _, order, transaction = pending_gateway_payment

        response = client.post(
            "/api/payment-webhook",
            json=transaction_event("777", metadata={"transaction_id": str(transaction.id)}),
        )

        assert response.status_code == 200
        db.expire_all()
        assert db.get(PaymentTransaction, transaction.id).status == "completed"
        assert db.get(StudentArticle, order.id).status == "paid"

    def test_invoice_payment(self, client, db, make_student, make_invoice, make_transaction):
        student = make_student()
        invoice = make_invoice(student, amount="50000")
        make_transaction(student, amount="20000", payment_method="momo", invoice=invoice, transaction_ref="2001")

        response = client.post("/api/payment-webhook", json=transaction_event("2001"))

        assert response.status_code == 200
        db.expire_all()
        db.refresh(invoice)
        assert invoice.amount_paid == Decimal("20000")
        assert invoice.status == "partial"
        assert invoice.payment_date is None


class TestWebhookSignature:

    @pytest.fixture(autouse=True)
    def webhook_secret(self, monkeypatch):
        monkeypatch.setattr(settings, "FEDAPAY_WEBHOOK_SECRET", "whsec_integration")

    def signed(self, body: bytes, timestamp=None):
        timestamp = timestamp or int(time.time())
        signature = WebhookSignatureVerifier("whsec_integration").compute(timestamp, body)
        return {"Content-Type": "application/json", "X-FEDAPAY-SIGNATURE": f"t={timestamp},s={signature}"}

    def test_unsigned_request_is_rejected(self, client, db, pending_gateway_payment):
        _, _, transaction = pending_gateway_payment

        response = client.post("/api/payment-webhook", json=transaction_event("104455"))

        assert response.status_code == 401
        db.expire_all()
        assert db.get(PaymentTransaction, transaction.id).status == "pending"

    def test_signed_request_is_processed(self, client, db, pending_gateway_payment):
        _, _, transaction = pending_gateway_payment
        body = json.dumps(transaction_event("104455")).encode()

        response = client.post("/api/payment-webhook", content=body, headers=self.signed(body))

        assert response.status_code == 200
        db.expire_all()
        assert db.get(PaymentTransaction, transaction.id).status == "completed"

    def test_stale_signature_is_rejected(self, client, pending_gateway_payment):
        body = json.dumps(transaction_event("104455")).encode()
        headers = self.signed(body, timestamp=int(time.time()) - 3600)

        response = client.post("/api/payment-webhook", content=body, headers=headers)

        assert response.status_code == 401

    def test_signature_over_different_body_is_rejected(self, client, pending_gateway_payment):
        body = json.dumps(transaction_event("104455")).encode()
        headers = self.signed(b"{}")

        response = client.post("/api/payment-webhook", content=body, headers=headers)

        assert response.status_code == 401
