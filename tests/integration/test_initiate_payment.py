import json
from uuid import UUID, uuid4

import pytest
from sqlalchemy import select

from schoolpay.core.exceptions import PaymentGatewayError
from schoolpay.main import app
from schoolpay.models import Notification, PaymentTransaction
from schoolpay.services.payment_gateway import get_payment_gateway


class FakeGateway:
    def __init__(self, error=None):
        self.error = error
        self.created = []

    async def create_transaction(self, **kwargs):
        if self.error:
            raise self.error
        self.created.append(kwargs)
        return {"id": 31337, "status": "pending"}

    async def create_token(self, gateway_transaction_id):
        return {"token": "tok_abc", "url": f"https://checkout.fedapay.com/{gateway_transaction_id}"}


@pytest.fixture
def student_with_order(make_student, make_article_order):
    student = make_student(matricule="STU-2024-009")
    return student, make_article_order(student, amount="10000")


def payment_body(student, order, **overrides):
    body = {
        "amount": 6000,
        "studentId": str(student.id),
        "articleId": str(order.article_id),
        "paymentMethod": "cash",
    }
    body.update(overrides)
    return body


class TestCashInitiation:

    def test_cash_request_notifies_admins(self, client, db, admin, make_identity, auth_headers, student_with_order):
        second_admin = make_identity("admin")
        student, order = student_with_order

        response = client.post(
            "/api/initiate-payment", json=payment_body(student, order), headers=auth_headers(user_id=student.user_id),
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["transactionRef"].startswith("TX-")

        transaction = db.get(PaymentTransaction, UUID(body["transactionId"]))
        assert transaction.status == "pending"
        assert transaction.payment_method == "cash"
        assert transaction.article_id == order.article_id

        notified = set(db.execute(
            select(Notification.user_id).where(Notification.type == "cash_payment")
        ).scalars())
        assert notified == {admin.id, second_admin.id}

    def test_admin_can_validate_the_declared_cash_payment(
        self, client, db, admin, auth_headers, student_with_order
    ):
        student, order = student_with_order
        created = client.post(
            "/api/initiate-payment", json=payment_body(student, order), headers=auth_headers(user_id=student.user_id),
        ).json()

        response = client.post(
            "/api/validate-cash-payment",
            json={"transactionId": created["transactionId"]},
            headers=auth_headers(admin),
        )

        assert response.status_code == 200
        assert response.json() == {"success": True}


class TestGatewayInitiation:

    def test_checkout_url_is_returned(self, client, db, auth_headers, student_with_order):
        gateway = FakeGateway()
        app.dependency_overrides[get_payment_gateway] = lambda: gateway
        student, order = student_with_order

        response = client.post(
            "/api/initiate-payment",
            json=payment_body(student, order, paymentMethod="momo"),
            headers={**auth_headers(user_id=student.user_id), "Origin": "https://app.ecole-demo.com"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["paymentUrl"] == "https://checkout.fedapay.com/31337"
        assert body["fedapayTransactionId"] == 31337

        sent = gateway.created[0]
        assert sent["callback_url"] == "https://app.ecole-demo.com/articles"
        assert sent["customer"]["lastname"] == "Diallo"
        assert sent["metadata"]["transaction_id"] == body["transactionId"]

        transaction = db.get(PaymentTransaction, UUID(body["transactionId"]))
        assert transaction.transaction_ref == "31337"
        assert transaction.status == "pending"
        assert db.execute(select(Notification)).first() is None

    def test_gateway_rejection_marks_transaction_failed(self, client, db, auth_headers, student_with_order):
        error = PaymentGatewayError("Invalid amount", payload={"message": "Invalid amount"})
        app.dependency_overrides[get_payment_gateway] = lambda: FakeGateway(error=error)
        student, order = student_with_order

        response = client.post(
            "/api/initiate-payment",
            json=payment_body(student, order, paymentMethod="fedapay"),
            headers=auth_headers(user_id=student.user_id),
        )

        assert response.status_code == 400
        assert response.json() == {"error": "FedaPay error: Invalid amount"}

        transaction = db.execute(select(PaymentTransaction)).scalar_one()
        assert transaction.status == "failed"
        assert json.loads(transaction.notes) == {"message": "Invalid amount"}

    def test_missing_gateway_configuration(self, client, db, auth_headers, student_with_order):
        student, order = student_with_order

        response = client.post(
            "/api/initiate-payment",
            json=payment_body(student, order, paymentMethod="card"),
            headers=auth_headers(user_id=student.user_id),
        )

        assert response.status_code == 500
        assert response.json() == {"error": "FedaPay configuration missing"}
        assert db.execute(select(PaymentTransaction)).first() is None


class TestInitiationValidation:

    def test_requires_authentication(self, client, student_with_order):
        student, order = student_with_order
        response = client.post("/api/initiate-payment", json=payment_body(student, order))
        assert response.status_code == 401

    @pytest.mark.parametrize("missing", ["amount", "articleId"])
    def test_incomplete_data(self, client, auth_headers, student_with_order, missing):
        student, order = student_with_order
        body = payment_body(student, order)
        del body[missing]

        response = client.post("/api/initiate-payment", json=body, headers=auth_headers(user_id=student.user_id))

        assert response.status_code == 400
        assert response.json() == {"error": "Incomplete payment data"}

    def test_unknown_student(self, client, auth_headers, student_with_order):
        student, order = student_with_order

        response = client.post(
            "/api/initiate-payment",
            json=payment_body(student, order, studentId=str(uuid4())),
            headers=auth_headers(user_id=student.user_id),
        )

        assert response.status_code == 404
        assert response.json() == {"error": "Student not found"}

    def test_non_positive_amount(self, client, auth_headers, student_with_order):
        student, order = student_with_order

        response = client.post(
            "/api/initiate-payment",
            json=payment_body(student, order, amount=0),
            headers=auth_headers(user_id=student.user_id),
        )

        assert response.status_code == 400
