import os

os.environ["ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["JWT_SECRET"] = "test-secret-key-that-is-long-enough-0123456789"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ.pop("FEDAPAY_SECRET_KEY", None)
os.environ.pop("FEDAPAY_WEBHOOK_SECRET", None)

from decimal import Decimal
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from schoolpay.core.db import get_engine, get_session_maker
from schoolpay.core.security import create_access_token, hash_password
from schoolpay.main import app
from schoolpay.models import (
    Base, User, Profile, UserRoleAssignment, Student, FeeArticle, StudentArticle,
    Invoice, PaymentTransaction, Subject,
)


@pytest.fixture(autouse=True)
def database():
    engine = get_engine()
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db(database):
    session = get_session_maker()()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    app.dependency_overrides = {}
    yield TestClient(app)
    app.dependency_overrides = {}


@pytest.fixture
def make_identity(db):
    def _make(role="admin", email=None, password="Password123!", first_name="Test", last_name="User"):
        user = User(
            email=email or f"{role}-{uuid4().hex[:8]}@ecole-demo.com",
            password_hash=hash_password(password),
            user_metadata={},
        )
        db.add(user)
        db.flush()
        db.add(Profile(user_id=user.id, first_name=first_name, last_name=last_name, email=user.email))
        if role:
            db.add(UserRoleAssignment(user_id=user.id, role=role))
        db.commit()
        return user
    return _make


@pytest.fixture
def auth_headers():
    def _headers(user=None, user_id=None):
        token = create_access_token({"sub": str(user_id or user.id)})
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture
def admin(make_identity):
    return make_identity("admin", first_name="Ada", last_name="Admin")


@pytest.fixture
def make_student(db, make_identity):
    def _make(matricule=None, first_name="Awa", last_name="Diallo"):
        user = make_identity("student", first_name=first_name, last_name=last_name)
        profile = db.query(Profile).filter_by(user_id=user.id).one()
        student = Student(
            user_id=user.id,
            profile_id=profile.id,
            matricule=matricule or f"STU-{uuid4().hex[:6]}",
        )
        db.add(student)
        db.commit()
        return student
    return _make


@pytest.fixture
def make_article_order(db):
    def _make(student, amount="10000", amount_paid="0", status="pending"):
        article = FeeArticle(name="Uniform", price=Decimal(amount))
        db.add(article)
        db.flush()
        order = StudentArticle(
            student_id=student.id,
            article_id=article.id,
            amount=Decimal(amount),
            amount_paid=Decimal(amount_paid),
            status=status,
        )
        db.add(order)
        db.commit()
        return order
    return _make


@pytest.fixture
def make_invoice(db):
    def _make(student, amount="50000", amount_paid="0", status="pending"):
        invoice = Invoice(
            student_id=student.id,
            invoice_number=f"INV-{uuid4().hex[:8]}",
            description="Tuition",
            amount=Decimal(amount),
            amount_paid=Decimal(amount_paid),
            status=status,
        )
        db.add(invoice)
        db.commit()
        return invoice
    return _make


@pytest.fixture
def make_transaction(db):
    def _make(student=None, amount="6000", payment_method="cash", status="pending",
              order=None, invoice=None, transaction_ref=None):
        transaction = PaymentTransaction(
            student_id=student.id if student else None,
            article_id=order.article_id if order else None,
            invoice_id=invoice.id if invoice else None,
            amount=Decimal(amount),
            payment_method=payment_method,
            status=status,
            transaction_ref=transaction_ref or f"TX-{uuid4().hex[:10]}",
        )
        db.add(transaction)
        db.commit()
        return transaction
    return _make


@pytest.fixture
def make_subject(db):
    def _make(name="Mathematics"):
        subject = Subject(name=name)
        db.add(subject)
        db.commit()
        return subject
    return _make
