# schoolpay/models/payment.py - Fee articles, student orders, invoices and payment transactions
from __future__ import annotations
import uuid
from datetime import date, datetime
from decimal import Decimal
from sqlalchemy import (
    String, Numeric, Date, DateTime, Boolean, ForeignKey, CheckConstraint, Index, UniqueConstraint, Uuid
)
from sqlalchemy.orm import Mapped, mapped_column
from schoolpay.models.base import Base

LEDGER_STATUSES = ("pending", "partial", "paid")
TRANSACTION_STATUSES = ("pending", "completed", "failed")


class FeeArticle(Base):
    __tablename__ = "fee_articles"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str | None] = mapped_column(String(512))
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal('0.00'))
    is_required: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    academic_year: Mapped[str | None] = mapped_column(String(16))

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_fee_articles_price_positive"),
    )


class StudentArticle(Base):
    """A student's order of a fee article"""
    __tablename__ = "student_articles"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("students.id", ondelete="CASCADE"), nullable=False)
    article_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("fee_articles.id", ondelete="CASCADE"), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    amount_paid: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal('0.00'))
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    payment_date: Mapped[datetime | None] = mapped_column(DateTime)
    academic_year: Mapped[str | None] = mapped_column(String(16))

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("status IN ('pending','partial','paid')", name="ck_student_articles_status"),
        CheckConstraint("amount >= 0", name="ck_student_articles_amount_positive"),
        CheckConstraint("amount_paid >= 0", name="ck_student_articles_amount_paid_positive"),
        UniqueConstraint("student_id", "article_id", name="uix_student_article"),
    )


class Invoice(Base):
    __tablename__ = "invoices"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("students.id", ondelete="CASCADE"), nullable=False)
    invoice_number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    description: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    amount_paid: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal('0.00'))
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    due_date: Mapped[date | None] = mapped_column(Date)
    payment_date: Mapped[datetime | None] = mapped_column(DateTime)
    academic_year: Mapped[str | None] = mapped_column(String(16))
    notes: Mapped[str | None] = mapped_column(String(1000))

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("status IN ('pending','partial','paid')", name="ck_invoice_status"),
        CheckConstraint("amount >= 0", name="ck_invoice_amount_positive"),
        CheckConstraint("amount_paid >= 0", name="ck_invoice_amount_paid_positive"),
        Index("ix_invoices_student", "student_id"),
    )


class PaymentTransaction(Base):
    __tablename__ = "payment_transactions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("students.id", ondelete="SET NULL"))
    article_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("fee_articles.id", ondelete="SET NULL"))
    invoice_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("invoices.id", ondelete="SET NULL"))
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    payment_method: Mapped[str] = mapped_column(String(16), nullable=False)  # cash|fedapay|card|momo|flooz
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    transaction_ref: Mapped[str | None] = mapped_column(String(64), index=True)
    notes: Mapped[str | None] = mapped_column(String(2000))

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("status IN ('pending','completed','failed')", name="ck_payment_transactions_status"),
        CheckConstraint("amount > 0", name="ck_payment_transactions_amount_positive"),
    )

    @property
    def is_cash(self) -> bool:
        return self.payment_method == "cash"
