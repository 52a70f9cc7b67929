# schoolpay/services/ledger.py - Atomic amount_paid/status updates for invoices and article orders
from sqlalchemy.orm import Session
from sqlalchemy import update, case
from datetime import datetime
from decimal import Decimal
from typing import Optional
import logging

from schoolpay.models.payment import Invoice, StudentArticle, PaymentTransaction

logger = logging.getLogger(__name__)


def _apply(db: Session, model, where, amount: Decimal, now: datetime) -> bool:
    """
    Add `amount` to amount_paid and recompute status in a single UPDATE.

    Every SET expression reads the pre-update row, so concurrent payments
    against the same row serialize on the row lock instead of overwriting
    each other. payment_date is kept once set and stamped the first time the
    row reaches its amount.
    """
    new_paid = model.amount_paid + amount
    reaches_amount = new_paid >= model.amount

    stmt = (
        update(model)
        .where(*where)
        .values(
            amount_paid=new_paid,
            status=case((reaches_amount, "paid"), else_="partial"),
            payment_date=case(
                (model.payment_date.is_not(None), model.payment_date),
                (reaches_amount, now),
                else_=None,
            ),
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    return db.execute(stmt).rowcount > 0


def apply_to_article(db: Session, transaction: PaymentTransaction, now: Optional[datetime] = None) -> bool:
    """Apply a completed transaction to the student's order of its article"""
    if not transaction.article_id or not transaction.student_id:
        return False

    applied = _apply(
        db,
        StudentArticle,
        (
            StudentArticle.student_id == transaction.student_id,
            StudentArticle.article_id == transaction.article_id,
        ),
        transaction.amount,
        now or datetime.utcnow(),
    )
    if not applied:
        logger.warning(
            f"No article order for student {transaction.student_id} / article {transaction.article_id}"
        )
    return applied


def apply_to_invoice(db: Session, transaction: PaymentTransaction, now: Optional[datetime] = None) -> bool:
    """Apply a completed transaction to its invoice"""
    if not transaction.invoice_id:
        return False

    applied = _apply(
        db,
        Invoice,
        (Invoice.id == transaction.invoice_id,),
        transaction.amount,
        now or datetime.utcnow(),
    )
    if not applied:
        logger.warning(f"Invoice {transaction.invoice_id} not found for transaction {transaction.id}")
    return applied


def apply_payment(db: Session, transaction: PaymentTransaction) -> None:
    now = datetime.utcnow()
    if apply_to_article(db, transaction, now):
        logger.info(f"Article order updated for transaction {transaction.id}")
    if apply_to_invoice(db, transaction, now):
        logger.info(f"Invoice {transaction.invoice_id} updated for transaction {transaction.id}")
