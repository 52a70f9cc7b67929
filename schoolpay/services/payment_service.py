# schoolpay/services/payment_service.py - Payment initiation and reconciliation (webhook and cash)
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional
from uuid import UUID
import json
import logging
import secrets
import string
import time

from pydantic import ValidationError

from schoolpay.api.deps.auth import AdminCapability, AuthContext
from schoolpay.core.config import settings
from schoolpay.core.exceptions import BadRequestError, NotFoundError, PaymentGatewayError, ServiceError
from schoolpay.models.notification import Notification
from schoolpay.models.payment import PaymentTransaction
from schoolpay.models.student import Student
from schoolpay.models.user import Profile, UserRoleAssignment, AppRole
from schoolpay.schemas.notification import PaymentMetadata, CashPaymentMetadata
from schoolpay.schemas.payment import (
    GatewayTransaction, IgnoredEvent, InitiatePaymentRequest, TransactionEvent, WebhookEvent
)
from schoolpay.services import ledger
from schoolpay.services.payment_gateway import FedaPayClient

logger = logging.getLogger(__name__)

# Gateway status -> local transaction status, matched exactly; anything else stays pending
GATEWAY_STATUS_MAP = {
    "approved": "completed",
    "declined": "failed",
    "cancelled": "failed",
    "refunded": "failed",
}

_REF_ALPHABET = string.ascii_lowercase + string.digits


def map_gateway_status(status: Optional[str]) -> str:
    return GATEWAY_STATUS_MAP.get(status or "", "pending")


def format_amount(amount: Decimal) -> str:
    amount = Decimal(amount)
    if amount == amount.to_integral_value():
        return str(amount.quantize(Decimal("1")))
    return str(amount.normalize())


def generate_transaction_ref() -> str:
    suffix = "".join(secrets.choice(_REF_ALPHABET) for _ in range(9))
    return f"TX-{int(time.time() * 1000)}-{suffix}"


def parse_webhook_event(body: Any) -> WebhookEvent:
    """
    Classify a gateway webhook body.

    Raises:
        BadRequestError: If the body is not an object or a Transaction entity is malformed
    """
    if not isinstance(body, dict):
        raise BadRequestError("Invalid webhook payload")

    entity = body.get("entity")
    event = body.get("event") if isinstance(body.get("event"), str) else None
    if not isinstance(entity, dict) or entity.get("name") != "Transaction":
        name = entity.get("name") if isinstance(entity, dict) else None
        return IgnoredEvent(event=event, entity_name=name)

    try:
        transaction = GatewayTransaction.model_validate(entity.get("object") or {})
    except ValidationError as e:
        raise BadRequestError(f"Invalid transaction payload: {e.errors()[0]['msg']}")

    return TransactionEvent(event=event, transaction=transaction)


class PaymentService:
    """Reconciles payment transactions against article orders and invoices"""

    def __init__(self, db: Session, gateway: Optional[FedaPayClient] = None):
        self.db = db
        self.gateway = gateway

    # ==================== LOOKUPS ====================

    def get_transaction(self, transaction_id: Any) -> Optional[PaymentTransaction]:
        try:
            tx_uuid = transaction_id if isinstance(transaction_id, UUID) else UUID(str(transaction_id))
        except ValueError:
            return None
        return self.db.get(PaymentTransaction, tx_uuid)

    def find_by_reference(self, reference: str) -> Optional[PaymentTransaction]:
        return self.db.execute(
            select(PaymentTransaction).where(PaymentTransaction.transaction_ref == reference)
        ).scalars().first()

    # ==================== STATUS TRANSITIONS ====================

    def _set_status(
        self,
        transaction: PaymentTransaction,
        new_status: str,
        from_status: Optional[str] = None,
        **conditions,
    ) -> bool:
        """
        Conditionally move a transaction to `new_status`.

        With `from_status`, the row must still hold that status when the UPDATE runs.

        Returns:
            True if this call changed the row; False if it already had the status
            or another request got there first
        """
        stmt = (
            update(PaymentTransaction)
            .where(PaymentTransaction.id == transaction.id, PaymentTransaction.status != new_status)
            .values(status=new_status, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        if from_status is not None:
            stmt = stmt.where(PaymentTransaction.status == from_status)
        for column, value in conditions.items():
            stmt = stmt.where(getattr(PaymentTransaction, column) == value)

        changed = self.db.execute(stmt).rowcount > 0
        if changed:
            set_committed_value(transaction, "status", new_status)
        return changed

    def _complete(self, transaction: PaymentTransaction, title: str, message: str) -> None:
        """Ledger update and student notification for a transaction that just completed"""
        ledger.apply_payment(self.db, transaction)
        self._notify_student(transaction, title, message)

    # ==================== NOTIFICATIONS ====================

    def _notify_student(self, transaction: PaymentTransaction, title: str, message: str) -> None:
        if not transaction.student_id:
            return

        user_id = self.db.execute(
            select(Student.user_id).where(Student.id == transaction.student_id)
        ).scalar_one_or_none()
        if not user_id:
            logger.warning(f"Student {transaction.student_id} not found; no payment notification sent")
            return

        self.db.add(Notification(
            user_id=user_id,
            type="payment",
            title=title,
            message=message,
            meta=PaymentMetadata(transaction_id=transaction.id).model_dump(mode="json"),
        ))

    def _notify_admins_of_cash_request(self, transaction: PaymentTransaction, student: Student) -> int:
        admin_ids = self.db.execute(
            select(UserRoleAssignment.user_id).where(UserRoleAssignment.role == AppRole.ADMIN.value)
        ).scalars().all()

        profile = self.db.get(Profile, student.profile_id)
        who = profile.full_name if profile else student.matricule
        for admin_id in admin_ids:
            self.db.add(Notification(
                user_id=admin_id,
                type="cash_payment",
                title="Cash payment pending",
                message=(
                    f"{who} ({student.matricule}) declared a cash payment of "
                    f"{format_amount(transaction.amount)} {settings.CURRENCY}. Reference: {transaction.transaction_ref}"
                ),
                meta=CashPaymentMetadata(transaction_id=transaction.id).model_dump(mode="json"),
            ))
        return len(admin_ids)

    # ==================== WEBHOOK ====================

    def handle_webhook(self, event: WebhookEvent) -> Dict[str, Any]:
        """
        Reconcile a gateway event with the local transaction.

        Raises:
            NotFoundError: If no local transaction matches the event
        """
        if isinstance(event, IgnoredEvent):
            logger.info(f"Ignoring webhook for entity {event.entity_name!r} (event={event.event})")
            return {"message": "Non-transaction event ignored"}

        gateway_tx = event.transaction
        new_status = map_gateway_status(gateway_tx.status)
        logger.info(f"Processing transaction: {gateway_tx.reference} Status: {gateway_tx.status}")

        transaction = self.find_by_reference(gateway_tx.reference)
        if transaction is None and gateway_tx.local_transaction_id:
            transaction = self.get_transaction(gateway_tx.local_transaction_id)
        if transaction is None:
            logger.error(f"Transaction not found: {gateway_tx.reference}")
            raise NotFoundError("Transaction not found")

        # completed and failed are final; later events are acknowledged without change
        if transaction.status != "pending":
            if transaction.status != new_status:
                logger.warning(
                    f"Transaction {transaction.id} already {transaction.status}; "
                    f"{gateway_tx.status!r} event acknowledged without change"
                )
            else:
                logger.info(f"Transaction {transaction.id} already {new_status}; nothing to apply")
            return {"success": True}

        if new_status == "pending":
            logger.info(f"Transaction {transaction.id} still pending")
            return {"success": True}

        try:
            transitioned = self._set_status(transaction, new_status, from_status="pending")
            if transitioned and new_status == "completed":
                self._complete(
                    transaction,
                    title="Payment confirmed",
                    message=f"Your payment of {format_amount(transaction.amount)} {settings.CURRENCY} has been confirmed.",
                )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Webhook reconciliation failed for {transaction.id}: {e}")
            raise ServiceError("Failed to update transaction")

        if not transitioned:
            logger.info(f"Transaction {transaction.id} was settled by a concurrent request; nothing to apply")
        else:
            logger.info(f"Transaction {transaction.id} updated to {new_status}")
        return {"success": True}

    # ==================== CASH VALIDATION ====================

    def validate_cash_payment(self, admin: AdminCapability, transaction_id: Optional[str]) -> Dict[str, Any]:
        """
        Mark a cash transaction as completed and apply it.

        Raises:
            BadRequestError: If no id is given or the transaction is not a cash payment
            NotFoundError: If the transaction does not exist
        """
        if not transaction_id:
            raise BadRequestError("transactionId is required")

        logger.info(f"Validating cash payment transaction: {transaction_id} (admin {admin.user_id})")

        transaction = self.get_transaction(transaction_id)
        if transaction is None:
            raise NotFoundError("Transaction not found")

        if not transaction.is_cash:
            raise BadRequestError("This transaction is not a cash payment")

        if transaction.status == "completed":
            return {"success": True, "message": "Already validated"}

        try:
            if not self._set_status(transaction, "completed", payment_method="cash"):
                self.db.rollback()
                return {"success": True, "message": "Already validated"}

            self._complete(
                transaction,
                title="Payment validated",
                message=(
                    f"Your cash payment of {format_amount(transaction.amount)} {settings.CURRENCY} "
                    f"has been validated by the administration."
                ),
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Transaction update error: {e}")
            raise ServiceError("Unable to validate the transaction")

        logger.info(f"Cash transaction {transaction.id} validated")
        return {"success": True}

    # ==================== INITIATION ====================

    async def initiate_payment(
        self,
        ctx: AuthContext,
        data: InitiatePaymentRequest,
        origin: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Record a pending transaction and, for gateway methods, open a FedaPay checkout.

        Raises:
            BadRequestError: If the amount or the article/invoice target is missing
            NotFoundError: If the student does not exist
            PaymentGatewayError: If FedaPay rejects the transaction
        """
        if not data.amount or not (data.article_id or data.invoice_id):
            raise BadRequestError("Incomplete payment data")

        student = self.db.get(Student, data.student_id) if data.student_id else None
        if student is None:
            raise NotFoundError("Student not found")

        if data.uses_gateway and self.gateway is None:
            raise ServiceError("FedaPay configuration missing")

        transaction = PaymentTransaction(
            student_id=student.id,
            article_id=data.article_id,
            invoice_id=data.invoice_id,
            amount=data.amount,
            payment_method=data.payment_method,
            status="pending",
            transaction_ref=generate_transaction_ref(),
            notes=data.description,
        )
        self.db.add(transaction)
        try:
            self.db.flush()
            if not data.uses_gateway:
                notified = self._notify_admins_of_cash_request(transaction, student)
                logger.info(f"Cash payment {transaction.id} declared; {notified} admin(s) notified")
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Transaction creation error: {e}")
            raise ServiceError("Failed to create the transaction")

        logger.info(f"Transaction {transaction.id} created by {ctx.user_id} ({data.payment_method})")

        if not data.uses_gateway:
            return {
                "success": True,
                "transactionId": str(transaction.id),
                "transactionRef": transaction.transaction_ref,
                "message": "Cash payment request recorded. Please go to the cashier's desk.",
            }

        return await self._open_gateway_checkout(transaction, student, data, origin)

    async def _open_gateway_checkout(
        self,
        transaction: PaymentTransaction,
        student: Student,
        data: InitiatePaymentRequest,
        origin: Optional[str],
    ) -> Dict[str, Any]:
        profile = self.db.get(Profile, student.profile_id)
        customer = {
            "firstname": profile.first_name if profile else "",
            "lastname": profile.last_name if profile else "",
            "email": profile.email if profile else None,
        }
        metadata = {
            "transaction_id": str(transaction.id),
            "transaction_ref": transaction.transaction_ref,
            "student_id": str(student.id),
            "article_id": str(data.article_id) if data.article_id else None,
            "invoice_id": str(data.invoice_id) if data.invoice_id else None,
        }
        callback_url = data.callback_url or (f"{origin}/articles" if origin else None)

        try:
            gateway_tx = await self.gateway.create_transaction(
                description=data.description or f"Article payment - {student.matricule}",
                amount=transaction.amount,
                callback_url=callback_url,
                customer=customer,
                metadata=metadata,
            )
        except PaymentGatewayError as e:
            transaction.status = "failed"
            transaction.notes = json.dumps(e.payload)
            self.db.commit()
            raise PaymentGatewayError(f"FedaPay error: {e.message}", payload=e.payload)

        token = await self.gateway.create_token(gateway_tx["id"])

        transaction.transaction_ref = str(gateway_tx["id"])
        transaction.notes = f"FedaPay Transaction ID: {gateway_tx['id']}"
        self.db.commit()

        return {
            "success": True,
            "paymentUrl": token.get("url"),
            "transactionId": str(transaction.id),
            "fedapayTransactionId": gateway_tx["id"],
        }
