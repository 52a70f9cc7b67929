# schoolpay/api/routers/payments.py - Payment initiation, gateway webhook and cash validation
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from typing import Optional
import json
import logging

from schoolpay.core.config import settings
from schoolpay.core.db import get_db
from schoolpay.core.exceptions import BadRequestError
from schoolpay.core.security import WebhookSignatureVerifier
from schoolpay.api.deps.auth import AdminCapability, AuthContext, get_current_user, require_admin
from schoolpay.schemas.payment import InitiatePaymentRequest, ValidateCashPaymentRequest
from schoolpay.services.payment_gateway import FedaPayClient, get_payment_gateway
from schoolpay.services.payment_service import PaymentService, parse_webhook_event

logger = logging.getLogger(__name__)
router = APIRouter()

SIGNATURE_HEADER = "X-FEDAPAY-SIGNATURE"


@router.post("/initiate-payment")
async def initiate_payment(
    data: InitiatePaymentRequest,
    request: Request,
    ctx: AuthContext = Depends(get_current_user),
    db: Session = Depends(get_db),
    gateway: Optional[FedaPayClient] = Depends(get_payment_gateway),
):
    """Record a pending transaction; gateway methods also get a checkout URL"""
    service = PaymentService(db, gateway=gateway)
    return await service.initiate_payment(ctx, data, origin=request.headers.get("origin"))


@router.post("/payment-webhook")
async def payment_webhook(
    request: Request,
    db: Session = Depends(get_db)
):
    """
    Receive FedaPay transaction events.

    The signature header is checked only when FEDAPAY_WEBHOOK_SECRET is set.
    """
    raw_body = await request.body()

    if settings.webhook_signature_required:
        verifier = WebhookSignatureVerifier(
            settings.FEDAPAY_WEBHOOK_SECRET,
            tolerance_seconds=settings.FEDAPAY_SIGNATURE_TOLERANCE_SECONDS,
        )
        verifier.verify(request.headers.get(SIGNATURE_HEADER), raw_body)

    try:
        body = json.loads(raw_body or b"null")
    except ValueError:
        raise BadRequestError("Invalid JSON body")

    logger.info(f"Webhook received: {raw_body[:500]!r}")
    event = parse_webhook_event(body)
    return PaymentService(db).handle_webhook(event)


@router.post("/validate-cash-payment")
async def validate_cash_payment(
    data: Optional[ValidateCashPaymentRequest] = None,
    admin: AdminCapability = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Mark a cash transaction as completed and apply it to the ledger"""
    return PaymentService(db).validate_cash_payment(admin, data.transaction_id if data else None)
