# schoolpay/schemas/payment.py - Payment initiation, cash validation and gateway webhook payloads
from pydantic import BaseModel, Field
from typing import Any, Dict, Literal, Optional, Union
from decimal import Decimal
from uuid import UUID

GATEWAY_METHODS = ("fedapay", "card", "momo", "flooz")


class ValidateCashPaymentRequest(BaseModel):
    transaction_id: Optional[str] = Field(None, alias="transactionId")

    class Config:
        populate_by_name = True


class InitiatePaymentRequest(BaseModel):
    amount: Optional[Decimal] = Field(None, gt=0)
    student_id: Optional[UUID] = Field(None, alias="studentId")
    article_id: Optional[UUID] = Field(None, alias="articleId")
    invoice_id: Optional[UUID] = Field(None, alias="invoiceId")
    payment_method: Literal["cash", "fedapay", "card", "momo", "flooz"] = Field("cash", alias="paymentMethod")
    description: Optional[str] = None
    callback_url: Optional[str] = Field(None, alias="callbackUrl")

    class Config:
        populate_by_name = True

    @property
    def uses_gateway(self) -> bool:
        return self.payment_method in GATEWAY_METHODS


class GatewayTransaction(BaseModel):
    """The `entity.object` of a FedaPay Transaction event"""
    id: Union[int, str]
    status: Optional[str] = None
    amount: Optional[Decimal] = None
    metadata: Optional[Dict[str, Any]] = None

    @property
    def reference(self) -> str:
        return str(self.id)

    @property
    def local_transaction_id(self) -> Optional[str]:
        if not self.metadata:
            return None
        value = self.metadata.get("transaction_id")
        return str(value) if value else None


class TransactionEvent(BaseModel):
    kind: Literal["transaction"] = "transaction"
    event: Optional[str] = None
    transaction: GatewayTransaction


class IgnoredEvent(BaseModel):
    kind: Literal["ignored"] = "ignored"
    event: Optional[str] = None
    entity_name: Optional[str] = None


WebhookEvent = Union[TransactionEvent, IgnoredEvent]
