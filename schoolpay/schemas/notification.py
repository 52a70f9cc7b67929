# schoolpay/schemas/notification.py - Notification output and typed metadata payloads
from pydantic import BaseModel, Field, ValidationError
from typing import Any, Dict, Literal, Optional, Union
from datetime import datetime
from uuid import UUID


class PaymentMetadata(BaseModel):
    type: Literal["payment"] = "payment"
    transaction_id: UUID


class CashPaymentMetadata(BaseModel):
    type: Literal["cash_payment"] = "cash_payment"
    transaction_id: UUID


class UnknownMetadata(BaseModel):
    type: Literal["unknown"] = "unknown"
    raw: Dict[str, Any] = Field(default_factory=dict)


NotificationMetadata = Union[PaymentMetadata, CashPaymentMetadata, UnknownMetadata]

_METADATA_TYPES = {
    "payment": PaymentMetadata,
    "cash_payment": CashPaymentMetadata,
}


def parse_notification_metadata(raw: Optional[Dict[str, Any]], notification_type: Optional[str] = None) -> NotificationMetadata:
    """Resolve stored metadata to its typed variant, falling back to UnknownMetadata"""
    if not raw:
        return UnknownMetadata()

    model = _METADATA_TYPES.get(raw.get("type") or notification_type)
    if model is None:
        return UnknownMetadata(raw=raw)

    try:
        return model.model_validate({**raw, "type": model.model_fields["type"].default})
    except ValidationError:
        return UnknownMetadata(raw=raw)


class NotificationOut(BaseModel):
    id: UUID
    user_id: UUID
    type: str
    title: str
    message: str
    metadata: Optional[Dict[str, Any]] = Field(None, validation_alias="meta")
    transaction_id: Optional[UUID] = None
    is_read: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @classmethod
    def from_model(cls, notification) -> "NotificationOut":
        out = cls.model_validate(notification)
        parsed = parse_notification_metadata(notification.meta, notification.type)
        out.transaction_id = getattr(parsed, "transaction_id", None)
        return out
