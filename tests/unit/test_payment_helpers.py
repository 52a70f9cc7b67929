from decimal import Decimal
from uuid import uuid4
import re

import pytest

from schoolpay.core.exceptions import BadRequestError
from schoolpay.schemas.notification import (
    CashPaymentMetadata, PaymentMetadata, UnknownMetadata, parse_notification_metadata,
)
from schoolpay.schemas.payment import IgnoredEvent, TransactionEvent
from schoolpay.services.payment_service import (
    format_amount, generate_transaction_ref, map_gateway_status, parse_webhook_event,
)


@pytest.mark.parametrize("gateway_status,expected", [
    ("approved", "completed"),
    ("APPROVED", "pending"),
    ("Declined", "pending"),
    ("declined", "failed"),
    ("cancelled", "failed"),
    ("refunded", "failed"),
    ("pending", "pending"),
    ("transferred", "pending"),
    (None, "pending"),
])
def test_status_mapping(gateway_status, expected):
    assert map_gateway_status(gateway_status) == expected


def test_non_transaction_entity_is_ignored():
    event = parse_webhook_event({"entity": {"name": "Customer", "object": {}}, "event": "customer.created"})
    assert isinstance(event, IgnoredEvent)
    assert event.entity_name == "Customer"


def test_missing_entity_is_ignored():
    assert isinstance(parse_webhook_event({"event": "ping"}), IgnoredEvent)


def test_transaction_event_is_parsed():
    tx_id = str(uuid4())
    event = parse_webhook_event({
        "event": "transaction.approved",
        "entity": {"name": "Transaction", "object": {"id": 4242, "status": "approved",
                                                     "metadata": {"transaction_id": tx_id}}},
    })
    assert isinstance(event, TransactionEvent)
    assert event.transaction.reference == "4242"
    assert event.transaction.local_transaction_id == tx_id


def test_transaction_without_status_maps_to_pending():
    event = parse_webhook_event({"entity": {"name": "Transaction", "object": {"id": 6006}}})
    assert isinstance(event, TransactionEvent)
    assert event.transaction.status is None
    assert map_gateway_status(event.transaction.status) == "pending"


def test_transaction_without_id_is_rejected():
    with pytest.raises(BadRequestError):
        parse_webhook_event({"entity": {"name": "Transaction", "object": {"status": "approved"}}})


def test_non_object_body_is_rejected():
    with pytest.raises(BadRequestError):
        parse_webhook_event(["not", "an", "object"])


def test_format_amount():
    assert format_amount(Decimal("6000.00")) == "6000"
    assert format_amount(Decimal("12.50")) == "12.5"


def test_transaction_ref_format():
    assert re.fullmatch(r"TX-\d{13}-[a-z0-9]{9}", generate_transaction_ref())


def test_notification_metadata_variants():
    tx_id = uuid4()
    assert isinstance(parse_notification_metadata({"transaction_id": str(tx_id)}, "payment"), PaymentMetadata)

    cash = parse_notification_metadata({"type": "cash_payment", "transaction_id": str(tx_id)})
    assert isinstance(cash, CashPaymentMetadata)
    assert cash.transaction_id == tx_id

    unknown = parse_notification_metadata({"foo": "bar"}, "announcement")
    assert isinstance(unknown, UnknownMetadata)
    assert unknown.raw == {"foo": "bar"}

    assert isinstance(parse_notification_metadata({"type": "payment", "transaction_id": "nope"}), UnknownMetadata)
    assert isinstance(parse_notification_metadata(None), UnknownMetadata)
