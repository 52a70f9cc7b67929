# schoolpay/services/payment_gateway.py - FedaPay REST client
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional
import logging

import httpx

from schoolpay.core.config import settings
from schoolpay.core.exceptions import PaymentGatewayError

logger = logging.getLogger(__name__)


class FedaPayClient:
    """Creates gateway transactions and their hosted payment links"""

    def __init__(
        self,
        secret_key: str,
        base_url: str = None,
        timeout: float = None,
        currency: str = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.secret_key = secret_key
        self.base_url = (base_url or settings.FEDAPAY_API_URL).rstrip("/")
        self.timeout = timeout or settings.FEDAPAY_TIMEOUT_SECONDS
        self.currency = currency or settings.PAYMENT_CURRENCY_ISO
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self.transport,
            headers={
                "Authorization": f"Bearer {self.secret_key}",
                "Content-Type": "application/json",
            },
        )

    async def _post(
        self,
        path: str,
        payload: Optional[dict] = None,
        failure_message: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        POST to the gateway.

        A transport failure always reads "Payment gateway unreachable"; an error
        response uses `failure_message`, else the gateway's own message.
        """
        try:
            async with self._client() as client:
                response = await client.post(path, json=payload)
        except httpx.HTTPError as e:
            logger.error(f"FedaPay request to {path} failed: {e}")
            raise PaymentGatewayError("Payment gateway unreachable")

        try:
            data = response.json()
        except ValueError:
            data = {"message": response.text}
        if not isinstance(data, dict):
            data = {"data": data}

        if response.is_error:
            logger.error(f"FedaPay error on {path} ({response.status_code}): {data}")
            raise PaymentGatewayError(
                failure_message or data.get("message") or "Transaction failed",
                payload=data,
            )

        return data

    async def create_transaction(
        self,
        *,
        description: str,
        amount: Decimal,
        callback_url: Optional[str],
        customer: Dict[str, Any],
        metadata: Dict[str, Any],
    ) -> Dict[str, Any]:
        """
        Create a gateway transaction.

        Returns:
            The gateway transaction object (contains at least ``id``)
        """
        payload = {
            "description": description,
            "amount": int(Decimal(amount).quantize(Decimal("1"), rounding=ROUND_HALF_UP)),
            "currency": {"iso": self.currency},
            "callback_url": callback_url,
            "customer": customer,
            "metadata": metadata,
        }
        data = await self._post("/transactions", payload)

        transaction = data.get("v1/transaction") or (data.get("v1") or {}).get("transaction")
        if not transaction or "id" not in transaction:
            raise PaymentGatewayError("Unexpected response from payment gateway", payload=data)

        logger.info(f"FedaPay transaction created: {transaction['id']}")
        return transaction

    async def create_token(self, gateway_transaction_id: Any) -> Dict[str, Any]:
        """
        Generate the hosted payment link for a gateway transaction.

        Returns:
            Dict with ``token`` and ``url``
        """
        return await self._post(
            f"/transactions/{gateway_transaction_id}/token",
            failure_message="Failed to generate payment link",
        )


def get_payment_gateway() -> Optional[FedaPayClient]:
    """FastAPI dependency; None when no FedaPay key is configured"""
    if not settings.FEDAPAY_SECRET_KEY:
        return None
    return FedaPayClient(settings.FEDAPAY_SECRET_KEY)
