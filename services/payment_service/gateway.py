"""
Clients for the external payment gateways.

The order core never trusts our own `is_paid` flag alone; before redeeming
an out-of-band payment it asks the gateway again whether the external
order/session really reached a captured state.
"""
import os
import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional

import httpx

from .models import PaymentMethod

logger = logging.getLogger(__name__)

PAYPAL_API_BASE = os.getenv("PAYPAL_API_BASE", "https://api-m.sandbox.paypal.com")
PAYPAL_CLIENT_ID = os.getenv("PAYPAL_CLIENT_ID", "")
PAYPAL_CLIENT_SECRET = os.getenv("PAYPAL_CLIENT_SECRET", "")
QR_GATEWAY_URL = os.getenv("QR_GATEWAY_URL", "http://localhost:8010")
QR_GATEWAY_API_KEY = os.getenv("QR_GATEWAY_API_KEY", "")
GATEWAY_TIMEOUT = float(os.getenv("PAYMENT_GATEWAY_TIMEOUT", "10.0"))


class PaymentGateway(ABC):
    """Base client. Subclasses say where the status lives and what counts as captured."""

    completed_statuses: frozenset = frozenset()

    def __init__(
        self,
        base_url: str,
        timeout: float = GATEWAY_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url, timeout=self.timeout, transport=self._transport
        )

    @abstractmethod
    async def fetch_status(self, gateway_order_id: str) -> str:
        """Raw status string the gateway reports for this order/session."""

    async def is_completed(self, gateway_order_id: str) -> bool:
        status = await self.fetch_status(gateway_order_id)
        logger.info(f"{type(self).__name__} reports {gateway_order_id} as {status}")
        return status.upper() in self.completed_statuses


class PayPalGateway(PaymentGateway):
    completed_statuses = frozenset({"COMPLETED"})

    def __init__(self, client_id: str = PAYPAL_CLIENT_ID, client_secret: str = PAYPAL_CLIENT_SECRET,
                 base_url: str = PAYPAL_API_BASE, **kwargs):
        super().__init__(base_url, **kwargs)
        self.client_id = client_id
        self.client_secret = client_secret

    async def _access_token(self, client: httpx.AsyncClient) -> str:
        resp = await client.post(
            "/v1/oauth2/token",
            data={"grant_type": "client_credentials"},
            auth=(self.client_id, self.client_secret),
        )
        resp.raise_for_status()
        return resp.json()["access_token"]

    async def fetch_status(self, gateway_order_id: str) -> str:
        async with self._client() as client:
            token = await self._access_token(client)
            resp = await client.get(
                f"/v2/checkout/orders/{gateway_order_id}",
                headers={"Authorization": f"Bearer {token}"},
            )
            resp.raise_for_status()
            return str(resp.json().get("status", ""))


class QRCodeGateway(PaymentGateway):
    completed_statuses = frozenset({"SUCCESS", "COMPLETED", "PAID"})

    def __init__(self, base_url: str = QR_GATEWAY_URL, api_key: str = QR_GATEWAY_API_KEY, **kwargs):
        super().__init__(base_url, **kwargs)
        self.api_key = api_key

    async def fetch_status(self, gateway_order_id: str) -> str:
        async with self._client() as client:
            resp = await client.get(
                f"/payments/{gateway_order_id}",
                headers={"X-API-Key": self.api_key},
            )
            resp.raise_for_status()
            return str(resp.json().get("status", ""))


def default_gateways() -> Dict[str, PaymentGateway]:
    return {
        PaymentMethod.PAYPAL.value: PayPalGateway(),
        PaymentMethod.QR_CODE.value: QRCodeGateway(),
    }
