import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Protocol

import httpx

from app.config import settings
from app.models.status import TransactionStatus
from app.services.exceptions import GatewayUnreachable

logger = logging.getLogger(__name__)

# ISO 4217 currencies without a minor unit in practice.
ZERO_DECIMAL_CURRENCIES = frozenset(
    {"BIF", "CLP", "DJF", "GNF", "JPY", "KMF", "KRW", "PYG", "RWF", "UGX", "VND", "XAF", "XOF"}
)
CENT = Decimal("0.01")


def gateway_amount(amount: Decimal, currency: str) -> int | float:
    """Amount as a JSON number, without losing any part of it.

    Raises ``ValueError`` when the amount cannot be expressed in the currency.
    """
    amount = Decimal(amount)
    if currency.upper() in ZERO_DECIMAL_CURRENCIES:
        if amount != amount.to_integral_value():
            raise ValueError(f"{currency} amounts must be whole numbers, got {amount}")
        return int(amount)
    if amount != amount.quantize(CENT):
        raise ValueError(f"{currency} amounts allow at most two decimal places, got {amount}")
    if amount == amount.to_integral_value():
        return int(amount)
    return float(amount.quantize(CENT))


@dataclass(frozen=True)
class GatewayVerification:
    success: bool
    status: TransactionStatus
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CheckoutSession:
    transaction_id: str
    checkout_url: str


class PaymentVerifier(Protocol):
    async def verify(self, transaction_id: str) -> GatewayVerification: ...


class GatewayHttpClient:
    """Shared JSON-over-HTTP plumbing for payment gateway clients."""

    name = "gateway"

    def __init__(
        self,
        base_url: str,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url
        self.headers = {"Accept": "application/json", **(headers or {})}
        self.timeout = timeout if timeout is not None else settings.GATEWAY_TIMEOUT_SECONDS
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers,
            timeout=self.timeout,
            transport=self.transport,
        )

    async def _request_json(self, method: str, path: str, **kwargs) -> dict[str, Any]:
        try:
            async with self._client() as client:
                response = await client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("%s request %s %s failed: %s", self.name, method, path, exc)
            raise GatewayUnreachable(f"{self.name} request failed: {exc.__class__.__name__}") from exc

        if response.status_code >= 400:
            logger.warning("%s returned HTTP %s for %s %s", self.name, response.status_code, method, path)
            raise GatewayUnreachable(f"{self.name} returned HTTP {response.status_code}")

        try:
            body = response.json()
        except ValueError as exc:
            raise GatewayUnreachable(f"{self.name} returned a non-JSON response") from exc
        if not isinstance(body, dict):
            raise GatewayUnreachable(f"{self.name} returned an unexpected response shape")
        return body
