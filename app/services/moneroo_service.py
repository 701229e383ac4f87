from decimal import Decimal

import httpx

from app.config import settings
from app.models.status import GatewayProvider, TransactionStatus
from app.services.exceptions import GatewayUnreachable
from app.services.gateway_client import CheckoutSession, GatewayHttpClient, GatewayVerification, gateway_amount
from app.services.payments import map_gateway_status


class MonerooClient(GatewayHttpClient):
    name = "Moneroo"
    provider = GatewayProvider.MONEROO

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        api_key = settings.MONEROO_API_KEY if api_key is None else api_key
        if not api_key:
            raise ValueError("MONEROO_API_KEY is not set")
        super().__init__(
            base_url=base_url or settings.MONEROO_API_URL,
            headers={"Authorization": f"Bearer {api_key}"},
            timeout=timeout,
            transport=transport,
        )

    async def verify(self, transaction_id: str) -> GatewayVerification:
        """Ask Moneroo for the current state of a payment."""
        body = await self._request_json("GET", f"payments/{transaction_id}/verify")
        data = body.get("data") or {}
        status = map_gateway_status(data.get("status") or body.get("status"))
        return GatewayVerification(
            success=status == TransactionStatus.SUCCESS,
            status=status,
            payload=body,
        )

    async def initialize_payment(
        self,
        *,
        amount: Decimal,
        currency: str,
        description: str,
        customer_email: str,
        customer_name: str | None,
        return_url: str,
        metadata: dict[str, str],
    ) -> CheckoutSession:
        """Create a Moneroo payment and return its id and hosted checkout URL."""
        first_name, _, last_name = (customer_name or "Customer").partition(" ")
        body = await self._request_json(
            "POST",
            "payments/initialize",
            json={
                "amount": gateway_amount(amount, currency),
                "currency": currency,
                "description": description,
                "return_url": return_url,
                "customer": {
                    "email": customer_email,
                    "first_name": first_name,
                    "last_name": last_name or first_name,
                },
                "metadata": metadata,
            },
        )
        data = body.get("data") or {}
        transaction_id = data.get("id")
        checkout_url = data.get("checkout_url")
        if not transaction_id or not checkout_url:
            raise GatewayUnreachable("Moneroo did not return a payment id and checkout URL")
        return CheckoutSession(transaction_id=str(transaction_id), checkout_url=checkout_url)
