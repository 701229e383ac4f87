import httpx

from app.config import settings
from app.models.status import GatewayProvider, TransactionStatus
from app.services.gateway_client import GatewayHttpClient, GatewayVerification
from app.services.payments import map_gateway_status


class MoneyFusionClient(GatewayHttpClient):
    name = "MoneyFusion"
    provider = GatewayProvider.MONEYFUSION

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        base_url = base_url or settings.MONEYFUSION_API_URL
        if not base_url:
            raise ValueError("MONEYFUSION_API_URL is not set")
        super().__init__(base_url=base_url, timeout=timeout, transport=transport)

    async def verify(self, transaction_id: str) -> GatewayVerification:
        # MoneyFusion identifies a payment session by its tokenPay value.
        body = await self._request_json("GET", f"paiementNotif/{transaction_id}")
        data = body.get("data") or {}
        status = map_gateway_status(data.get("statut"))
        return GatewayVerification(
            success=status == TransactionStatus.SUCCESS,
            status=status,
            payload=body,
        )
