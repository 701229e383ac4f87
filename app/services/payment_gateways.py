from dataclasses import dataclass
from typing import Callable

from app.config import settings
from app.models.status import GatewayProvider
from app.services.gateway_client import PaymentVerifier
from app.services.moneroo_service import MonerooClient
from app.services.moneyfusion_service import MoneyFusionClient


@dataclass(frozen=True)
class PaymentGateway:
    provider: GatewayProvider
    create_client: Callable[[], PaymentVerifier]
    enabled: bool
    supports_checkout: bool = False


def get_payment_gateways() -> dict[str, PaymentGateway]:
    return {
        GatewayProvider.MONEROO.value: PaymentGateway(
            provider=GatewayProvider.MONEROO,
            create_client=MonerooClient,
            enabled=bool(settings.MONEROO_API_KEY),
            supports_checkout=True,
        ),
        GatewayProvider.MONEYFUSION.value: PaymentGateway(
            provider=GatewayProvider.MONEYFUSION,
            create_client=MoneyFusionClient,
            enabled=bool(settings.MONEYFUSION_API_URL),
        ),
    }


def get_enabled_providers() -> list[str]:
    return [provider for provider, gateway in get_payment_gateways().items() if gateway.enabled]


def get_payment_verifiers() -> dict[str, PaymentVerifier]:
    """Verifier per enabled provider. Also used as a FastAPI dependency."""
    return {
        provider: gateway.create_client()
        for provider, gateway in get_payment_gateways().items()
        if gateway.enabled
    }


def get_checkout_client() -> MonerooClient | None:
    """Client used to open hosted checkouts, or None when Moneroo is not configured."""
    gateway = get_payment_gateways()[GatewayProvider.MONEROO.value]
    if not gateway.enabled:
        return None
    return MonerooClient()
