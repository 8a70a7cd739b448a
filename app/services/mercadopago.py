"""
Agendo Backend — Mercado Pago Integration
Authenticated REST client plus the subscription gateway that owns the
provider's endpoint shapes.
"""
import logging
from typing import Any, Optional, Sequence

import httpx

from app.core.config import ProviderConfig
from app.core.exceptions import ConfigurationError, ProviderError

logger = logging.getLogger(__name__)

# Status codes that mean "wrong endpoint shape", worth one more try
FALLBACK_STATUSES = (400, 404)


class MercadoPagoClient:
    """Thin JSON client. Non-2xx answers raise ProviderError."""

    def __init__(self, config: ProviderConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self._transport = transport

    async def call(self, method: str, path: str, body: Optional[dict] = None) -> Any:
        if not self.config.access_token:
            raise ConfigurationError("Mercado Pago access token is not configured")

        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.config.access_token}",
        }
        try:
            async with httpx.AsyncClient(
                base_url=self.config.base_url,
                timeout=self.config.timeout,
                transport=self._transport,
            ) as client:
                response = await client.request(method, path, json=body, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"Mercado Pago {method} {path} unreachable: {e}")
            raise ProviderError(f"Mercado Pago is unreachable: {e}") from e

        try:
            payload = response.json() if response.content else {}
        except ValueError:
            if response.is_success:
                raise ProviderError(
                    "Failed to parse Mercado Pago response",
                    provider_status=response.status_code,
                )
            payload = {"raw": response.text}

        if response.is_success:
            return payload

        message = payload.get("message") if isinstance(payload, dict) else None
        logger.warning(f"Mercado Pago {method} {path} failed with HTTP {response.status_code}")
        raise ProviderError(
            f"Mercado Pago API error: {message or f'HTTP {response.status_code}'}",
            provider_status=response.status_code,
            payload=payload,
        )


class SubscriptionGateway:
    """
    Subscription-level operations against Mercado Pago.

    The provider exposes the same subscription under two surfaces
    (`/preapproval` and the newer `/v1/subscriptions`). Reads and updates try
    each shape in order, moving on only for 400/404 answers.
    """

    subscription_endpoints: Sequence[str] = (
        "/preapproval/{id}",
        "/v1/subscriptions/{id}",
    )

    def __init__(self, client: MercadoPagoClient):
        self.client = client

    @property
    def config(self) -> ProviderConfig:
        return self.client.config

    async def create_plan(self, payload: dict) -> dict:
        return await self.client.call("POST", "/preapproval_plan", payload)

    async def create_subscription(self, payload: dict) -> dict:
        return await self.client.call("POST", "/preapproval", payload)

    async def get_payment(self, payment_id: str) -> dict:
        return await self.client.call("GET", f"/v1/payments/{payment_id}")

    async def get_subscription(self, remote_id: str) -> dict:
        return await self._call_with_fallback("GET", remote_id)

    async def update_subscription(self, remote_id: str, body: dict) -> dict:
        return await self._call_with_fallback("PUT", remote_id, body)

    async def _call_with_fallback(self, method: str, remote_id: str, body: Optional[dict] = None):
        last_error: Optional[ProviderError] = None
        for template in self.subscription_endpoints:
            path = template.format(id=remote_id)
            try:
                return await self.client.call(method, path, body)
            except ProviderError as e:
                if e.provider_status not in FALLBACK_STATUSES:
                    raise
                logger.info(f"Mercado Pago {method} {path} answered {e.provider_status}, trying next endpoint")
                last_error = e
        raise last_error


def build_gateway(config: ProviderConfig, transport: Optional[httpx.AsyncBaseTransport] = None) -> SubscriptionGateway:
    return SubscriptionGateway(MercadoPagoClient(config, transport=transport))
