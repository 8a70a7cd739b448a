import json

import httpx
import pytest

from app.core.exceptions import ConfigurationError, ProviderError
from app.core.config import ProviderConfig
from app.services.mercadopago import MercadoPagoClient, build_gateway

CONFIG = ProviderConfig(access_token="TEST-token", api_host="api.mercadopago.test")


def transport_for(routes, seen=None):
    """routes: {(method, path): (status, payload)}"""

    def handler(request: httpx.Request):
        if seen is not None:
            seen.append(request)
        status, payload = routes.get((request.method, request.url.path), (404, {"message": "not found"}))
        return httpx.Response(status, json=payload)

    return httpx.MockTransport(handler)


async def test_call_sends_bearer_token_and_json_body():
    seen = []
    client = MercadoPagoClient(CONFIG, transport=transport_for({("POST", "/preapproval"): (201, {"id": "pre-1"})}, seen))

    result = await client.call("POST", "/preapproval", {"payer_email": "ana@example.com"})

    assert result == {"id": "pre-1"}
    request = seen[0]
    assert request.url.host == "api.mercadopago.test"
    assert request.headers["Authorization"] == "Bearer TEST-token"
    assert json.loads(request.content) == {"payer_email": "ana@example.com"}


async def test_non_2xx_raises_with_status_and_payload():
    client = MercadoPagoClient(
        CONFIG, transport=transport_for({("GET", "/v1/payments/9"): (401, {"message": "invalid token"})})
    )

    with pytest.raises(ProviderError) as excinfo:
        await client.call("GET", "/v1/payments/9")

    assert excinfo.value.provider_status == 401
    assert excinfo.value.payload == {"message": "invalid token"}
    assert "invalid token" in excinfo.value.detail
    assert excinfo.value.status_code == 502


async def test_missing_token_is_a_configuration_error():
    client = MercadoPagoClient(ProviderConfig(access_token=""))
    with pytest.raises(ConfigurationError):
        await client.call("GET", "/preapproval/1")


async def test_unreachable_provider_is_retryable_provider_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = MercadoPagoClient(CONFIG, transport=httpx.MockTransport(handler))
    with pytest.raises(ProviderError) as excinfo:
        await client.call("GET", "/preapproval/1")
    assert excinfo.value.provider_status is None


async def test_gateway_falls_back_to_secondary_endpoint_on_404():
    seen = []
    gateway = build_gateway(
        CONFIG,
        transport=transport_for({("PUT", "/v1/subscriptions/pre-1"): (200, {"id": "pre-1", "status": "paused"})}, seen),
    )

    result = await gateway.update_subscription("pre-1", {"status": "paused"})

    assert result["status"] == "paused"
    assert [r.url.path for r in seen] == ["/preapproval/pre-1", "/v1/subscriptions/pre-1"]


async def test_gateway_falls_back_on_400():
    seen = []
    gateway = build_gateway(
        CONFIG,
        transport=transport_for(
            {
                ("GET", "/preapproval/pre-1"): (400, {"message": "bad request"}),
                ("GET", "/v1/subscriptions/pre-1"): (200, {"id": "pre-1", "status": "authorized"}),
            },
            seen,
        ),
    )

    result = await gateway.get_subscription("pre-1")
    assert result["status"] == "authorized"
    assert len(seen) == 2


async def test_gateway_does_not_retry_other_errors():
    seen = []
    gateway = build_gateway(
        CONFIG, transport=transport_for({("PUT", "/preapproval/pre-1"): (500, {"message": "boom"})}, seen)
    )

    with pytest.raises(ProviderError) as excinfo:
        await gateway.update_subscription("pre-1", {"status": "paused"})

    assert excinfo.value.provider_status == 500
    assert len(seen) == 1


async def test_gateway_raises_last_error_when_every_endpoint_fails():
    gateway = build_gateway(CONFIG, transport=transport_for({}))

    with pytest.raises(ProviderError) as excinfo:
        await gateway.get_subscription("gone")
    assert excinfo.value.is_not_found
