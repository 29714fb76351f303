"""
Tests for MercadoPagoProvider.

Uses httpx.MockTransport so no request leaves the process.
"""

import json

import httpx
import pytest

from app.exceptions import PaymentProviderError
from app.models.domain import CheckoutRequest, PurchaseKey
from app.services.mercadopago_provider import MercadoPagoConfig, MercadoPagoProvider

BASE_URL = "https://api.mercadopago.test"


def make_provider(handler, **config_overrides) -> MercadoPagoProvider:
    """Provider whose HTTP client is served by the given handler."""
    config = MercadoPagoConfig(
        access_token="TEST-token",
        api_base_url=BASE_URL,
        success_url="https://app.example/success",
        failure_url="https://app.example/failure",
        pending_url="https://app.example/pending",
        **config_overrides,
    )
    client = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))
    return MercadoPagoProvider(config, http_client=client)


@pytest.fixture
def checkout_request() -> CheckoutRequest:
    """Standard single-pack checkout."""
    return CheckoutRequest(
        key=PurchaseKey(device_id="device1", pack_id="packA"),
        title="Pack Doces",
        unit_price=9.9,
    )


class TestCreateCheckout:
    """Tests for create_checkout."""

    @pytest.mark.asyncio
    async def test_posts_preference_and_returns_init_point(self, checkout_request):
        """Preference body carries item, reference, back URLs and auto_return."""
        captured: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(request)
            checkout_path = "mercadopago.com.br/checkout?pref_id=pref-123"
            return httpx.Response(
                201,
                json={
                    "id": "pref-123",
                    "init_point": f"https://www.{checkout_path}",
                    "sandbox_init_point": f"https://sandbox.{checkout_path}",
                },
            )

        provider = make_provider(handler)
        session = await provider.create_checkout(checkout_request)

        assert session.session_id == "pref-123"
        assert session.checkout_url.startswith("https://www.mercadopago.com.br/")
        assert session.sandbox_checkout_url.startswith("https://sandbox.")

        request = captured[0]
        assert request.method == "POST"
        assert request.url.path == "/checkout/preferences"
        assert request.headers["Authorization"] == "Bearer TEST-token"

        body = json.loads(request.content)
        assert body["external_reference"] == "device1_packA"
        assert body["auto_return"] == "approved"
        assert body["back_urls"] == {
            "success": "https://app.example/success",
            "failure": "https://app.example/failure",
            "pending": "https://app.example/pending",
        }
        assert body["items"] == [
            {
                "id": "packA",
                "title": "Pack Doces",
                "quantity": 1,
                "unit_price": 9.9,
                "currency_id": "BRL",
            }
        ]
        assert "notification_url" not in body
        assert "statement_descriptor" not in body

    @pytest.mark.asyncio
    async def test_optional_fields_sent_when_configured(self, checkout_request):
        """notification_url and statement_descriptor are included when set."""
        bodies: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(201, json={"id": "p", "init_point": "https://mp/p"})

        provider = make_provider(
            handler,
            notification_url="https://api.example/webhook",
            statement_descriptor="RECEITAS",
        )
        await provider.create_checkout(checkout_request)

        assert bodies[0]["notification_url"] == "https://api.example/webhook"
        assert bodies[0]["statement_descriptor"] == "RECEITAS"

    @pytest.mark.asyncio
    async def test_http_error_raises_provider_error(self, checkout_request):
        """4xx/5xx responses become PaymentProviderError."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"message": "invalid access token"})

        provider = make_provider(handler)

        with pytest.raises(PaymentProviderError) as exc_info:
            await provider.create_checkout(checkout_request)

        assert "401" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_network_error_raises_provider_error(self, checkout_request):
        """Transport failures become PaymentProviderError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        provider = make_provider(handler)

        with pytest.raises(PaymentProviderError):
            await provider.create_checkout(checkout_request)

    @pytest.mark.asyncio
    async def test_missing_init_point_raises_provider_error(self, checkout_request):
        """A preference without init_point is an unexpected shape."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(201, json={"id": "pref-123"})

        provider = make_provider(handler)

        with pytest.raises(PaymentProviderError):
            await provider.create_checkout(checkout_request)

    @pytest.mark.asyncio
    async def test_non_json_response_raises_provider_error(self, checkout_request):
        """HTML error pages are not parsed as preferences."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>gateway</html>")

        provider = make_provider(handler)

        with pytest.raises(PaymentProviderError):
            await provider.create_checkout(checkout_request)


class TestGetPayment:
    """Tests for get_payment."""

    @pytest.mark.asyncio
    async def test_returns_status_and_reference(self):
        """Payment lookup maps status, detail and external_reference."""
        paths: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            paths.append(request.url.path)
            return httpx.Response(
                200,
                json={
                    "id": 987654321,
                    "status": "approved",
                    "status_detail": "accredited",
                    "external_reference": "device1_packA",
                    "transaction_amount": 9.9,
                },
            )

        provider = make_provider(handler)
        payment = await provider.get_payment("987654321")

        assert paths == ["/v1/payments/987654321"]
        assert payment.payment_id == "987654321"
        assert payment.status == "approved"
        assert payment.status_detail == "accredited"
        assert payment.external_reference == "device1_packA"
        assert payment.is_approved is True

    @pytest.mark.asyncio
    async def test_pending_payment_not_approved(self):
        """Pending payments are not approved and may lack a reference."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, json={"id": 1, "status": "pending", "external_reference": None}
            )

        payment = await make_provider(handler).get_payment("1")

        assert payment.is_approved is False
        assert payment.external_reference is None

    @pytest.mark.asyncio
    async def test_not_found_raises_provider_error(self):
        """Unknown payment ids raise PaymentProviderError."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, json={"message": "Payment not found"})

        with pytest.raises(PaymentProviderError):
            await make_provider(handler).get_payment("404404404")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payment_id",
        ["../checkout/preferences", "123?access_token=x", "123/refunds", "abc", "١٢٣", ""],
    )
    async def test_non_numeric_id_rejected_without_request(self, payment_id):
        """Only digit ids reach the payments endpoint."""
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"id": 1, "status": "approved"})

        with pytest.raises(PaymentProviderError) as exc_info:
            await make_provider(handler).get_payment(payment_id)

        assert "Invalid payment id" in str(exc_info.value)
        assert requests == []

    @pytest.mark.asyncio
    async def test_missing_status_raises_provider_error(self):
        """A payment body without status is an unexpected shape."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"id": 1})

        with pytest.raises(PaymentProviderError):
            await make_provider(handler).get_payment("1")

    @pytest.mark.asyncio
    async def test_list_body_raises_provider_error(self):
        """Top-level JSON must be an object."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=[{"status": "approved"}])

        with pytest.raises(PaymentProviderError):
            await make_provider(handler).get_payment("1")


class TestClose:
    """Tests for close."""

    @pytest.mark.asyncio
    async def test_close_closes_client(self):
        """close() releases the HTTP client."""
        provider = make_provider(lambda request: httpx.Response(200, json={}))
        await provider.close()

        assert provider.http_client.is_closed

    @pytest.mark.asyncio
    async def test_close_without_client_is_noop(self):
        """Closing before any request does nothing."""
        provider = MercadoPagoProvider(MercadoPagoConfig(access_token="TEST-token"))
        await provider.close()

        assert provider._http_client is None
