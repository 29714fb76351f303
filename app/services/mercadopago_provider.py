"""
Mercado Pago Payment Provider Implementation.

Talks to the Mercado Pago REST API directly:
- POST /checkout/preferences  (hosted checkout "preference")
- GET  /v1/payments/{id}      (payment status lookup)

NO DICTIONARIES - All data crossing this module uses strongly typed models.
"""

from dataclasses import dataclass
from typing import Any

import httpx
from structlog import get_logger

from app.exceptions import PaymentProviderError
from app.models.domain import CheckoutRequest
from app.services.payment_provider import APPROVED_STATUS, CheckoutSession, PaymentStatus

logger = get_logger(__name__)


@dataclass(frozen=True)
class MercadoPagoConfig:
    """Mercado Pago client configuration."""

    access_token: str
    api_base_url: str = "https://api.mercadopago.com"
    currency_id: str = "BRL"
    success_url: str = "https://google.com"
    failure_url: str = "https://google.com"
    pending_url: str = "https://google.com"
    notification_url: str | None = None
    statement_descriptor: str | None = None
    timeout_seconds: float = 10.0


class MercadoPagoProvider:
    """
    Mercado Pago payment provider implementation.

    Implements the PaymentProvider protocol.
    """

    PREFERENCES_PATH = "/checkout/preferences"
    PAYMENTS_PATH = "/v1/payments"

    def __init__(
        self,
        config: MercadoPagoConfig,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Initialize Mercado Pago provider.

        Args:
            config: Access token, redirect URLs and checkout defaults
            http_client: Optional pre-built client (tests pass a MockTransport client)
        """
        self.config = config
        self._http_client = http_client

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Get HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                base_url=self.config.api_base_url,
                timeout=self.config.timeout_seconds,
            )
        return self._http_client

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.access_token}",
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        """Make an authenticated request and return the decoded JSON object."""
        try:
            response = await self.http_client.request(
                method, path, headers=self._headers(), **kwargs
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            logger.error(
                "mercadopago_api_error",
                method=method,
                path=path,
                status=exc.response.status_code,
                error=exc.response.text[:500],
            )
            raise PaymentProviderError(f"API error: {exc.response.status_code}") from exc
        except httpx.RequestError as exc:
            logger.error(
                "mercadopago_request_failed",
                method=method,
                path=path,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise PaymentProviderError(f"Request failed: {exc}") from exc
        except ValueError as exc:
            logger.error("mercadopago_invalid_json", method=method, path=path)
            raise PaymentProviderError("Response is not valid JSON") from exc

        if not isinstance(payload, dict):
            raise PaymentProviderError("Response is not a JSON object")
        return payload

    def _build_preference(self, request: CheckoutRequest) -> dict[str, Any]:
        """Build the preference body for a single-item, auto-returning checkout."""
        body: dict[str, Any] = {
            "items": [
                {
                    "id": request.key.pack_id,
                    "title": request.title,
                    "quantity": 1,
                    "unit_price": request.unit_price,
                    "currency_id": self.config.currency_id,
                }
            ],
            "external_reference": request.key.encode(),
            "back_urls": {
                "success": self.config.success_url,
                "failure": self.config.failure_url,
                "pending": self.config.pending_url,
            },
            "auto_return": APPROVED_STATUS,
        }
        if self.config.notification_url:
            body["notification_url"] = self.config.notification_url
        if self.config.statement_descriptor:
            body["statement_descriptor"] = self.config.statement_descriptor
        return body

    async def create_checkout(self, request: CheckoutRequest) -> CheckoutSession:
        """
        Create a Mercado Pago checkout preference.

        Args:
            request: Checkout details

        Returns:
            Checkout session with init_point (and sandbox_init_point if present)

        Raises:
            PaymentProviderError: If the API call fails or init_point is missing
        """
        logger.info(
            "creating_mercadopago_preference",
            external_reference=request.key.encode(),
            unit_price=request.unit_price,
            currency=self.config.currency_id,
        )

        payload = await self._request(
            "POST", self.PREFERENCES_PATH, json=self._build_preference(request)
        )

        init_point = payload.get("init_point")
        if not init_point:
            logger.error("mercadopago_preference_missing_init_point", keys=sorted(payload))
            raise PaymentProviderError("Preference response has no init_point")

        session = CheckoutSession(
            session_id=str(payload.get("id", "")),
            checkout_url=str(init_point),
            sandbox_checkout_url=payload.get("sandbox_init_point"),
        )

        logger.info(
            "mercadopago_preference_created",
            preference_id=session.session_id,
            external_reference=request.key.encode(),
        )
        return session

    async def get_payment(self, payment_id: str) -> PaymentStatus:
        """
        Get a payment from Mercado Pago.

        Args:
            payment_id: Mercado Pago payment ID

        Returns:
            PaymentStatus with status and external_reference

        Raises:
            PaymentProviderError: If the id is not numeric, the API call fails or status
                is missing
        """
        if not (payment_id.isascii() and payment_id.isdigit()):
            raise PaymentProviderError(f"Invalid payment id: {payment_id!r}")

        logger.info("getting_mercadopago_payment", payment_id=payment_id)

        payload = await self._request("GET", f"{self.PAYMENTS_PATH}/{payment_id}")

        status = payload.get("status")
        if not isinstance(status, str) or not status:
            raise PaymentProviderError(f"Payment {payment_id} response has no status")

        external_reference = payload.get("external_reference")
        result = PaymentStatus(
            payment_id=str(payload.get("id", payment_id)),
            status=status,
            status_detail=payload.get("status_detail"),
            external_reference=str(external_reference) if external_reference else None,
        )

        logger.info(
            "mercadopago_payment_retrieved",
            payment_id=result.payment_id,
            status=result.status,
            status_detail=result.status_detail,
            external_reference=result.external_reference,
        )
        return result

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
