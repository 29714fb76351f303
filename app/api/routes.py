"""
API Routes - FastAPI endpoints used by the mobile app and the payment provider.

NO DICTIONARIES - All requests/responses use Pydantic models.
Domain errors (InvalidRequestError, PaymentProviderError, PurchaseStoreError)
propagate to the handlers registered in app.main, which shape the
{"error": ...} body. The webhook is the exception: it answers with bare
status codes only.
"""

import json

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from structlog import get_logger

from app.api.dependencies import get_purchase_service
from app.exceptions import PurchaseStoreError
from app.models.api import (
    CheckPurchaseResponse,
    CreatePaymentRequest,
    CreatePaymentResponse,
    ErrorResponse,
    HealthResponse,
    MyPacksResponse,
    WebhookNotification,
)
from app.models.domain import CheckoutRequest
from app.observability.logging import log_context
from app.observability.metrics import metrics
from app.services.purchases import PurchaseService, resolve_purchase_key

logger = get_logger(__name__)

router = APIRouter()

PAYMENT_NOTIFICATION_TYPE = "payment"


@router.post(
    "/create-payment",
    response_model=CreatePaymentResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def create_payment(
    request: CreatePaymentRequest,
    service: PurchaseService = Depends(get_purchase_service),
) -> CreatePaymentResponse:
    """
    Create a hosted checkout for one recipe pack.

    The purchase key ("<deviceId>_<packId>") is sent to the provider as the
    external reference so the webhook can find it again.
    """
    key = resolve_purchase_key(request.user_id, request.pack_id)
    checkout = CheckoutRequest(key=key, title=request.title, unit_price=request.price)

    init_point = await service.create_checkout(checkout)

    logger.info("checkout_created", purchase_key=key.encode(), title=request.title)
    return CreatePaymentResponse(init_point=init_point)


async def _parse_notification(request: Request) -> WebhookNotification:
    """Parse the notification body, treating anything unusable as empty."""
    raw_body = await request.body()
    if not raw_body:
        return WebhookNotification()

    try:
        return WebhookNotification.model_validate(json.loads(raw_body))
    except (json.JSONDecodeError, UnicodeDecodeError, ValidationError):
        logger.warning(
            "webhook_body_unparseable",
            body_preview=raw_body[:200].decode(errors="replace"),
        )
        return WebhookNotification()


@router.post("/webhook")
async def payment_webhook(
    request: Request,
    service: PurchaseService = Depends(get_purchase_service),
) -> Response:
    """
    Handle Mercado Pago payment notifications.

    Always 200 unless processing failed, in which case a bare 500 makes the
    provider retry the notification later.
    """
    notification = await _parse_notification(request)

    # Legacy IPN notifications carry the id and topic in the query string
    payment_id = (
        notification.payment_id
        or request.query_params.get("data.id")
        or request.query_params.get("id")
    )
    notification_type = (
        notification.notification_type
        or request.query_params.get("type")
        or request.query_params.get("topic")
    )

    if notification_type and notification_type != PAYMENT_NOTIFICATION_TYPE:
        logger.info(
            "webhook_notification_ignored",
            notification_type=notification_type,
            resource_id=payment_id,
        )
        return Response(status_code=status.HTTP_200_OK)

    with log_context(payment_id=payment_id):
        logger.info("payment_notification_received", action=notification.action)
        try:
            outcome = await service.process_payment_notification(payment_id)
        except Exception as exc:
            logger.error(
                "payment_notification_failed",
                error=str(exc),
                error_type=type(exc).__name__,
                exc_info=True,
            )
            metrics.record_error(type(exc).__name__, "webhook")
            return Response(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)

        logger.info("payment_notification_processed", outcome=outcome.value)

    return Response(status_code=status.HTTP_200_OK)


@router.get("/check/{user_pack_key}", response_model=CheckPurchaseResponse)
def check_purchase(
    user_pack_key: str,
    service: PurchaseService = Depends(get_purchase_service),
) -> CheckPurchaseResponse:
    """Report whether a specific (device, pack) purchase has been paid."""
    return CheckPurchaseResponse(paid=service.is_purchased(user_pack_key))


@router.get("/my-packs/{user_id}", response_model=MyPacksResponse)
def list_my_packs(
    user_id: str,
    service: PurchaseService = Depends(get_purchase_service),
) -> MyPacksResponse:
    """List every pack a device has paid for."""
    return MyPacksResponse(packs=service.list_purchased_packs(user_id))


@router.get("/health", response_model=HealthResponse)
def health_check(
    service: PurchaseService = Depends(get_purchase_service),
) -> HealthResponse | JSONResponse:
    """Health check - verifies the purchase store can be read."""
    try:
        service.store.read()
    except PurchaseStoreError as exc:
        logger.error("health_check_store_failed", error=str(exc))
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=HealthResponse(status="unhealthy", store=str(exc)).model_dump(),
        )
    return HealthResponse(status="healthy", store="ok")
