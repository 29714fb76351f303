"""
Purchase Service - Checkout creation, payment reconciliation and purchase queries.

NO DICTIONARIES - All operations use strongly typed domain models.
"""

import asyncio
import time
from datetime import UTC, datetime

from structlog import get_logger

from app.exceptions import InvalidRequestError, PaymentProviderError
from app.models.domain import (
    CheckoutRequest,
    NotificationOutcome,
    PurchaseKey,
    PurchaseRecord,
)
from app.observability.metrics import metrics
from app.observability.tracing import purchase_span
from app.services.payment_provider import CheckoutSession, PaymentProvider
from app.services.purchase_store import PurchaseMap, PurchaseStore

logger = get_logger(__name__)


def _utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


def resolve_purchase_key(user_id: str, pack_id: str | None = None) -> PurchaseKey:
    """
    Build the purchase key for a checkout request.

    The app either sends the composite key as userId, or the device id as
    userId together with an explicit packId.

    Raises:
        InvalidRequestError: If no valid (device, pack) pair can be derived
    """
    if pack_id is not None:
        return PurchaseKey(device_id=user_id, pack_id=pack_id)
    return PurchaseKey.decode(user_id)


class PurchaseService:
    """
    Purchase service over an injected store and payment provider.

    Reconciliation does a read-modify-write of the whole store document.
    The service lock serializes those writes within one process; separate
    processes sharing a file still race and the last write wins.
    """

    def __init__(
        self,
        store: PurchaseStore,
        provider: PaymentProvider,
        use_sandbox: bool = False,
    ) -> None:
        self.store = store
        self.provider = provider
        self.use_sandbox = use_sandbox
        self._write_lock = asyncio.Lock()

    def _read_store(self) -> PurchaseMap:
        start = time.time()
        try:
            purchases = self.store.read()
        except Exception:
            metrics.record_store_operation("read", False, time.time() - start)
            raise
        metrics.record_store_operation("read", True, time.time() - start)
        return purchases

    def _write_store(self, purchases: PurchaseMap) -> None:
        start = time.time()
        try:
            self.store.write(purchases)
        except Exception:
            metrics.record_store_operation("write", False, time.time() - start)
            raise
        metrics.record_store_operation("write", True, time.time() - start)

    # ========================================================================
    # Checkout
    # ========================================================================

    async def create_checkout(self, request: CheckoutRequest) -> str:
        """
        Create a hosted checkout for one pack and return its URL.

        Never touches the store.

        Raises:
            PaymentProviderError: If the provider cannot create the checkout
        """
        with purchase_span(
            "create_checkout", purchase_key=request.key.encode(), unit_price=request.unit_price
        ):
            try:
                session: CheckoutSession = await self.provider.create_checkout(request)
            except PaymentProviderError:
                metrics.record_checkout(success=False)
                raise

        metrics.record_checkout(success=True)

        if self.use_sandbox and session.sandbox_checkout_url:
            return session.sandbox_checkout_url
        return session.checkout_url

    # ========================================================================
    # Reconciliation
    # ========================================================================

    async def process_payment_notification(self, payment_id: str | None) -> NotificationOutcome:
        """
        Reconcile a provider notification with the purchase store.

        1. No payment id: nothing to do (no provider call, no store access)
        2. Look up the payment with the provider
        3. Not approved: nothing to do
        4. Approved: overwrite store[external_reference] with a paid record

        Reprocessing an approved payment rewrites an equivalent record with
        a fresh timestamp.

        Raises:
            PaymentProviderError: Provider lookup failed or approved payment has
                no external reference
            PurchaseStoreError: Store could not be read or written
        """
        if not payment_id:
            logger.info("payment_notification_ignored", reason="missing_payment_id")
            metrics.record_notification(NotificationOutcome.IGNORED.value)
            return NotificationOutcome.IGNORED

        payment = await self.provider.get_payment(payment_id)

        if not payment.is_approved:
            logger.info(
                "payment_not_approved",
                payment_id=payment_id,
                status=payment.status,
                status_detail=payment.status_detail,
            )
            metrics.record_notification(NotificationOutcome.NOT_APPROVED.value)
            return NotificationOutcome.NOT_APPROVED

        reference = payment.external_reference
        if not reference:
            raise PaymentProviderError(f"Approved payment {payment_id} has no external_reference")

        try:
            PurchaseKey.decode(reference)
        except InvalidRequestError:
            # Still recorded: dropping an approved payment would lose a sale
            logger.warning(
                "payment_external_reference_unrecognized",
                payment_id=payment_id,
                external_reference=reference,
            )

        with purchase_span("record_purchase", purchase_key=reference, payment_id=payment_id):
            # Store I/O blocks, so it runs in a worker thread while the lock is held
            async with self._write_lock:
                purchases = await asyncio.to_thread(self._read_store)
                purchases[reference] = PurchaseRecord.approved(payment_id, now=_utc_now())
                await asyncio.to_thread(self._write_store, purchases)

        logger.info("purchase_recorded", purchase_key=reference, payment_id=payment_id)
        metrics.record_notification(NotificationOutcome.RECORDED.value)
        return NotificationOutcome.RECORDED

    # ========================================================================
    # Queries
    # ========================================================================

    def is_purchased(self, key: str) -> bool:
        """Return the paid flag stored under the composite key (False if absent)."""
        record = self._read_store().get(key)
        return record.paid if record is not None else False

    def list_purchased_packs(self, device_id: str) -> list[str]:
        """
        List pack ids the device has paid for, in store order.

        Keys are matched on the decoded device id, so "device1" does not pick
        up packs belonging to "device10". Keys that do not decode are skipped.
        """
        packs: list[str] = []
        for key, record in self._read_store().items():
            try:
                purchase_key = PurchaseKey.decode(key)
            except InvalidRequestError:
                logger.debug("purchase_key_skipped", purchase_key=key)
                continue
            if purchase_key.device_id == device_id and record.paid:
                packs.append(purchase_key.pack_id)
        return packs
