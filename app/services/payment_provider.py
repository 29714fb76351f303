"""
Payment Provider Protocol - Provider-agnostic interface.

NO DICTIONARIES - All data uses strongly typed models.
"""

from dataclasses import dataclass
from typing import Protocol

from app.models.domain import CheckoutRequest

APPROVED_STATUS = "approved"


@dataclass(frozen=True)
class CheckoutSession:
    """
    Provider-agnostic checkout session.

    Returned after a hosted checkout page has been created.
    """

    session_id: str  # Provider-specific preference/session ID
    checkout_url: str
    sandbox_checkout_url: str | None = None


@dataclass(frozen=True)
class PaymentStatus:
    """
    Provider-agnostic payment status.

    Returned when looking up a payment by id.
    """

    payment_id: str
    status: str  # approved, pending, in_process, rejected, refunded, ...
    status_detail: str | None
    external_reference: str | None

    @property
    def is_approved(self) -> bool:
        """True if the provider considers the payment approved."""
        return self.status == APPROVED_STATUS


class PaymentProvider(Protocol):
    """
    Payment provider protocol.

    The purchase service only needs these two operations from a provider.
    """

    async def create_checkout(self, request: CheckoutRequest) -> CheckoutSession:
        """
        Create a hosted checkout session tagged with the purchase key.

        Args:
            request: Checkout details; request.key becomes the external reference

        Returns:
            Checkout session with the URL to redirect the buyer to

        Raises:
            PaymentProviderError: If checkout creation fails
        """
        ...

    async def get_payment(self, payment_id: str) -> PaymentStatus:
        """
        Look up the current status of a payment.

        Args:
            payment_id: Provider-specific payment ID

        Returns:
            Payment status including the external reference

        Raises:
            PaymentProviderError: If the lookup fails or the response is malformed
        """
        ...
