"""
Domain Models - Internal business logic models using dataclasses.

NO DICTIONARIES - All data structures are strongly typed immutable dataclasses.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from app.exceptions import InvalidRequestError

KEY_SEPARATOR = "_"


@dataclass(frozen=True)
class PurchaseKey:
    """
    Immutable (device, pack) identity of a purchase.

    Encoded as "<device_id>_<pack_id>". Decoding splits on the first
    underscore, so device ids may not contain "_" while pack ids may.
    """

    device_id: str
    pack_id: str

    def __post_init__(self) -> None:
        """Validate key segments."""
        if not self.device_id:
            raise InvalidRequestError("device id cannot be empty")
        if KEY_SEPARATOR in self.device_id:
            raise InvalidRequestError(
                f"device id cannot contain '{KEY_SEPARATOR}': {self.device_id}"
            )
        if not self.pack_id:
            raise InvalidRequestError("pack id cannot be empty")

    def encode(self) -> str:
        """Encode as the composite store key."""
        return f"{self.device_id}{KEY_SEPARATOR}{self.pack_id}"

    @classmethod
    def decode(cls, composite: str) -> "PurchaseKey":
        """
        Parse a composite store key.

        Raises:
            InvalidRequestError: If the key has no separator or an empty segment
        """
        device_id, separator, pack_id = composite.partition(KEY_SEPARATOR)
        if not separator:
            raise InvalidRequestError(f"composite key has no '{KEY_SEPARATOR}': {composite}")
        return cls(device_id=device_id, pack_id=pack_id)

    def __str__(self) -> str:
        return self.encode()


@dataclass(frozen=True)
class PurchaseRecord:
    """
    Immutable purchase record - replaced only by full overwrite.

    Records written by older deployments may carry only a paid flag, so
    payment_id and date are optional. Fields that cannot be interpreted are
    kept in extra (and a non-object entry in original) and written back
    unchanged.
    """

    paid: bool
    payment_id: str | None = None
    date: datetime | None = None
    extra: dict[str, Any] = field(default_factory=dict, compare=False)
    original: Any = field(default=None, compare=False)

    @classmethod
    def approved(cls, payment_id: str, now: datetime | None = None) -> "PurchaseRecord":
        """Record for a payment the provider reported as approved."""
        return cls(paid=True, payment_id=payment_id, date=now or datetime.now(UTC))

    def to_document(self) -> Any:
        """Serialize to the persisted JSON shape."""
        if self.original is not None:
            return self.original

        document: dict[str, Any] = {"paid": self.paid}
        if self.payment_id is not None:
            document["paymentId"] = self.payment_id
        if self.date is not None:
            document["date"] = self.date.isoformat().replace("+00:00", "Z")
        document.update(self.extra)
        return document

    @classmethod
    def from_document(cls, raw: Any) -> "PurchaseRecord":
        """
        Parse the persisted JSON shape.

        Never fails: anything other than "paid": true counts as not paid.
        Numeric payment ids (as written by older clients) are normalised to str.
        """
        if not isinstance(raw, dict):
            return cls(paid=False, original=raw)

        extra = {k: v for k, v in raw.items() if k not in ("paid", "paymentId", "date")}

        paid = raw.get("paid")
        if "paid" in raw and not isinstance(paid, bool):
            extra["paid"] = paid

        payment_id = raw.get("paymentId")
        if isinstance(payment_id, bool) or not isinstance(payment_id, (str, int)):
            if "paymentId" in raw:
                extra["paymentId"] = payment_id
            payment_id = None

        date = _parse_date(raw.get("date"))
        if date is None and "date" in raw:
            extra["date"] = raw["date"]

        return cls(
            paid=paid is True,
            payment_id=str(payment_id) if payment_id is not None else None,
            date=date,
            extra=extra,
        )


def _parse_date(value: Any) -> datetime | None:
    """Parse an ISO-8601 timestamp, or None if it is not one."""
    if not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


@dataclass(frozen=True)
class CheckoutRequest:
    """Domain model for a checkout before it reaches the provider."""

    key: PurchaseKey
    title: str
    unit_price: float

    def __post_init__(self) -> None:
        """Validate checkout constraints."""
        if not self.title:
            raise InvalidRequestError("title cannot be empty")
        if self.unit_price <= 0:
            raise InvalidRequestError(f"price must be positive: {self.unit_price}")


class NotificationOutcome(str, Enum):
    """What processing a payment notification did."""

    IGNORED = "ignored"  # No payment id or not a payment notification
    NOT_APPROVED = "not_approved"
    RECORDED = "recorded"
