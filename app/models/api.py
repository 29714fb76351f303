"""
API Models - Pydantic models for request/response validation.

NO DICTIONARIES - All data structures are strongly typed.
Field aliases keep the camelCase wire names the mobile app already sends.
"""

from pydantic import BaseModel, ConfigDict, Field

# ============================================================================
# Checkout Models
# ============================================================================


class CreatePaymentRequest(BaseModel):
    """POST /create-payment request body."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(
        ...,
        alias="userId",
        min_length=1,
        max_length=255,
        description="Composite key '<deviceId>_<packId>', or the device id when packId is sent",
    )
    title: str = Field(..., min_length=1, max_length=256, description="Pack display name")
    price: float = Field(..., gt=0, description="Unit price in the configured currency")
    pack_id: str | None = Field(
        None,
        alias="packId",
        min_length=1,
        max_length=255,
        description="Pack identifier (optional when userId is already composite)",
    )


class CreatePaymentResponse(BaseModel):
    """POST /create-payment response."""

    init_point: str = Field(..., description="Provider-hosted checkout URL")


class ErrorResponse(BaseModel):
    """Error body returned for 4xx/5xx responses."""

    error: str


# ============================================================================
# Webhook Models
# ============================================================================


class WebhookData(BaseModel):
    """The 'data' envelope of a provider notification."""

    id: str | int | None = None


class WebhookNotification(BaseModel):
    """POST /webhook body - provider-defined envelope, all fields optional."""

    model_config = ConfigDict(extra="ignore")

    type: str | None = None
    topic: str | None = None
    action: str | None = None
    data: WebhookData | None = None

    @property
    def payment_id(self) -> str | None:
        """Payment id carried in the body, if any."""
        if self.data is None or self.data.id is None or self.data.id == "":
            return None
        return str(self.data.id)

    @property
    def notification_type(self) -> str | None:
        """Notification kind (newer 'type' field, or legacy 'topic')."""
        return self.type or self.topic


# ============================================================================
# Purchase Query Models
# ============================================================================


class CheckPurchaseResponse(BaseModel):
    """GET /check/{userPackKey} response."""

    paid: bool


class MyPacksResponse(BaseModel):
    """GET /my-packs/{userId} response."""

    packs: list[str]


# ============================================================================
# Health Models
# ============================================================================


class HealthResponse(BaseModel):
    """GET /health response."""

    status: str
    store: str
