"""
Pytest Configuration and Centralized Fixtures.

Provides reusable fakes and fixtures for testing:
- Settings built without touching the real environment
- In-memory and file-backed purchase stores
- Payment provider mocks
- API test client wired through create_app()
"""

import os
from datetime import UTC, datetime
from pathlib import Path
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

# Set required environment variables BEFORE importing app modules
os.environ.setdefault("MP_ACCESS_TOKEN", "TEST-0000000000000000-000000-fake")
os.environ.setdefault("LOG_FORMAT", "console")

from app.config import Settings
from app.models.domain import PurchaseRecord
from app.services.payment_provider import CheckoutSession, PaymentStatus
from app.services.purchase_store import InMemoryPurchaseStore, JsonFilePurchaseStore

FIXED_DATE = datetime(2025, 1, 8, 12, 0, 0, tzinfo=UTC)

# ============================================================================
# Settings Fixtures
# ============================================================================


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings with a temp store path and tracing disabled."""
    return Settings(
        mp_access_token="TEST-0000000000000000-000000-fake",
        purchase_store_path=str(tmp_path / "db.json"),
        tracing_enabled=False,
        log_format="console",
    )


# ============================================================================
# Purchase Record Fixtures
# ============================================================================


def make_record(paid: bool = True, payment_id: str = "123456789") -> PurchaseRecord:
    """Factory for purchase records with a fixed date."""
    return PurchaseRecord(paid=paid, payment_id=payment_id, date=FIXED_DATE)


@pytest.fixture
def memory_store() -> InMemoryPurchaseStore:
    """Empty in-memory purchase store."""
    return InMemoryPurchaseStore()


@pytest.fixture
def mixed_store() -> InMemoryPurchaseStore:
    """Store with paid/unpaid records across two devices."""
    return InMemoryPurchaseStore(
        {
            "device1_packA": make_record(payment_id="1"),
            "device1_packB": make_record(paid=False, payment_id="2"),
            "device2_packA": make_record(payment_id="3"),
        }
    )


@pytest.fixture
def file_store(tmp_path: Path) -> JsonFilePurchaseStore:
    """File-backed purchase store in a temp directory."""
    return JsonFilePurchaseStore(tmp_path / "db.json")


# ============================================================================
# Payment Provider Fixtures
# ============================================================================


def make_payment(
    status: str = "approved",
    external_reference: str | None = "device1_packA",
    payment_id: str = "987654321",
) -> PaymentStatus:
    """Factory for provider payment lookups."""
    return PaymentStatus(
        payment_id=payment_id,
        status=status,
        status_detail="accredited" if status == "approved" else None,
        external_reference=external_reference,
    )


@pytest.fixture
def provider() -> AsyncMock:
    """Payment provider mock with a successful checkout and approved payment."""
    mock = AsyncMock()
    redirect_path = "mercadopago.com.br/checkout/v1/redirect?pref_id=pref-123"
    mock.create_checkout = AsyncMock(
        return_value=CheckoutSession(
            session_id="pref-123",
            checkout_url=f"https://www.{redirect_path}",
            sandbox_checkout_url=f"https://sandbox.{redirect_path}",
        )
    )
    mock.get_payment = AsyncMock(return_value=make_payment())
    mock.close = AsyncMock()
    return mock


# ============================================================================
# FastAPI Test Client Fixtures
# ============================================================================


@pytest.fixture
def app(settings: Settings, memory_store: InMemoryPurchaseStore, provider: AsyncMock) -> FastAPI:
    """Create FastAPI app for testing with an in-memory store and mocked provider."""
    from app.main import create_app

    return create_app(settings, store=memory_store, provider=provider)


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    """Synchronous test client."""
    return TestClient(app)


@pytest.fixture
def record_factory():
    """Factory fixture for purchase records."""
    return make_record


@pytest.fixture
def payment_factory():
    """Factory fixture for provider payment lookups."""
    return make_payment
