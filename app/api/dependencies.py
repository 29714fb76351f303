"""
FastAPI Dependencies - Access to services built at startup.

Services are constructed once in create_app() and stored on app.state;
handlers receive them through these dependencies (tests override them).
"""

from fastapi import Request

from app.config import Settings
from app.services.purchases import PurchaseService


def get_purchase_service(request: Request) -> PurchaseService:
    """FastAPI dependency returning the application's purchase service."""
    service: PurchaseService = request.app.state.purchase_service
    return service


def get_app_settings(request: Request) -> Settings:
    """FastAPI dependency returning the settings the app was built with."""
    settings: Settings = request.app.state.settings
    return settings
