"""
FastAPI dependencies.

Every external collaborator the routes need is provided here so tests can
swap it through `app.dependency_overrides`.
"""

from __future__ import annotations

from typing import Callable, Optional

from fastapi import BackgroundTasks, Depends

from repositories.bundle_repository import load_catalog
from repositories.client import get_supabase
from repositories.store import Store, SupabaseStore
from services.carrier_client import CarrierClient
from services.messaging import WhatsAppClient
from services.order_service import OrderService
from services.settings import Settings, load_settings
from services.side_effects import BackgroundTaskDispatcher

CarrierFactory = Callable[[], CarrierClient]
StoreFactory = Callable[[], Store]
SettingsFactory = Callable[[], Settings]
MessengerFactory = Callable[[Settings], Optional[WhatsAppClient]]


def get_store() -> Store:
    return SupabaseStore(get_supabase())


def get_settings() -> Settings:
    return load_settings()


def get_messenger(settings: Settings = Depends(get_settings)) -> Optional[WhatsAppClient]:
    return WhatsAppClient(settings)


def get_carrier_factory() -> Optional[CarrierFactory]:
    """None selects the default carrier built from `ninjavan_config`."""
    return None


# Deferred providers: webhooks resolve them inside their own error handling.

def get_store_factory() -> StoreFactory:
    return get_store


def get_settings_factory() -> SettingsFactory:
    return get_settings


def get_messenger_factory() -> MessengerFactory:
    return WhatsAppClient


def build_order_service(
    store: Store,
    settings: Settings,
    background_tasks: BackgroundTasks,
    *,
    messenger: Optional[WhatsAppClient],
    carrier_factory: Optional[CarrierFactory],
) -> OrderService:
    """
    Build an orchestrator for one request.

    Loads the bundle catalog, so it may raise PersistenceError; routes call it
    inside their own error handling.
    """

    return OrderService(
        store,
        load_catalog(store),
        settings,
        carrier_factory=carrier_factory,
        messenger=messenger,
        dispatcher=BackgroundTaskDispatcher(background_tasks, store),
    )


__all__ = [
    "CarrierFactory",
    "StoreFactory",
    "SettingsFactory",
    "MessengerFactory",
    "get_store",
    "get_settings",
    "get_messenger",
    "get_carrier_factory",
    "get_store_factory",
    "get_settings_factory",
    "get_messenger_factory",
    "build_order_service",
]
