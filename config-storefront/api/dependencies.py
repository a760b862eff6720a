"""
Dependency wiring for the API.

Builds one PaymentCoordinator per process from Settings. Tests replace
`get_coordinator` through `app.dependency_overrides`.
"""

from __future__ import annotations

import logging
from functools import lru_cache

from api.config import Settings, load_settings
from repositories.fulfillment_ledger import InMemoryFulfillmentLedger, SupabaseFulfillmentLedger
from repositories.gateway_client import GatewayClient
from repositories.inventory_client import InventoryClient
from repositories.pending_transaction_repository import (
    InMemoryPendingTransactionStore,
    SupabasePendingTransactionStore,
)
from services.notification_service import SmtpNotificationSender
from services.payment_service import PaymentCoordinator

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()


def build_coordinator(settings: Settings) -> PaymentCoordinator:
    """Construct the coordinator and its collaborators from `settings`."""

    settings.require()

    inventory = InventoryClient(
        settings.inventory_url or "",
        settings.product_name,
        timeout=settings.http_timeout_seconds,
    )
    gateway = GatewayClient(
        settings.gateway_api_key or "",
        callback_url=settings.callback_url,
        success_url=settings.success_url,
        fail_url=settings.fail_url,
        api_url=settings.gateway_api_url,
        timeout=settings.http_timeout_seconds,
    )
    notifier = SmtpNotificationSender(
        settings.smtp_host,
        settings.smtp_port,
        username=settings.smtp_user,
        password=settings.smtp_password,
        sender=settings.email_from,
        timeout=settings.http_timeout_seconds,
    )

    if settings.ledger_backend == "supabase":
        from repositories.client import get_supabase

        client = get_supabase()
        ledger = SupabaseFulfillmentLedger(client)
        pending_store = SupabasePendingTransactionStore(client)
    else:
        logger.warning("Using in-memory fulfillment ledger; safe for a single instance only")
        ledger = InMemoryFulfillmentLedger()
        pending_store = InMemoryPendingTransactionStore()

    return PaymentCoordinator(
        inventory=inventory,
        gateway=gateway,
        notifier=notifier,
        ledger=ledger,
        pending_store=pending_store,
        product_name=settings.product_name,
        success_url=settings.success_url,
        fail_url=settings.fail_url,
    )


@lru_cache(maxsize=1)
def get_coordinator() -> PaymentCoordinator:
    return build_coordinator(get_settings())


__all__ = ["get_settings", "build_coordinator", "get_coordinator"]
