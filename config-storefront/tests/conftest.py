"""
Pytest configuration and shared fakes.

This file adds the parent directory to the Python path so that tests
can import from the domain, repositories, services and api modules.
"""

import sys
from decimal import Decimal
from pathlib import Path
from typing import List, Optional, Tuple

import pytest

# Add the config-storefront directory to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from domain.errors import OutOfStock  # noqa: E402
from domain.purchase import ConfigItem, EmailContent, Invoice, InvoiceRequest, ProductInfo  # noqa: E402
from repositories.fulfillment_ledger import InMemoryFulfillmentLedger  # noqa: E402
from repositories.pending_transaction_repository import InMemoryPendingTransactionStore  # noqa: E402
from services.payment_service import OrderNumberGenerator, PaymentCoordinator  # noqa: E402

PRODUCT_NAME = "V2Ray Config"


class FakeInventory:
    """Spreadsheet stand-in: a list of config rows plus a price."""

    def __init__(self, price: str = "9.99", configs: Optional[List[str]] = None, stock: Optional[int] = None) -> None:
        self.price = Decimal(price)
        self.configs = list(configs if configs is not None else ["vless://config-1", "vless://config-2"])
        self._stock = stock
        self.info_calls = 0
        self.config_calls = 0

    def get_info(self) -> ProductInfo:
        self.info_calls += 1
        stock = self._stock if self._stock is not None else len(self.configs)
        return ProductInfo(price=self.price, stock=stock)

    def get_config(self, product_name: str) -> ConfigItem:
        self.config_calls += 1
        if not self.configs:
            raise OutOfStock(f"no config left for {product_name}")
        return ConfigItem(body=self.configs.pop(0), price=self.price)


class FakeGateway:
    def __init__(self, status: str = "pending") -> None:
        self.status = status
        self.invoices: List[InvoiceRequest] = []
        self.status_calls: List[str] = []

    def create_invoice(self, request: InvoiceRequest) -> Invoice:
        self.invoices.append(request)
        txn_id = f"txn-{len(self.invoices)}"
        return Invoice(
            invoice_url=f"https://gateway.example/invoice/{txn_id}",
            transaction_id=txn_id,
            order_number=request.order_number,
        )

    def get_transaction_status(self, transaction_id: str) -> str:
        self.status_calls.append(transaction_id)
        return self.status


class FakeNotifier:
    def __init__(self, error: Optional[Exception] = None) -> None:
        self.sent: List[Tuple[str, EmailContent]] = []
        self.error = error

    def send(self, to: str, content: EmailContent) -> str:
        if self.error is not None:
            raise self.error
        self.sent.append((to, content))
        return f"<msg-{len(self.sent)}@example.com>"


@pytest.fixture
def inventory() -> FakeInventory:
    return FakeInventory()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def ledger() -> InMemoryFulfillmentLedger:
    return InMemoryFulfillmentLedger()


@pytest.fixture
def pending_store() -> InMemoryPendingTransactionStore:
    return InMemoryPendingTransactionStore()


@pytest.fixture
def coordinator(inventory, gateway, notifier, ledger, pending_store) -> PaymentCoordinator:
    return PaymentCoordinator(
        inventory=inventory,
        gateway=gateway,
        notifier=notifier,
        ledger=ledger,
        pending_store=pending_store,
        product_name=PRODUCT_NAME,
        success_url="https://shop.example/payment/success",
        fail_url="https://shop.example/payment/failed",
        order_numbers=OrderNumberGenerator(clock_ms=lambda: 1700000000000),
    )
