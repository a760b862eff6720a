"""
Domain: Purchase lifecycle values.

Contract excerpts implemented here:
- Gateway status -> PurchaseOutcome mapping:
  completed/mismatch -> success, new/pending -> pending, anything else -> failed.
- A config row is consumed at most once per successful transaction; the
  outcome is the single input that decides whether consumption happens.
- ProductInfo is ephemeral: fetched fresh on every read, never cached.

This module contains only pure domain entities/value objects: no I/O, no HTTP, no database.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from .time import require_utc_timestamp


class GatewayStatus(str, Enum):
    """Transaction statuses reported by the payment gateway."""

    NEW = "new"
    PENDING = "pending"
    COMPLETED = "completed"
    MISMATCH = "mismatch"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    ERROR = "error"


class PurchaseOutcome(str, Enum):
    """Three-way classification that drives inventory action and email template."""

    SUCCESS = "success"
    PENDING = "pending"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not PurchaseOutcome.PENDING


_SUCCESS_STATUSES = frozenset({GatewayStatus.COMPLETED.value, GatewayStatus.MISMATCH.value})
_PENDING_STATUSES = frozenset({GatewayStatus.NEW.value, GatewayStatus.PENDING.value})


def outcome_from_status(status: Optional[str]) -> PurchaseOutcome:
    """
    Map a raw gateway status string to a PurchaseOutcome.

    `mismatch` means the buyer paid a different amount than invoiced; the
    gateway still settles it, so it counts as success. Unknown or empty
    statuses are treated as failed.
    """

    normalized = (status or "").strip().lower()
    if normalized in _SUCCESS_STATUSES:
        return PurchaseOutcome.SUCCESS
    if normalized in _PENDING_STATUSES:
        return PurchaseOutcome.PENDING
    return PurchaseOutcome.FAILED


@dataclass(frozen=True, slots=True)
class ProductInfo:
    """Current price (USD) and remaining stock of the single product."""

    price: Decimal
    stock: int

    @property
    def in_stock(self) -> bool:
        return self.stock > 0

    @property
    def has_valid_price(self) -> bool:
        return self.price > 0


@dataclass(frozen=True, slots=True)
class ConfigItem:
    """One config string handed out by the delete-on-read inventory verb."""

    body: str
    price: Optional[Decimal] = None


@dataclass(frozen=True, slots=True)
class InvoiceRequest:
    amount: Decimal
    currency: str
    order_name: str
    order_number: str
    email: str


@dataclass(frozen=True, slots=True)
class Invoice:
    """Gateway-issued invoice: hosted payment page plus transaction id."""

    invoice_url: str
    transaction_id: str
    order_number: str


@dataclass(frozen=True, slots=True)
class PendingTransaction:
    """
    Correlation between a gateway transaction and the buyer's email.

    Exists from invoice creation until the transaction reaches a terminal state.
    """

    transaction_id: str
    buyer_email: str
    created_at: datetime

    def __post_init__(self) -> None:
        if not self.transaction_id:
            raise ValueError("transaction_id must not be empty")
        require_utc_timestamp("created_at", self.created_at)


@dataclass(frozen=True, slots=True)
class EmailContent:
    """Resolved email for one outcome. `body` holds the config only on success."""

    subject: str
    body: str
    price_usd: Optional[Decimal] = None
    stock_count: Optional[int] = None


__all__ = [
    "GatewayStatus",
    "PurchaseOutcome",
    "outcome_from_status",
    "ProductInfo",
    "ConfigItem",
    "InvoiceRequest",
    "Invoice",
    "PendingTransaction",
    "EmailContent",
]
