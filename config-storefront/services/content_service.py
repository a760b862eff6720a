"""
Content service for resolving the email sent for a purchase outcome.

Exactly one branch runs per call:
- success: consume one config (delete-on-read) and deliver it
- pending: read price/stock only, never consume
- failed:  no inventory call at all
"""

from __future__ import annotations

import logging
from typing import Any

from domain.errors import FulfillmentFailed, StorefrontError
from domain.purchase import EmailContent, PurchaseOutcome

logger = logging.getLogger(__name__)

SUCCESS_SUBJECT = "config ready"
PENDING_SUBJECT = "order received"
FAILED_SUBJECT = "payment failed"

PENDING_BODY = (
    "We have received your order and are waiting for the payment to be confirmed "
    "on the network. Your config will be emailed to you as soon as it is."
)
FAILED_BODY = (
    "Unfortunately your payment could not be completed and no charge was applied. "
    "If you believe this is a mistake, reply to this email or contact support "
    "with your transaction id."
)


class ContentResolver:
    """Maps a PurchaseOutcome to EmailContent using the inventory client."""

    def __init__(self, inventory: Any) -> None:
        self._inventory = inventory

    def resolve(self, outcome: PurchaseOutcome, product_name: str) -> EmailContent:
        """
        Resolve the email for `outcome`.

        Raises:
            FulfillmentFailed: success branch returned no usable price
            StorefrontError: inventory failures from the pending/success branches
        """

        if outcome is PurchaseOutcome.SUCCESS:
            return self._resolve_success(product_name)
        if outcome is PurchaseOutcome.PENDING:
            info = self._inventory.get_info()
            return EmailContent(
                subject=PENDING_SUBJECT,
                body=PENDING_BODY,
                price_usd=info.price,
                stock_count=info.stock,
            )
        return EmailContent(subject=FAILED_SUBJECT, body=FAILED_BODY)

    def _resolve_success(self, product_name: str) -> EmailContent:
        try:
            config = self._inventory.get_config(product_name)
        except StorefrontError as e:
            raise FulfillmentFailed(f"Could not obtain a config for '{product_name}': {e}") from e

        if config.price is None or config.price <= 0:
            # The row is already consumed; never ship it as a $0 config.
            logger.error(
                "Config consumed for '%s' but price is %r; manual intervention required",
                product_name, config.price,
            )
            raise FulfillmentFailed(f"Config for '{product_name}' has no valid price ({config.price!r})")

        return EmailContent(subject=SUCCESS_SUBJECT, body=config.body, price_usd=config.price)


__all__ = [
    "ContentResolver",
    "SUCCESS_SUBJECT",
    "PENDING_SUBJECT",
    "FAILED_SUBJECT",
]
