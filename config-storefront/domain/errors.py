"""
Domain: Error taxonomy for the checkout and fulfillment flow.

Every error carries a `user_message` that is safe to show to the buyer. The
exception's own message (str(exc)) may contain upstream details and is meant
for logs only.
"""

from __future__ import annotations

from typing import Optional

SUPPORT_HINT = "If the problem persists, please contact support."


class StorefrontError(Exception):
    """Base class for all expected failures of the storefront."""

    default_user_message: str = "An unexpected error occurred. " + SUPPORT_HINT

    def __init__(self, message: str = "", *, user_message: Optional[str] = None) -> None:
        super().__init__(message or self.default_user_message)
        self.user_message = user_message or self.default_user_message


class ValidationError(StorefrontError):
    """Buyer input is malformed (e.g. not an email address)."""

    default_user_message = "The email address you entered is not valid."


class OutOfStock(StorefrontError):
    """No config rows are left to sell."""

    default_user_message = "out of stock"


class PriceUnavailable(StorefrontError):
    """The inventory service reported a missing or non-positive price."""

    default_user_message = "The product price could not be determined. Please try again later."


class UpstreamUnavailable(StorefrontError):
    """The inventory service could not be reached or reported an error."""

    default_user_message = "Could not connect to the product server. " + SUPPORT_HINT


class InvalidResponse(StorefrontError):
    """The inventory service answered with incomplete or malformed data."""

    default_user_message = "The product server returned incomplete data. " + SUPPORT_HINT


class GatewayRejected(StorefrontError):
    """The payment provider returned a structured error."""

    default_user_message = "The payment provider rejected the request. " + SUPPORT_HINT


class GatewayUnreachable(StorefrontError):
    """The payment provider could not be reached or answered unintelligibly."""

    default_user_message = "Could not connect to the payment provider. " + SUPPORT_HINT


class FulfillmentFailed(StorefrontError):
    """
    A paid order could not be fulfilled.

    The buyer has already paid when this is raised, so it always needs manual
    intervention.
    """

    default_user_message = (
        "Your payment was received but your config could not be delivered automatically. "
        "Our support team has been notified."
    )


class NotificationFailed(StorefrontError):
    """The email transport did not accept the message."""

    default_user_message = "We could not send the confirmation email. " + SUPPORT_HINT


class UnknownTransaction(StorefrontError):
    """No pending checkout is recorded for the given transaction id."""

    default_user_message = "No pending payment was found for this transaction."


__all__ = [
    "SUPPORT_HINT",
    "StorefrontError",
    "ValidationError",
    "OutOfStock",
    "PriceUnavailable",
    "UpstreamUnavailable",
    "InvalidResponse",
    "GatewayRejected",
    "GatewayUnreachable",
    "FulfillmentFailed",
    "NotificationFailed",
    "UnknownTransaction",
]
