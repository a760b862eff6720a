"""
Payment service: the checkout and fulfillment lifecycle.

States per transaction:

    Created -> InvoicePending -> AwaitingConfirmation -> Fulfilled | Declined

Handles:
- Buyer input validation before any external call
- Stock/price checks and invoice creation
- Correlating a webhook or manual status poll back to the invoice
- Exactly-once fulfillment through an atomic claim on the transaction id
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional

from email_validator import EmailNotValidError, validate_email

from domain.errors import (
    FulfillmentFailed,
    OutOfStock,
    PriceUnavailable,
    StorefrontError,
    UnknownTransaction,
    ValidationError,
)
from domain.fulfillment import FulfillmentState
from domain.purchase import (
    Invoice,
    InvoiceRequest,
    PendingTransaction,
    ProductInfo,
    PurchaseOutcome,
    outcome_from_status,
)
from services.content_service import ContentResolver

logger = logging.getLogger(__name__)

PAYMENT_CURRENCY = "LTC"
GENERIC_ERROR_MESSAGE = "An unexpected error occurred. Please try again later."


class ConfirmationState(str, Enum):
    FULFILLED = "fulfilled"
    DECLINED = "declined"
    PENDING = "pending"
    ALREADY_RESOLVED = "already_resolved"


@dataclass(frozen=True, slots=True)
class CheckoutResult:
    """
    User-safe result of a checkout attempt.

    error: message to show the buyer (None on success)
    transaction_url: hosted payment page to redirect to
    transaction_id / email: correlation the caller keeps for manual re-checks
    """
    error: Optional[str]
    transaction_url: Optional[str] = None
    transaction_id: Optional[str] = None
    email: Optional[str] = None


@dataclass(frozen=True, slots=True)
class ConfirmationResult:
    """Result of handling a webhook or a manual status poll."""
    transaction_id: str
    outcome: PurchaseOutcome
    state: ConfirmationState
    message: str
    redirect_url: Optional[str] = None


class OrderNumberGenerator:
    """
    Builds `<productName>-<unixMillis>` order numbers.

    Millisecond values never repeat within a process: a collision bumps the
    value by one.
    """

    def __init__(self, clock_ms: Optional[Callable[[], int]] = None) -> None:
        self._clock_ms = clock_ms or (lambda: time.time_ns() // 1_000_000)
        self._lock = threading.Lock()
        self._last = 0

    def next(self, product_name: str) -> str:
        with self._lock:
            millis = max(self._clock_ms(), self._last + 1)
            self._last = millis
        return f"{product_name}-{millis}"


def normalize_email(email: Optional[str]) -> str:
    """
    Return the normalized form of `email` or raise ValidationError.

    Syntax only; deliverability (DNS) is not checked.
    """

    if not email or not isinstance(email, str):
        raise ValidationError("Email address is missing")
    try:
        return validate_email(email.strip(), check_deliverability=False).normalized
    except EmailNotValidError as e:
        raise ValidationError(f"Invalid email address {email!r}: {e}") from e


class PaymentCoordinator:
    """
    Orchestrates checkout, confirmation and fulfillment.

    Collaborators are injected:
        inventory:     get_info() / get_config(product_name)
        gateway:       create_invoice(request) / get_transaction_status(txn_id)
        notifier:      send(to, content)
        ledger:        claim / get / mark / release keyed by transaction id
        pending_store: save / get / clear PendingTransaction records
    """

    def __init__(
        self,
        *,
        inventory: Any,
        gateway: Any,
        notifier: Any,
        ledger: Any,
        pending_store: Any,
        product_name: str,
        currency: str = PAYMENT_CURRENCY,
        success_url: Optional[str] = None,
        fail_url: Optional[str] = None,
        order_numbers: Optional[OrderNumberGenerator] = None,
    ) -> None:
        self._inventory = inventory
        self._gateway = gateway
        self._notifier = notifier
        self._ledger = ledger
        self._pending = pending_store
        self._resolver = ContentResolver(inventory)
        self._product_name = product_name
        self._currency = currency
        self._success_url = success_url
        self._fail_url = fail_url
        self._order_numbers = order_numbers or OrderNumberGenerator()

    @property
    def product_name(self) -> str:
        return self._product_name

    def get_product_info(self) -> ProductInfo:
        """Fresh price/stock for the product page."""

        return self._inventory.get_info()

    # ------------------------------------------------------------------
    # Created -> InvoicePending
    # ------------------------------------------------------------------

    def start_checkout(self, email: Optional[str]) -> Invoice:
        """
        Validate the buyer, check stock/price and create an invoice.

        Raises:
            ValidationError: malformed email (no external call made)
            OutOfStock: stock <= 0 (no invoice created)
            PriceUnavailable: price <= 0 (no invoice created)
            UpstreamUnavailable / InvalidResponse / GatewayRejected / GatewayUnreachable
        """

        buyer_email = normalize_email(email)

        info = self._inventory.get_info()
        if not info.in_stock:
            raise OutOfStock(f"Stock for '{self._product_name}' is {info.stock}")
        if not info.has_valid_price:
            raise PriceUnavailable(f"Price for '{self._product_name}' is {info.price}")

        request = InvoiceRequest(
            amount=info.price,
            currency=self._currency,
            order_name=self._product_name,
            order_number=self._order_numbers.next(self._product_name),
            email=buyer_email,
        )
        invoice = self._gateway.create_invoice(request)

        self._pending.save(
            PendingTransaction(
                transaction_id=invoice.transaction_id,
                buyer_email=buyer_email,
                created_at=datetime.now(timezone.utc),
            )
        )
        logger.info(
            "Invoice %s created for order %s (%s %s)",
            invoice.transaction_id, invoice.order_number, info.price, "USD",
        )
        return invoice

    def create_invoice_action(self, email: Optional[str]) -> CheckoutResult:
        """
        Boundary wrapper around start_checkout.

        Never raises: failures become a user-safe `error`; details go to the log.
        """

        try:
            invoice = self.start_checkout(email)
        except StorefrontError as e:
            logger.warning("Checkout failed: %s", e)
            return CheckoutResult(error=e.user_message)
        except Exception:
            logger.exception("Unexpected error during checkout")
            return CheckoutResult(error=GENERIC_ERROR_MESSAGE)

        return CheckoutResult(
            error=None,
            transaction_url=invoice.invoice_url,
            transaction_id=invoice.transaction_id,
            email=normalize_email(email),
        )

    # ------------------------------------------------------------------
    # AwaitingConfirmation triggers
    # ------------------------------------------------------------------

    def handle_webhook(self, transaction_id: str, status: str, email: str) -> ConfirmationResult:
        """
        Gateway callback.

        The posted fields are not trusted: a final status is re-read from the
        gateway and the config goes to the buyer email stored at checkout.

        Raises:
            ValidationError: malformed email
            UnknownTransaction: no invoice was created here for this id
            FulfillmentFailed / GatewayRejected / GatewayUnreachable
        """

        posted_email = normalize_email(email)
        outcome = outcome_from_status(status)
        logger.info("Received payment callback for %s with status '%s' (%s)", transaction_id, status, outcome.value)

        if outcome is PurchaseOutcome.PENDING:
            return self._still_pending(transaction_id)

        pending = self._pending.get(transaction_id)
        if pending is not None and pending.buyer_email != posted_email:
            logger.warning(
                "Callback email for %s does not match the checkout email; using the checkout email",
                transaction_id,
            )
        return self.poll_transaction(transaction_id)

    def poll_transaction(self, transaction_id: str) -> ConfirmationResult:
        """
        Manual re-check of a transaction's status.

        Raises:
            UnknownTransaction: nothing pending or resolved for this id
            GatewayRejected / GatewayUnreachable
        """

        pending = self._pending.get(transaction_id)
        if pending is None:
            claim = self._ledger.get(transaction_id)
            if claim is not None and claim.is_final:
                return self._already_resolved(transaction_id, claim.outcome)
            raise UnknownTransaction(f"No pending transaction {transaction_id}")

        status = self._gateway.get_transaction_status(transaction_id)
        return self.confirm(transaction_id, pending.buyer_email, outcome_from_status(status))

    # ------------------------------------------------------------------
    # AwaitingConfirmation -> Fulfilled | Declined
    # ------------------------------------------------------------------

    def confirm(self, transaction_id: str, email: str, outcome: PurchaseOutcome) -> ConfirmationResult:
        """
        Run the terminal transition for `transaction_id` at most once.

        A pending outcome changes nothing. For terminal outcomes the caller that
        wins the claim fulfills or declines; every other caller gets
        ALREADY_RESOLVED and nothing is consumed or sent again.
        """

        if outcome is PurchaseOutcome.PENDING:
            return self._still_pending(transaction_id)

        if not self._ledger.claim(transaction_id, outcome):
            existing = self._ledger.get(transaction_id)
            if existing is not None and existing.state is FulfillmentState.FAILED:
                raise FulfillmentFailed(
                    f"Transaction {transaction_id} previously failed fulfillment: {existing.detail}"
                )
            logger.info("Transaction %s already claimed; not fulfilling again", transaction_id)
            return self._already_resolved(transaction_id, existing.outcome if existing else outcome)

        if outcome is PurchaseOutcome.SUCCESS:
            return self._fulfill(transaction_id, email)
        return self._decline(transaction_id, email)

    def _fulfill(self, transaction_id: str, email: str) -> ConfirmationResult:
        # From here on a config may have been consumed: the claim is never released.
        try:
            content = self._resolver.resolve(PurchaseOutcome.SUCCESS, self._product_name)
            self._notifier.send(email, content)
        except Exception as e:
            self._ledger.mark(transaction_id, FulfillmentState.FAILED, detail=str(e))
            logger.error(
                "FULFILLMENT FAILED for paid transaction %s (%s); manual intervention required: %s",
                transaction_id, email, e,
            )
            if isinstance(e, FulfillmentFailed):
                raise
            raise FulfillmentFailed(f"Transaction {transaction_id}: {e}") from e

        self._ledger.mark(transaction_id, FulfillmentState.FULFILLED)
        self._pending.clear(transaction_id)
        logger.info("Transaction %s fulfilled; config sent to %s", transaction_id, email)
        return ConfirmationResult(
            transaction_id=transaction_id,
            outcome=PurchaseOutcome.SUCCESS,
            state=ConfirmationState.FULFILLED,
            message=f"Payment confirmed. Your config has been sent to {email}.",
            redirect_url=self._success_url,
        )

    def _decline(self, transaction_id: str, email: str) -> ConfirmationResult:
        content = self._resolver.resolve(PurchaseOutcome.FAILED, self._product_name)
        try:
            self._notifier.send(email, content)
        except Exception:
            # Nothing was consumed, so the gateway may safely redeliver.
            self._ledger.release(transaction_id)
            raise

        self._ledger.mark(transaction_id, FulfillmentState.DECLINED)
        self._pending.clear(transaction_id)
        logger.info("Transaction %s declined; failure notice sent to %s", transaction_id, email)
        return ConfirmationResult(
            transaction_id=transaction_id,
            outcome=PurchaseOutcome.FAILED,
            state=ConfirmationState.DECLINED,
            message="Your payment could not be completed. No config was issued.",
            redirect_url=self._fail_url,
        )

    def _still_pending(self, transaction_id: str) -> ConfirmationResult:
        return ConfirmationResult(
            transaction_id=transaction_id,
            outcome=PurchaseOutcome.PENDING,
            state=ConfirmationState.PENDING,
            message="Your payment is still pending. Please check again in a few minutes.",
        )

    def _already_resolved(self, transaction_id: str, outcome: PurchaseOutcome) -> ConfirmationResult:
        return ConfirmationResult(
            transaction_id=transaction_id,
            outcome=outcome,
            state=ConfirmationState.ALREADY_RESOLVED,
            message="This payment has already been processed.",
            redirect_url=self._success_url if outcome is PurchaseOutcome.SUCCESS else self._fail_url,
        )


__all__ = [
    "CheckoutResult",
    "ConfirmationResult",
    "ConfirmationState",
    "OrderNumberGenerator",
    "PaymentCoordinator",
    "normalize_email",
]
