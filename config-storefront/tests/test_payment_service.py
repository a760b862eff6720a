"""
Tests for `services/payment_service.py`.

Covers contract rules:
- Invalid email -> ValidationError with no external calls.
- Invoice amount equals the current price; order numbers are unique.
- Out of stock / missing price -> no invoice created.
- Webhook and manual poll correlate back to the invoice.
- A callback is honoured only for a known invoice, with the status re-read
  from the gateway and delivery to the checkout email.
- Confirmation is idempotent per transaction id, including under a race.
- Claims are released only when nothing was consumed.
"""

from __future__ import annotations

import threading
from decimal import Decimal

import pytest

from conftest import PRODUCT_NAME, FakeNotifier
from domain.errors import (
    FulfillmentFailed,
    NotificationFailed,
    OutOfStock,
    PriceUnavailable,
    UnknownTransaction,
    ValidationError,
)
from domain.fulfillment import FulfillmentState
from domain.purchase import PurchaseOutcome
from services.content_service import FAILED_SUBJECT, SUCCESS_SUBJECT
from services.payment_service import (
    ConfirmationState,
    OrderNumberGenerator,
    PaymentCoordinator,
    normalize_email,
)


# ----------------------------------------------------------------------------
# Checkout
# ----------------------------------------------------------------------------

@pytest.mark.parametrize("email", ["", None, "not-an-email", "buyer@", "@example.com", "a b@example.com"])
def test_invalid_email_is_rejected_without_external_calls(coordinator, inventory, gateway, email) -> None:
    with pytest.raises(ValidationError):
        coordinator.start_checkout(email)

    assert inventory.info_calls == 0
    assert gateway.invoices == []


def test_scenario_a_invoice_created_for_current_price(coordinator, inventory, gateway, pending_store) -> None:
    """stock=5, price=9.99, valid email -> invoice for 9.99 and a redirect URL."""

    inventory.configs = [f"cfg-{i}" for i in range(5)]

    result = coordinator.create_invoice_action("buyer@example.com")

    assert result.error is None
    assert result.transaction_url == "https://gateway.example/invoice/txn-1"
    assert result.transaction_id == "txn-1"
    assert result.email == "buyer@example.com"

    request = gateway.invoices[0]
    assert request.amount == Decimal("9.99")
    assert str(request.amount) == "9.99"
    assert request.currency == "LTC"
    assert request.order_name == PRODUCT_NAME
    assert request.email == "buyer@example.com"

    pending = pending_store.get("txn-1")
    assert pending is not None
    assert pending.buyer_email == "buyer@example.com"


def test_scenario_b_out_of_stock_returns_error_without_gateway_call(coordinator, inventory, gateway) -> None:
    inventory.configs = []

    result = coordinator.create_invoice_action("buyer@example.com")

    assert result.error == "out of stock"
    assert result.transaction_url is None
    assert gateway.invoices == []


def test_start_checkout_raises_out_of_stock(coordinator, inventory) -> None:
    inventory.configs = []

    with pytest.raises(OutOfStock):
        coordinator.start_checkout("buyer@example.com")


def test_non_positive_price_is_price_unavailable(coordinator, inventory, gateway) -> None:
    inventory.price = Decimal("0")

    with pytest.raises(PriceUnavailable):
        coordinator.start_checkout("buyer@example.com")

    assert gateway.invoices == []


def test_order_numbers_are_unique_per_attempt(coordinator, gateway) -> None:
    coordinator.start_checkout("one@example.com")
    coordinator.start_checkout("two@example.com")

    numbers = [r.order_number for r in gateway.invoices]
    assert len(set(numbers)) == 2
    assert all(n.startswith(f"{PRODUCT_NAME}-") for n in numbers)


def test_order_number_generator_never_repeats_within_a_millisecond() -> None:
    generator = OrderNumberGenerator(clock_ms=lambda: 1000)

    assert [generator.next("P") for _ in range(3)] == ["P-1000", "P-1001", "P-1002"]


def test_invalid_email_through_boundary_returns_user_message(coordinator) -> None:
    result = coordinator.create_invoice_action("nope")

    assert result.error == ValidationError.default_user_message
    assert result.transaction_url is None


def test_unexpected_errors_are_hidden_from_the_buyer(coordinator, gateway) -> None:
    def explode(request):
        raise KeyError("internal detail")

    gateway.create_invoice = explode

    result = coordinator.create_invoice_action("buyer@example.com")

    assert result.error is not None
    assert "internal detail" not in result.error


def test_normalize_email_lowercases_domain() -> None:
    assert normalize_email(" Buyer@Example.COM ") == "Buyer@example.com"


# ----------------------------------------------------------------------------
# Confirmation
# ----------------------------------------------------------------------------

@pytest.fixture
def txn_id(coordinator) -> str:
    """A transaction created through checkout for buyer@example.com."""

    return coordinator.start_checkout("buyer@example.com").transaction_id


def test_scenario_c_completed_webhook_fulfills_once(coordinator, gateway, inventory, notifier, ledger, txn_id) -> None:
    gateway.status = "completed"

    result = coordinator.handle_webhook(txn_id, "completed", "buyer@example.com")

    assert result.state is ConfirmationState.FULFILLED
    assert result.outcome is PurchaseOutcome.SUCCESS
    assert result.redirect_url == "https://shop.example/payment/success"
    assert inventory.config_calls == 1
    assert len(notifier.sent) == 1

    to, content = notifier.sent[0]
    assert to == "buyer@example.com"
    assert content.subject == SUCCESS_SUBJECT
    assert content.body == "vless://config-1"
    assert ledger.get(txn_id).state is FulfillmentState.FULFILLED


def test_mismatch_counts_as_success(coordinator, gateway, inventory, txn_id) -> None:
    gateway.status = "mismatch"

    result = coordinator.handle_webhook(txn_id, "mismatch", "buyer@example.com")

    assert result.state is ConfirmationState.FULFILLED
    assert inventory.config_calls == 1


def test_scenario_d_manual_poll_pending_changes_nothing(coordinator, gateway, inventory, notifier, pending_store, txn_id) -> None:
    info_calls_after_checkout = inventory.info_calls
    gateway.status = "pending"

    result = coordinator.poll_transaction(txn_id)

    assert result.state is ConfirmationState.PENDING
    assert pending_store.get(txn_id) is not None
    assert inventory.info_calls == info_calls_after_checkout
    assert inventory.config_calls == 0
    assert notifier.sent == []


def test_scenario_e_cancelled_webhook_declines(coordinator, gateway, inventory, notifier, ledger, txn_id) -> None:
    info_calls_after_checkout = inventory.info_calls
    gateway.status = "cancelled"

    result = coordinator.handle_webhook(txn_id, "cancelled", "buyer@example.com")

    assert result.state is ConfirmationState.DECLINED
    assert result.redirect_url == "https://shop.example/payment/failed"
    assert inventory.config_calls == 0
    assert inventory.info_calls == info_calls_after_checkout
    assert len(notifier.sent) == 1
    assert notifier.sent[0][1].subject == FAILED_SUBJECT
    assert ledger.get(txn_id).state is FulfillmentState.DECLINED


def test_pending_webhook_takes_no_action(coordinator, gateway, inventory, notifier, ledger, txn_id) -> None:
    result = coordinator.handle_webhook(txn_id, "new", "buyer@example.com")

    assert result.state is ConfirmationState.PENDING
    assert gateway.status_calls == []
    assert inventory.config_calls == 0
    assert notifier.sent == []
    assert ledger.get(txn_id) is None


def test_confirmation_twice_consumes_and_sends_once(coordinator, gateway, inventory, notifier, txn_id) -> None:
    gateway.status = "completed"

    first = coordinator.handle_webhook(txn_id, "completed", "buyer@example.com")
    second = coordinator.handle_webhook(txn_id, "completed", "buyer@example.com")

    assert first.state is ConfirmationState.FULFILLED
    assert second.state is ConfirmationState.ALREADY_RESOLVED
    assert second.redirect_url == "https://shop.example/payment/success"
    assert inventory.config_calls == 1
    assert len(notifier.sent) == 1


def test_manual_poll_completed_fulfills_and_clears_marker(coordinator, gateway, inventory, notifier, pending_store, txn_id) -> None:
    gateway.status = "completed"

    result = coordinator.poll_transaction(txn_id)

    assert result.state is ConfirmationState.FULFILLED
    assert pending_store.get(txn_id) is None
    assert inventory.config_calls == 1
    assert notifier.sent[0][0] == "buyer@example.com"


def test_poll_after_webhook_reports_already_resolved(coordinator, gateway, inventory, notifier, txn_id) -> None:
    gateway.status = "completed"
    coordinator.handle_webhook(txn_id, "completed", "buyer@example.com")

    result = coordinator.poll_transaction(txn_id)

    assert result.state is ConfirmationState.ALREADY_RESOLVED
    assert inventory.config_calls == 1
    assert len(notifier.sent) == 1


def test_poll_unknown_transaction_raises(coordinator) -> None:
    with pytest.raises(UnknownTransaction):
        coordinator.poll_transaction("never-created")


def test_webhook_and_poll_race_consume_one_config(coordinator, inventory, notifier) -> None:
    """Two concurrent confirmations for one id: one fulfills, the other is a no-op."""

    barrier = threading.Barrier(2)
    results = []

    def confirm():
        barrier.wait()
        results.append(coordinator.confirm("txn-race", "buyer@example.com", PurchaseOutcome.SUCCESS))

    threads = [threading.Thread(target=confirm) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    states = sorted(r.state.value for r in results)
    assert states == [ConfirmationState.ALREADY_RESOLVED.value, ConfirmationState.FULFILLED.value]
    assert inventory.config_calls == 1
    assert len(notifier.sent) == 1


# ----------------------------------------------------------------------------
# Untrusted callbacks
# ----------------------------------------------------------------------------

def test_webhook_for_unknown_transaction_consumes_nothing(coordinator, gateway, inventory, notifier, ledger) -> None:
    gateway.status = "completed"

    with pytest.raises(UnknownTransaction):
        coordinator.handle_webhook("never-invoiced", "completed", "someone@example.org")

    assert inventory.config_calls == 0
    assert notifier.sent == []
    assert ledger.get("never-invoiced") is None


def test_webhook_delivers_to_checkout_email_not_posted_email(coordinator, gateway, notifier, txn_id) -> None:
    gateway.status = "completed"

    coordinator.handle_webhook(txn_id, "completed", "someone-else@example.org")

    assert [to for to, _ in notifier.sent] == ["buyer@example.com"]


def test_webhook_status_is_confirmed_with_gateway(coordinator, gateway, inventory, notifier, ledger, txn_id) -> None:
    """A cancelled callback the gateway does not confirm leaves the invoice open."""

    gateway.status = "pending"

    forged = coordinator.handle_webhook(txn_id, "cancelled", "buyer@example.com")

    assert forged.state is ConfirmationState.PENDING
    assert gateway.status_calls == [txn_id]
    assert ledger.get(txn_id) is None
    assert notifier.sent == []

    gateway.status = "completed"
    real = coordinator.handle_webhook(txn_id, "completed", "buyer@example.com")

    assert real.state is ConfirmationState.FULFILLED
    assert inventory.config_calls == 1
    assert notifier.sent[0][1].subject == SUCCESS_SUBJECT


def test_webhook_with_malformed_email_is_rejected(coordinator, gateway, inventory, ledger, txn_id) -> None:
    gateway.status = "completed"

    with pytest.raises(ValidationError):
        coordinator.handle_webhook(txn_id, "completed", "not an email")

    assert gateway.status_calls == []
    assert inventory.config_calls == 0
    assert ledger.get(txn_id) is None


# ----------------------------------------------------------------------------
# Failure handling
# ----------------------------------------------------------------------------

def _coordinator_with(notifier, inventory, gateway, ledger, pending_store) -> PaymentCoordinator:
    return PaymentCoordinator(
        inventory=inventory,
        gateway=gateway,
        notifier=notifier,
        ledger=ledger,
        pending_store=pending_store,
        product_name=PRODUCT_NAME,
    )


def test_send_failure_after_consumption_keeps_claim(inventory, gateway, ledger, pending_store) -> None:
    notifier = FakeNotifier(error=NotificationFailed("smtp down"))
    coordinator = _coordinator_with(notifier, inventory, gateway, ledger, pending_store)
    txn_id = coordinator.start_checkout("buyer@example.com").transaction_id
    gateway.status = "completed"

    with pytest.raises(FulfillmentFailed):
        coordinator.handle_webhook(txn_id, "completed", "buyer@example.com")

    claim = ledger.get(txn_id)
    assert claim.state is FulfillmentState.FAILED
    assert "smtp down" in claim.detail

    # A redelivered webhook must not consume a second config.
    with pytest.raises(FulfillmentFailed):
        coordinator.handle_webhook(txn_id, "completed", "buyer@example.com")
    assert inventory.config_calls == 1


def test_out_of_stock_after_payment_is_fulfillment_failure(coordinator, gateway, inventory, ledger, txn_id) -> None:
    inventory.configs = []
    gateway.status = "completed"

    with pytest.raises(FulfillmentFailed):
        coordinator.handle_webhook(txn_id, "completed", "buyer@example.com")

    assert ledger.get(txn_id).state is FulfillmentState.FAILED


def test_decline_send_failure_releases_claim(inventory, gateway, ledger, pending_store) -> None:
    notifier = FakeNotifier(error=NotificationFailed("smtp down"))
    coordinator = _coordinator_with(notifier, inventory, gateway, ledger, pending_store)
    txn_id = coordinator.start_checkout("buyer@example.com").transaction_id
    gateway.status = "expired"

    with pytest.raises(NotificationFailed):
        coordinator.handle_webhook(txn_id, "expired", "buyer@example.com")

    assert ledger.get(txn_id) is None

    notifier.error = None
    result = coordinator.handle_webhook(txn_id, "expired", "buyer@example.com")
    assert result.state is ConfirmationState.DECLINED
    assert len(notifier.sent) == 1
