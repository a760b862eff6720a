"""
Checkout API Endpoints.

Endpoints for reading the product, starting a checkout and manually
re-checking a payment.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from api.dependencies import get_coordinator
from api.models import CheckoutRequest, CheckoutResponse, ConfirmationResponse, ProductInfoResponse
from domain.errors import FulfillmentFailed, StorefrontError, UnknownTransaction
from services.payment_service import PaymentCoordinator

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "/product",
    response_model=ProductInfoResponse,
    summary="Get Product Info",
    description="Current price (USD) and remaining stock, read fresh from the inventory service."
)
def get_product(coordinator: PaymentCoordinator = Depends(get_coordinator)):
    try:
        info = coordinator.get_product_info()
    except StorefrontError as e:
        logger.warning("Failed to fetch product info: %s", e)
        raise HTTPException(status_code=502, detail=e.user_message)

    return ProductInfoResponse(
        product_name=coordinator.product_name,
        price=info.price,
        stock=info.stock,
    )


@router.post(
    "/checkout",
    response_model=CheckoutResponse,
    summary="Start Checkout",
    description="Validate the email, check stock and create a payment invoice."
)
def start_checkout(request: CheckoutRequest, coordinator: PaymentCoordinator = Depends(get_coordinator)):
    """
    Create a payment invoice for the buyer.

    **Process:**
    1. Validates the email address (no external call if invalid)
    2. Reads price and stock from the inventory service
    3. Rejects the checkout if out of stock or the price is unavailable
    4. Creates an invoice for exactly the current price
    5. Records the transaction id <-> email correlation for later re-checks

    Failures are returned in `error` with a 200 status; the buyer is expected
    to correct the input or retry manually.

    **Out of stock response:**
    ```json
    {"error": "out of stock", "transaction_url": null, "transaction_id": null, "email": null}
    ```
    """
    result = coordinator.create_invoice_action(request.email)
    return CheckoutResponse(
        error=result.error,
        transaction_url=result.transaction_url,
        transaction_id=result.transaction_id,
        email=result.email,
    )


@router.get(
    "/transactions/{transaction_id}",
    response_model=ConfirmationResponse,
    summary="Check Payment Status",
    description="Query the gateway for a transaction and fulfill it if the payment is final."
)
def check_transaction(transaction_id: str, coordinator: PaymentCoordinator = Depends(get_coordinator)):
    """
    Manually re-check a payment.

    - Pending payments return `state: pending`; call again later.
    - Completed payments deliver the config once and return `state: fulfilled`.
    - Repeated checks of a resolved payment return `state: already_resolved`.
    """
    try:
        result = coordinator.poll_transaction(transaction_id)
    except UnknownTransaction as e:
        raise HTTPException(status_code=404, detail=e.user_message)
    except FulfillmentFailed as e:
        raise HTTPException(status_code=500, detail=e.user_message)
    except StorefrontError as e:
        logger.warning("Status check for %s failed: %s", transaction_id, e)
        raise HTTPException(status_code=502, detail=e.user_message)

    return ConfirmationResponse(
        transaction_id=result.transaction_id,
        outcome=result.outcome.value,
        state=result.state.value,
        message=result.message,
        redirect_url=result.redirect_url,
    )
