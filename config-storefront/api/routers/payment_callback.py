"""
Payment Callback Endpoint.

Webhook called by the payment gateway with a form-encoded status update.
Any non-200 answer makes the gateway re-deliver the callback later, which is
the only retry mechanism in the system.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Form, HTTPException

from api.dependencies import get_coordinator
from api.models import WebhookResponse
from domain.errors import UnknownTransaction, ValidationError
from services.payment_service import ConfirmationState, PaymentCoordinator

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/payment-callback",
    response_model=WebhookResponse,
    summary="Payment Gateway Callback",
    description="Receives gateway status updates and fulfills or declines the order."
)
def payment_callback(
    status: Optional[str] = Form(None),
    txn_id: Optional[str] = Form(None),
    email: Optional[str] = Form(None),
    order_number: Optional[str] = Form(None),
    source_amount: Optional[str] = Form(None),
    source_currency: Optional[str] = Form(None),
    coordinator: PaymentCoordinator = Depends(get_coordinator),
):
    """
    Handle a gateway callback.

    - 200: processed (including non-final statuses and already handled transactions)
    - 400: `status`, `txn_id` or `email` missing, malformed email, or an unknown transaction
    - 500: fulfillment failed; the gateway should retry
    """
    if not status or not txn_id or not email:
        logger.error(
            "Incomplete payment callback data received (status=%r, txn_id=%r, email=%r)",
            status, txn_id, email,
        )
        raise HTTPException(status_code=400, detail="Incomplete data")

    logger.info(
        "Payment callback for order %s: %s %s, status '%s'",
        order_number, source_amount, source_currency, status,
    )

    try:
        result = coordinator.handle_webhook(txn_id, status, email)
    except (ValidationError, UnknownTransaction) as e:
        logger.warning("Rejected payment callback for %s: %s", txn_id, e)
        raise HTTPException(status_code=400, detail=e.user_message)
    except Exception as e:
        logger.exception("Error processing payment callback for %s: %s", txn_id, e)
        raise HTTPException(status_code=500, detail="Internal server error")

    if result.state is ConfirmationState.PENDING:
        return WebhookResponse(status="success", message="Status is not final, no action taken.")
    return WebhookResponse(status="success", message=result.message)
