"""
API Request and Response Models.

Pydantic models for validating API requests and serializing responses.
"""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


# ============================================================================
# Product Models
# ============================================================================

class ProductInfoResponse(BaseModel):
    """Current price and stock of the product."""
    product_name: str
    price: Decimal
    stock: int
    currency: str = "USD"

    class Config:
        json_schema_extra = {
            "example": {
                "product_name": "V2Ray Config",
                "price": "9.99",
                "stock": 5,
                "currency": "USD"
            }
        }


# ============================================================================
# Checkout Models
# ============================================================================

class CheckoutRequest(BaseModel):
    """Request to start a checkout for the buyer's email."""
    email: str = Field(
        ...,
        max_length=320,
        description="Email address the config will be delivered to"
    )

    class Config:
        json_schema_extra = {
            "example": {
                "email": "buyer@example.com"
            }
        }


class CheckoutResponse(BaseModel):
    """Result of a checkout attempt; `error` is set instead of raising."""
    error: Optional[str] = None
    transaction_url: Optional[str] = None
    transaction_id: Optional[str] = None
    email: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "error": None,
                "transaction_url": "https://plisio.net/invoice/65f1c0ffee",
                "transaction_id": "65f1c0ffee",
                "email": "buyer@example.com"
            }
        }


# ============================================================================
# Confirmation Models
# ============================================================================

class ConfirmationResponse(BaseModel):
    """Outcome of a manual status check."""
    transaction_id: str
    outcome: str  # success, pending, failed
    state: str  # fulfilled, declined, pending, already_resolved
    message: str
    redirect_url: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "transaction_id": "65f1c0ffee",
                "outcome": "pending",
                "state": "pending",
                "message": "Your payment is still pending. Please check again in a few minutes.",
                "redirect_url": None
            }
        }


class WebhookResponse(BaseModel):
    """Acknowledgement returned to the payment gateway."""
    status: str
    message: str


# ============================================================================
# Error Models
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    detail: Optional[str] = None
    status_code: int

    class Config:
        json_schema_extra = {
            "example": {
                "error": "Invalid request",
                "detail": "No pending payment was found for this transaction.",
                "status_code": 404
            }
        }
