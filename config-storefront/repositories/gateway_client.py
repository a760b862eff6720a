"""
Payment gateway client (Plisio-style invoice API).

Two verbs:
- create invoice:          GET {base}/invoices/new
- get transaction status:  GET {base}/operations/{txn_id}

Responses share one envelope: `{status: "success"|"error", data: {...}}`.
Status queries are pure reads, so callers may re-poll freely.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

import httpx

from domain.errors import GatewayRejected, GatewayUnreachable
from domain.purchase import Invoice, InvoiceRequest

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.plisio.net/api/v1"
SOURCE_CURRENCY = "USD"


class GatewayClient:
    """HTTP adapter for the crypto payment gateway."""

    def __init__(
        self,
        api_key: str,
        *,
        callback_url: str,
        success_url: Optional[str] = None,
        fail_url: Optional[str] = None,
        api_url: str = DEFAULT_API_URL,
        timeout: float = 10.0,
        http_client: Optional[httpx.Client] = None,
    ) -> None:
        if not api_key:
            raise RuntimeError("The payment gateway API key is not configured. Set PLISIO_SECRET_KEY.")
        self._api_key = api_key
        self._callback_url = callback_url
        self._success_url = success_url
        self._fail_url = fail_url
        self._api_url = api_url.rstrip("/")
        self._timeout = timeout
        self._http_client = http_client

    def _get(self, path: str, params: Mapping[str, str]) -> Mapping[str, Any]:
        """GET a gateway endpoint and return the `data` object of a success envelope."""

        url = f"{self._api_url}/{path.lstrip('/')}"
        query = {"api_key": self._api_key, **params}
        try:
            if self._http_client is not None:
                response = self._http_client.get(url, params=query, timeout=self._timeout)
            else:
                with httpx.Client(timeout=self._timeout) as client:
                    response = client.get(url, params=query)
        except httpx.HTTPError as e:
            # Do not log the URL: it carries the API key.
            raise GatewayUnreachable(f"Payment gateway request to /{path} failed: {type(e).__name__}") from e

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if not isinstance(payload, dict):
            raise GatewayUnreachable(
                f"Payment gateway responded with {response.status_code} and an unparseable body"
            )

        data = payload.get("data")
        if not isinstance(data, dict):
            data = {}

        if payload.get("status") != "success" or response.is_error:
            message = data.get("message") or data.get("name") or "unknown gateway error"
            raise GatewayRejected(
                f"Payment gateway rejected /{path} ({response.status_code}): {message}",
                user_message=f"The payment provider rejected the request: {message}",
            )

        return data

    def create_invoice(self, request: InvoiceRequest) -> Invoice:
        """
        Create a hosted-page invoice for `request.amount` USD payable in `request.currency`.

        Raises:
            GatewayRejected: structured error from the provider or incomplete invoice
            GatewayUnreachable: network failure, timeout or unparseable response
        """

        params = {
            "currency": request.currency,
            "source_currency": SOURCE_CURRENCY,
            "source_amount": str(request.amount),
            "order_name": request.order_name,
            "order_number": request.order_number,
            "email": request.email,
            "callback_url": self._callback_url,
        }
        if self._success_url:
            params["success_url"] = self._success_url
        if self._fail_url:
            params["fail_url"] = self._fail_url

        data = self._get("invoices/new", params)

        invoice_url = data.get("invoice_url")
        txn_id = data.get("txn_id")
        if not invoice_url or not txn_id:
            raise GatewayRejected("Payment gateway returned an invoice without invoice_url or txn_id")

        logger.info("Created invoice %s for order %s", txn_id, request.order_number)
        return Invoice(
            invoice_url=str(invoice_url),
            transaction_id=str(txn_id),
            order_number=request.order_number,
        )

    def get_transaction_status(self, transaction_id: str) -> str:
        """
        Return the raw gateway status of `transaction_id` (e.g. 'pending', 'completed').

        Raises:
            GatewayRejected / GatewayUnreachable as for create_invoice
        """

        if not transaction_id:
            raise GatewayRejected("transaction_id must not be empty")

        data = self._get(f"operations/{transaction_id}", {})
        status = data.get("status")
        if not isinstance(status, str) or not status:
            raise GatewayRejected(f"Payment gateway returned no status for {transaction_id}")

        logger.debug("Transaction %s has gateway status '%s'", transaction_id, status)
        return status


__all__ = ["DEFAULT_API_URL", "GatewayClient"]
