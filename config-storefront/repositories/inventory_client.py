"""
Inventory client (spreadsheet-backed Apps Script web app).

The remote service exposes two verbs through the query string:
- action=getInfo:   read-only `{price, stock}`
- action=getConfig: atomically returns one unused config and deletes its row

The backing sheet has no transaction API, so atomicity of getConfig lives
entirely in the remote script. This client sends exactly one request per
getConfig call and never retries it: a retry could consume a second config
for a single payment.
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional

import httpx

from domain.errors import InvalidResponse, OutOfStock, UpstreamUnavailable
from domain.purchase import ConfigItem, ProductInfo

logger = logging.getLogger(__name__)

# Stock numbers must never come from a cache.
_NO_CACHE_HEADERS = {"Cache-Control": "no-cache, no-store", "Pragma": "no-cache"}


def _parse_number(value: Any, *, field: str) -> Decimal:
    # bool is an int subclass; a boolean price is a malformed row, not a number.
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise InvalidResponse(f"Inventory field '{field}' is not numeric: {value!r}")
    try:
        number = Decimal(str(value))
    except InvalidOperation as e:
        raise InvalidResponse(f"Inventory field '{field}' is not numeric: {value!r}") from e
    if not number.is_finite():
        raise InvalidResponse(f"Inventory field '{field}' is not finite: {value!r}")
    return number


class InventoryClient:
    """HTTP adapter for the inventory web app."""

    def __init__(
        self,
        base_url: str,
        product_name: str,
        *,
        timeout: float = 10.0,
        http_client: Optional[httpx.Client] = None,
    ) -> None:
        if not base_url:
            raise RuntimeError(
                "The inventory service URL is not configured. Set GOOGLE_APPS_SCRIPT_URL."
            )
        self._base_url = base_url
        self._product_name = product_name
        self._timeout = timeout
        self._http_client = http_client

    @property
    def product_name(self) -> str:
        return self._product_name

    def _request(self, action: str, product_name: str) -> Mapping[str, Any]:
        """Issue one GET against the web app and return its decoded JSON object."""

        params = {"action": action, "productName": product_name}
        try:
            if self._http_client is not None:
                response = self._http_client.get(
                    self._base_url, params=params, headers=_NO_CACHE_HEADERS,
                    timeout=self._timeout, follow_redirects=True,
                )
            else:
                with httpx.Client(timeout=self._timeout, follow_redirects=True) as client:
                    response = client.get(self._base_url, params=params, headers=_NO_CACHE_HEADERS)
        except httpx.HTTPError as e:
            raise UpstreamUnavailable(f"Inventory request '{action}' failed: {e}") from e

        if response.is_error:
            raise UpstreamUnavailable(
                f"Inventory service responded with {response.status_code} for '{action}': "
                f"{response.text[:200]}"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise InvalidResponse(f"Inventory service returned non-JSON body for '{action}'") from e

        if not isinstance(data, dict):
            raise InvalidResponse(f"Inventory service returned {type(data).__name__} for '{action}'")

        if data.get("error"):
            raise UpstreamUnavailable(f"Inventory service returned an error: {data['error']}")

        return data

    def get_info(self) -> ProductInfo:
        """
        Fetch the current price and stock count.

        Read-only; safe to call any number of times.

        Raises:
            UpstreamUnavailable: network failure, non-2xx or an `error` field
            InvalidResponse: price/stock missing or non-numeric
        """

        data = self._request("getInfo", self._product_name)

        if "price" not in data or "stock" not in data:
            raise InvalidResponse("Inventory response is missing price or stock")

        price = _parse_number(data["price"], field="price")
        stock = _parse_number(data["stock"], field="stock")
        if stock != stock.to_integral_value():
            raise InvalidResponse(f"Inventory stock is not an integer: {data['stock']!r}")

        return ProductInfo(price=price, stock=int(stock))

    def get_config(self, product_name: Optional[str] = None) -> ConfigItem:
        """
        Fetch-and-delete one config row.

        Side-effecting and never retried. Any ambiguous answer is a failure.

        Raises:
            OutOfStock: the service returned no config body
            UpstreamUnavailable: network failure, non-2xx or an `error` field
            InvalidResponse: price present but non-numeric
        """

        name = product_name or self._product_name
        data = self._request("getConfig", name)

        body = data.get("emailBody")
        if not isinstance(body, str) or not body.strip():
            raise OutOfStock(f"Inventory service returned no config for '{name}'")

        raw_price = data.get("price")
        price = _parse_number(raw_price, field="price") if raw_price is not None else None

        logger.info("Consumed one config row for product '%s'", name)
        return ConfigItem(body=body, price=price)


__all__ = ["InventoryClient"]
