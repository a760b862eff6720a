"""
Fulfillment ledger (idempotency records keyed by transaction id).

The webhook and a manual status poll can observe the same terminal status at
the same time, possibly on different instances. Both go through `claim()`;
exactly one of them gets True and performs fulfillment.

Two backends:
- SupabaseFulfillmentLedger: unique-constraint insert, safe across instances.
- InMemoryFulfillmentLedger: lock-guarded dict, single process only.

Expected table (Supabase):

    create table fulfillment_claims (
        transaction_id text primary key,
        outcome        text not null,
        state          text not null,
        claimed_at_utc timestamptz not null,
        detail         text
    );
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Protocol

from postgrest.exceptions import APIError

from domain.fulfillment import FulfillmentClaim, FulfillmentState
from domain.purchase import PurchaseOutcome
from domain.time import parse_utc_timestamp

logger = logging.getLogger(__name__)

_CLAIMS_TABLE: str = "fulfillment_claims"

# PostgreSQL unique_violation
_UNIQUE_VIOLATION = "23505"


class FulfillmentLedger(Protocol):
    def claim(self, transaction_id: str, outcome: PurchaseOutcome) -> bool: ...

    def get(self, transaction_id: str) -> Optional[FulfillmentClaim]: ...

    # Only a CLAIMED claim moves; anything else is left as is.
    def mark(self, transaction_id: str, state: FulfillmentState, detail: Optional[str] = None) -> None: ...

    def release(self, transaction_id: str) -> None: ...


class InMemoryFulfillmentLedger:
    """
    Process-local ledger.

    - No TTL.
    - Claims live for the lifetime of the process.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._claims: Dict[str, FulfillmentClaim] = {}

    def claim(self, transaction_id: str, outcome: PurchaseOutcome) -> bool:
        with self._lock:
            if transaction_id in self._claims:
                return False
            self._claims[transaction_id] = FulfillmentClaim(
                transaction_id=transaction_id,
                outcome=outcome,
                state=FulfillmentState.CLAIMED,
                claimed_at=datetime.now(timezone.utc),
            )
            return True

    def get(self, transaction_id: str) -> Optional[FulfillmentClaim]:
        with self._lock:
            return self._claims.get(transaction_id)

    def mark(self, transaction_id: str, state: FulfillmentState, detail: Optional[str] = None) -> None:
        with self._lock:
            current = self._claims.get(transaction_id)
            if current is None or current.state is not FulfillmentState.CLAIMED:
                logger.warning("Claim for %s is not open; leaving it unchanged", transaction_id)
                return
            self._claims[transaction_id] = current.with_state(state, detail)

    def release(self, transaction_id: str) -> None:
        with self._lock:
            self._claims.pop(transaction_id, None)


def _row_to_claim(row: Mapping[str, Any]) -> FulfillmentClaim:
    """Convert a Supabase row into a FulfillmentClaim."""

    return FulfillmentClaim(
        transaction_id=str(row["transaction_id"]),
        outcome=PurchaseOutcome(str(row["outcome"])),
        state=FulfillmentState(str(row["state"])),
        claimed_at=parse_utc_timestamp(row["claimed_at_utc"]),
        detail=row.get("detail"),
    )


class SupabaseFulfillmentLedger:
    """Durable ledger backed by a Supabase table with a unique transaction_id."""

    def __init__(self, client: Any, table: str = _CLAIMS_TABLE) -> None:
        self._client = client
        self._table = table

    def claim(self, transaction_id: str, outcome: PurchaseOutcome) -> bool:
        payload: dict[str, Any] = {
            "transaction_id": transaction_id,
            "outcome": outcome.value,
            "state": FulfillmentState.CLAIMED.value,
            "claimed_at_utc": datetime.now(timezone.utc).isoformat(),
        }
        try:
            response = self._client.table(self._table).insert(payload).execute()
        except APIError as e:
            if getattr(e, "code", None) == _UNIQUE_VIOLATION:
                logger.info("Transaction %s is already claimed", transaction_id)
                return False
            raise RuntimeError(f"Failed to claim transaction {transaction_id}: {e}") from e

        error = getattr(response, "error", None)
        if error:
            raise RuntimeError(f"Failed to claim transaction {transaction_id}: {error}")
        return True

    def get(self, transaction_id: str) -> Optional[FulfillmentClaim]:
        response = (
            self._client.table(self._table)
            .select("*")
            .eq("transaction_id", transaction_id)
            .limit(1)
            .execute()
        )
        error = getattr(response, "error", None)
        if error:
            raise RuntimeError(f"Failed to get claim: {error}")

        rows = getattr(response, "data", None) or []
        if not rows:
            return None
        return _row_to_claim(rows[0])

    def mark(self, transaction_id: str, state: FulfillmentState, detail: Optional[str] = None) -> None:
        payload: dict[str, Any] = {"state": state.value, "detail": detail}
        response = (
            self._client.table(self._table)
            .update(payload)
            .eq("transaction_id", transaction_id)
            .eq("state", FulfillmentState.CLAIMED.value)  # final rows never move
            .execute()
        )
        error = getattr(response, "error", None)
        if error:
            raise RuntimeError(f"Failed to update claim {transaction_id}: {error}")

    def release(self, transaction_id: str) -> None:
        response = (
            self._client.table(self._table)
            .delete()
            .eq("transaction_id", transaction_id)
            .execute()
        )
        error = getattr(response, "error", None)
        if error:
            raise RuntimeError(f"Failed to release claim {transaction_id}: {error}")


__all__ = [
    "FulfillmentLedger",
    "InMemoryFulfillmentLedger",
    "SupabaseFulfillmentLedger",
]
