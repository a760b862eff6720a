"""
Domain: Fulfillment claims (idempotency records keyed by transaction id).

Contract excerpts implemented here:
- The terminal transition of a transaction runs at most once.
- Whoever claims a transaction id first performs fulfillment; a later caller
  observing the claim treats it as success without resending anything.
- Fulfilled and declined are final for a transaction id.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Optional

from .purchase import PurchaseOutcome
from .time import require_utc_timestamp


class FulfillmentState(str, Enum):
    CLAIMED = "claimed"
    FULFILLED = "fulfilled"
    DECLINED = "declined"
    FAILED = "failed"  # config consumed but delivery did not complete


@dataclass(frozen=True, slots=True)
class FulfillmentClaim:
    """Immutable snapshot of one claim row."""

    transaction_id: str
    outcome: PurchaseOutcome
    state: FulfillmentState
    claimed_at: datetime
    detail: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.transaction_id:
            raise ValueError("transaction_id must not be empty")
        require_utc_timestamp("claimed_at", self.claimed_at)

    @property
    def is_final(self) -> bool:
        return self.state in (FulfillmentState.FULFILLED, FulfillmentState.DECLINED)

    def with_state(self, state: FulfillmentState, detail: Optional[str] = None) -> "FulfillmentClaim":
        """Return a new claim moved to `state`; final claims cannot move."""

        if self.is_final:
            raise ValueError(f"Claim for {self.transaction_id} is already {self.state.value}")
        return replace(self, state=state, detail=detail)


__all__ = ["FulfillmentState", "FulfillmentClaim"]
