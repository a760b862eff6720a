"""
Pending transaction repository (persistence).

Stores the transaction id <-> buyer email correlation between invoice creation
and the terminal outcome. It does not enforce business rules; it only
inserts, fetches and deletes records.

Expected table (Supabase):

    create table pending_transactions (
        transaction_id text primary key,
        buyer_email    text not null,
        created_at_utc timestamptz not null
    );
"""

from __future__ import annotations

import threading
from datetime import timezone
from typing import Any, Dict, Mapping, Optional, Protocol

from domain.purchase import PendingTransaction
from domain.time import parse_utc_timestamp

_PENDING_TABLE: str = "pending_transactions"


class PendingTransactionStore(Protocol):
    def save(self, pending: PendingTransaction) -> None: ...

    def get(self, transaction_id: str) -> Optional[PendingTransaction]: ...

    def clear(self, transaction_id: str) -> None: ...


class InMemoryPendingTransactionStore:
    """Process-local store; one record per transaction id."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: Dict[str, PendingTransaction] = {}

    def save(self, pending: PendingTransaction) -> None:
        with self._lock:
            self._records[pending.transaction_id] = pending

    def get(self, transaction_id: str) -> Optional[PendingTransaction]:
        with self._lock:
            return self._records.get(transaction_id)

    def clear(self, transaction_id: str) -> None:
        with self._lock:
            self._records.pop(transaction_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


def _row_to_pending(row: Mapping[str, Any]) -> PendingTransaction:
    """Convert a Supabase row into a PendingTransaction."""

    return PendingTransaction(
        transaction_id=str(row["transaction_id"]),
        buyer_email=str(row["buyer_email"]),
        created_at=parse_utc_timestamp(row["created_at_utc"]),
    )


class SupabasePendingTransactionStore:
    """Durable store backed by a Supabase table keyed by transaction_id."""

    def __init__(self, client: Any, table: str = _PENDING_TABLE) -> None:
        self._client = client
        self._table = table

    def save(self, pending: PendingTransaction) -> None:
        payload: dict[str, Any] = {
            "transaction_id": pending.transaction_id,
            "buyer_email": pending.buyer_email,
            "created_at_utc": pending.created_at.astimezone(timezone.utc).isoformat(),
        }
        response = self._client.table(self._table).upsert(payload).execute()
        error = getattr(response, "error", None)
        if error:
            raise RuntimeError(f"Failed to save pending transaction: {error}")

    def get(self, transaction_id: str) -> Optional[PendingTransaction]:
        response = (
            self._client.table(self._table)
            .select("*")
            .eq("transaction_id", transaction_id)
            .limit(1)
            .execute()
        )
        error = getattr(response, "error", None)
        if error:
            raise RuntimeError(f"Failed to get pending transaction: {error}")

        rows = getattr(response, "data", None) or []
        if not rows:
            return None
        return _row_to_pending(rows[0])

    def clear(self, transaction_id: str) -> None:
        response = (
            self._client.table(self._table)
            .delete()
            .eq("transaction_id", transaction_id)
            .execute()
        )
        error = getattr(response, "error", None)
        if error:
            raise RuntimeError(f"Failed to clear pending transaction: {error}")


__all__ = [
    "PendingTransactionStore",
    "InMemoryPendingTransactionStore",
    "SupabasePendingTransactionStore",
]
