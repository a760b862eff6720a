#!/usr/bin/env python3
"""
Manual walkthrough of the checkout flow against the configured services.

Demonstrates:
1. Product info lookup
2. Invoice creation for a buyer email
3. Polling the gateway until the payment is final (or attempts run out)

Usage:
    python scripts/simulate_payment_flow.py buyer@example.com [--polls 10] [--interval 30]
"""

from __future__ import annotations

import argparse
import sys
import time
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from api.dependencies import build_coordinator, get_settings
from domain.errors import StorefrontError
from services.payment_service import ConfirmationState


def print_section(title: str) -> None:
    """Print a section header."""
    print()
    print("=" * 80)
    print(title)
    print("=" * 80)


def run(email: str, polls: int, interval: float) -> int:
    coordinator = build_coordinator(get_settings())

    print_section("1. Product info")
    try:
        info = coordinator.get_product_info()
    except StorefrontError as e:
        print(f"   ERROR: {e}")
        return 1
    print(f"   Price: ${info.price}")
    print(f"   Stock: {info.stock}")

    print_section("2. Creating invoice")
    result = coordinator.create_invoice_action(email)
    if result.error:
        print(f"   Checkout failed: {result.error}")
        return 1
    print(f"   Transaction ID: {result.transaction_id}")
    print(f"   Pay here:       {result.transaction_url}")

    print_section("3. Waiting for payment")
    for attempt in range(1, polls + 1):
        try:
            confirmation = coordinator.poll_transaction(result.transaction_id)
        except StorefrontError as e:
            print(f"   Attempt {attempt}: {e}")
            return 1

        print(f"   Attempt {attempt}: {confirmation.state.value} - {confirmation.message}")
        if confirmation.state is not ConfirmationState.PENDING:
            return 0 if confirmation.state is not ConfirmationState.DECLINED else 2
        time.sleep(interval)

    print("   Payment still pending; re-check later with GET /api/v1/transactions/<id>.")
    return 3


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("email")
    parser.add_argument("--polls", type=int, default=10)
    parser.add_argument("--interval", type=float, default=30.0)
    args = parser.parse_args()
    return run(args.email, args.polls, args.interval)


if __name__ == "__main__":
    sys.exit(main())
