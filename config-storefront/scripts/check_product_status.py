"""
Check product status - current price and how many configs are left.
"""

import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from api.dependencies import get_settings
from domain.errors import StorefrontError
from repositories.inventory_client import InventoryClient


def check_product_status() -> int:
    """Print live price/stock from the inventory service. Returns an exit code."""

    settings = get_settings()
    client = InventoryClient(
        settings.inventory_url or "",
        settings.product_name,
        timeout=settings.http_timeout_seconds,
    )

    try:
        info = client.get_info()
    except StorefrontError as e:
        print(f"ERROR: {e}")
        return 1

    print("=" * 50)
    print("PRODUCT STATUS")
    print("=" * 50)
    print(f"Product:                   {settings.product_name}")
    print(f"Price (USD):               {info.price}")
    print(f"Configs in stock:          {info.stock}")
    print(f"Can sell:                  {info.in_stock and info.has_valid_price}")
    print("=" * 50)
    return 0


if __name__ == "__main__":
    sys.exit(check_product_status())
