"""
Storefront configuration.

Everything is controlled by environment variables (optionally loaded from a
`.env` file in the config-storefront directory) so the service runs anywhere
without code changes.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

env_path = Path(__file__).parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DEFAULT_PRODUCT_NAME = "V2Ray Config"


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


@dataclass(frozen=True, slots=True)
class Settings:
    """Resolved runtime settings."""

    # Inventory (Apps Script web app)
    inventory_url: Optional[str]
    product_name: str

    # Payment gateway
    gateway_api_key: Optional[str]
    gateway_api_url: str
    app_url: str

    # SMTP
    smtp_host: Optional[str]
    smtp_port: int
    smtp_user: Optional[str]
    smtp_password: Optional[str]
    email_from: Optional[str]

    # Storage for claims / pending transactions: "supabase" or "memory"
    ledger_backend: str

    http_timeout_seconds: float = 10.0
    log_level: str = "INFO"

    @property
    def callback_url(self) -> str:
        return f"{self.app_url}/api/payment-callback"

    @property
    def success_url(self) -> str:
        return f"{self.app_url}/payment/success"

    @property
    def fail_url(self) -> str:
        return f"{self.app_url}/payment/failed"

    def require(self) -> None:
        """Raise RuntimeError naming the first missing required variable."""

        if not self.inventory_url:
            raise RuntimeError(
                "Missing environment variable: GOOGLE_APPS_SCRIPT_URL. "
                "Set it to the deployed inventory web app URL."
            )
        if not self.gateway_api_key:
            raise RuntimeError(
                "Missing environment variable: PLISIO_SECRET_KEY. "
                "Set it to your payment gateway secret key."
            )
        if self.ledger_backend not in ("supabase", "memory"):
            raise RuntimeError(
                f"Invalid LEDGER_BACKEND '{self.ledger_backend}'. Use 'supabase' or 'memory'."
            )


def load_settings() -> Settings:
    """Read settings from the environment."""

    app_url = _env("APP_URL") or _env("NEXT_PUBLIC_APP_URL") or "http://localhost:8000"
    return Settings(
        inventory_url=_env("GOOGLE_APPS_SCRIPT_URL"),
        product_name=_env("PRODUCT_NAME", DEFAULT_PRODUCT_NAME) or DEFAULT_PRODUCT_NAME,
        gateway_api_key=_env("PLISIO_SECRET_KEY"),
        gateway_api_url=_env("PLISIO_API_URL", "https://api.plisio.net/api/v1") or "",
        app_url=app_url.rstrip("/"),
        smtp_host=_env("SMTP_HOST"),
        smtp_port=int(_env("SMTP_PORT", "587") or "587"),
        smtp_user=_env("SMTP_USER"),
        smtp_password=_env("SMTP_PASSWORD"),
        email_from=_env("EMAIL_FROM"),
        ledger_backend=(_env("LEDGER_BACKEND", "supabase") or "supabase").lower(),
        http_timeout_seconds=float(_env("HTTP_TIMEOUT_SECONDS", "10") or "10"),
        log_level=(_env("LOG_LEVEL", "INFO") or "INFO").upper(),
    )


__all__ = ["Settings", "load_settings", "DEFAULT_PRODUCT_NAME"]
