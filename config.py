import logging
import os
from pathlib import Path
from typing import Dict

# Load .env early so os.getenv picks up local dev secrets.
try:  # pragma: no cover - environment bootstrap
    from dotenv import load_dotenv

    _DOTENV_PATHS = [Path.cwd() / ".env", Path(__file__).resolve().parent / ".env"]
    for _env_path in _DOTENV_PATHS:
        if _env_path.exists():
            load_dotenv(dotenv_path=_env_path, override=False)
except OSError as exc:
    logging.getLogger(__name__).warning("Failed to load .env: %s", exc)

APP_NAME = "Storefront Dropship Sync"
APP_VERSION = "1.0.0"

# ----------------------------
# Helpers
# ----------------------------
def _req(name: str) -> str:
    v = os.getenv(name)
    if not v:
        raise RuntimeError(f"Missing required env var: {name}")
    return v

def _csv_list(name: str, default: str = "") -> list[str]:
    raw = (os.getenv(name) or default).strip()
    if not raw:
        return []
    return [x.strip() for x in raw.split(",") if x.strip()]

def _int_env(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logging.getLogger(__name__).warning("Ignoring non-integer %s=%r", name, raw)
        return default

def _float_env(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logging.getLogger(__name__).warning("Ignoring non-numeric %s=%r", name, raw)
        return default

def _bool_env(name: str, default: bool) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")

# ----------------------------
# Storefront (Shopify Admin API)
# ----------------------------
SHOPIFY_API_VERSION = os.getenv("SHOPIFY_API_VERSION", "2024-04")
SHOPIFY_GRAPHQL_API_VERSION = os.getenv("SHOPIFY_GRAPHQL_API_VERSION", "2024-07")
SHOPIFY_LOCATION_ID = os.getenv("SHOPIFY_LOCATION_ID", "")
STOREFRONT_PAGE_SIZE = _int_env("STOREFRONT_PAGE_SIZE", 250)

# ----------------------------
# Distributor (Cosmopolitan API)
# ----------------------------
COSMOPOLITAN_API_BASE = os.getenv("COSMOPOLITAN_API_BASE", "https://api.cosmopolitanusa.com/v1/")

# ----------------------------
# Transport / retry
# ----------------------------
HTTP_TIMEOUT_SECONDS = _float_env("HTTP_TIMEOUT_SECONDS", 30.0)
PAGE_MIN_INTERVAL_SECONDS = _float_env("PAGE_MIN_INTERVAL_SECONDS", 1.0)
DETAIL_MAX_ATTEMPTS = _int_env("DETAIL_MAX_ATTEMPTS", 3)
DETAIL_RETRY_BASE_SECONDS = _float_env("DETAIL_RETRY_BASE_SECONDS", 2.0)

# ----------------------------
# Catalog reconciliation
# ----------------------------
# Sold-out sweep only runs when the distributor catalog is larger than this.
SOLD_OUT_SWEEP_THRESHOLD = _int_env("SOLD_OUT_SWEEP_THRESHOLD", 2000)
SOLD_OUT_SWEEP_ENABLED = _bool_env("SOLD_OUT_SWEEP_ENABLED", True)
EXTRA_EXCLUDED_PRODUCT_CLASSES = _csv_list("EXCLUDED_PRODUCT_CLASSES")
EXTRA_EXCLUDED_PRODUCT_LINES = _csv_list("EXCLUDED_PRODUCT_LINES")

# ----------------------------
# Orders / tracking
# ----------------------------
LINE_VALIDATION_CONCURRENCY = _int_env("LINE_VALIDATION_CONCURRENCY", 5)
SYNC_TRACKING_WITH_ORDERS = _bool_env("SYNC_TRACKING_WITH_ORDERS", True)

# ----------------------------
# Notifications (SMTP)
# ----------------------------
SMTP_HOST = os.getenv("SMTP_HOST", "smtp.gmail.com")
SMTP_PORT = _int_env("SMTP_PORT", 465)
GMAIL_USER = os.getenv("GMAIL_USER", "")
GMAIL_PASS = os.getenv("GMAIL_PASS", "")
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "")

# ----------------------------
# Process
# ----------------------------
PORT = _int_env("PORT", 3000)
LOG_LEVEL = os.getenv("SYNC_LOG_LEVEL", "INFO").upper()


# ----------------------------
# Required credentials (env only, read on demand)
# ----------------------------
def storefront_credentials() -> Dict[str, str]:
    return {
        "store_url": _req("SHOPIFY_STORE_URL"),
        "access_token": _req("SHOPIFY_API_PASSWORD"),
    }


def distributor_credentials() -> Dict[str, str]:
    return {"api_key": _req("COSMOPOLITAN_API_KEY")}
