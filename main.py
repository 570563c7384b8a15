# =============================================
#  STOREFRONT DROPSHIP SYNC - ENTRYPOINT
# =============================================
#
#   python main.py products         reconcile the storefront catalog
#   python main.py orders           submit new orders as dropship suborders
#   python main.py update-tracking  push distributor tracking to untracked orders
#   python main.py                  idle keep-alive HTTP listener

import argparse
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Callable, Dict, Optional, Sequence

import uvicorn
from fastapi import FastAPI

from clients.distributor_client import DistributorClient
from clients.http_client import TransportError
from clients.storefront_client import StorefrontClient
from config import (
    APP_NAME,
    APP_VERSION,
    LOG_LEVEL,
    PORT,
    SYNC_TRACKING_WITH_ORDERS,
    distributor_credentials,
    storefront_credentials,
)
from routes import register_keepalive_routes
from services.catalog_sync import run_catalog_sync
from services.notifications import OrderIssueReporter, build_notifier
from services.order_sync import run_order_sync
from services.perf import time_block
from services.tracking_sync import TrackingSync

LOG_DIR = Path(__file__).parent / "logs"
LOG_FILE_PATH = LOG_DIR / "sync.log"

logger = logging.getLogger("dropship_sync")

app = FastAPI(title=APP_NAME, version=APP_VERSION)
register_keepalive_routes(app)


def configure_logging() -> None:
    root_logger = logging.getLogger()
    if root_logger.handlers:
        return
    root_logger.setLevel(LOG_LEVEL)

    formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    try:
        LOG_DIR.mkdir(exist_ok=True)
        file_handler = RotatingFileHandler(
            LOG_FILE_PATH,
            maxBytes=5_000_000,  # 5 MB
            backupCount=3,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
    except OSError as exc:
        root_logger.warning("File logging disabled: %s", exc)

    logging.getLogger("uvicorn").propagate = True
    logging.getLogger("uvicorn.error").propagate = True
    logging.getLogger("uvicorn.access").propagate = True


def build_storefront_client() -> StorefrontClient:
    creds = storefront_credentials()
    return StorefrontClient(creds["store_url"], creds["access_token"])


def build_distributor_client() -> DistributorClient:
    return DistributorClient(distributor_credentials()["api_key"])


def run_products() -> Dict:
    return run_catalog_sync(build_storefront_client(), build_distributor_client())


def run_orders() -> Dict:
    storefront = build_storefront_client()
    distributor = build_distributor_client()
    reporter = OrderIssueReporter(storefront, build_notifier())
    tracking = TrackingSync(storefront, distributor) if SYNC_TRACKING_WITH_ORDERS else None
    return run_order_sync(storefront, distributor, reporter, tracking=tracking)


def run_update_tracking() -> Dict:
    return TrackingSync(build_storefront_client(), build_distributor_client()).run()


MODES: Dict[str, Callable[[], Dict]] = {
    "products": run_products,
    "orders": run_orders,
    "update-tracking": run_update_tracking,
}


def run_mode(mode: str) -> int:
    runner = MODES[mode]
    try:
        with time_block(f"sync:{mode}"):
            summary = runner()
    except (TransportError, RuntimeError) as exc:
        logger.error("An error occurred during '%s': %s", mode, exc, exc_info=True)
        return 1
    logger.info("Finished '%s': %s", mode, summary)
    return 0


def serve(port: int = PORT) -> None:
    logger.info("Server is running on port %s", port)
    uvicorn.run(app, host="0.0.0.0", port=port)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description=APP_NAME)
    parser.add_argument("mode", nargs="?", help=f"one of: {', '.join(MODES)}")
    args = parser.parse_args(argv)

    configure_logging()
    if args.mode in MODES:
        return run_mode(args.mode)

    logger.info("Please specify a function to run: %s", ", ".join(repr(m) for m in MODES))
    serve()
    return 0


if __name__ == "__main__":
    sys.exit(main())
