from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, List, Optional

import requests

from clients.http_client import ApiClient
from config import COSMOPOLITAN_API_BASE, HTTP_TIMEOUT_SECONDS
from services.models import DropshipRecord, DropshipSuborder, SuborderResult

logger = logging.getLogger(__name__)


def next_catalog_url(payload: Dict[str, Any]) -> Optional[str]:
    """NextUrl comes back without a scheme ("api.example.com/v1/products?page=2")."""
    raw = (payload or {}).get("NextUrl")
    if not raw:
        return None
    raw = str(raw).strip()
    if raw.startswith(("http://", "https://")):
        return raw
    return f"https://{raw}"


class DistributorClient(ApiClient):
    """Cosmopolitan dropship API."""

    name = "Distributor"

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = COSMOPOLITAN_API_BASE,
        timeout: float = HTTP_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        super().__init__(
            base_url,
            {"Authorization": f"CosmoToken {api_key}"},
            timeout=timeout,
            session=session,
            sleep=sleep,
        )

    # ----------------------------
    # Catalog
    # ----------------------------
    def request_products_page(self, next_url: Optional[str]) -> requests.Response:
        return self.send("GET", next_url or "products")

    def request_product(self, item_code: str) -> requests.Response:
        return self.send("GET", f"products/{item_code}")

    # ----------------------------
    # Suborders / dropship
    # ----------------------------
    def get_suborder(self, po_number: str) -> Optional[Dict[str, Any]]:
        return self.get_optional_json(f"suborders/{po_number}")

    def get_dropship_records(self, po_number: str) -> Optional[List[DropshipRecord]]:
        data = self.get_optional_json(f"dropship/po/{po_number}")
        if data is None:
            return None
        return [DropshipRecord.model_validate(r) for r in data.get("Results") or []]

    def get_dropship_suborder(self, suborder_id: str) -> Optional[DropshipSuborder]:
        data = self.get_optional_json(f"dropship/suborder/{suborder_id}")
        if data is None:
            return None
        return DropshipSuborder.model_validate(data)

    def create_suborder(self, suborder: Dict[str, Any]) -> SuborderResult:
        data = self.post_json("suborders", suborder)
        logger.info("[Distributor] Suborder %s submitted: %s", suborder.get("Suborder"), data)
        return SuborderResult.model_validate(data or {})

    def finalize_dropship(self, po_number: str) -> Dict[str, Any]:
        body = {"PO": po_number, "Comment": f"Dropship order for PO# {po_number}"}
        data = self.post_json("dropship", body)
        logger.info("[Distributor] Dropship order finalized for PO %s: %s", po_number, data)
        return data
