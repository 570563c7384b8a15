from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import parse_qs, urlparse

import requests

from clients.http_client import ApiClient, TransportError, decode_json
from config import (
    HTTP_TIMEOUT_SECONDS,
    SHOPIFY_API_VERSION,
    SHOPIFY_GRAPHQL_API_VERSION,
    STOREFRONT_PAGE_SIZE,
)
from services.models import FulfillmentOrder, StorefrontListing

logger = logging.getLogger(__name__)

PRODUCT_LIST_FIELDS = "id,status,variants,images"
OPEN_ORDER_FIELDS = "id,email,note,shipping_address,line_items"
TRACKING_ORDER_FIELDS = "id,email,fulfillments"

_SKU_LOOKUP_QUERY = """
{
  products(first: 10, query: "sku:%s") {
    edges {
      node {
        id
        title
        status
        variants(first: 100) {
          edges {
            node {
              id
              sku
              price
              inventoryQuantity
            }
          }
        }
      }
    }
  }
}
"""
GRAPHQL_THROTTLED = "THROTTLED"


def gid_to_id(gid: Optional[str]) -> Optional[str]:
    """'gid://shopify/Product/123' -> '123'."""
    if not gid:
        return None
    return str(gid).rsplit("/", 1)[-1]


def _escape_query_value(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def _is_throttled(errors: Any) -> bool:
    if not isinstance(errors, list):
        return False
    return any(((e or {}).get("extensions") or {}).get("code") == GRAPHQL_THROTTLED for e in errors)


def next_page_info(resp: requests.Response) -> Optional[str]:
    """Pull the page_info cursor out of the rel="next" Link header, if any."""
    next_link = (resp.links or {}).get("next") or {}
    url = next_link.get("url")
    if not url:
        return None
    values = parse_qs(urlparse(url).query).get("page_info")
    return values[0] if values else None


class StorefrontClient(ApiClient):
    """Shopify Admin API (REST for lists and writes, GraphQL for the by-SKU lookup)."""

    name = "Storefront"

    def __init__(
        self,
        store_url: str,
        access_token: str,
        *,
        api_version: str = SHOPIFY_API_VERSION,
        graphql_api_version: str = SHOPIFY_GRAPHQL_API_VERSION,
        page_size: int = STOREFRONT_PAGE_SIZE,
        timeout: float = HTTP_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        host = store_url.replace("https://", "").replace("http://", "").strip("/")
        super().__init__(
            f"https://{host}/admin/api/{api_version}/",
            {
                "Content-Type": "application/json",
                "X-Shopify-Access-Token": access_token,
            },
            timeout=timeout,
            session=session,
            sleep=sleep,
        )
        self.graphql_url = f"https://{host}/admin/api/{graphql_api_version}/graphql.json"
        self.page_size = page_size

    # ----------------------------
    # Paged listings (raw responses; the page walker owns retry policy)
    # ----------------------------
    def request_products_page(self, page_info: Optional[str]) -> requests.Response:
        params: Dict[str, Any] = {"fields": PRODUCT_LIST_FIELDS, "limit": self.page_size}
        if page_info:
            params["page_info"] = page_info
        return self.send("GET", "products.json", params=params)

    def request_orders_page(self, page_info: Optional[str], *, status: str, fields: str) -> requests.Response:
        params: Dict[str, Any] = {"fields": fields, "limit": self.page_size}
        if page_info:
            # Shopify rejects filter params alongside page_info.
            params["page_info"] = page_info
        else:
            params["status"] = status
        return self.send("GET", "orders.json", params=params)

    # ----------------------------
    # Products
    # ----------------------------
    def find_product_by_sku(self, sku: str) -> Optional[StorefrontListing]:
        """
        Listing whose variant carries exactly this SKU, or None.

        The sku: search is fuzzy, so every returned variant is checked and only
        an exact match counts. Sibling variant ids ride along so an update can
        reference them and keep them on the product.
        """
        result = self._graphql({"query": _SKU_LOOKUP_QUERY % _escape_query_value(sku)}, f"SKU lookup for {sku}")
        edges = (((result.get("data") or {}).get("products") or {}).get("edges")) or []
        for edge in edges:
            node = edge.get("node") or {}
            variants = [v.get("node") or {} for v in ((node.get("variants") or {}).get("edges") or [])]
            match = next((v for v in variants if v.get("sku") == sku), None)
            if match is None:
                continue
            return StorefrontListing(
                product_id=gid_to_id(node.get("id")) or "",
                status=node.get("status"),
                variant_id=gid_to_id(match.get("id")),
                sku=match.get("sku"),
                price=match.get("price"),
                inventory_quantity=int(match.get("inventoryQuantity") or 0),
                other_variant_ids=[gid_to_id(v.get("id")) for v in variants if v is not match and v.get("id")],
            )
        if edges:
            logger.info("[Storefront] SKU search for %s matched no variant with that exact SKU", sku)
        return None

    def _graphql(self, body: Dict[str, Any], context: str) -> Dict[str, Any]:
        """POST a GraphQL query, waiting out HTTP 429 and THROTTLED errors."""
        attempt = 0
        while True:
            attempt += 1
            resp = self.send_throttled("POST", self.graphql_url, json=body)
            if resp.status_code >= 400:
                raise TransportError(
                    f"GraphQL {context} failed with HTTP {resp.status_code}",
                    status_code=resp.status_code,
                    url=self.graphql_url,
                    body=resp.text[:800],
                )
            result = decode_json(resp, f"GraphQL {context}") or {}
            errors = result.get("errors")
            if not errors:
                return result
            if _is_throttled(errors):
                self.wait_for_rate_limit(resp, f"GraphQL {context}", attempt)
                continue
            raise TransportError(f"GraphQL {context} returned errors: {errors}", url=self.graphql_url)

    def create_product(self, product: Dict[str, Any]) -> Dict[str, Any]:
        data = self.post_json("products.json", {"product": product})
        return data.get("product") or {}

    def update_product(self, product_id: str, product: Dict[str, Any]) -> Dict[str, Any]:
        data = self.put_json(f"products/{product_id}.json", {"product": product})
        return data.get("product") or {}

    # ----------------------------
    # Orders / fulfillment
    # ----------------------------
    def update_order_note(self, order_id: Any, note: str) -> None:
        self.put_json(f"orders/{order_id}.json", {"order": {"id": order_id, "note": note}})

    def list_fulfillment_orders(self, order_id: Any) -> List[FulfillmentOrder]:
        data = self.get_json(f"orders/{order_id}/fulfillment_orders.json")
        return [FulfillmentOrder.model_validate(fo) for fo in data.get("fulfillment_orders") or []]

    def create_fulfillment(self, fulfillment: Dict[str, Any]) -> Dict[str, Any]:
        data = self.post_json("fulfillments.json", {"fulfillment": fulfillment})
        return data.get("fulfillment") or {}
