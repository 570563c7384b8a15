"""
Catalog reconciliation between the distributor feed and the storefront.

Recent changes:
- Sold-out sweep is gated on a named, configurable catalog-size threshold.
- Update writes carry the known variant id so the storefront keeps one variant.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set

from pydantic import ValidationError

from clients.distributor_client import next_catalog_url
from clients.http_client import TransportError
from clients.storefront_client import next_page_info
from config import SOLD_OUT_SWEEP_ENABLED, SOLD_OUT_SWEEP_THRESHOLD
from services.catalog_rules import (
    DEFAULT_RULES,
    ClassificationRules,
    compare_at_price,
    storefront_price,
)
from services.models import DistributorProduct, StorefrontListing, StorefrontProduct
from services.pagination import fetch_all_pages
from services.retry import TRANSIENT_SERVER_POLICY, RetryPolicy, fetch_detail

logger = logging.getLogger(__name__)

VENDOR_NAME = "Cosmopolitan"
WEIGHT_UNIT = "oz"


class CatalogAction(str, Enum):
    UPDATE = "update"
    CREATE = "create"
    DRAFT = "draft"
    SKIP = "skip"


@dataclass
class CatalogSyncSummary:
    distributor_items: int = 0
    storefront_products: int = 0
    listable: int = 0
    excluded: int = 0
    unavailable: int = 0
    created: int = 0
    updated: int = 0
    drafted: int = 0
    skipped: int = 0
    failed: int = 0
    sold_out: int = 0
    sweep_ran: bool = False
    failures: List[str] = field(default_factory=list)

    def count(self, action: CatalogAction) -> None:
        attr = {
            CatalogAction.CREATE: "created",
            CatalogAction.UPDATE: "updated",
            CatalogAction.DRAFT: "drafted",
            CatalogAction.SKIP: "skipped",
        }[action]
        setattr(self, attr, getattr(self, attr) + 1)

    def as_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)


# ----------------------------
# Fetching
# ----------------------------
def fetch_distributor_product(
    distributor: Any,
    item_code: str,
    *,
    policy: RetryPolicy = TRANSIENT_SERVER_POLICY,
    sleep: Callable[[float], None] = time.sleep,
) -> Optional[DistributorProduct]:
    """Live distributor detail for one item code, or None when unavailable."""
    return fetch_detail(
        lambda: distributor.request_product(item_code),
        DistributorProduct.model_validate,
        label=f"product {item_code}",
        policy=policy,
        sleep=sleep,
    )


def fetch_distributor_catalog(
    distributor: Any,
    *,
    rules: ClassificationRules = DEFAULT_RULES,
    sleep: Callable[[float], None] = time.sleep,
) -> List[DistributorProduct]:
    """Full distributor listing minus reserved-suffix items and rows without an item code."""
    raw_items = fetch_all_pages(
        distributor.request_products_page,
        lambda payload: list((payload or {}).get("Results") or []),
        lambda resp, payload: next_catalog_url(payload),
        label="distributor products",
        sleep=sleep,
    )
    products: List[DistributorProduct] = []
    for raw in raw_items:
        code = (raw or {}).get("Item")
        if not code or rules.is_reserved_sku(code):
            continue
        try:
            products.append(DistributorProduct.model_validate(raw))
        except ValidationError as exc:
            logger.warning("[CatalogSync] Skipping unreadable distributor row %s: %s", code, exc)
    logger.info("[CatalogSync] Filtered distributor products count: %s", len(products))
    return products


def fetch_storefront_catalog(
    storefront: Any,
    *,
    sleep: Callable[[float], None] = time.sleep,
) -> List[StorefrontProduct]:
    raw_products = fetch_all_pages(
        storefront.request_products_page,
        lambda payload: list((payload or {}).get("products") or []),
        lambda resp, payload: next_page_info(resp),
        label="storefront products",
        sleep=sleep,
    )
    products: List[StorefrontProduct] = []
    for raw in raw_products:
        try:
            products.append(StorefrontProduct.model_validate(raw))
        except ValidationError as exc:
            logger.warning("[CatalogSync] Skipping unreadable storefront product %s: %s", (raw or {}).get("id"), exc)
    logger.info("[CatalogSync] Storefront products count: %s", len(products))
    return products


def storefront_skus(products: List[StorefrontProduct]) -> Set[str]:
    return {sku for product in products for sku in product.skus()}


# ----------------------------
# Payloads
# ----------------------------
def _text(value: Optional[str]) -> str:
    return value or ""


def _as_id(value: Any) -> Any:
    return int(value) if str(value).isdigit() else value


def describe_product(product: DistributorProduct) -> str:
    return (
        f"<strong>Description:</strong> {_text(product.desc)}\n"
        f"    {_text(product.desc2)}\n"
        f"    {_text(product.desc3)}<br>\n"
        f"    <strong>UPC:</strong> {_text(product.upc)}<br>\n"
        f"    <strong>Size:</strong> {_text(product.size)}<br>\n"
        f"    <strong>Designer:</strong> {_text(product.designer)}<br>\n"
        f"    <strong>Fragrance:</strong> {_text(product.fragrance)}"
    )


def product_tags(product: DistributorProduct) -> List[str]:
    return [
        f"ProductLine_{product.product_line}" if product.product_line else "Unclassified",
        f"ProductClass_{product.product_class}" if product.product_class else "Unclassified",
        f"Designer_{_text(product.designer)}",
        f"Fragrance_{product.fragrance}" if product.fragrance else "No Fragrance",
    ]


def variant_payload(product: DistributorProduct, *, variant_id: Optional[str] = None) -> Dict[str, Any]:
    if product.net is None:
        raise ValueError(f"distributor item {product.item} has no net cost")
    variant: Dict[str, Any] = {
        "price": str(storefront_price(product.net)),
        "compare_at_price": compare_at_price(product.retail),
        "sku": product.item,
        "inventory_quantity": max(0, product.available),
        "inventory_management": "shopify",
        "barcode": product.upc,
        "weight": product.weight or "0",
        "weight_unit": WEIGHT_UNIT,
    }
    if variant_id:
        variant["id"] = _as_id(variant_id)
    return variant


def new_listing_payload(product: DistributorProduct) -> Dict[str, Any]:
    return {
        "title": product.desc,
        "body_html": describe_product(product),
        "vendor": VENDOR_NAME,
        "product_type": product.product_type,
        "tags": product_tags(product),
        "variants": [variant_payload(product)],
        "images": [{"src": product.image_url}] if product.image_url else [],
        "status": "active",
    }


def update_listing_payload(product: DistributorProduct, listing: StorefrontListing) -> Dict[str, Any]:
    # Title, body and tags are left as merchandised on the storefront.
    # Sibling variants are listed by id only so the PUT keeps them unchanged.
    variants = [variant_payload(product, variant_id=listing.variant_id)]
    variants.extend({"id": _as_id(vid)} for vid in listing.other_variant_ids)
    return {
        "id": _as_id(listing.product_id),
        "vendor": VENDOR_NAME,
        "product_type": product.product_type,
        "variants": variants,
        "status": "active",
    }


# ----------------------------
# Decisions
# ----------------------------
def decide_action(
    product: DistributorProduct,
    listing: Optional[StorefrontListing],
    distributor_skus: Set[str],
    known_storefront_skus: Set[str],
) -> CatalogAction:
    available = max(0, product.available)
    if listing is not None and listing.inventory_quantity != available and not listing.is_archived:
        return CatalogAction.UPDATE
    if product.item not in distributor_skus:
        return CatalogAction.DRAFT if listing is not None else CatalogAction.SKIP
    if product.item not in known_storefront_skus and listing is None:
        return CatalogAction.CREATE
    return CatalogAction.SKIP


class CatalogReconciler:
    def __init__(
        self,
        storefront: Any,
        distributor: Any,
        *,
        rules: ClassificationRules = DEFAULT_RULES,
        sweep_threshold: int = SOLD_OUT_SWEEP_THRESHOLD,
        sweep_enabled: bool = SOLD_OUT_SWEEP_ENABLED,
        detail_policy: RetryPolicy = TRANSIENT_SERVER_POLICY,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.storefront = storefront
        self.distributor = distributor
        self.rules = rules
        self.sweep_threshold = sweep_threshold
        self.sweep_enabled = sweep_enabled
        self.detail_policy = detail_policy
        self.sleep = sleep

    def reconcile_product(
        self,
        product: DistributorProduct,
        distributor_skus: Set[str],
        known_storefront_skus: Set[str],
    ) -> CatalogAction:
        listing = self.storefront.find_product_by_sku(product.item)
        action = decide_action(product, listing, distributor_skus, known_storefront_skus)

        if action is CatalogAction.UPDATE:
            self.storefront.update_product(listing.product_id, update_listing_payload(product, listing))
            logger.info("[CatalogSync] Updated product %s (SKU %s) in storefront.", listing.product_id, product.item)
        elif action is CatalogAction.DRAFT:
            logger.info("[CatalogSync] Drafting product %s as it is no longer available from the distributor.", product.item)
            self.storefront.update_product(listing.product_id, {"id": _as_id(listing.product_id), "status": "draft"})
        elif action is CatalogAction.CREATE:
            logger.info("[CatalogSync] Creating new product with SKU %s in storefront.", product.item)
            created = self.storefront.create_product(new_listing_payload(product))
            known_storefront_skus.add(product.item)
            logger.info("[CatalogSync] Created new product in storefront: %s", created.get("id"))
        else:
            logger.debug("[CatalogSync] SKU %s already up to date in storefront. Skipping.", product.item)
        return action

    def sweep_sold_out(self, storefront_products: List[StorefrontProduct], distributor_skus: Set[str]) -> int:
        """Zero stock on listed variants whose SKU the distributor no longer carries."""
        marked = 0
        for product in storefront_products:
            stale_skus = [
                v.sku for v in product.variants
                if v.sku and v.inventory_quantity > 0 and v.sku not in distributor_skus
            ]
            if not stale_skus:
                continue
            variants = [
                {
                    "id": v.id,
                    "price": v.price,
                    "compare_at_price": v.compare_at_price,
                    "sku": v.sku,
                    "inventory_quantity": 0 if v.sku in stale_skus else max(0, v.inventory_quantity),
                    "inventory_management": "shopify",
                    "barcode": v.barcode,
                    "weight": v.weight,
                    "weight_unit": WEIGHT_UNIT,
                }
                for v in product.variants
            ]
            logger.info("[CatalogSync] Updating product %s (%s) as Sold Out", product.id, ", ".join(stale_skus))
            try:
                self.storefront.update_product(str(product.id), {"id": product.id, "variants": variants})
            except TransportError as exc:
                logger.error("[CatalogSync] Failed to mark product %s sold out: %s", product.id, exc)
                continue
            marked += 1
        return marked

    def should_sweep(self, distributor_count: int) -> bool:
        return self.sweep_enabled and distributor_count > self.sweep_threshold

    def run(self) -> CatalogSyncSummary:
        summary = CatalogSyncSummary()

        # Both listings must complete; a partial catalog would corrupt every decision below.
        distributor_products = fetch_distributor_catalog(self.distributor, rules=self.rules, sleep=self.sleep)
        distributor_skus = {p.item for p in distributor_products}
        storefront_products = fetch_storefront_catalog(self.storefront, sleep=self.sleep)
        known_storefront_skus = storefront_skus(storefront_products)
        summary.distributor_items = len(distributor_products)
        summary.storefront_products = len(storefront_products)

        for listed in distributor_products:
            if self.rules.is_reserved_sku(listed.item):
                logger.info("[CatalogSync] Skipping product %s because it ends with '%s'.", listed.item, self.rules.reserved_suffix)
                summary.excluded += 1
                continue
            detail = fetch_distributor_product(
                self.distributor, listed.item, policy=self.detail_policy, sleep=self.sleep
            )
            if detail is None:
                summary.unavailable += 1
                continue
            reason = self.rules.exclusion_reason(detail)
            if reason:
                logger.info("[CatalogSync] Skipping product %s: %s.", listed.item, reason)
                summary.excluded += 1
                continue
            summary.listable += 1
            try:
                action = self.reconcile_product(detail, distributor_skus, known_storefront_skus)
            except (TransportError, ValueError) as exc:
                logger.error("[CatalogSync] Error reconciling product %s: %s", listed.item, exc, exc_info=True)
                summary.failed += 1
                summary.failures.append(listed.item)
                continue
            summary.count(action)

        if self.should_sweep(len(distributor_products)):
            summary.sweep_ran = True
            summary.sold_out = self.sweep_sold_out(storefront_products, distributor_skus)
        else:
            logger.info(
                "[CatalogSync] Sold-out sweep skipped: %s distributor items (threshold %s, enabled=%s)",
                len(distributor_products),
                self.sweep_threshold,
                self.sweep_enabled,
            )

        logger.info("[CatalogSync] Number of Updated Storefront Products: %s", summary.updated)
        logger.info("[CatalogSync] Number of Available Distributor Products: %s", summary.listable)
        return summary


def run_catalog_sync(storefront: Any, distributor: Any, **kwargs: Any) -> Dict[str, Any]:
    return CatalogReconciler(storefront, distributor, **kwargs).run().as_dict()
