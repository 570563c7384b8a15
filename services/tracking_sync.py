from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from clients.http_client import TransportError
from clients.storefront_client import TRACKING_ORDER_FIELDS, next_page_info
from config import SHOPIFY_LOCATION_ID
from services.models import FulfillmentOrder, Order, Shipment
from services.pagination import fetch_all_pages

logger = logging.getLogger(__name__)


def fetch_untracked_orders(storefront: Any, *, sleep: Callable[[float], None] = time.sleep) -> List[Order]:
    raw_orders = fetch_all_pages(
        lambda page_info: storefront.request_orders_page(page_info, status="any", fields=TRACKING_ORDER_FIELDS),
        lambda payload: list((payload or {}).get("orders") or []),
        lambda resp, payload: next_page_info(resp),
        label="orders for tracking",
        sleep=sleep,
    )
    orders: List[Order] = []
    for raw in raw_orders:
        try:
            order = Order.model_validate(raw)
        except ValidationError as exc:
            logger.error("[TrackingSync] Skipping unreadable order %s: %s", (raw or {}).get("id"), exc)
            continue
        if order.lacks_tracking():
            orders.append(order)
    logger.info("[TrackingSync] Fetched %s orders without tracking", len(orders))
    return orders


def fulfillment_payload(
    fulfillment_order: FulfillmentOrder,
    shipment: Shipment,
    *,
    location_id: Optional[str],
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "tracking_info": {
            "number": shipment.tracking_number,
            "url": shipment.tracking_url,
            "company": shipment.carrier,
        },
        "notify_customer": True,
        "line_items_by_fulfillment_order": [
            {
                "fulfillment_order_id": fulfillment_order.id,
                "fulfillment_order_line_items": [
                    {"id": line.id, "quantity": line.quantity} for line in fulfillment_order.line_items
                ],
            }
        ],
    }
    if location_id:
        payload["location_id"] = location_id
    return payload


class TrackingSync:
    def __init__(self, storefront: Any, distributor: Any, *, location_id: Optional[str] = SHOPIFY_LOCATION_ID):
        self.storefront = storefront
        self.distributor = distributor
        self.location_id = location_id

    def find_shipment(self, po_number: str) -> Optional[Shipment]:
        """First distributor shipment for the PO, or None when nothing has shipped."""
        records = self.distributor.get_dropship_records(po_number)
        if not records:
            logger.info("[TrackingSync] No dropship records for PO %s.", po_number)
            return None
        suborder_id = records[0].suborder
        if not suborder_id:
            return None
        logger.info("[TrackingSync] Found suborder %s for PO number %s", suborder_id, po_number)
        suborder = self.distributor.get_dropship_suborder(suborder_id)
        if suborder is None or not suborder.shipments:
            return None
        return suborder.shipments[0]

    def sync_order(self, order_id: Any) -> bool:
        """Attach the distributor's tracking to the order's open fulfillment order."""
        po_number = str(order_id)
        shipment = self.find_shipment(po_number)
        if shipment is None or not shipment.tracking_number:
            logger.info("[TrackingSync] No tracking info found for order %s at the distributor.", po_number)
            return False

        fulfillment_orders = self.storefront.list_fulfillment_orders(order_id)
        open_order = next((fo for fo in fulfillment_orders if fo.is_open), None)
        if open_order is None:
            logger.error("[TrackingSync] No open fulfillment order found for order %s", po_number)
            return False

        self.storefront.create_fulfillment(fulfillment_payload(open_order, shipment, location_id=self.location_id))
        logger.info(
            "[TrackingSync] Order %s updated with tracking %s (%s)",
            po_number,
            shipment.tracking_number,
            shipment.carrier,
        )
        return True

    def run(self, *, sleep: Callable[[float], None] = time.sleep) -> Dict[str, Any]:
        orders = fetch_untracked_orders(self.storefront, sleep=sleep)
        updated = 0
        skipped = 0
        failed: List[str] = []
        for order in orders:
            try:
                if self.sync_order(order.id):
                    updated += 1
                else:
                    skipped += 1
            except TransportError as exc:
                logger.error("[TrackingSync] Error updating order %s: %s", order.po_number, exc, exc_info=True)
                failed.append(order.po_number)
        summary = {"orders": len(orders), "updated": updated, "skipped": skipped, "failed": len(failed), "failed_orders": failed}
        logger.info("[TrackingSync] All orders without tracking processed: %s", summary)
        return summary
