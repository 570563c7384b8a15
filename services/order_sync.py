"""
Idempotent submission of storefront orders to the distributor as dropship suborders.

Submission state is re-derived from the distributor on every run: an order is
resubmitted only when no suborder exists for its PO number.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from clients.http_client import TransportError
from clients.storefront_client import OPEN_ORDER_FIELDS, next_page_info
from config import LINE_VALIDATION_CONCURRENCY
from services.catalog_sync import fetch_distributor_product
from services.line_validation import validate_lines
from services.models import CreationStatus, Order, SuborderLine
from services.notifications import OrderIssueReporter
from services.pagination import fetch_all_pages
from services.retry import TRANSIENT_SERVER_POLICY, RetryPolicy

logger = logging.getLogger(__name__)

DEFAULT_SUBORDER_COMMENT = "Dropship order from Shopify"
NO_VALID_LINES_ISSUE = "No valid lines to submit. All items are out of stock or insufficient quantity."


class OrderState(str, Enum):
    NO_ADDRESS = "NoAddress"
    NOT_SUBMITTED = "NotSubmitted"
    SUBORDER_EXISTS_UNPROCESSED = "SuborderExistsUnprocessed"
    FULLY_SUBMITTED = "FullySubmitted"
    SUBMITTING = "Submitting"
    NO_VALID_LINES = "NoValidLines"
    PARTIALLY_CREATED = "PartiallyCreated"
    FULLY_CREATED = "FullyCreated"


class SuborderNotCreatedError(RuntimeError):
    """The distributor accepted the request but reported that nothing was created."""

    def __init__(self, po_number: str, created: Optional[str]):
        super().__init__(f"Suborder {po_number} was not created (Created={created!r})")
        self.po_number = po_number
        self.created = created


@dataclass
class OrderOutcome:
    po_number: str
    state: OrderState
    submitted_lines: List[SuborderLine] = field(default_factory=list)
    issues: List[str] = field(default_factory=list)
    finalized: bool = False


def build_suborder_payload(order: Order, lines: List[SuborderLine]) -> Dict[str, Any]:
    address = order.shipping_address
    return {
        "Suborder": order.po_number,
        "Prime": False,
        "Premium": False,
        "Signature": False,
        "Comment": order.note or DEFAULT_SUBORDER_COMMENT,
        "ShipMethod": "",
        "ShipTo": {
            "Name": address.name,
            "Line1": address.address1,
            "Line2": address.address2 or "",
            "City": address.city,
            "State": address.province_code,
            "Zip": address.zip,
            "Country": address.country_code,
            "Company": address.company or "",
            "Phone": address.phone or "",
            "Residence": True,
            "Email": order.email or "",
        },
        "Lines": [line.model_dump(by_alias=True) for line in lines],
    }


class OrderReconciler:
    def __init__(
        self,
        distributor: Any,
        reporter: OrderIssueReporter,
        *,
        detail_policy: RetryPolicy = TRANSIENT_SERVER_POLICY,
        max_concurrency: int = LINE_VALIDATION_CONCURRENCY,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.distributor = distributor
        self.reporter = reporter
        self.detail_policy = detail_policy
        self.max_concurrency = max_concurrency
        self.sleep = sleep

    def submission_state(self, po_number: str) -> OrderState:
        suborder = self.distributor.get_suborder(po_number)
        records = self.distributor.get_dropship_records(po_number) or []
        processed = any(r.suborder == po_number and r.is_processed for r in records)
        if suborder is None:
            logger.info("[OrderSync] Suborder %s does not exist yet at the distributor.", po_number)
            return OrderState.NOT_SUBMITTED
        if processed:
            return OrderState.FULLY_SUBMITTED
        return OrderState.SUBORDER_EXISTS_UNPROCESSED

    def _lookup(self, sku: str):
        return fetch_distributor_product(self.distributor, sku, policy=self.detail_policy, sleep=self.sleep)

    def _finalize(self, outcome: OrderOutcome) -> OrderOutcome:
        self.distributor.finalize_dropship(outcome.po_number)
        outcome.finalized = True
        return outcome

    def reconcile(self, order: Order) -> OrderOutcome:
        po_number = order.po_number

        missing = order.missing_address_fields()
        if missing:
            issue = f"Incomplete shipping address (missing {', '.join(missing)})"
            logger.error("[OrderSync] Order %s submission aborted: %s", po_number, issue)
            self.reporter.report(order, issue)
            return OrderOutcome(po_number, OrderState.NO_ADDRESS, issues=[issue])

        state = self.submission_state(po_number)
        if state is OrderState.FULLY_SUBMITTED:
            logger.info("[OrderSync] Suborder %s has already been submitted.", po_number)
            return OrderOutcome(po_number, state)
        if state is OrderState.SUBORDER_EXISTS_UNPROCESSED:
            logger.info("[OrderSync] Suborder %s exists but has not been submitted. Finalizing now.", po_number)
            return self._finalize(OrderOutcome(po_number, state))

        validation = validate_lines(order.line_items, self._lookup, max_concurrency=self.max_concurrency)
        issues = [issue.describe() for issue in validation.issues]
        for issue in issues:
            self.reporter.report(order, issue)

        if not validation.accepted:
            logger.error("[OrderSync] Order %s: %s", po_number, NO_VALID_LINES_ISSUE)
            self.reporter.report(order, NO_VALID_LINES_ISSUE)
            return OrderOutcome(po_number, OrderState.NO_VALID_LINES, issues=issues + [NO_VALID_LINES_ISSUE])

        logger.info(
            "[OrderSync] Order %s %s -> %s with %s line(s)",
            po_number,
            OrderState.NOT_SUBMITTED.value,
            OrderState.SUBMITTING.value,
            len(validation.accepted),
        )
        result = self.distributor.create_suborder(build_suborder_payload(order, validation.accepted))
        creation = result.creation
        if creation is CreationStatus.NONE:
            raise SuborderNotCreatedError(po_number, result.created)

        final_state = OrderState.FULLY_CREATED if creation is CreationStatus.FULLY else OrderState.PARTIALLY_CREATED
        outcome = OrderOutcome(po_number, final_state, submitted_lines=validation.accepted, issues=issues)
        return self._finalize(outcome)


def fetch_open_orders(storefront: Any, *, sleep: Callable[[float], None] = time.sleep) -> List[Order]:
    raw_orders = fetch_all_pages(
        lambda page_info: storefront.request_orders_page(page_info, status="open", fields=OPEN_ORDER_FIELDS),
        lambda payload: list((payload or {}).get("orders") or []),
        lambda resp, payload: next_page_info(resp),
        label="open orders",
        sleep=sleep,
    )
    orders: List[Order] = []
    for raw in raw_orders:
        try:
            order = Order.model_validate(raw)
        except ValidationError as exc:
            logger.error("[OrderSync] Skipping unreadable order %s: %s", (raw or {}).get("id"), exc)
            continue
        if order.shipping_address is None:
            logger.info("[OrderSync] Order ID: %s has no shipping address.", order.po_number)
        orders.append(order)
    logger.info("[OrderSync] Fetched %s open orders", len(orders))
    return orders


def run_order_sync(
    storefront: Any,
    distributor: Any,
    reporter: OrderIssueReporter,
    *,
    tracking: Optional[Any] = None,
    sleep: Callable[[float], None] = time.sleep,
    **reconciler_kwargs: Any,
) -> Dict[str, Any]:
    """Reconcile every open order; one order's failure never stops the batch."""
    reconciler = OrderReconciler(distributor, reporter, sleep=sleep, **reconciler_kwargs)
    orders = fetch_open_orders(storefront, sleep=sleep)

    states: Dict[str, int] = {}
    failed: List[str] = []
    tracking_updates = 0
    for order in orders:
        try:
            outcome = reconciler.reconcile(order)
            states[outcome.state.value] = states.get(outcome.state.value, 0) + 1
        except (TransportError, SuborderNotCreatedError) as exc:
            logger.error("[OrderSync] Error processing order %s: %s", order.po_number, exc, exc_info=True)
            failed.append(order.po_number)
            continue

        if tracking is not None:
            try:
                if tracking.sync_order(order.id):
                    tracking_updates += 1
            except TransportError as exc:
                logger.error("[OrderSync] Tracking update failed for order %s: %s", order.po_number, exc)

    summary = {
        "orders": len(orders),
        "states": states,
        "failed": len(failed),
        "failed_orders": failed,
        "issues_reported": len(reporter.reported),
        "tracking_updates": tracking_updates,
    }
    logger.info("[OrderSync] All open orders processed: %s", summary)
    return summary
