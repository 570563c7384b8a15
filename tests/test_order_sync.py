from __future__ import annotations

import json
import time

import pytest

from clients.distributor_client import DistributorClient
from clients.http_client import TransportError
from services.models import DropshipRecord, Order, SuborderResult
from services.notifications import OrderIssueReporter
from services.order_sync import (
    NO_VALID_LINES_ISSUE,
    OrderReconciler,
    OrderState,
    SuborderNotCreatedError,
    build_suborder_payload,
    run_order_sync,
)


class DummyResp:
    def __init__(self, payload=None, status_code=200, body=None):
        self._payload = payload
        self.status_code = status_code
        self.headers = {}
        self.text = body if body is not None else json.dumps(payload)
        self.content = self.text.encode()
        self.url = "https://example.test"
        self.links = {}

    def json(self):
        return json.loads(self.text)


class FakeDistributor:
    def __init__(self, stock, *, created="FULLY", fail_create_for=(), delays=None):
        self.stock = stock
        self.created = created
        self.fail_create_for = set(fail_create_for)
        self.delays = delays or {}
        self.suborders = {}
        self.records = {}
        self.submitted = []
        self.finalized = []
        self.lookups = []

    def request_product(self, item_code):
        time.sleep(self.delays.get(item_code, 0))
        if item_code not in self.stock:
            return DummyResp({"Message": "not found"}, status_code=404)
        return DummyResp({"Item": item_code, "Available": self.stock[item_code], "Net": "10.00"})

    def get_suborder(self, po_number):
        self.lookups.append(po_number)
        return self.suborders.get(po_number)

    def get_dropship_records(self, po_number):
        return self.records.get(po_number)

    def create_suborder(self, payload):
        po_number = payload["Suborder"]
        if po_number in self.fail_create_for:
            raise TransportError("POST suborders failed with HTTP 500", status_code=500)
        self.submitted.append(payload)
        if self.created != "NONE":
            self.suborders[po_number] = payload
        return SuborderResult.model_validate({"Created": self.created})

    def finalize_dropship(self, po_number):
        self.finalized.append(po_number)
        self.records[po_number] = [DropshipRecord.model_validate({"Suborder": po_number, "Status": "Processed"})]
        return {"PO": po_number}


class FakeStorefront:
    def __init__(self, orders=None):
        self.orders = orders or []
        self.notes = {}

    def request_orders_page(self, page_info, *, status, fields):
        return DummyResp({"orders": self.orders})

    def update_order_note(self, order_id, note):
        self.notes[str(order_id)] = note


class FakeNotifier:
    def __init__(self):
        self.sent = []

    def send(self, subject, body):
        self.sent.append((subject, body))
        return True


ADDRESS = {
    "name": "Ada Lovelace",
    "address1": "12 Analytical Way",
    "city": "London",
    "zip": "10001",
    "province_code": "NY",
    "country_code": "US",
}


def _order_payload(order_id=1001, lines=None, address=ADDRESS, note=None):
    if lines is None:
        lines = [("SKU1", 1), ("SKU2", 2)]
    return {
        "id": order_id,
        "email": "ada@example.test",
        "note": note,
        "shipping_address": address,
        "line_items": [
            {"sku": sku, "quantity": qty, "price": "12.50", "title": f"Title {sku}"} for sku, qty in lines
        ],
    }


def _order(**kwargs) -> Order:
    return Order.model_validate(_order_payload(**kwargs))


def _setup(stock=None, **distributor_kwargs):
    distributor = FakeDistributor(stock if stock is not None else {"SKU1": 5, "SKU2": 5}, **distributor_kwargs)
    storefront = FakeStorefront()
    notifier = FakeNotifier()
    reporter = OrderIssueReporter(storefront, notifier)
    reconciler = OrderReconciler(distributor, reporter, sleep=lambda s: None, max_concurrency=3)
    return distributor, storefront, notifier, reporter, reconciler


def test_fresh_order_is_submitted_and_finalized():
    distributor, _, notifier, _, reconciler = _setup()

    outcome = reconciler.reconcile(_order())

    assert outcome.state is OrderState.FULLY_CREATED
    assert outcome.finalized is True
    assert distributor.finalized == ["1001"]
    payload = distributor.submitted[0]
    assert payload["Suborder"] == "1001"
    assert payload["ShipTo"]["Zip"] == "10001"
    assert payload["Lines"] == [
        {"SKU": "SKU1", "QTY": 1, "NET": "12.50", "ItemDesc": "Title SKU1"},
        {"SKU": "SKU2", "QTY": 2, "NET": "12.50", "ItemDesc": "Title SKU2"},
    ]
    assert notifier.sent == []


def test_existing_unprocessed_suborder_is_only_finalized():
    distributor, _, _, _, reconciler = _setup()
    distributor.suborders["1001"] = {"Suborder": "1001"}
    distributor.records["1001"] = [DropshipRecord.model_validate({"Suborder": "1001", "Status": "Pending"})]

    outcome = reconciler.reconcile(_order())

    assert outcome.state is OrderState.SUBORDER_EXISTS_UNPROCESSED
    assert distributor.submitted == []
    assert distributor.finalized == ["1001"]


def test_processed_suborder_is_left_alone():
    distributor, _, _, _, reconciler = _setup()
    distributor.suborders["1001"] = {"Suborder": "1001"}
    distributor.records["1001"] = [DropshipRecord.model_validate({"Suborder": "1001", "Status": "Processed"})]

    outcome = reconciler.reconcile(_order())

    assert outcome.state is OrderState.FULLY_SUBMITTED
    assert distributor.submitted == []
    assert distributor.finalized == []


def test_second_run_does_not_resubmit():
    distributor, _, _, _, reconciler = _setup()
    order = _order()

    first = reconciler.reconcile(order)
    second = reconciler.reconcile(order)

    assert first.state is OrderState.FULLY_CREATED
    assert second.state is OrderState.FULLY_SUBMITTED
    assert len(distributor.submitted) == 1
    assert distributor.finalized == ["1001"]


def test_out_of_stock_line_is_reported_and_rest_submitted():
    distributor, storefront, notifier, reporter, reconciler = _setup(stock={"SKU1": 5, "SKU2": 1}, created="PARTIALLY")

    outcome = reconciler.reconcile(_order())

    assert outcome.state is OrderState.PARTIALLY_CREATED
    assert [line["SKU"] for line in distributor.submitted[0]["Lines"]] == ["SKU1"]
    assert outcome.issues == ["Item SKU2 is out of stock or insufficient quantity."]
    assert "Item SKU2 is out of stock or insufficient quantity." in storefront.notes["1001"]
    assert notifier.sent[0][0] == "Inventory Issue with Order 1001"
    assert reporter.reported == [{"po": "1001", "issue": "Item SKU2 is out of stock or insufficient quantity."}]


def test_no_valid_lines_skips_submission():
    distributor, storefront, notifier, _, reconciler = _setup(stock={})

    outcome = reconciler.reconcile(_order())

    assert outcome.state is OrderState.NO_VALID_LINES
    assert distributor.submitted == []
    assert distributor.finalized == []
    assert NO_VALID_LINES_ISSUE in storefront.notes["1001"]
    assert len(notifier.sent) == 3


def test_missing_address_makes_no_distributor_calls():
    distributor, _, notifier, _, reconciler = _setup()
    address = {k: v for k, v in ADDRESS.items() if k != "province_code"}

    outcome = reconciler.reconcile(_order(address=address))

    assert outcome.state is OrderState.NO_ADDRESS
    assert distributor.lookups == []
    assert distributor.submitted == []
    assert "province_code" in outcome.issues[0]
    assert len(notifier.sent) == 1


def test_nothing_created_raises():
    distributor, _, _, _, reconciler = _setup(created="NONE")

    with pytest.raises(SuborderNotCreatedError) as excinfo:
        reconciler.reconcile(_order())

    assert excinfo.value.po_number == "1001"
    assert distributor.finalized == []


def test_accepted_lines_keep_order_line_sequence():
    stock = {f"SKU{i}": 10 for i in range(6)}
    delays = {"SKU0": 0.05, "SKU1": 0.03, "SKU2": 0.01}
    distributor, _, _, _, reconciler = _setup(stock=stock, delays=delays)
    lines = [(f"SKU{i}", 1) for i in range(6)]

    reconciler.reconcile(_order(lines=lines))

    assert [line["SKU"] for line in distributor.submitted[0]["Lines"]] == [f"SKU{i}" for i in range(6)]


def test_lines_without_sku_or_quantity_are_rejected():
    distributor, _, _, _, reconciler = _setup()

    outcome = reconciler.reconcile(_order(lines=[("SKU1", 1), ("", 1), ("SKU2", 0)]))

    assert [line.sku for line in outcome.submitted_lines] == ["SKU1"]
    assert len(outcome.issues) == 2


def test_suborder_payload_defaults():
    order = _order(note=None)
    payload = build_suborder_payload(order, [])

    assert payload["Comment"] == "Dropship order from Shopify"
    assert payload["ShipTo"]["Line2"] == ""
    assert payload["ShipTo"]["Email"] == "ada@example.test"
    assert payload["Prime"] is False


class FakeTracking:
    def __init__(self):
        self.synced = []

    def sync_order(self, order_id):
        self.synced.append(str(order_id))
        return True


def test_run_order_sync_continues_after_a_failed_order():
    distributor, storefront, _, reporter, _ = _setup(fail_create_for={"1001"})
    storefront.orders = [_order_payload(1001), _order_payload(1002)]
    tracking = FakeTracking()

    summary = run_order_sync(
        storefront, distributor, reporter, tracking=tracking, sleep=lambda s: None, max_concurrency=2
    )

    assert summary["orders"] == 2
    assert summary["failed"] == 1
    assert summary["failed_orders"] == ["1001"]
    assert summary["states"] == {"FullyCreated": 1}
    assert tracking.synced == ["1002"]
    assert summary["tracking_updates"] == 1


class RoutedSession:
    """requests.Session stand-in answering by (method, url)."""

    def __init__(self, routes):
        self.headers = {}
        self.routes = routes
        self.requests = []

    def request(self, method, url, params=None, json=None, timeout=None):
        self.requests.append((method, url))
        return self.routes.get((method, url)) or DummyResp({"Message": "not found"}, status_code=404)


def test_run_order_sync_survives_a_non_json_distributor_body():
    base = "https://api.test/v1/"
    session = RoutedSession(
        {
            ("GET", base + "suborders/1001"): DummyResp(body="<html><body>Service Unavailable</body></html>"),
            ("GET", base + "products/SKU1"): DummyResp({"Item": "SKU1", "Available": 5, "Net": "10.00"}),
            ("GET", base + "products/SKU2"): DummyResp({"Item": "SKU2", "Available": 5, "Net": "10.00"}),
            ("POST", base + "suborders"): DummyResp({"Created": "FULLY"}),
            ("POST", base + "dropship"): DummyResp({"PO": "1002"}),
        }
    )
    distributor = DistributorClient("key-1", base_url=base, session=session, sleep=lambda s: None)
    storefront = FakeStorefront([_order_payload(1001), _order_payload(1002)])
    reporter = OrderIssueReporter(storefront, FakeNotifier())

    summary = run_order_sync(storefront, distributor, reporter, sleep=lambda s: None, max_concurrency=2)

    assert summary["failed_orders"] == ["1001"]
    assert summary["states"] == {"FullyCreated": 1}
    assert ("POST", base + "dropship") in session.requests
    assert ("GET", base + "suborders/1002") in session.requests
