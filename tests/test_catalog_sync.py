from __future__ import annotations

import pytest

from clients.http_client import TransportError
from services.catalog_rules import DEFAULT_RULES
from services.catalog_sync import (
    CatalogAction,
    CatalogReconciler,
    decide_action,
    new_listing_payload,
    run_catalog_sync,
    update_listing_payload,
)
from services.models import DistributorProduct, StorefrontListing
from services.pagination import PaginationError


class DummyResp:
    def __init__(self, payload=None, status_code=200):
        self._payload = payload
        self.status_code = status_code
        self.headers = {}
        self.text = ""
        self.url = "https://example.test"
        self.links = {}

    def json(self):
        return self._payload


class FakeDistributor:
    def __init__(self, details, *, catalog_status=200):
        self.details = details
        self.catalog_status = catalog_status
        self.detail_requests = []

    def request_products_page(self, next_url):
        if self.catalog_status >= 400:
            return DummyResp({"error": "down"}, status_code=self.catalog_status)
        if next_url is None:
            codes = list(self.details)
            half = len(codes) // 2
            return DummyResp(
                {"Results": [{"Item": c} for c in codes[:half]], "NextUrl": "api.example.test/v1/products?page=2"}
            )
        codes = list(self.details)
        half = len(codes) // 2
        return DummyResp({"Results": [{"Item": c} for c in codes[half:]], "NextUrl": None})

    def request_product(self, item_code):
        self.detail_requests.append(item_code)
        raw = self.details.get(item_code)
        if raw is None:
            return DummyResp({"Message": "not found"}, status_code=404)
        return DummyResp(raw)


class FakeStorefront:
    def __init__(self, products=None, listings=None, *, fail_updates_for=()):
        self.products = products or []
        self.listings = listings or {}
        self.fail_updates_for = set(fail_updates_for)
        self.created = []
        self.updated = []

    def request_products_page(self, page_info):
        return DummyResp({"products": self.products})

    def find_product_by_sku(self, sku):
        return self.listings.get(sku)

    def create_product(self, product):
        self.created.append(product)
        return {"id": 900 + len(self.created)}

    def update_product(self, product_id, product):
        if product_id in self.fail_updates_for:
            raise TransportError(f"PUT products/{product_id}.json failed with HTTP 422", status_code=422)
        self.updated.append((product_id, product))
        return product


def _detail(item, available=5, net="20.00", **fields):
    raw = {
        "Item": item,
        "Desc": f"{item} Eau de Parfum",
        "Designer": "Maison",
        "Fragrance": "Oud",
        "UPC": "0123",
        "Size": "3.4 oz",
        "Product": "Fragrance",
        "Net": net,
        "Retail": "45",
        "Available": available,
        "ProductLine": "FRAG",
        "ProductClass": "EDPLDY",
        "Weight": "12",
    }
    raw.update(fields)
    return raw


def _listing(sku, qty, *, status="ACTIVE", product_id="111", variant_id="222"):
    return StorefrontListing(
        product_id=product_id, status=status, variant_id=variant_id, sku=sku, inventory_quantity=qty
    )


def _reconciler(storefront, distributor, **kwargs):
    kwargs.setdefault("sweep_enabled", True)
    kwargs.setdefault("sweep_threshold", 2000)
    return CatalogReconciler(storefront, distributor, rules=DEFAULT_RULES, sleep=lambda s: None, **kwargs)


def test_stock_change_updates_existing_listing():
    distributor = FakeDistributor({"SKU1": _detail("SKU1", available=3), "SKU2": _detail("SKU2")})
    storefront = FakeStorefront(
        products=[{"id": 111, "variants": [{"id": 222, "sku": "SKU1", "inventory_quantity": 5}]},
                  {"id": 112, "variants": [{"id": 223, "sku": "SKU2", "inventory_quantity": 5}]}],
        listings={"SKU1": _listing("SKU1", 5), "SKU2": _listing("SKU2", 5, product_id="112", variant_id="223")},
    )

    summary = _reconciler(storefront, distributor).run()

    assert summary.updated == 1
    assert summary.skipped == 1
    assert storefront.created == []
    product_id, payload = storefront.updated[0]
    assert product_id == "111"
    assert payload["id"] == 111
    assert payload["status"] == "active"
    assert "title" not in payload and "tags" not in payload and "body_html" not in payload
    variant = payload["variants"][0]
    assert variant["id"] == 222
    assert variant["inventory_quantity"] == 3
    assert variant["price"] == "26.00"
    assert variant["compare_at_price"] == "45.00"


def test_new_distributor_item_is_created():
    distributor = FakeDistributor({"NEW1": _detail("NEW1", available=4, net="24.99")})
    storefront = FakeStorefront()

    summary = _reconciler(storefront, distributor).run()

    assert summary.created == 1
    created = storefront.created[0]
    assert created["status"] == "active"
    assert created["vendor"] == "Cosmopolitan"
    assert created["title"] == "NEW1 Eau de Parfum"
    assert created["tags"] == ["ProductLine_FRAG", "ProductClass_EDPLDY", "Designer_Maison", "Fragrance_Oud"]
    assert created["variants"][0]["price"] == "32.49"
    assert created["variants"][0]["inventory_quantity"] == 4
    assert created["variants"][0]["sku"] == "NEW1"


def test_negative_distributor_stock_is_written_as_zero():
    distributor = FakeDistributor({"SKU1": _detail("SKU1", available=-4)})
    storefront = FakeStorefront(
        products=[{"id": 111, "variants": [{"id": 222, "sku": "SKU1", "inventory_quantity": 2}]}],
        listings={"SKU1": _listing("SKU1", 2)},
    )

    _reconciler(storefront, distributor).run()

    assert storefront.updated[0][1]["variants"][0]["inventory_quantity"] == 0


def test_excluded_items_are_never_created():
    distributor = FakeDistributor(
        {
            "SKIN1": _detail("SKIN1", ProductClass="SKIND"),
            "WELL1": _detail("WELL1", ProductLine="WELL"),
        }
    )
    storefront = FakeStorefront()

    summary = _reconciler(storefront, distributor).run()

    assert summary.excluded == 2
    assert storefront.created == []
    assert storefront.updated == []


def test_reserved_suffix_items_are_dropped_before_detail_fetch():
    distributor = FakeDistributor({"X-A": _detail("X-A"), "X": _detail("X")})
    storefront = FakeStorefront()

    summary = _reconciler(storefront, distributor).run()

    assert "X-A" not in distributor.detail_requests
    assert distributor.detail_requests == ["X"]
    assert summary.distributor_items == 1
    assert [p["variants"][0]["sku"] for p in storefront.created] == ["X"]


def test_unavailable_detail_is_skipped_without_writes():
    distributor = FakeDistributor({"GONE": None, "OK": _detail("OK")})
    storefront = FakeStorefront(listings={"GONE": _listing("GONE", 3)})

    summary = _reconciler(storefront, distributor).run()

    assert summary.unavailable == 1
    assert all(pid != "111" for pid, _ in storefront.updated)


def test_archived_listing_is_not_updated():
    distributor = FakeDistributor({"SKU1": _detail("SKU1", available=9)})
    storefront = FakeStorefront(
        products=[{"id": 111, "variants": [{"id": 222, "sku": "SKU1", "inventory_quantity": 1}]}],
        listings={"SKU1": _listing("SKU1", 1, status="ARCHIVED")},
    )

    summary = _reconciler(storefront, distributor).run()

    assert summary.skipped == 1
    assert storefront.updated == []
    assert storefront.created == []


def test_write_failure_is_counted_and_run_continues():
    distributor = FakeDistributor({"SKU1": _detail("SKU1", available=1), "NEW1": _detail("NEW1")})
    storefront = FakeStorefront(listings={"SKU1": _listing("SKU1", 5)}, fail_updates_for={"111"})

    summary = _reconciler(storefront, distributor).run()

    assert summary.failed == 1
    assert summary.failures == ["SKU1"]
    assert summary.created == 1


def test_catalog_fetch_failure_is_fatal():
    distributor = FakeDistributor({"SKU1": _detail("SKU1")}, catalog_status=500)

    with pytest.raises(PaginationError):
        _reconciler(FakeStorefront(), distributor).run()


def test_decide_action_table():
    product = DistributorProduct.model_validate(_detail("SKU1", available=3))
    listed = {"SKU1"}

    assert decide_action(product, _listing("SKU1", 5), listed, {"SKU1"}) is CatalogAction.UPDATE
    assert decide_action(product, _listing("SKU1", 3), listed, {"SKU1"}) is CatalogAction.SKIP
    assert decide_action(product, None, listed, set()) is CatalogAction.CREATE
    assert decide_action(product, None, listed, {"SKU1"}) is CatalogAction.SKIP
    assert decide_action(product, _listing("SKU1", 3), set(), {"SKU1"}) is CatalogAction.DRAFT
    assert decide_action(product, None, set(), set()) is CatalogAction.SKIP


def _sweep_fixture():
    details = {f"SKU{i}": _detail(f"SKU{i}") for i in range(4)}
    storefront = FakeStorefront(
        products=[
            {
                "id": 500,
                "variants": [
                    {"id": 1, "sku": "STALE", "inventory_quantity": 6, "price": "30.00"},
                    {"id": 2, "sku": "SKU0", "inventory_quantity": 5, "price": "26.00"},
                ],
            },
            {"id": 501, "variants": [{"id": 3, "sku": "ALREADY0", "inventory_quantity": 0}]},
        ],
        listings={f"SKU{i}": _listing(f"SKU{i}", 5, product_id=f"6{i}") for i in range(4)},
    )
    return FakeDistributor(details), storefront


def test_sold_out_sweep_runs_above_threshold():
    distributor, storefront = _sweep_fixture()

    summary = _reconciler(storefront, distributor, sweep_threshold=3).run()

    assert summary.sweep_ran is True
    assert summary.sold_out == 1
    product_id, payload = storefront.updated[-1]
    assert product_id == "500"
    quantities = {v["sku"]: v["inventory_quantity"] for v in payload["variants"]}
    assert quantities == {"STALE": 0, "SKU0": 5}
    assert all("id" in v for v in payload["variants"])


def test_sold_out_sweep_skipped_at_or_below_threshold():
    distributor, storefront = _sweep_fixture()

    summary = _reconciler(storefront, distributor, sweep_threshold=4).run()

    assert summary.sweep_ran is False
    assert all(pid != "500" for pid, _ in storefront.updated)


def test_sold_out_sweep_can_be_disabled():
    distributor, storefront = _sweep_fixture()

    summary = _reconciler(storefront, distributor, sweep_threshold=0, sweep_enabled=False).run()

    assert summary.sweep_ran is False


def test_update_payload_keeps_single_variant_id():
    product = DistributorProduct.model_validate(_detail("SKU1", net="50.01"))
    payload = update_listing_payload(product, _listing("SKU1", 1, variant_id="gid-less"))

    assert payload["variants"][0]["id"] == "gid-less"
    assert payload["variants"][0]["price"] == "60.02"
    assert len(payload["variants"]) == 1


def test_update_payload_lists_sibling_variants_by_id():
    product = DistributorProduct.model_validate(_detail("SKU1", available=4))
    listing = StorefrontListing(
        product_id="111", status="ACTIVE", variant_id="222", sku="SKU1", inventory_quantity=1,
        other_variant_ids=["221", "223"],
    )

    payload = update_listing_payload(product, listing)

    assert payload["id"] == 111
    assert payload["variants"][0]["id"] == 222
    assert payload["variants"][0]["sku"] == "SKU1"
    assert payload["variants"][0]["inventory_quantity"] == 4
    assert payload["variants"][1:] == [{"id": 221}, {"id": 223}]


def test_new_listing_without_net_cost_is_rejected():
    product = DistributorProduct.model_validate(_detail("SKU1", net=""))

    with pytest.raises(ValueError):
        new_listing_payload(product)


def test_run_catalog_sync_returns_summary_dict():
    distributor = FakeDistributor({"NEW1": _detail("NEW1")})

    summary = run_catalog_sync(FakeStorefront(), distributor, sweep_enabled=False, sleep=lambda s: None)

    assert summary["created"] == 1
    assert summary["listable"] == 1
    assert isinstance(summary["failures"], list)
