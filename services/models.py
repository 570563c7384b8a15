"""
Typed views over the storefront and distributor payloads.

Storefront payloads use snake_case keys; distributor payloads use PascalCase,
so distributor models declare aliases and accept either spelling.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

REQUIRED_ADDRESS_FIELDS = ("name", "address1", "city", "zip", "province_code", "country_code")
PROCESSED_STATUS = "Processed"


class _StorefrontModel(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)


class _DistributorModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, coerce_numbers_to_str=True)


# ----------------------------
# Storefront orders
# ----------------------------
class ShippingAddress(_StorefrontModel):
    name: Optional[str] = None
    address1: Optional[str] = None
    address2: Optional[str] = None
    city: Optional[str] = None
    province_code: Optional[str] = None
    zip: Optional[str] = None
    country_code: Optional[str] = None
    company: Optional[str] = None
    phone: Optional[str] = None

    def missing_fields(self) -> List[str]:
        return [f for f in REQUIRED_ADDRESS_FIELDS if not (getattr(self, f) or "").strip()]


class LineItem(_StorefrontModel):
    sku: Optional[str] = None
    quantity: int = 0
    price: Decimal = Decimal("0")
    title: Optional[str] = None


class Fulfillment(_StorefrontModel):
    id: Optional[Union[int, str]] = None
    status: Optional[str] = None
    tracking_number: Optional[str] = None


class Order(_StorefrontModel):
    id: Union[int, str]
    email: Optional[str] = None
    note: Optional[str] = None
    shipping_address: Optional[ShippingAddress] = None
    line_items: List[LineItem] = Field(default_factory=list)
    fulfillments: List[Fulfillment] = Field(default_factory=list)

    @property
    def po_number(self) -> str:
        return str(self.id)

    def missing_address_fields(self) -> List[str]:
        if self.shipping_address is None:
            return list(REQUIRED_ADDRESS_FIELDS)
        return self.shipping_address.missing_fields()

    def lacks_tracking(self) -> bool:
        return not self.fulfillments or all(not f.tracking_number for f in self.fulfillments)


class FulfillmentOrderLine(_StorefrontModel):
    id: Union[int, str]
    quantity: int = 0


class FulfillmentOrder(_StorefrontModel):
    id: Union[int, str]
    status: Optional[str] = None
    line_items: List[FulfillmentOrderLine] = Field(default_factory=list)

    @property
    def is_open(self) -> bool:
        return (self.status or "").lower() != "closed"


# ----------------------------
# Storefront catalog
# ----------------------------
class StorefrontVariant(_StorefrontModel):
    id: Optional[Union[int, str]] = None
    sku: Optional[str] = None
    price: Optional[str] = None
    compare_at_price: Optional[str] = None
    inventory_quantity: int = 0
    barcode: Optional[str] = None
    weight: Optional[float] = None


class StorefrontProduct(_StorefrontModel):
    id: Union[int, str]
    status: Optional[str] = None
    variants: List[StorefrontVariant] = Field(default_factory=list)

    def skus(self) -> List[str]:
        return [v.sku for v in self.variants if v.sku]


class ListingStatus(str, Enum):
    ACTIVE = "ACTIVE"
    DRAFT = "DRAFT"
    ARCHIVED = "ARCHIVED"


class StorefrontListing(BaseModel):
    """Result of the by-SKU lookup: the product, the variant with that SKU, and its siblings."""

    product_id: str
    status: Optional[str] = None
    variant_id: Optional[str] = None
    sku: Optional[str] = None
    price: Optional[str] = None
    inventory_quantity: int = 0
    other_variant_ids: List[str] = Field(default_factory=list)

    @property
    def is_archived(self) -> bool:
        return (self.status or "").upper() == ListingStatus.ARCHIVED.value


# ----------------------------
# Distributor
# ----------------------------
class DistributorProduct(_DistributorModel):
    item: str = Field(alias="Item")
    desc: Optional[str] = Field(default=None, alias="Desc")
    desc2: Optional[str] = Field(default=None, alias="Desc2")
    desc3: Optional[str] = Field(default=None, alias="Desc3")
    upc: Optional[str] = Field(default=None, alias="UPC")
    size: Optional[str] = Field(default=None, alias="Size")
    designer: Optional[str] = Field(default=None, alias="Designer")
    fragrance: Optional[str] = Field(default=None, alias="Fragrance")
    weight: Optional[str] = Field(default=None, alias="Weight")
    product_type: Optional[str] = Field(default=None, alias="Product")
    net: Optional[Decimal] = Field(default=None, alias="Net")
    retail: Optional[Decimal] = Field(default=None, alias="Retail")
    available: int = Field(default=0, alias="Available")
    product_line: Optional[str] = Field(default=None, alias="ProductLine")
    product_class: Optional[str] = Field(default=None, alias="ProductClass")
    image_url: Optional[str] = Field(default=None, alias="ImageURL")

    @field_validator("available", mode="before")
    @classmethod
    def _available_as_int(cls, value):
        if value is None or value == "":
            return 0
        try:
            return int(Decimal(str(value)))
        except InvalidOperation as exc:
            raise ValueError(f"invalid quantity {value!r}") from exc

    @field_validator("net", "retail", mode="before")
    @classmethod
    def _blank_price(cls, value):
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        try:
            return Decimal(str(value))
        except InvalidOperation as exc:
            raise ValueError(f"invalid price {value!r}") from exc


class DropshipRecord(_DistributorModel):
    suborder: Optional[str] = Field(default=None, alias="Suborder")
    status: Optional[str] = Field(default=None, alias="Status")

    @property
    def is_processed(self) -> bool:
        return self.status == PROCESSED_STATUS


class Shipment(_DistributorModel):
    tracking_number: Optional[str] = Field(default=None, alias="TrackingNumber")
    tracking_url: Optional[str] = Field(default=None, alias="TrackingURL")
    carrier: Optional[str] = Field(default=None, alias="Carrier")


class DropshipSuborder(_DistributorModel):
    suborder: Optional[str] = Field(default=None, alias="Suborder")
    shipments: List[Shipment] = Field(default_factory=list, alias="Shipments")


class SuborderLine(_DistributorModel):
    sku: str = Field(alias="SKU")
    qty: int = Field(alias="QTY")
    net: str = Field(alias="NET")
    item_desc: str = Field(default="", alias="ItemDesc")


class CreationStatus(str, Enum):
    FULLY = "FULLY"
    PARTIALLY = "PARTIALLY"
    NONE = "NONE"


class SuborderResult(_DistributorModel):
    created: Optional[str] = Field(default=None, alias="Created")

    @property
    def creation(self) -> CreationStatus:
        try:
            return CreationStatus((self.created or "").upper())
        except ValueError:
            return CreationStatus.NONE
