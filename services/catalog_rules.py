"""
Listing policy for distributor items: which items are never listed, and how
storefront prices are derived from distributor net cost.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal
from typing import FrozenSet, Iterable, Optional, Tuple

from config import EXTRA_EXCLUDED_PRODUCT_CLASSES, EXTRA_EXCLUDED_PRODUCT_LINES
from services.models import DistributorProduct

RESERVED_SKU_SUFFIX = "-A"

# Cosmetic, skincare, haircare, gift-set and mini classes.
EXCLUDED_PRODUCT_CLASSES: FrozenSet[str] = frozenset(
    {
        "FGDLDY", "FGDUNX", "FGDMEN", "FGDCHD",
        "MINLDY", "MINUNX", "MINMEN",
        "VLSLDY", "VLSUNX", "VLSMEN",
        "BDDLDY", "BTDLDY", "BDDUNX", "BTDUNX", "BDDMEN", "BTDMEN", "BTDCHD",
        "SHVDMN", "BDUODLDY", "DUODMEN",
        "STDLDY", "STDUNX", "STDMEN", "STDCHD",
        "MSDLDY", "MSDUNX", "MSDMEN",
        "DUOSKIN", "SETDSKIN", "SETDMAKE", "DDCHD",
        "SKIND", "SKINDMEN", "MAKED", "HAIRD", "HAIRDMEN",
    }
)

# Wellness and miscellaneous lines.
EXCLUDED_PRODUCT_LINES: FrozenSet[str] = frozenset({"WELL", "MISC"})

CENT = Decimal("0.01")

# (upper bound on net cost, markup percent); None is the open top tier.
MARKUP_TIERS: Tuple[Tuple[Optional[Decimal], Decimal], ...] = (
    (Decimal("24.99"), Decimal("30")),
    (Decimal("50.00"), Decimal("25")),
    (None, Decimal("20")),
)


@dataclass(frozen=True)
class ClassificationRules:
    excluded_classes: FrozenSet[str]
    excluded_lines: FrozenSet[str]
    reserved_suffix: str = RESERVED_SKU_SUFFIX

    @classmethod
    def with_extras(cls, classes: Iterable[str] = (), lines: Iterable[str] = ()) -> "ClassificationRules":
        return cls(
            excluded_classes=EXCLUDED_PRODUCT_CLASSES | frozenset(c.upper() for c in classes),
            excluded_lines=EXCLUDED_PRODUCT_LINES | frozenset(line.upper() for line in lines),
        )

    def is_reserved_sku(self, item_code: Optional[str]) -> bool:
        return bool(item_code) and str(item_code).endswith(self.reserved_suffix)

    def exclusion_reason(self, product: DistributorProduct) -> Optional[str]:
        """Why this item is never listed, or None when it is listable."""
        if self.is_reserved_sku(product.item):
            return f"item code ends with reserved suffix '{self.reserved_suffix}'"
        if product.product_line and product.product_line.upper() in self.excluded_lines:
            return f"ProductLine '{product.product_line}' is excluded"
        if product.product_class and product.product_class.upper() in self.excluded_classes:
            return f"ProductClass '{product.product_class}' is excluded"
        return None


DEFAULT_RULES = ClassificationRules.with_extras(
    EXTRA_EXCLUDED_PRODUCT_CLASSES, EXTRA_EXCLUDED_PRODUCT_LINES
)


def markup_percent(net_cost: Decimal) -> Decimal:
    for ceiling, percent in MARKUP_TIERS:
        if ceiling is None or net_cost <= ceiling:
            return percent
    raise AssertionError("markup tiers must end with an open tier")


def storefront_price(net_cost: Decimal) -> Decimal:
    """Net cost plus tiered markup, rounded up to the cent."""
    net = Decimal(str(net_cost))
    if net < 0:
        raise ValueError(f"net cost must not be negative: {net}")
    marked_up = net * (Decimal("1") + markup_percent(net) / Decimal("100"))
    return marked_up.quantize(CENT, rounding=ROUND_CEILING)


def compare_at_price(retail: Optional[Decimal]) -> Optional[str]:
    if retail is None:
        return None
    return str(Decimal(str(retail)).quantize(CENT, rounding=ROUND_HALF_UP))
