from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from config import LINE_VALIDATION_CONCURRENCY
from services.async_utils import run_concurrently
from services.models import DistributorProduct, LineItem, SuborderLine

logger = logging.getLogger(__name__)

ProductLookup = Callable[[str], Optional[DistributorProduct]]


@dataclass
class LineIssue:
    sku: str
    reason: str

    def describe(self) -> str:
        return f"Item {self.sku} {self.reason}."


@dataclass
class LineValidationResult:
    accepted: List[SuborderLine] = field(default_factory=list)
    issues: List[LineIssue] = field(default_factory=list)


def _check_line(lookup: ProductLookup, item: LineItem) -> Tuple[Optional[SuborderLine], Optional[LineIssue]]:
    sku = (item.sku or "").strip()
    if not sku:
        return None, LineIssue(sku="<no sku>", reason="has no SKU")
    if item.quantity <= 0:
        return None, LineIssue(sku=sku, reason=f"has non-positive quantity {item.quantity}")
    product = lookup(sku)
    if product is None or product.available < item.quantity:
        return None, LineIssue(sku=sku, reason="is out of stock or insufficient quantity")
    line = SuborderLine(SKU=sku, QTY=item.quantity, NET=str(item.price), ItemDesc=item.title or "")
    return line, None


def validate_lines(
    line_items: List[LineItem],
    lookup: ProductLookup,
    *,
    max_concurrency: int = LINE_VALIDATION_CONCURRENCY,
) -> LineValidationResult:
    """
    Check every line against live distributor stock.

    Lookups run concurrently; the accepted lines keep the order's line sequence
    and issues are listed in the same sequence.
    """
    outcomes = run_concurrently(lambda item: _check_line(lookup, item), line_items, max_concurrency=max_concurrency)
    result = LineValidationResult()
    for line, issue in outcomes:
        if line is not None:
            result.accepted.append(line)
        if issue is not None:
            logger.error("[LineValidation] %s", issue.describe())
            result.issues.append(issue)
    return result
