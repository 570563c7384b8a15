from __future__ import annotations

import logging
import time
from typing import Any, Callable, List, Optional

import requests

from clients.http_client import TransportError
from config import PAGE_MIN_INTERVAL_SECONDS
from services.retry import RATE_LIMIT_POLICY, RetryPolicy

logger = logging.getLogger(__name__)

PageRequest = Callable[[Optional[str]], requests.Response]
ItemsExtractor = Callable[[Any], List[Any]]
CursorExtractor = Callable[[requests.Response, Any], Optional[str]]


class PaginationError(TransportError):
    """A page walk hit a non-retryable response; partial_results holds what was read."""

    def __init__(self, message: str, *, partial_results: List[Any], page: int, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.partial_results = partial_results
        self.page = page


def fetch_all_pages(
    request_page: PageRequest,
    extract_items: ItemsExtractor,
    extract_cursor: CursorExtractor,
    *,
    label: str,
    min_interval_seconds: float = PAGE_MIN_INTERVAL_SECONDS,
    policy: RetryPolicy = RATE_LIMIT_POLICY,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> List[Any]:
    """
    Walk a cursor-paginated listing to exhaustion and return every item in page order.

    request_page(cursor) issues one request (cursor is None for the first page).
    Rate-limited pages are retried in place without advancing the cursor. Any
    other error status raises PaginationError carrying the partial results.
    No state survives between calls; a second call re-walks from the start.
    """
    results: List[Any] = []
    cursor: Optional[str] = None
    page = 0
    attempt = 0
    last_request_at: Optional[float] = None

    while True:
        if last_request_at is not None and min_interval_seconds > 0:
            elapsed = clock() - last_request_at
            if elapsed < min_interval_seconds:
                sleep(min_interval_seconds - elapsed)

        try:
            resp = request_page(cursor)
        except TransportError as exc:
            raise PaginationError(
                f"{label}: page {page + 1} request failed: {exc}",
                partial_results=results,
                page=page + 1,
                status_code=exc.status_code,
                url=exc.url,
            ) from exc
        last_request_at = clock()
        attempt += 1

        if policy.should_retry(resp.status_code, attempt):
            delay = policy.delay_for(attempt, resp)
            logger.warning(
                "[Pagination] %s page %s rate limited (HTTP %s), retrying after %.1fs",
                label,
                page + 1,
                resp.status_code,
                delay,
            )
            sleep(delay)
            continue

        if resp.status_code >= 400:
            try:
                body_snip = resp.text[:800]
            except Exception:
                body_snip = "<unavailable>"
            logger.error(
                "[Pagination] %s page %s error status=%s items_so_far=%s body_snip=%s",
                label,
                page + 1,
                resp.status_code,
                len(results),
                body_snip,
            )
            raise PaginationError(
                f"{label}: page {page + 1} failed with HTTP {resp.status_code}",
                partial_results=results,
                page=page + 1,
                status_code=resp.status_code,
                url=getattr(resp, "url", None),
                body=body_snip,
            )

        try:
            payload = resp.json()
        except ValueError as exc:
            logger.error("[Pagination] %s page %s returned a non-JSON body", label, page + 1)
            raise PaginationError(
                f"{label}: page {page + 1} returned a non-JSON body",
                partial_results=results,
                page=page + 1,
                status_code=resp.status_code,
                url=getattr(resp, "url", None),
            ) from exc
        page_items = extract_items(payload)
        results.extend(page_items)
        page += 1
        attempt = 0
        cursor = extract_cursor(resp, payload)
        logger.info(
            "[Pagination] %s page %s fetched | received=%s | total_so_far=%s | next_present=%s",
            label,
            page,
            len(page_items),
            len(results),
            bool(cursor),
        )
        if not cursor:
            return results
