from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Optional

import requests

from config import HTTP_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)

RATE_LIMIT_STATUS = 429
DEFAULT_RATE_LIMIT_DELAY_SECONDS = 1.0


class TransportError(RuntimeError):
    """Network failure or an HTTP error response that was not recovered locally."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        url: Optional[str] = None,
        body: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.url = url
        self.body = body


def _body_snippet(resp: requests.Response, limit: int = 800) -> str:
    try:
        return resp.text[:limit]
    except Exception:
        return "<unavailable>"


def parse_retry_after(resp: Optional[requests.Response]) -> Optional[float]:
    """Seconds from a Retry-After header; None when absent or not numeric."""
    if resp is None:
        return None
    raw = (resp.headers or {}).get("Retry-After") or (resp.headers or {}).get("retry-after")
    if raw is None:
        return None
    try:
        return max(0.0, float(str(raw).strip()))
    except ValueError:
        return None


def error_for_response(resp: requests.Response, context: str) -> TransportError:
    status = resp.status_code
    snippet = _body_snippet(resp)
    return TransportError(
        f"{context} failed with HTTP {status}",
        status_code=status,
        url=getattr(resp, "url", None),
        body=snippet,
    )


def decode_json(resp: requests.Response, context: str) -> Any:
    """Response body as JSON; an empty body is {} and anything unparseable is a TransportError."""
    if not resp.content:
        return {}
    try:
        return resp.json()
    except ValueError as exc:
        snippet = _body_snippet(resp)
        logger.error("%s returned a non-JSON body (HTTP %s): %s", context, resp.status_code, snippet)
        raise TransportError(
            f"{context} returned a non-JSON body",
            status_code=resp.status_code,
            url=getattr(resp, "url", None),
            body=snippet,
        ) from exc


class ApiClient:
    """
    Thin requests.Session wrapper shared by the storefront and distributor clients.

    send() never raises on HTTP status; callers that need policy (pagination,
    detail retries) inspect the response themselves. The *_json helpers wait
    out 429s (Retry-After, else a fixed delay) for as long as the API asks,
    then raise TransportError for any other status >= 400 or a non-JSON body.
    """

    name = "api"

    def __init__(
        self,
        base_url: str,
        headers: Optional[Dict[str, str]] = None,
        *,
        timeout: float = HTTP_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
        rate_limit_delay: float = DEFAULT_RATE_LIMIT_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.base_url = base_url.rstrip("/") + "/"
        self.timeout = timeout
        self.session = session or requests.Session()
        self.rate_limit_delay = rate_limit_delay
        self.sleep = sleep
        if headers:
            self.session.headers.update(headers)

    def url_for(self, path_or_url: str) -> str:
        if path_or_url.startswith(("http://", "https://")):
            return path_or_url
        return self.base_url + path_or_url.lstrip("/")

    def send(
        self,
        method: str,
        path_or_url: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
    ) -> requests.Response:
        url = self.url_for(path_or_url)
        try:
            return self.session.request(method, url, params=params, json=json, timeout=self.timeout)
        except requests.exceptions.Timeout as exc:
            logger.error("[%s] Timeout after %ss on %s %s", self.name, self.timeout, method, url)
            raise TransportError(f"{method} {url} timed out", url=url) from exc
        except requests.exceptions.RequestException as exc:
            logger.error("[%s] Network error on %s %s: %s", self.name, method, url, exc)
            raise TransportError(f"{method} {url} network error: {exc}", url=url) from exc

    def wait_for_rate_limit(self, resp: Optional[requests.Response], context: str, attempt: int) -> None:
        delay = parse_retry_after(resp)
        if delay is None:
            delay = self.rate_limit_delay
        logger.warning("[%s] %s rate limited (attempt %s), retrying after %.1fs", self.name, context, attempt, delay)
        self.sleep(delay)

    def send_throttled(self, method: str, path_or_url: str, **kwargs: Any) -> requests.Response:
        """send(), repeated in place while the API answers 429."""
        attempt = 0
        while True:
            attempt += 1
            resp = self.send(method, path_or_url, **kwargs)
            if resp.status_code != RATE_LIMIT_STATUS:
                return resp
            self.wait_for_rate_limit(resp, f"{method} {path_or_url}", attempt)

    def _json(self, method: str, path_or_url: str, **kwargs: Any) -> Any:
        resp = self.send_throttled(method, path_or_url, **kwargs)
        if resp.status_code >= 400:
            logger.error(
                "[%s] %s %s failed %s: %s",
                self.name,
                method,
                path_or_url,
                resp.status_code,
                _body_snippet(resp),
            )
            raise error_for_response(resp, f"{method} {path_or_url}")
        return decode_json(resp, f"{method} {path_or_url}")

    def get_json(self, path_or_url: str, *, params: Optional[Dict[str, Any]] = None) -> Any:
        return self._json("GET", path_or_url, params=params)

    def get_optional_json(self, path_or_url: str, *, params: Optional[Dict[str, Any]] = None) -> Optional[Any]:
        """GET that maps 404 to None instead of an error."""
        resp = self.send_throttled("GET", path_or_url, params=params)
        if resp.status_code == 404:
            logger.info("[%s] %s not found (404)", self.name, path_or_url)
            return None
        if resp.status_code >= 400:
            logger.error(
                "[%s] GET %s failed %s: %s",
                self.name,
                path_or_url,
                resp.status_code,
                _body_snippet(resp),
            )
            raise error_for_response(resp, f"GET {path_or_url}")
        return decode_json(resp, f"GET {path_or_url}")

    def post_json(self, path_or_url: str, body: Any) -> Any:
        return self._json("POST", path_or_url, json=body)

    def put_json(self, path_or_url: str, body: Any) -> Any:
        return self._json("PUT", path_or_url, json=body)
