# modules/volunteer_watch/lib/http_client.py
from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from typing import Any

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

LOG = logging.getLogger(__name__)

_DEFAULT_HEADERS = {
    # XML is the listing API's most stable representation; JSON is still accepted.
    "Accept": "application/xml,text/xml;q=0.9,application/json;q=0.8,*/*;q=0.7",
    "Accept-Language": "ko,en;q=0.8",
    # The upstream server mishandles brotli.
    "Accept-Encoding": "gzip, deflate",
}


class HttpStatusError(requests.HTTPError):
    """Non-2xx response. `status` drives retry classification."""

    def __init__(self, status: int, url: str, body_preview: str = "", response: requests.Response | None = None):
        self.status = int(status)
        self.url = url
        self.body_preview = body_preview
        super().__init__(f"HTTP {self.status}. Body: {body_preview}", response=response)


IPV4_SOURCE = ("0.0.0.0", 0)


class IPv4Adapter(HTTPAdapter):
    """
    Connects over IPv4 only. Binding every socket to the IPv4 wildcard makes
    AAAA candidates fail locally, so urllib3 moves on to the A record. The
    effect stays inside the sessions this adapter is mounted on.
    """

    def init_poolmanager(self, *args: Any, **pool_kwargs: Any) -> None:
        pool_kwargs["source_address"] = IPV4_SOURCE
        super().init_poolmanager(*args, **pool_kwargs)


class HttpClient:
    """
    Keep-alive HTTP client for one logical request pool.

    At most `max_in_flight` requests run at once through this client; callers
    beyond that block until a slot frees up. Transport-level retries are off:
    retry policy belongs to `retry.with_retry`, which sees every failure.
    """

    def __init__(
        self,
        timeout: float = 45.0,
        max_in_flight: int = 1,
        *,
        ipv4_only: bool = True,
        user_agent: str = "Mozilla/5.0",
    ):
        self.timeout = float(timeout)
        self.max_in_flight = max(1, int(max_in_flight))
        self._slots = threading.BoundedSemaphore(self.max_in_flight)

        self.session = requests.Session()
        self.session.trust_env = False  # no proxies from the environment
        self.session.headers.update({**_DEFAULT_HEADERS, "User-Agent": user_agent})

        adapter_cls = IPv4Adapter if ipv4_only else HTTPAdapter
        adapter = adapter_cls(
            max_retries=Retry(total=0, raise_on_status=False),
            pool_connections=4,
            pool_maxsize=max(4, self.max_in_flight),
        )
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    # ---- core ----
    def get(
        self,
        url: str,
        *,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> requests.Response:
        """
        GET within this pool's concurrency limit.
        Raises HttpStatusError for status >= 400 and requests exceptions for
        transport failures (timeouts, resets, refused connections, DNS).
        """
        with self._slots:
            resp = self.session.get(url, params=params, headers=headers, timeout=timeout or self.timeout)
        if resp.status_code >= 400:
            preview = response_text(resp)[:200].replace("\n", " ")
            raise HttpStatusError(resp.status_code, _strip_query(url), preview, response=resp)
        return resp

    # ---- convenience ----
    def get_text(
        self,
        url: str,
        *,
        params: Mapping[str, Any] | None = None,
        encoding: str | None = None,
        **kwargs: Any,
    ) -> str:
        """GET and return decoded text with gentle encoding hints."""
        return response_text(self.get(url, params=params, **kwargs), encoding)

    def close(self) -> None:
        try:
            self.session.close()
        except Exception:
            LOG.debug("HttpClient.close() swallow", exc_info=True)

    def __enter__(self) -> HttpClient:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


def _strip_query(url: str) -> str:
    # Listing URLs carry the credential in the query string.
    return url.split("?", 1)[0]


def response_text(resp: requests.Response, encoding: str | None = None) -> str:
    """
    Decoded body. Without an explicit charset requests would assume
    ISO-8859-1 for text/*; both upstream hosts actually serve UTF-8.
    """
    if encoding:
        resp.encoding = encoding
    elif "charset" not in resp.headers.get("Content-Type", "").lower():
        resp.encoding = "utf-8"
    return resp.text
