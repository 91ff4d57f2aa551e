"""HTTP JSON fetching for remote lesson sources.

Connection errors and timeouts are retried with exponential backoff; HTTP
error statuses and non-JSON bodies are not.
"""

import time
from typing import Any, Callable, Dict, Optional

import requests
from loguru import logger

from constants import (
    PRODUCT,
    SYNC_MAX_RETRIES,
    SYNC_RETRY_BASE_DELAY,
    SYNC_TIMEOUT_SECONDS,
    VERSION,
)

JsonFetcher = Callable[..., Any]


class FetchError(Exception):
    """Raised when a URL cannot be fetched or its body is not JSON.

    ``kind`` is one of "network", "timeout", "not_found" or "parsing".
    """

    def __init__(self, message: str, kind: str = "network", url: Optional[str] = None):
        super().__init__(message)
        self.kind = kind
        self.url = url


class HttpClient:
    """Fetches JSON documents over HTTP GET."""

    MAX_RETRIES = SYNC_MAX_RETRIES
    RETRY_BASE_DELAY = SYNC_RETRY_BASE_DELAY  # seconds
    RETRY_MULTIPLIER = 2.0

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        max_retries: Optional[int] = None,
        retry_base_delay: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.session = session or requests.Session()
        self.max_retries = max(1, max_retries if max_retries is not None else self.MAX_RETRIES)
        self.retry_base_delay = (
            retry_base_delay if retry_base_delay is not None else self.RETRY_BASE_DELAY
        )
        self._sleep = sleep
        self.headers = {
            "Accept": "application/json",
            "User-Agent": f"{PRODUCT}/{VERSION}",
        }

    def fetch_json(
        self,
        url: str,
        timeout: float = SYNC_TIMEOUT_SECONDS,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """GET ``url`` and decode the JSON body.

        Args:
            url: Absolute URL
            timeout: Per-request timeout in seconds
            headers: Extra request headers

        Returns:
            Decoded JSON value

        Raises:
            FetchError: On network failure, timeout, HTTP error status or bad JSON
        """
        request_headers = {**self.headers, **(headers or {})}
        last_error: Optional[FetchError] = None

        for attempt in range(self.max_retries):
            try:
                response = self.session.get(url, headers=request_headers, timeout=timeout)
                response.raise_for_status()
            except requests.Timeout as e:
                last_error = FetchError(f"Timed out fetching {url}: {e}", "timeout", url)
            except requests.ConnectionError as e:
                last_error = FetchError(f"Connection failed for {url}: {e}", "network", url)
            except requests.HTTPError as e:
                status = e.response.status_code if e.response is not None else None
                kind = "not_found" if status == 404 else "network"
                raise FetchError(f"HTTP {status} fetching {url}", kind, url) from e
            except requests.RequestException as e:
                raise FetchError(f"Request failed for {url}: {e}", "network", url) from e
            else:
                try:
                    return response.json()
                except ValueError as e:
                    raise FetchError(f"Invalid JSON from {url}: {e}", "parsing", url) from e

            logger.warning(
                f"Fetch attempt {attempt + 1}/{self.max_retries} failed: {last_error}"
            )
            if attempt < self.max_retries - 1:
                delay = self.retry_base_delay * (self.RETRY_MULTIPLIER ** attempt)
                self._sleep(delay)

        raise last_error
