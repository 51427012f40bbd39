"""
Base API client with built-in rate limiting, caching, and retries.

All source-specific clients inherit from BaseClient, which provides:
- Token bucket rate limiter (thread-safe, configurable requests/minute)
- Response cache (coalescing: concurrent identical GETs share one request)
- Retry with exponential backoff and jitter (skips 4xx)
- HTTP 429 Retry-After handling
- Session pooling with custom User-Agent
- Per-request telemetry

Failures surface as ``UpstreamError`` so callers can tell "fetch failed"
apart from "no data".
"""

import logging
import random
import threading
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

import requests

from ..cache import CoalescingCache, make_key
from ..errors import UpstreamError
from ..series import coerce_int
from .result import ExtractionResult


class BaseClient(ABC):
    """Abstract base class for API clients.

    Subclasses set ``source_name``, ``base_url`` and ``rate_limit`` and build
    their fetch methods on ``_get()`` / ``_post()``.  Rate limiting,
    caching, retries, and telemetry are handled automatically.

    Usage::

        class MyClient(BaseClient):
            source_name = "my_api"
            base_url = "https://api.example.com"
            rate_limit = 60  # requests per minute

            def fetch_series(self, code):
                data = self._get(f"/series/{code}", params={"format": "json"})
                return normalize(data.get("rows"))
    """

    # --- Abstract interface ---------------------------------------------------

    @property
    @abstractmethod
    def source_name(self) -> str:
        """Short identifier for this data source (e.g. 'world_bank')."""

    @property
    @abstractmethod
    def base_url(self) -> str:
        """Root URL for this API (no trailing slash)."""

    @property
    @abstractmethod
    def rate_limit(self) -> int:
        """Maximum requests per minute for this source."""

    # --- Lifecycle ------------------------------------------------------------

    def __init__(
        self,
        cache_ttl: float = 300,
        timeout: float = 30.0,
        fetch_timeout: float = 120.0,
        cache: Optional[CoalescingCache] = None,
    ):
        """Initialize the client.

        Args:
            cache_ttl: Cache time-to-live in seconds (default 5 min).
            timeout: Per-request HTTP timeout in seconds.
            fetch_timeout: Upper bound for one cached GET, retries included.
            cache: Response cache; each client gets its own by default.
                Do not pass a cache whose fetches call back into this
                client, or the two levels would share one worker pool.
        """
        self._cache_ttl = cache_ttl
        self._timeout = timeout

        # Session pooling
        self._session = requests.Session()
        self._session.headers.update({
            "User-Agent": f"indicator-hub/{self.source_name}",
            "Accept": "application/json",
        })

        # Token bucket rate limiter
        self._tokens = float(self.rate_limit)
        self._max_tokens = float(self.rate_limit)
        self._refill_rate = self.rate_limit / 60.0  # tokens per second
        self._last_refill = time.monotonic()
        self._lock = threading.Lock()

        # Response cache: coalesces identical in-flight GETs
        self._owns_cache = cache is None
        self._cache = cache if cache is not None else CoalescingCache(fetch_timeout=fetch_timeout)

        # Telemetry counters
        self.api_calls = 0
        self.cache_hits = 0
        self.errors = 0
        self._timings: list = []

        # Logger
        self._log = logging.getLogger(f"extractor.{self.source_name}")

    def close(self) -> None:
        """Close the HTTP session and stop the cache's fetch pool."""
        self._session.close()
        if self._owns_cache:
            self._cache.shutdown()

    def __enter__(self):
        return self

    def __exit__(self, *args) -> None:
        self.close()

    # --- Rate limiter ---------------------------------------------------------

    def _wait_for_token(self) -> None:
        """Block until a rate-limit token is available."""
        while True:
            with self._lock:
                now = time.monotonic()
                elapsed = now - self._last_refill
                self._tokens = min(
                    self._max_tokens,
                    self._tokens + elapsed * self._refill_rate,
                )
                self._last_refill = now

                if self._tokens >= 1.0:
                    self._tokens -= 1.0
                    return

            # No token available, sleep briefly and retry
            time.sleep(0.05)

    # --- Cache ----------------------------------------------------------------

    def _cache_key(self, url: str, params: Optional[Dict] = None) -> str:
        """Deterministic cache key from source + URL + sorted params."""
        return make_key(f"{self.source_name}:GET", url=url, params=params or {})

    # --- HTTP with retries ----------------------------------------------------

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}" if path.startswith("/") else path

    def _get(
        self,
        path: str,
        params: Optional[Dict] = None,
        max_retries: int = 3,
        use_cache: bool = True,
    ) -> Any:
        """GET request with rate limiting, caching, and retries.

        Args:
            path: URL path appended to ``base_url`` (or an absolute URL).
            params: Query parameters.
            max_retries: Max retry attempts on transient errors.
            use_cache: Whether to serve from / store in the response cache.

        Returns:
            Parsed JSON response.

        Raises:
            UpstreamError: On non-retryable HTTP errors, malformed JSON,
                or when retries are exhausted.
        """
        url = self._url(path)
        if not use_cache:
            return self._request("GET", url, params=params, max_retries=max_retries)
        return self._cached(
            self._cache_key(url, params),
            lambda: self._request("GET", url, params=params, max_retries=max_retries),
        )

    def _cached(self, key: str, fetch_fn: Callable[[], Any]) -> Any:
        """Serve ``key`` from the response cache, calling ``fetch_fn`` on a miss.

        Callers that joined someone else's in-flight fetch count as cache
        hits too, since they cost no request.
        """
        called = False

        def fetch():
            nonlocal called
            called = True
            return fetch_fn()

        data = self._cache.get_or_fetch(key, self._cache_ttl, fetch)
        if not called:
            self.cache_hits += 1
            self._log.debug("Cache hit: %s", key)
        return data

    def _post(
        self,
        path: str,
        json_body: Optional[Dict] = None,
        max_retries: int = 3,
    ) -> Any:
        """POST request with rate limiting and retries (never cached here)."""
        return self._request(
            "POST", self._url(path), json_body=json_body, max_retries=max_retries
        )

    def _request(
        self,
        method: str,
        url: str,
        params: Optional[Dict] = None,
        json_body: Optional[Dict] = None,
        max_retries: int = 3,
    ) -> Any:
        """Send one logical request, retrying transient failures."""
        last_error: Optional[Exception] = None
        for attempt in range(max_retries + 1):
            self._wait_for_token()
            self.api_calls += 1
            start = time.monotonic()

            try:
                resp = self._session.request(
                    method, url, params=params, json=json_body, timeout=self._timeout
                )
                elapsed = time.monotonic() - start
                self._timings.append(elapsed)

                # 429 Too Many Requests: honour Retry-After
                if resp.status_code == 429:
                    # Retry-After may also be an HTTP-date; fall back to 5s
                    retry_after = max(coerce_int(resp.headers.get("Retry-After")) or 5, 0)
                    self._log.warning(
                        "Rate limited (429). Retry-After: %ds", retry_after
                    )
                    last_error = UpstreamError(
                        f"{self.source_name}: rate limited", status_code=429
                    )
                    time.sleep(retry_after)
                    continue

                # 4xx (except 429): don't retry
                if 400 <= resp.status_code < 500:
                    self.errors += 1
                    raise self._error_from_response(resp)

                # 5xx: retry with backoff
                if resp.status_code >= 500:
                    wait = (2 ** attempt) + random.uniform(0, 1)
                    self._log.warning(
                        "Server error %d, retry %d/%d in %.1fs",
                        resp.status_code, attempt + 1, max_retries, wait,
                    )
                    last_error = self._error_from_response(resp)
                    if attempt < max_retries:
                        time.sleep(wait)
                    continue

                # Success
                return self._parse_json(resp)

            except (requests.ConnectionError, requests.Timeout) as exc:
                elapsed = time.monotonic() - start
                self._timings.append(elapsed)
                self.errors += 1
                last_error = exc
                wait = (2 ** attempt) + random.uniform(0, 1)
                self._log.warning(
                    "Connection error, retry %d/%d in %.1fs",
                    attempt + 1, max_retries, wait,
                )
                if attempt < max_retries:
                    time.sleep(wait)

        # Exhausted retries
        self.errors += 1
        if isinstance(last_error, UpstreamError):
            raise last_error
        raise UpstreamError(
            f"{self.source_name}: request failed after {max_retries + 1} attempts: {last_error}"
        ) from last_error

    def _parse_json(self, resp: requests.Response) -> Any:
        """Decode a successful response body."""
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as exc:
            self.errors += 1
            raise UpstreamError(
                f"{self.source_name}: malformed JSON from {resp.url}",
                status_code=resp.status_code,
            ) from exc

    def _error_from_response(self, resp: requests.Response) -> UpstreamError:
        """Build the error raised for a non-2xx response."""
        return UpstreamError(
            f"{self.source_name}: HTTP {resp.status_code}",
            details=resp.text[:500] if resp.text else None,
            status_code=resp.status_code,
        )

    # --- Result builder -------------------------------------------------------

    def _build_result(
        self,
        data,
        started_at: datetime,
        warnings: Optional[list] = None,
        failed: Optional[Dict[str, str]] = None,
    ) -> ExtractionResult:
        """Build a successful ExtractionResult from a DataFrame."""
        import pandas as pd

        completed = datetime.now(timezone.utc)
        records = len(data) if isinstance(data, pd.DataFrame) else 0
        return ExtractionResult(
            success=True,
            source=self.source_name,
            records=records,
            api_calls=self.api_calls,
            cache_hits=self.cache_hits,
            started_at=started_at,
            completed_at=completed,
            duration_seconds=(completed - started_at).total_seconds(),
            warnings=warnings or [],
            failed=failed or {},
            data=data,
        )

    def _build_error(
        self, error: str, started_at: datetime
    ) -> ExtractionResult:
        """Build a failed ExtractionResult."""
        completed = datetime.now(timezone.utc)
        return ExtractionResult(
            success=False,
            source=self.source_name,
            records=0,
            api_calls=self.api_calls,
            cache_hits=self.cache_hits,
            started_at=started_at,
            completed_at=completed,
            duration_seconds=(completed - started_at).total_seconds(),
            error=error,
        )

    # --- Telemetry ------------------------------------------------------------

    def get_telemetry(self) -> Dict[str, Any]:
        """Return telemetry summary for this client."""
        return {
            "source": self.source_name,
            "api_calls": self.api_calls,
            "cache_hits": self.cache_hits,
            "errors": self.errors,
            "avg_latency": (
                sum(self._timings) / len(self._timings)
                if self._timings
                else 0.0
            ),
        }

    def reset_telemetry(self) -> None:
        """Reset all telemetry counters."""
        self.api_calls = 0
        self.cache_hits = 0
        self.errors = 0
        self._timings.clear()
