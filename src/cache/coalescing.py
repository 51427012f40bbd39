"""
Request-coalescing TTL cache.

Guards expensive upstream calls behind a stable key:

- a stored value younger than the TTL is returned without calling upstream
- concurrent callers asking for the same missing key share one upstream call
  and all receive the same value, or the same exception instance
- a failed or timed-out fetch stores nothing and frees the key, so the next
  caller starts a fresh attempt

Request handlers run on threads, so the check-cache / check-in-flight /
register-in-flight sequence happens under one lock acquisition.  The lock
is never held while a fetch runs.

Usage::

    cache = CoalescingCache(fetch_timeout=10)
    key = make_key("wdi_coverage", indicator="SP.POP.TOTL", region=None)
    row = cache.get_or_fetch(key, ttl=600, fetch_fn=lambda: rpc.call(...))
"""

import json
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from ..config import Settings
from ..errors import FetchTimeoutError

logger = logging.getLogger("cache.coalescing")


def make_key(namespace: str, **params: Any) -> str:
    """Deterministic cache key from a namespace plus keyword parameters.

    Parameter order does not matter; ``None`` is kept as ``null`` so an
    explicit ``region=None`` never collides with a different region.
    """
    encoded = json.dumps(params, sort_keys=True, separators=(",", ":"), default=str)
    return f"{namespace}:{encoded}"


@dataclass(frozen=True)
class CacheEntry:
    """A stored fetch result.  Replaced on refresh, never mutated."""

    key: str
    value: Any
    stored_at: float


@dataclass
class InFlightEntry:
    """A fetch that has started but not yet settled."""

    key: str
    started_at: float
    future: Future = field(default_factory=Future)
    waiters: int = 0


class CoalescingCache:
    """In-memory TTL cache that collapses concurrent identical fetches.

    Args:
        clock: Monotonic time source in seconds (injectable for tests).
        fetch_timeout: Max seconds a fetch may run; None disables the limit.
        serve_stale_on_error: When True, a failed refresh of an expired
            entry hands the stale value to every waiter instead of the error.
        max_workers: Size of the pool the fetches run on.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        fetch_timeout: Optional[float] = 30.0,
        serve_stale_on_error: bool = False,
        max_workers: int = 8,
    ):
        self._clock = clock
        self._fetch_timeout = fetch_timeout
        self._serve_stale = serve_stale_on_error

        self._entries: Dict[str, CacheEntry] = {}
        self._in_flight: Dict[str, InFlightEntry] = {}
        self._lock = threading.Lock()
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="coalescing-fetch"
        )

        self.reset_telemetry()

    # --- Public API -----------------------------------------------------------

    def get_or_fetch(
        self,
        key: str,
        ttl: float,
        fetch_fn: Callable[[], Any],
        wait: Optional[float] = None,
    ) -> Any:
        """Return the value for ``key``, fetching it at most once at a time.

        Args:
            key: Cache key; must encode every parameter that affects the result.
            ttl: Seconds a stored value stays fresh.
            fetch_fn: No-arg callable producing the value.
            wait: Max seconds this caller waits, whether it started the
                fetch or joined one.  Giving up raises ``FetchTimeoutError``
                for this caller only; the shared fetch keeps running (still
                bounded by ``fetch_timeout``) and settles for everyone else.

        Returns:
            The cached or freshly fetched value.

        Raises:
            FetchTimeoutError: The fetch exceeded ``fetch_timeout`` (or this
                caller's ``wait``).
            Exception: Whatever ``fetch_fn`` raised, unchanged.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and self._clock() - entry.stored_at < ttl:
                self.hits += 1
                logger.debug("Cache hit: %s", key)
                return entry.value

            in_flight = self._in_flight.get(key)
            is_leader = in_flight is None
            if is_leader:
                in_flight = InFlightEntry(key=key, started_at=self._clock())
                self._in_flight[key] = in_flight
                self.misses += 1
            else:
                in_flight.waiters += 1
                self.coalesced += 1

        if is_leader:
            logger.debug("Fetching %s", key)
            self._start_fetch(in_flight, fetch_fn)
        else:
            logger.debug(
                "Joining in-flight fetch for %s (waiters: %d)",
                key, in_flight.waiters,
            )

        return self._wait(in_flight, wait)

    def invalidate(self, key: str) -> None:
        """Drop the stored value for ``key`` (an in-flight fetch is unaffected)."""
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        """Drop every stored value."""
        with self._lock:
            self._entries.clear()

    def shutdown(self) -> None:
        """Stop the fetch pool without waiting for running fetches."""
        self._executor.shutdown(wait=False)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    # --- Fetch lifecycle ------------------------------------------------------

    def _start_fetch(self, in_flight: InFlightEntry, fetch_fn: Callable[[], Any]) -> None:
        """Submit ``fetch_fn`` and arrange for the shared future to settle.

        The future settles when the task finishes or when ``fetch_timeout``
        expires, whichever comes first; the other outcome is discarded.
        No caller blocks here.
        """
        try:
            task = self._executor.submit(fetch_fn)
        except Exception as exc:
            self._settle_failure(in_flight, exc)
            return

        timer = None
        if self._fetch_timeout is not None:
            timer = threading.Timer(self._fetch_timeout, self._expire, args=(in_flight, task))
            timer.daemon = True
            timer.start()

        def on_done(done: Future) -> None:
            if timer is not None:
                timer.cancel()
            if done.cancelled():
                return
            exc = done.exception()
            if exc is not None:
                self._settle_failure(in_flight, exc)
            else:
                self._settle_success(in_flight, done.result())

        task.add_done_callback(on_done)

    def _expire(self, in_flight: InFlightEntry, task: Future) -> None:
        # A running task cannot be interrupted; its late result is dropped.
        task.cancel()
        self._settle_failure(
            in_flight,
            FetchTimeoutError(
                f"Fetch for {in_flight.key} timed out after {self._fetch_timeout}s"
            ),
        )

    def _settle_success(self, in_flight: InFlightEntry, value: Any) -> None:
        with self._lock:
            if self._in_flight.get(in_flight.key) is not in_flight:
                return
            self._entries[in_flight.key] = CacheEntry(
                key=in_flight.key, value=value, stored_at=self._clock()
            )
            self._in_flight.pop(in_flight.key, None)
        in_flight.future.set_result(value)

    def _settle_failure(self, in_flight: InFlightEntry, exc: BaseException) -> None:
        with self._lock:
            if self._in_flight.get(in_flight.key) is not in_flight:
                return
            self._in_flight.pop(in_flight.key, None)
            if isinstance(exc, FetchTimeoutError):
                self.timeouts += 1
            else:
                self.errors += 1
            stale = self._entries.get(in_flight.key) if self._serve_stale else None
            if stale is not None:
                self.stale_served += 1

        if stale is not None:
            logger.warning(
                "Fetch failed for %s (%s); serving value stored %.0fs ago",
                in_flight.key, exc, self._clock() - stale.stored_at,
            )
            in_flight.future.set_result(stale.value)
            return

        logger.warning("Fetch failed for %s: %s", in_flight.key, exc)
        in_flight.future.set_exception(exc)

    def _wait(self, in_flight: InFlightEntry, wait: Optional[float]) -> Any:
        try:
            return in_flight.future.result(timeout=wait)
        except FuturesTimeoutError:
            if in_flight.future.done():
                # The shared fetch failed with a timeout; re-raise it.
                return in_flight.future.result()
            raise FetchTimeoutError(
                f"Stopped waiting for {in_flight.key} after {wait}s"
            ) from None

    # --- Telemetry ------------------------------------------------------------

    def get_telemetry(self) -> Dict[str, Any]:
        """Return counters and current sizes."""
        with self._lock:
            return {
                "entries": len(self._entries),
                "in_flight": len(self._in_flight),
                "hits": self.hits,
                "misses": self.misses,
                "coalesced": self.coalesced,
                "errors": self.errors,
                "timeouts": self.timeouts,
                "stale_served": self.stale_served,
            }

    def reset_telemetry(self) -> None:
        """Reset all telemetry counters."""
        self.hits = 0
        self.misses = 0
        self.coalesced = 0
        self.errors = 0
        self.timeouts = 0
        self.stale_served = 0


# --- Process-wide instance ----------------------------------------------------

_default_cache: Optional[CoalescingCache] = None
_default_lock = threading.Lock()


def get_default_cache() -> CoalescingCache:
    """Return the shared cache, building it from Settings on first use."""
    global _default_cache
    with _default_lock:
        if _default_cache is None:
            settings = Settings()
            _default_cache = CoalescingCache(
                fetch_timeout=settings.fetch_timeout,
                serve_stale_on_error=settings.serve_stale_on_error,
            )
        return _default_cache


def reset_default_cache() -> None:
    """Discard the shared cache (e.g. for tests)."""
    global _default_cache
    with _default_lock:
        if _default_cache is not None:
            _default_cache.shutdown()
        _default_cache = None
