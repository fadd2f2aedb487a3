"""Weekly issuance budget per registered domain.

Let's Encrypt allows 50 certificates per registered domain per week; we
stop a little short of that.  Counting is in-memory and per process,
keyed by the registrable domain from the public suffix list.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import TYPE_CHECKING

import tldextract

from domainssl.core.errors import RateLimited

if TYPE_CHECKING:
    from collections.abc import Callable

log = logging.getLogger(__name__)

ONE_WEEK_SECONDS = 7 * 24 * 60 * 60
DEFAULT_LIMIT_PER_WEEK = 45

# bundled suffix list snapshot only; never fetched at runtime
_extract = tldextract.TLDExtract(suffix_list_urls=(), cache_dir=None)


def registered_domain(hostname: str) -> str:
    """Return the registrable domain of *hostname*.

    ``shop.alice.co.uk`` and ``www.bob.co.uk`` map to ``alice.co.uk`` and
    ``bob.co.uk``.  Hostnames without a known public suffix are their own
    bucket.
    """
    extracted = _extract(hostname)
    if not extracted.domain or not extracted.suffix:
        return hostname
    return f"{extracted.domain}.{extracted.suffix}"


class IssuanceRateLimiter:
    """Sliding one-week window of issuance attempts per registered domain."""

    def __init__(
        self,
        limit_per_week: int = DEFAULT_LIMIT_PER_WEEK,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._limit = limit_per_week
        self._clock = clock
        self._windows: dict[str, list[float]] = {}
        self._lock = threading.Lock()

    def check(self, hostname: str) -> None:
        """Record an issuance attempt or raise :class:`RateLimited`."""
        root = registered_domain(hostname)
        now = self._clock()
        window_start = now - ONE_WEEK_SECONDS
        with self._lock:
            timestamps = [t for t in self._windows.get(root, ()) if t > window_start]
            if len(timestamps) >= self._limit:
                self._windows[root] = timestamps
                log.warning(
                    "Issuance budget exhausted for %s (%d/%d this week)",
                    root,
                    len(timestamps),
                    self._limit,
                )
                msg = (
                    f"Too many certificate issuances for {root} this week "
                    f"({len(timestamps)}/{self._limit})"
                )
                raise RateLimited(msg)
            timestamps.append(now)
            self._windows[root] = timestamps

    def used(self, hostname: str) -> int:
        root = registered_domain(hostname)
        window_start = self._clock() - ONE_WEEK_SECONDS
        with self._lock:
            return sum(1 for t in self._windows.get(root, ()) if t > window_start)
