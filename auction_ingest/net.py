# auction_ingest/net.py
import time
from typing import Callable, Dict
from urllib.parse import urlparse


def domain_of(url: str) -> str:
    """Hostname of ``url``, or ``"unknown"`` when it has none."""
    try:
        host = urlparse(url).hostname
    except ValueError:
        return "unknown"
    return host or "unknown"


class PerDomainRateLimiter:
    """Spaces out requests to the same host by at least ``min_interval`` seconds.

    One instance is shared by everything a run fetches, so detail pages and
    search pages of one marketplace draw from the same budget.
    """

    def __init__(self, min_interval: float,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], None] = time.sleep):
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._next_allowed: Dict[str, float] = {}

    def wait(self, domain: str) -> float:
        """Block until ``domain`` may be hit again; returns the seconds waited."""
        now = self._clock()
        next_allowed = self._next_allowed.get(domain, now)
        waited = 0.0
        if next_allowed > now:
            waited = next_allowed - now
            self._sleep(waited)
        self._next_allowed[domain] = self._clock() + self.min_interval
        return waited

    def wait_for_url(self, url: str) -> float:
        return self.wait(domain_of(url))
