"""
Freshness policy for live responses and cached validation records

Two independent windows:

- live responses may be at most max_clock_drift_minutes old (a negative
  value disables the check for hosts with unreliable clocks);
- cached records may be at most cache_lifetime_minutes old, always enforced.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..exceptions import BadCache, BadResponse, ErrorCodes
from .utils import minutes_since, parse_http_date

DEFAULT_MAX_CLOCK_DRIFT_MINUTES = 5
DEFAULT_CACHE_LIFETIME_MINUTES = 240
MIN_CACHE_LIFETIME_MINUTES = 60
MAX_CACHE_LIFETIME_MINUTES = 1440


def clamp_cache_lifetime(minutes: int) -> int:
    """Clamp a cache lifetime to [60, 1440] minutes"""
    return max(MIN_CACHE_LIFETIME_MINUTES, min(MAX_CACHE_LIFETIME_MINUTES, int(minutes)))


@dataclass(frozen=True)
class FreshnessPolicy:
    """
    Freshness windows for verified responses

    Attributes:
        max_clock_drift_minutes: Maximum age of a live response; negative disables
        cache_lifetime_minutes: Maximum age of a cached record
    """
    max_clock_drift_minutes: int = DEFAULT_MAX_CLOCK_DRIFT_MINUTES
    cache_lifetime_minutes: int = DEFAULT_CACHE_LIFETIME_MINUTES

    @property
    def live_check_enabled(self) -> bool:
        return self.max_clock_drift_minutes >= 0

    def check_live(self, date: str, now: Optional[datetime] = None) -> int:
        """
        Check a live response's Date against the clock drift window.

        Args:
            date: Response Date header (RFC 2822)
            now: Current time (UTC now if None)

        Returns:
            int: Minutes elapsed since the response date

        Raises:
            BadResponse: INVALID_DATE if unparsable, STALE_RESPONSE if too old
        """
        try:
            response_date = parse_http_date(date)
        except ValueError as e:
            raise BadResponse("Invalid signature date", ErrorCodes.INVALID_DATE, {"date": date}) from e

        elapsed = minutes_since(response_date, now)
        if self.live_check_enabled and elapsed > self.max_clock_drift_minutes:
            raise BadResponse(
                "Request date too old",
                ErrorCodes.STALE_RESPONSE,
                {"minutes_since_response": elapsed, "max_clock_drift": self.max_clock_drift_minutes}
            )
        return elapsed

    def check_cached(self, date: str, now: Optional[datetime] = None) -> int:
        """
        Check a cached record's date against the cache lifetime.

        Args:
            date: Record date (RFC 2822)
            now: Current time (UTC now if None)

        Returns:
            int: Minutes elapsed since the record date

        Raises:
            BadCache: INVALID_DATE if unparsable, CACHE_EXPIRED if too old
        """
        try:
            record_date = parse_http_date(date)
        except ValueError as e:
            raise BadCache("Failed parsing cached response date", ErrorCodes.INVALID_DATE, {"date": date}) from e

        elapsed = minutes_since(record_date, now)
        if elapsed > self.cache_lifetime_minutes:
            raise BadCache(
                "Validation cache has expired",
                ErrorCodes.CACHE_EXPIRED,
                {"minutes_since_response": elapsed, "cache_lifetime": self.cache_lifetime_minutes}
            )
        return elapsed
