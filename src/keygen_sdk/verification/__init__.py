"""
Keygen licensing SDK - Response Verification Module

Digest, freshness and signature checks for license authority responses.
"""

from .verifier import ResponseVerifier
from .policies import (
    FreshnessPolicy,
    clamp_cache_lifetime,
    DEFAULT_MAX_CLOCK_DRIFT_MINUTES,
    DEFAULT_CACHE_LIFETIME_MINUTES,
    MIN_CACHE_LIFETIME_MINUTES,
    MAX_CACHE_LIFETIME_MINUTES,
)
from .utils import (
    parse_digest_header,
    verify_digest,
    parse_http_date,
    minutes_since,
)

__all__ = [
    'ResponseVerifier',
    'FreshnessPolicy',
    'clamp_cache_lifetime',
    'DEFAULT_MAX_CLOCK_DRIFT_MINUTES',
    'DEFAULT_CACHE_LIFETIME_MINUTES',
    'MIN_CACHE_LIFETIME_MINUTES',
    'MAX_CACHE_LIFETIME_MINUTES',
    'parse_digest_header',
    'verify_digest',
    'parse_http_date',
    'minutes_since',
]
