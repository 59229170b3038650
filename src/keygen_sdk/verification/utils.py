"""
Utility functions for response verification

Digest checking and HTTP date handling used by the verifier and the
freshness policy.
"""

import hmac
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Mapping, Optional, Tuple, Union

from ..exceptions import BadResponse, ErrorCodes
from ..signing.types import ContentDigest, DigestAlgorithm
from ..signing.utils import calculate_content_digest, find_header_case_insensitive


def parse_digest_header(value: str) -> Tuple[str, str]:
    """
    Split a Digest header value of the form "ALGO=base64value".

    Returns:
        tuple: (algorithm as sent, base64 value)

    Raises:
        BadResponse: If the value has no "=" separator or an empty part
    """
    algorithm, sep, digest = value.partition('=')
    if not sep or not algorithm.strip() or not digest:
        raise BadResponse(
            "Malformed Digest header",
            ErrorCodes.DIGEST_MISMATCH,
            {"digest": value}
        )
    return algorithm.strip(), digest


def verify_digest(headers: Mapping[str, str], body: Union[str, bytes, None]) -> ContentDigest:
    """
    Check the response Digest header against a digest recomputed from the body.

    Args:
        headers: Response headers (any case)
        body: Response body

    Returns:
        ContentDigest: The recomputed digest

    Raises:
        BadResponse: MISSING_HEADER, UNSUPPORTED_DIGEST or DIGEST_MISMATCH
    """
    header_value = find_header_case_insensitive(headers, 'digest')
    if header_value is None:
        raise BadResponse("Missing header: Digest", ErrorCodes.MISSING_HEADER, {"header": "digest"})

    algorithm, received = parse_digest_header(header_value)
    if algorithm.lower() != DigestAlgorithm.SHA256.value:
        raise BadResponse(
            f"Unsupported digest algorithm: {algorithm}",
            ErrorCodes.UNSUPPORTED_DIGEST,
            {"algorithm": algorithm}
        )

    computed = calculate_content_digest(body, DigestAlgorithm.SHA256)
    if not hmac.compare_digest(computed.digest.encode('ascii'), received.encode('utf-8')):
        raise BadResponse("Digest mismatch", ErrorCodes.DIGEST_MISMATCH)

    return computed


def parse_http_date(value: str) -> datetime:
    """
    Parse an RFC 2822 date into an aware UTC datetime.

    Dates without a zone ("-0000") are taken as UTC.

    Raises:
        ValueError: If the value is not an RFC 2822 date
    """
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, IndexError, ValueError) as e:
        raise ValueError(f"Invalid RFC 2822 date: {value!r}") from e

    if parsed is None:
        raise ValueError(f"Invalid RFC 2822 date: {value!r}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def minutes_since(moment: datetime, now: Optional[datetime] = None) -> int:
    """
    Whole minutes elapsed from moment to now, truncated toward zero.

    Future moments give zero or negative values.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return int((now - moment).total_seconds() / 60)
