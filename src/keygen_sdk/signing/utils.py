"""
Utility functions for the response signature profile

URL parsing, header lookup, body digest calculation and HTTP date formatting
shared by the canonical message codec, the signer and the verifier.
"""

import base64
import hashlib
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Dict, Mapping, Optional, Union
from urllib.parse import urlsplit

from ..exceptions import ErrorCodes, ParseError
from .types import ContentDigest, DigestAlgorithm


def parse_url(url: str) -> Dict[str, str]:
    """
    Parse URL to extract components needed for canonicalization.

    Args:
        url: URL string to parse

    Returns:
        dict: Dictionary with parsed URL components:
            - origin: scheme + netloc
            - host: netloc as sent in the Host header
            - pathname: path component
            - search: query string (including ?)
            - target_uri: pathname + search

    Raises:
        ParseError: If URL format is invalid
    """
    try:
        parsed = urlsplit(url)
    except (TypeError, ValueError) as e:
        raise ParseError(
            f"Failed to parse URL: {e}",
            ErrorCodes.INVALID_URL,
            {"url": url}
        ) from e

    if not parsed.scheme or not parsed.netloc:
        raise ParseError(
            f"Invalid URL format: {url}",
            ErrorCodes.INVALID_URL,
            {"url": url}
        )

    if parsed.scheme not in ('http', 'https'):
        raise ParseError(
            f"Unsupported URL scheme: {parsed.scheme}",
            ErrorCodes.INVALID_URL,
            {"url": url, "scheme": parsed.scheme}
        )

    pathname = parsed.path or "/"
    search = f"?{parsed.query}" if parsed.query else ""

    return {
        "origin": f"{parsed.scheme}://{parsed.netloc}",
        "host": parsed.netloc,
        "pathname": pathname,
        "search": search,
        "target_uri": pathname + search,
    }


def build_request_target(method: str, url: str) -> str:
    """
    Build the (request-target) value: lower-cased method, a space, path and query.

    Example:
        >>> build_request_target("POST", "https://api.keygen.sh/v1/accounts/acme/licenses?page=1")
        'post /v1/accounts/acme/licenses?page=1'
    """
    if not method or not method.strip():
        raise ParseError("HTTP method cannot be empty", "INVALID_METHOD")
    return f"{method.strip().lower()} {parse_url(url)['target_uri']}"


def normalize_header_name(name: str) -> str:
    """Normalize header name to lowercase for consistent processing"""
    return name.lower().strip()


def find_header_case_insensitive(headers: Mapping[str, str], target_name: str) -> Optional[str]:
    """Find header with case-insensitive lookup"""
    target_lower = normalize_header_name(target_name)
    for key, value in headers.items():
        if normalize_header_name(key) == target_lower:
            return value
    return None


def calculate_content_digest(
    content: Union[str, bytes, None],
    algorithm: DigestAlgorithm = DigestAlgorithm.SHA256
) -> ContentDigest:
    """
    Calculate the body digest in the authority's Digest header format.

    Args:
        content: Response body (string, bytes, or None)
        algorithm: Digest algorithm to use

    Returns:
        ContentDigest: Calculated digest with header value ("sha-256=<base64>")
    """
    if content is None:
        content = b""
    elif isinstance(content, str):
        content = content.encode('utf-8')

    if algorithm != DigestAlgorithm.SHA256:
        raise ParseError(f"Unsupported digest algorithm: {algorithm}", ErrorCodes.UNSUPPORTED_DIGEST)

    digest_b64 = base64.b64encode(hashlib.sha256(content).digest()).decode('ascii')

    return ContentDigest(
        algorithm=algorithm,
        digest=digest_b64,
        header_value=f"{algorithm.value}={digest_b64}"
    )


def encode_signature_component(name: str, value: str) -> str:
    """Encode one canonical line: "name: value" """
    return f"{name}: {value}"


def format_http_date(moment: Optional[datetime] = None) -> str:
    """
    Format a timestamp as an HTTP date (RFC 2822 with GMT).

    Args:
        moment: Aware datetime (current UTC time if None)

    Returns:
        str: e.g. "Tue, 01 Jan 2024 00:00:00 GMT"
    """
    if moment is None:
        moment = datetime.now(timezone.utc)
    return format_datetime(moment.astimezone(timezone.utc), usegmt=True)
