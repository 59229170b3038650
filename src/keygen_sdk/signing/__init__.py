"""
Keygen licensing SDK - Response Signature Module

Canonicalization of the license authority's Ed25519 response signatures.
"""

from .types import (
    SignatureAlgorithm,
    DigestAlgorithm,
    SignatureParameters,
    ContentDigest,
    VerifiedResponseRecord,
    SignedResponse,
    REQUEST_TARGET,
    SIGNED_HEADERS,
)

from .canonical_message import (
    KeygenSignature,
    parse_signature_header,
    build_signature_header,
    SIGNATURE_HEADER_NAMES,
)

from .signer import (
    ResponseSigner,
    sign_response,
)

from .utils import (
    parse_url,
    build_request_target,
    normalize_header_name,
    find_header_case_insensitive,
    calculate_content_digest,
    format_http_date,
)

__all__ = [
    # Types
    'SignatureAlgorithm',
    'DigestAlgorithm',
    'SignatureParameters',
    'ContentDigest',
    'VerifiedResponseRecord',
    'SignedResponse',
    'REQUEST_TARGET',
    'SIGNED_HEADERS',
    # Canonical message
    'KeygenSignature',
    'parse_signature_header',
    'build_signature_header',
    'SIGNATURE_HEADER_NAMES',
    # Signer
    'ResponseSigner',
    'sign_response',
    # Utilities
    'parse_url',
    'build_request_target',
    'normalize_header_name',
    'find_header_case_insensitive',
    'calculate_content_digest',
    'format_http_date',
]
