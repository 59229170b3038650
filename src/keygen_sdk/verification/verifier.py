"""
Response verification for license authority API responses

The verifier runs the live pipeline (canonicalization, digest, freshness,
signature) and the cache pipeline (canonicalization, signature, freshness).
It is synchronous and side-effect free; deleting failed cache records is the
validation cache's job.
"""

import logging
from datetime import datetime
from typing import Mapping, Optional

from ..crypto.ed25519 import decode_public_key, verify_signature
from ..exceptions import BadCache, BadResponse, ErrorCodes, ParseError, SignatureVerificationError
from ..signing.canonical_message import KeygenSignature
from ..signing.types import VerifiedResponseRecord
from .policies import FreshnessPolicy
from .utils import verify_digest

logger = logging.getLogger(__name__)


class ResponseVerifier:
    """
    Verifies signed responses against a single verification key.

    Args:
        verify_key: Hex-encoded Ed25519 public key (32 bytes decoded)
        policy: Freshness windows

    Raises:
        ParseError: If the verify key is malformed
    """

    def __init__(self, verify_key: str, policy: Optional[FreshnessPolicy] = None):
        # fail at construction on a malformed key, not on first response
        decode_public_key(verify_key)
        self.verify_key = verify_key
        self.policy = policy or FreshnessPolicy()

    def verify_response(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: str,
        now: Optional[datetime] = None,
    ) -> VerifiedResponseRecord:
        """
        Verify a live response.

        Order: canonicalization, digest, freshness, signature. The first
        failure is raised.

        Args:
            method: Method of the request that was sent
            url: URL the request was sent to
            headers: Response headers
            body: Response body text
            now: Current time (UTC now if None)

        Returns:
            VerifiedResponseRecord: Record ready to be cached

        Raises:
            ParseError: Missing or malformed Signature header, absent signed header, malformed signature
            BadResponse: Digest mismatch, stale or invalid date, invalid signature
        """
        sig = KeygenSignature.from_response(method, url, headers, body)
        logger.debug(f"Verifying response for {sig.target} signed with key {sig.params.key_id!r}")

        verify_digest(headers, body)
        self.policy.check_live(sig.date, now)

        try:
            verify_signature(sig.data(), sig.signature, self.verify_key)
        except SignatureVerificationError as e:
            raise BadResponse("Invalid Signature", ErrorCodes.INVALID_SIGNATURE) from e

        return sig.to_record(body)

    def verify_record(
        self,
        record: VerifiedResponseRecord,
        now: Optional[datetime] = None,
    ) -> KeygenSignature:
        """
        Re-verify a cached record.

        Order: canonicalization, signature, freshness. Raises only BadCache,
        so that every failure here is a reason to drop the record.

        Args:
            record: Cached record
            now: Current time (UTC now if None)

        Returns:
            KeygenSignature: The verified signature

        Raises:
            BadCache: INVALID_SIGNATURE, INVALID_DATE or CACHE_EXPIRED
        """
        sig = KeygenSignature.from_record(record)

        try:
            verify_signature(sig.data(), sig.signature, self.verify_key)
        except (SignatureVerificationError, ParseError) as e:
            raise BadCache("Invalid Signature", ErrorCodes.INVALID_SIGNATURE) from e

        self.policy.check_cached(sig.date, now)
        return sig
