"""
Response signer for the license authority's signature profile

The SDK only verifies responses. This signer produces the headers a real
authority would attach, for local test authorities and fixtures.
"""

from datetime import datetime
from typing import Dict, Optional

from ..crypto.ed25519 import Ed25519KeyPair, sign_message
from .canonical_message import KeygenSignature, build_signature_header
from .types import SIGNED_HEADERS, SignatureParameters, SignatureAlgorithm
from .utils import (
    build_request_target,
    calculate_content_digest,
    format_http_date,
    parse_url,
)


class ResponseSigner:
    """
    Signs response bodies the way the license authority does.

    Args:
        key_pair: Ed25519 key pair of the authority
        key_id: Key identifier advertised in the Signature header
    """

    def __init__(self, key_pair: Ed25519KeyPair, key_id: str = "test-key"):
        if not key_id:
            raise ValueError("Key ID cannot be empty")
        self.key_pair = key_pair
        self.key_id = key_id

    def sign_response(
        self,
        method: str,
        url: str,
        body: str,
        date: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, str]:
        """
        Produce signed response headers for a body.

        Args:
            method: Method of the request being answered
            url: URL of the request being answered
            body: Response body text
            date: Date header value to sign (formatted from now if None)
            now: Timestamp used when date is None

        Returns:
            dict: Date, Digest and Signature headers
        """
        digest = calculate_content_digest(body)
        if date is None:
            date = format_http_date(now)

        unsigned = KeygenSignature(
            params=SignatureParameters(
                key_id=self.key_id,
                algorithm=SignatureAlgorithm.ED25519,
                headers=list(SIGNED_HEADERS),
                signature="",
            ),
            target=build_request_target(method, url),
            host=parse_url(url)["host"],
            date=date,
            digest=digest.header_value,
        )
        signature = sign_message(self.key_pair.private_key, unsigned.data())

        return {
            "Date": date,
            "Digest": digest.header_value,
            "Signature": build_signature_header(self.key_id, signature),
        }


def sign_response(
    key_pair: Ed25519KeyPair,
    method: str,
    url: str,
    body: str,
    date: Optional[str] = None,
    key_id: str = "test-key",
) -> Dict[str, str]:
    """Convenience wrapper around ResponseSigner.sign_response"""
    return ResponseSigner(key_pair, key_id).sign_response(method, url, body, date=date)
