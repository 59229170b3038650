"""
Type definitions for the license authority's response signature profile

The authority signs every API response with Ed25519 over a canonical string
built from the request target, host, date and body digest. These types model
the parsed Signature header, the body digest and the record that is kept in
the validation cache once a response has been verified.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional


class SignatureAlgorithm(str, Enum):
    """Signature algorithm types"""
    ED25519 = "ed25519"


class DigestAlgorithm(str, Enum):
    """Body digest algorithms"""
    SHA256 = "sha-256"


# Pseudo-header carrying "<lower method> <path>[?query]"
REQUEST_TARGET = "(request-target)"

# The only header list the authority signs, in signing order
SIGNED_HEADERS = (REQUEST_TARGET, "host", "date", "digest")


@dataclass(frozen=True)
class SignatureParameters:
    """
    Parameters parsed from a response's Signature header

    Attributes:
        key_id: Identifier of the signing key (informational, a single verify key is configured)
        algorithm: Signature algorithm
        headers: Ordered list of signed header names
        signature: Base64-encoded signature value
    """
    key_id: str
    algorithm: SignatureAlgorithm
    headers: List[str]
    signature: str


@dataclass(frozen=True)
class ContentDigest:
    """
    Body digest result

    Attributes:
        algorithm: Digest algorithm used
        digest: Base64-encoded digest value
        header_value: Complete Digest header value ("sha-256=<base64>")
    """
    algorithm: DigestAlgorithm
    digest: str
    header_value: str


@dataclass(frozen=True)
class VerifiedResponseRecord:
    """
    A live-verified response, in the form persisted by the validation cache

    Attributes:
        signature: Base64 signature from the Signature header
        target: Request-target value used at sign time ("post /v1/...")
        host: Host the request was sent to
        date: Response Date header (RFC 2822)
        body: Raw response body text
    """
    signature: str
    target: str
    host: str
    date: str
    body: str

    def to_dict(self) -> Dict[str, str]:
        """Serialize to the on-disk field names"""
        return {
            'sig': self.signature,
            'target': self.target,
            'host': self.host,
            'date': self.date,
            'body': self.body,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'VerifiedResponseRecord':
        """
        Build a record from its on-disk form.

        Raises:
            ValueError: If data is not an object, or a field is missing or not a string
        """
        if not isinstance(data, dict):
            raise ValueError("Cache record is not a JSON object")

        values = {}
        for field_name, key in (('signature', 'sig'), ('target', 'target'), ('host', 'host'),
                                ('date', 'date'), ('body', 'body')):
            value = data.get(key)
            if not isinstance(value, str):
                raise ValueError(f"Cache record field '{key}' is missing or not a string")
            values[field_name] = value
        return cls(**values)


@dataclass(frozen=True)
class SignedResponse:
    """
    Raw response material needed for verification

    Attributes:
        method: HTTP method of the request that produced the response
        url: URL the request was sent to
        status_code: HTTP status code
        headers: Response headers
        body: Response body text
    """
    method: str
    url: str
    status_code: int
    headers: Dict[str, str]
    body: str
    reason: Optional[str] = None
