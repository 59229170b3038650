"""
Canonical message construction for license authority response signatures

The authority signs the following string, one "name: value" line per signed
header, joined with newlines and without a trailing newline:

    (request-target): post /v1/accounts/<account>/licenses/actions/validate-key
    host: api.keygen.sh
    date: Wed, 09 Jun 2021 16:08:15 GMT
    digest: sha-256=827Op2un8OT9KJuN1siRs5h6mxjrUh4LJag66dQjnIM=

The same string must come out of a live response and out of a cached
record, otherwise cached licenses stop verifying after activation.
"""

import logging
import re
from typing import Dict, List, Mapping, Optional

from ..exceptions import ErrorCodes, ParseError
from .types import (
    REQUEST_TARGET,
    SIGNED_HEADERS,
    SignatureAlgorithm,
    SignatureParameters,
    VerifiedResponseRecord,
)
from .utils import (
    build_request_target,
    calculate_content_digest,
    encode_signature_component,
    find_header_case_insensitive,
    parse_url,
)

logger = logging.getLogger(__name__)

# Accepted names for the header carrying signature parameters, in lookup order
SIGNATURE_HEADER_NAMES = ("signature", "keygen-signature")

_PARAM_PATTERN = re.compile(r'\s*([A-Za-z][A-Za-z0-9_-]*)="([^"]*)"\s*')
_REQUIRED_PARAMS = ("keyid", "algorithm", "signature", "headers")


def parse_signature_header(value: str) -> SignatureParameters:
    """
    Parse a Signature header value.

    Format:
        keyid="<id>", algorithm="ed25519", signature="<base64>", headers="(request-target) host date digest"

    Args:
        value: Signature header value

    Returns:
        SignatureParameters: Parsed parameters

    Raises:
        ParseError: On malformed syntax, duplicate or missing parameters, or an unknown algorithm
    """
    if not value or not value.strip():
        raise ParseError("Signature header is empty", ErrorCodes.INVALID_SIGNATURE_HEADER)

    params: Dict[str, str] = {}
    for part in value.split(','):
        match = _PARAM_PATTERN.fullmatch(part)
        if not match:
            raise ParseError(
                "Malformed Signature header parameter",
                ErrorCodes.INVALID_SIGNATURE_HEADER,
                {"parameter": part.strip()}
            )
        name, param_value = match.group(1).lower(), match.group(2)
        if name in params:
            raise ParseError(
                f"Duplicate Signature header parameter: {name}",
                ErrorCodes.INVALID_SIGNATURE_HEADER
            )
        params[name] = param_value

    missing = [name for name in _REQUIRED_PARAMS if not params.get(name)]
    if missing:
        raise ParseError(
            f"Signature header missing parameters: {', '.join(missing)}",
            ErrorCodes.INVALID_SIGNATURE_HEADER,
            {"missing": missing}
        )

    try:
        algorithm = SignatureAlgorithm(params["algorithm"].lower())
    except ValueError:
        raise ParseError(
            f"Unsupported signature algorithm: {params['algorithm']}",
            ErrorCodes.INVALID_SIGNATURE_HEADER
        ) from None

    return SignatureParameters(
        key_id=params["keyid"],
        algorithm=algorithm,
        headers=params["headers"].lower().split(),
        signature=params["signature"],
    )


def _check_signed_headers(headers: List[str]) -> None:
    """The header list must be exactly the profile's list, in order"""
    if tuple(headers) != SIGNED_HEADERS:
        raise ParseError(
            "Signed header list does not match the signature profile",
            ErrorCodes.INVALID_SIGNED_HEADERS,
            {"headers": headers, "expected": list(SIGNED_HEADERS)}
        )


class KeygenSignature:
    """
    Signature parameters plus the canonical values they cover.

    Build with from_response() on the live path or from_record() on the cache
    path; both produce the same signing_string() for the same response.
    """

    def __init__(
        self,
        params: SignatureParameters,
        target: str,
        host: str,
        date: str,
        digest: str,
    ):
        self.params = params
        self.values = {
            REQUEST_TARGET: target,
            "host": host,
            "date": date,
            "digest": digest,
        }

    @classmethod
    def from_response(
        cls,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: str,
    ) -> 'KeygenSignature':
        """
        Extract signature parameters and canonical values from a live response.

        Args:
            method: Method of the request that was actually sent
            url: URL the request was actually sent to
            headers: Response headers (any case)
            body: Response body text

        Raises:
            ParseError: If the Signature header is missing or malformed, or a signed header is absent
        """
        signature_header = None
        for name in SIGNATURE_HEADER_NAMES:
            signature_header = find_header_case_insensitive(headers, name)
            if signature_header is not None:
                break

        if signature_header is None:
            raise ParseError(
                "Missing header: Signature",
                ErrorCodes.MISSING_SIGNED_HEADER,
                {"header": "signature"}
            )

        params = parse_signature_header(signature_header)
        _check_signed_headers(params.headers)

        date = find_header_case_insensitive(headers, "date")
        if date is None:
            raise ParseError(
                "Signed header missing from response: date",
                ErrorCodes.MISSING_SIGNED_HEADER,
                {"header": "date"}
            )

        if find_header_case_insensitive(headers, "digest") is None:
            raise ParseError(
                "Signed header missing from response: digest",
                ErrorCodes.MISSING_SIGNED_HEADER,
                {"header": "digest"}
            )

        # digest is recomputed, never copied from the response header
        return cls(
            params=params,
            target=build_request_target(method, url),
            host=parse_url(url)["host"],
            date=date,
            digest=calculate_content_digest(body).header_value,
        )

    @classmethod
    def from_record(cls, record: VerifiedResponseRecord) -> 'KeygenSignature':
        """
        Rebuild the signature from a cached record.

        The digest is recomputed from the record body, the other values are
        taken verbatim from the record.
        """
        params = SignatureParameters(
            key_id="",
            algorithm=SignatureAlgorithm.ED25519,
            headers=list(SIGNED_HEADERS),
            signature=record.signature,
        )
        return cls(
            params=params,
            target=record.target,
            host=record.host,
            date=record.date,
            digest=calculate_content_digest(record.body).header_value,
        )

    @property
    def signature(self) -> str:
        return self.params.signature

    @property
    def target(self) -> str:
        return self.values[REQUEST_TARGET]

    @property
    def host(self) -> str:
        return self.values["host"]

    @property
    def date(self) -> str:
        return self.values["date"]

    @property
    def digest(self) -> str:
        return self.values["digest"]

    def signing_string(self) -> str:
        """
        Build the canonical signing string.

        Raises:
            ParseError: If a header in the parameter list has no value
        """
        lines = []
        for name in self.params.headers:
            value: Optional[str] = self.values.get(name)
            if value is None:
                raise ParseError(
                    f"Signed header has no value: {name}",
                    ErrorCodes.MISSING_SIGNED_HEADER,
                    {"header": name}
                )
            lines.append(encode_signature_component(name, value))

        signing_string = "\n".join(lines)
        logger.debug(f"Canonical signing string built over headers: {' '.join(self.params.headers)}")
        return signing_string

    def data(self) -> bytes:
        """Canonical signing string as UTF-8 bytes, the input to Ed25519"""
        return self.signing_string().encode('utf-8')

    def to_record(self, body: str) -> VerifiedResponseRecord:
        """Build the cacheable record for this signature and its body"""
        return VerifiedResponseRecord(
            signature=self.signature,
            target=self.target,
            host=self.host,
            date=self.date,
            body=body,
        )

    def __repr__(self) -> str:
        return f"KeygenSignature(key_id={self.params.key_id!r}, target={self.target!r}, date={self.date!r})"


def build_signature_header(key_id: str, signature: str, algorithm: SignatureAlgorithm = SignatureAlgorithm.ED25519) -> str:
    """
    Build a Signature header value for the profile's header list.

    Args:
        key_id: Key identifier
        signature: Base64 signature over the canonical string
        algorithm: Signature algorithm

    Returns:
        str: Signature header value
    """
    return (
        f'keyid="{key_id}", '
        f'algorithm="{algorithm.value}", '
        f'signature="{signature}", '
        f'headers="{" ".join(SIGNED_HEADERS)}"'
    )
