"""
Shared fixtures: a deterministic authority key, a response signer and a fixed clock
"""

import json
from datetime import datetime, timezone

import pytest

from keygen_sdk.config import ClientConfig
from keygen_sdk.crypto.ed25519 import key_pair_from_seed
from keygen_sdk.signing.signer import ResponseSigner
from keygen_sdk.signing.types import SignedResponse

AUTHORITY_SEED = bytes(range(32))
OTHER_SEED = bytes(range(32, 64))

RESPONSE_URL = "https://api.keygen.sh/v1/accounts/acme/licenses/validate"
RESPONSE_DATE = "Tue, 01 Jan 2024 00:00:00 GMT"
RESPONSE_BODY = '{"valid":true}'
SIGNED_AT = datetime(2024, 1, 1, 0, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def authority_key_pair():
    return key_pair_from_seed(AUTHORITY_SEED)


@pytest.fixture
def other_key_pair():
    return key_pair_from_seed(OTHER_SEED)


@pytest.fixture
def verify_key(authority_key_pair):
    return authority_key_pair.public_key_hex


@pytest.fixture
def signer(authority_key_pair):
    return ResponseSigner(authority_key_pair, key_id="acme-key")


@pytest.fixture
def signed_headers(signer):
    """Headers for the GET validate scenario, signed at RESPONSE_DATE"""
    return signer.sign_response("GET", RESPONSE_URL, RESPONSE_BODY, date=RESPONSE_DATE)


@pytest.fixture
def client_config(verify_key):
    return ClientConfig(verify_key=verify_key, account_id="acme")


@pytest.fixture
def make_signed_response(signer):
    """Build a SignedResponse as the authority would return it (signed now unless a date is given)"""
    def _make(method, url, body, status_code=200, date=None):
        headers = {"Content-Type": "application/vnd.api+json"}
        headers.update(signer.sign_response(method, url, body, date=date))
        return SignedResponse(method=method, url=url, status_code=status_code, headers=headers, body=body)
    return _make


def license_document(key="LICENSE-KEY", valid=True, code="VALID", expiry="2099-01-01T00:00:00.000Z",
                     entitlements=None, with_data=True):
    """A validate-key response document"""
    document = {
        "meta": {
            "valid": valid,
            "detail": "is valid" if valid else "is expired",
            "code": code,
            "scope": {"entitlements": entitlements or []},
        },
        "data": None,
    }
    if with_data:
        document["data"] = {
            "id": "lic-1",
            "type": "licenses",
            "attributes": {
                "key": key,
                "name": "Test License",
                "expiry": expiry,
                "status": "ACTIVE" if valid else "EXPIRED",
            },
            "relationships": {
                "policy": {"data": {"type": "policies", "id": "pol-1"}},
            },
        }
    return json.dumps(document)


@pytest.fixture
def license_body():
    return license_document
