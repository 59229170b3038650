"""
Unit tests for license validation state
"""

import asyncio
import json
from unittest.mock import AsyncMock, Mock

import pytest

from keygen_sdk.exceptions import (
    BadCache,
    BadResponse,
    ErrorCodes,
    LicenseStateError,
    ParseError,
    ServerCommunicationError,
)
from keygen_sdk.http_client import KeygenClient
from keygen_sdk.licensing import (
    MACHINES_PATH,
    VALIDATE_KEY_PATH,
    License,
    LicensedState,
    LicenseResponse,
    Machine,
    MachineFile,
    build_activation_payload,
    build_checkout_payload,
    build_validation_payload,
    checkout_path,
    load_cached_license,
    validate_key_sync,
)
from keygen_sdk.signing.types import SignedResponse
from keygen_sdk.storage import LicenseKeyStore, ValidationCache

from conftest import license_document

VALIDATE_URL = "https://api.keygen.sh/v1/accounts/acme/licenses/actions/validate-key"
MACHINES_URL = "https://api.keygen.sh/v1/accounts/acme/machines"
CHECKOUT_URL = "https://api.keygen.sh/v1/accounts/acme/machines/fp-1/actions/check-out"
LICENSE_KEY = "LICENSE-KEY"


def machine_document(fingerprint="fp-1"):
    return json.dumps({
        "data": {
            "id": "mach-1",
            "type": "machines",
            "attributes": {"fingerprint": fingerprint, "name": "Workstation", "platform": "linux"},
            "relationships": {"license": {"data": {"type": "licenses", "id": "lic-1"}}},
        }
    })


def machine_file_document():
    return json.dumps({
        "data": {
            "id": "mf-1",
            "type": "machine-files",
            "attributes": {
                "certificate": "-----BEGIN MACHINE FILE-----\nabc\n-----END MACHINE FILE-----\n",
                "ttl": 3600,
                "issued": "2024-01-01T00:00:00.000Z",
                "expiry": "2024-01-01T01:00:00.000Z",
            },
        }
    })


class TestLicenseResponse:
    """Test cases for reading validation documents"""

    def test_valid_license(self):
        response = LicenseResponse.from_dict(json.loads(license_document(entitlements=["PRO"])))

        license = response.to_license()

        assert license == License(
            key=LICENSE_KEY,
            valid=True,
            code="VALID",
            detail="is valid",
            id="lic-1",
            name="Test License",
            expiry="2099-01-01T00:00:00.000Z",
            status="ACTIVE",
            policy="pol-1",
            entitlements=["PRO"],
        )

    def test_no_license_found(self):
        response = LicenseResponse.from_dict(json.loads(license_document(valid=False, code="NOT_FOUND", with_data=False)))

        license = response.to_license(fallback_key="UNKNOWN")

        assert license.key == "UNKNOWN"
        assert license.id is None
        assert not license.valid

    def test_no_key_at_all(self):
        response = LicenseResponse.from_dict({"meta": {"valid": False}, "data": None})

        with pytest.raises(ValueError):
            response.to_license()

    @pytest.mark.parametrize("document", [
        [],
        {},
        {"meta": {"detail": "no valid flag"}},
        {"meta": {"valid": "yes"}},
        {"meta": {"valid": True}, "data": ["not", "an", "object"]},
    ])
    def test_invalid_document(self, document):
        with pytest.raises(ValueError):
            LicenseResponse.from_dict(document)

    def test_to_dict(self):
        license = License(key="K", valid=True, code="VALID")

        assert license.to_dict()["key"] == "K"
        assert license.to_dict()["entitlements"] == []


class TestValidationPayload:
    """Test cases for the validate-key request document"""

    def test_key_only(self):
        assert build_validation_payload("K") == {"meta": {"key": "K"}}

    def test_scope(self):
        payload = build_validation_payload("K", fingerprint="fp", entitlements=("A", "B"))

        assert payload == {"meta": {"key": "K", "scope": {"fingerprint": "fp", "entitlements": ["A", "B"]}}}


class TestMachineDocuments:
    """Test cases for machine activation and check-out documents"""

    def test_activation_payload(self):
        payload = build_activation_payload("lic-1", "fp-1", name="Workstation")

        assert payload == {
            "data": {
                "type": "machines",
                "attributes": {"fingerprint": "fp-1", "name": "Workstation"},
                "relationships": {"license": {"data": {"type": "licenses", "id": "lic-1"}}},
            }
        }

    def test_checkout_payload(self):
        assert build_checkout_payload() == {"meta": {"include": ["license"]}}
        assert build_checkout_payload(ttl=600, include_license=False) == {"meta": {"ttl": 600}}

    def test_checkout_path_quotes_fingerprint(self):
        assert checkout_path("fp-1") == "machines/fp-1/actions/check-out"
        assert checkout_path("a/b c") == "machines/a%2Fb%20c/actions/check-out"

    def test_machine(self):
        machine = Machine.from_document(json.loads(machine_document()))

        assert machine == Machine(
            id="mach-1", fingerprint="fp-1", name="Workstation", platform="linux", license_id="lic-1"
        )

    def test_machine_file(self):
        machine_file = MachineFile.from_document(json.loads(machine_file_document()))

        assert machine_file.id == "mf-1"
        assert machine_file.ttl == 3600
        assert machine_file.certificate.startswith("-----BEGIN MACHINE FILE-----")

    @pytest.mark.parametrize("document", [
        [],
        {"data": None},
        {"data": {"id": "lic-1", "type": "licenses", "attributes": {"fingerprint": "fp"}}},
        {"data": {"id": "mach-1", "type": "machines", "attributes": {}}},
    ])
    def test_invalid_machine(self, document):
        with pytest.raises(ValueError):
            Machine.from_document(document)


class TestValidateKeySync:
    """Test cases for the blocking validate-and-cache flow"""

    @pytest.fixture(autouse=True)
    def setup_stores(self, tmp_path, client_config):
        self.client = KeygenClient(client_config, session=Mock())
        self.cache = ValidationCache(tmp_path / "cache")
        self.key_store = LicenseKeyStore(tmp_path / "store", use_keyring=False)

    def respond(self, signed_response):
        self.client.post_sync = Mock(return_value=signed_response)

    def test_valid_license_is_cached(self, make_signed_response):
        self.respond(make_signed_response("POST", VALIDATE_URL, license_document()))

        license = validate_key_sync(self.client, self.cache, self.key_store, LICENSE_KEY, fingerprint="fp")

        assert license.valid
        self.client.post_sync.assert_called_once_with(
            VALIDATE_KEY_PATH, {"meta": {"key": LICENSE_KEY, "scope": {"fingerprint": "fp"}}}
        )
        assert self.cache.read(LICENSE_KEY) is not None
        assert self.key_store.load() == LICENSE_KEY
        assert load_cached_license(self.client, self.cache, LICENSE_KEY) == license

    def test_perpetual_license_is_not_cached(self, make_signed_response):
        self.respond(make_signed_response("POST", VALIDATE_URL, license_document(expiry=None)))

        license = validate_key_sync(self.client, self.cache, self.key_store, LICENSE_KEY)

        assert license.valid
        assert self.cache.read(LICENSE_KEY) is None
        assert self.key_store.load() == LICENSE_KEY

    def test_invalid_license_is_not_cached(self, make_signed_response):
        self.respond(make_signed_response("POST", VALIDATE_URL, license_document(valid=False, code="EXPIRED")))

        license = validate_key_sync(self.client, self.cache, self.key_store, LICENSE_KEY)

        assert not license.valid
        assert license.code == "EXPIRED"
        assert self.cache.read(LICENSE_KEY) is None

    def test_caching_disabled(self, make_signed_response):
        self.respond(make_signed_response("POST", VALIDATE_URL, license_document()))

        validate_key_sync(self.client, self.cache, self.key_store, LICENSE_KEY, cache_valid_response=False)

        assert self.cache.read(LICENSE_KEY) is None

    def test_unknown_key_is_not_remembered(self, make_signed_response):
        body = license_document(valid=False, code="NOT_FOUND", with_data=False)
        self.respond(make_signed_response("POST", VALIDATE_URL, body))

        license = validate_key_sync(self.client, self.cache, self.key_store, "UNKNOWN")

        assert license.key == "UNKNOWN"
        assert self.key_store.load() is None

    def test_forged_response_is_rejected(self, make_signed_response):
        signed = make_signed_response("POST", VALIDATE_URL, license_document(valid=False, code="EXPIRED"))
        forged_body = license_document()
        self.respond(SignedResponse(
            method=signed.method, url=signed.url, status_code=200, headers=signed.headers, body=forged_body
        ))

        with pytest.raises(BadResponse) as exc_info:
            validate_key_sync(self.client, self.cache, self.key_store, LICENSE_KEY)

        assert exc_info.value.error_code == ErrorCodes.DIGEST_MISMATCH
        assert self.cache.read(LICENSE_KEY) is None
        assert self.key_store.load() is None

    def test_error_status(self, make_signed_response):
        body = json.dumps({"errors": [{"title": "Unauthorized"}]})
        self.respond(make_signed_response("POST", VALIDATE_URL, body, status_code=401))

        with pytest.raises(ServerCommunicationError) as exc_info:
            validate_key_sync(self.client, self.cache, self.key_store, LICENSE_KEY)
        assert exc_info.value.http_status == 401

    def test_non_json_body(self, make_signed_response):
        self.respond(make_signed_response("POST", VALIDATE_URL, "<html></html>"))

        with pytest.raises(ParseError) as exc_info:
            validate_key_sync(self.client, self.cache, self.key_store, LICENSE_KEY)
        assert exc_info.value.error_code == ErrorCodes.INVALID_RESPONSE_BODY


class TestLicensedState:
    """Test cases for the shared async license state"""

    @pytest.fixture(autouse=True)
    def setup_state(self, tmp_path, client_config):
        self.client = KeygenClient(client_config)
        self.cache = ValidationCache(tmp_path / "cache")
        self.key_store = LicenseKeyStore(tmp_path / "store", use_keyring=False)
        self.state = LicensedState(self.client, self.cache, self.key_store)

    @pytest.mark.asyncio
    async def test_validate_key(self, make_signed_response):
        self.client.post = AsyncMock(return_value=make_signed_response("POST", VALIDATE_URL, license_document()))

        license = await self.state.validate_key(LICENSE_KEY, entitlements=["PRO"])

        assert license.valid
        assert self.state.get_license() == license
        assert self.state.get_license_key() == LICENSE_KEY
        self.client.post.assert_awaited_once_with(
            VALIDATE_KEY_PATH, {"meta": {"key": LICENSE_KEY, "scope": {"entitlements": ["PRO"]}}}
        )

    @pytest.mark.asyncio
    async def test_failed_validation_keeps_previous_license(self, make_signed_response):
        self.client.post = AsyncMock(return_value=make_signed_response("POST", VALIDATE_URL, license_document()))
        previous = await self.state.validate_key(LICENSE_KEY)

        self.client.post = AsyncMock(side_effect=ServerCommunicationError("offline", "CONNECTION_ERROR"))
        with pytest.raises(ServerCommunicationError):
            await self.state.validate_key(LICENSE_KEY)

        assert self.state.get_license() == previous

    @pytest.mark.asyncio
    async def test_load_cached(self, make_signed_response):
        self.client.post = AsyncMock(return_value=make_signed_response("POST", VALIDATE_URL, license_document()))
        validated = await self.state.validate_key(LICENSE_KEY)

        restarted = LicensedState(self.client, self.cache, self.key_store)
        restored = await restarted.load_cached()

        assert restored == validated
        assert restarted.get_license() == validated

    @pytest.mark.asyncio
    async def test_load_cached_without_key(self):
        assert await self.state.load_cached() is None
        assert self.state.get_license() is None

    @pytest.mark.asyncio
    async def test_load_cached_tampered(self, make_signed_response):
        self.client.post = AsyncMock(return_value=make_signed_response("POST", VALIDATE_URL, license_document()))
        await self.state.validate_key(LICENSE_KEY)
        path = self.cache.path_for(LICENSE_KEY)
        record = json.loads(path.read_text())
        record["body"] = record["body"].replace("2099", "2999")
        path.write_text(json.dumps(record))

        with pytest.raises(BadCache):
            await LicensedState(self.client, self.cache, self.key_store).load_cached()
        assert not path.exists()

    @pytest.mark.asyncio
    async def test_reset(self, make_signed_response):
        self.client.post = AsyncMock(return_value=make_signed_response("POST", VALIDATE_URL, license_document()))
        await self.state.validate_key(LICENSE_KEY)

        await self.state.reset()

        assert self.state.get_license() is None
        assert self.state.get_license_key() is None
        assert self.cache.read(LICENSE_KEY) is None

    @pytest.mark.asyncio
    async def test_replace_client(self, other_key_pair):
        replacement = self.client.with_config(verify_key=other_key_pair.public_key_hex)

        await self.state.replace_client(replacement)

        assert self.state.client is replacement

    @pytest.mark.asyncio
    async def test_concurrent_validations_are_serialized(self, make_signed_response):
        in_flight = 0
        max_in_flight = 0

        async def slow_post(path, payload):
            nonlocal in_flight, max_in_flight
            in_flight += 1
            max_in_flight = max(max_in_flight, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return make_signed_response("POST", VALIDATE_URL, license_document())

        self.client.post = slow_post

        await asyncio.gather(*(self.state.validate_key(LICENSE_KEY) for _ in range(3)))

        assert max_in_flight == 1

    @pytest.mark.asyncio
    async def test_load_cached_tampered_drops_license(self, make_signed_response):
        self.client.post = AsyncMock(return_value=make_signed_response("POST", VALIDATE_URL, license_document()))
        await self.state.validate_key(LICENSE_KEY)
        path = self.cache.path_for(LICENSE_KEY)
        record = json.loads(path.read_text())
        record["host"] = "evil.example.com"
        path.write_text(json.dumps(record))

        with pytest.raises(BadCache):
            await self.state.load_cached()

        assert self.state.get_license() is None
        assert not path.exists()

    @pytest.mark.asyncio
    async def test_activate(self, make_signed_response):
        validated = make_signed_response("POST", VALIDATE_URL, license_document())
        self.client.post = AsyncMock(return_value=validated)
        await self.state.validate_key(LICENSE_KEY)

        self.client.post = AsyncMock(side_effect=[
            make_signed_response("POST", MACHINES_URL, machine_document(), status_code=201),
            validated,
        ])
        license = await self.state.activate("fp-1", name="Workstation")

        assert license.valid
        assert self.state.get_machine().id == "mach-1"
        activation_call, validation_call = self.client.post.await_args_list
        assert activation_call.args == (MACHINES_PATH, build_activation_payload("lic-1", "fp-1", name="Workstation"))
        assert activation_call.kwargs == {"headers": {"Authorization": f"License {LICENSE_KEY}"}}
        assert validation_call.args == (
            VALIDATE_KEY_PATH, {"meta": {"key": LICENSE_KEY, "scope": {"fingerprint": "fp-1"}}}
        )

    @pytest.mark.asyncio
    async def test_activate_without_license(self):
        self.client.post = AsyncMock()

        with pytest.raises(LicenseStateError) as exc_info:
            await self.state.activate("fp-1")

        assert exc_info.value.error_code == ErrorCodes.NO_LICENSE
        self.client.post.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_activation_refused(self, make_signed_response):
        self.client.post = AsyncMock(return_value=make_signed_response("POST", VALIDATE_URL, license_document()))
        previous = await self.state.validate_key(LICENSE_KEY)

        body = json.dumps({"errors": [{"title": "Unprocessable resource", "code": "MACHINE_LIMIT_EXCEEDED"}]})
        self.client.post = AsyncMock(return_value=make_signed_response("POST", MACHINES_URL, body, status_code=422))

        with pytest.raises(ServerCommunicationError) as exc_info:
            await self.state.activate("fp-1")

        assert exc_info.value.http_status == 422
        assert self.state.get_license() == previous
        assert self.state.get_machine() is None

    @pytest.mark.asyncio
    async def test_forged_activation_is_rejected(self, make_signed_response, other_key_pair):
        self.client.post = AsyncMock(return_value=make_signed_response("POST", VALIDATE_URL, license_document()))
        await self.state.validate_key(LICENSE_KEY)
        await self.state.replace_client(self.client.with_config(verify_key=other_key_pair.public_key_hex))
        self.state.client.post = AsyncMock(
            return_value=make_signed_response("POST", MACHINES_URL, machine_document(), status_code=201)
        )

        with pytest.raises(BadResponse):
            await self.state.activate("fp-1")
        assert self.state.get_machine() is None

    @pytest.mark.asyncio
    async def test_checkout_machine(self, make_signed_response):
        self.client.post = AsyncMock(return_value=make_signed_response("POST", VALIDATE_URL, license_document()))
        await self.state.validate_key(LICENSE_KEY)

        self.client.post = AsyncMock(return_value=make_signed_response("POST", CHECKOUT_URL, machine_file_document()))
        machine_file = await self.state.checkout_machine("fp-1", ttl=3600)

        assert machine_file.expiry == "2024-01-01T01:00:00.000Z"
        self.client.post.assert_awaited_once_with(
            "machines/fp-1/actions/check-out",
            {"meta": {"ttl": 3600, "include": ["license"]}},
            headers={"Authorization": f"License {LICENSE_KEY}"},
        )

    @pytest.mark.asyncio
    async def test_checkout_without_license(self):
        with pytest.raises(LicenseStateError):
            await self.state.checkout_machine("fp-1")

    @pytest.mark.asyncio
    async def test_reset_license_keeps_key(self, make_signed_response):
        self.client.post = AsyncMock(return_value=make_signed_response("POST", VALIDATE_URL, license_document()))
        await self.state.validate_key(LICENSE_KEY)

        await self.state.reset_license()

        assert self.state.get_license() is None
        assert self.cache.read(LICENSE_KEY) is None
        assert self.state.get_license_key() == LICENSE_KEY

    @pytest.mark.asyncio
    async def test_reset_license_key_keeps_license(self, make_signed_response):
        self.client.post = AsyncMock(return_value=make_signed_response("POST", VALIDATE_URL, license_document()))
        validated = await self.state.validate_key(LICENSE_KEY)

        await self.state.reset_license_key()

        assert self.state.get_license_key() is None
        assert self.state.get_license() == validated
        assert self.cache.read(LICENSE_KEY) is not None
