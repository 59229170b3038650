"""
License validation state for host applications

Ties the client, the validation cache and the license key store together:
validate a key against the authority, verify and cache the signed answer,
and later restore the license from the cache without a network round trip.
Machines are activated and checked out against the validated license.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, TypeVar
from urllib.parse import quote

from .exceptions import BadCache, ErrorCodes, LicenseStateError, ParseError, ServerCommunicationError
from .http_client import KeygenClient
from .signing.types import SignedResponse, VerifiedResponseRecord
from .storage.key_store import LicenseKeyStore
from .storage.validation_cache import ValidationCache

logger = logging.getLogger(__name__)

T = TypeVar('T')

VALIDATE_KEY_PATH = "licenses/actions/validate-key"
MACHINES_PATH = "machines"


@dataclass
class License:
    """
    The license fields this SDK reads from a validation response

    Attributes:
        key: License key
        valid: Whether the authority judged the license valid for the requested scope
        code: Validation code (e.g. "VALID", "EXPIRED", "NOT_FOUND")
        detail: Human-readable validation detail
        id: License ID
        name: License name
        expiry: Expiry timestamp (ISO 8601) or None for perpetual licenses
        status: License status (e.g. "ACTIVE")
        policy: Policy ID
        entitlements: Entitlement codes requested in the validation scope
    """
    key: str
    valid: bool
    code: str
    detail: str = ""
    id: Optional[str] = None
    name: Optional[str] = None
    expiry: Optional[str] = None
    status: Optional[str] = None
    policy: Optional[str] = None
    entitlements: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'key': self.key,
            'name': self.name,
            'expiry': self.expiry,
            'status': self.status,
            'policy': self.policy,
            'valid': self.valid,
            'code': self.code,
            'detail': self.detail,
            'entitlements': list(self.entitlements),
        }


@dataclass
class LicenseResponse:
    """
    A validate-key response document

    Attributes:
        meta: The "meta" object (valid, code, detail, scope)
        data: The license resource, or None if no license matched
    """
    meta: Dict[str, Any]
    data: Optional[Dict[str, Any]] = None

    @classmethod
    def from_dict(cls, document: Dict[str, Any]) -> 'LicenseResponse':
        """
        Read a validation document.

        Raises:
            ValueError: If the document does not have the validation shape
        """
        if not isinstance(document, dict):
            raise ValueError("Validation response is not a JSON object")

        meta = document.get('meta')
        if not isinstance(meta, dict) or not isinstance(meta.get('valid'), bool):
            raise ValueError("Validation response has no valid meta object")

        data = document.get('data')
        if data is not None and not isinstance(data, dict):
            raise ValueError("Validation response data is not an object")

        return cls(meta=meta, data=data)

    def to_license(self, fallback_key: Optional[str] = None) -> License:
        """
        Build a License from the document.

        Args:
            fallback_key: Key to report when the document carries no license
        """
        attributes = (self.data or {}).get('attributes') or {}
        relationships = (self.data or {}).get('relationships') or {}
        policy = ((relationships.get('policy') or {}).get('data') or {}).get('id')
        scope = self.meta.get('scope') or {}

        key = attributes.get('key') or fallback_key
        if not key:
            raise ValueError("Validation response carries no license key")

        return License(
            key=key,
            valid=self.meta['valid'],
            code=str(self.meta.get('code', '')),
            detail=str(self.meta.get('detail', '')),
            id=(self.data or {}).get('id'),
            name=attributes.get('name'),
            expiry=attributes.get('expiry'),
            status=attributes.get('status'),
            policy=policy,
            entitlements=list(scope.get('entitlements') or []),
        )


@dataclass
class Machine:
    """
    A machine activated against a license

    Attributes:
        id: Machine ID
        fingerprint: Fingerprint the machine was activated with
        name: Machine name
        platform: Platform description
        license_id: ID of the license the machine belongs to
    """
    id: str
    fingerprint: str
    name: Optional[str] = None
    platform: Optional[str] = None
    license_id: Optional[str] = None

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> 'Machine':
        """
        Read a machine resource document.

        Raises:
            ValueError: If the document does not carry a machine resource
        """
        data = _resource(document, 'machines')
        attributes = data.get('attributes') or {}
        fingerprint = attributes.get('fingerprint')
        if not isinstance(fingerprint, str):
            raise ValueError("Machine resource has no fingerprint")

        relationships = data.get('relationships') or {}
        license_id = ((relationships.get('license') or {}).get('data') or {}).get('id')

        return cls(
            id=data['id'],
            fingerprint=fingerprint,
            name=attributes.get('name'),
            platform=attributes.get('platform'),
            license_id=license_id,
        )


@dataclass
class MachineFile:
    """
    A checked-out machine file for offline use

    Attributes:
        id: Machine file ID
        certificate: Machine file certificate text
        ttl: Time to live in seconds, or None for no expiry
        issued: Issue timestamp (ISO 8601)
        expiry: Expiry timestamp (ISO 8601), or None
    """
    id: str
    certificate: str
    ttl: Optional[int] = None
    issued: Optional[str] = None
    expiry: Optional[str] = None

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> 'MachineFile':
        """
        Read a machine file resource document.

        Raises:
            ValueError: If the document does not carry a machine file
        """
        data = _resource(document, 'machine-files')
        attributes = data.get('attributes') or {}
        certificate = attributes.get('certificate')
        if not isinstance(certificate, str) or not certificate:
            raise ValueError("Machine file has no certificate")

        return cls(
            id=data['id'],
            certificate=certificate,
            ttl=attributes.get('ttl'),
            issued=attributes.get('issued'),
            expiry=attributes.get('expiry'),
        )


def _resource(document: Any, resource_type: str) -> Dict[str, Any]:
    if not isinstance(document, dict):
        raise ValueError("Response is not a JSON object")
    data = document.get('data')
    if not isinstance(data, dict) or data.get('type') != resource_type or not isinstance(data.get('id'), str):
        raise ValueError(f"Response does not carry a {resource_type} resource")
    return data


def license_auth_headers(key: str) -> Dict[str, str]:
    """Authorization header for requests made with a license key"""
    return {'Authorization': f"License {key}"}


def build_validation_payload(
    key: str,
    fingerprint: Optional[str] = None,
    entitlements: Sequence[str] = (),
) -> Dict[str, Any]:
    """Build the validate-key request document"""
    scope: Dict[str, Any] = {}
    if fingerprint:
        scope['fingerprint'] = fingerprint
    if entitlements:
        scope['entitlements'] = list(entitlements)

    meta: Dict[str, Any] = {'key': key}
    if scope:
        meta['scope'] = scope
    return {'meta': meta}


def build_activation_payload(
    license_id: str,
    fingerprint: str,
    name: Optional[str] = None,
    platform: Optional[str] = None,
) -> Dict[str, Any]:
    """Build the machine activation request document"""
    attributes: Dict[str, Any] = {'fingerprint': fingerprint}
    if name:
        attributes['name'] = name
    if platform:
        attributes['platform'] = platform

    return {
        'data': {
            'type': 'machines',
            'attributes': attributes,
            'relationships': {
                'license': {'data': {'type': 'licenses', 'id': license_id}},
            },
        }
    }


def build_checkout_payload(ttl: Optional[int] = None, include_license: bool = True) -> Dict[str, Any]:
    """Build the machine check-out request document"""
    meta: Dict[str, Any] = {}
    if ttl is not None:
        meta['ttl'] = ttl
    if include_license:
        meta['include'] = ['license']
    return {'meta': meta}


def checkout_path(fingerprint: str) -> str:
    return f"{MACHINES_PATH}/{quote(fingerprint, safe='')}/actions/check-out"


def verified_document(
    client: KeygenClient,
    response: SignedResponse,
    now: Optional[datetime] = None,
) -> Tuple[VerifiedResponseRecord, Any]:
    """
    Verify a live response and parse its JSON body.

    Error statuses are reported only after the signature has been checked.

    Raises:
        ParseError: Malformed signature material or body
        BadResponse: Digest, freshness or signature failure
        ServerCommunicationError: Verified error response from the authority
    """
    record: VerifiedResponseRecord = client.verify_signed_response(response, now)

    if response.status_code >= 400:
        raise ServerCommunicationError(
            f"Server request failed: HTTP {response.status_code}",
            "HTTP_ERROR",
            http_status=response.status_code,
            details={'body': response.body[:512]}
        )

    try:
        return record, json.loads(record.body)
    except ValueError as e:
        raise ParseError(
            f"Failed parsing response json: {e}",
            ErrorCodes.INVALID_RESPONSE_BODY
        ) from e


def _read_document(reader: Callable[[Any], T], document: Any) -> T:
    try:
        return reader(document)
    except (ValueError, KeyError) as e:
        raise ParseError(
            f"Unexpected response document: {e}",
            ErrorCodes.INVALID_RESPONSE_BODY
        ) from e


def process_validation_response(
    client: KeygenClient,
    cache: ValidationCache,
    key_store: LicenseKeyStore,
    key: str,
    response: SignedResponse,
    cache_valid_response: bool = True,
    now: Optional[datetime] = None,
) -> License:
    """
    Verify a validate-key response, then cache and remember it.

    The record is cached only for valid licenses that have an expiry; the
    license key is remembered whenever the authority returned a license.

    Raises:
        ParseError: Malformed signature material or body
        BadResponse: Digest, freshness or signature failure
        ServerCommunicationError: Verified error response from the authority
        StorageError: Cache or key store write failure
    """
    record, document = verified_document(client, response, now)
    license = _read_document(
        lambda d: LicenseResponse.from_dict(d).to_license(fallback_key=key), document
    )

    if license.valid and cache_valid_response and license.expiry is not None:
        cache.store(license.key, record)

    if license.id is not None:
        key_store.save(license.key)

    logger.info(f"License validation finished: {license.code or ('VALID' if license.valid else 'INVALID')}")
    return license


def validate_key_sync(
    client: KeygenClient,
    cache: ValidationCache,
    key_store: LicenseKeyStore,
    key: str,
    fingerprint: Optional[str] = None,
    entitlements: Sequence[str] = (),
    cache_valid_response: bool = True,
) -> License:
    """Blocking validate-key for scripts and the CLI (no shared state, no locks)"""
    response = client.post_sync(VALIDATE_KEY_PATH, build_validation_payload(key, fingerprint, entitlements))
    return process_validation_response(client, cache, key_store, key, response, cache_valid_response)


def load_cached_license(
    client: KeygenClient,
    cache: ValidationCache,
    key: str,
    now: Optional[datetime] = None,
) -> Optional[License]:
    """
    Restore a license from the validation cache.

    Returns:
        License, or None if nothing is cached for the key

    Raises:
        BadCache: The record failed re-verification or decoding (and was deleted)
    """
    response = client.verify_cached_response(key, cache, LicenseResponse.from_dict, now)
    if response is None:
        return None
    return response.to_license(fallback_key=key)


class LicensedState:
    """
    In-memory license state shared by a host application.

    The state and the client are guarded by separate locks, always acquired
    state first, then client. A validation holds both for its full duration,
    so callers never observe a half-applied update.

    Args:
        client: License authority client
        cache: Validation cache
        key_store: License key store
    """

    def __init__(self, client: KeygenClient, cache: ValidationCache, key_store: LicenseKeyStore):
        self._client = client
        self._cache = cache
        self._key_store = key_store
        self._license: Optional[License] = None
        self._machine: Optional[Machine] = None
        self._state_lock = asyncio.Lock()
        self._client_lock = asyncio.Lock()

    @property
    def client(self) -> KeygenClient:
        return self._client

    def get_license(self) -> Optional[License]:
        return self._license

    def get_license_key(self) -> Optional[str]:
        return self._key_store.load()

    def get_machine(self) -> Optional[Machine]:
        return self._machine

    async def replace_client(self, client: KeygenClient) -> None:
        """Swap in a rebuilt client (e.g. new verify key or domain)"""
        async with self._client_lock:
            self._client = client

    async def _validate(
        self,
        key: str,
        fingerprint: Optional[str],
        entitlements: Sequence[str],
        cache_valid_response: bool,
    ) -> License:
        # Caller holds both locks
        response = await self._client.post(
            VALIDATE_KEY_PATH,
            build_validation_payload(key, fingerprint, entitlements),
        )
        return process_validation_response(
            self._client, self._cache, self._key_store, key, response, cache_valid_response
        )

    def _require_license(self) -> License:
        if self._license is None or self._license.id is None:
            raise LicenseStateError("No validated license to act on", ErrorCodes.NO_LICENSE)
        return self._license

    async def validate_key(
        self,
        key: str,
        fingerprint: Optional[str] = None,
        entitlements: Sequence[str] = (),
        cache_valid_response: bool = True,
    ) -> License:
        """
        Validate a license key with the authority.

        Args:
            key: License key
            fingerprint: Machine fingerprint to scope the validation to
            entitlements: Entitlement codes the license must carry
            cache_valid_response: Cache the signed response when the license is valid and expires

        Returns:
            License: The validated license (check .valid)
        """
        async with self._state_lock:
            async with self._client_lock:
                license = await self._validate(key, fingerprint, entitlements, cache_valid_response)
            self._license = license
            return license

    async def activate(
        self,
        fingerprint: str,
        name: Optional[str] = None,
        platform: Optional[str] = None,
        entitlements: Sequence[str] = (),
        cache_valid_response: bool = True,
    ) -> License:
        """
        Activate a machine for the held license, then revalidate scoped to it.

        The fingerprint is supplied by the host application.

        Returns:
            License: The license revalidated for the activated machine

        Raises:
            LicenseStateError: If no license has been validated
            ServerCommunicationError: If the authority refused the activation
        """
        async with self._state_lock:
            current = self._require_license()
            async with self._client_lock:
                response = await self._client.post(
                    MACHINES_PATH,
                    build_activation_payload(current.id, fingerprint, name, platform),
                    headers=license_auth_headers(current.key),
                )
                _, document = verified_document(self._client, response)
                machine = _read_document(Machine.from_document, document)
                logger.info(f"Activated machine {machine.id}")

                license = await self._validate(current.key, fingerprint, entitlements, cache_valid_response)
            self._machine = machine
            self._license = license
            return license

    async def checkout_machine(
        self,
        fingerprint: str,
        ttl: Optional[int] = None,
        include_license: bool = True,
    ) -> MachineFile:
        """
        Check out a machine file for an activated machine.

        Args:
            fingerprint: Fingerprint (or ID) of the activated machine
            ttl: Machine file lifetime in seconds, authority default when None
            include_license: Embed the license in the machine file

        Raises:
            LicenseStateError: If no license has been validated
        """
        async with self._state_lock:
            current = self._require_license()
            async with self._client_lock:
                response = await self._client.post(
                    checkout_path(fingerprint),
                    build_checkout_payload(ttl, include_license),
                    headers=license_auth_headers(current.key),
                )
                _, document = verified_document(self._client, response)
            machine_file = _read_document(MachineFile.from_document, document)
            logger.info(f"Checked out machine file {machine_file.id}")
            return machine_file

    async def load_cached(self, now: Optional[datetime] = None) -> Optional[License]:
        """
        Restore the license for the remembered key from the validation cache.

        Returns:
            License, or None when no key is remembered or nothing is cached

        Raises:
            BadCache: The record failed re-verification or decoding (and was
                deleted); the in-memory license is dropped as well
        """
        async with self._state_lock:
            key = self._key_store.load()
            if key is None:
                return None
            try:
                async with self._client_lock:
                    license = load_cached_license(self._client, self._cache, key, now)
            except BadCache:
                self._license = None
                raise
            if license is not None:
                self._license = license
            return license

    def _forget_license(self) -> None:
        keys = {self._key_store.load()}
        if self._license is not None:
            keys.add(self._license.key)
        for key in keys - {None}:
            self._cache.delete(key)
        self._license = None
        self._machine = None

    async def reset_license(self) -> None:
        """Drop the in-memory license and its cached validation, keeping the remembered key"""
        async with self._state_lock:
            self._forget_license()

    async def reset_license_key(self) -> None:
        """Forget the remembered license key"""
        async with self._state_lock:
            self._key_store.delete()

    async def reset(self) -> None:
        """Forget the license: clear the cache, the remembered key and in-memory state"""
        async with self._state_lock:
            self._forget_license()
            self._key_store.delete()
