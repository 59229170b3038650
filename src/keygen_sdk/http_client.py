"""
HTTP client for the license authority API

KeygenClient builds scoped request URLs, sends requests (async through httpx,
sync through a requests session) and verifies the signed responses that come
back. Verification results are returned to the caller; nothing is retried
here.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Tuple, TypeVar, Union
from urllib.parse import urlencode, urljoin

import httpx
import requests

from .config.client_config import ClientConfig
from .exceptions import ErrorCodes, ParseError, ServerCommunicationError
from .signing.types import SignedResponse, VerifiedResponseRecord
from .signing.utils import parse_url
from .storage.validation_cache import ValidationCache
from .verification.verifier import ResponseVerifier

logger = logging.getLogger(__name__)

T = TypeVar('T')

JSON_API_MEDIA_TYPE = "application/vnd.api+json"

QueryParams = Union[Mapping[str, str], Sequence[Tuple[str, str]]]


def _decode_body(content: bytes) -> str:
    """Response bodies are signed as UTF-8 text"""
    try:
        return content.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ParseError("Failed parsing response text", ErrorCodes.INVALID_RESPONSE_BODY) from e


class KeygenClient:
    """
    Client facade for the license authority.

    The configuration is fixed for the lifetime of the client; use
    with_config() to obtain a rebuilt client.

    Args:
        config: Client configuration
        session: Optional requests session for the sync transport
    """

    def __init__(self, config: ClientConfig, session: Optional[requests.Session] = None):
        self._config = config
        self._verifier = ResponseVerifier(config.verify_key, config.freshness_policy)
        self._session = session

        logger.info(f"Initialized Keygen client for {self.base_url}")

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def verifier(self) -> ResponseVerifier:
        return self._verifier

    @property
    def base_url(self) -> str:
        """API base URL: the custom domain, or the configured API URL"""
        if self._config.custom_domain is not None:
            return f"https://{self._config.custom_domain.strip()}"
        return self._config.api_url

    def with_config(self, **changes: Any) -> 'KeygenClient':
        """Return a new client built from this client's config with changes applied"""
        return KeygenClient(self._config.rebuild(**changes), session=self._session)

    def build_url(self, path: str, params: Optional[QueryParams] = None) -> str:
        """
        Build a scoped API URL.

        Account scoped:  {api_url}/{api_version}/accounts/{account_id}/{path}
        Custom domain:   https://{custom_domain}/{api_version}/{path}

        Args:
            path: Endpoint path relative to the scope (e.g. "licenses/actions/validate-key")
            params: Query parameters, appended in order

        Returns:
            str: Full URL

        Raises:
            ParseError: On a malformed base URL or a failed join
        """
        version = self._config.api_version.strip('/')
        relative = path.lstrip('/')
        if self._config.custom_domain is not None:
            full_path = f"{version}/{relative}"
        else:
            full_path = f"{version}/accounts/{self._config.account_id}/{relative}"

        base = self.base_url
        try:
            parse_url(base)
            url = urljoin(base if base.endswith('/') else base + '/', full_path)
        except ValueError as e:
            raise ParseError(
                "Failed to join path to base url",
                ErrorCodes.INVALID_URL,
                {"base_url": base, "path": path}
            ) from e

        # re-parse so a bad join never leaves this method
        parse_url(url)

        if params:
            query = urlencode(list(params.items()) if isinstance(params, Mapping) else list(params))
            url = f"{url}{'&' if '?' in url else '?'}{query}"

        return url

    def request_headers(self, extra: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        """Default headers for API requests, updated with any extra headers"""
        headers = {
            'Accept': JSON_API_MEDIA_TYPE,
            'Content-Type': JSON_API_MEDIA_TYPE,
            'User-Agent': self._config.user_agent,
        }
        if self._config.version_header:
            headers['Keygen-Version'] = self._config.version_header
        if extra:
            headers.update(extra)
        return headers

    def verify_live_response(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: str,
        now: Optional[datetime] = None,
    ) -> VerifiedResponseRecord:
        """
        Verify a live response and return a record ready for caching.

        Raises:
            ParseError: On malformed signature material
            BadResponse: On digest, freshness or signature failure
        """
        return self._verifier.verify_response(method, url, headers, body, now)

    def verify_signed_response(self, response: SignedResponse, now: Optional[datetime] = None) -> VerifiedResponseRecord:
        """Verify a SignedResponse returned by post() or post_sync()"""
        return self.verify_live_response(response.method, response.url, response.headers, response.body, now)

    def verify_cached_response(
        self,
        license_key: str,
        cache: ValidationCache,
        decode: Optional[Callable[[Any], T]] = None,
        now: Optional[datetime] = None,
    ) -> Optional[T]:
        """
        Re-verify and decode the cached record for a license key.

        The record is deleted on any failure before BadCache is raised.

        Returns:
            The decoded payload, or None if nothing is cached
        """
        return cache.load(license_key, self._verifier, decode, now)

    async def post(
        self,
        path: str,
        payload: Dict[str, Any],
        params: Optional[QueryParams] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> SignedResponse:
        """
        POST a JSON:API document asynchronously.

        Raises:
            ServerCommunicationError: On network errors
        """
        url = self.build_url(path, params)
        logger.debug(f"Making POST request to {url}")
        try:
            async with httpx.AsyncClient(timeout=self._config.timeout) as client:
                response = await client.post(url, json=payload, headers=self.request_headers(headers))
        except httpx.TimeoutException as e:
            raise ServerCommunicationError(
                f"Request timeout after {self._config.timeout} seconds", "TIMEOUT"
            ) from e
        except httpx.HTTPError as e:
            raise ServerCommunicationError(f"Request failed: {e}", "CONNECTION_ERROR") from e

        return SignedResponse(
            method="POST",
            url=url,
            status_code=response.status_code,
            headers=dict(response.headers),
            body=_decode_body(response.content),
            reason=response.reason_phrase,
        )

    def post_sync(
        self,
        path: str,
        payload: Dict[str, Any],
        params: Optional[QueryParams] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> SignedResponse:
        """
        POST a JSON:API document synchronously.

        Raises:
            ServerCommunicationError: On network errors
        """
        url = self.build_url(path, params)
        if self._session is None:
            self._session = requests.Session()

        logger.debug(f"Making POST request to {url}")
        try:
            response = self._session.post(
                url,
                json=payload,
                headers=self.request_headers(headers),
                timeout=self._config.timeout,
            )
        except requests.exceptions.Timeout as e:
            raise ServerCommunicationError(
                f"Request timeout after {self._config.timeout} seconds", "TIMEOUT"
            ) from e
        except requests.exceptions.ConnectionError as e:
            raise ServerCommunicationError(f"Connection error: {e}", "CONNECTION_ERROR") from e
        except requests.exceptions.RequestException as e:
            raise ServerCommunicationError(f"Request failed: {e}", "REQUEST_FAILED") from e

        return SignedResponse(
            method="POST",
            url=url,
            status_code=response.status_code,
            headers=dict(response.headers),
            body=_decode_body(response.content),
            reason=response.reason,
        )

    def close(self) -> None:
        """Close the sync transport session"""
        if self._session is not None:
            self._session.close()
            self._session = None

    def __repr__(self) -> str:
        return f"KeygenClient(base_url={self.base_url!r}, api_version={self._config.api_version!r})"
