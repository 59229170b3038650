"""
Client configuration for the Keygen licensing SDK

A ClientConfig is built once (directly, through ClientConfigBuilder or from a
JSON file) and never mutated; changing the verify key or domain means
building a new config and a new client.
"""

import json
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Optional, Union
from urllib.parse import urlsplit

from ..crypto.ed25519 import decode_public_key
from ..exceptions import ConfigError, ParseError
from ..verification.policies import (
    DEFAULT_CACHE_LIFETIME_MINUTES,
    DEFAULT_MAX_CLOCK_DRIFT_MINUTES,
    FreshnessPolicy,
    clamp_cache_lifetime,
)
from ..version import __version__

DEFAULT_API_URL = "https://api.keygen.sh"
DEFAULT_API_VERSION = "v1"
DEFAULT_TIMEOUT = 30.0
DEFAULT_USER_AGENT = f"Keygen-Python-SDK/{__version__}"


@dataclass(frozen=True)
class ClientConfig:
    """
    Configuration for the license authority client

    Exactly one of account_id and custom_domain must be set.

    Attributes:
        verify_key: Hex-encoded Ed25519 public key of the authority (32 bytes)
        account_id: Account identifier for account-scoped URLs
        custom_domain: Custom domain serving the API (replaces api_url and account scoping)
        api_url: API base URL, used with account_id
        api_version: API version path segment
        version_header: Optional Keygen-Version header value
        max_clock_drift_minutes: Maximum age of live responses, negative disables the check
        cache_lifetime_minutes: Maximum age of cached validations, clamped to [60, 1440]
        user_agent: User-Agent header value
        timeout: Request timeout in seconds
    """
    verify_key: str
    account_id: Optional[str] = None
    custom_domain: Optional[str] = None
    api_url: str = DEFAULT_API_URL
    api_version: str = DEFAULT_API_VERSION
    version_header: Optional[str] = None
    max_clock_drift_minutes: int = DEFAULT_MAX_CLOCK_DRIFT_MINUTES
    cache_lifetime_minutes: int = DEFAULT_CACHE_LIFETIME_MINUTES
    user_agent: str = DEFAULT_USER_AGENT
    timeout: float = DEFAULT_TIMEOUT

    def __post_init__(self):
        """Validate configuration and clamp the cache lifetime"""
        if bool(self.account_id) == bool(self.custom_domain):
            raise ConfigError(
                "Exactly one of account_id and custom_domain must be set",
                details={"account_id": self.account_id, "custom_domain": self.custom_domain}
            )

        try:
            decode_public_key(self.verify_key)
        except ParseError as e:
            raise ConfigError(f"Invalid verify key: {e.message}", e.error_code) from e

        if self.custom_domain is not None:
            domain = self.custom_domain.strip()
            if not domain or '/' in domain or ' ' in domain:
                raise ConfigError(f"Invalid custom domain: {self.custom_domain!r}")
        else:
            parsed = urlsplit(self.api_url)
            if parsed.scheme not in ('http', 'https') or not parsed.netloc:
                raise ConfigError(f"Invalid API URL format: {self.api_url}", "INVALID_URL")

        if not self.api_version or '/' in self.api_version.strip('/'):
            raise ConfigError(f"Invalid API version: {self.api_version!r}")

        if isinstance(self.timeout, bool) or not isinstance(self.timeout, (int, float)) or self.timeout <= 0:
            raise ConfigError("Timeout must be a positive number")

        for name in ('max_clock_drift_minutes', 'cache_lifetime_minutes'):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigError(
                    f"{name} must be an integer, got {type(value).__name__}",
                    details={name: value}
                )

        object.__setattr__(self, 'cache_lifetime_minutes', clamp_cache_lifetime(self.cache_lifetime_minutes))

    @property
    def is_custom_domain(self) -> bool:
        return self.custom_domain is not None

    @property
    def freshness_policy(self) -> FreshnessPolicy:
        return FreshnessPolicy(
            max_clock_drift_minutes=self.max_clock_drift_minutes,
            cache_lifetime_minutes=self.cache_lifetime_minutes,
        )

    def rebuild(self, **changes: Any) -> 'ClientConfig':
        """Return a new, revalidated config with the given fields changed"""
        return replace(self, **changes)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ClientConfig':
        """
        Build a config from a dictionary (e.g. parsed JSON).

        Raises:
            ConfigError: On unknown fields or invalid values
        """
        if not isinstance(data, dict):
            raise ConfigError("Configuration must be a JSON object")

        known = set(cls.__dataclass_fields__)
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown configuration fields: {', '.join(unknown)}", details={"fields": unknown})

        if 'verify_key' not in data:
            raise ConfigError("Configuration is missing verify_key")

        try:
            return cls(**data)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid configuration format: {e}") from e

    def to_dict(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in self.__dataclass_fields__}


class ClientConfigBuilder:
    """
    Builder for client configurations with a fluent API

    Example:
        >>> config = (ClientConfigBuilder.for_account("acme", verify_key)
        ...           .version_header("1.3")
        ...           .cache_lifetime(480)
        ...           .build())
    """

    def __init__(self, verify_key: str, account_id: Optional[str] = None, custom_domain: Optional[str] = None):
        self._values: Dict[str, Any] = {
            'verify_key': verify_key,
            'account_id': account_id,
            'custom_domain': custom_domain,
        }

    @classmethod
    def for_account(cls, account_id: str, verify_key: str) -> 'ClientConfigBuilder':
        """Account-scoped deployment on the default (or a custom) API URL"""
        return cls(verify_key, account_id=account_id)

    @classmethod
    def for_custom_domain(cls, custom_domain: str, verify_key: str) -> 'ClientConfigBuilder':
        """Deployment served from a custom domain"""
        return cls(verify_key, custom_domain=custom_domain)

    def api_url(self, api_url: str) -> 'ClientConfigBuilder':
        """
        Set the API base URL.

        Ignored for custom-domain deployments, whose base URL is the domain.
        """
        if self._values['custom_domain'] is None:
            self._values['api_url'] = api_url
        return self

    def api_version(self, api_version: str) -> 'ClientConfigBuilder':
        self._values['api_version'] = api_version
        return self

    def version_header(self, version_header: str) -> 'ClientConfigBuilder':
        self._values['version_header'] = version_header
        return self

    def max_clock_drift(self, minutes: int) -> 'ClientConfigBuilder':
        """Set the maximum live response age in minutes (negative disables the check)"""
        self._values['max_clock_drift_minutes'] = minutes
        return self

    def cache_lifetime(self, minutes: int) -> 'ClientConfigBuilder':
        """Set the cache lifetime in minutes, clamped to [60, 1440]"""
        self._values['cache_lifetime_minutes'] = minutes
        return self

    def user_agent(self, user_agent: str) -> 'ClientConfigBuilder':
        self._values['user_agent'] = user_agent
        return self

    def timeout(self, timeout: float) -> 'ClientConfigBuilder':
        self._values['timeout'] = timeout
        return self

    def build(self) -> ClientConfig:
        """
        Build the configuration.

        Raises:
            ConfigError: If the configuration is invalid
        """
        return ClientConfig(**self._values)


def load_client_config(file_path: Union[str, Path]) -> ClientConfig:
    """
    Load a client configuration from a JSON file.

    Raises:
        ConfigError: If the file cannot be read or holds an invalid configuration
    """
    path = Path(file_path)
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except OSError as e:
        raise ConfigError(f"Failed to read configuration file: {e}", "FILE_ERROR") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Failed to parse configuration JSON: {e}", "PARSE_ERROR") from e

    return ClientConfig.from_dict(data)
