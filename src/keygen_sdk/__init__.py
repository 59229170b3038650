"""
Keygen licensing SDK
Verification of signed license authority responses with a fail-closed validation cache
"""

from .version import __version__
from .crypto.ed25519 import (
    Ed25519KeyPair,
    generate_key_pair,
    key_pair_from_seed,
    format_key,
    parse_key,
    sign_message,
    verify_signature,
)
from .exceptions import (
    KeygenSDKError,
    ParseError,
    ConfigError,
    SignatureVerificationError,
    BadResponse,
    BadCache,
    StorageError,
    LicenseStateError,
    ServerCommunicationError,
    ErrorCodes,
)
from .signing import (
    KeygenSignature,
    VerifiedResponseRecord,
    SignedResponse,
    ResponseSigner,
    sign_response,
    parse_signature_header,
    SIGNED_HEADERS,
)
from .verification import (
    ResponseVerifier,
    FreshnessPolicy,
    verify_digest,
)
from .storage import (
    ValidationCache,
    LicenseKeyStore,
    default_cache_dir,
)
from .config import (
    ClientConfig,
    ClientConfigBuilder,
    load_client_config,
)
from .http_client import KeygenClient
from .licensing import (
    License,
    LicenseResponse,
    LicensedState,
    Machine,
    MachineFile,
    validate_key_sync,
    load_cached_license,
)

__all__ = [
    '__version__',
    # Crypto
    'Ed25519KeyPair',
    'generate_key_pair',
    'key_pair_from_seed',
    'format_key',
    'parse_key',
    'sign_message',
    'verify_signature',
    # Exceptions
    'KeygenSDKError',
    'ParseError',
    'ConfigError',
    'SignatureVerificationError',
    'BadResponse',
    'BadCache',
    'StorageError',
    'LicenseStateError',
    'ServerCommunicationError',
    'ErrorCodes',
    # Signing
    'KeygenSignature',
    'VerifiedResponseRecord',
    'SignedResponse',
    'ResponseSigner',
    'sign_response',
    'parse_signature_header',
    'SIGNED_HEADERS',
    # Verification
    'ResponseVerifier',
    'FreshnessPolicy',
    'verify_digest',
    # Storage
    'ValidationCache',
    'LicenseKeyStore',
    'default_cache_dir',
    # Configuration
    'ClientConfig',
    'ClientConfigBuilder',
    'load_client_config',
    # Client
    'KeygenClient',
    # Licensing
    'License',
    'LicenseResponse',
    'LicensedState',
    'Machine',
    'MachineFile',
    'validate_key_sync',
    'load_cached_license',
]
