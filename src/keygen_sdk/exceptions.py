"""
Exception classes for the Keygen licensing SDK
"""

from typing import Optional, Dict, Any


class KeygenSDKError(Exception):
    """Base exception for all Keygen SDK errors"""

    def __init__(self, message: str, error_code: str = "UNKNOWN_ERROR", details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def __str__(self) -> str:
        return f"{self.message} (code: {self.error_code})"


class ParseError(KeygenSDKError):
    """Exception raised for structurally malformed input (URLs, headers, keys, signatures)"""

    def __init__(self, message: str, error_code: str = "PARSE_ERROR", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code, details)


class ConfigError(ParseError):
    """Exception raised for invalid client configuration"""

    def __init__(self, message: str, error_code: str = "INVALID_CONFIG", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code, details)


class SignatureVerificationError(KeygenSDKError):
    """
    Exception raised when a well-formed signature does not verify.

    Deliberately opaque: the message never says which part of the input differed.
    """

    def __init__(self, message: str = "Invalid signature", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "INVALID_SIGNATURE", details)


class BadResponse(KeygenSDKError):
    """Exception raised when a live response fails an integrity, freshness or authenticity check"""
    pass


class BadCache(KeygenSDKError):
    """Exception raised when a cached validation record fails re-verification or decoding"""
    pass


class StorageError(KeygenSDKError):
    """Exception raised for filesystem or keyring I/O failures"""
    pass


class LicenseStateError(KeygenSDKError):
    """Exception raised when an operation needs a validated license that is not held"""
    pass


class ServerCommunicationError(KeygenSDKError):
    """Exception raised for server communication errors"""

    def __init__(self, message: str, error_code: str = "SERVER_ERROR",
                 http_status: int = 0, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code, details)
        self.http_status = http_status


class ErrorCodes:
    """Standard error codes carried by SDK exceptions"""

    # Parse errors
    INVALID_URL = "INVALID_URL"
    INVALID_SIGNATURE_HEADER = "INVALID_SIGNATURE_HEADER"
    INVALID_SIGNED_HEADERS = "INVALID_SIGNED_HEADERS"
    MISSING_SIGNED_HEADER = "MISSING_SIGNED_HEADER"
    INVALID_PUBLIC_KEY = "INVALID_PUBLIC_KEY"
    INVALID_SIGNATURE_FORMAT = "INVALID_SIGNATURE_FORMAT"
    INVALID_RESPONSE_BODY = "INVALID_RESPONSE_BODY"

    # Live response errors
    MISSING_HEADER = "MISSING_HEADER"
    DIGEST_MISMATCH = "DIGEST_MISMATCH"
    UNSUPPORTED_DIGEST = "UNSUPPORTED_DIGEST"
    INVALID_DATE = "INVALID_DATE"
    STALE_RESPONSE = "STALE_RESPONSE"
    INVALID_SIGNATURE = "INVALID_SIGNATURE"

    # Cache errors
    # License state errors
    NO_LICENSE = "NO_LICENSE"

    CACHE_EXPIRED = "CACHE_EXPIRED"
    INVALID_PAYLOAD = "INVALID_PAYLOAD"
    INVALID_RECORD = "INVALID_RECORD"

    # Storage errors
    CACHE_WRITE_FAILED = "CACHE_WRITE_FAILED"
    CACHE_READ_FAILED = "CACHE_READ_FAILED"
    CACHE_DELETE_FAILED = "CACHE_DELETE_FAILED"
    STORAGE_DIR_CREATION_FAILED = "STORAGE_DIR_CREATION_FAILED"
