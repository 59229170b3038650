"""
Local persistence for the Keygen licensing SDK
"""

from .validation_cache import (
    ValidationCache,
    default_cache_dir,
    CACHE_FILE_EXTENSION,
    CACHE_FILE_PERMISSIONS,
)
from .key_store import LicenseKeyStore

__all__ = [
    'ValidationCache',
    'default_cache_dir',
    'CACHE_FILE_EXTENSION',
    'CACHE_FILE_PERMISSIONS',
    'LicenseKeyStore',
]
