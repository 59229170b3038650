"""
Configuration management for the Keygen licensing SDK
"""

from .client_config import (
    ClientConfig,
    ClientConfigBuilder,
    load_client_config,
    DEFAULT_API_URL,
    DEFAULT_API_VERSION,
    DEFAULT_TIMEOUT,
    DEFAULT_USER_AGENT,
)

__all__ = [
    'ClientConfig',
    'ClientConfigBuilder',
    'load_client_config',
    'DEFAULT_API_URL',
    'DEFAULT_API_VERSION',
    'DEFAULT_TIMEOUT',
    'DEFAULT_USER_AGENT',
]
