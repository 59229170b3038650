"""
Cryptographic primitives for the Keygen licensing SDK
"""

from .ed25519 import (
    Ed25519KeyPair,
    generate_key_pair,
    key_pair_from_seed,
    format_key,
    parse_key,
    decode_public_key,
    decode_signature,
    sign_message,
    verify_signature,
    ED25519_PRIVATE_KEY_LENGTH,
    ED25519_PUBLIC_KEY_LENGTH,
    ED25519_SIGNATURE_LENGTH,
)

__all__ = [
    'Ed25519KeyPair',
    'generate_key_pair',
    'key_pair_from_seed',
    'format_key',
    'parse_key',
    'decode_public_key',
    'decode_signature',
    'sign_message',
    'verify_signature',
    'ED25519_PRIVATE_KEY_LENGTH',
    'ED25519_PUBLIC_KEY_LENGTH',
    'ED25519_SIGNATURE_LENGTH',
]
