"""
Ed25519 signature verification for the Keygen licensing SDK

This module verifies license authority signatures using the cryptography
package. The verification key is supplied by the caller as hex, signatures
arrive base64 encoded in the response's Signature header.
"""

import base64
import binascii
from dataclasses import dataclass
from typing import Union

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey

from ..exceptions import ErrorCodes, KeygenSDKError, ParseError, SignatureVerificationError

# Constants for Ed25519 key operations
ED25519_PRIVATE_KEY_LENGTH = 32
ED25519_PUBLIC_KEY_LENGTH = 32
ED25519_SIGNATURE_LENGTH = 64


@dataclass
class Ed25519KeyPair:
    """
    Represents an Ed25519 key pair with private and public keys.

    Attributes:
        private_key: The private key as bytes (32 bytes)
        public_key: The public key as bytes (32 bytes)
    """
    private_key: bytes
    public_key: bytes

    def __post_init__(self):
        """Validate key pair after initialization"""
        if len(self.private_key) != ED25519_PRIVATE_KEY_LENGTH:
            raise ParseError(
                f"Private key must be exactly {ED25519_PRIVATE_KEY_LENGTH} bytes",
                "INVALID_PRIVATE_KEY_LENGTH"
            )

        if len(self.public_key) != ED25519_PUBLIC_KEY_LENGTH:
            raise ParseError(
                f"Public key must be exactly {ED25519_PUBLIC_KEY_LENGTH} bytes",
                ErrorCodes.INVALID_PUBLIC_KEY
            )

    @property
    def public_key_hex(self) -> str:
        """Public key as a lowercase hex string, the format verify keys are configured in"""
        return self.public_key.hex()


def generate_key_pair() -> Ed25519KeyPair:
    """
    Generate an Ed25519 key pair.

    Only a license authority (or a test double of one) signs responses; the
    SDK itself never needs a private key.

    Returns:
        Ed25519KeyPair: The generated key pair
    """
    private_key_obj = Ed25519PrivateKey.generate()
    return _key_pair_from_private_key(private_key_obj)


def key_pair_from_seed(seed: bytes) -> Ed25519KeyPair:
    """
    Derive an Ed25519 key pair from a fixed 32-byte seed (deterministic fixtures).

    Raises:
        ParseError: If the seed has the wrong length
    """
    if len(seed) != ED25519_PRIVATE_KEY_LENGTH:
        raise ParseError(
            f"Seed must be exactly {ED25519_PRIVATE_KEY_LENGTH} bytes",
            "INVALID_SEED_LENGTH"
        )
    return _key_pair_from_private_key(Ed25519PrivateKey.from_private_bytes(seed))


def _key_pair_from_private_key(private_key_obj: Ed25519PrivateKey) -> Ed25519KeyPair:
    private_key_bytes = private_key_obj.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption()
    )
    public_key_bytes = private_key_obj.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw
    )
    return Ed25519KeyPair(private_key=private_key_bytes, public_key=public_key_bytes)


def format_key(key: bytes, format_type: str) -> str:
    """
    Convert key bytes to a text format.

    Args:
        key: The key bytes to format
        format_type: Output format ('hex' or 'base64')

    Returns:
        str: Formatted key

    Raises:
        ParseError: If format is unsupported
    """
    if format_type == 'hex':
        return key.hex()
    elif format_type == 'base64':
        return base64.b64encode(key).decode('ascii')
    raise ParseError(f"Unsupported format: {format_type}", "UNSUPPORTED_FORMAT")


def parse_key(key_data: str, format_type: str) -> bytes:
    """
    Parse key bytes from a text format.

    Args:
        key_data: The key data to parse
        format_type: Input format ('hex' or 'base64')

    Returns:
        bytes: Parsed key as bytes

    Raises:
        ParseError: If format is unsupported or parsing fails
    """
    if format_type == 'hex':
        try:
            return bytes.fromhex(key_data)
        except (TypeError, ValueError) as e:
            raise ParseError(f"Invalid hex string: {e}", "INVALID_HEX") from e

    elif format_type == 'base64':
        try:
            return base64.b64decode(key_data, validate=True)
        except (TypeError, ValueError, binascii.Error) as e:
            raise ParseError(f"Invalid base64 string: {e}", "INVALID_BASE64") from e

    raise ParseError(f"Unsupported format: {format_type}", "UNSUPPORTED_FORMAT")


def decode_public_key(public_key_hex: str) -> Ed25519PublicKey:
    """
    Decode a hex-encoded Ed25519 verification key.

    Raises:
        ParseError: If the key is not hex or does not decode to 32 bytes
    """
    try:
        key_bytes = bytes.fromhex(public_key_hex)
    except (TypeError, ValueError) as e:
        raise ParseError(
            "Failed parsing verify key to bytes",
            ErrorCodes.INVALID_PUBLIC_KEY
        ) from e

    if len(key_bytes) != ED25519_PUBLIC_KEY_LENGTH:
        raise ParseError(
            f"Verify key must be exactly {ED25519_PUBLIC_KEY_LENGTH} bytes, got {len(key_bytes)}",
            ErrorCodes.INVALID_PUBLIC_KEY
        )

    try:
        return Ed25519PublicKey.from_public_bytes(key_bytes)
    except ValueError as e:
        raise ParseError("Failed parsing verifying key", ErrorCodes.INVALID_PUBLIC_KEY) from e


def decode_signature(signature_b64: str) -> bytes:
    """
    Decode a base64 Ed25519 signature.

    Raises:
        ParseError: If the value is not base64 or does not decode to 64 bytes
    """
    try:
        signature = base64.b64decode(signature_b64, validate=True)
    except (TypeError, ValueError, binascii.Error) as e:
        raise ParseError("Failed decoding signature", ErrorCodes.INVALID_SIGNATURE_FORMAT) from e

    if len(signature) != ED25519_SIGNATURE_LENGTH:
        raise ParseError(
            f"Signature must be exactly {ED25519_SIGNATURE_LENGTH} bytes, got {len(signature)}",
            ErrorCodes.INVALID_SIGNATURE_FORMAT
        )
    return signature


def sign_message(private_key: bytes, message: Union[str, bytes]) -> str:
    """
    Sign a message and return the base64 signature.

    Args:
        private_key: Ed25519 private key bytes (32 bytes)
        message: Message to sign (string or bytes)

    Returns:
        str: Base64-encoded Ed25519 signature (64 bytes decoded)

    Raises:
        ParseError: If the private key is invalid
        KeygenSDKError: If signing fails
    """
    if len(private_key) != ED25519_PRIVATE_KEY_LENGTH:
        raise ParseError(
            f"Private key must be exactly {ED25519_PRIVATE_KEY_LENGTH} bytes",
            "INVALID_PRIVATE_KEY_LENGTH"
        )

    message_bytes = message.encode('utf-8') if isinstance(message, str) else message

    try:
        private_key_obj = Ed25519PrivateKey.from_private_bytes(private_key)
        signature = private_key_obj.sign(message_bytes)
    except ValueError as e:
        raise KeygenSDKError(f"Message signing failed: {e}", "SIGNING_FAILED") from e

    return base64.b64encode(signature).decode('ascii')


def verify_signature(message: Union[str, bytes], signature_b64: str, public_key_hex: str) -> None:
    """
    Verify an Ed25519 signature over a message.

    Pure function: no I/O, no clock. Returns on success.

    Args:
        message: Signed message (canonical signing string)
        signature_b64: Base64-encoded signature (64 bytes decoded)
        public_key_hex: Hex-encoded verification key (32 bytes decoded)

    Raises:
        ParseError: If the key or signature is malformed (checked before any crypto runs)
        SignatureVerificationError: If the signature does not verify
    """
    public_key_obj = decode_public_key(public_key_hex)
    signature = decode_signature(signature_b64)

    message_bytes = message.encode('utf-8') if isinstance(message, str) else message

    try:
        public_key_obj.verify(signature, message_bytes)
    except InvalidSignature:
        raise SignatureVerificationError() from None
