"""
Command-line interface for the Keygen licensing SDK
Validates license keys, inspects the validation cache and generates test keys
"""

import argparse
import json
import logging
import sys
from typing import Optional

from . import __version__
from .config import load_client_config
from .crypto import format_key, generate_key_pair
from .exceptions import ConfigError, KeygenSDKError, ServerCommunicationError
from .http_client import KeygenClient
from .licensing import load_cached_license, validate_key_sync
from .signing.types import VerifiedResponseRecord
from .storage import LicenseKeyStore, ValidationCache, default_cache_dir
from .verification import FreshnessPolicy, ResponseVerifier
from .verification.policies import DEFAULT_CACHE_LIFETIME_MINUTES


def create_parser() -> argparse.ArgumentParser:
    """Create the main argument parser with subcommands."""
    parser = argparse.ArgumentParser(
        prog='keygen-license',
        description='Keygen licensing command-line interface for license validation and cache inspection'
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'Keygen Python SDK {__version__}'
    )
    parser.add_argument('--config', help='Client configuration JSON file')
    parser.add_argument('--cache-dir', help='Validation cache directory (platform cache directory by default)')
    parser.add_argument('--no-keyring', action='store_true', help='Store the license key in a file only')
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable debug logging')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    validate_parser = subparsers.add_parser('validate', help='Validate a license key with the authority')
    validate_parser.add_argument('key', help='License key')
    validate_parser.add_argument('--fingerprint', help='Machine fingerprint to scope the validation to')
    validate_parser.add_argument(
        '--entitlement',
        action='append',
        default=[],
        help='Required entitlement code (repeatable)'
    )
    validate_parser.add_argument('--no-cache', action='store_true', help='Do not cache a valid response')

    check_parser = subparsers.add_parser('check-cache', help='Verify the cached validation for a license key')
    check_parser.add_argument('key', nargs='?', help='License key (the remembered key if omitted)')

    record_parser = subparsers.add_parser('verify-record', help='Verify a validation cache record file')
    record_parser.add_argument('file', help='Record file (JSON with sig, target, host, date, body)')
    record_parser.add_argument('--verify-key', required=True, help='Hex-encoded Ed25519 verify key')
    record_parser.add_argument(
        '--cache-lifetime',
        type=int,
        default=DEFAULT_CACHE_LIFETIME_MINUTES,
        help=f'Maximum record age in minutes (default: {DEFAULT_CACHE_LIFETIME_MINUTES})'
    )

    reset_parser = subparsers.add_parser('reset', help='Clear the validation cache and remembered license key')
    reset_parser.add_argument('--all', action='store_true', help='Remove every cached record, not only the remembered key')

    keygen_parser = subparsers.add_parser('keygen', help='Generate an Ed25519 key pair for a test authority')
    keygen_parser.add_argument(
        '--format',
        choices=['hex', 'base64'],
        default='hex',
        help='Output format for keys (default: hex)'
    )

    return parser


def _open_stores(args):
    cache_dir = args.cache_dir or default_cache_dir()
    cache = ValidationCache(cache_dir)
    key_store = LicenseKeyStore(cache_dir, use_keyring=not args.no_keyring)
    return cache, key_store


def _load_client(args) -> KeygenClient:
    if not args.config:
        raise ConfigError("This command requires --config")
    return KeygenClient(load_client_config(args.config))


def handle_validate_command(args) -> int:
    """Handle live license validation."""
    client = _load_client(args)
    cache, key_store = _open_stores(args)
    try:
        license = validate_key_sync(
            client,
            cache,
            key_store,
            args.key,
            fingerprint=args.fingerprint,
            entitlements=args.entitlement,
            cache_valid_response=not args.no_cache,
        )
    finally:
        client.close()

    print(json.dumps(license.to_dict(), indent=2))
    return 0 if license.valid else 1


def handle_check_cache_command(args) -> int:
    """Handle validation cache verification."""
    client = _load_client(args)
    cache, key_store = _open_stores(args)

    key = args.key or key_store.load()
    if not key:
        print("Error: No license key given and none remembered", file=sys.stderr)
        return 1

    license = load_cached_license(client, cache, key)
    if license is None:
        print("No cached validation for license key")
        return 1

    print(json.dumps(license.to_dict(), indent=2))
    return 0


def handle_verify_record_command(args) -> int:
    """Handle verification of a standalone record file."""
    try:
        with open(args.file, 'r', encoding='utf-8') as f:
            record = VerifiedResponseRecord.from_dict(json.load(f))
    except OSError as e:
        print(f"Error reading record: {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"Invalid record: {e}", file=sys.stderr)
        return 1

    verifier = ResponseVerifier(args.verify_key, FreshnessPolicy(cache_lifetime_minutes=args.cache_lifetime))
    sig = verifier.verify_record(record)

    print(f"✓ Record signature valid (key: {sig.params.key_id}, date: {sig.date})")
    print(record.body)
    return 0


def handle_reset_command(args) -> int:
    """Handle cache and key store reset."""
    cache, key_store = _open_stores(args)

    if args.all:
        removed = cache.clear()
    else:
        key = key_store.load()
        removed = int(cache.delete(key)) if key else 0

    key_deleted = key_store.delete()
    print(f"Removed {removed} cached record(s){', forgot license key' if key_deleted else ''}")
    return 0


def handle_keygen_command(args) -> int:
    """Handle key generation command."""
    key_pair = generate_key_pair()
    print(f"Private Key: {format_key(key_pair.private_key, args.format)}")
    print(f"Public Key: {format_key(key_pair.public_key, args.format)}")
    return 0


COMMAND_HANDLERS = {
    'validate': handle_validate_command,
    'check-cache': handle_check_cache_command,
    'verify-record': handle_verify_record_command,
    'reset': handle_reset_command,
    'keygen': handle_keygen_command,
}


def main(argv: Optional[list] = None) -> int:
    """
    Main entry point for the CLI

    Args:
        argv: Command line arguments (None to use sys.argv)

    Returns:
        int: Exit code (0 for success, non-zero for failure)
    """
    if argv is None:
        argv = sys.argv[1:]

    parser = create_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )

    handler = COMMAND_HANDLERS.get(args.command)
    if handler is None:
        parser.print_help()
        return 1

    try:
        return handler(args)
    except ServerCommunicationError as e:
        print(f"Server communication error: {e}", file=sys.stderr)
        return 1
    except KeygenSDKError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nOperation cancelled by user", file=sys.stderr)
        return 130


if __name__ == '__main__':
    sys.exit(main())
