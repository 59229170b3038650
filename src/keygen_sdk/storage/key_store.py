"""
Persistent store for the last validated license key

Uses the OS keychain through keyring when it is usable and falls back to a
plain file (owner read/write only) in the storage directory.
"""

import logging
import os
import platform
from pathlib import Path
from typing import Optional, Union

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

from ..exceptions import StorageError

logger = logging.getLogger(__name__)

STORAGE_SERVICE_NAME = "Keygen SDK"
LICENSE_KEY_ENTRY = "license_key"
KEY_FILE_NAME = "license_key"
KEY_FILE_PERMISSIONS = 0o600  # Owner read/write only


class LicenseKeyStore:
    """
    Remembers the license key of the last successful validation.

    Args:
        storage_dir: Directory for the file fallback
        use_keyring: Whether to try the OS keyring first
        service_name: Keyring service name (one per host application)
    """

    def __init__(
        self,
        storage_dir: Union[str, Path],
        use_keyring: bool = True,
        service_name: str = STORAGE_SERVICE_NAME,
    ):
        self.storage_dir = Path(storage_dir)
        self.use_keyring = use_keyring
        self.service_name = service_name

    @property
    def file_path(self) -> Path:
        return self.storage_dir / KEY_FILE_NAME

    def save(self, license_key: str) -> str:
        """
        Remember a license key.

        Returns:
            str: Storage type used ('keyring' or 'file')

        Raises:
            StorageError: If neither keyring nor file storage works
        """
        if not license_key or not isinstance(license_key, str):
            raise StorageError("License key must be a non-empty string", "INVALID_LICENSE_KEY")

        if self.use_keyring:
            try:
                keyring.set_password(self.service_name, LICENSE_KEY_ENTRY, license_key)
                return 'keyring'
            except KeyringError as e:
                logger.debug(f"Keyring unavailable, using file storage: {e}")

        try:
            self.storage_dir.mkdir(parents=True, exist_ok=True)
            self.file_path.write_text(license_key, encoding='utf-8')
            if platform.system() != "Windows":
                os.chmod(self.file_path, KEY_FILE_PERMISSIONS)
        except OSError as e:
            raise StorageError(f"File storage failed: {e}", "FILE_STORAGE_FAILED") from e
        return 'file'

    def load(self) -> Optional[str]:
        """
        Return the remembered license key, or None.

        Raises:
            StorageError: If the key file exists but cannot be read
        """
        if self.use_keyring:
            try:
                stored = keyring.get_password(self.service_name, LICENSE_KEY_ENTRY)
                if stored:
                    return stored
            except KeyringError as e:
                logger.debug(f"Keyring unavailable, reading file storage: {e}")

        try:
            stored = self.file_path.read_text(encoding='utf-8').strip()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"File retrieval failed: {e}", "FILE_RETRIEVAL_FAILED") from e
        return stored or None

    def delete(self) -> bool:
        """
        Forget the remembered license key. Idempotent.

        Returns:
            bool: True if a key was removed from any storage
        """
        deleted = False

        if self.use_keyring:
            try:
                keyring.delete_password(self.service_name, LICENSE_KEY_ENTRY)
                deleted = True
            except PasswordDeleteError:
                pass
            except KeyringError as e:
                logger.debug(f"Keyring unavailable during delete: {e}")

        try:
            self.file_path.unlink()
            deleted = True
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StorageError(f"File deletion failed: {e}", "FILE_DELETION_FAILED") from e

        return deleted
