"""
Validation cache for verified license responses

One JSON record per license key, holding the signed material of the last
successful live validation. Reading a record re-runs signature and freshness
checks; any failure deletes the record before the error is raised, so a
record on disk means "was valid as of the last check" and nothing more.
"""

import hashlib
import json
import logging
import os
import platform
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar, Union

from ..exceptions import BadCache, ErrorCodes, StorageError
from ..signing.types import VerifiedResponseRecord
from ..verification.verifier import ResponseVerifier

logger = logging.getLogger(__name__)

T = TypeVar('T')

DEFAULT_CACHE_DIR_NAME = "keygen"
CACHE_FILE_EXTENSION = ".json"
CACHE_FILE_PERMISSIONS = 0o600  # Owner read/write only


def default_cache_dir() -> Path:
    """Get default cache directory based on platform"""
    home = Path.home()

    if platform.system() == "Windows":
        local_appdata = os.getenv("LOCALAPPDATA", str(home))
        return Path(local_appdata) / DEFAULT_CACHE_DIR_NAME / "cache"
    elif platform.system() == "Darwin":
        return home / "Library" / "Caches" / DEFAULT_CACHE_DIR_NAME
    else:
        xdg_cache = os.getenv("XDG_CACHE_HOME")
        base = Path(xdg_cache) if xdg_cache else home / ".cache"
        return base / DEFAULT_CACHE_DIR_NAME


def _decode_json(body: str) -> Any:
    return json.loads(body)


class ValidationCache:
    """
    File-backed validation cache keyed by license key.

    Args:
        cache_dir: Directory holding cache records (platform cache dir if None)
    """

    def __init__(self, cache_dir: Optional[Union[str, Path]] = None):
        self.cache_dir = Path(cache_dir) if cache_dir else default_cache_dir()
        self._ensure_cache_dir()

    def _ensure_cache_dir(self) -> None:
        """Ensure cache directory exists with proper permissions"""
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            if platform.system() != "Windows":
                os.chmod(self.cache_dir, 0o700)
        except OSError as e:
            raise StorageError(
                f"Failed to create cache directory: {e}",
                ErrorCodes.STORAGE_DIR_CREATION_FAILED,
                {"cache_dir": str(self.cache_dir)}
            ) from e

    def path_for(self, license_key: str) -> Path:
        """Cache file path for a license key (hashed, so keys never reach the filesystem)"""
        if not license_key or not isinstance(license_key, str):
            raise ValueError("License key must be a non-empty string")
        digest = hashlib.sha256(license_key.encode('utf-8')).hexdigest()
        return self.cache_dir / f"{digest}{CACHE_FILE_EXTENSION}"

    def store(self, license_key: str, record: VerifiedResponseRecord) -> Path:
        """
        Write a live-verified record, replacing any previous record for the key.

        The record is written to a temporary file in the cache directory and
        moved into place, so readers see either the old or the new record.

        Args:
            license_key: License key the record belongs to
            record: Record produced by live verification

        Returns:
            Path: Cache file path

        Raises:
            StorageError: If the write fails
        """
        path = self.path_for(license_key)
        tmp_name = None
        try:
            fd, tmp_name = tempfile.mkstemp(dir=self.cache_dir, prefix=".tmp-", suffix=CACHE_FILE_EXTENSION)
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(record.to_dict(), f)
                f.flush()
                os.fsync(f.fileno())
            if platform.system() != "Windows":
                os.chmod(tmp_name, CACHE_FILE_PERMISSIONS)
            os.replace(tmp_name, path)
        except OSError as e:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except FileNotFoundError:
                    pass
            raise StorageError(
                f"Failed to write validation cache: {e}",
                ErrorCodes.CACHE_WRITE_FAILED,
                {"path": str(path)}
            ) from e

        logger.info(f"Cached validation response in {path.name}")
        return path

    def read(self, license_key: str) -> Optional[VerifiedResponseRecord]:
        """
        Read the raw record for a license key without verifying it.

        Returns:
            VerifiedResponseRecord or None if no record exists

        Raises:
            BadCache: INVALID_RECORD if the file is not a valid record (the file is deleted)
            StorageError: If the file cannot be read
        """
        path = self.path_for(license_key)
        try:
            with open(path, 'rb') as f:
                raw = f.read()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(
                f"Failed to read validation cache: {e}",
                ErrorCodes.CACHE_READ_FAILED,
                {"path": str(path)}
            ) from e

        try:
            data = json.loads(raw.decode('utf-8'))
            if not isinstance(data, dict):
                raise ValueError("Cache record is not a JSON object")
            return VerifiedResponseRecord.from_dict(data)
        except ValueError as e:
            self._invalidate(license_key, "unreadable record")
            raise BadCache(
                "Failed parsing validation cache record",
                ErrorCodes.INVALID_RECORD,
                {"path": str(path)}
            ) from e

    def load(
        self,
        license_key: str,
        verifier: ResponseVerifier,
        decode: Optional[Callable[[Any], T]] = None,
        now: Optional[datetime] = None,
    ) -> Optional[T]:
        """
        Read, re-verify and decode the record for a license key.

        Args:
            license_key: License key the record belongs to
            verifier: Verifier holding the verification key and freshness policy
            decode: Converts the decoded JSON body into the caller's payload type
                (the parsed JSON is returned if None)
            now: Current time (UTC now if None)

        Returns:
            The decoded payload, or None if no record exists

        Raises:
            BadCache: On any verification, freshness or decoding failure (the record is deleted first)
            StorageError: If reading or deleting the record fails
        """
        record = self.read(license_key)
        if record is None:
            return None
        return self.load_record(license_key, record, verifier, decode, now)

    def load_record(
        self,
        license_key: str,
        record: VerifiedResponseRecord,
        verifier: ResponseVerifier,
        decode: Optional[Callable[[Any], T]] = None,
        now: Optional[datetime] = None,
    ) -> T:
        """
        Re-verify and decode a record already in memory, deleting the stored
        record for license_key on failure.

        Raises:
            BadCache: On any verification, freshness or decoding failure
            StorageError: If deleting the record fails
        """
        try:
            verifier.verify_record(record, now)
        except BadCache as e:
            self._invalidate(license_key, e.message)
            raise

        try:
            payload = _decode_json(record.body)
            return decode(payload) if decode is not None else payload
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            self._invalidate(license_key, "undecodable payload")
            raise BadCache(
                "Failed deserializing cached response body",
                ErrorCodes.INVALID_PAYLOAD,
                {"error": str(e)}
            ) from e

    def delete(self, license_key: str) -> bool:
        """
        Delete the record for a license key.

        Idempotent: deleting an absent record returns False without error.

        Returns:
            bool: True if a record was removed

        Raises:
            StorageError: If deletion fails for any reason other than absence
        """
        path = self.path_for(license_key)
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(
                f"Failed to delete validation cache: {e}",
                ErrorCodes.CACHE_DELETE_FAILED,
                {"path": str(path)}
            ) from e

    def clear(self) -> int:
        """
        Delete every record in the cache directory.

        Returns:
            int: Number of records removed
        """
        removed = 0
        for path in self.cache_dir.glob(f"*{CACHE_FILE_EXTENSION}"):
            try:
                path.unlink()
                removed += 1
            except FileNotFoundError:
                continue
            except OSError as e:
                raise StorageError(
                    f"Failed to delete validation cache: {e}",
                    ErrorCodes.CACHE_DELETE_FAILED,
                    {"path": str(path)}
                ) from e
        return removed

    def _invalidate(self, license_key: str, reason: str) -> None:
        if self.delete(license_key):
            logger.warning(f"Removed validation cache record: {reason}")
