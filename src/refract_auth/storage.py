"""Durable key-value storage backends.

The token store keeps its values in a small string-to-string store, the
same shape as browser ``localStorage``. Backends here provide that store
in memory or as a Fernet-encrypted file shared between processes.
"""

from __future__ import annotations

import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path

from cryptography.fernet import Fernet, InvalidToken

from refract_auth.exceptions import StorageError
from refract_auth.logging_config import get_logger

logger = get_logger(__name__)


class KeyValueStorage(ABC):
    """Abstract string key-value store."""

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Return the value for key, or None if absent."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store value under key, replacing any previous value."""

    @abstractmethod
    def remove(self, key: str) -> None:
        """Remove key if present."""


class InMemoryStorage(KeyValueStorage):
    """In-memory storage.

    Values are lost when the process exits. Suitable for tests and
    long-running processes that do not need persistence.
    """

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        """Return the stored keys."""
        return list(self._data)

    def clear(self) -> None:
        """Remove every stored value."""
        self._data.clear()


class EncryptedFileStorage(KeyValueStorage):
    """Encrypted file-based storage.

    The whole key-value mapping is serialized to JSON, encrypted with
    Fernet and written atomically. The file is re-read on every access so
    several processes observe each other's writes.
    """

    def __init__(self, encryption_key: str, file_path: str | Path) -> None:
        """Initialize encrypted file storage.

        Args:
            encryption_key: Fernet-compatible encryption key
            file_path: Path to the storage file

        Raises:
            StorageError: If encryption key is invalid
        """
        try:
            self._fernet = Fernet(encryption_key.encode())
        except Exception as e:
            raise StorageError(f"Invalid encryption key: {e}") from e

        self._file_path = Path(file_path)

    @property
    def file_path(self) -> Path:
        return self._file_path

    def _read(self) -> dict[str, str]:
        """Load and decrypt the mapping; unreadable content counts as empty."""
        if not self._file_path.exists():
            return {}

        try:
            decrypted = self._fernet.decrypt(self._file_path.read_bytes())
        except InvalidToken:
            logger.error("Failed to decrypt storage file %s - wrong key?", self._file_path)
            return {}

        try:
            data = json.loads(decrypted.decode())
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.error("Failed to parse storage file %s: %s", self._file_path, e)
            return {}

        if not isinstance(data, dict):
            logger.error("Storage file %s does not contain a mapping", self._file_path)
            return {}

        return {str(k): str(v) for k, v in data.items()}

    def _write(self, data: dict[str, str]) -> None:
        """Encrypt and save the mapping atomically."""
        encrypted = self._fernet.encrypt(json.dumps(data).encode())

        dir_path = self._file_path.parent
        dir_path.mkdir(parents=True, exist_ok=True)

        fd, temp_path_str = tempfile.mkstemp(dir=dir_path)
        temp_path = Path(temp_path_str)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(encrypted)
            temp_path.chmod(0o600)
            temp_path.replace(self._file_path)
        except Exception:
            if temp_path.exists():
                temp_path.unlink()
            raise

    def get(self, key: str) -> str | None:
        return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self._write(data)
        logger.debug("Stored %s in %s", key, self._file_path)

    def remove(self, key: str) -> None:
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)
            logger.debug("Removed %s from %s", key, self._file_path)


def load_or_create_key(key_path: str | Path) -> str:
    """Read the Fernet key at key_path, generating it on first use.

    The key file is created with owner-only permissions. When two processes
    race to create it, both end up with the winner's key.

    Args:
        key_path: Location of the key file

    Returns:
        Fernet-compatible encryption key

    Raises:
        StorageError: If the key file cannot be read or created
    """
    key_path = Path(key_path)
    try:
        if not key_path.exists():
            key_path.parent.mkdir(parents=True, exist_ok=True)
            key = Fernet.generate_key()
            try:
                fd = os.open(key_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
            except FileExistsError:
                pass
            else:
                with os.fdopen(fd, "wb") as f:
                    f.write(key)
                logger.info("Generated token encryption key at %s", key_path)
                return key.decode()
        return key_path.read_text().strip()
    except OSError as e:
        raise StorageError(f"Cannot access encryption key file {key_path}: {e}") from e


def create_storage(
    encryption_key: str | None = None,
    file_path: str | Path | None = None,
) -> KeyValueStorage:
    """Create appropriate storage based on configuration.

    Args:
        encryption_key: Optional Fernet encryption key
        file_path: Optional path for persistent storage

    Returns:
        Configured KeyValueStorage instance
    """
    if file_path and encryption_key:
        return EncryptedFileStorage(encryption_key, file_path)
    return InMemoryStorage()
