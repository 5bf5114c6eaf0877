"""
SecureShare - Storage Module

This file handles:
- Key-value stores (SQLite on disk, dict in memory for tests)
- Device secret bootstrap (32 random bytes, created once, then read back)

Database structure:
- keys: flat (key TEXT -> value) table. Values keep their type, so a value
  written as bytes comes back as bytes and one written as text comes back
  as text.
"""

import os
import sqlite3
import threading
import logging
from typing import Dict, Optional, Union

from .crypto import b64d
from .errors import InvalidInputKind, StorageFailure

logger = logging.getLogger(__name__)

StoredValue = Union[bytes, str]


# =============================================================================
# Configuration
# =============================================================================

DEVICE_KEY_NAME = "device_key_v1"
DEVICE_SECRET_SIZE = 32

DEFAULT_STORE_PATH = os.path.join(os.path.expanduser("~"), ".secureshare", "keys.db")

SCHEMA = """
CREATE TABLE IF NOT EXISTS keys (
    key TEXT PRIMARY KEY,
    value BLOB NOT NULL          -- raw bytes or text, stored as given
);
"""

# SQLite PRAGMAs for crash safety
PRAGMAS = """
PRAGMA journal_mode=WAL;
PRAGMA synchronous=FULL;
PRAGMA secure_delete=ON;
"""


# =============================================================================
# Key-Value Stores
# =============================================================================

class MemoryKeyStore:
    """In-memory store with the same contract as SQLiteKeyStore."""

    def __init__(self):
        self._data: Dict[str, StoredValue] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[StoredValue]:
        with self._lock:
            return self._data.get(key)

    def put(self, key: str, value: StoredValue) -> None:
        value = _check_value(value)
        with self._lock:
            self._data[key] = value

    def put_if_absent(self, key: str, value: StoredValue) -> StoredValue:
        """Store value unless key is taken; return whatever is stored now."""
        value = _check_value(value)
        with self._lock:
            return self._data.setdefault(key, value)


class SQLiteKeyStore:
    """
    Persistent key-value store backed by one SQLite file.

    Usage:
        store = SQLiteKeyStore("keys.db")
        store.put("device_key_v1", os.urandom(32))
        store.get("device_key_v1")
        store.close()

    One connection is shared by all threads, serialized by a lock.
    Every sqlite3 error is re-raised as StorageFailure.
    """

    def __init__(self, db_path: str = DEFAULT_STORE_PATH):
        self.db_path = db_path
        self.conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()

    def open(self) -> "SQLiteKeyStore":
        """Connect, apply PRAGMAs and create the table if missing."""
        with self._lock:
            if self.conn is not None:
                return self
            directory = os.path.dirname(self.db_path)
            conn = None
            try:
                if directory:
                    os.makedirs(directory, exist_ok=True)
                conn = sqlite3.connect(self.db_path, check_same_thread=False)
                conn.executescript(PRAGMAS)
                conn.executescript(SCHEMA)
            except (sqlite3.Error, OSError) as e:
                if conn is not None:
                    conn.close()
                raise StorageFailure(f"Cannot open key store at {self.db_path}: {e}") from e
            self.conn = conn
        logger.debug("Opened key store %s", self.db_path)
        return self

    def close(self) -> None:
        with self._lock:
            if self.conn:
                self.conn.close()
                self.conn = None

    def __enter__(self) -> "SQLiteKeyStore":
        return self.open()

    def __exit__(self, *exc) -> None:
        self.close()

    def get(self, key: str) -> Optional[StoredValue]:
        with self._lock:
            self.open()
            try:
                row = self.conn.execute(
                    "SELECT value FROM keys WHERE key = ?", (key,)
                ).fetchone()
            except sqlite3.Error as e:
                raise StorageFailure(f"Read of {key!r} failed: {e}") from e
        return row[0] if row else None

    def put(self, key: str, value: StoredValue) -> None:
        value = _check_value(value)
        with self._lock:
            self.open()
            try:
                self.conn.execute(
                    "INSERT OR REPLACE INTO keys (key, value) VALUES (?, ?)",
                    (key, value)
                )
                self.conn.commit()
            except sqlite3.Error as e:
                raise StorageFailure(f"Write of {key!r} failed: {e}") from e
        logger.debug("Stored %s (%s)", key, type(value).__name__)

    def put_if_absent(self, key: str, value: StoredValue) -> StoredValue:
        """
        Store value unless key is taken; return whatever is stored now.

        INSERT OR IGNORE makes this safe across connections and processes:
        the first writer wins and every caller reads back the winner.
        """
        value = _check_value(value)
        with self._lock:
            self.open()
            try:
                self.conn.execute(
                    "INSERT OR IGNORE INTO keys (key, value) VALUES (?, ?)",
                    (key, value)
                )
                self.conn.commit()
                row = self.conn.execute(
                    "SELECT value FROM keys WHERE key = ?", (key,)
                ).fetchone()
            except sqlite3.Error as e:
                raise StorageFailure(f"Write of {key!r} failed: {e}") from e
        if row is None:
            raise StorageFailure(f"Write of {key!r} failed: value missing after insert")
        return row[0]


def _check_value(value) -> StoredValue:
    if isinstance(value, (bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, (bytes, str)):
        return value
    raise InvalidInputKind(f"Store values must be bytes or text, got {type(value).__name__}")


# =============================================================================
# Device Secret
# =============================================================================

def normalize_stored_secret(value: StoredValue) -> bytes:
    """
    Turn a stored device secret into raw bytes.

    Older installs wrote the secret as base64 text, newer ones as raw bytes.
    Both are accepted here and nowhere else. Anything that isn't exactly
    DEVICE_SECRET_SIZE bytes afterwards is rejected.
    """
    if isinstance(value, (bytes, bytearray, memoryview)):
        secret = bytes(value)
    elif isinstance(value, str):
        secret = b64d(value)
    else:
        raise InvalidInputKind(f"Unsupported stored secret type: {type(value).__name__}")

    if len(secret) != DEVICE_SECRET_SIZE:
        raise InvalidInputKind(
            f"Stored device secret must be {DEVICE_SECRET_SIZE} bytes, got {len(secret)}"
        )
    return secret


class DeviceKeySource:
    """
    Process-local 256-bit device secret.

    Pass one of these to whatever needs the secret; it owns no global state,
    so tests can hand it a MemoryKeyStore.

    The store must provide get(), put() and put_if_absent().
    """

    def __init__(self, store, key: str = DEVICE_KEY_NAME):
        self.store = store
        self.key = key

    def ensure_device_secret(self) -> bytes:
        """
        Return the device secret, generating and storing it on first use.

        Concurrent first calls all return the same secret: the new value is
        written with put_if_absent() and the stored value is what's returned.

        Raises:
            StorageFailure: Store read/write failed (never swallowed)
            InvalidInputKind: Stored value is not a 32-byte secret
        """
        existing = self.store.get(self.key)
        if existing is not None:
            return normalize_stored_secret(existing)

        candidate = os.urandom(DEVICE_SECRET_SIZE)
        stored = normalize_stored_secret(self.store.put_if_absent(self.key, candidate))
        if stored == candidate:
            logger.info("Generated new device secret under %s", self.key)
        return stored

    def restore_device_secret(self, secret: bytes) -> None:
        """
        Write a recovered device secret (e.g. from recovery shares).

        Only allowed when nothing is stored yet or the stored secret is the
        same value. An existing different secret is never overwritten.
        """
        if not isinstance(secret, (bytes, bytearray)) or len(secret) != DEVICE_SECRET_SIZE:
            raise InvalidInputKind(f"Device secret must be {DEVICE_SECRET_SIZE} bytes")

        stored = normalize_stored_secret(self.store.put_if_absent(self.key, bytes(secret)))
        if stored != bytes(secret):
            raise ValueError("A different device secret is already stored; refusing to overwrite")
        logger.info("Restored device secret under %s", self.key)
