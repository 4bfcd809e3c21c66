"""
Key-Value Store Collaborators

The chain lives under a single key of an external key-value store. Two
implementations are provided:

- MemoryKeyValueStore: process-local dict guarded by a lock
- SQLiteKeyValueStore: file-backed table, safe across processes

Both offer `compare_and_set`, the atomic primitive the ledger's optimistic
commit relies on.
"""

import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import closing
from pathlib import Path
from typing import Dict, Optional, Union


class KeyValueStore(ABC):
    """Minimal string key-value interface."""
    
    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the value stored under key, or None if absent."""
    
    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Overwrite the value stored under key."""
    
    @abstractmethod
    def compare_and_set(self, key: str, expected: Optional[str], value: str) -> bool:
        """
        Atomically replace the value under key if it still equals expected.
        
        Args:
            key: The key to update
            expected: Value the caller last read (None means "absent")
            value: New value
            
        Returns:
            True if the write happened, False if the current value differed
        """
    
    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove key (administrative reset)."""


# ============================================================================
# In-memory store
# ============================================================================

class MemoryKeyValueStore(KeyValueStore):
    """Thread-safe in-process store, used for tests and single-process apps."""
    
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()
    
    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)
    
    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value
    
    def compare_and_set(self, key: str, expected: Optional[str], value: str) -> bool:
        with self._lock:
            if self._data.get(key) != expected:
                return False
            self._data[key] = value
            return True
    
    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)


# ============================================================================
# SQLite store
# ============================================================================

class SQLiteKeyValueStore(KeyValueStore):
    """
    SQLite-backed store.
    
    compare_and_set runs inside BEGIN IMMEDIATE, which takes the database
    write lock before reading, so concurrent writers in other processes
    serialize on it.
    """
    
    def __init__(self, db_path: Union[str, Path] = "certledger.db", timeout: float = 30.0):
        self.db_path = str(db_path)
        self.timeout = timeout
        self._lock = threading.RLock()
        self._init_database()
    
    def _connect(self) -> sqlite3.Connection:
        # isolation_level=None: transactions are opened explicitly
        return sqlite3.connect(self.db_path, timeout=self.timeout, isolation_level=None)
    
    def _init_database(self) -> None:
        with self._lock:
            with closing(self._connect()) as conn:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS kv_store (
                        key TEXT PRIMARY KEY,
                        value TEXT NOT NULL
                    )
                """)
    
    def get(self, key: str) -> Optional[str]:
        with self._lock:
            with closing(self._connect()) as conn:
                row = conn.execute(
                    "SELECT value FROM kv_store WHERE key = ?", (key,)
                ).fetchone()
                return row[0] if row else None
    
    def set(self, key: str, value: str) -> None:
        with self._lock:
            with closing(self._connect()) as conn:
                conn.execute(
                    "INSERT OR REPLACE INTO kv_store (key, value) VALUES (?, ?)",
                    (key, value)
                )
    
    def compare_and_set(self, key: str, expected: Optional[str], value: str) -> bool:
        with self._lock:
            with closing(self._connect()) as conn:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    row = conn.execute(
                        "SELECT value FROM kv_store WHERE key = ?", (key,)
                    ).fetchone()
                    current = row[0] if row else None
                    if current != expected:
                        conn.execute("ROLLBACK")
                        return False
                    conn.execute(
                        "INSERT OR REPLACE INTO kv_store (key, value) VALUES (?, ?)",
                        (key, value)
                    )
                    conn.execute("COMMIT")
                    return True
                except sqlite3.Error:
                    if conn.in_transaction:
                        conn.execute("ROLLBACK")
                    raise
    
    def delete(self, key: str) -> None:
        with self._lock:
            with closing(self._connect()) as conn:
                conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
