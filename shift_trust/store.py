"""
Record storage for Shift Trust.

Records are located by deterministic addresses (see hashing.record_address)
and stored as canonical JSON. A store offers single-record reads and one
atomic multi-record commit; uniqueness of inserted addresses is enforced by
the store itself, independent of any check the protocol makes first.

Backends:
- InMemoryRecordStore: development and tests
- SQLiteRecordStore: durable single-node deployments
"""

import json
import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple, Type, TypeVar

from .canonicalization import canonicalize_str
from .errors import AlreadyExists, RecordNotFound, WriteConflict

# Record kinds
REGISTRY = "registry"
MANUFACTURER = "manufacturer"
ATTESTATION = "attestation"
ENCUMBRANCE_AUTHORITY = "encumbrance_authority"
KEY_POOL = "key_pool"
ENCUMBRANCE = "encumbrance"
REQUEST = "request"

# (kind, address, body)
Write = Tuple[str, str, Dict[str, Any]]
# (kind, address, new body, body the writer read)
Update = Tuple[str, str, Dict[str, Any], Dict[str, Any]]

T = TypeVar("T")


class RecordStore(ABC):
    """Abstract keyed record store."""

    @abstractmethod
    def get(self, kind: str, address: str) -> Optional[Dict[str, Any]]:
        """Return a copy of the record body, or None."""
        pass

    @abstractmethod
    def commit(self, inserts: List[Write], updates: List[Update]) -> None:
        """
        Apply all writes atomically.

        An update only applies if the stored body still equals the body the
        writer read.

        Raises:
            AlreadyExists: an insert targets an address that is taken
            RecordNotFound: an update targets a missing address
            WriteConflict: an update's record changed since it was read
        """
        pass

    @abstractmethod
    def list_records(self, kind: str) -> List[Dict[str, Any]]:
        pass

    def count(self, kind: str) -> int:
        return len(self.list_records(kind))

    def close(self) -> None:
        pass


class InMemoryRecordStore(RecordStore):
    """
    In-memory record store for development/testing.

    WARNING: Not persistent across restarts.
    """

    def __init__(self):
        self._records: Dict[str, Tuple[str, str]] = {}
        self._lock = threading.Lock()

    def get(self, kind: str, address: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            entry = self._records.get(address)
        if entry is None or entry[0] != kind:
            return None
        return json.loads(entry[1])

    def commit(self, inserts: List[Write], updates: List[Update]) -> None:
        with self._lock:
            for kind, address, _ in inserts:
                if address in self._records:
                    raise AlreadyExists(f"{kind} record already exists", address=address)
            for kind, address, _, expected in updates:
                entry = self._records.get(address)
                if entry is None or entry[0] != kind:
                    raise RecordNotFound(f"{kind} record not found", address=address)
                if entry[1] != canonicalize_str(expected):
                    raise WriteConflict(f"{kind} record changed since read", address=address)
            for kind, address, body in inserts:
                self._records[address] = (kind, canonicalize_str(body))
            for kind, address, body, _ in updates:
                self._records[address] = (kind, canonicalize_str(body))

    def list_records(self, kind: str) -> List[Dict[str, Any]]:
        with self._lock:
            bodies = [body for k, body in self._records.values() if k == kind]
        return [json.loads(body) for body in bodies]


class SQLiteRecordStore(RecordStore):
    """
    SQLite-backed record store.

    Uses thread-local connections, WAL journaling and BEGIN IMMEDIATE
    transactions. The PRIMARY KEY on address rejects a second insert of the
    same record even if a caller skipped every protocol-level check.

    Several processes may share one database file. Updates are
    compare-and-set on the body each writer read, so a writer holding a
    stale copy gets WriteConflict instead of overwriting a newer record.
    """

    def __init__(self, db_path: str):
        if db_path == ":memory:":
            raise ValueError("SQLiteRecordStore needs a file path; use InMemoryRecordStore instead")
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._local = threading.local()
        self._connections: List[sqlite3.Connection] = []
        self._connections_lock = threading.Lock()
        self._init_schema()

    def _connection(self) -> sqlite3.Connection:
        conn = getattr(self._local, "conn", None)
        if conn is None:
            conn = sqlite3.connect(
                str(self._db_path),
                timeout=30.0,
                isolation_level=None,
                check_same_thread=False,
            )
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA synchronous=NORMAL;")
            conn.row_factory = sqlite3.Row
            self._local.conn = conn
            with self._connections_lock:
                self._connections.append(conn)
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Commits on success, rolls back on failure."""
        conn = self._connection()
        conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
            conn.execute("COMMIT")
        except Exception:
            conn.execute("ROLLBACK")
            raise

    def _init_schema(self) -> None:
        with self._transaction() as conn:
            conn.execute("""
            CREATE TABLE IF NOT EXISTS records (
                address TEXT PRIMARY KEY,
                kind TEXT NOT NULL,
                body TEXT NOT NULL,
                updated_at INTEGER DEFAULT (strftime('%s', 'now'))
            );""")
            conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_records_kind
            ON records(kind);""")

    def get(self, kind: str, address: str) -> Optional[Dict[str, Any]]:
        cur = self._connection().execute(
            "SELECT body FROM records WHERE address=? AND kind=?", (address, kind)
        )
        row = cur.fetchone()
        return json.loads(row["body"]) if row else None

    def commit(self, inserts: List[Write], updates: List[Update]) -> None:
        try:
            with self._transaction() as conn:
                for kind, address, body in inserts:
                    conn.execute(
                        "INSERT INTO records(address, kind, body) VALUES(?,?,?)",
                        (address, kind, canonicalize_str(body))
                    )
                for kind, address, body, expected in updates:
                    cur = conn.execute(
                        "UPDATE records SET body=?, updated_at=strftime('%s','now') "
                        "WHERE address=? AND kind=? AND body=?",
                        (canonicalize_str(body), address, kind, canonicalize_str(expected))
                    )
                    if cur.rowcount == 1:
                        continue
                    row = conn.execute(
                        "SELECT 1 FROM records WHERE address=? AND kind=?", (address, kind)
                    ).fetchone()
                    if row is None:
                        raise RecordNotFound(f"{kind} record not found", address=address)
                    raise WriteConflict(f"{kind} record changed since read", address=address)
        except sqlite3.IntegrityError as e:
            raise AlreadyExists("record address already taken") from e

    def list_records(self, kind: str) -> List[Dict[str, Any]]:
        cur = self._connection().execute(
            "SELECT body FROM records WHERE kind=? ORDER BY rowid ASC", (kind,)
        )
        return [json.loads(row["body"]) for row in cur.fetchall()]

    def count(self, kind: str) -> int:
        cur = self._connection().execute(
            "SELECT COUNT(*) AS cnt FROM records WHERE kind=?", (kind,)
        )
        return cur.fetchone()["cnt"]

    def close(self) -> None:
        with self._connections_lock:
            for conn in self._connections:
                conn.close()
            self._connections.clear()
        self._local = threading.local()


class RecordLocks:
    """
    Per-address locks.

    Locks are always taken in sorted address order, so two transactions that
    name overlapping records cannot deadlock.
    """

    def __init__(self):
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, address: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(address)
            if lock is None:
                lock = threading.Lock()
                self._locks[address] = lock
            return lock

    @contextmanager
    def hold(self, addresses: Iterable[str]) -> Iterator[None]:
        held = []
        try:
            for address in sorted(set(addresses)):
                lock = self._lock_for(address)
                lock.acquire()
                held.append(lock)
            yield
        finally:
            for lock in reversed(held):
                lock.release()


class Transaction:
    """
    Staged reads and writes against a RecordStore.

    Nothing reaches the store until commit(); an exception before that point
    discards every staged write. The first body read from the store at each
    address is kept, and commit() only updates a record that still holds it.
    """

    def __init__(self, store: RecordStore):
        self._store = store
        self._staged: Dict[str, Write] = {}
        self._inserts: List[str] = []
        self._updates: List[str] = []
        self._read: Dict[str, Optional[str]] = {}

    def _read_store(self, kind: str, address: str) -> Optional[Dict[str, Any]]:
        body = self._store.get(kind, address)
        if address not in self._read:
            self._read[address] = canonicalize_str(body) if body is not None else None
        return body

    def get(self, kind: str, address: str) -> Optional[Dict[str, Any]]:
        if address in self._staged:
            staged_kind, _, body = self._staged[address]
            return json.loads(canonicalize_str(body)) if staged_kind == kind else None
        return self._read_store(kind, address)

    def load(self, kind: str, address: str, model: Type[T]) -> Optional[T]:
        body = self.get(kind, address)
        return model.from_dict(body) if body is not None else None

    def insert(self, kind: str, address: str, record: Any) -> None:
        if address in self._staged or self._read_store(kind, address) is not None:
            raise AlreadyExists(f"{kind} record already exists", address=address)
        self._staged[address] = (kind, address, record.to_dict())
        self._inserts.append(address)

    def update(self, kind: str, address: str, record: Any) -> None:
        if address in self._inserts:
            self._staged[address] = (kind, address, record.to_dict())
            return
        if address not in self._staged:
            self._read_store(kind, address)
        if self._read.get(address) is None:
            raise RecordNotFound(f"{kind} record not found", address=address)
        self._staged[address] = (kind, address, record.to_dict())
        if address not in self._updates:
            self._updates.append(address)

    def commit(self) -> None:
        inserts = [self._staged[a] for a in self._inserts]
        updates = [self._staged[a] + (json.loads(self._read[a]),) for a in self._updates]
        if inserts or updates:
            self._store.commit(inserts, updates)
        self._staged.clear()
        self._inserts.clear()
        self._updates.clear()
        self._read.clear()


def get_record_store(store_type: str = "memory", db_path: Optional[str] = None) -> RecordStore:
    """
    Factory function to create the configured record store.

    Args:
        store_type: "memory" or "sqlite"
        db_path: SQLite database path (for sqlite store)
    """
    if store_type == "sqlite":
        if not db_path:
            raise ValueError("db_path required for sqlite store")
        return SQLiteRecordStore(db_path)
    if store_type == "memory":
        return InMemoryRecordStore()
    raise ValueError(f"Unknown store type: {store_type}")
