"""
Hierarchical bucketed key-value store on SQLite.

Buckets are named containers that hold either key/value records or further
buckets. A key is used by at most one kind inside a given bucket: it names a
record or a nested bucket, never both. The root of a database holds buckets
only.

All access goes through transactions:
- ``BucketDB.update()`` yields a writable transaction. It starts with
  ``BEGIN IMMEDIATE`` so writers are serialized, commits when the block
  exits normally and rolls back when it raises.
- ``BucketDB.view()`` yields a read-only transaction. With the WAL journal
  a reader sees a consistent snapshot, does not block other readers and never
  observes a half-applied writer.

Every transaction opens its own connection, so a BucketDB instance can be
shared between threads.

SQLite Schema:
    buckets(id, parent_id, name)      -- parent_id 0 is the root
    entries(bucket_id, key, value)    -- records, keyed per bucket

Keys and names are stored as BLOBs, which SQLite compares with memcmp(), so
iteration order is byte-lexicographic.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Generator, Iterator
from contextlib import AbstractContextManager, contextmanager
from pathlib import Path

from snmpdash.logging import get_logger

logger = get_logger(__name__)

ROOT_BUCKET_ID = 0

# Seconds a writer waits for the write lock before SQLite reports "busy"
BUSY_TIMEOUT = 30.0

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS buckets (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    parent_id INTEGER NOT NULL,
    name BLOB NOT NULL,
    UNIQUE (parent_id, name)
);

CREATE TABLE IF NOT EXISTS entries (
    bucket_id INTEGER NOT NULL,
    key BLOB NOT NULL,
    value BLOB NOT NULL,
    PRIMARY KEY (bucket_id, key)
) WITHOUT ROWID;
"""

_SUBTREE_CTE = """
WITH RECURSIVE subtree(id) AS (
    SELECT ?
    UNION ALL
    SELECT buckets.id FROM buckets JOIN subtree ON buckets.parent_id = subtree.id
)
"""


# =============================================================================
# Errors
# =============================================================================


class KVStoreError(Exception):
    """Base class for bucket store errors."""


class BucketExistsError(KVStoreError):
    """A bucket with that name already exists."""


class BucketNotFoundError(KVStoreError):
    """No bucket with that name exists."""


class IncompatibleValueError(KVStoreError):
    """The key is already used by a record where a bucket is wanted, or vice versa."""


class TxNotWritableError(KVStoreError):
    """A write was attempted inside a read-only transaction."""


def _to_bytes(key: bytes | str) -> bytes:
    if isinstance(key, str):
        return key.encode("utf-8")
    return bytes(key)


# =============================================================================
# Bucket
# =============================================================================


class Bucket:
    """
    A container of records and nested buckets inside one transaction.

    Bucket objects are only valid for the lifetime of the transaction that
    produced them.
    """

    def __init__(self, tx: Tx, bucket_id: int, name: bytes) -> None:
        self._tx = tx
        self.id = bucket_id
        self.name = name

    def __repr__(self) -> str:
        return f"Bucket(id={self.id}, name={self.name!r})"

    @property
    def is_root(self) -> bool:
        return self.id == ROOT_BUCKET_ID

    # -- records ------------------------------------------------------------

    def get(self, key: bytes | str) -> bytes | None:
        """Return the record stored under key, or None."""
        row = self._tx.conn.execute(
            "SELECT value FROM entries WHERE bucket_id = ? AND key = ?",
            (self.id, _to_bytes(key)),
        ).fetchone()
        return bytes(row[0]) if row is not None else None

    def put(self, key: bytes | str, value: bytes) -> None:
        """
        Store value under key, replacing any existing record.

        Raises:
            TxNotWritableError: Inside a read-only transaction.
            IncompatibleValueError: If key names a nested bucket, or this is
                the root bucket.
        """
        self._tx.check_writable()
        key_bytes = _to_bytes(key)
        if self.is_root:
            raise IncompatibleValueError("the root bucket holds buckets only")
        if self._child_id(key_bytes) is not None:
            raise IncompatibleValueError(f"key {key_bytes!r} is a bucket")
        self._tx.conn.execute(
            "INSERT OR REPLACE INTO entries (bucket_id, key, value) VALUES (?, ?, ?)",
            (self.id, key_bytes, bytes(value)),
        )

    def delete(self, key: bytes | str) -> None:
        """
        Remove the record under key. Missing keys are ignored.

        Raises:
            TxNotWritableError: Inside a read-only transaction.
            IncompatibleValueError: If key names a nested bucket.
        """
        self._tx.check_writable()
        key_bytes = _to_bytes(key)
        if self._child_id(key_bytes) is not None:
            raise IncompatibleValueError(f"key {key_bytes!r} is a bucket")
        self._tx.conn.execute(
            "DELETE FROM entries WHERE bucket_id = ? AND key = ?",
            (self.id, key_bytes),
        )

    def items(self) -> Iterator[tuple[bytes, bytes | None]]:
        """
        Iterate over the bucket's contents in byte order of the key.

        Yields:
            (key, value) pairs; value is None for nested buckets.
        """
        rows = self._tx.conn.execute(
            """
            SELECT name, NULL FROM buckets WHERE parent_id = ?
            UNION ALL
            SELECT key, value FROM entries WHERE bucket_id = ?
            ORDER BY 1
            """,
            (self.id, self.id),
        ).fetchall()
        # Materialized so callers may write to the store while iterating
        for key, value in rows:
            yield bytes(key), (bytes(value) if value is not None else None)

    # -- nested buckets -----------------------------------------------------

    def _child_id(self, name: bytes) -> int | None:
        row = self._tx.conn.execute(
            "SELECT id FROM buckets WHERE parent_id = ? AND name = ?",
            (self.id, name),
        ).fetchone()
        return row[0] if row is not None else None

    def _has_record(self, key: bytes) -> bool:
        row = self._tx.conn.execute(
            "SELECT 1 FROM entries WHERE bucket_id = ? AND key = ?",
            (self.id, key),
        ).fetchone()
        return row is not None

    def bucket(self, name: bytes | str) -> Bucket | None:
        """Return the nested bucket called name, or None."""
        name_bytes = _to_bytes(name)
        child_id = self._child_id(name_bytes)
        if child_id is None:
            return None
        return Bucket(self._tx, child_id, name_bytes)

    def buckets(self) -> list[bytes]:
        """Names of the nested buckets, in byte order."""
        rows = self._tx.conn.execute(
            "SELECT name FROM buckets WHERE parent_id = ? ORDER BY name",
            (self.id,),
        ).fetchall()
        return [bytes(row[0]) for row in rows]

    def create_bucket(self, name: bytes | str) -> Bucket:
        """
        Create a nested bucket.

        Raises:
            TxNotWritableError: Inside a read-only transaction.
            BucketExistsError: If the bucket already exists.
            IncompatibleValueError: If name is used by a record.
        """
        self._tx.check_writable()
        name_bytes = _to_bytes(name)
        if not name_bytes:
            raise KVStoreError("bucket name must not be empty")
        if self._child_id(name_bytes) is not None:
            raise BucketExistsError(f"bucket {name_bytes!r} already exists")
        if self._has_record(name_bytes):
            raise IncompatibleValueError(f"key {name_bytes!r} is a record")
        cursor = self._tx.conn.execute(
            "INSERT INTO buckets (parent_id, name) VALUES (?, ?)",
            (self.id, name_bytes),
        )
        return Bucket(self._tx, int(cursor.lastrowid or 0), name_bytes)

    def create_bucket_if_not_exists(self, name: bytes | str) -> Bucket:
        """Return the nested bucket called name, creating it if needed."""
        existing = self.bucket(name)
        if existing is not None:
            return existing
        return self.create_bucket(name)

    def delete_bucket(self, name: bytes | str) -> None:
        """
        Delete a nested bucket together with everything below it.

        Raises:
            TxNotWritableError: Inside a read-only transaction.
            BucketNotFoundError: If no such bucket exists.
        """
        self._tx.check_writable()
        name_bytes = _to_bytes(name)
        child_id = self._child_id(name_bytes)
        if child_id is None:
            if self._has_record(name_bytes):
                raise IncompatibleValueError(f"key {name_bytes!r} is a record")
            raise BucketNotFoundError(f"bucket {name_bytes!r} not found")

        conn = self._tx.conn
        conn.execute(
            _SUBTREE_CTE + "DELETE FROM entries WHERE bucket_id IN (SELECT id FROM subtree)",
            (child_id,),
        )
        conn.execute(
            _SUBTREE_CTE + "DELETE FROM buckets WHERE id IN (SELECT id FROM subtree)",
            (child_id,),
        )


# =============================================================================
# Transactions
# =============================================================================


class Tx:
    """
    A single transaction against a BucketDB.

    Top-level bucket operations are delegated to the root bucket.
    """

    def __init__(self, conn: sqlite3.Connection, writable: bool) -> None:
        self.conn = conn
        self.writable = writable
        self.root = Bucket(self, ROOT_BUCKET_ID, b"")

    def check_writable(self) -> None:
        if not self.writable:
            raise TxNotWritableError("transaction is read-only")

    def bucket(self, name: bytes | str) -> Bucket | None:
        return self.root.bucket(name)

    def buckets(self) -> list[bytes]:
        return self.root.buckets()

    def create_bucket(self, name: bytes | str) -> Bucket:
        return self.root.create_bucket(name)

    def create_bucket_if_not_exists(self, name: bytes | str) -> Bucket:
        return self.root.create_bucket_if_not_exists(name)

    def delete_bucket(self, name: bytes | str) -> None:
        self.root.delete_bucket(name)


# =============================================================================
# Database
# =============================================================================


class BucketDB:
    """
    A bucketed key-value database stored in a single SQLite file.

    Example:
        >>> db = BucketDB("/var/lib/snmpdash/samples.db")
        >>> db.open()
        >>> with db.update() as tx:
        ...     tx.create_bucket_if_not_exists(b"samples").put(b"k", b"v")
        >>> with db.view() as tx:
        ...     tx.bucket(b"samples").get(b"k")
        b'v'
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._opened = False

    def _connect(self) -> sqlite3.Connection:
        # isolation_level=None: transactions are managed explicitly below
        conn = sqlite3.connect(
            str(self.path),
            timeout=BUSY_TIMEOUT,
            isolation_level=None,
            check_same_thread=False,
        )
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def open(self) -> None:
        """
        Create the database file and schema if needed. Idempotent.

        Raises:
            sqlite3.Error: If the database cannot be created.
            OSError: If the parent directory cannot be created.
        """
        if self._opened:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        conn = self._connect()
        try:
            conn.executescript(SCHEMA_SQL)
        finally:
            conn.close()
        self._opened = True
        logger.debug("Bucket database opened", extra={"db_path": str(self.path)})

    @contextmanager
    def _transaction(self, begin: str, writable: bool) -> Generator[Tx, None, None]:
        self.open()
        conn = self._connect()
        try:
            conn.execute(begin)
            try:
                yield Tx(conn, writable=writable)
            except BaseException:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise
            if writable:
                conn.execute("COMMIT")
            else:
                conn.execute("ROLLBACK")
        finally:
            conn.close()

    def update(self) -> AbstractContextManager[Tx]:
        """Open an exclusive read-write transaction."""
        return self._transaction("BEGIN IMMEDIATE", writable=True)

    def view(self) -> AbstractContextManager[Tx]:
        """Open a read-only snapshot transaction."""
        return self._transaction("BEGIN", writable=False)

    def close(self) -> None:
        """Forget the open state (connections are per transaction)."""
        self._opened = False
