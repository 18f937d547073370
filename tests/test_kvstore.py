"""
Tests for the bucketed key-value store.

This test module validates:
- Bucket creation, lookup and deletion (including nested buckets)
- Record put/get/delete and key ordering
- Transaction commit and rollback
- Read-only transactions
"""

from __future__ import annotations

from pathlib import Path

import pytest

from snmpdash.kvstore import (
    BucketDB,
    BucketExistsError,
    BucketNotFoundError,
    IncompatibleValueError,
    KVStoreError,
    TxNotWritableError,
)

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def db(tmp_path: Path) -> BucketDB:
    """An opened, empty BucketDB."""
    db = BucketDB(tmp_path / "nested" / "dir" / "kv.db")
    db.open()
    return db


# =============================================================================
# Tests for BucketDB
# =============================================================================


class TestBucketDB:
    """Tests for opening and transactions."""

    def test_open_creates_parent_directories(self, db: BucketDB) -> None:
        """Test that open() creates the database file."""
        assert db.path.exists()

    def test_open_is_idempotent(self, db: BucketDB) -> None:
        """Test that opening twice is harmless."""
        db.open()
        db.close()
        db.open()
        with db.view() as tx:
            assert tx.buckets() == []

    def test_commit_on_success(self, db: BucketDB) -> None:
        """Test that update() commits when the block succeeds."""
        with db.update() as tx:
            tx.create_bucket(b"a").put(b"k", b"v")

        with db.view() as tx:
            bucket = tx.bucket(b"a")
            assert bucket is not None
            assert bucket.get(b"k") == b"v"

    def test_rollback_on_exception(self, db: BucketDB) -> None:
        """Test that update() rolls back everything when the block raises."""
        with db.update() as tx:
            tx.create_bucket(b"a").put(b"k", b"old")

        with pytest.raises(RuntimeError):
            with db.update() as tx:
                bucket = tx.bucket(b"a")
                assert bucket is not None
                bucket.put(b"k", b"new")
                tx.create_bucket(b"b")
                raise RuntimeError("boom")

        with db.view() as tx:
            assert tx.buckets() == [b"a"]
            bucket = tx.bucket(b"a")
            assert bucket is not None
            assert bucket.get(b"k") == b"old"

    def test_view_is_read_only(self, db: BucketDB) -> None:
        """Test that writes inside view() are rejected."""
        with pytest.raises(TxNotWritableError):
            with db.view() as tx:
                tx.create_bucket(b"a")

    def test_view_sees_committed_state_only(self, db: BucketDB) -> None:
        """Test that a reader does not see an uncommitted writer."""
        with db.update() as tx:
            tx.create_bucket(b"a")

        with db.update() as writer:
            writer.create_bucket(b"b")
            with db.view() as reader:
                assert reader.buckets() == [b"a"]


# =============================================================================
# Tests for Buckets
# =============================================================================


class TestBuckets:
    """Tests for bucket management."""

    def test_create_bucket_twice_raises(self, db: BucketDB) -> None:
        """Test that creating an existing bucket raises."""
        with pytest.raises(BucketExistsError):
            with db.update() as tx:
                tx.create_bucket(b"a")
                tx.create_bucket(b"a")

    def test_create_bucket_if_not_exists_returns_existing(self, db: BucketDB) -> None:
        """Test that create_bucket_if_not_exists() reuses the bucket."""
        with db.update() as tx:
            first = tx.create_bucket_if_not_exists(b"a")
            second = tx.create_bucket_if_not_exists(b"a")
            assert first.id == second.id

    def test_empty_bucket_name_rejected(self, db: BucketDB) -> None:
        """Test that bucket names must not be empty."""
        with pytest.raises(KVStoreError):
            with db.update() as tx:
                tx.create_bucket(b"")

    def test_str_names_are_utf8(self, db: BucketDB) -> None:
        """Test that str names and keys are stored as UTF-8."""
        with db.update() as tx:
            tx.create_bucket("räum").put("ключ", b"v")

        with db.view() as tx:
            bucket = tx.bucket("räum".encode())
            assert bucket is not None
            assert bucket.get("ключ".encode()) == b"v"

    def test_bucket_missing_returns_none(self, db: BucketDB) -> None:
        """Test that looking up an unknown bucket returns None."""
        with db.view() as tx:
            assert tx.bucket(b"missing") is None

    def test_delete_bucket_removes_subtree(self, db: BucketDB) -> None:
        """Test that delete_bucket() removes nested buckets and records."""
        with db.update() as tx:
            top = tx.create_bucket(b"top")
            child = top.create_bucket(b"child")
            child.create_bucket(b"grandchild").put(b"k", b"v")
            child.put(b"k", b"v")

        with db.update() as tx:
            tx.delete_bucket(b"top")

        with db.view() as tx:
            assert tx.buckets() == []
            count = tx.conn.execute("SELECT COUNT(*) FROM entries").fetchone()[0]
            assert count == 0
            count = tx.conn.execute("SELECT COUNT(*) FROM buckets").fetchone()[0]
            assert count == 0

    def test_delete_missing_bucket_raises(self, db: BucketDB) -> None:
        """Test that deleting an unknown bucket raises."""
        with pytest.raises(BucketNotFoundError):
            with db.update() as tx:
                tx.delete_bucket(b"missing")

    def test_bucket_name_used_by_record(self, db: BucketDB) -> None:
        """Test that a key cannot be both a record and a bucket."""
        with db.update() as tx:
            top = tx.create_bucket(b"top")
            top.put(b"k", b"v")
            top.create_bucket(b"sub")

        with pytest.raises(IncompatibleValueError):
            with db.update() as tx:
                top = tx.bucket(b"top")
                assert top is not None
                top.create_bucket(b"k")

        with pytest.raises(IncompatibleValueError):
            with db.update() as tx:
                top = tx.bucket(b"top")
                assert top is not None
                top.put(b"sub", b"v")


# =============================================================================
# Tests for Records
# =============================================================================


class TestRecords:
    """Tests for record access and ordering."""

    def test_put_overwrites(self, db: BucketDB) -> None:
        """Test that put() replaces an existing value."""
        with db.update() as tx:
            bucket = tx.create_bucket(b"a")
            bucket.put(b"k", b"1")
            bucket.put(b"k", b"2")
            assert bucket.get(b"k") == b"2"

    def test_delete_record(self, db: BucketDB) -> None:
        """Test that delete() removes a record and ignores missing keys."""
        with db.update() as tx:
            bucket = tx.create_bucket(b"a")
            bucket.put(b"k", b"v")
            bucket.delete(b"k")
            bucket.delete(b"never-there")
            assert bucket.get(b"k") is None

    def test_items_in_lexicographic_order(self, db: BucketDB) -> None:
        """Test that items() yields byte-lexicographic key order."""
        with db.update() as tx:
            bucket = tx.create_bucket(b"a")
            for key in (b"1000", b"999", b"2", b"10"):
                bucket.put(key, b"v")

        with db.view() as tx:
            bucket = tx.bucket(b"a")
            assert bucket is not None
            keys = [key for key, _ in bucket.items()]

        assert keys == [b"10", b"1000", b"2", b"999"]

    def test_items_marks_nested_buckets(self, db: BucketDB) -> None:
        """Test that nested buckets appear in items() with a None value."""
        with db.update() as tx:
            top = tx.create_bucket(b"top")
            top.put(b"b", b"record")
            top.create_bucket(b"a")
            top.create_bucket(b"c")

        with db.view() as tx:
            top = tx.bucket(b"top")
            assert top is not None
            assert list(top.items()) == [(b"a", None), (b"b", b"record"), (b"c", None)]
            assert top.buckets() == [b"a", b"c"]
