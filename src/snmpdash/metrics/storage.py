"""
Per-source time-series storage on the bucketed key-value store.

Layout (the on-disk contract):

    samples/                      top-level bucket
        <source name>/            one nested bucket per source
            "<timestamp>" -> {"timestamp": 1700000000, "value": 1.5, "source": "<source name>"}

Records are keyed by the decimal string of the timestamp, so a second sample
with the same source and timestamp replaces the first. Reads return records
in the store's native key order, which is byte-lexicographic on that string:
"999" sorts after "1000". Callers that need chronological order sort by
``Sample.timestamp`` themselves.

Every public operation runs in exactly one transaction. Name checks happen
inside that transaction before anything is written, and any failure rolls the
whole transaction back.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from snmpdash.errors import (
    DestinationExistsError,
    InvalidArgumentError,
    ServiceError,
    SourceNotFoundError,
    StoreError,
)
from snmpdash.kvstore import Bucket, BucketDB
from snmpdash.logging import get_logger

logger = get_logger(__name__)

SAMPLES_BUCKET = b"samples"


# =============================================================================
# Data Models
# =============================================================================


class MalformedRecordError(ValueError):
    """A stored record could not be decoded into a Sample."""


@dataclass(frozen=True)
class Sample:
    """A single reading of one source.

    Attributes:
        timestamp: Seconds since the epoch.
        value: The reading.
        source: Name of the source the reading belongs to.
    """

    timestamp: int
    value: float
    source: str

    @property
    def key(self) -> bytes:
        """Storage key of this sample inside its source bucket."""
        return str(self.timestamp).encode("ascii")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "timestamp": self.timestamp,
            "value": self.value,
            "source": self.source,
        }

    def to_json(self) -> bytes:
        """Serialize to the stored record format."""
        return json.dumps(self.to_dict(), separators=(",", ":")).encode("utf-8")

    @classmethod
    def from_dict(cls, data: Any) -> Sample:
        """
        Build a Sample from a decoded record.

        Missing or null fields take their zero value (``0``, ``0.0``, ``""``),
        as do all fields of a bare ``null`` record; unknown fields are ignored.

        Raises:
            MalformedRecordError: If the record is not an object or a field has
                the wrong type.
        """
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise MalformedRecordError("record is not an object")

        timestamp = data.get("timestamp")
        value = data.get("value")
        source = data.get("source")
        if timestamp is None:
            timestamp = 0
        if value is None:
            value = 0.0
        if source is None:
            source = ""

        # bool is an int subclass but never a valid reading
        if not isinstance(timestamp, int) or isinstance(timestamp, bool):
            raise MalformedRecordError("timestamp must be an integer")
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            raise MalformedRecordError("value must be a number")
        if not isinstance(source, str):
            raise MalformedRecordError("source must be a string")

        return cls(timestamp=timestamp, value=float(value), source=source)

    @classmethod
    def from_json(cls, raw: bytes | str) -> Sample:
        """
        Deserialize a stored record.

        Raises:
            MalformedRecordError: If the record is not a valid sample.
        """
        try:
            data = json.loads(raw)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise MalformedRecordError(f"record is not valid JSON: {e}") from e
        return cls.from_dict(data)


def _check_name(name: str) -> None:
    if not name:
        raise InvalidArgumentError(
            "Source name must not be empty", details={"source": name}
        )


def relabel_record(raw: bytes, source: str) -> bytes:
    """
    Rewrite the ``source`` field of a stored record.

    Raises:
        MalformedRecordError: If the record cannot be decoded.
    """
    sample = Sample.from_json(raw)
    return Sample(timestamp=sample.timestamp, value=sample.value, source=source).to_json()


def _copy_tree(src: Bucket, dst: Bucket) -> None:
    """Copy a bucket and everything below it byte-for-byte."""
    for key, raw in src.items():
        if raw is not None:
            dst.put(key, raw)
            continue
        child = src.bucket(key)
        if child is not None:
            _copy_tree(child, dst.create_bucket_if_not_exists(key))


def _copy_records(src: Bucket, dst: Bucket, dst_name: str) -> tuple[int, int]:
    """
    Copy every record of src into dst, relabelling each to dst_name.

    Relabelling is best-effort on purpose: a record that cannot be decoded is
    copied byte-for-byte instead of being dropped. Nested buckets are not
    samples; they are copied whole and unchanged.

    Returns:
        (copied, copied_verbatim) counts.
    """
    copied = 0
    verbatim = 0
    for key, raw in src.items():
        if raw is None:
            logger.warning(
                "Copying nested bucket inside source",
                extra={
                    "source": src.name.decode("utf-8", "replace"),
                    "key": key.decode("utf-8", "replace"),
                },
            )
            child = src.bucket(key)
            if child is not None:
                _copy_tree(child, dst.create_bucket_if_not_exists(key))
            continue
        try:
            record = relabel_record(raw, dst_name)
        except MalformedRecordError:
            record = raw
            verbatim += 1
        dst.put(key, record)
        copied += 1
    return copied, verbatim


# =============================================================================
# SampleStore Class
# =============================================================================


class SampleStore:
    """
    Time-series store with one bucket per source.

    The store holds no state besides the database handle; every operation
    resolves buckets freshly inside its own transaction. It is safe to share
    one instance between the poller and request handlers.

    Example:
        >>> store = SampleStore.open("/var/lib/snmpdash/samples.db")
        >>> store.insert("router1", Sample(timestamp=1700000000, value=3.0, source="router1"))
        >>> store.list_sources()
        ['router1']
    """

    def __init__(self, db: BucketDB) -> None:
        """
        Initialize the SampleStore.

        Args:
            db: The bucket database holding the samples.
        """
        self._db = db

    @classmethod
    def open(cls, path: str | Path) -> SampleStore:
        """
        Open (and create if needed) a store at path.

        Raises:
            StoreError: If the database cannot be created.
        """
        store = cls(BucketDB(path))
        store.initialize()
        return store

    @property
    def db(self) -> BucketDB:
        return self._db

    def initialize(self) -> None:
        """
        Create the top-level samples bucket. Idempotent.

        Raises:
            StoreError: If the database cannot be initialized.
        """
        try:
            with self._db.update() as tx:
                tx.create_bucket_if_not_exists(SAMPLES_BUCKET)
            logger.info(
                "Sample store initialized",
                extra={"db_path": str(self._db.path)},
            )
        except Exception as e:
            logger.error(
                "Failed to initialize sample store",
                extra={"db_path": str(self._db.path), "error": str(e)},
            )
            raise StoreError(
                f"Failed to initialize sample store: {e}",
                details={"db_path": str(self._db.path)},
            ) from e

    # -- writes -------------------------------------------------------------

    def insert(self, source: str, sample: Sample) -> None:
        """
        Store a sample under source, creating the source if it is new.

        A sample already stored at the same timestamp is replaced.

        Raises:
            StoreError: If the write fails.
        """
        _check_name(source)
        try:
            with self._db.update() as tx:
                root = tx.create_bucket_if_not_exists(SAMPLES_BUCKET)
                bucket = root.create_bucket_if_not_exists(source)
                bucket.put(sample.key, sample.to_json())
        except Exception as e:
            logger.error(
                "Failed to insert sample",
                extra={"source": source, "error": str(e)},
            )
            raise StoreError(
                f"Failed to insert sample: {e}",
                details={"source": source},
            ) from e

    def rename(self, src: str, dst: str) -> None:
        """
        Move every sample of src to the new source dst.

        Raises:
            SourceNotFoundError: If src does not exist.
            DestinationExistsError: If dst already exists.
            InvalidArgumentError: If a name is empty.
            StoreError: If the underlying store fails. Nothing is changed.
        """
        _check_name(src)
        _check_name(dst)
        details = {"from": src, "to": dst}
        try:
            with self._db.update() as tx:
                root = tx.create_bucket_if_not_exists(SAMPLES_BUCKET)
                src_bucket = root.bucket(src)
                if src_bucket is None:
                    raise SourceNotFoundError(f"Source '{src}' not found", details=details)
                if root.bucket(dst) is not None:
                    raise DestinationExistsError(
                        f"Source '{dst}' already exists", details=details
                    )

                dst_bucket = root.create_bucket(dst)
                copied, verbatim = _copy_records(src_bucket, dst_bucket, dst)
                root.delete_bucket(src)
        except ServiceError:
            raise
        except Exception as e:
            logger.error(
                "Failed to rename source",
                extra={**details, "error": str(e)},
            )
            raise StoreError(f"Failed to rename source: {e}", details=details) from e

        logger.info(
            "Source renamed",
            extra={**details, "records": copied, "copied_verbatim": verbatim},
        )

    def merge(self, src: str, dst: str) -> None:
        """
        Move every sample of src into dst, creating dst if needed.

        On a timestamp present in both, the record from src wins.

        Raises:
            SourceNotFoundError: If src does not exist.
            InvalidArgumentError: If a name is empty.
            StoreError: If the underlying store fails. Nothing is changed.
        """
        _check_name(src)
        _check_name(dst)
        details = {"from": src, "to": dst}
        try:
            with self._db.update() as tx:
                root = tx.create_bucket_if_not_exists(SAMPLES_BUCKET)
                src_bucket = root.bucket(src)
                if src_bucket is None:
                    raise SourceNotFoundError(f"Source '{src}' not found", details=details)

                if src == dst:
                    # Copying onto itself and then deleting would lose everything
                    copied, verbatim = 0, 0
                else:
                    dst_bucket = root.create_bucket_if_not_exists(dst)
                    copied, verbatim = _copy_records(src_bucket, dst_bucket, dst)
                    root.delete_bucket(src)
        except ServiceError:
            raise
        except Exception as e:
            logger.error(
                "Failed to merge sources",
                extra={**details, "error": str(e)},
            )
            raise StoreError(f"Failed to merge sources: {e}", details=details) from e

        logger.info(
            "Sources merged",
            extra={**details, "records": copied, "copied_verbatim": verbatim},
        )

    def delete(self, name: str) -> None:
        """
        Remove a source and all of its samples.

        Raises:
            SourceNotFoundError: If the source does not exist.
            InvalidArgumentError: If name is empty.
            StoreError: If the underlying store fails.
        """
        _check_name(name)
        details = {"name": name}
        try:
            with self._db.update() as tx:
                root = tx.create_bucket_if_not_exists(SAMPLES_BUCKET)
                if root.bucket(name) is None:
                    raise SourceNotFoundError(f"Source '{name}' not found", details=details)
                root.delete_bucket(name)
        except ServiceError:
            raise
        except Exception as e:
            logger.error(
                "Failed to delete source",
                extra={"source": name, "error": str(e)},
            )
            raise StoreError(f"Failed to delete source: {e}", details=details) from e

        logger.info("Source deleted", extra={"source": name})

    # -- reads --------------------------------------------------------------

    def read_all(self) -> dict[str, list[Sample]]:
        """
        Return every stored sample grouped by source.

        Records that fail to decode are skipped, as are bare values directly
        under the samples bucket. Within a source, samples come in native key
        order (see module docstring).

        Raises:
            StoreError: If the read fails.
        """
        try:
            with self._db.view() as tx:
                root = tx.bucket(SAMPLES_BUCKET)
                if root is None:
                    return {}

                result: dict[str, list[Sample]] = {}
                skipped = 0
                for name, value in root.items():
                    if value is not None:
                        continue
                    bucket = root.bucket(name)
                    if bucket is None:
                        continue

                    samples = []
                    for _key, raw in bucket.items():
                        if raw is None:
                            continue
                        try:
                            samples.append(Sample.from_json(raw))
                        except MalformedRecordError:
                            skipped += 1
                    result[name.decode("utf-8", "replace")] = samples
        except Exception as e:
            logger.error("Failed to read samples", extra={"error": str(e)})
            raise StoreError(f"Failed to read samples: {e}") from e

        if skipped:
            logger.warning("Skipped malformed records", extra={"count": skipped})
        return result

    def list_sources(self) -> list[str]:
        """
        Names of all sources, in native key order.

        Only nested buckets count as sources; bare values are ignored.

        Raises:
            StoreError: If the read fails.
        """
        try:
            with self._db.view() as tx:
                root = tx.bucket(SAMPLES_BUCKET)
                if root is None:
                    return []
                return [
                    name.decode("utf-8", "replace")
                    for name, value in root.items()
                    if value is None
                ]
        except Exception as e:
            logger.error("Failed to list sources", extra={"error": str(e)})
            raise StoreError(f"Failed to list sources: {e}") from e

    def count(self, source: str | None = None) -> int:
        """
        Number of stored records, for one source or for all of them.

        Unknown sources count as zero.

        Raises:
            StoreError: If the read fails.
        """
        try:
            with self._db.view() as tx:
                root = tx.bucket(SAMPLES_BUCKET)
                if root is None:
                    return 0
                if source is not None:
                    names = [source.encode("utf-8")]
                else:
                    names = [name for name, value in root.items() if value is None]

                total = 0
                for name in names:
                    bucket = root.bucket(name)
                    if bucket is None:
                        continue
                    total += sum(1 for _key, raw in bucket.items() if raw is not None)
                return total
        except Exception as e:
            logger.error("Failed to count samples", extra={"error": str(e)})
            raise StoreError(f"Failed to count samples: {e}") from e
