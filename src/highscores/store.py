"""Durable storage for score records."""

import os
import stat
import tempfile
import threading
from collections.abc import Callable, Iterable, Iterator
from contextlib import AbstractContextManager, contextmanager, nullcontext
from pathlib import Path
from typing import Any, NamedTuple, Protocol

import boto3
from aws_lambda_powertools import Logger
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from filelock import FileLock, Timeout
from pydantic import TypeAdapter, ValidationError

from .config import Settings
from .exceptions import CorruptStateError, PersistenceError, WriteConflictError
from .models import ScoreRecord

logger = Logger(service="highscores", child=True)

_records_adapter = TypeAdapter(list[ScoreRecord])

DEFAULT_FILE_MODE = 0o644
CONFLICT_ERROR_CODES = ("PreconditionFailed", "ConditionalRequestConflict", "412")


class Snapshot(NamedTuple):
    """Stored bytes plus the version they were read at.

    ``version`` is None when nothing has been stored yet.
    """

    data: bytes | None
    version: str | None


class StorageMedium(Protocol):
    """Where the serialized record set lives."""

    def lock(self, timeout: float) -> AbstractContextManager[None]:
        """Exclude other writers sharing this medium, across processes."""
        ...

    def read(self) -> Snapshot:
        """Return the stored bytes and their version."""
        ...

    def write(self, data: bytes, expected: Snapshot | None = None) -> None:
        """Replace the stored bytes in one step.

        When ``expected`` is given, raise WriteConflictError unless the stored
        version still matches it.
        """
        ...


class FileMedium:
    """Local JSON file, replaced by atomic rename.

    Writers in any process serialize on a ``<name>.lock`` file next to it.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self._file_lock = FileLock(self.path.with_name(f"{self.path.name}.lock"))

    @contextmanager
    def lock(self, timeout: float) -> Iterator[None]:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._file_lock.acquire(timeout=timeout)
        except Timeout as e:
            raise PersistenceError("Timed out waiting for the scores file lock") from e
        except OSError as e:
            raise PersistenceError(f"Failed to lock scores file: {e}") from e
        try:
            yield
        finally:
            self._file_lock.release()

    def read(self) -> Snapshot:
        try:
            with self.path.open("rb") as f:
                return Snapshot(f.read(), self._version(os.fstat(f.fileno())))
        except FileNotFoundError:
            return Snapshot(None, None)
        except OSError as e:
            raise PersistenceError(f"Failed to read scores file: {e}") from e

    def write(self, data: bytes, expected: Snapshot | None = None) -> None:
        tmp_path: Path | None = None
        try:
            current = self._current_stat()
            if expected is not None and expected.version != self._version(current):
                raise WriteConflictError("Scores file changed since it was read")
            mode = stat.S_IMODE(current.st_mode) if current else DEFAULT_FILE_MODE

            self.path.parent.mkdir(parents=True, exist_ok=True)
            # Temp file must share the target's directory for os.replace to be atomic
            with tempfile.NamedTemporaryFile(
                dir=self.path.parent,
                prefix=f".{self.path.name}.",
                suffix=".tmp",
                delete=False,
            ) as tmp:
                tmp_path = Path(tmp.name)
                tmp.write(data)
                tmp.flush()
                os.fchmod(tmp.fileno(), mode)
                os.fsync(tmp.fileno())
            os.replace(tmp_path, self.path)
            tmp_path = None
            self._fsync_directory()
        except OSError as e:
            raise PersistenceError(f"Failed to write scores file: {e}") from e
        finally:
            if tmp_path is not None:
                tmp_path.unlink(missing_ok=True)

    def _current_stat(self) -> os.stat_result | None:
        try:
            return self.path.stat()
        except FileNotFoundError:
            return None

    def _fsync_directory(self) -> None:
        dir_fd = os.open(self.path.parent, os.O_RDONLY)
        try:
            os.fsync(dir_fd)
        finally:
            os.close(dir_fd)

    @staticmethod
    def _version(st: os.stat_result | None) -> str | None:
        # Every replace installs a new inode
        if st is None:
            return None
        return f"{st.st_ino}:{st.st_mtime_ns}:{st.st_size}"


class S3Medium:
    """Single JSON object in S3.

    A put replaces the whole object atomically; conditional puts on the ETag
    detect writers in other processes.
    """

    def __init__(
        self,
        bucket: str,
        key: str,
        client: Any | None = None,
        region: str = "us-east-1",
        timeout: float = 5.0,
    ) -> None:
        self.bucket = bucket
        self.key = key
        self.client = client or boto3.client(
            "s3",
            region_name=region,
            config=Config(
                connect_timeout=timeout,
                read_timeout=timeout,
                retries={"max_attempts": 2},
            ),
        )

    def lock(self, timeout: float) -> AbstractContextManager[None]:
        return nullcontext()

    def read(self) -> Snapshot:
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=self.key)
            return Snapshot(response["Body"].read(), response["ETag"])
        except ClientError as e:
            if e.response["Error"]["Code"] in ("NoSuchKey", "404"):
                return Snapshot(None, None)
            raise PersistenceError(f"Failed to read scores: {e}") from e
        except BotoCoreError as e:
            raise PersistenceError(f"Failed to read scores: {e}") from e

    def write(self, data: bytes, expected: Snapshot | None = None) -> None:
        conditions: dict[str, str] = {}
        if expected is not None:
            if expected.version is None:
                conditions["IfNoneMatch"] = "*"
            else:
                conditions["IfMatch"] = expected.version
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=self.key,
                Body=data,
                ContentType="application/json",
                **conditions,
            )
        except ClientError as e:
            if e.response["Error"]["Code"] in CONFLICT_ERROR_CODES:
                raise WriteConflictError("Scores object changed since it was read") from e
            raise PersistenceError(f"Failed to write scores: {e}") from e
        except BotoCoreError as e:
            raise PersistenceError(f"Failed to write scores: {e}") from e


def build_medium(settings: Settings) -> StorageMedium:
    """Pick S3 when a bucket is configured, otherwise the local file."""
    if settings.scores_bucket:
        return S3Medium(
            bucket=settings.scores_bucket,
            key=settings.scores_key,
            region=settings.region,
            timeout=settings.storage_timeout,
        )
    return FileMedium(settings.scores_file)


class ScoreStore:
    """Authoritative record set with a single-writer critical section.

    Mutations go through ``update``, which holds the writer lock (this
    process's threads plus the medium's own cross-process lock) and writes
    back only if the stored version is unchanged, retrying the whole cycle on
    conflict. Reads never take the lock; the medium guarantees they see
    either the old or the new set in full.
    """

    def __init__(
        self,
        medium: StorageMedium,
        lock_timeout: float = 10.0,
        write_attempts: int = 5,
    ) -> None:
        self.medium = medium
        self.lock_timeout = lock_timeout
        self.write_attempts = write_attempts
        self._lock = threading.RLock()

    @classmethod
    def from_settings(cls, settings: Settings) -> "ScoreStore":
        return cls(
            build_medium(settings),
            lock_timeout=settings.lock_timeout,
            write_attempts=settings.write_attempts,
        )

    @contextmanager
    def locked(self) -> Iterator[None]:
        """Hold the writer lock for a full read-modify-write cycle.

        Raises:
            PersistenceError: If the lock is not acquired within lock_timeout
        """
        if not self._lock.acquire(timeout=self.lock_timeout):
            logger.error(
                "Timed out waiting for score store lock",
                extra={"lock_timeout": self.lock_timeout},
            )
            raise PersistenceError("Timed out waiting for the score store lock")
        try:
            with self.medium.lock(self.lock_timeout):
                yield
        finally:
            self._lock.release()

    def load_all(self) -> list[ScoreRecord]:
        """Return every stored record in store order.

        Missing or empty state is the first-run case and yields an empty list.

        Raises:
            CorruptStateError: If stored state exists but is not a valid record set
            PersistenceError: If the medium cannot be read
        """
        return self._parse(self.medium.read().data)

    def replace_all(self, records: Iterable[ScoreRecord]) -> None:
        """Durably replace the stored set with ``records``, unconditionally.

        Raises:
            PersistenceError: If the medium cannot be written
        """
        records = list(records)
        with self.locked():
            self._write(records)

    def update(
        self, mutate: Callable[[list[ScoreRecord]], list[ScoreRecord]]
    ) -> list[ScoreRecord]:
        """Apply ``mutate`` to the current set and store the result.

        ``mutate`` receives a fresh copy of the stored records and may run
        more than once if another writer gets in between the read and the
        write. Exceptions it raises abort the cycle without writing.

        Raises:
            CorruptStateError: If stored state exists but is not a valid record set
            PersistenceError: If the medium fails, or every attempt conflicts
        """
        with self.locked():
            for attempt in range(1, self.write_attempts + 1):
                snapshot = self.medium.read()
                records = mutate(self._parse(snapshot.data))
                try:
                    self._write(records, expected=snapshot)
                except WriteConflictError:
                    logger.warning(
                        "Scores changed during update, retrying",
                        extra={"attempt": attempt},
                    )
                    continue
                return records

        logger.error(
            "Giving up on conflicting score updates",
            extra={"write_attempts": self.write_attempts},
        )
        raise PersistenceError(
            f"Scores kept changing; gave up after {self.write_attempts} attempts"
        )

    def _parse(self, data: bytes | None) -> list[ScoreRecord]:
        if data is None or not data.strip():
            return []

        try:
            records = _records_adapter.validate_json(data)
        except ValidationError as e:
            logger.error(
                "Stored scores could not be parsed",
                extra={"error_count": e.error_count(), "errors": str(e)},
            )
            raise CorruptStateError(
                f"Stored scores could not be parsed ({e.error_count()} errors)"
            ) from e

        seen: set[str] = set()
        for record in records:
            if record.id in seen:
                logger.error("Duplicate score id in storage", extra={"id": record.id})
                raise CorruptStateError(f"Duplicate score id in storage: {record.id}")
            seen.add(record.id)

        return records

    def _write(
        self, records: list[ScoreRecord], expected: Snapshot | None = None
    ) -> None:
        payload = _records_adapter.dump_json(records, by_alias=True, indent=2)
        try:
            self.medium.write(payload, expected=expected)
        except WriteConflictError:
            raise
        except PersistenceError as e:
            logger.error("Failed to persist scores", extra={"error": str(e)})
            raise
        logger.debug("Scores persisted", extra={"record_count": len(records)})
