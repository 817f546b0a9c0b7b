"""Persistent pull ledger.

Records when each image was last pulled under an interval policy, plus the
pulling and pruning intervals, in a single JSON file (``$PACK_HOME/image.json``).
The file is created on first access and is never deleted.

Every read-modify-write sequence holds an exclusive lock on a sidecar
``image.json.lock`` and every write goes through temp-file + rename, so
parallel builds cannot interleave updates or leave a truncated file.
"""

from __future__ import annotations

import contextlib
import json
from collections.abc import Callable, Iterator
from datetime import datetime, timedelta, timezone
from pathlib import Path

from pydantic import ValidationError

from pack_fetch.atomic_io import exclusive_lock, replace_file
from pack_fetch.constants import LEDGER_INDENT, TIMESTAMP_FORMAT, get_ledger_path
from pack_fetch.duration import parse_interval
from pack_fetch.errors import (
    CorruptRecordError,
    InvalidFormatError,
    LedgerIOError,
    LedgerParseError,
)
from pack_fetch.models import LedgerRecord
from pack_fetch.utils import log_debug, log_warn

MINIMAL_DOCUMENT = (
    '{"interval":{"pulling_interval":"","pruning_interval":"7d","last_prune":""},'
    '"image":{}}'
)


# ============================================================================
# Timestamp Helpers
# ============================================================================


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(moment: datetime) -> str:
    """Render *moment* as an RFC 3339 UTC timestamp (second precision)."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: str) -> datetime:
    """Parse an RFC 3339 timestamp as written to the ledger.

    Raises:
        LedgerParseError: If *value* is not a valid timestamp.
    """
    try:
        moment = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, AttributeError) as exc:
        raise LedgerParseError(f"invalid timestamp {value!r}") from exc
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def _parse_stored_interval(spec: str, field: str) -> timedelta:
    try:
        return parse_interval(spec)
    except InvalidFormatError as exc:
        raise LedgerParseError(f"invalid {field} {spec!r} in ledger") from exc


# ============================================================================
# Ledger
# ============================================================================


class PullLedger:
    """Read and maintain the pull ledger file.

    Args:
        path: Ledger file, ``$PACK_HOME/image.json`` by default.
        clock: Returns the current time; injectable for tests.
    """

    def __init__(
        self,
        path: str | Path | None = None,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.path = Path(path) if path is not None else get_ledger_path()
        self._clock = clock

    def now(self) -> datetime:
        return self._clock()

    # ------------------------------------------------------------------
    # File access
    # ------------------------------------------------------------------

    @contextlib.contextmanager
    def _locked(self) -> Iterator[None]:
        directory = self.path.parent
        if not directory.is_dir():
            log_warn(f"missing directory {directory}, creating it")
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise LedgerIOError(f"failed to create directory {directory}: {exc}") from exc
        with contextlib.ExitStack() as stack:
            try:
                stack.enter_context(exclusive_lock(self.path))
            except OSError as exc:
                raise LedgerIOError(f"failed to lock {self.path}: {exc}") from exc
            yield

    def _read_unlocked(self) -> LedgerRecord:
        if not self.path.exists():
            log_warn(f"missing {self.path.name} under {self.path.parent}, creating it")
            try:
                replace_file(self.path, MINIMAL_DOCUMENT)
            except OSError as exc:
                raise LedgerIOError(f"failed to create {self.path}: {exc}") from exc

        try:
            raw = self.path.read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            raise CorruptRecordError(f"{self.path} is not valid UTF-8") from exc
        except OSError as exc:
            raise LedgerIOError(f"failed to read {self.path}: {exc}") from exc

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise CorruptRecordError(f"failed to parse {self.path}: {exc}") from exc

        try:
            return LedgerRecord.model_validate(data)
        except ValidationError as exc:
            raise CorruptRecordError(f"unexpected structure in {self.path}: {exc}") from exc

    def _write_unlocked(self, record: LedgerRecord) -> None:
        content = json.dumps(record.to_json_dict(), indent=LEDGER_INDENT)
        try:
            replace_file(self.path, content)
        except OSError as exc:
            raise LedgerIOError(f"failed to write {self.path}: {exc}") from exc

    @contextlib.contextmanager
    def _update(self) -> Iterator[LedgerRecord]:
        """Yield the current record and persist it if the block succeeds."""
        with self._locked():
            record = self._read_unlocked()
            yield record
            self._write_unlocked(record)

    def read(self) -> LedgerRecord:
        """Load the ledger, creating a minimal file if none exists.

        Raises:
            LedgerIOError: If the file or its directory is not accessible.
            CorruptRecordError: If the file is not a valid ledger document.
        """
        with self._locked():
            return self._read_unlocked()

    def write(self, record: LedgerRecord) -> None:
        """Replace the ledger file with *record*.

        Raises:
            LedgerIOError: If the file cannot be written.
        """
        with self._locked():
            self._write_unlocked(record)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def check_interval(self, key: str, interval: timedelta | None = None) -> bool:
        """Return True if *key* is due for a pull.

        A key with no recorded pull is always due. Otherwise it is due once
        *interval* has fully elapsed since the recorded pull. The stored
        pulling interval is used when *interval* is None.

        Raises:
            LedgerParseError: If the stored timestamp or interval is malformed.
        """
        record = self.read()

        recorded = record.images.get(key)
        if recorded is None:
            return True

        pulled_at = parse_timestamp(recorded)
        if interval is None:
            interval = _parse_stored_interval(record.pulling_interval, "pulling interval")
        return self.now() - pulled_at >= interval

    def record_pull(self, key: str, timestamp: datetime | None = None) -> None:
        """Record a successful pull of *key* (now, unless *timestamp* is given)."""
        moment = timestamp if timestamp is not None else self.now()
        with self._update() as record:
            record.images[key] = format_timestamp(moment)
        log_debug(f"Recorded pull of {key} at {format_timestamp(moment)}")

    def evict(self, key: str) -> bool:
        """Drop the entry for *key*. Returns True if an entry was removed."""
        with self._locked():
            record = self._read_unlocked()
            if key not in record.images:
                return False
            del record.images[key]
            self._write_unlocked(record)
        log_debug(f"Evicted stale ledger entry for {key}")
        return True

    def set_pulling_interval(self, spec: str) -> None:
        """Persist *spec* as the pulling interval used by ``check_interval``."""
        with self._update() as record:
            record.interval.pulling_interval = spec

    def prune(self) -> list[str]:
        """Drop entries older than the pruning interval.

        Does nothing (the file is not rewritten) while the last prune is
        more recent than the pruning interval.

        Returns:
            Sorted keys that were removed.

        Raises:
            LedgerParseError: If a stored timestamp or interval is malformed.
        """
        now = self.now()
        with self._locked():
            record = self._read_unlocked()
            pruning = _parse_stored_interval(record.pruning_interval, "pruning interval")

            if record.last_prune:
                if now - parse_timestamp(record.last_prune) < pruning:
                    return []

            try:
                threshold = now - pruning
            except OverflowError:
                # pruning interval reaches past datetime.min: nothing is old enough
                threshold = None
            removed = sorted(
                key for key, value in record.images.items()
                if threshold is not None and parse_timestamp(value) < threshold
            )
            for key in removed:
                del record.images[key]

            record.interval.last_prune = format_timestamp(now)
            self._write_unlocked(record)

        if removed:
            log_debug(f"Pruned {len(removed)} ledger entries older than {record.pruning_interval}")
        return removed
