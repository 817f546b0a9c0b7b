"""Locking and crash-safe replacement of the pull ledger file.

Parallel builds share one ``image.json``. Writers serialise on an
exclusive ``fcntl.flock()`` taken on a sidecar ``<file>.lock``, and new
content is published by renaming a fully written temp file over the old
one, so a reader never sees a partial document.

``flock()`` is advisory and unreliable on NFS: keep PACK_HOME on local disk.
"""

from __future__ import annotations

import contextlib
import fcntl
import os
import tempfile
import time
from collections.abc import Iterator
from pathlib import Path

LOCK_TIMEOUT_SECONDS = 30
LOCK_RETRY_SECONDS = 0.1


def lock_path_for(path: Path) -> Path:
    """Sidecar lock file guarding *path*."""
    return path.with_name(path.name + ".lock")


def _acquire(fd: int, lock_path: Path, timeout: float) -> None:
    deadline = time.monotonic() + timeout
    while True:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            return
        except BlockingIOError:
            if time.monotonic() >= deadline:
                raise OSError(
                    f"Timed out after {timeout}s waiting for {lock_path}; "
                    "remove it if no other fetch is running"
                ) from None
            time.sleep(LOCK_RETRY_SECONDS)


@contextlib.contextmanager
def exclusive_lock(path: Path, *, timeout: float | None = None) -> Iterator[None]:
    """Hold the exclusive lock on *path* for the duration of the block.

    Args:
        path: The file being protected; the lock lives next to it.
        timeout: Seconds to wait for a lock held elsewhere,
            ``LOCK_TIMEOUT_SECONDS`` by default.

    Raises:
        OSError: If the lock file cannot be opened or the wait times out.
    """
    lock_path = lock_path_for(path)
    fd = os.open(lock_path, os.O_CREAT | os.O_RDWR, 0o644)
    try:
        _acquire(fd, lock_path, LOCK_TIMEOUT_SECONDS if timeout is None else timeout)
        try:
            yield
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
    finally:
        os.close(fd)


def replace_file(path: Path, content: str, *, mode: int = 0o644) -> None:
    """Replace *path* with *content* through a synced temp file.

    The caller holds ``exclusive_lock(path)``. On failure *path* keeps its
    previous content and the temp file is removed.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f"{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, path)
    except OSError:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(tmp_name)
        raise
