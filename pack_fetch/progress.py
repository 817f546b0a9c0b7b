"""Rendering of the daemon's pull progress stream.

The daemon reports a pull as a stream of JSON messages such as::

    {"status": "Downloading", "progressDetail": {...},
     "progress": "[=====>      ] 1.2MB/4MB", "id": "a1b2c3"}

Each message becomes one line on the output; status keywords and the
progress bar are coloured when the output is a terminal.
"""

from __future__ import annotations

import queue
import re
import threading
from collections.abc import Callable, Iterable, Iterator
from typing import Any, TextIO

from pack_fetch.errors import FetchCancelledError, PullError
from pack_fetch.utils import (
    style_complete,
    style_progress_bar,
    style_waiting,
    style_working,
)

CANCEL_POLL_SECONDS = 0.1
"""How often a blocked stream read re-checks the cancel event."""

_END = object()

_COLORIZERS: dict[str, Callable[[str], str]] = {
    "Waiting": style_waiting,
    "Pulling fs layer": style_waiting,
    "Downloading": style_working,
    "Download complete": style_working,
    "Extracting": style_working,
    "Pull complete": style_complete,
    "Already exists": style_complete,
    "=": style_progress_bar,
    ">": style_progress_bar,
}

# longest first so "Download complete" is not split by a shorter keyword
_KEYWORD_RE = re.compile(
    "|".join(re.escape(k) for k in sorted(_COLORIZERS, key=len, reverse=True))
)


def colorize(line: str) -> str:
    """Colour every status keyword and progress-bar glyph in *line*."""
    return _KEYWORD_RE.sub(lambda m: _COLORIZERS[m.group(0)](m.group(0)), line)


def format_message(message: dict[str, Any]) -> str:
    """Render one progress message as a single line (may be empty)."""
    if "stream" in message:
        return str(message["stream"]).rstrip("\n")

    parts = []
    if message.get("id"):
        parts.append(f"{message['id']}:")
    if message.get("status"):
        parts.append(str(message["status"]))
    if message.get("progress"):
        parts.append(str(message["progress"]))
    return " ".join(parts)


def _error_text(message: dict[str, Any]) -> str | None:
    detail = message.get("errorDetail")
    if isinstance(detail, dict) and detail.get("message"):
        return str(detail["message"])
    if message.get("error"):
        return str(message["error"])
    return None


def _isatty(out: TextIO) -> bool:
    isatty = getattr(out, "isatty", None)
    return bool(isatty and isatty())


def _close_stream(stream: Any) -> None:
    close = getattr(stream, "close", None)
    if close is not None:
        close()


class _StreamReader:
    """Reads *stream* on a daemon thread, one message per request.

    A read that blocks on a stalled daemon connection stays on the reader
    thread, so the caller can give up as soon as *cancel* is set. The
    reader closes the stream once it has no read in flight.
    """

    def __init__(self, stream: Iterable[dict[str, Any]], cancel: threading.Event) -> None:
        self._stream = stream
        self._iterator = iter(stream)
        self._cancel = cancel
        self._reading = threading.Event()
        self._requests: queue.Queue[bool] = queue.Queue()
        self._results: queue.Queue[tuple[Any, BaseException | None]] = queue.Queue()
        self._thread = threading.Thread(
            target=self._run, name="pull-stream-reader", daemon=True
        )
        self._thread.start()

    def _run(self) -> None:
        try:
            while self._requests.get():
                try:
                    message = next(self._iterator, _END)
                except Exception as exc:  # re-raised on the caller's thread
                    self._reading.clear()
                    self._results.put((None, exc))
                    return
                self._reading.clear()
                self._results.put((message, None))
                if message is _END:
                    return
        finally:
            _close_stream(self._stream)

    def __iter__(self) -> Iterator[dict[str, Any]]:
        while True:
            self._reading.set()
            self._requests.put(True)
            message, error = self._wait()
            if error is not None:
                raise error
            if message is _END:
                return
            yield message

    def _wait(self) -> tuple[Any, BaseException | None]:
        while True:
            try:
                return self._results.get(timeout=CANCEL_POLL_SECONDS)
            except queue.Empty:
                if self._cancel.is_set():
                    raise FetchCancelledError("image pull cancelled") from None

    def stop(self) -> None:
        """Release the reader thread.

        An idle reader is joined, so the stream is closed on return. A
        reader stuck in a read is left to close the stream when it returns.
        """
        self._requests.put(False)
        if not self._reading.is_set():
            self._thread.join()


def render_pull_stream(
    stream: Iterable[dict[str, Any]],
    out: TextIO,
    *,
    cancel: threading.Event | None = None,
    use_color: bool | None = None,
) -> None:
    """Write every progress message of *stream* to *out*.

    The stream is closed when rendering ends, whether it ran to completion,
    hit an error message, or was cancelled. With *cancel*, the stream is
    read on a helper thread so that a stalled read does not delay
    cancellation; the close then happens once that read returns.

    Raises:
        PullError: If the daemon reports an error in the stream.
        FetchCancelledError: If *cancel* is set while messages are pending.
    """
    if use_color is None:
        use_color = _isatty(out)

    reader = _StreamReader(stream, cancel) if cancel is not None else None
    try:
        for message in reader if reader is not None else stream:
            if cancel is not None and cancel.is_set():
                raise FetchCancelledError("image pull cancelled")

            error = _error_text(message)
            if error is not None:
                raise PullError(error)

            line = format_message(message)
            if not line:
                continue
            out.write((colorize(line) if use_color else line) + "\n")
            out.flush()
    finally:
        if reader is not None:
            reader.stop()
        else:
            _close_stream(stream)
