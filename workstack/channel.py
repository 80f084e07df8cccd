"""File-backed FIFO channel shared between processes.

A channel is a single file holding one JSON-encoded string per line. Every
operation opens the file, takes an ``fcntl.flock`` lock on it (shared for
reads, exclusive for mutations) and closes it again, so independent OS
processes on a shared filesystem never observe a half-written state.

The oldest entry is at the top of the file: ``push`` appends, ``pop`` removes
the first line.
"""
from __future__ import annotations

import fcntl
import json
import os
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

from .config import PollPolicy
from .core.errors import ChannelError, ChannelTimeout

_READ_CHUNK = 1 << 16


def _read_all(fd: int) -> bytes:
    os.lseek(fd, 0, os.SEEK_SET)
    chunks = []
    while True:
        b = os.read(fd, _READ_CHUNK)
        if not b:
            break
        chunks.append(b)
    return b"".join(chunks)


def _write_all(fd: int, data: bytes) -> None:
    view = memoryview(data)
    while view:
        n = os.write(fd, view)
        view = view[n:]


def _encode(values: List[str]) -> bytes:
    return "".join(json.dumps(v) + "\n" for v in values).encode("utf-8")


class FileChannel:
    """Named append/remove buffer living in one file."""

    def __init__(self, path: str | os.PathLike[str], poll: Optional[PollPolicy] = None, tag: Optional[str] = None) -> None:
        self.path = Path(path)
        self.tag = tag or self.path.name
        self.poll = poll or PollPolicy()

    def __repr__(self) -> str:
        return f"FileChannel(tag={self.tag!r}, path={str(self.path)!r})"

    @contextmanager
    def _locked(self, exclusive: bool) -> Iterator[Optional[int]]:
        # Readers see a missing file as an empty channel; writers create it.
        flags = os.O_RDWR | os.O_CREAT if exclusive else os.O_RDONLY
        try:
            fd = os.open(self.path, flags, 0o660)
        except FileNotFoundError:
            if exclusive:
                raise ChannelError(str(self.path), "parent directory does not exist") from None
            fd = None
        except OSError as e:
            raise ChannelError(str(self.path), f"open failed: {e}") from e
        if fd is None:
            yield None
            return
        try:
            fcntl.flock(fd, fcntl.LOCK_EX if exclusive else fcntl.LOCK_SH)
            yield fd
        except OSError as e:
            raise ChannelError(str(self.path), f"I/O failed: {e}") from e
        finally:
            # closing the descriptor drops the lock
            os.close(fd)

    def _decode(self, raw: bytes) -> List[str]:
        out: List[str] = []
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ChannelError(str(self.path), f"undecodable bytes at offset {e.start}") from e
        for line in text.splitlines():
            if not line:
                continue
            try:
                out.append(json.loads(line))
            except json.JSONDecodeError as e:
                raise ChannelError(str(self.path), f"corrupt entry {line!r}") from e
        return out

    def push(self, value: str) -> None:
        if not isinstance(value, str):
            raise TypeError(f"channel values must be str, got {type(value).__name__}")
        with self._locked(exclusive=True) as fd:
            os.lseek(fd, 0, os.SEEK_END)
            _write_all(fd, _encode([value]))
            os.fsync(fd)

    def pop(self) -> Tuple[Optional[str], bool]:
        """Remove and return the oldest entry; ``(None, False)`` when empty."""
        with self._locked(exclusive=True) as fd:
            entries = self._decode(_read_all(fd))
            if not entries:
                return None, False
            head, rest = entries[0], entries[1:]
            os.ftruncate(fd, 0)
            os.lseek(fd, 0, os.SEEK_SET)
            _write_all(fd, _encode(rest))
            os.fsync(fd)
            return head, True

    def entries(self) -> List[str]:
        with self._locked(exclusive=False) as fd:
            if fd is None:
                return []
            return self._decode(_read_all(fd))

    def size(self) -> int:
        return len(self.entries())

    def clear(self) -> None:
        with self._locked(exclusive=True) as fd:
            os.ftruncate(fd, 0)
            os.fsync(fd)

    def exists(self) -> bool:
        return self.path.exists()

    def _wait(self, done, what: str) -> None:  # noqa: ANN001
        deadline = None if self.poll.timeout is None else time.monotonic() + self.poll.timeout
        for delay in self.poll.delays():
            if done():
                return
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise ChannelTimeout(str(self.path), f"timed out after {self.poll.timeout}s waiting for {what}")
                delay = min(delay, remaining)
            time.sleep(delay)

    def poll_query(self, value: str, until_removed: bool = False) -> None:
        """Block until ``value`` is present in the channel.

        With ``until_removed`` a vanished file also ends the wait.
        """
        if until_removed:
            self._wait(lambda: not self.exists() or value in self.entries(), f"entry {value!r} or removal")
        else:
            self._wait(lambda: value in self.entries(), f"entry {value!r}")

    def poll_size(self, n: int) -> None:
        """Block until the channel holds at least ``n`` entries."""
        self._wait(lambda: self.size() >= n, f"size >= {n}")
