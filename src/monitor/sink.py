"""Append-only response file shared with the log processor."""

import logging
import os
import threading
from pathlib import Path
from typing import List, Optional

from .exceptions import SinkError
from .models import ResponseRecord

logger = logging.getLogger(__name__)


class ResponseSink:
    """
    Writes one ``timestamp|response`` line per published response.

    Each record is written with a single append-mode write so concurrent
    appenders never interleave or truncate earlier lines.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def reset(self) -> bool:
        """
        Delete the file left over from a previous run.

        Returns:
            True if a file was removed
        """
        with self._lock:
            try:
                self.path.unlink()
            except FileNotFoundError:
                return False
            except OSError as e:
                raise SinkError(f"cannot clear {self.path}: {e}") from e
        logger.info("Cleared existing response file: %s", self.path.resolve())
        return True

    def publish(self, record: ResponseRecord) -> None:
        """
        Append a record.

        Raises:
            SinkError: If the line could not be written
        """
        line = record.format_line() + "\n"
        with self._lock:
            try:
                with open(self.path, "a", encoding="utf-8", newline="\n") as f:
                    f.write(line)
                    f.flush()
                    os.fsync(f.fileno())
            except OSError as e:
                raise SinkError(f"cannot append to {self.path}: {e}") from e
        logger.debug("Appended %r to %s", line.rstrip("\n"), self.path)


class ResponseReader:
    """
    Consumer-side tail of the response file.

    Keeps a byte offset between calls. When the file disappears, is
    replaced or shrinks (the monitor clears it at startup), reading starts
    over from the beginning of the new file.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._offset = 0
        self._inode: Optional[int] = None

    @property
    def offset(self) -> int:
        return self._offset

    def read_new(self) -> List[ResponseRecord]:
        """Return complete records appended since the last call."""
        try:
            stat = self.path.stat()
        except FileNotFoundError:
            self._offset = 0
            self._inode = None
            return []

        if self._inode is not None and stat.st_ino != self._inode:
            self._offset = 0
        if stat.st_size < self._offset:
            self._offset = 0
        self._inode = stat.st_ino

        with open(self.path, "rb") as f:
            f.seek(self._offset)
            chunk = f.read()

        # Only consume up to the last newline; a partial line waits for the writer
        end = chunk.rfind(b"\n")
        if end < 0:
            return []
        self._offset += end + 1

        records: List[ResponseRecord] = []
        for raw in chunk[:end].split(b"\n"):
            line = raw.decode("utf-8", errors="replace")
            if not line.strip():
                continue
            try:
                records.append(ResponseRecord.parse(line))
            except ValueError:
                logger.warning("Skipping malformed response line: %r", line)
        return records
