"""Data models for the response monitor."""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass(frozen=True)
class CandidateMessage:
    """
    One message fetched from the remote mailbox during a poll cycle.

    Attributes:
        uid: Transport-assigned identifier (IMAP UID), opaque to the monitor
        sender: Raw ``From`` header
        received_at: When the message was received (timezone-aware), or None
            if the transport could not determine it
        body: Plain-text body (HTML already stripped)
        subject: Subject line, for logging only
    """
    uid: str
    sender: str
    received_at: Optional[datetime]
    body: str
    subject: str = ""


@dataclass(frozen=True)
class ResponseRecord:
    """A published response: one ``timestamp|text`` line of the sink file."""
    text: str
    timestamp: datetime = field(default_factory=datetime.now)

    def format_line(self) -> str:
        """Render the record without the trailing newline."""
        return f"{self.timestamp.strftime(TIMESTAMP_FORMAT)}|{self.text}"

    @classmethod
    def parse(cls, line: str) -> "ResponseRecord":
        """
        Parse one sink line back into a record.

        Raises:
            ValueError: If the line has no ``|`` separator or a bad timestamp
        """
        line = line.rstrip("\r\n")
        stamp, sep, text = line.partition("|")
        if not sep:
            raise ValueError(f"not a response record: {line!r}")
        return cls(text=text, timestamp=datetime.strptime(stamp, TIMESTAMP_FORMAT))


@dataclass
class TransportResult:
    """
    Outcome of one primary transport attempt.

    Either ``messages`` holds every candidate of the attempt or ``error``
    explains why the mailbox was unavailable. There is no partial success.
    """
    messages: List[CandidateMessage] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def unavailable(cls, error: str) -> "TransportResult":
        return cls(messages=[], error=error)

    def __len__(self) -> int:
        return len(self.messages)


@dataclass(frozen=True)
class DropFile:
    """A response file found in the fallback directory."""
    path: Path
    body: str
