"""In-memory record of messages the monitor has finished with."""

from typing import Iterator, Set


class ProcessedIdSet:
    """
    Identifiers of messages already handled in this process run.

    The set only grows. It is not persisted: after a restart the monitor
    relies on the new session start time to keep old mail out, so the two
    must always be reset together.
    """

    def __init__(self):
        self._ids: Set[str] = set()

    def seen(self, message_id: str) -> bool:
        return message_id in self._ids

    def mark_seen(self, message_id: str) -> None:
        self._ids.add(message_id)

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._ids))
