"""
ImapTransport: primary transport over an IMAP session.

One poll is one complete session: connect → login → select (read-only) →
search → fetch → logout. Any failure along the way turns the whole
attempt into an unavailable result; candidates are only returned when
every step succeeded.
"""

import email
import imaplib
import logging
import time
from datetime import datetime, timedelta, timezone
from email import policy
from typing import Iterable, List, Optional, Tuple

from .config import MonitorConfig
from .exceptions import TransportError
from .models import CandidateMessage, TransportResult
from .tracker import ProcessedIdSet
from .util import imap_date, message_body_text, parse_header_date

logger = logging.getLogger(__name__)


class ImapTransport:
    """Searches the configured mailbox for unread replies newer than a cutoff."""

    def __init__(self, config: MonitorConfig) -> None:
        self._config = config

    # ── Public API ───────────────────────────────────────────────

    def poll(self, since: datetime, tracker: ProcessedIdSet) -> TransportResult:
        """
        Run one mailbox session.

        Messages already in ``tracker`` are not fetched again. The tracker
        itself is left untouched; the caller marks messages once handled.

        Args:
            since: Session start time; unread mail from the day before it
                (in UTC) onward is searched
            tracker: Identifiers the caller has already handled

        Returns:
            A TransportResult holding every candidate, or the failure reason
        """
        try:
            messages = self._fetch_candidates(since, tracker)
        except Exception as e:
            logger.warning(
                "IMAP session with %s:%d failed: %s",
                self._config.imap_server, self._config.imap_port, e,
            )
            return TransportResult.unavailable(f"{type(e).__name__}: {e}")
        return TransportResult(messages=messages)

    # ── Session ──────────────────────────────────────────────────

    def _open_connection(self) -> imaplib.IMAP4:
        cfg = self._config
        if cfg.imap_use_ssl:
            return imaplib.IMAP4_SSL(cfg.imap_server, cfg.imap_port, timeout=cfg.imap_timeout)
        return imaplib.IMAP4(cfg.imap_server, cfg.imap_port, timeout=cfg.imap_timeout)

    def _fetch_candidates(self, since: datetime, tracker: ProcessedIdSet) -> List[CandidateMessage]:
        cfg = self._config
        conn = self._open_connection()
        logger.debug("Connected to %s:%d", cfg.imap_server, cfg.imap_port)
        try:
            username, password = cfg.imap_credentials()
            conn.login(username, password)
            logger.debug("Authenticated as %s", username)

            typ, data = conn.select(cfg.imap_mailbox, readonly=True)
            if typ != "OK":
                raise TransportError(f"cannot open mailbox {cfg.imap_mailbox}: {_decode(data)}")

            uids = self._search(conn, since)
            logger.info(
                "Found %d unread message(s) since %s", len(uids), search_date(since),
            )

            messages: List[CandidateMessage] = []
            for uid in uids:
                if tracker.seen(uid):
                    continue
                messages.append(self._fetch(conn, uid))
            return messages
        finally:
            self._logout(conn)

    def _search(self, conn: imaplib.IMAP4, since: datetime) -> List[str]:
        typ, data = conn.uid("SEARCH", None, "UNSEEN", "SINCE", search_date(since))
        if typ != "OK":
            raise TransportError(f"search failed: {_decode(data)}")
        return parse_uid_list(data)

    def _fetch(self, conn: imaplib.IMAP4, uid: str) -> CandidateMessage:
        typ, data = conn.uid("FETCH", uid, "(INTERNALDATE BODY.PEEK[])")
        if typ != "OK":
            raise TransportError(f"fetch of UID {uid} failed: {_decode(data)}")

        meta, raw = parse_fetch_parts(data)
        if raw is None:
            raise TransportError(f"fetch of UID {uid} returned no message body")

        message = email.message_from_bytes(raw, policy=policy.default)
        received_at = parse_header_date(message.get("Date")) or parse_internal_date(meta)
        return CandidateMessage(
            uid=uid,
            sender=str(message.get("From", "") or ""),
            received_at=received_at,
            body=message_body_text(message),
            subject=str(message.get("Subject", "") or ""),
        )

    def _logout(self, conn: imaplib.IMAP4) -> None:
        try:
            conn.logout()
        except Exception as e:
            logger.debug("IMAP logout failed: %s", e)


# ── Response parsing ────────────────────────────────────────────


def search_date(since: datetime) -> str:
    """
    IMAP ``SINCE`` date for a cutoff.

    Servers compare ``SINCE`` against the internal date in their own
    timezone, which may be a calendar day behind ours. Searching from the
    day before the cutoff in UTC covers any server offset; the exact
    cutoff is applied per message by the caller.
    """
    return imap_date(since.astimezone(timezone.utc) - timedelta(days=1))


def _decode(data: object) -> str:
    if isinstance(data, (list, tuple)):
        return " ".join(_decode(item) for item in data if item is not None)
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return str(data)


def parse_uid_list(data: Iterable[object]) -> List[str]:
    """Flatten ``UID SEARCH`` response data into UID strings, in server order."""
    uids: List[str] = []
    for chunk in data or []:
        if not chunk:
            continue
        uids.extend(_decode(chunk).split())
    return uids


def parse_fetch_parts(data: Iterable[object]) -> Tuple[Optional[bytes], Optional[bytes]]:
    """Return the (metadata, literal) pair of the first FETCH item carrying a literal."""
    for item in data or []:
        if isinstance(item, tuple) and len(item) >= 2 and isinstance(item[1], (bytes, bytearray)):
            return bytes(item[0]), bytes(item[1])
    return None, None


def parse_internal_date(meta: Optional[bytes]) -> Optional[datetime]:
    """Read INTERNALDATE from FETCH metadata as an aware local datetime."""
    if not meta:
        return None
    parsed = imaplib.Internaldate2tuple(meta)
    if parsed is None:
        return None
    return datetime.fromtimestamp(time.mktime(parsed)).astimezone()
