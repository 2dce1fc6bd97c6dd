"""
ResponseMonitor: main orchestrator.

Poll loop: IMAP session → (on failure) drop folder → extract → dedup →
publish → sleep. One cycle finishes before the next starts; all state
changes happen on the event loop thread.
"""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Any, Mapping, Optional

from .config import MonitorConfig
from .drop_folder import DropFolder
from .exceptions import ConfigurationError, SinkError
from .extractor import extract_response
from .imap_transport import ImapTransport
from .models import CandidateMessage, ResponseRecord, TransportResult
from .settings import build_config
from .sink import ResponseSink
from .tracker import ProcessedIdSet
from .util import sender_matches

logger = logging.getLogger(__name__)


class ResponseMonitor:
    """Watches the mailbox for replies and publishes each response once."""

    def __init__(
        self,
        config: MonitorConfig,
        transport: Optional[ImapTransport] = None,
        fallback: Optional[DropFolder] = None,
        sink: Optional[ResponseSink] = None,
    ) -> None:
        self._config = config
        self._transport = transport or ImapTransport(config)
        self._fallback = fallback or DropFolder(config.responses_dir)
        self._sink = sink or ResponseSink(config.response_file)

        self._tracker = ProcessedIdSet()
        self._session_start: Optional[datetime] = None
        self._running = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._stop_requested = False
        self._stop_pending = False
        self._responses: Optional[asyncio.Queue] = None
        self._responses_loop: Optional[asyncio.AbstractEventLoop] = None

    @classmethod
    def from_settings(cls, settings: Mapping[str, Any]) -> Optional["ResponseMonitor"]:
        """Build a monitor from a settings mapping, or return None if they are unusable."""
        try:
            config = build_config(settings)
        except ConfigurationError as e:
            logger.error("Cannot start response monitor: %s", e)
            return None
        return cls(config)

    # ── Properties ───────────────────────────────────────────────

    @property
    def config(self) -> MonitorConfig:
        return self._config

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def session_start(self) -> Optional[datetime]:
        return self._session_start

    @property
    def processed_count(self) -> int:
        return len(self._tracker)

    @property
    def responses(self) -> asyncio.Queue:
        """
        Channel receiving every published record.

        The queue belongs to the event loop the monitor runs on; using it
        from a different loop replaces it, dropping unread records.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        stale = loop is not None and self._responses_loop not in (None, loop)
        if self._responses is None or stale:
            self._responses = asyncio.Queue(maxsize=self._config.channel_size)
        if loop is not None:
            self._responses_loop = loop
        return self._responses

    # ── Lifecycle ────────────────────────────────────────────────

    async def start(self) -> None:
        """
        Run the poll loop until stop() is called or the task is cancelled.

        Calling start() on a running monitor returns immediately.
        """
        if self._running:
            logger.debug("Response monitor already running")
            return

        self._running = True
        self._loop = asyncio.get_running_loop()
        self._stop_event = asyncio.Event()
        self._stop_requested = False
        if self._stop_pending:
            self._stop_pending = False
            self._stop_requested = True
            self._stop_event.set()
            logger.info("Stop was requested before start, exiting after setup")
        self._begin_session()
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="imap")

        cfg = self._config
        logger.info("Starting response monitor for %s", cfg.recipient_email)
        logger.info(
            "Monitoring mail received after %s",
            self._session_start.strftime("%Y-%m-%d %H:%M:%S"),
        )
        logger.info("Checking every %.1f seconds", cfg.poll_interval)
        logger.info("Responses are appended to %s", cfg.response_file.resolve())

        try:
            while not self._stop_event.is_set():
                try:
                    await self._run_cycle(executor)
                except Exception as e:
                    logger.error("Error in poll cycle: %s", e, exc_info=True)

                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=cfg.poll_interval)
                except asyncio.TimeoutError:
                    pass
        except asyncio.CancelledError:
            logger.info("Response monitor cancelled")
            raise
        finally:
            executor.shutdown(wait=False)
            self._running = False
            self._loop = None
            logger.info("Response monitor stopped")

    def stop(self) -> None:
        """
        Ask the loop to stop. Safe from any thread; never blocks.

        A sleep in progress ends at once; a mailbox session in progress
        finishes first. Called before the loop is up, the request is kept
        and the next start() returns without polling.
        """
        loop, event = self._loop, self._stop_event
        if loop is None or event is None:
            self._stop_pending = True
            return
        if self._stop_requested:
            return
        self._stop_requested = True
        logger.info("Stopping response monitor")
        try:
            loop.call_soon_threadsafe(event.set)
        except RuntimeError:
            # loop already closed
            pass

    def _begin_session(self) -> None:
        self._tracker = ProcessedIdSet()
        self._session_start = datetime.now().astimezone()
        try:
            self._sink.reset()
        except SinkError as e:
            logger.error("Could not clear response file: %s", e)

    # ── Poll cycle ───────────────────────────────────────────────

    async def run_cycle(self) -> int:
        """
        Run a single poll cycle outside the loop, beginning a session if needed.

        Returns:
            Number of responses published
        """
        if self._session_start is None:
            self._begin_session()
        with ThreadPoolExecutor(max_workers=1) as executor:
            return await self._run_cycle(executor)

    async def _run_cycle(self, executor: ThreadPoolExecutor) -> int:
        loop = asyncio.get_running_loop()
        logger.debug("Checking for new replies via IMAP")

        try:
            result: TransportResult = await loop.run_in_executor(
                executor, self._transport.poll, self._session_start, self._tracker,
            )
        except Exception as e:
            logger.error("IMAP transport raised: %s", e, exc_info=True)
            result = TransportResult.unavailable(f"{type(e).__name__}: {e}")

        if not result.ok:
            logger.warning(
                "IMAP unavailable (%s), falling back to %s",
                result.error, self._config.responses_dir,
            )
            return self._drain_fallback()

        published = 0
        for message in result.messages:
            if self._handle_candidate(message):
                published += 1
        return published

    def _handle_candidate(self, message: CandidateMessage) -> bool:
        """Process one fetched message; True if a response was published."""
        if self._tracker.seen(message.uid):
            return False

        if not sender_matches(message.sender, self._config.recipient_email):
            logger.debug("Ignoring UID %s from %s", message.uid, message.sender)
            self._tracker.mark_seen(message.uid)
            return False

        if message.received_at is None or message.received_at <= self._session_start:
            logger.info(
                "Skipping UID %s - received before session start (%s)",
                message.uid, message.received_at,
            )
            self._tracker.mark_seen(message.uid)
            return False

        logger.info("Processing reply from %s: %s", message.sender, message.subject)
        text = extract_response(message.body)
        if text is None:
            logger.info("No response found in UID %s", message.uid)
            self._tracker.mark_seen(message.uid)
            return False

        if not self._publish(text, source=f"UID {message.uid}"):
            # left unmarked: the message is still unread and is tried again next cycle
            return False
        self._tracker.mark_seen(message.uid)
        return True

    def _drain_fallback(self) -> int:
        published = 0
        for drop_file in self._fallback.collect():
            logger.info("Processing file: %s", drop_file.path)
            text = extract_response(drop_file.body)
            if text is not None:
                if not self._publish(text, source=drop_file.path.name):
                    continue
                published += 1
            else:
                logger.info("No response found in %s", drop_file.path.name)
            self._fallback.discard(drop_file)
        return published

    def _publish(self, text: str, source: str) -> bool:
        record = ResponseRecord(text=text)
        try:
            self._sink.publish(record)
        except SinkError as e:
            logger.error("Response from %s lost: %s", source, e)
            return False

        logger.info("Response received from %s: %s", source, text)
        try:
            self.responses.put_nowait(record)
        except asyncio.QueueFull:
            logger.warning("Response channel full, dropping %r from channel", text)
        return True
