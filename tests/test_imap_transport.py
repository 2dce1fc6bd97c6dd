"""Tests for the IMAP transport."""

import imaplib
import pytest
from datetime import datetime, timedelta, timezone
from email.message import EmailMessage

from src.monitor.config import MonitorConfig
from src.monitor.imap_transport import (
    ImapTransport,
    parse_fetch_parts,
    parse_internal_date,
    parse_uid_list,
    search_date,
)
from src.monitor.tracker import ProcessedIdSet


SINCE = datetime(2025, 3, 7, 9, 0, tzinfo=timezone.utc)


def make_raw_message(sender="ops@x.com", body="Response: go", date="Fri, 07 Mar 2025 10:00:00 +0000"):
    msg = EmailMessage()
    msg["From"] = sender
    msg["To"] = "bot@x.com"
    msg["Subject"] = "Re: alert"
    if date:
        msg["Date"] = date
    msg.set_content(body)
    return msg.as_bytes()


class FakeImap:
    """In-memory stand-in for an imaplib connection."""

    def __init__(self, messages=None, fail_on=None, select_status="OK"):
        self.messages = messages or {}
        self.fail_on = fail_on
        self.select_status = select_status
        self.calls = []
        self.logged_out = False
        self.readonly = None

    def _maybe_fail(self, step):
        self.calls.append(step)
        if self.fail_on == step:
            raise imaplib.IMAP4.error(f"{step} failed")

    def login(self, username, password):
        self._maybe_fail("login")
        self.credentials = (username, password)
        return "OK", [b"Logged in"]

    def select(self, mailbox, readonly=False):
        self._maybe_fail("select")
        self.readonly = readonly
        self.mailbox = mailbox
        return self.select_status, [str(len(self.messages)).encode()]

    def uid(self, command, *args):
        if command == "SEARCH":
            self._maybe_fail("search")
            self.search_args = args
            return "OK", [" ".join(self.messages).encode()]
        if command == "FETCH":
            self._maybe_fail("fetch")
            uid = args[0]
            self.calls.append(f"fetch:{uid}")
            meta = f'{uid} (UID {uid} INTERNALDATE "07-Mar-2025 10:00:00 +0000" BODY[] {{100}}'.encode()
            return "OK", [(meta, self.messages[uid]), b")"]
        raise AssertionError(f"unexpected command {command}")

    def logout(self):
        self.logged_out = True
        return "BYE", [b"Logging out"]


class FakeTransport(ImapTransport):
    """ImapTransport wired to a FakeImap connection."""

    def __init__(self, config, conn=None, connect_error=None):
        super().__init__(config)
        self.conn = conn
        self.connect_error = connect_error

    def _open_connection(self):
        if self.connect_error is not None:
            raise self.connect_error
        return self.conn


@pytest.fixture
def config():
    return MonitorConfig(
        recipient_email="ops@x.com",
        username="bot@x.com",
        password="secret",
    )


class TestImapTransportPoll:
    """Tests for ImapTransport.poll."""

    def test_returns_candidates_in_search_order(self, config):
        conn = FakeImap(messages={
            "5": make_raw_message(body="Response: first"),
            "3": make_raw_message(body="Response: second"),
        })
        result = FakeTransport(config, conn).poll(SINCE, ProcessedIdSet())

        assert result.ok
        assert [m.uid for m in result.messages] == ["5", "3"]
        assert result.messages[0].body == "Response: first"
        assert result.messages[0].sender == "ops@x.com"
        assert result.messages[0].subject == "Re: alert"
        assert result.messages[0].received_at == datetime(2025, 3, 7, 10, 0, tzinfo=timezone.utc)

    def test_session_is_read_only_and_logged_out(self, config):
        conn = FakeImap(messages={"1": make_raw_message()})
        FakeTransport(config, conn).poll(SINCE, ProcessedIdSet())

        assert conn.readonly is True
        assert conn.mailbox == "INBOX"
        assert conn.credentials == ("bot@x.com", "secret")
        assert conn.logged_out is True

    def test_search_criteria(self, config):
        conn = FakeImap()
        FakeTransport(config, conn).poll(SINCE, ProcessedIdSet())
        assert conn.search_args == (None, "UNSEEN", "SINCE", "06-Mar-2025")

    def test_already_processed_not_fetched(self, config):
        conn = FakeImap(messages={
            "1": make_raw_message(),
            "2": make_raw_message(),
        })
        tracker = ProcessedIdSet()
        tracker.mark_seen("1")

        result = FakeTransport(config, conn).poll(SINCE, tracker)

        assert [m.uid for m in result.messages] == ["2"]
        assert "fetch:1" not in conn.calls

    def test_does_not_mark_tracker(self, config):
        conn = FakeImap(messages={"1": make_raw_message()})
        tracker = ProcessedIdSet()
        FakeTransport(config, conn).poll(SINCE, tracker)
        assert len(tracker) == 0

    def test_missing_date_header_uses_internal_date(self, config):
        conn = FakeImap(messages={"1": make_raw_message(date=None)})
        result = FakeTransport(config, conn).poll(SINCE, ProcessedIdSet())
        received = result.messages[0].received_at
        assert received is not None
        assert received == datetime(2025, 3, 7, 10, 0, tzinfo=timezone.utc)

    def test_connect_failure(self, config):
        transport = FakeTransport(config, connect_error=OSError("connection refused"))
        result = transport.poll(SINCE, ProcessedIdSet())
        assert result.ok is False
        assert "connection refused" in result.error

    @pytest.mark.parametrize("step", ["login", "select", "search", "fetch"])
    def test_failure_at_any_step_is_unavailable(self, config, step):
        conn = FakeImap(messages={"1": make_raw_message()}, fail_on=step)
        result = FakeTransport(config, conn).poll(SINCE, ProcessedIdSet())

        assert result.ok is False
        assert result.messages == []
        assert f"{step} failed" in result.error
        assert conn.logged_out is True

    def test_select_not_ok(self, config):
        conn = FakeImap(select_status="NO")
        result = FakeTransport(config, conn).poll(SINCE, ProcessedIdSet())
        assert result.ok is False
        assert "cannot open mailbox" in result.error

    def test_no_partial_success(self, config):
        class FailSecondFetch(FakeImap):
            def uid(self, command, *args):
                if command == "FETCH" and args[0] == "2":
                    raise OSError("socket closed")
                return super().uid(command, *args)

        conn = FailSecondFetch(messages={
            "1": make_raw_message(),
            "2": make_raw_message(),
        })
        result = FakeTransport(config, conn).poll(SINCE, ProcessedIdSet())
        assert result.ok is False
        assert result.messages == []


class TestResponseParsing:
    """Tests for IMAP response helpers."""

    def test_parse_uid_list(self):
        assert parse_uid_list([b"4 8 15"]) == ["4", "8", "15"]
        assert parse_uid_list([b""]) == []
        assert parse_uid_list([]) == []

    def test_parse_fetch_parts(self):
        meta, raw = parse_fetch_parts([(b"1 (UID 1 BODY[] {3}", b"abc"), b")"])
        assert meta == b"1 (UID 1 BODY[] {3}"
        assert raw == b"abc"

    def test_parse_fetch_parts_without_literal(self):
        assert parse_fetch_parts([b")"]) == (None, None)

    def test_parse_internal_date(self):
        meta = b'1 (UID 1 INTERNALDATE "07-Mar-2025 10:00:00 +0000" BODY[] {3}'
        parsed = parse_internal_date(meta)
        assert parsed == datetime(2025, 3, 7, 10, 0, tzinfo=timezone.utc)

    def test_parse_internal_date_missing(self):
        assert parse_internal_date(b"1 (UID 1 BODY[] {3}") is None
        assert parse_internal_date(None) is None


class TestSearchDate:
    """Tests for the IMAP SINCE date."""

    def test_day_before_cutoff(self):
        assert search_date(SINCE) == "06-Mar-2025"

    def test_local_day_ahead_of_utc(self):
        # 00:30 on 7 March at UTC+2 is still 6 March in UTC
        since = datetime(2025, 3, 7, 0, 30, tzinfo=timezone(timedelta(hours=2)))
        assert search_date(since) == "05-Mar-2025"

    def test_late_local_reply_is_searched(self, config):
        since = datetime(2025, 3, 7, 0, 30, tzinfo=timezone(timedelta(hours=2)))
        conn = FakeImap(messages={
            "1": make_raw_message(date="Thu, 06 Mar 2025 23:00:00 +0000"),
        })

        result = FakeTransport(config, conn).poll(since, ProcessedIdSet())

        # a UTC server dates this reply 06-Mar, so the search must reach back that far
        assert conn.search_args == (None, "UNSEEN", "SINCE", "05-Mar-2025")
        assert result.messages[0].received_at > since
