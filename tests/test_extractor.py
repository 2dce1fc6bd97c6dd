"""Tests for response extraction."""

import pytest

from src.monitor.extractor import extract_response


class TestKeywordRules:
    """Tests for the Response:/Command: rules."""

    def test_response_line(self):
        assert extract_response("Response: restart_server") == "restart_server"

    def test_response_line_is_trimmed(self):
        assert extract_response("Response:    go now   ") == "go now"

    def test_response_inside_longer_body(self):
        body = "Hi,\n\nResponse: deploy\n\nThanks\n-- \nsent from my phone"
        assert extract_response(body) == "deploy"

    def test_response_keyword_is_case_insensitive(self):
        assert extract_response("response: go") == "go"
        assert extract_response("RESPONSE: go") == "go"

    def test_command_line(self):
        assert extract_response("Command:  reboot ") == "reboot"

    def test_response_wins_over_command(self):
        body = "Command: second\nResponse: first"
        assert extract_response(body) == "first"

    def test_keyword_value_on_next_line(self):
        assert extract_response("Response:\nlate_value") == "late_value"

    def test_crlf_body(self):
        assert extract_response("Hello\r\nResponse: go\r\nBye\r\n") == "go"

    def test_rejected_response_falls_through_to_command(self):
        body = "Response: From: bob@example.com\nCommand: stop"
        assert extract_response(body) == "stop"


class TestSingleLineRule:
    """Tests for the single-line fallback."""

    def test_single_line_returned_verbatim(self):
        assert extract_response("do_the_thing") == "do_the_thing"

    def test_single_line_surrounded_by_blank_lines(self):
        assert extract_response("\n\n  do_the_thing  \n\n") == "do_the_thing"

    def test_multiple_lines_without_keyword(self):
        assert extract_response("first line\nsecond line") is None

    def test_crlf_single_line(self):
        assert extract_response("do_the_thing\r\n") == "do_the_thing"

    @pytest.mark.parametrize("separator", ["\u2028", "\u2029", "\x0b", "\x0c", "\x85"])
    def test_only_newline_breaks_lines(self, separator):
        body = f"restart{separator}service"
        assert extract_response(body) == body


class TestHeaderGuard:
    """Tests for rejection of header-like captures."""

    def test_from_line_rejected(self):
        assert extract_response("From: bob@example.com") is None

    def test_to_line_rejected(self):
        assert extract_response("To: ops@example.com") is None

    def test_response_with_header_capture_and_nothing_else(self):
        body = "Response: To: someone\nmore text"
        assert extract_response(body) is None


class TestEmptyInput:
    """Tests for empty bodies."""

    @pytest.mark.parametrize("body", [None, "", "   ", "\n\n"])
    def test_empty_bodies(self, body):
        assert extract_response(body) is None
