"""Tests for GitHub Actions helpers."""

import logging

from runnertunnel.client.actions import (
    ActionsFormatter,
    escape_data,
    in_actions,
    set_output,
)


def _record(level: int, msg: str) -> logging.LogRecord:
    return logging.LogRecord("runnertunnel", level, __file__, 1, msg, None, None)


class TestOutputs:
    """Test step outputs."""

    def test_set_output_appends(self, tmp_path):
        output = tmp_path / "output"
        output.write_text("existing=1\n")
        assert set_output("public_url", "frp.example.com:10022", str(output))
        assert output.read_text() == "existing=1\npublic_url=frp.example.com:10022\n"

    def test_set_output_from_env(self, tmp_path, monkeypatch):
        output = tmp_path / "output"
        monkeypatch.setenv("GITHUB_OUTPUT", str(output))
        assert set_output("a", "b")
        assert output.read_text() == "a=b\n"

    def test_set_output_without_file(self):
        assert set_output("a", "b") is False

    def test_multiline_value_uses_delimiter(self, tmp_path):
        output = tmp_path / "output"
        set_output("log", "one\ntwo", str(output))
        lines = output.read_text().splitlines()
        assert lines[0].startswith("log<<ghadelimiter_")
        assert lines[1:3] == ["one", "two"]
        assert lines[3] == lines[0].split("<<", 1)[1]


class TestAnnotations:
    """Test workflow command formatting."""

    def test_in_actions(self, monkeypatch):
        assert in_actions() is False
        monkeypatch.setenv("GITHUB_ACTIONS", "true")
        assert in_actions() is True

    def test_escape_data(self):
        assert escape_data("50%\r\nok") == "50%25%0D%0Aok"

    def test_warning_and_error(self):
        formatter = ActionsFormatter("%(message)s")
        assert formatter.format(_record(logging.WARNING, "careful")) == "::warning::careful"
        assert formatter.format(_record(logging.ERROR, "a\nb")) == "::error::a%0Ab"

    def test_info_unchanged(self):
        formatter = ActionsFormatter("%(message)s")
        assert formatter.format(_record(logging.INFO, "hello")) == "hello"

    def test_debug(self):
        formatter = ActionsFormatter("%(message)s")
        assert formatter.format(_record(logging.DEBUG, "x")) == "::debug::x"
