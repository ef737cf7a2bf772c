"""Unit tests for the logger module."""

import logging
import sys
from datetime import datetime
from pathlib import Path

import pytest

from jiraflow.logger import (
    SYSTEM_CONTEXT,
    Colors,
    ContextAwareFormatter,
    DateRotatingFileHandler,
    MaskingFilter,
    PlainContextAwareFormatter,
    clear_issue_context,
    get_issue_context,
    get_logger,
    set_issue_context,
    setup_logging,
)


def _record(msg, level=logging.INFO, args=()):
    return logging.LogRecord(
        name="test",
        level=level,
        pathname="",
        lineno=0,
        msg=msg,
        args=args,
        exc_info=None,
    )


@pytest.mark.unit
class TestIssueContext:
    """Tests for set_issue_context / clear_issue_context / get_issue_context."""

    def teardown_method(self):
        """Clean up issue context after each test."""
        clear_issue_context()

    def test_default_is_system_context(self):
        assert get_issue_context() == SYSTEM_CONTEXT

    def test_set_issue_context(self):
        set_issue_context("KAN-42")
        assert get_issue_context() == "KAN-42"

    def test_none_resets_to_default(self):
        set_issue_context("KAN-42")
        set_issue_context(None)
        assert get_issue_context() == SYSTEM_CONTEXT

    def test_clear_resets_to_default(self):
        set_issue_context("KAN-42")
        clear_issue_context()
        assert get_issue_context() == SYSTEM_CONTEXT


@pytest.mark.unit
class TestContextAwareFormatter:
    """Tests for ContextAwareFormatter."""

    def teardown_method(self):
        clear_issue_context()

    def test_injects_issue_context(self):
        set_issue_context("KAN-42")
        formatter = ContextAwareFormatter("%(issue_context)s - %(message)s")

        assert "KAN-42 - Plain message" in formatter.format(_record("Plain message"))

    def test_error_level_is_red(self):
        formatter = ContextAwareFormatter("%(message)s")
        result = formatter.format(_record("Error message", logging.ERROR))

        assert result.startswith(Colors.RED)
        assert result.endswith(Colors.RESET)

    def test_warning_level_is_yellow(self):
        formatter = ContextAwareFormatter("%(message)s")
        result = formatter.format(_record("Warning message", logging.WARNING))

        assert result.startswith(Colors.YELLOW)

    @pytest.mark.parametrize(
        "message,color,prefix",
        [
            ("Transition applied to KAN-1: To Do -> Pending Approval", Colors.GREEN, "✓"),
            ("Applying transition 'Approve' (id=21) to KAN-1", Colors.YELLOW, "→"),
            ("Starting state machine for KAN-1", Colors.GREEN, ">>>"),
            ("No next step for KAN-1 at status 'Done'", Colors.GRAY, "⊘"),
        ],
    )
    def test_info_semantic_keywords(self, message, color, prefix):
        formatter = ContextAwareFormatter("%(message)s")
        result = formatter.format(_record(message))

        assert result.startswith(color)
        assert f"{prefix} {message}" in result

    def test_info_without_keyword_unchanged(self):
        formatter = ContextAwareFormatter("%(message)s")
        assert formatter.format(_record("Regular message")) == "Regular message"


@pytest.mark.unit
class TestPlainContextAwareFormatter:
    """Tests for PlainContextAwareFormatter."""

    def teardown_method(self):
        clear_issue_context()

    def test_injects_context_without_colors(self):
        set_issue_context("KAN-42")
        formatter = PlainContextAwareFormatter("%(issue_context)s - %(message)s")
        result = formatter.format(_record("Starting state machine"))

        assert "KAN-42" in result
        assert "\033[" not in result


@pytest.mark.unit
class TestDateRotatingFileHandler:
    """Tests for DateRotatingFileHandler.rotation_filename()."""

    def test_rotation_filename_format(self, tmp_path):
        """Rotated files are named name.date.ext.N."""
        log_file = tmp_path / "jiraflow.log"
        handler = DateRotatingFileHandler(str(log_file), maxBytes=1000, backupCount=5)
        try:
            result = handler.rotation_filename(str(log_file) + ".2")
        finally:
            handler.close()

        today = datetime.now().strftime("%Y-%m-%d")
        assert Path(result).name == f"jiraflow.{today}.log.2"


@pytest.mark.unit
class TestMaskingFilter:
    """Tests for MaskingFilter."""

    def test_mask_host_and_email(self):
        masking = MaskingFilter("acme.atlassian.net", "bot@acme.io")

        result = masking.mask("GET https://acme.atlassian.net/rest as bot@acme.io")

        assert result == "GET https://<JIRA>/rest as <EMAIL>"

    def test_filter_masks_message_and_args(self):
        masking = MaskingFilter("acme.atlassian.net", None)
        record = _record("Fetching %s", args=("https://acme.atlassian.net/browse/KAN-1",))

        assert masking.filter(record) is True
        assert record.getMessage() == "Fetching https://<JIRA>/browse/KAN-1"

    def test_filter_masks_dict_args(self):
        masking = MaskingFilter(None, "bot@acme.io")
        record = _record("as %(user)s", args=({"user": "bot@acme.io"},))

        masking.filter(record)

        assert record.getMessage() == "as <EMAIL>"

    def test_filter_without_values_is_noop(self):
        masking = MaskingFilter(None, None)
        record = _record("https://acme.atlassian.net")

        assert masking.filter(record) is True
        assert record.msg == "https://acme.atlassian.net"


@pytest.mark.unit
class TestSetupLogging:
    """Tests for setup_logging function."""

    def teardown_method(self):
        """Clean up root logger after each test."""
        root = logging.getLogger()
        for handler in root.handlers:
            handler.close()
        root.handlers.clear()
        root.setLevel(logging.WARNING)
        clear_issue_context()

    def test_creates_stdout_and_stderr_handlers(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "INFO")
        setup_logging(log_file=None)

        root = logging.getLogger()
        streams = [h.stream for h in root.handlers if isinstance(h, logging.StreamHandler)]
        assert sys.stdout in streams
        assert sys.stderr in streams

    def test_quiet_logs_to_file_only(self, tmp_path, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "INFO")
        setup_logging(log_file=str(tmp_path / "logs" / "jiraflow.log"), quiet=True)

        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0], DateRotatingFileHandler)

    def test_creates_log_directory(self, tmp_path, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "INFO")
        log_file = tmp_path / "newdir" / "jiraflow.log"
        setup_logging(log_file=str(log_file))

        assert log_file.parent.exists()

    def test_respects_log_level_env(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")
        setup_logging(log_file=None)

        assert logging.getLogger().level == logging.DEBUG

    def test_masked_output_in_log_file(self, tmp_path, monkeypatch):
        """The Jira host and email never reach the log file when masking is on."""
        monkeypatch.setenv("LOG_LEVEL", "INFO")
        log_file = tmp_path / "logs" / "jiraflow.log"
        setup_logging(
            log_file=str(log_file),
            quiet=True,
            mask_secrets=True,
            jira_host="acme.atlassian.net",
            jira_email="bot@acme.io",
        )

        set_issue_context("KAN-9")
        get_logger("test.masking").info("Reading https://acme.atlassian.net/browse/KAN-9 as bot@acme.io")
        for handler in logging.getLogger().handlers:
            handler.flush()

        content = log_file.read_text()
        assert "acme.atlassian.net" not in content
        assert "bot@acme.io" not in content
        assert "<JIRA>" in content
        assert "KAN-9" in content

    def test_unmasked_when_disabled(self, tmp_path, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "INFO")
        log_file = tmp_path / "logs" / "jiraflow.log"
        setup_logging(log_file=str(log_file), quiet=True, jira_host="acme.atlassian.net")

        get_logger("test.masking").info("Reading https://acme.atlassian.net")
        for handler in logging.getLogger().handlers:
            handler.flush()

        assert "acme.atlassian.net" in log_file.read_text()


@pytest.mark.unit
class TestGetLogger:
    """Tests for get_logger."""

    def test_returns_named_logger(self):
        assert get_logger("jiraflow.test").name == "jiraflow.test"
