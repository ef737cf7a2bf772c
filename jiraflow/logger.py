"""
Logging module for jiraflow.

Configures the root logger (console + rotating file) and tags every record
with the issue key of the interaction being handled.
"""

from __future__ import annotations

import contextvars
import logging
import os
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler

SYSTEM_CONTEXT = "jiraflow"

# Issue key for the interaction being handled (thread and task safe)
_issue_context: contextvars.ContextVar[str] = contextvars.ContextVar(
    "issue_context", default=SYSTEM_CONTEXT
)

LOG_FORMAT = "[%(asctime)s] %(levelname)s %(issue_context)s %(threadName)s %(name)s: %(message)s"


def set_issue_context(issue_key: str | None = None) -> None:
    """Tag subsequent log records with an issue key.

    Args:
        issue_key: Jira issue key (e.g. "KAN-12"). None resets to the system tag.
    """
    _issue_context.set(issue_key or SYSTEM_CONTEXT)


def clear_issue_context() -> None:
    """Reset the issue context to the system tag."""
    _issue_context.set(SYSTEM_CONTEXT)


def get_issue_context() -> str:
    """Get the current issue context string."""
    return _issue_context.get()


class Colors:
    RESET = "\033[0m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    MAGENTA = "\033[35m"
    GRAY = "\033[90m"


# Keyword -> (color, prefix) for INFO records
SEMANTIC_COLORS = {
    "applying": ("yellow", "→"),
    "transition applied": ("green", "✓"),
    "confirmed": ("green", "✓"),
    "posted": ("blue", "✉"),
    "refreshed": ("blue", "↻"),
    "no next step": ("gray", "⊘"),
    "skipping": ("gray", "⊘"),
    "denied": ("magenta", "⛔"),
    "starting": ("green", ">>>"),
}


class DateRotatingFileHandler(RotatingFileHandler):
    """RotatingFileHandler whose backups carry the rotation date.

    "jiraflow.log.1" becomes "jiraflow.2024-01-15.log.1".
    """

    def rotation_filename(self, default_name: str) -> str:
        base = self.baseFilename
        dirname = os.path.dirname(base)
        basename = os.path.basename(base)
        suffix = default_name[len(base) :]
        date_str = datetime.now().strftime("%Y-%m-%d")

        if "." in basename:
            name_part, ext = basename.rsplit(".", 1)
            new_name = f"{name_part}.{date_str}.{ext}{suffix}"
        else:
            new_name = f"{basename}.{date_str}{suffix}"

        return os.path.join(dirname, new_name)


class MaskingFilter(logging.Filter):
    """Filter that hides the Jira host and account email in log records.

    The host is replaced with <JIRA> and the email with <EMAIL>, so logs can
    be shared without exposing which site or service account is in use.
    """

    def __init__(self, jira_host: str | None, jira_email: str | None) -> None:
        super().__init__()
        self.jira_host = jira_host
        self.jira_email = jira_email

    def filter(self, record: logging.LogRecord) -> bool:
        if not self.jira_host and not self.jira_email:
            return True

        if hasattr(record, "issue_context"):
            record.issue_context = self.mask(str(record.issue_context))

        if record.msg:
            record.msg = self.mask(str(record.msg))

        if isinstance(record.args, dict):
            record.args = {
                k: self.mask(v) if isinstance(v, str) else v for k, v in record.args.items()
            }
        elif isinstance(record.args, tuple):
            record.args = tuple(self.mask(a) if isinstance(a, str) else a for a in record.args)

        return True

    def mask(self, value: str) -> str:
        """Replace the configured host and email with placeholders."""
        if self.jira_host:
            value = value.replace(self.jira_host, "<JIRA>")
        if self.jira_email:
            value = value.replace(self.jira_email, "<EMAIL>")
        return value


class PlainContextAwareFormatter(logging.Formatter):
    """Formatter (no colors) that injects the issue context from contextvars."""

    def __init__(self, fmt: str | None = None, masking_filter: MaskingFilter | None = None) -> None:
        super().__init__(fmt)
        self.masking_filter = masking_filter

    def format(self, record: logging.LogRecord) -> str:
        issue_context = get_issue_context()
        if self.masking_filter:
            issue_context = self.masking_filter.mask(issue_context)
        record.issue_context = issue_context
        return super().format(record)


class ContextAwareFormatter(PlainContextAwareFormatter):
    """Context-aware formatter that colors by level and message content."""

    COLOR_MAP = {
        "green": Colors.GREEN,
        "blue": Colors.BLUE,
        "magenta": Colors.MAGENTA,
        "yellow": Colors.YELLOW,
        "gray": Colors.GRAY,
        "red": Colors.RED,
    }

    def _get_semantic_color(self, message: str) -> tuple[str, str] | None:
        message_lower = message.lower()
        for keyword, (color, prefix) in SEMANTIC_COLORS.items():
            if keyword in message_lower:
                return (color, prefix)
        return None

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)

        if record.levelno >= logging.ERROR:
            return f"{Colors.RED}{message}{Colors.RESET}"
        elif record.levelno >= logging.WARNING:
            return f"{Colors.YELLOW}{message}{Colors.RESET}"

        if record.levelno == logging.INFO:
            semantic = self._get_semantic_color(record.getMessage())
            if semantic:
                color_name, prefix = semantic
                return f"{self.COLOR_MAP.get(color_name, '')}{prefix} {message}{Colors.RESET}"

        return message


def setup_logging(
    log_file: str | None = ".jiraflow/logs/jiraflow.log",
    log_size: int = 10 * 1024 * 1024,
    log_backups: int = 5,
    quiet: bool = False,
    mask_secrets: bool = False,
    jira_host: str | None = None,
    jira_email: str | None = None,
) -> None:
    """
    Configure the root logger.

    The level comes from the LOG_LEVEL environment variable (default INFO).

    Args:
        log_file: Path to the log file, or None to skip file logging.
        log_size: Max size in bytes before rotation.
        log_backups: Number of rotated files to keep.
        quiet: If True, log to file only (no stdout/stderr).
        mask_secrets: If True, mask the Jira host and email in all output.
        jira_host: Jira hostname to mask (e.g. "acme.atlassian.net").
        jira_email: Jira account email to mask.

    Output: stdout for DEBUG/INFO, stderr for WARNING+, plus the file.
    """
    log_level_str = os.getenv("LOG_LEVEL", "INFO").upper()
    log_level = getattr(logging, log_level_str, logging.INFO)

    masking_filter = None
    if mask_secrets and (jira_host or jira_email):
        masking_filter = MaskingFilter(jira_host, jira_email)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    if not quiet:
        formatter = ContextAwareFormatter(LOG_FORMAT, masking_filter=masking_filter)

        stdout_handler = logging.StreamHandler(sys.stdout)
        stdout_handler.setLevel(logging.DEBUG)
        stdout_handler.addFilter(lambda record: record.levelno < logging.WARNING)
        stdout_handler.setFormatter(formatter)

        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setLevel(logging.WARNING)
        stderr_handler.setFormatter(formatter)

        for handler in (stdout_handler, stderr_handler):
            if masking_filter:
                handler.addFilter(masking_filter)
            root_logger.addHandler(handler)

    if log_file:
        try:
            log_dir = os.path.dirname(log_file)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)

            file_handler = DateRotatingFileHandler(
                log_file,
                maxBytes=log_size,
                backupCount=log_backups,
            )
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(
                PlainContextAwareFormatter(LOG_FORMAT, masking_filter=masking_filter)
            )
            if masking_filter:
                file_handler.addFilter(masking_filter)
            root_logger.addHandler(file_handler)
        except OSError as e:
            print(f"[logger] Failed to create file handler: {e}", file=sys.stderr)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger with the specified name.

    Args:
        name: The name for the logger, typically __name__ of the calling module

    Returns:
        A Logger instance
    """
    return logging.getLogger(name)


def is_debug_mode() -> bool:
    """Check if logging is set to DEBUG level."""
    return logging.getLogger().level <= logging.DEBUG


def log_payload(logger: logging.Logger, label: str, content: str) -> None:
    """Log an HTTP payload - full in debug mode, truncated otherwise."""
    if is_debug_mode():
        logger.debug(f"{label}:\n{content}")
    else:
        logger.debug(f"{label}: {content[:100]}...")
