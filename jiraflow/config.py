"""Configuration module for jiraflow.

Settings are loaded from a .jiraflow/config file (KEY=value format) with
fallback to environment variables. Loading never fails because a Jira or
Slack value is missing: the operation that needs the value asks for it with
Config.require() and fails there, naming the missing key.
"""

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

JIRAFLOW_DIR = ".jiraflow"
CONFIG_FILE = "config"

# Used when APPROVER_USER_ID is not configured
DEFAULT_APPROVER_ID = "U09U1S2M80Y"

# Lifecycle slots, in order. Each slot maps to a JIRA_STATUS_<slot> key.
STATUS_SLOTS = ("TODO", "PENDING", "APPROVED", "IN_PROCESS", "IN_REVIEW", "DONE")

# Transition names applied between consecutive slots (JIRA_TRANSITION_<key>)
DEFAULT_TRANSITIONS: dict[str, str] = {
    "TODO_TO_PENDING": "Task Create",
    "PENDING_TO_APPROVED": "Approve",
    "APPROVED_TO_IN_PROCESS": "Task Start",
    "IN_PROCESS_TO_IN_REVIEW": "Task complete",
    "IN_REVIEW_TO_DONE": "Task close",
}

# Config key -> Config attribute, for lazily required values
_REQUIRABLE = {
    "JIRA_BASE_URL": "jira_base_url",
    "JIRA_EMAIL": "jira_email",
    "JIRA_API_TOKEN": "jira_api_token",
    "SLACK_BOT_TOKEN": "slack_bot_token",
    "APPROVER_USER_ID": "approver_id",
}


class ConfigError(ValueError):
    """A configuration value needed by an operation is missing or invalid.

    Attributes:
        keys: The configuration keys at fault.
    """

    def __init__(self, message: str, keys: list[str] | None = None) -> None:
        super().__init__(message)
        self.keys = keys or []


@dataclass
class Config:
    """Application configuration.

    Attributes:
        jira_base_url: Jira site root (e.g. https://acme.atlassian.net)
        jira_email: Account email used for basic auth
        jira_api_token: API token used for basic auth
        jira_project_key: Project new issues are created in
        jira_issue_type: Issue type for new issues
        statuses: Lifecycle slot -> Jira status name (only configured slots)
        transitions: Transition key -> Jira transition name
        flow_json: Inline JSON flow table, overrides the default chain
        flow_file: Path to a YAML/JSON flow table, overrides flow_json
        approver_id: Slack user allowed to run the approval transition
        slack_bot_token: Slack bot token (xoxb-...)
        read_attempts: Attempts for status reads before giving up
        read_delay_ms: Delay between read attempts
        poll_interval_ms: Delay between confirmation polls after a transition
        poll_timeout_ms: Ceiling for confirmation polling
    """

    jira_base_url: str = ""
    jira_email: str = ""
    jira_api_token: str = ""
    jira_project_key: str = "KAN"
    jira_issue_type: str = "Task"
    statuses: dict[str, str] = field(default_factory=dict)
    transitions: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_TRANSITIONS))
    flow_json: str = ""
    flow_file: str = ""
    approver_id: str = DEFAULT_APPROVER_ID
    slack_bot_token: str = ""
    read_attempts: int = 3
    read_delay_ms: int = 600
    poll_interval_ms: int = 1200
    poll_timeout_ms: int = 20000
    log_file: str = ".jiraflow/logs/jiraflow.log"
    log_size: int = 10 * 1024 * 1024  # 10MB
    log_backups: int = 5
    log_mask_secrets: bool = True
    otel_endpoint: str = ""
    otel_service_name: str = "jiraflow"

    def require(self, *keys: str) -> str:
        """Return the value of a required key, or raise naming every missing one.

        Args:
            keys: Config keys (e.g. "JIRA_EMAIL"). When several are given they
                  are checked together and the first one's value is returned.

        Raises:
            ConfigError: If any of the keys has no value.
        """
        missing = [key for key in keys if not getattr(self, _REQUIRABLE[key])]
        if missing:
            raise ConfigError(f"Missing config: {' / '.join(missing)}", keys=missing)
        return getattr(self, _REQUIRABLE[keys[0]])

    def status_name(self, slot: str) -> str:
        """Return the Jira status name configured for a lifecycle slot.

        Raises:
            ConfigError: If JIRA_STATUS_<slot> is not configured.
        """
        name = self.statuses.get(slot, "")
        if not name:
            key = f"JIRA_STATUS_{slot}"
            raise ConfigError(f"Missing config: {key}", keys=[key])
        return name

    def transition_name(self, key: str) -> str:
        """Return the Jira transition name for a transition key."""
        return self.transitions.get(key) or DEFAULT_TRANSITIONS[key]

    @property
    def approval_transition(self) -> str:
        return self.transition_name("PENDING_TO_APPROVED")

    @property
    def slack_enabled(self) -> bool:
        return bool(self.slack_bot_token)


def parse_config_file(config_path: Path) -> dict[str, str]:
    """Parse a KEY=value config file.

    Blank lines and lines starting with # are skipped; one pair of matching
    surrounding quotes is removed from values.

    Args:
        config_path: Path to the config file

    Returns:
        Dictionary of key-value pairs
    """
    config = {}
    with open(config_path) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            if "=" in line:
                key, _, value = line.partition("=")
                key = key.strip()
                value = value.strip()
                if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
                    value = value[1:-1]
                config[key] = value
    return config


def _parse_int(data: Mapping[str, str], key: str, default: int, minimum: int | None = None) -> int:
    raw = (data.get(key) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ConfigError(f"Invalid integer for {key}: {raw!r}", keys=[key]) from e
    if minimum is not None and value < minimum:
        raise ConfigError(f"{key} must be at least {minimum}, got {value}", keys=[key])
    return value


def load_config_from_mapping(data: Mapping[str, str]) -> Config:
    """Build a Config from a KEY -> value mapping.

    Args:
        data: Parsed config file contents or os.environ

    Returns:
        Config: A populated Config instance

    Raises:
        ConfigError: If a numeric setting is not an integer or is below its minimum
    """

    def text(key: str, default: str = "") -> str:
        return (data.get(key) or default).strip()

    statuses = {slot: text(f"JIRA_STATUS_{slot}") for slot in STATUS_SLOTS}
    transitions = {
        key: text(f"JIRA_TRANSITION_{key}", default) for key, default in DEFAULT_TRANSITIONS.items()
    }

    return Config(
        jira_base_url=text("JIRA_BASE_URL"),
        jira_email=text("JIRA_EMAIL"),
        jira_api_token=text("JIRA_API_TOKEN"),
        jira_project_key=text("JIRA_PROJECT_KEY", "KAN"),
        jira_issue_type=text("JIRA_ISSUE_TYPE", "Task"),
        statuses={slot: name for slot, name in statuses.items() if name},
        transitions=transitions,
        flow_json=text("JIRA_FLOW_JSON"),
        flow_file=text("JIRA_FLOW_FILE"),
        approver_id=text("APPROVER_USER_ID", DEFAULT_APPROVER_ID),
        slack_bot_token=text("SLACK_BOT_TOKEN"),
        read_attempts=_parse_int(data, "READ_ATTEMPTS", 3, minimum=1),
        read_delay_ms=_parse_int(data, "READ_DELAY_MS", 600),
        poll_interval_ms=_parse_int(data, "POLL_INTERVAL_MS", 1200, minimum=1),
        poll_timeout_ms=_parse_int(data, "POLL_TIMEOUT_MS", 20000),
        log_file=text("LOG_FILE", ".jiraflow/logs/jiraflow.log"),
        log_size=_parse_int(data, "LOG_SIZE", 10 * 1024 * 1024),
        log_backups=_parse_int(data, "LOG_BACKUPS", 5),
        log_mask_secrets=text("LOG_MASK_SECRETS", "true").lower() == "true",
        otel_endpoint=text("OTEL_EXPORTER_OTLP_ENDPOINT"),
        otel_service_name=text("OTEL_SERVICE_NAME", "jiraflow"),
    )


def load_config_from_file(config_path: Path) -> Config:
    """Load configuration from a KEY=value config file.

    Raises:
        FileNotFoundError: If the config file doesn't exist
        ConfigError: If a numeric setting is invalid
    """
    data = parse_config_file(config_path)
    log_level = data.get("LOG_LEVEL")
    if log_level:
        os.environ["LOG_LEVEL"] = log_level  # Read by the logger module
    logger.debug(f"Loaded {len(data)} config values from {config_path}")
    return load_config_from_mapping(data)


def load_config_from_env() -> Config:
    """Load configuration from environment variables."""
    return load_config_from_mapping(os.environ)


def load_config(base_dir: Path | None = None) -> Config:
    """Load configuration from the config file or environment variables.

    Priority:
    1. Config file at <base_dir>/.jiraflow/config (base_dir defaults to cwd)
    2. Environment variables

    Returns:
        Config: A Config instance
    """
    config_path = (base_dir or Path.cwd()) / JIRAFLOW_DIR / CONFIG_FILE

    if config_path.exists():
        return load_config_from_file(config_path)
    return load_config_from_env()
