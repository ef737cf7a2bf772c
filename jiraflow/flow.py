"""Flow decision table.

A flow table maps a Jira status name to the single step to take next:

    {
      "To Do": {"label": "Move to Pending Approval", "transition": "Task Create"},
      "Pending Approval": {
        "label": "Approve",
        "transition": "Approve",
        "guard": {"allowUsers": ["U123"]},
        "notify": {"mode": "channel", "text": "{issue_key}: {before} -> {after}"}
      }
    }

Lookup is by exact status name. A status with no entry is terminal (or
simply not managed) and yields no next step.
"""

import json
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from string import Formatter
from typing import Any

import yaml

from jiraflow.config import STATUS_SLOTS, Config, ConfigError
from jiraflow.logger import get_logger

logger = get_logger(__name__)


class NotifyMode(Enum):
    """Where the post-transition summary goes."""

    NONE = "none"
    CHANNEL = "channel"
    DM_CLICKER = "dm_clicker"
    EPHEMERAL_CLICKER = "ephemeral_clicker"


@dataclass(frozen=True)
class Guard:
    """Restricts a step to an allow-list of Slack user ids."""

    allow_users: frozenset[str]


@dataclass(frozen=True)
class Notify:
    """Summary routing and an optional message template.

    The template may use {issue_key}, {issue_url}, {before}, {after},
    {transition} and {actor}.
    """

    mode: NotifyMode = NotifyMode.CHANNEL
    text: str = ""


@dataclass(frozen=True)
class FlowStep:
    label: str
    transition: str
    guard: Guard | None = None
    notify: Notify | None = None


@dataclass(frozen=True)
class NextStep:
    """The decision for one status: what to show and what to apply."""

    label: str
    transition_name: str
    step: FlowStep


FlowTable = dict[str, FlowStep]

# Labels and transition keys for the default linear chain, one per slot
# that has a successor
_DEFAULT_CHAIN = (
    ("TODO", "TODO_TO_PENDING", "Move to Pending Approval"),
    ("PENDING", "PENDING_TO_APPROVED", "Approve"),
    ("APPROVED", "APPROVED_TO_IN_PROCESS", "Start (In Process)"),
    ("IN_PROCESS", "IN_PROCESS_TO_IN_REVIEW", "Send to Review"),
    ("IN_REVIEW", "IN_REVIEW_TO_DONE", "Close (Done)"),
)


def decide_next(table: FlowTable, current_status: str) -> NextStep | None:
    """Return the next step for a status, or None if there is nothing to do.

    Matching is exact: no trimming, no case folding.
    """
    step = table.get(current_status)
    if step is None or not step.transition:
        return None
    return NextStep(label=step.label, transition_name=step.transition, step=step)


def _check_template(status: str, text: str, source: str) -> None:
    """Reject notify templates that cannot be filled by name.

    Only plain named fields are allowed: no positional, attribute or index
    lookups. Unknown names are fine and render literally.
    """
    try:
        fields = [field for _, field, _, _ in Formatter().parse(text) if field is not None]
    except ValueError as e:
        raise ConfigError(
            f"{source}: notify text for status '{status}' is not a valid template: {e}", [source]
        ) from e

    for field in fields:
        if not field.isidentifier():
            raise ConfigError(
                f"{source}: notify text for status '{status}' uses unsupported field "
                f"'{{{field}}}'",
                [source],
            )


def _parse_step(status: str, raw: Any, source: str) -> FlowStep:
    if not isinstance(raw, dict):
        raise ConfigError(f"{source}: step for status '{status}' must be an object", [source])

    transition = str(raw.get("transition") or "").strip()
    if not transition:
        raise ConfigError(f"{source}: step for status '{status}' has no transition", [source])
    label = str(raw.get("label") or transition).strip()

    guard = None
    raw_guard = raw.get("guard")
    if raw_guard:
        users = raw_guard.get("allowUsers") if isinstance(raw_guard, dict) else None
        if not isinstance(users, list):
            raise ConfigError(
                f"{source}: guard for status '{status}' needs an allowUsers list", [source]
            )
        guard = Guard(allow_users=frozenset(str(u).strip() for u in users if str(u).strip()))

    notify = None
    raw_notify = raw.get("notify")
    if raw_notify:
        if not isinstance(raw_notify, dict):
            raise ConfigError(f"{source}: notify for status '{status}' must be an object", [source])
        try:
            mode = NotifyMode(str(raw_notify.get("mode") or "channel"))
        except ValueError as e:
            raise ConfigError(
                f"{source}: unknown notify mode for status '{status}': {raw_notify.get('mode')}",
                [source],
            ) from e
        text = str(raw_notify.get("text") or "")
        _check_template(status, text, source)
        notify = Notify(mode=mode, text=text)

    return FlowStep(label=label, transition=transition, guard=guard, notify=notify)


def parse_flow_table(raw: Any, source: str = "JIRA_FLOW_JSON") -> FlowTable:
    """Validate a decoded flow table.

    Args:
        raw: Decoded JSON/YAML (a mapping of status -> step)
        source: Config key or file the table came from, for error messages

    Raises:
        ConfigError: If the table or one of its steps is malformed
    """
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(f"{source}: flow table must be an object keyed by status", [source])
    return {str(status): _parse_step(str(status), step, source) for status, step in raw.items()}


def load_flow_json(text: str) -> FlowTable:
    """Parse an inline JSON flow table (JIRA_FLOW_JSON)."""
    if not text.strip():
        return {}
    try:
        raw = json.loads(text)
    except ValueError as e:
        raise ConfigError(f"JIRA_FLOW_JSON is not valid JSON: {e}", ["JIRA_FLOW_JSON"]) from e
    return parse_flow_table(raw, "JIRA_FLOW_JSON")


def load_flow_file(path: str | Path) -> FlowTable:
    """Parse a flow table file. YAML is a superset of JSON, so both work."""
    path = Path(path)
    try:
        with open(path) as f:
            raw = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"JIRA_FLOW_FILE cannot be read: {path}: {e}", ["JIRA_FLOW_FILE"]) from e
    except yaml.YAMLError as e:
        raise ConfigError(f"JIRA_FLOW_FILE is not valid YAML: {path}: {e}", ["JIRA_FLOW_FILE"]) from e
    return parse_flow_table(raw, "JIRA_FLOW_FILE")


def build_default_flow(config: Config) -> FlowTable:
    """Build the linear To Do -> ... -> Done chain from status/transition names.

    Raises:
        ConfigError: Naming the first missing JIRA_STATUS_* key
    """
    for slot in STATUS_SLOTS:
        config.status_name(slot)

    return {
        config.status_name(slot): FlowStep(label=label, transition=config.transition_name(key))
        for slot, key, label in _DEFAULT_CHAIN
    }


def load_flow_table(config: Config) -> FlowTable:
    """Resolve the flow table: JIRA_FLOW_FILE, then JIRA_FLOW_JSON, then the default chain."""
    if config.flow_file:
        table = load_flow_file(config.flow_file)
        source = config.flow_file
    elif config.flow_json:
        table = load_flow_json(config.flow_json)
        source = "JIRA_FLOW_JSON"
    else:
        table = build_default_flow(config)
        source = "default chain"

    logger.debug(f"Flow table loaded from {source}: {len(table)} steps")
    return table
