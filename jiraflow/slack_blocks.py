"""Slack Block Kit rendering and block-action payload parsing.

A status message always carries exactly one button: "Refresh Status" or
"Execute: <label>". Both buttons carry the issue key as a JSON value so a
click can be handled without any stored state.
"""

import json
from dataclasses import dataclass
from typing import Any

from jiraflow.interfaces import Affordance, StatusView, TransitionSummary

ACTION_REFRESH = "jira_machine_refresh"
ACTION_EXECUTE = "jira_machine_execute"

TONE_PREFIX = {"success": "✅ ", "warning": "⚠️ ", "info": ""}


def button_value(issue_key: str) -> str:
    return json.dumps({"issueKey": issue_key})


def parse_button_value(value: str | None) -> str | None:
    """Return the issue key stored in a button value, or None if absent/garbled."""
    if not value:
        return None
    try:
        data = json.loads(value)
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    key = data.get("issueKey")
    return key if isinstance(key, str) and key.strip() else None


def status_section(view: StatusView) -> dict[str, Any]:
    actor = f"<@{view.actor}>" if view.actor else "-"
    text = (
        f"*Jira:* <{view.issue_url}|{view.issue_key}>\n"
        f"*Current Status:* *{view.status}*\n"
        f"*Last Action By:* {actor}"
    )
    if view.note:
        text += f"\n\n{TONE_PREFIX.get(view.tone, '')}{view.note}"
    return {"type": "section", "text": {"type": "mrkdwn", "text": text}}


def status_blocks(view: StatusView) -> list[dict[str, Any]]:
    """Render a status message with its single action button."""
    if view.affordance is Affordance.EXECUTE:
        button = {
            "type": "button",
            "action_id": ACTION_EXECUTE,
            "text": {"type": "plain_text", "text": f"Execute: {view.execute_label or 'Next step'}"},
            "style": "primary",
            "value": button_value(view.issue_key),
        }
    else:
        button = {
            "type": "button",
            "action_id": ACTION_REFRESH,
            "text": {"type": "plain_text", "text": "Refresh Status"},
            "value": button_value(view.issue_key),
        }
    return [status_section(view), {"type": "actions", "elements": [button]}]


def summary_text(summary: TransitionSummary) -> str:
    """Render the announcement for an applied transition."""
    if summary.text:
        return summary.text
    after = summary.after if summary.confirmed else f"{summary.after} (unconfirmed)"
    return (
        f"✅ *Jira updated* <{summary.issue_url}|{summary.issue_key}>\n"
        f"• {summary.before} → {after} (via *{summary.transition_name}*)\n"
        f"• By: <@{summary.actor}>"
    )


@dataclass
class BlockAction:
    """A button click, reduced to what the state machine needs.

    Attributes:
        action_id: ACTION_REFRESH or ACTION_EXECUTE
        issue_key: Key from the button value, falling back to the function inputs
        actor: Slack user id of the clicker
        channel_id: Channel of the clicked message
        message_ts: Timestamp of the clicked message
        execution_id: Function execution the message belongs to
        interactivity: Interactivity pointer from the function inputs
    """

    action_id: str
    issue_key: str | None
    actor: str | None
    channel_id: str
    message_ts: str | None
    execution_id: str | None = None
    interactivity: Any = None


def parse_block_action(body: dict[str, Any], action: dict[str, Any] | None = None) -> BlockAction:
    """Parse a Slack block_actions payload.

    Args:
        body: The interaction payload
        action: The clicked action; defaults to the first entry of body["actions"]

    Raises:
        ValueError: If the payload has no action or no channel
    """
    if action is None:
        actions = body.get("actions") or []
        if not actions:
            raise ValueError("block_actions payload has no actions")
        action = actions[0]

    container = body.get("container") or {}
    channel_id = container.get("channel_id") or (body.get("channel") or {}).get("id")
    if not channel_id:
        raise ValueError("block_actions payload has no channel")

    function_data = body.get("function_data") or {}
    inputs = function_data.get("inputs") or {}

    return BlockAction(
        action_id=action.get("action_id", ""),
        issue_key=parse_button_value(action.get("value")) or inputs.get("issueKey"),
        actor=(body.get("user") or {}).get("id"),
        channel_id=channel_id,
        message_ts=container.get("message_ts"),
        execution_id=function_data.get("execution_id"),
        interactivity=inputs.get("interactivity"),
    )
