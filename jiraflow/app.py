"""Application wiring.

Builds the tracker, poller, notifier and controller from a Config and exposes
the two workflows callers drive: starting a machine on an issue (optionally
creating the issue first) and handling button clicks.
"""

from dataclasses import dataclass
from typing import Any
from urllib.parse import urlparse

from jiraflow import __version__
from jiraflow.config import Config
from jiraflow.console import ConsoleNotifier
from jiraflow.flow import load_flow_table
from jiraflow.interfaces import CreatedIssue, IssueTracker, Notifier
from jiraflow.jira import JiraClient, compose_task_description, compose_task_summary
from jiraflow.logger import get_logger, setup_logging
from jiraflow.polling import ConsistencyPoller
from jiraflow.security import ApprovalPolicy
from jiraflow.slack import SlackClient, SlackNotifier
from jiraflow.slack_blocks import ACTION_EXECUTE, ACTION_REFRESH, parse_block_action
from jiraflow.state_machine import InteractionResult, StateMachineController
from jiraflow.telemetry import init_telemetry

logger = get_logger(__name__)


def init_runtime(config: Config, quiet: bool = False) -> None:
    """Configure logging and telemetry from config."""
    setup_logging(
        log_file=config.log_file or None,
        log_size=config.log_size,
        log_backups=config.log_backups,
        quiet=quiet,
        mask_secrets=config.log_mask_secrets,
        jira_host=urlparse(config.jira_base_url).hostname if config.jira_base_url else None,
        jira_email=config.jira_email or None,
    )
    if config.otel_endpoint:
        init_telemetry(config.otel_endpoint, config.otel_service_name, __version__)


def build_notifier(config: Config, console: bool = False) -> Notifier:
    """Slack when a bot token is configured, the console otherwise."""
    if console or not config.slack_enabled:
        logger.debug("Using console notifier")
        return ConsoleNotifier()
    return SlackNotifier(SlackClient(config.slack_bot_token))


def build_controller(
    config: Config,
    notifier: Notifier | None = None,
    tracker: IssueTracker | None = None,
) -> StateMachineController:
    """Assemble a controller.

    Raises:
        ConfigError: If Jira credentials, a status name or the flow table
            are missing or invalid
    """
    tracker = tracker or JiraClient.from_config(config)
    return StateMachineController(
        tracker=tracker,
        notifier=notifier or build_notifier(config),
        flow_table=load_flow_table(config),
        policy=ApprovalPolicy.from_config(config),
        poller=ConsistencyPoller.from_config(tracker.get_issue_status, config),
    )


@dataclass
class CreatedTask:
    issue: CreatedIssue
    started: InteractionResult | None = None


def create_task(
    config: Config,
    controller: StateMachineController,
    task_name: str,
    summary: str,
    requester: str,
    description: str | None = None,
    channel_id: str | None = None,
    interactivity: Any = None,
) -> CreatedTask:
    """Create a Jira task and, with a channel, start the state machine on it.

    Raises:
        ValueError: If the task name or summary is empty
        RemoteWriteError: If Jira rejects the issue
    """
    issue = controller.tracker.create_issue(
        config.jira_project_key,
        compose_task_summary(task_name, summary),
        compose_task_description(requester, description),
        config.jira_issue_type,
    )
    if not channel_id:
        return CreatedTask(issue=issue)
    return CreatedTask(
        issue=issue,
        started=controller.start(channel_id, issue.key, interactivity=interactivity),
    )


def handle_interaction(controller: StateMachineController, payload: dict[str, Any]) -> list[InteractionResult]:
    """Handle a Slack interaction payload.

    Only block_actions for our two buttons are handled; anything else is
    ignored and yields no results.
    """
    if payload.get("type") != "block_actions":
        logger.debug(f"Ignoring interaction of type {payload.get('type')}")
        return []

    results = []
    for action in payload.get("actions") or []:
        block_action = parse_block_action(payload, action)
        if block_action.action_id not in (ACTION_REFRESH, ACTION_EXECUTE):
            logger.debug(f"Skipping unrelated action {block_action.action_id}")
            continue
        results.append(controller.handle_block_action(block_action))
    return results
