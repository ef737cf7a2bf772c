"""CLI entry point for jiraflow.

Configuration is read from .jiraflow/config when present, otherwise from the
environment. Renders go to Slack when SLACK_BOT_TOKEN is set (or to the
console with --console).

Subcommands:
    jiraflow status KEY         - Print the issue's current status
    jiraflow flow               - Print the effective flow table
    jiraflow start KEY          - Post a status message with a Refresh button
    jiraflow refresh KEY        - Re-read status and offer the next step
    jiraflow execute KEY        - Apply the next step as an actor
    jiraflow create             - Create a task (and start the machine on it)
"""

import argparse
import json
import sys

from jiraflow import __version__
from jiraflow.jira.errors import JiraApiError
from jiraflow.slack import SlackApiError


def _controller(args: argparse.Namespace):
    from jiraflow.app import build_controller, build_notifier, init_runtime
    from jiraflow.config import load_config

    config = load_config()
    init_runtime(config, quiet=args.quiet)
    return config, build_controller(config, notifier=build_notifier(config, console=args.console))


def _context(args: argparse.Namespace):
    from jiraflow.interfaces import InteractionContext

    return InteractionContext(
        channel_id=args.channel,
        message_ts=args.ts,
        execution_id=getattr(args, "execution_id", None),
    )


def _print_result(result) -> None:
    fields = {
        "outcome": result.outcome.value,
        "issueKey": result.issue_key,
        "status": result.status,
    }
    for name, value in (
        ("actor", result.actor),
        ("before", result.before),
        ("after", result.after),
        ("transition", result.transition_name),
        ("error", result.error),
        ("ts", result.message_ts),
    ):
        if value:
            fields[name] = value
    print(json.dumps(fields))


def cmd_status(args: argparse.Namespace) -> None:
    """Handle the 'status' subcommand."""
    from jiraflow.issue_key import normalize_issue_key

    _, controller = _controller(args)
    issue_key = normalize_issue_key(args.issue)
    print(f"{issue_key}: {controller.poller.read_with_retry(issue_key)}")


def cmd_flow(args: argparse.Namespace) -> None:
    """Handle the 'flow' subcommand."""
    from jiraflow.config import load_config
    from jiraflow.flow import load_flow_table

    table = load_flow_table(load_config())
    if not table:
        print("(empty flow table)")
        return
    width = max(len(status) for status in table)
    for status, step in table.items():
        line = f"{status:<{width}}  -> {step.transition}  ({step.label})"
        if step.guard:
            line += f"  guard={','.join(sorted(step.guard.allow_users))}"
        if step.notify:
            line += f"  notify={step.notify.mode.value}"
        print(line)


def cmd_start(args: argparse.Namespace) -> None:
    """Handle the 'start' subcommand."""
    _, controller = _controller(args)
    _print_result(controller.start(args.channel, args.issue))


def cmd_refresh(args: argparse.Namespace) -> None:
    """Handle the 'refresh' subcommand."""
    from jiraflow.issue_key import normalize_issue_key

    _, controller = _controller(args)
    _print_result(controller.refresh(_context(args), normalize_issue_key(args.issue), args.actor))


def cmd_execute(args: argparse.Namespace) -> None:
    """Handle the 'execute' subcommand."""
    _, controller = _controller(args)
    _print_result(controller.execute(_context(args), args.issue, args.actor))


def cmd_create(args: argparse.Namespace) -> None:
    """Handle the 'create' subcommand."""
    from jiraflow.app import create_task

    config, controller = _controller(args)
    created = create_task(
        config,
        controller,
        task_name=args.task_name,
        summary=args.summary,
        requester=args.requester,
        description=args.description,
        channel_id=args.channel,
    )
    print(f"Created {created.issue.key}: {created.issue.url}")
    if created.started:
        _print_result(created.started)


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--console",
        action="store_true",
        help="Render to the console even when SLACK_BOT_TOKEN is set",
    )
    parser.add_argument(
        "--quiet",
        "-q",
        action="store_true",
        help="Log to file only (no stdout/stderr logging)",
    )


def _add_interaction(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("issue", help="Issue key or browse URL (e.g., KAN-42)")
    parser.add_argument("--channel", required=True, help="Slack channel id of the status message")
    parser.add_argument("--ts", default=None, help="Timestamp of the status message to update")
    parser.add_argument("--actor", default=None, help="Slack user id of the clicker")


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the jiraflow CLI."""
    parser = argparse.ArgumentParser(
        prog="jiraflow",
        description="Drive Jira issues through their status lifecycle from Slack",
    )
    parser.add_argument(
        "--version",
        "-v",
        action="version",
        version=f"jiraflow {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    status_parser = subparsers.add_parser("status", help="Print an issue's current status")
    status_parser.add_argument("issue", help="Issue key or browse URL (e.g., KAN-42)")
    _add_common(status_parser)

    flow_parser = subparsers.add_parser("flow", help="Print the effective flow table")
    _add_common(flow_parser)

    start_parser = subparsers.add_parser(
        "start",
        help="Post a status message with a Refresh button",
    )
    start_parser.add_argument("issue", help="Issue key or browse URL (e.g., KAN-42)")
    start_parser.add_argument("--channel", required=True, help="Slack channel id to post in")
    _add_common(start_parser)

    refresh_parser = subparsers.add_parser(
        "refresh",
        help="Re-read status and offer the next step",
    )
    _add_interaction(refresh_parser)
    _add_common(refresh_parser)

    execute_parser = subparsers.add_parser(
        "execute",
        help="Apply the next step for the current status",
    )
    _add_interaction(execute_parser)
    execute_parser.add_argument(
        "--execution-id",
        default=None,
        help="Slack function execution id to complete when done",
    )
    _add_common(execute_parser)

    create_parser = subparsers.add_parser(
        "create",
        help="Create a Jira task, optionally starting the state machine on it",
    )
    create_parser.add_argument("--task-name", required=True, help="Task name prefix, e.g. 'Onboarding'")
    create_parser.add_argument("--summary", required=True, help="Issue summary")
    create_parser.add_argument("--requester", required=True, help="Slack user id of the requester")
    create_parser.add_argument("--description", default=None, help="Extra description text")
    create_parser.add_argument("--channel", default=None, help="Start the state machine in this channel")
    _add_common(create_parser)

    args = parser.parse_args(argv)

    commands = {
        "status": cmd_status,
        "flow": cmd_flow,
        "start": cmd_start,
        "refresh": cmd_refresh,
        "execute": cmd_execute,
        "create": cmd_create,
    }
    try:
        commands[args.command](args)
    except (ValueError, JiraApiError, SlackApiError) as e:
        # ConfigError and InvalidIssueKeyError are ValueErrors
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
