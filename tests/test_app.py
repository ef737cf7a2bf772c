"""Unit tests for application wiring and the create-task workflow."""

from unittest.mock import patch

import pytest
from conftest import STATUSES, FakeNotifier

from jiraflow.app import build_controller, build_notifier, create_task, handle_interaction, init_runtime
from jiraflow.config import Config, ConfigError
from jiraflow.console import ConsoleNotifier
from jiraflow.jira import JiraClient
from jiraflow.slack import SlackNotifier
from jiraflow.slack_blocks import ACTION_EXECUTE, ACTION_REFRESH, button_value
from jiraflow.state_machine import Outcome


@pytest.mark.unit
class TestBuildNotifier:
    """Tests for build_notifier()."""

    def test_console_without_slack_token(self, config):
        assert isinstance(build_notifier(config), ConsoleNotifier)

    def test_slack_with_token(self, config):
        config.slack_bot_token = "xoxb-test"

        assert isinstance(build_notifier(config), SlackNotifier)

    def test_console_flag_wins(self, config):
        config.slack_bot_token = "xoxb-test"

        assert isinstance(build_notifier(config, console=True), ConsoleNotifier)


@pytest.mark.unit
class TestBuildController:
    """Tests for build_controller()."""

    def test_builds_jira_client_from_config(self, config):
        controller = build_controller(config, notifier=FakeNotifier())

        assert isinstance(controller.tracker, JiraClient)
        assert controller.policy.approver_id == "UAPPROVER"
        assert controller.poller.read_attempts == 3
        assert "To Do" in controller.flow_table

    def test_missing_credentials_raise(self):
        with pytest.raises(ConfigError, match="JIRA_BASE_URL"):
            build_controller(Config(statuses=dict(STATUSES)), notifier=FakeNotifier())

    def test_missing_status_raises(self, config, tracker):
        config.statuses.pop("IN_REVIEW")

        with pytest.raises(ConfigError, match="JIRA_STATUS_IN_REVIEW"):
            build_controller(config, notifier=FakeNotifier(), tracker=tracker)


@pytest.mark.unit
class TestCreateTask:
    """Tests for create_task()."""

    def test_creates_without_starting(self, config, controller, tracker, notifier):
        created = create_task(config, controller, "Onboarding", "Laptop", "U1", description="Mac please")

        assert created.issue.key == "KAN-1"
        assert created.started is None
        assert tracker.created[0]["summary"] == "[Onboarding] Laptop"
        assert tracker.created[0]["description"].startswith("Created via Slack by <@U1>")
        assert tracker.created[0]["type"] == "Task"
        assert notifier.posted == []

    def test_creates_and_starts_machine(self, config, controller, tracker, notifier):
        created = create_task(config, controller, "Onboarding", "Laptop", "U1", channel_id="C123")

        assert created.started.outcome is Outcome.STARTED
        assert created.started.status == "To Do"
        assert notifier.posted[0].issue_key == created.issue.key

    def test_empty_summary_raises(self, config, controller, tracker):
        with pytest.raises(ValueError):
            create_task(config, controller, "Onboarding", " ", "U1")
        assert tracker.created == []


@pytest.mark.unit
class TestHandleInteraction:
    """Tests for handle_interaction()."""

    def _payload(self, action_id, **overrides):
        payload = {
            "type": "block_actions",
            "user": {"id": "UDEV"},
            "container": {"channel_id": "C123", "message_ts": "1.0"},
            "function_data": {"execution_id": "Fx1", "inputs": {}},
            "actions": [{"action_id": action_id, "value": button_value("KAN-1")}],
        }
        payload.update(overrides)
        return payload

    def test_refresh_click(self, controller):
        results = handle_interaction(controller, self._payload(ACTION_REFRESH))

        assert [r.outcome for r in results] == [Outcome.REFRESHED]

    def test_execute_click(self, controller, notifier):
        results = handle_interaction(controller, self._payload(ACTION_EXECUTE))

        assert [r.outcome for r in results] == [Outcome.APPLIED]
        assert len(notifier.completions) == 1

    def test_other_payload_types_ignored(self, controller):
        assert handle_interaction(controller, {"type": "view_submission"}) == []

    def test_unrelated_actions_skipped(self, controller, tracker):
        assert handle_interaction(controller, self._payload("some_other_button")) == []
        assert tracker.reads == []


@pytest.mark.unit
class TestInitRuntime:
    """Tests for init_runtime()."""

    def test_passes_masking_values(self, config):
        config.otel_endpoint = "http://localhost:4318"

        with (
            patch("jiraflow.app.setup_logging") as mock_setup,
            patch("jiraflow.app.init_telemetry") as mock_telemetry,
        ):
            init_runtime(config, quiet=True)

        kwargs = mock_setup.call_args.kwargs
        assert kwargs["quiet"] is True
        assert kwargs["jira_host"] == "acme.atlassian.net"
        assert kwargs["jira_email"] == "bot@acme.io"
        mock_telemetry.assert_called_once()

    def test_no_telemetry_without_endpoint(self, config):
        with (
            patch("jiraflow.app.setup_logging"),
            patch("jiraflow.app.init_telemetry") as mock_telemetry,
        ):
            init_runtime(config)

        mock_telemetry.assert_not_called()
