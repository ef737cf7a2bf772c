"""Unit tests for the console notifier."""

import io
import json

import pytest

from jiraflow.console import ConsoleNotifier
from jiraflow.interfaces import (
    Affordance,
    Completion,
    InteractionContext,
    StatusView,
    TransitionSummary,
)


@pytest.mark.unit
class TestConsoleNotifier:
    """Tests for ConsoleNotifier."""

    def setup_method(self):
        self.stream = io.StringIO()
        self.notifier = ConsoleNotifier(self.stream)
        self.ctx = InteractionContext(channel_id="C123")
        self.view = StatusView(
            issue_key="KAN-1",
            issue_url="https://acme.atlassian.net/browse/KAN-1",
            status="To Do",
        )

    def test_post_status_returns_distinct_ids(self):
        first = self.notifier.post_status(self.ctx, self.view)
        second = self.notifier.post_status(self.ctx, self.view)

        assert first != second
        assert "status: To Do" in self.stream.getvalue()
        assert "next: refresh" in self.stream.getvalue()

    def test_execute_affordance(self):
        self.view.affordance = Affordance.EXECUTE
        self.view.execute_label = "Approve"
        self.view.actor = "UDEV"

        self.notifier.update_status(self.ctx, self.view)

        out = self.stream.getvalue()
        assert "next: execute 'Approve'" in out
        assert "last action by: UDEV" in out

    def test_private_message_names_actor(self):
        self.notifier.post_private(self.ctx, "UDEV", "Only <@U1> can approve.")

        assert self.stream.getvalue().strip() == "[to UDEV] Only <@U1> can approve."

    def test_summary(self):
        summary = TransitionSummary(
            issue_key="KAN-1",
            issue_url="https://acme.atlassian.net/browse/KAN-1",
            before="To Do",
            after="To Do",
            transition_name="Task Create",
            actor="UDEV",
            confirmed=False,
        )

        self.notifier.post_summary(self.ctx, summary)

        assert "To Do -> To Do (unconfirmed)" in self.stream.getvalue()

    def test_summary_mode_none_is_silent(self):
        summary = TransitionSummary("KAN-1", "u", "To Do", "Pending Approval", "Task Create", "UDEV")

        self.notifier.post_summary(self.ctx, summary, mode="none")

        assert self.stream.getvalue() == ""

    def test_complete_prints_outputs(self):
        self.notifier.complete(self.ctx, Completion(issue_key="KAN-1", status="Approved", updated_by="UDEV"))

        outputs = json.loads(self.stream.getvalue())
        assert outputs["issueKey"] == "KAN-1"
        assert outputs["status"] == "Approved"
        assert outputs["updatedBy"] == "UDEV"
