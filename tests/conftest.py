"""Pytest configuration and shared fixtures."""

import os

import pytest
from hypothesis import settings

from jiraflow.config import Config
from jiraflow.flow import build_default_flow
from jiraflow.interfaces import (
    UNKNOWN_STATUS,
    CreatedIssue,
    InteractionContext,
    JiraTransition,
)
from jiraflow.jira.errors import RemoteReadError, RemoteWriteError, TransitionNotFoundError
from jiraflow.polling import ConsistencyPoller
from jiraflow.security import ApprovalPolicy
from jiraflow.state_machine import StateMachineController
from jiraflow.telemetry import reset_telemetry

# Configure Hypothesis profiles for different environments
settings.register_profile("ci", max_examples=100, deadline=None)
settings.register_profile("dev", max_examples=50, deadline=None)
settings.load_profile(os.environ.get("HYPOTHESIS_PROFILE", "dev"))

APPROVER = "UAPPROVER"

STATUSES = {
    "TODO": "To Do",
    "PENDING": "Pending Approval",
    "APPROVED": "Approved",
    "IN_PROCESS": "In Process",
    "IN_REVIEW": "In Review",
    "DONE": "Done",
}


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "unit: fast tests with no network access",
    )
    config.addinivalue_line(
        "markers",
        "hypothesis: marks property-based tests using Hypothesis",
    )


class FakeTracker:
    """In-memory IssueTracker.

    Statuses move along `workflow` (transition name -> target status) when a
    transition is applied. `read_failures` makes the next N reads fail;
    `lag_reads` keeps returning the old status for N reads after a transition.
    """

    def __init__(self, statuses=None, workflow=None):
        self.statuses = dict(statuses or {})
        self.workflow = dict(workflow or {})
        self.read_failures = 0
        self.write_error: Exception | None = None
        self.lag_reads = 0
        self._lagging: dict[str, str] = {}
        self.reads: list[str] = []
        self.applied: list[tuple[str, str]] = []
        self.created: list[dict] = []

    def get_issue_status(self, issue_key):
        self.reads.append(issue_key)
        if self.read_failures:
            self.read_failures -= 1
            raise RemoteReadError(f"GET issue failed. status=503 key={issue_key}", status_code=503)
        if issue_key in self._lagging and self.lag_reads:
            self.lag_reads -= 1
            return self._lagging[issue_key]
        self._lagging.pop(issue_key, None)
        return self.statuses.get(issue_key, UNKNOWN_STATUS)

    def get_transitions(self, issue_key):
        return [
            JiraTransition(id=str(i), name=name, to_status=target)
            for i, (name, target) in enumerate(self.workflow.items(), start=1)
        ]

    def transition_issue(self, issue_key, transition_name):
        if self.write_error is not None:
            raise self.write_error
        available = self.get_transitions(issue_key)
        match = next((t for t in available if t.name == transition_name), None)
        if match is None:
            raise TransitionNotFoundError(issue_key, transition_name, [t.name for t in available])
        self.applied.append((issue_key, transition_name))
        self._lagging[issue_key] = self.statuses.get(issue_key, UNKNOWN_STATUS)
        self.statuses[issue_key] = match.to_status
        return match

    def browse_url(self, issue_key):
        return f"https://acme.atlassian.net/browse/{issue_key}"

    def create_issue(self, project_key, summary, description, issue_type="Task"):
        key = f"{project_key}-{len(self.created) + 1}"
        self.created.append(
            {"project": project_key, "summary": summary, "description": description, "type": issue_type}
        )
        self.statuses[key] = STATUSES["TODO"]
        return CreatedIssue(key=key, url=self.browse_url(key))


class FakeNotifier:
    """Records every render; `fail_on` names methods that raise."""

    def __init__(self, fail_on=()):
        self.fail_on = set(fail_on)
        self.posted = []
        self.updates = []
        self.private = []
        self.summaries = []
        self.completions = []

    def _maybe_fail(self, method):
        if method in self.fail_on:
            raise RuntimeError(f"{method} unavailable")

    def post_status(self, ctx, view):
        self._maybe_fail("post_status")
        self.posted.append(view)
        return "1700000000.000100"

    def update_status(self, ctx, view):
        self._maybe_fail("update_status")
        self.updates.append(view)

    def post_private(self, ctx, actor, text):
        self._maybe_fail("post_private")
        self.private.append((actor, text))

    def post_summary(self, ctx, summary, mode="channel"):
        self._maybe_fail("post_summary")
        self.summaries.append((summary, mode))

    def complete(self, ctx, completion):
        self._maybe_fail("complete")
        self.completions.append(completion)


def default_workflow():
    """The default transition chain, transition name -> target status."""
    return {
        "Task Create": STATUSES["PENDING"],
        "Approve": STATUSES["APPROVED"],
        "Task Start": STATUSES["IN_PROCESS"],
        "Task complete": STATUSES["IN_REVIEW"],
        "Task close": STATUSES["DONE"],
    }


def no_sleep(_seconds):
    return None


class FakeClock:
    """Monotonic clock advanced by the sleeps it is paired with."""

    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.now += seconds


@pytest.fixture(autouse=True)
def reset_telemetry_state():
    """Keep OpenTelemetry module state isolated between tests."""
    reset_telemetry()
    yield
    reset_telemetry()


@pytest.fixture
def config():
    """Config with the full status chain configured."""
    return Config(
        jira_base_url="https://acme.atlassian.net",
        jira_email="bot@acme.io",
        jira_api_token="token",
        statuses=dict(STATUSES),
        approver_id=APPROVER,
    )


@pytest.fixture
def tracker():
    return FakeTracker(statuses={"KAN-1": STATUSES["TODO"]}, workflow=default_workflow())


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def poller(tracker, clock):
    return ConsistencyPoller(
        tracker.get_issue_status,
        read_attempts=3,
        read_delay=0.6,
        poll_interval=1.2,
        poll_timeout=20.0,
        sleep=clock.sleep,
        clock=clock,
    )


@pytest.fixture
def controller(config, tracker, notifier, poller, clock):
    return StateMachineController(
        tracker=tracker,
        notifier=notifier,
        flow_table=build_default_flow(config),
        policy=ApprovalPolicy.from_config(config),
        poller=poller,
        clock=clock,
    )


@pytest.fixture
def ctx():
    return InteractionContext(channel_id="C123", message_ts="1700000000.000100", execution_id="Fx1")
