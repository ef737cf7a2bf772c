"""Abstract interfaces for the issue tracker and the chat surface."""

from jiraflow.interfaces.notifier import (
    Affordance,
    Completion,
    InteractionContext,
    Notifier,
    StatusView,
    TransitionSummary,
)
from jiraflow.interfaces.tracker import (
    UNKNOWN_STATUS,
    CreatedIssue,
    IssueTracker,
    JiraTransition,
)

__all__ = [
    "Affordance",
    "Completion",
    "CreatedIssue",
    "InteractionContext",
    "IssueTracker",
    "JiraTransition",
    "Notifier",
    "StatusView",
    "TransitionSummary",
    "UNKNOWN_STATUS",
]
