"""Issue tracker protocol and data types.

The state machine only needs a handful of tracker operations. Keeping them
behind a protocol lets tests drive the controller with an in-memory tracker.
"""

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

# Reported when the tracker omits the status or a best-effort read fails
UNKNOWN_STATUS = "Unknown"


@dataclass(frozen=True)
class JiraTransition:
    """A transition currently offered for an issue.

    Attributes:
        id: Remote-assigned identifier, only valid for this issue right now
        name: Display name (what flow tables refer to)
        to_status: Name of the status the transition leads to, if reported
    """

    id: str
    name: str
    to_status: str | None = None


@dataclass(frozen=True)
class CreatedIssue:
    """An issue returned by the create call."""

    key: str
    url: str


@runtime_checkable
class IssueTracker(Protocol):
    """Protocol for the remote system that owns issue status."""

    def get_issue_status(self, issue_key: str) -> str:
        """Return the issue's current status name."""
        ...

    def get_transitions(self, issue_key: str) -> list[JiraTransition]:
        """Return the transitions currently available for the issue."""
        ...

    def transition_issue(self, issue_key: str, transition_name: str) -> JiraTransition:
        """Resolve a transition by display name and apply it.

        Returns:
            The transition that was submitted.
        """
        ...

    def browse_url(self, issue_key: str) -> str:
        """Return the human-facing URL of the issue."""
        ...

    def create_issue(
        self,
        project_key: str,
        summary: str,
        description: str,
        issue_type: str = "Task",
    ) -> CreatedIssue:
        """Create an issue and return its key and URL."""
        ...
