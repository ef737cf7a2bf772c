"""Exceptions raised by the Jira REST client."""

import json
from typing import Any


class JiraApiError(Exception):
    """Base class for Jira API failures.

    Carries the request method and URL plus, when a response arrived, its
    status code and body, so the failure can be diagnosed from the message
    alone.
    """

    def __init__(
        self,
        message: str,
        method: str = "",
        url: str = "",
        status_code: int | None = None,
        body: Any = None,
    ) -> None:
        super().__init__(message)
        self.method = method
        self.url = url
        self.status_code = status_code
        self.body = body

    @classmethod
    def from_response(
        cls,
        action: str,
        method: str,
        url: str,
        status_code: int | None,
        body: Any,
    ):
        """Build an error whose message names the call and its outcome."""
        rendered = body if isinstance(body, str) else json.dumps(body, default=str)
        message = (
            f"{action} failed. status={status_code} method={method} url={url} body={rendered}"
        )
        return cls(message, method=method, url=url, status_code=status_code, body=body)


class RemoteReadError(JiraApiError):
    """A read (GET) failed: non-success response or network fault.

    Read failures are considered transient and may be retried by the poller.
    """


class RemoteWriteError(JiraApiError):
    """A write (POST) was rejected or never reached Jira. Never retried."""


class TransitionNotFoundError(JiraApiError):
    """The requested transition is not currently offered for the issue.

    Distinct from RemoteWriteError: nothing was submitted, the issue is simply
    in a status from which that transition is not available.
    """

    MAX_LISTED = 50

    def __init__(self, issue_key: str, transition_name: str, available: list[str]) -> None:
        self.issue_key = issue_key
        self.transition_name = transition_name
        self.available = available[: self.MAX_LISTED]
        listed = ", ".join(self.available) or "(none)"
        super().__init__(f'Transition "{transition_name}" not found. Available: {listed}')
