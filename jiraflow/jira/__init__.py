"""Jira REST client and its error types."""

from jiraflow.jira.client import (
    JiraClient,
    compose_task_description,
    compose_task_summary,
    normalize_base_url,
    to_adf,
)
from jiraflow.jira.errors import (
    JiraApiError,
    RemoteReadError,
    RemoteWriteError,
    TransitionNotFoundError,
)

__all__ = [
    "JiraApiError",
    "JiraClient",
    "RemoteReadError",
    "RemoteWriteError",
    "TransitionNotFoundError",
    "compose_task_description",
    "compose_task_summary",
    "normalize_base_url",
    "to_adf",
]
