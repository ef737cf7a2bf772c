"""Jira Cloud REST client.

Covers the three calls the state machine depends on (read status, list
transitions, apply a transition) plus issue creation. Every failure raises
a JiraApiError subclass carrying method, URL, status code and body.
"""

import json
import re
from typing import Any
from urllib.parse import quote

import requests

from jiraflow.config import Config, ConfigError
from jiraflow.interfaces import UNKNOWN_STATUS, CreatedIssue, JiraTransition
from jiraflow.jira.errors import (
    JiraApiError,
    RemoteReadError,
    RemoteWriteError,
    TransitionNotFoundError,
)
from jiraflow.logger import get_logger, log_payload

logger = get_logger(__name__)

API_PREFIX = "/rest/api/3"

# Common mistake: pasting https://<site>.atlassian.net/jira instead of the root
_TRAILING_JIRA_RE = re.compile(r"/jira$", re.IGNORECASE)


def normalize_base_url(raw: str | None) -> str:
    """Normalize a Jira base URL.

    Trims whitespace, strips trailing slashes and a trailing "/jira" path
    segment.

    Args:
        raw: Base URL as configured

    Returns:
        The normalized URL, or "" if nothing usable was given
    """
    url = (raw or "").strip()
    url = url.rstrip("/")
    url = _TRAILING_JIRA_RE.sub("", url)
    return url.rstrip("/")


def to_adf(text: str) -> dict[str, Any]:
    """Wrap plain text as a single-paragraph Atlassian Document Format doc."""
    return {
        "type": "doc",
        "version": 1,
        "content": [
            {
                "type": "paragraph",
                "content": [{"type": "text", "text": (text or "").strip()}],
            }
        ],
    }


def compose_task_summary(task_name: str, summary: str) -> str:
    """Build the issue summary from the task name and short summary."""
    task_name = (task_name or "").strip()
    summary = (summary or "").strip()
    if not task_name or not summary:
        raise ValueError("task name and summary are required")
    return f"[{task_name}] {summary}"


def compose_task_description(requester: str, extra: str | None = None) -> str:
    """Build the issue description, crediting the Slack user who asked for it."""
    requester = (requester or "").strip()
    if not requester:
        raise ValueError("requester is required")
    description = f"Created via Slack by <@{requester}>"
    extra = (extra or "").strip()
    return f"{description}\n\n{extra}" if extra else description


def _read_body(response: requests.Response) -> Any:
    """Return the parsed JSON body, the raw text if it isn't JSON, or {} if empty."""
    text = response.text or ""
    if not text:
        return {}
    try:
        return json.loads(text)
    except ValueError:
        return text


class JiraClient:
    """Jira REST v3 client authenticated with email + API token.

    The client holds one requests.Session and no other mutable state, so a
    single instance can be shared across concurrent interactions.
    """

    def __init__(
        self,
        base_url: str,
        email: str,
        api_token: str,
        timeout: float = 30,
        session: requests.Session | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Jira site root; normalized with normalize_base_url()
            email: Account email for basic auth
            api_token: API token for basic auth
            timeout: Per-request timeout in seconds
            session: Optional session (tests inject one)

        Raises:
            ConfigError: If the base URL or credentials are missing
        """
        self.base_url = normalize_base_url(base_url)
        if not self.base_url:
            raise ConfigError("Missing config: JIRA_BASE_URL", keys=["JIRA_BASE_URL"])

        email = (email or "").strip()
        api_token = (api_token or "").strip()
        if not email or not api_token:
            raise ConfigError(
                "Missing config: JIRA_EMAIL / JIRA_API_TOKEN",
                keys=["JIRA_EMAIL", "JIRA_API_TOKEN"],
            )

        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.auth = (email, api_token)
        self.session.headers.update(
            {"Accept": "application/json", "Content-Type": "application/json"}
        )
        logger.debug(f"JiraClient initialized for {self.base_url}")

    @classmethod
    def from_config(cls, config: Config) -> "JiraClient":
        """Create a client from configuration, failing on missing Jira keys."""
        config.require("JIRA_BASE_URL")
        config.require("JIRA_EMAIL", "JIRA_API_TOKEN")
        return cls(config.jira_base_url, config.jira_email, config.jira_api_token)

    def browse_url(self, issue_key: str) -> str:
        return f"{self.base_url}/browse/{issue_key}"

    def _issue_path(self, issue_key: str, suffix: str = "") -> str:
        key = (issue_key or "").strip()
        if not key:
            raise ValueError(f'Issue key is empty (input="{issue_key}")')
        return f"{API_PREFIX}/issue/{quote(key, safe='')}{suffix}"

    def _request(
        self,
        method: str,
        path: str,
        action: str,
        error_cls: type[JiraApiError],
        payload: dict[str, Any] | None = None,
    ) -> Any:
        """Send a request and return the parsed body.

        Raises:
            error_cls: On a network fault or any non-2xx response
        """
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning(f"{action} failed: {method} {url}: {e}")
            raise error_cls(
                f"{action} failed. method={method} url={url} error={e}",
                method=method,
                url=url,
            ) from e

        body = _read_body(response)
        if not response.ok:
            raise error_cls.from_response(action, method, url, response.status_code, body)

        log_payload(logger, f"{method} {url} -> {response.status_code}", str(body))
        return body

    def get_issue_status(self, issue_key: str) -> str:
        """Return the issue's current status name.

        Raises:
            ValueError: If the key is empty
            RemoteReadError: On a network fault or non-success response
        """
        body = self._request(
            "GET",
            self._issue_path(issue_key, "?fields=status"),
            "GET issue",
            RemoteReadError,
        )
        status = ((body.get("fields") or {}).get("status") or {}) if isinstance(body, dict) else {}
        return status.get("name") or UNKNOWN_STATUS

    def get_transitions(self, issue_key: str) -> list[JiraTransition]:
        """Return the transitions Jira currently offers for the issue.

        Raises:
            RemoteReadError: On a network fault or non-success response
        """
        body = self._request(
            "GET",
            self._issue_path(issue_key, "/transitions"),
            "GET transitions",
            RemoteReadError,
        )
        raw = body.get("transitions") if isinstance(body, dict) else None

        transitions = []
        for item in raw or []:
            if not isinstance(item, dict) or not item.get("id"):
                continue
            to_status = (item.get("to") or {}).get("name")
            transitions.append(
                JiraTransition(
                    id=str(item["id"]),
                    name=(item.get("name") or "").strip(),
                    to_status=to_status,
                )
            )
        return transitions

    def transition_issue(self, issue_key: str, transition_name: str) -> JiraTransition:
        """Resolve a transition by display name and apply it.

        The id is looked up among the transitions available right now; ids
        differ between workflows and the available set depends on status.

        Returns:
            The transition that was submitted

        Raises:
            ValueError: If the key or transition name is empty
            RemoteReadError: If the available transitions cannot be fetched
            TransitionNotFoundError: If no available transition has that name
            RemoteWriteError: If Jira rejects the submission
        """
        name = (transition_name or "").strip()
        if not name:
            raise ValueError("transition name is empty")

        available = self.get_transitions(issue_key)
        match = next((t for t in available if t.name == name), None)
        if match is None:
            raise TransitionNotFoundError(
                issue_key, name, [t.name for t in available if t.name]
            )

        logger.info(f"Applying transition '{name}' (id={match.id}) to {issue_key}")
        self._request(
            "POST",
            self._issue_path(issue_key, "/transitions"),
            "POST transition",
            RemoteWriteError,
            payload={"transition": {"id": match.id}},
        )
        return match

    def create_issue(
        self,
        project_key: str,
        summary: str,
        description: str,
        issue_type: str = "Task",
    ) -> CreatedIssue:
        """Create an issue.

        Raises:
            RemoteWriteError: If Jira rejects the request or returns no key
        """
        payload = {
            "fields": {
                "project": {"key": project_key},
                "summary": summary,
                "description": to_adf(description),
                "issuetype": {"name": issue_type},
            }
        }
        body = self._request(
            "POST", f"{API_PREFIX}/issue", "POST issue", RemoteWriteError, payload=payload
        )

        key = body.get("key") if isinstance(body, dict) else None
        if not key:
            raise RemoteWriteError(
                f"POST issue returned no key. body={body}",
                method="POST",
                url=f"{self.base_url}{API_PREFIX}/issue",
                body=body,
            )
        logger.info(f"Created issue {key} in project {project_key}")
        return CreatedIssue(key=key, url=self.browse_url(key))
