"""Slack integration for the state machine.

SlackClient wraps the handful of Web API methods we call; SlackNotifier turns
the controller's semantic renders into Block Kit messages.
"""

from typing import Any

import requests

from jiraflow.interfaces import (
    Completion,
    InteractionContext,
    StatusView,
    TransitionSummary,
)
from jiraflow.logger import get_logger
from jiraflow.slack_blocks import status_blocks, summary_text

logger = get_logger(__name__)

SLACK_API_BASE = "https://slack.com/api"


class SlackApiError(Exception):
    """A Slack Web API call failed (transport error, HTTP error or ok=false)."""

    def __init__(self, method: str, error: str) -> None:
        super().__init__(f"Slack {method} failed: {error}")
        self.method = method
        self.error = error


class SlackClient:
    """Minimal Slack Web API client using a bot token."""

    def __init__(self, bot_token: str, api_base: str = SLACK_API_BASE, timeout: int = 10) -> None:
        """Initialize the client.

        Args:
            bot_token: Slack Bot OAuth token (starts with xoxb-)
            api_base: Web API root, overridable for tests
            timeout: Per-request timeout in seconds
        """
        if not bot_token:
            raise ValueError("Slack bot token is required")
        self._bot_token = bot_token
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout

    def call(self, method: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Call a Web API method.

        Returns:
            The decoded response body

        Raises:
            SlackApiError: On transport/HTTP failure or when Slack answers ok=false
        """
        headers = {
            "Authorization": f"Bearer {self._bot_token}",
            "Content-Type": "application/json",
        }
        try:
            response = requests.post(
                f"{self.api_base}/{method}",
                json=payload,
                headers=headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as e:
            raise SlackApiError(method, str(e)) from e
        except ValueError as e:
            raise SlackApiError(method, f"invalid JSON response: {e}") from e

        # Slack API returns 200 even for errors, check response body
        if not data.get("ok"):
            raise SlackApiError(method, data.get("error", "unknown error"))
        return data

    def post_message(
        self, channel: str, text: str, blocks: list[dict[str, Any]] | None = None
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"channel": channel, "text": text}
        if blocks is not None:
            payload["blocks"] = blocks
        return self.call("chat.postMessage", payload)

    def update_message(
        self, channel: str, ts: str, text: str, blocks: list[dict[str, Any]] | None = None
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"channel": channel, "ts": ts, "text": text}
        if blocks is not None:
            payload["blocks"] = blocks
        return self.call("chat.update", payload)

    def post_ephemeral(self, channel: str, user: str, text: str) -> dict[str, Any]:
        return self.call("chat.postEphemeral", {"channel": channel, "user": user, "text": text})

    def complete_function_success(self, execution_id: str, outputs: dict[str, Any]) -> None:
        self.call(
            "functions.completeSuccess",
            {"function_execution_id": execution_id, "outputs": outputs},
        )

    def complete_function_error(self, execution_id: str, error: str) -> None:
        self.call("functions.completeError", {"function_execution_id": execution_id, "error": error})


class SlackNotifier:
    """Notifier that renders status messages as Block Kit."""

    def __init__(self, client: SlackClient) -> None:
        self.client = client

    def post_status(self, ctx: InteractionContext, view: StatusView) -> str | None:
        data = self.client.post_message(
            ctx.channel_id,
            view.headline or f"Jira: {view.issue_key}",
            blocks=status_blocks(view),
        )
        logger.info(f"Posted status message for {view.issue_key} in {ctx.channel_id}")
        return data.get("ts")

    def update_status(self, ctx: InteractionContext, view: StatusView) -> None:
        if not ctx.message_ts:
            ctx.message_ts = self.post_status(ctx, view)
            return
        self.client.update_message(
            ctx.channel_id,
            ctx.message_ts,
            view.headline or f"Jira: {view.issue_key}",
            blocks=status_blocks(view),
        )

    def post_private(self, ctx: InteractionContext, actor: str, text: str) -> None:
        self.client.post_ephemeral(ctx.channel_id, actor, text)

    def post_summary(
        self,
        ctx: InteractionContext,
        summary: TransitionSummary,
        mode: str = "channel",
    ) -> None:
        text = summary_text(summary)
        if mode == "none":
            return
        if mode == "dm_clicker":
            # Posting to a user id opens (or reuses) the bot's DM with them
            self.client.post_message(summary.actor, text)
        elif mode == "ephemeral_clicker":
            self.client.post_ephemeral(ctx.channel_id, summary.actor, text)
        else:
            self.client.post_message(ctx.channel_id, text)
        logger.info(f"Posted transition summary for {summary.issue_key} ({mode})")

    def complete(self, ctx: InteractionContext, completion: Completion) -> None:
        if not ctx.execution_id:
            logger.debug(f"No function execution to complete for {completion.issue_key}")
            return
        self.client.complete_function_success(ctx.execution_id, completion.as_outputs())
