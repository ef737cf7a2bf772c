"""Console notifier used by the CLI when Slack is not configured."""

import json
import sys
from typing import TextIO

from jiraflow.interfaces import (
    Affordance,
    Completion,
    InteractionContext,
    StatusView,
    TransitionSummary,
)


class ConsoleNotifier:
    """Notifier that prints renders as plain text."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self.stream = stream or sys.stdout
        self._counter = 0

    def _print(self, text: str) -> None:
        print(text, file=self.stream)

    def _render(self, view: StatusView) -> str:
        lines = [
            f"{view.issue_key}  {view.issue_url}",
            f"  status: {view.status}",
        ]
        if view.actor:
            lines.append(f"  last action by: {view.actor}")
        if view.note:
            lines.append(f"  {view.tone}: {view.note}")
        if view.affordance is Affordance.EXECUTE:
            lines.append(f"  next: execute '{view.execute_label}'")
        else:
            lines.append("  next: refresh")
        return "\n".join(lines)

    def post_status(self, ctx: InteractionContext, view: StatusView) -> str | None:
        self._counter += 1
        self._print(self._render(view))
        return f"console.{self._counter}"

    def update_status(self, ctx: InteractionContext, view: StatusView) -> None:
        self._print(self._render(view))

    def post_private(self, ctx: InteractionContext, actor: str, text: str) -> None:
        self._print(f"[to {actor}] {text}")

    def post_summary(
        self,
        ctx: InteractionContext,
        summary: TransitionSummary,
        mode: str = "channel",
    ) -> None:
        if mode == "none":
            return
        if summary.text:
            self._print(summary.text)
            return
        suffix = "" if summary.confirmed else " (unconfirmed)"
        self._print(
            f"{summary.issue_key}: {summary.before} -> {summary.after}{suffix} "
            f"(via {summary.transition_name}, by {summary.actor})"
        )

    def complete(self, ctx: InteractionContext, completion: Completion) -> None:
        self._print(json.dumps(completion.as_outputs(), default=str))
