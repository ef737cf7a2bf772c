"""Notifier protocol and the semantic content the state machine renders.

The controller decides *what* to show (status, next action, notes); a
notifier decides *how* (Slack blocks, console lines).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, runtime_checkable


class Affordance(Enum):
    """The single action offered on a status message."""

    REFRESH = "refresh"
    EXECUTE = "execute"


@dataclass
class InteractionContext:
    """The in-flight interaction a render belongs to.

    Attributes:
        channel_id: Channel the status message lives in
        message_ts: Timestamp of the status message (None before it is posted)
        execution_id: Function execution to complete when the interaction ends
        interactivity: Opaque interactivity pointer passed back on completion
    """

    channel_id: str
    message_ts: str | None = None
    execution_id: str | None = None
    interactivity: Any = None


@dataclass
class StatusView:
    """Semantic content of a status message."""

    issue_key: str
    issue_url: str
    status: str
    affordance: Affordance = Affordance.REFRESH
    actor: str | None = None
    note: str | None = None
    tone: str = "info"  # info, success or warning
    execute_label: str | None = None
    headline: str = ""


@dataclass
class TransitionSummary:
    """What happened when a transition was applied."""

    issue_key: str
    issue_url: str
    before: str
    after: str
    transition_name: str
    actor: str
    confirmed: bool = True
    text: str | None = None


@dataclass
class Completion:
    """Outputs signalled when an interaction finalizes."""

    issue_key: str
    status: str
    updated_by: str | None
    interactivity: Any = None
    extra: dict[str, Any] = field(default_factory=dict)

    def as_outputs(self) -> dict[str, Any]:
        outputs = {
            "issueKey": self.issue_key,
            "status": self.status,
            "updatedBy": self.updated_by,
            **self.extra,
        }
        if self.interactivity is not None:
            outputs["interactivity"] = self.interactivity
        return outputs


@runtime_checkable
class Notifier(Protocol):
    """Protocol for the chat surface the state machine talks to."""

    def post_status(self, ctx: InteractionContext, view: StatusView) -> str | None:
        """Post a new status message. Returns its message timestamp."""
        ...

    def update_status(self, ctx: InteractionContext, view: StatusView) -> None:
        """Replace the status message referenced by ctx.message_ts."""
        ...

    def post_private(self, ctx: InteractionContext, actor: str, text: str) -> None:
        """Post a message only the actor can see."""
        ...

    def post_summary(
        self,
        ctx: InteractionContext,
        summary: TransitionSummary,
        mode: str = "channel",
    ) -> None:
        """Announce an applied transition (channel, DM or private)."""
        ...

    def complete(self, ctx: InteractionContext, completion: Completion) -> None:
        """Signal that the interaction is finished."""
        ...
