"""Authorization for state machine transitions."""

import logging
from dataclasses import dataclass
from enum import Enum

from jiraflow.config import Config
from jiraflow.flow import NextStep

logger = logging.getLogger(__name__)


class ActorCategory(Enum):
    """Why an actor was allowed or denied.

    - ALLOWED: Step is unrestricted
    - APPROVER: Actor is the configured approver running the approval step
    - GUARDED: Actor is on the step's allow-list
    - UNKNOWN: Actor could not be determined (security fail-safe)
    - BLOCKED: Actor is known but not permitted for this step
    """

    ALLOWED = "allowed"
    APPROVER = "approver"
    GUARDED = "guarded"
    UNKNOWN = "unknown"
    BLOCKED = "blocked"


@dataclass(frozen=True)
class ApprovalPolicy:
    """Identifies the approval transition and who may run it.

    Attributes:
        approver_id: Slack user id of the only actor who may approve
        approval_status: Status the approval transition starts from
                         (None matches the transition name from any status)
        approval_transition: Name of the approval transition
    """

    approver_id: str
    approval_status: str | None
    approval_transition: str

    @classmethod
    def from_config(cls, config: Config) -> "ApprovalPolicy":
        return cls(
            approver_id=config.require("APPROVER_USER_ID"),
            approval_status=config.statuses.get("PENDING") or None,
            approval_transition=config.approval_transition,
        )

    def is_approval(self, current_status: str, transition_name: str) -> bool:
        if transition_name != self.approval_transition:
            return False
        return self.approval_status is None or current_status == self.approval_status


@dataclass(frozen=True)
class AuthorizationDecision:
    """Outcome of an authorization check.

    Attributes:
        allowed: Whether the transition may be applied
        category: Why
        restricted_to: Actors that may be named in a denial message. Empty
                       for guarded steps, so allow-lists are never revealed.
    """

    allowed: bool
    category: ActorCategory
    restricted_to: tuple[str, ...] = ()

    @property
    def denial_text(self) -> str:
        if self.allowed:
            return ""
        if self.restricted_to:
            names = ", ".join(f"<@{actor}>" for actor in self.restricted_to)
            return f"Only {names} can approve."
        return "You are not allowed to run this step."


def authorize_step(
    actor: str | None,
    current_status: str,
    next_step: NextStep,
    policy: ApprovalPolicy,
    context_key: str,
) -> AuthorizationDecision:
    """Check whether an actor may apply the next step.

    Fail-safe order:
    - Unknown actor (None/empty) -> UNKNOWN (denied, WARNING log)
    - Step is the approval transition -> only the approver passes, else
      BLOCKED with the approver named. A guard on the step can only narrow
      this further.
    - Step has a guard -> GUARDED if on the allow-list, else BLOCKED
    - Otherwise -> ALLOWED

    Args:
        actor: Slack user id who clicked (or None if unknown)
        current_status: Freshly read Jira status
        next_step: Step decided for that status
        policy: Approval policy from config
        context_key: Issue key for audit logging

    Returns:
        AuthorizationDecision. Denial is a normal outcome, not an exception.
    """
    transition = next_step.transition_name

    if not actor:
        logger.warning(
            f"BLOCKED - Could not determine actor for {context_key} ({transition}). "
            "Skipping for security."
        )
        return AuthorizationDecision(False, ActorCategory.UNKNOWN)

    guard = next_step.step.guard

    if policy.is_approval(current_status, transition):
        if actor != policy.approver_id:
            logger.warning(
                f"BLOCKED - Approval by '{actor}' not allowed for {context_key} "
                f"(approver: {policy.approver_id})."
            )
            return AuthorizationDecision(
                False, ActorCategory.BLOCKED, restricted_to=(policy.approver_id,)
            )
        if guard is not None and actor not in guard.allow_users:
            logger.warning(
                f"BLOCKED - Approver '{actor}' is not on the allow-list for "
                f"'{transition}' on {context_key}."
            )
            return AuthorizationDecision(False, ActorCategory.BLOCKED)
        logger.info(f"Approval by approver ('{actor}') for {context_key}")
        return AuthorizationDecision(True, ActorCategory.APPROVER)

    if guard is not None:
        if actor in guard.allow_users:
            logger.info(f"Guarded step '{transition}' allowed for '{actor}' on {context_key}")
            return AuthorizationDecision(True, ActorCategory.GUARDED)
        logger.warning(
            f"BLOCKED - '{actor}' is not on the allow-list for '{transition}' on {context_key}."
        )
        return AuthorizationDecision(False, ActorCategory.BLOCKED)

    logger.debug(f"Unrestricted step '{transition}' by '{actor}' for {context_key}")
    return AuthorizationDecision(True, ActorCategory.ALLOWED)
