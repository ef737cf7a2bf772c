"""Authorization and access control for state machine transitions."""

from jiraflow.security.authorization import (
    ActorCategory,
    ApprovalPolicy,
    AuthorizationDecision,
    authorize_step,
)

__all__ = ["ActorCategory", "ApprovalPolicy", "AuthorizationDecision", "authorize_step"]
