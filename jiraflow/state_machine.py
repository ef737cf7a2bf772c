"""State machine controller.

One status message per issue drives the lifecycle:

    start    -> post status + "Refresh Status"
    refresh  -> re-read status; show "Execute: <label>" or "no next step"
    execute  -> re-read status, recompute the step, authorize, apply,
                wait for Jira to reflect it, announce, back to "Refresh Status"

Nothing is remembered between clicks. Every handler starts from a fresh
Jira read, so a stale button can never apply a stale transition: at worst
the fresh read turns it into "no next step" or a different step.

Execute interactions finalize (signal completion to the caller) exactly
once on every exit path.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from jiraflow.flow import FlowStep, FlowTable, NextStep, decide_next
from jiraflow.interfaces import (
    UNKNOWN_STATUS,
    Affordance,
    Completion,
    InteractionContext,
    IssueTracker,
    Notifier,
    StatusView,
    TransitionSummary,
)
from jiraflow.issue_key import InvalidIssueKeyError, normalize_issue_key
from jiraflow.jira.errors import JiraApiError
from jiraflow.logger import clear_issue_context, get_logger, set_issue_context
from jiraflow.polling import ConsistencyPoller
from jiraflow.security import ApprovalPolicy, authorize_step
from jiraflow.slack_blocks import ACTION_EXECUTE, ACTION_REFRESH, BlockAction
from jiraflow.telemetry import TransitionMetrics, get_tracer, record_transition

logger = get_logger(__name__)


class Outcome(Enum):
    STARTED = "started"
    REFRESHED = "refreshed"
    NO_NEXT_STEP = "no_next_step"
    DENIED = "denied"
    APPLIED = "applied"
    FAILED = "failed"


@dataclass
class InteractionResult:
    """What one interaction did, for callers and tests."""

    outcome: Outcome
    issue_key: str
    status: str
    actor: str | None = None
    before: str | None = None
    after: str | None = None
    transition_name: str | None = None
    error: str | None = None
    message_ts: str | None = None
    completed: bool = False


class _SafeFormatDict(dict):
    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


class _Finalizer:
    """Signals completion for one interaction, at most once."""

    def __init__(
        self, notifier: Notifier, ctx: InteractionContext, issue_key: str, actor: str | None
    ) -> None:
        self.notifier = notifier
        self.ctx = ctx
        self.issue_key = issue_key
        self.actor = actor
        self.done = False

    def finalize(self, status: str) -> bool:
        if self.done:
            logger.debug(f"Interaction for {self.issue_key} already finalized")
            return False
        self.done = True
        completion = Completion(
            issue_key=self.issue_key,
            status=status,
            updated_by=self.actor,
            interactivity=self.ctx.interactivity,
        )
        try:
            self.notifier.complete(self.ctx, completion)
        except Exception as e:
            logger.error(f"Failed to signal completion for {self.issue_key}: {e}")
        return True


class StateMachineController:
    """Drives one issue's status message through refresh/execute cycles."""

    def __init__(
        self,
        tracker: IssueTracker,
        notifier: Notifier,
        flow_table: FlowTable,
        policy: ApprovalPolicy,
        poller: ConsistencyPoller,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the controller.

        Args:
            tracker: Remote issue tracker (source of truth for status)
            notifier: Chat surface to render to
            flow_table: Status -> next step mapping
            policy: Approval policy for the authorization gate
            poller: Retry/wait-for-change policies around tracker reads
            clock: Monotonic clock used to time transition confirmation
        """
        self.tracker = tracker
        self.notifier = notifier
        self.flow_table = flow_table
        self.policy = policy
        self.poller = poller
        self._clock = clock

    def _view(
        self,
        issue_key: str,
        status: str,
        actor: str | None = None,
        note: str | None = None,
        tone: str = "info",
        next_step: NextStep | None = None,
        headline: str = "",
    ) -> StatusView:
        return StatusView(
            issue_key=issue_key,
            issue_url=self.tracker.browse_url(issue_key),
            status=status,
            affordance=Affordance.EXECUTE if next_step else Affordance.REFRESH,
            actor=actor,
            note=note,
            tone=tone,
            execute_label=next_step.label if next_step else None,
            headline=headline or f"Jira: {issue_key}",
        )

    def _render(self, ctx: InteractionContext, view: StatusView) -> None:
        try:
            self.notifier.update_status(ctx, view)
        except Exception as e:
            logger.warning(f"Failed to update status message for {view.issue_key}: {e}")

    def _tell_actor(self, ctx: InteractionContext, actor: str | None, text: str) -> None:
        if not actor:
            return
        try:
            self.notifier.post_private(ctx, actor, text)
        except Exception as e:
            logger.warning(f"Failed to send private message to {actor}: {e}")

    def start(
        self,
        channel_id: str,
        issue_input: str,
        interactivity=None,
        execution_id: str | None = None,
    ) -> InteractionResult:
        """Post the initial status message with a Refresh button.

        No transition is attempted. Read and post failures propagate: there
        is no message yet to render them into.

        Raises:
            InvalidIssueKeyError: If no issue key can be derived from the input
            RemoteReadError: If the status cannot be read
        """
        issue_key = normalize_issue_key(issue_input)
        set_issue_context(issue_key)
        try:
            status = self.poller.read_with_retry(issue_key)
            ctx = InteractionContext(
                channel_id=channel_id, execution_id=execution_id, interactivity=interactivity
            )
            view = self._view(
                issue_key,
                status,
                note="Click Refresh Status to load the next executable action.",
            )
            message_ts = self.notifier.post_status(ctx, view)
            logger.info(f"Starting state machine for {issue_key} at status '{status}'")
            return InteractionResult(
                Outcome.STARTED, issue_key, status, message_ts=message_ts
            )
        finally:
            clear_issue_context()

    def refresh(self, ctx: InteractionContext, issue_key: str, actor: str | None) -> InteractionResult:
        """Re-read the status and offer the next step (or none).

        Never mutates Jira and never finalizes: the message stays interactive.
        """
        set_issue_context(issue_key)
        try:
            try:
                current = self.poller.read_with_retry(issue_key)
            except JiraApiError as e:
                logger.warning(f"Refresh could not read status of {issue_key}: {e}")
                self._tell_actor(ctx, actor, f"Could not read the status of {issue_key}: {e}")
                return InteractionResult(
                    Outcome.FAILED, issue_key, UNKNOWN_STATUS, actor=actor, error=str(e)
                )

            next_step = decide_next(self.flow_table, current)
            if next_step is None:
                logger.info(f"No next step for {issue_key} at status '{current}'")
                self._render(
                    ctx,
                    self._view(
                        issue_key,
                        current,
                        actor,
                        note="No next step for this status.",
                        headline=f"Refreshed: {issue_key}",
                    ),
                )
                return InteractionResult(Outcome.NO_NEXT_STEP, issue_key, current, actor=actor)

            logger.info(
                f"Refreshed {issue_key}: '{current}' -> next '{next_step.transition_name}'"
            )
            self._render(
                ctx,
                self._view(
                    issue_key,
                    current,
                    actor,
                    note=f"Ready. Next transition: {next_step.transition_name}",
                    tone="success",
                    next_step=next_step,
                    headline=f"Refreshed: {issue_key}",
                ),
            )
            return InteractionResult(
                Outcome.REFRESHED,
                issue_key,
                current,
                actor=actor,
                transition_name=next_step.transition_name,
            )
        finally:
            clear_issue_context()

    def execute(self, ctx: InteractionContext, issue_input: str, actor: str | None) -> InteractionResult:
        """Apply the step that is legal *now* and finalize exactly once.

        Remote failures are rendered, not raised. Anything unexpected is
        rendered best-effort, finalized, then re-raised.
        """
        finalizer = _Finalizer(self.notifier, ctx, (issue_input or "").strip(), actor)
        result: InteractionResult | None = None

        with get_tracer().start_as_current_span("jiraflow.execute") as span:
            try:
                result = self._execute(ctx, issue_input, actor, finalizer)
                span.set_attribute("jiraflow.outcome", result.outcome.value)
                return result
            except Exception as e:
                logger.error(f"Unexpected error executing {finalizer.issue_key}: {e}", exc_info=True)
                span.record_exception(e)
                self._render(
                    ctx,
                    self._view(
                        finalizer.issue_key,
                        UNKNOWN_STATUS,
                        actor,
                        note=f"Failed: {e}",
                        tone="warning",
                    ),
                )
                raise
            finally:
                if not finalizer.done:
                    finalizer.finalize(result.status if result else UNKNOWN_STATUS)
                clear_issue_context()

    def _execute(
        self,
        ctx: InteractionContext,
        issue_input: str,
        actor: str | None,
        finalizer: _Finalizer,
    ) -> InteractionResult:
        try:
            issue_key = normalize_issue_key(issue_input)
        except InvalidIssueKeyError as e:
            self._tell_actor(ctx, actor, str(e))
            finalizer.finalize(UNKNOWN_STATUS)
            return InteractionResult(
                Outcome.FAILED, "", UNKNOWN_STATUS, actor=actor, error=str(e), completed=True
            )

        finalizer.issue_key = issue_key
        set_issue_context(issue_key)

        # Re-check: the status may have changed since the Execute button was rendered
        try:
            before = self.poller.read_with_retry(issue_key)
        except JiraApiError as e:
            logger.warning(f"Execute could not read status of {issue_key}: {e}")
            self._render(
                ctx,
                self._view(
                    issue_key,
                    UNKNOWN_STATUS,
                    actor,
                    note=f"Could not read the current status: {e}",
                    tone="warning",
                    headline=f"Transition failed: {issue_key}",
                ),
            )
            finalizer.finalize(UNKNOWN_STATUS)
            self._record(Outcome.FAILED, issue_key, "")
            return InteractionResult(
                Outcome.FAILED, issue_key, UNKNOWN_STATUS, actor=actor, error=str(e), completed=True
            )

        next_step = decide_next(self.flow_table, before)
        if next_step is None:
            logger.info(f"No next step for {issue_key} at status '{before}'")
            self._render(
                ctx,
                self._view(
                    issue_key,
                    before,
                    actor,
                    note="No next step available. Please refresh.",
                    headline=f"No next step: {issue_key}",
                ),
            )
            finalizer.finalize(before)
            self._record(Outcome.NO_NEXT_STEP, issue_key, "")
            return InteractionResult(
                Outcome.NO_NEXT_STEP, issue_key, before, actor=actor, before=before, completed=True
            )

        decision = authorize_step(actor, before, next_step, self.policy, issue_key)
        if not decision.allowed:
            logger.info(f"Transition '{next_step.transition_name}' denied for {actor} on {issue_key}")
            self._tell_actor(ctx, actor, decision.denial_text)
            if decision.restricted_to:
                public_note = f"Restricted: {decision.denial_text[0].lower()}{decision.denial_text[1:]}"
            else:
                public_note = "Restricted: this step is limited to specific users."
            self._render(
                ctx,
                self._view(
                    issue_key,
                    before,
                    actor,
                    note=public_note,
                    tone="warning",
                    next_step=next_step,
                    headline=f"Restricted: {issue_key}",
                ),
            )
            finalizer.finalize(before)
            self._record(Outcome.DENIED, issue_key, next_step.transition_name)
            return InteractionResult(
                Outcome.DENIED,
                issue_key,
                before,
                actor=actor,
                before=before,
                transition_name=next_step.transition_name,
                completed=True,
            )

        submitted = self._clock()
        try:
            self.tracker.transition_issue(issue_key, next_step.transition_name)
        except JiraApiError as e:
            logger.warning(f"Transition '{next_step.transition_name}' failed for {issue_key}: {e}")
            after_fail = self.poller.read_best_effort(issue_key)
            self._render(
                ctx,
                self._view(
                    issue_key,
                    after_fail,
                    actor,
                    note=f"Failed: {next_step.transition_name}\n`{e}`",
                    tone="warning",
                    headline=f"Transition failed: {issue_key}",
                ),
            )
            finalizer.finalize(after_fail)
            self._record(Outcome.FAILED, issue_key, next_step.transition_name)
            return InteractionResult(
                Outcome.FAILED,
                issue_key,
                after_fail,
                actor=actor,
                before=before,
                transition_name=next_step.transition_name,
                error=str(e),
                completed=True,
            )

        confirmed = self.poller.wait_for_change(issue_key, before)
        confirm_ms = int((self._clock() - submitted) * 1000)
        logger.info(
            f"Transition applied to {issue_key}: {before} -> {confirmed.status} "
            f"(via {next_step.transition_name})"
        )

        summary = TransitionSummary(
            issue_key=issue_key,
            issue_url=self.tracker.browse_url(issue_key),
            before=before,
            after=confirmed.status,
            transition_name=next_step.transition_name,
            actor=actor or "",
            confirmed=confirmed.changed,
        )
        try:
            summary.text = self._notify_text(next_step.step, summary)
        except (ValueError, LookupError, AttributeError) as e:
            logger.warning(f"Notify template for {issue_key} failed, using default summary: {e}")
        mode = next_step.step.notify.mode.value if next_step.step.notify else "channel"
        try:
            self.notifier.post_summary(ctx, summary, mode=mode)
        except Exception as e:
            logger.warning(f"Failed to post transition summary for {issue_key}: {e}")

        self._render(
            ctx,
            self._view(
                issue_key,
                confirmed.status,
                actor,
                note=(
                    f"Applied: {next_step.transition_name}. "
                    "Click Refresh Status to load the next action."
                ),
                tone="success",
                headline=f"Updated: {issue_key}",
            ),
        )
        finalizer.finalize(confirmed.status)
        self._record(
            Outcome.APPLIED,
            issue_key,
            next_step.transition_name,
            duration_ms=confirm_ms,
            confirmed=confirmed.changed,
            polls=confirmed.polls,
        )
        return InteractionResult(
            Outcome.APPLIED,
            issue_key,
            confirmed.status,
            actor=actor,
            before=before,
            after=confirmed.status,
            transition_name=next_step.transition_name,
            completed=True,
        )

    @staticmethod
    def _notify_text(step: FlowStep, summary: TransitionSummary) -> str | None:
        if step.notify is None or not step.notify.text:
            return None
        return step.notify.text.format_map(
            _SafeFormatDict(
                issue_key=summary.issue_key,
                issue_url=summary.issue_url,
                before=summary.before,
                after=summary.after,
                transition=summary.transition_name,
                actor=summary.actor,
            )
        )

    def _record(
        self,
        outcome: Outcome,
        issue_key: str,
        transition_name: str,
        duration_ms: int = 0,
        confirmed: bool = False,
        polls: int = 0,
    ) -> None:
        record_transition(
            TransitionMetrics(
                outcome=outcome.value,
                issue_key=issue_key,
                transition_name=transition_name,
                duration_ms=duration_ms,
                confirmed=confirmed,
                polls=polls,
            )
        )

    def handle_block_action(self, action: BlockAction) -> InteractionResult:
        """Dispatch a Refresh or Execute button click.

        Raises:
            InvalidIssueKeyError: Refresh click without a usable issue key
            ValueError: Unknown action id
        """
        ctx = InteractionContext(
            channel_id=action.channel_id,
            message_ts=action.message_ts,
            execution_id=action.execution_id,
            interactivity=action.interactivity,
        )
        if action.action_id == ACTION_REFRESH:
            return self.refresh(ctx, normalize_issue_key(action.issue_key), action.actor)
        if action.action_id == ACTION_EXECUTE:
            return self.execute(ctx, action.issue_key or "", action.actor)
        raise ValueError(f"Unsupported action: {action.action_id}")
