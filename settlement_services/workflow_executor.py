"""
settlement_services.workflow_executor -- Workflow transition execution.

Responsibility:
    Resolves the requested transition from a workflow's table and evaluates
    its guard.  Thin coordinator -- it never writes; callers persist the
    new state after a successful result.

Architecture position:
    Services layer.  May import from settlement_kernel (domain) only.

Invariants enforced:
    - Any move not present in the transition table is rejected
      (``no_transition``).
    - A guard without a registered evaluator fails closed.
    - Every evaluation emits one WORKFLOW_TRANSITION trace record with an
      outcome code, so blocked moves are as visible as successful ones.
"""

from __future__ import annotations

import time
from typing import Any, Callable

from settlement_kernel.domain.workflow import Guard, Transition, TransitionResult, Workflow
from settlement_kernel.logging_config import LogContext, get_logger

logger = get_logger("services.workflow_executor")

TRACE_TYPE_WORKFLOW_TRANSITION = "WORKFLOW_TRANSITION"
OUTCOME_SUCCESS = "success"
OUTCOME_GUARD_FAILED = "guard_failed"
OUTCOME_NO_TRANSITION = "no_transition"


def _emit_workflow_trace(
    workflow_name: str,
    action: str,
    entity_type: str,
    entity_id: str,
    from_state: str,
    outcome: str,
    reason: str,
    duration_ms: float,
    to_state: str | None = None,
) -> None:
    record: dict[str, Any] = {
        "trace_type": TRACE_TYPE_WORKFLOW_TRANSITION,
        "workflow": workflow_name,
        "action": action,
        "entity_type": entity_type,
        "entity_id": str(entity_id),
        "from_state": from_state,
        "outcome": outcome,
        "reason": reason,
        "duration_ms": round(duration_ms, 3),
    }
    if to_state is not None:
        record["to_state"] = to_state
    for key, value in LogContext.get_all().items():
        record.setdefault(key, value)
    log = logger.info if outcome == OUTCOME_SUCCESS else logger.warning
    log("workflow_transition", extra=record)


# ---------------------------------------------------------------------------
# Guard evaluation
# ---------------------------------------------------------------------------


def _get_attr(context: Any, key: str, default: Any = None) -> Any:
    """Get attribute from context (object or dict)."""
    if context is None:
        return default
    if hasattr(context, "get") and callable(getattr(context, "get")):
        return context.get(key, default)
    return getattr(context, key, default)


def _flag(name: str) -> Callable[[Any], bool]:
    return lambda ctx: bool(_get_attr(ctx, name, False))


def _all_debtors_reviewed(context: Any) -> bool:
    """Batch close: no debtor may still be awaiting a decision."""
    pending = _get_attr(context, "pending_count")
    return pending is not None and int(pending) == 0


def _reason_provided(context: Any) -> bool:
    reason = _get_attr(context, "reason")
    return bool(reason and str(reason).strip())


def _nota_settled(context: Any) -> bool:
    """Batch mark_paid: the batch nota is Paid, or the settlement cascade is paying it now."""
    if _get_attr(context, "settlement_in_progress", False):
        return True
    return _get_attr(context, "nota_status") == "Paid"


class GuardExecutor:
    """Evaluates workflow guards against context.

    Guards are declared on transitions (name + description).  This executor
    holds the actual evaluation logic per guard name.
    """

    def __init__(self) -> None:
        self._evaluators: dict[str, Callable[[Any], bool]] = {}

    def register(self, guard_name: str, evaluator: Callable[[Any], bool]) -> None:
        self._evaluators[guard_name] = evaluator

    def evaluate(self, guard: Guard, context: Any = None) -> bool:
        """Evaluate a guard against context. Returns True if guard passes."""
        fn = self._evaluators.get(guard.name)
        if fn is None:
            logger.warning("guard_no_evaluator", extra={"guard_name": guard.name})
            return False
        try:
            return bool(fn(context))
        except Exception as e:  # noqa: BLE001
            logger.warning(
                "guard_evaluation_error",
                extra={"guard_name": guard.name, "error": str(e)},
            )
            return False


def default_guard_executor() -> GuardExecutor:
    """Return a GuardExecutor with the settlement guards registered."""
    ex = GuardExecutor()
    # Batch
    ex.register("batch_ready_for_nota", _flag("batch_ready_for_nota"))
    ex.register("all_debtors_reviewed", _all_debtors_reviewed)
    ex.register("nota_settled", _nota_settled)
    ex.register("elevated_role", _flag("elevated"))
    # Shared
    ex.register("reason_provided", _reason_provided)
    # Claim
    ex.register("batch_nota_paid", _flag("batch_nota_paid"))
    return ex


# ---------------------------------------------------------------------------
# WorkflowExecutor
# ---------------------------------------------------------------------------


class WorkflowExecutor:
    """Executes workflow transitions with guard evaluation."""

    def __init__(self, guard_executor: GuardExecutor | None = None) -> None:
        self._guard_executor = guard_executor or default_guard_executor()

    @property
    def guards(self) -> GuardExecutor:
        return self._guard_executor

    def resolve(
        self,
        workflow: Workflow,
        current_state: str,
        action: str | None,
    ) -> Transition | None:
        """The transition for ``action``, or the forward successor when action is None."""
        if action is None:
            return workflow.successor(current_state)
        return workflow.find(current_state, action)

    def execute_transition(
        self,
        workflow: Workflow,
        entity_type: str,
        entity_id: str,
        current_state: str,
        action: str | None,
        context: dict[str, Any] | None = None,
    ) -> TransitionResult:
        """Evaluate a transition.

        ``action=None`` requests the forward successor (``advance``).
        Returns a TransitionResult; the caller persists ``new_state`` on
        success and audits the blocked attempt otherwise.
        """
        t0 = time.monotonic()
        requested = action or "advance"

        transition = self.resolve(workflow, current_state, action)
        if transition is None:
            reason = (
                f"No transition from '{current_state}' via action '{requested}' "
                f"in workflow '{workflow.name}'"
            )
            _emit_workflow_trace(
                workflow_name=workflow.name,
                action=requested,
                entity_type=entity_type,
                entity_id=entity_id,
                from_state=current_state,
                outcome=OUTCOME_NO_TRANSITION,
                reason=reason,
                duration_ms=(time.monotonic() - t0) * 1000,
            )
            return TransitionResult(success=False, reason=reason)

        guard = transition.guard
        if guard is not None and not self._guard_executor.evaluate(guard, context or {}):
            reason = f"Guard not satisfied: {guard.name} ({guard.description})"
            _emit_workflow_trace(
                workflow_name=workflow.name,
                action=transition.action,
                entity_type=entity_type,
                entity_id=entity_id,
                from_state=current_state,
                outcome=OUTCOME_GUARD_FAILED,
                reason=reason,
                duration_ms=(time.monotonic() - t0) * 1000,
                to_state=transition.to_state,
            )
            return TransitionResult(
                success=False,
                reason=reason,
                failed_guard=guard.name,
                action=transition.action,
            )

        _emit_workflow_trace(
            workflow_name=workflow.name,
            action=transition.action,
            entity_type=entity_type,
            entity_id=entity_id,
            from_state=current_state,
            outcome=OUTCOME_SUCCESS,
            reason="",
            duration_ms=(time.monotonic() - t0) * 1000,
            to_state=transition.to_state,
        )
        return TransitionResult(
            success=True, new_state=transition.to_state, action=transition.action
        )
