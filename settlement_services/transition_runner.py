"""
settlement_services.transition_runner -- Guarded, audited status change.

Responsibility:
    The single code path through which a module moves an entity along its
    workflow: capability check, transition lookup and guard evaluation,
    version-checked persistence, and the audit record.  Blocked attempts
    are audited before the typed error is raised.

Architecture position:
    Services layer.  Modules call ``apply_transition`` with an entity they
    have just re-read inside the aggregate lock.

Invariants enforced:
    - The persisted status is always ``TransitionResult.new_state`` from the
      transition table; callers cannot write an arbitrary status.
    - The UPDATE carries the version the guard was evaluated against, so a
      concurrent change between guard and write raises OptimisticLockError
      instead of acting on stale guard state.
    - Audit action names are ``<WORKFLOW>_<ACTION>``; blocked attempts get
      the ``BLOCKED_`` prefix from the audit trail.
"""

from __future__ import annotations

from typing import Any, Mapping, TypeVar

from settlement_kernel.db.base import TrackedBase
from settlement_kernel.domain.actor import Actor
from settlement_kernel.domain.workflow import TransitionResult, Workflow
from settlement_kernel.exceptions import GateNotSatisfiedError, InvalidTransitionError
from settlement_kernel.logging_config import LogContext, get_logger
from settlement_kernel.services.entity_store import EntityStore
from settlement_services.context import SettlementContext
from settlement_services.rbac_authority import get_permission_for_transition

logger = get_logger("services.transition_runner")

M = TypeVar("M", bound=TrackedBase)


def audit_action(workflow: Workflow, action: str) -> str:
    return f"{workflow.name}_{action}".upper()


def apply_transition(
    ctx: SettlementContext,
    *,
    workflow: Workflow,
    store: EntityStore[M],
    entity: M,
    entity_key: str,
    module: str,
    actor: Actor,
    action: str | None = None,
    guard_context: Mapping[str, Any] | None = None,
    stamp_fields: Mapping[str, tuple[str, str | None]] | None = None,
    extra_patch: Mapping[str, Any] | None = None,
    reason: str | None = None,
    authorize: bool = True,
) -> tuple[M, TransitionResult]:
    """
    Move ``entity`` along ``workflow``.

    Args:
        action: The transition to take, or None for the forward successor.
        stamp_fields: action -> (by_field, date_field) stamped with the
            actor and today's date when that action fires.
        extra_patch: Additional columns written in the same update.
        authorize: False for internal follow-on moves (a cascade syncing
            a dependent entity); the triggering call was already authorized.

    Raises:
        PermissionDeniedError: the actor lacks the transition's permission.
        GateNotSatisfiedError: a guard failed.
        InvalidTransitionError: no such transition from the current state.
    """
    from_state = entity.status
    transition = ctx.executor.resolve(workflow, from_state, action)

    if authorize and transition is not None:
        permission = get_permission_for_transition(workflow.name, transition.action)
        if permission is not None:
            ctx.authorize(
                actor,
                permission,
                module=module,
                entity_type=store.entity_type,
                entity_id=entity_key,
                from_state=from_state,
            )

    with LogContext.bind(entity_id=entity_key):
        result = ctx.executor.execute_transition(
            workflow,
            store.entity_type,
            entity_key,
            from_state,
            action,
            dict(guard_context or {}),
        )

    attempted = result.action or action or "advance"
    if not result.success:
        ctx.audit.append(
            action=audit_action(workflow, attempted),
            module=module,
            entity_type=store.entity_type,
            entity_id=entity_key,
            old_value={"status": from_state},
            actor=actor,
            reason=result.reason,
            blocked=True,
        )
        if result.failed_guard is not None:
            raise GateNotSatisfiedError(
                gate=result.failed_guard,
                reason=result.reason,
                entity_type=store.entity_type,
                entity_id=entity_key,
            )
        raise InvalidTransitionError(
            entity_type=store.entity_type,
            entity_id=entity_key,
            from_state=from_state,
            action=attempted,
            reason=result.reason,
        )

    patch: dict[str, Any] = {"status": result.new_state}
    stamps = (stamp_fields or {}).get(attempted)
    if stamps is not None:
        by_field, date_field = stamps
        patch[by_field] = actor.email
        if date_field is not None:
            patch[date_field] = ctx.today()
    patch.update(extra_patch or {})

    updated = store.update(
        entity.id,
        patch,
        expected_version=entity.version,
        actor_email=actor.email,
    )

    ctx.audit.append(
        action=audit_action(workflow, attempted),
        module=module,
        entity_type=store.entity_type,
        entity_id=entity_key,
        old_value={"status": from_state},
        new_value={k: v for k, v in patch.items() if not k.endswith(("_by", "_date"))},
        actor=actor,
        reason=reason,
    )
    logger.info(
        f"{workflow.name}_transition_completed",
        extra={
            "entity_id": entity_key,
            "from_state": from_state,
            "to_state": result.new_state,
            "action": attempted,
        },
    )
    return updated, result
