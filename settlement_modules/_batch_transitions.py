"""
Batch status moves shared by the batch, nota and settlement services.

Every batch transition, whether requested directly or pulled along by a
nota, goes through ``transition_batch`` so the actor/date stamps and the
debtors' mirrored ``batch_status`` are written the same way.
"""

from __future__ import annotations

from typing import Any, Mapping

from settlement_kernel.domain.actor import Actor
from settlement_kernel.domain.workflow import TransitionResult
from settlement_kernel.models import Batch
from settlement_modules.batch.workflows import BATCH_STAMPS, BATCH_WORKFLOW
from settlement_services.context import SettlementContext
from settlement_services.transition_runner import apply_transition


def transition_batch(
    ctx: SettlementContext,
    batch: Batch,
    actor: Actor,
    action: str | None = None,
    *,
    guard_context: Mapping[str, Any] | None = None,
    extra_patch: Mapping[str, Any] | None = None,
    reason: str | None = None,
    authorize: bool = True,
) -> tuple[Batch, TransitionResult]:
    batch, result = apply_transition(
        ctx,
        workflow=BATCH_WORKFLOW,
        store=ctx.stores.batches,
        entity=batch,
        entity_key=batch.batch_id,
        module="batch",
        actor=actor,
        action=action,
        guard_context=guard_context,
        stamp_fields=BATCH_STAMPS,
        extra_patch=extra_patch,
        reason=reason,
        authorize=authorize,
    )
    sync_debtor_batch_status(ctx, batch, actor)
    return batch, result


def sync_debtor_batch_status(ctx: SettlementContext, batch: Batch, actor: Actor) -> int:
    """Mirror the batch status onto its debtors.  Returns the number updated."""
    updated = 0
    for debtor in ctx.stores.debtors.filter(batch_id=batch.batch_id):
        if debtor.batch_status == batch.status:
            continue
        ctx.stores.debtors.update(
            debtor.id,
            {"batch_status": batch.status},
            expected_version=debtor.version,
            actor_email=actor.email,
        )
        updated += 1
    return updated
