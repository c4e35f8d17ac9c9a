"""
Payment Intent Service (``settlement_modules.payment_intent.service``).

Planned payments against an issued nota: Draft -> Submitted -> Approved |
Rejected.  Intents are planning only; money is recorded through
reconciliation, which completes the intent it is matched to.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from settlement_kernel.domain.actor import Actor, Role
from settlement_kernel.domain.statuses import IntentStatus, NotaStatus, PaymentType, Severity
from settlement_kernel.domain.values import ZERO, to_decimal
from settlement_kernel.exceptions import GateNotSatisfiedError
from settlement_kernel.logging_config import get_logger
from settlement_kernel.models import PaymentIntent
from settlement_kernel.utils.idempotency import generate_idempotency_key
from settlement_modules.payment_intent.workflows import INTENT_STAMPS, PAYMENT_INTENT_WORKFLOW
from settlement_services.context import SettlementContext
from settlement_services.transition_runner import apply_transition

logger = get_logger("modules.payment_intent")

INTENT_ELIGIBLE_NOTA_STATES = frozenset({NotaStatus.ISSUED.value, NotaStatus.CONFIRMED.value})


class PaymentIntentService:
    def __init__(self, ctx: SettlementContext):
        self._ctx = ctx
        self._stores = ctx.stores

    def get(self, intent_id: str) -> PaymentIntent:
        return self._stores.intents.get_by(intent_id=intent_id)

    def intents_for(self, nota_number: str) -> list[PaymentIntent]:
        return self._stores.intents.filter(nota_number=nota_number)

    def create_intent(
        self,
        nota_number: str,
        payment_type: PaymentType | str,
        planned_amount: Decimal,
        actor: Actor,
        planned_date: date | None = None,
        remarks: str | None = None,
    ) -> PaymentIntent:
        """Plan a payment for an Issued or Confirmed nota."""
        payment_type = PaymentType(payment_type)
        planned_amount = to_decimal(planned_amount)
        if planned_amount <= ZERO:
            raise ValueError(f"planned_amount must be positive, got {planned_amount}")
        self._ctx.authorize(
            actor,
            "payment_intent.create",
            module="payment_intent",
            entity_type="Nota",
            entity_id=nota_number,
        )

        nota = self._stores.notas.get_by(nota_number=nota_number)
        with self._ctx.nota_lock(nota):
            nota = self._stores.notas.get_by(nota_number=nota_number)
            if nota.status not in INTENT_ELIGIBLE_NOTA_STATES:
                reason = f"Nota is {nota.status}; intents need an issued or confirmed nota"
                self._ctx.audit.append(
                    action="PAYMENT_INTENT_CREATE",
                    module="payment_intent",
                    entity_type="Nota",
                    entity_id=nota_number,
                    old_value={"status": nota.status},
                    actor=actor,
                    reason=reason,
                    blocked=True,
                )
                raise GateNotSatisfiedError(
                    gate="nota_issued", reason=reason, entity_type="Nota", entity_id=nota_number
                )

            sequence = len(self.intents_for(nota_number)) + 1
            intent_id = f"PI-{nota_number}-{sequence}"
            intent, created = self._stores.intents.get_or_create(
                generate_idempotency_key("payment_intent", "planned", intent_id),
                {
                    "intent_id": intent_id,
                    "nota_number": nota_number,
                    "contract_id": nota.contract_id,
                    "payment_type": payment_type.value,
                    "planned_amount": planned_amount,
                    "planned_date": planned_date or self._ctx.today(),
                    "status": IntentStatus.DRAFT.value,
                    "remarks": remarks,
                },
                actor_email=actor.email,
            )

        if created:
            self._ctx.audit.append(
                action="PAYMENT_INTENT_CREATED",
                module="payment_intent",
                entity_type="PaymentIntent",
                entity_id=intent_id,
                new_value={
                    "nota_number": nota_number,
                    "payment_type": payment_type.value,
                    "planned_amount": planned_amount,
                },
                actor=actor,
            )
            self._ctx.notifier.notify(
                title="Payment Intent Created",
                message=f"Payment intent {intent_id} planned for nota {nota_number} (planning only)",
                severity=Severity.INFO.value,
                module="payment_intent",
                reference_id=intent_id,
                target_role=Role.TUGURE.value,
            )
        return intent

    def _move(self, intent_id: str, actor: Actor, action: str, reason: str | None = None) -> PaymentIntent:
        intent = self.get(intent_id)
        extra = {"rejection_reason": reason} if action == "reject" else None
        intent, _ = apply_transition(
            self._ctx,
            workflow=PAYMENT_INTENT_WORKFLOW,
            store=self._stores.intents,
            entity=intent,
            entity_key=intent_id,
            module="payment_intent",
            actor=actor,
            action=action,
            guard_context={"reason": reason},
            stamp_fields=INTENT_STAMPS,
            extra_patch=extra,
            reason=reason,
        )
        return intent

    def submit(self, intent_id: str, actor: Actor) -> PaymentIntent:
        intent = self._move(intent_id, actor, "submit")
        self._ctx.notifier.notify(
            title="Payment Intent Submitted",
            message=f"Payment intent {intent_id} awaits approval",
            severity=Severity.ACTION_REQUIRED.value,
            module="payment_intent",
            reference_id=intent_id,
            target_role=Role.TUGURE.value,
        )
        return intent

    def approve(self, intent_id: str, actor: Actor) -> PaymentIntent:
        return self._move(intent_id, actor, "approve")

    def reject(self, intent_id: str, reason: str, actor: Actor) -> PaymentIntent:
        intent = self._move(intent_id, actor, "reject", reason=reason)
        self._ctx.notifier.notify(
            title="Payment Intent Rejected",
            message=f"Payment intent {intent_id} rejected: {reason}",
            severity=Severity.WARNING.value,
            module="payment_intent",
            reference_id=intent_id,
            target_role=Role.BRINS.value,
        )
        return intent
