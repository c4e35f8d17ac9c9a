"""
Claim Gate (``settlement_modules.claim.service``).

Claims are accepted only once a Batch nota of the claim's batch is Paid.
Review walks the claim Submitted -> Checked -> Doc Verified -> Invoiced;
check and verify re-evaluate the gate, and invoicing creates the claim
nota.  Rejection returns the claim to Draft for resubmission.
"""

from __future__ import annotations

from decimal import Decimal

from settlement_kernel.domain.actor import Actor, Role
from settlement_kernel.domain.statuses import ClaimStatus, NotaStatus, NotaType, Severity
from settlement_kernel.domain.values import ZERO, round_money, to_decimal
from settlement_kernel.exceptions import GateNotSatisfiedError
from settlement_kernel.logging_config import LogContext, get_logger
from settlement_kernel.models import Claim
from settlement_modules.claim.workflows import CLAIM_STAMPS, CLAIM_WORKFLOW
from settlement_modules.nota.service import NotaService
from settlement_services.context import SettlementContext
from settlement_services.transition_runner import apply_transition

logger = get_logger("modules.claim")

# Reinsurer's share of a claim on the quota-share treaty
CLAIM_SHARE_RATE = Decimal("0.44")

REVIEW_ACTIONS = ("check", "verify", "invoice", "reject", "resubmit")


class ClaimService:
    def __init__(self, ctx: SettlementContext, notas: NotaService):
        self._ctx = ctx
        self._stores = ctx.stores
        self._notas = notas

    def get(self, claim_id: str) -> Claim:
        return self._stores.claims.get_by(claim_id=claim_id)

    def claims_for(self, batch_id: str) -> list[Claim]:
        return self._stores.claims.filter(batch_id=batch_id)

    def can_submit_claim(self, batch_id: str) -> bool:
        """True once some Batch nota of ``batch_id`` is Paid."""
        return (
            self._stores.notas.count(
                nota_type=NotaType.BATCH.value,
                reference_id=batch_id,
                status=NotaStatus.PAID.value,
            )
            > 0
        )

    def submit_claim(
        self,
        claim_id: str,
        batch_id: str,
        debtor_id: str,
        claim_amount: Decimal,
        actor: Actor,
        remarks: str | None = None,
    ) -> Claim:
        """
        Submit a claim on a debtor of a settled batch.  Idempotent per claim_id.

        Raises:
            GateNotSatisfiedError: no Batch nota of the batch is Paid, or the
                debtor does not belong to the batch.
        """
        claim_amount = to_decimal(claim_amount)
        if claim_amount <= ZERO:
            raise ValueError(f"claim_amount must be positive, got {claim_amount}")
        self._ctx.authorize(actor, "claim.submit", module="claim", entity_type="Claim", entity_id=claim_id)

        with self._ctx.batch_lock(batch_id), LogContext.bind(entity_id=claim_id):
            block = None
            if not self.can_submit_claim(batch_id):
                block = ("batch_nota_paid", f"No paid nota for batch {batch_id}")
            else:
                debtor = self._stores.debtors.get(debtor_id)
                if debtor.batch_id != batch_id:
                    block = ("debtor_in_batch", f"Debtor {debtor_id} is not part of batch {batch_id}")
            if block is not None:
                gate, reason = block
                self._ctx.audit.append(
                    action="CLAIM_SUBMIT",
                    module="claim",
                    entity_type="Claim",
                    entity_id=claim_id,
                    new_value={"batch_id": batch_id, "claim_amount": claim_amount},
                    actor=actor,
                    reason=reason,
                    blocked=True,
                )
                raise GateNotSatisfiedError(gate=gate, reason=reason, entity_type="Claim", entity_id=claim_id)

            claim, created = self._stores.claims.get_or_create(
                claim_id,
                {
                    "batch_id": batch_id,
                    "debtor_id": str(debtor_id),
                    "contract_id": debtor.contract_id,
                    "claim_amount": claim_amount,
                    "share_amount": round_money(claim_amount * CLAIM_SHARE_RATE),
                    "status": ClaimStatus.SUBMITTED.value,
                    "remarks": remarks,
                },
                key_field="claim_id",
                actor_email=actor.email,
            )

        if created:
            self._ctx.audit.append(
                action="CLAIM_SUBMITTED",
                module="claim",
                entity_type="Claim",
                entity_id=claim_id,
                new_value={
                    "batch_id": batch_id,
                    "claim_amount": claim_amount,
                    "share_amount": claim.share_amount,
                },
                actor=actor,
            )
            self._ctx.announce(
                title="Claim Submitted",
                message=f"Claim {claim_id} on batch {batch_id} for {claim_amount}",
                module="claim",
                reference_id=claim_id,
                entity_kind="Claim",
                to_status=ClaimStatus.SUBMITTED.value,
                target_role=Role.TUGURE.value,
                severity=Severity.ACTION_REQUIRED.value,
                variables={"claim_id": claim_id, "batch_id": batch_id, "claim_amount": claim_amount},
            )
            logger.info(
                "claim_submitted",
                extra={"claim_id": claim_id, "batch_id": batch_id, "claim_amount": str(claim_amount)},
            )
        return claim

    def review(self, claim_id: str, action: str, actor: Actor, remarks: str | None = None) -> Claim:
        """
        Apply a review action: check, verify, invoice, reject or resubmit.

        ``invoice`` creates the claim nota before the claim moves to
        Invoiced, so an Invoiced claim always carries its nota number.
        """
        if action not in REVIEW_ACTIONS:
            raise ValueError(f"Unknown claim review action {action!r}")
        claim = self.get(claim_id)
        with self._ctx.batch_lock(claim.batch_id), LogContext.bind(entity_id=claim_id):
            claim = self.get(claim_id)
            extra: dict = {}
            if remarks is not None:
                extra["remarks"] = remarks
            if action == "invoice" and claim.status == ClaimStatus.DOC_VERIFIED.value:
                self._ctx.authorize(
                    actor, "claim.review", module="claim", entity_type="Claim", entity_id=claim_id
                )
                extra["nota_number"] = self._notas.create_for_claim(
                    claim_id, actor, authorize=False
                ).nota_number

            claim, _ = apply_transition(
                self._ctx,
                workflow=CLAIM_WORKFLOW,
                store=self._stores.claims,
                entity=claim,
                entity_key=claim_id,
                module="claim",
                actor=actor,
                action=action,
                guard_context={
                    "batch_nota_paid": self.can_submit_claim(claim.batch_id),
                    "reason": remarks,
                },
                stamp_fields=CLAIM_STAMPS,
                extra_patch=extra,
                reason=remarks,
            )

        self._ctx.notifier.notify(
            title=f"Claim {claim.status}",
            message=f"Claim {claim_id} is now {claim.status}",
            severity=Severity.INFO.value,
            module="claim",
            reference_id=claim_id,
            target_role=Role.BRINS.value if action != "resubmit" else Role.TUGURE.value,
        )
        return claim
