"""
Nota Lifecycle Service (``settlement_modules.nota.service``).

Responsibility
--------------
Creates batch and claim notas, walks them through Draft -> Issued ->
Confirmed -> Paid, and applies the side effects of each step: the
companion invoice on issue, the automatic payment intent on confirmation,
and the settlement cascade on payment.

Architecture position
---------------------
**Modules layer** -- ``NotaService`` is the sole entry point for nota
operations.  Status moves go through ``apply_transition``; the Paid move
goes through ``SettlementCascade`` so it is identical to the other three
settlement triggers.

Invariants enforced
-------------------
* A batch nota is created from the reviewed ``final_premium_amount`` only.
  Raw batch totals are never used, and a missing or zero final amount is a
  blocked attempt, not a fallback.
* One nota per batch and per claim, one invoice per nota and one automatic
  intent per (contract, nota), all by idempotency key.
* ``amount`` is editable in Draft only; issue sets ``is_immutable`` and the
  ORM lock rejects later edits.  Debit/credit notes overlay the amount at
  read time (``effective_amount``).

Failure modes
-------------
* ``GateNotSatisfiedError`` -- batch not approved/ready, final amounts
  missing, claim not verified.  Audited before raising.
* ``AmountImmutableError`` -- amount edit after issue.  Audited.
* ``InvalidTransitionError`` -- advance from Paid.
"""

from __future__ import annotations

from decimal import Decimal

from settlement_kernel.domain.actor import Actor, Role
from settlement_kernel.domain.statuses import (
    BatchStatus,
    ClaimStatus,
    DebtorInvoiceStatus,
    DebtorReconStatus,
    IntentStatus,
    NoteStatus,
    NotaStatus,
    NotaType,
    PaymentType,
    Severity,
)
from settlement_kernel.domain.values import ZERO, to_decimal
from settlement_kernel.exceptions import AmountImmutableError, GateNotSatisfiedError
from settlement_kernel.logging_config import get_logger
from settlement_kernel.models import Batch, Invoice, Nota, PaymentIntent
from settlement_kernel.utils.idempotency import auto_intent_key, batch_nota_key, claim_nota_key
from settlement_modules._batch_transitions import transition_batch
from settlement_modules._settlement_cascade import SettlementCascade
from settlement_modules.nota.workflows import NOTA_STAMPS, NOTA_WORKFLOW
from settlement_services.context import SettlementContext
from settlement_services.invoice_settlement import InvoiceSettlement
from settlement_services.reconciliation_items import ReconciliationItems
from settlement_services.transition_runner import apply_transition

logger = get_logger("modules.nota")

# Batch statuses from which a batch nota may exist
NOTA_ELIGIBLE_BATCH_STATES = frozenset(
    {
        BatchStatus.APPROVED.value,
        BatchStatus.NOTA_ISSUED.value,
        BatchStatus.BRANCH_CONFIRMED.value,
        BatchStatus.PAID.value,
    }
)


class NotaService:
    """Nota creation, lifecycle and amount overlay."""

    def __init__(
        self,
        ctx: SettlementContext,
        invoices: InvoiceSettlement | None = None,
        items: ReconciliationItems | None = None,
        cascade: SettlementCascade | None = None,
    ):
        self._ctx = ctx
        self._stores = ctx.stores
        self._invoices = invoices or InvoiceSettlement(ctx)
        self._items = items or ReconciliationItems(ctx)
        self._cascade = cascade or SettlementCascade(ctx, self._invoices, self._items)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, nota_number: str) -> Nota:
        return self._stores.notas.get_by(nota_number=nota_number)

    def nota_for_batch(self, batch_id: str) -> Nota | None:
        return self._stores.notas.find_one(idempotency_key=batch_nota_key(batch_id))

    def invoice_for(self, nota_number: str) -> Invoice | None:
        return self._invoices.invoice_for(nota_number)

    def effective_amount(self, nota_number: str) -> Decimal:
        """Nota amount plus every acknowledged debit/credit note against it."""
        nota = self.get(nota_number)
        adjustments = self._stores.notes.filter(
            original_nota_id=nota_number,
            status=NoteStatus.ACKNOWLEDGED.value,
        )
        return nota.amount + sum((n.adjustment_amount for n in adjustments), ZERO)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def _batch_nota_block(self, batch: Batch) -> tuple[str, str] | None:
        if batch.status not in NOTA_ELIGIBLE_BATCH_STATES:
            return ("batch_approved", f"Batch is {batch.status}; a nota needs an approved batch")
        if not batch.batch_ready_for_nota:
            return ("batch_ready_for_nota", "Debtor review is not complete or no debtor was approved")
        if batch.final_premium_amount is None or batch.final_exposure_amount is None:
            return ("final_amounts_set", "Final amounts have not been set by debtor review")
        if batch.final_premium_amount <= ZERO:
            return ("final_amounts_set", "Final premium amount must be positive")
        return None

    def create_for_batch(self, batch_id: str, actor: Actor, *, authorize: bool = True) -> Nota:
        """
        Create the batch nota from the reviewed final premium.  Idempotent.

        Raises:
            GateNotSatisfiedError: see ``_batch_nota_block``.
        """
        if authorize:
            self._ctx.authorize(
                actor, "nota.create", module="nota", entity_type="Batch", entity_id=batch_id
            )
        with self._ctx.batch_lock(batch_id):
            batch = self._stores.batches.get_by(batch_id=batch_id)
            block = self._batch_nota_block(batch)
            if block is not None:
                gate, reason = block
                self._ctx.audit.append(
                    action="NOTA_CREATE",
                    module="nota",
                    entity_type="Batch",
                    entity_id=batch_id,
                    old_value={
                        "status": batch.status,
                        "batch_ready_for_nota": batch.batch_ready_for_nota,
                        "final_premium_amount": batch.final_premium_amount,
                    },
                    actor=actor,
                    reason=reason,
                    blocked=True,
                )
                raise GateNotSatisfiedError(
                    gate=gate, reason=reason, entity_type="Batch", entity_id=batch_id
                )

            nota, created = self._stores.notas.get_or_create(
                batch_nota_key(batch_id),
                {
                    "nota_number": f"NOTA-{batch_id}-{self._ctx.clock.stamp()}",
                    "nota_type": NotaType.BATCH.value,
                    "reference_id": batch_id,
                    "contract_id": batch.contract_id,
                    "amount": batch.final_premium_amount,
                    "currency": self._ctx.config.currency,
                    "status": NotaStatus.DRAFT.value,
                },
                actor_email=actor.email,
            )
        if created:
            self._on_created(nota, actor)
        return nota

    def create_for_claim(self, claim_id: str, actor: Actor, *, authorize: bool = True) -> Nota:
        """Create the claim nota sized to the claim's share.  Idempotent."""
        if authorize:
            self._ctx.authorize(
                actor, "nota.create", module="nota", entity_type="Claim", entity_id=claim_id
            )
        claim = self._stores.claims.get_by(claim_id=claim_id)
        if claim.status not in (ClaimStatus.DOC_VERIFIED.value, ClaimStatus.INVOICED.value):
            reason = f"Claim is {claim.status}; documents must be verified first"
            self._ctx.audit.append(
                action="NOTA_CREATE",
                module="nota",
                entity_type="Claim",
                entity_id=claim_id,
                old_value={"status": claim.status},
                actor=actor,
                reason=reason,
                blocked=True,
            )
            raise GateNotSatisfiedError(
                gate="claim_verified", reason=reason, entity_type="Claim", entity_id=claim_id
            )

        amount = claim.share_amount if claim.share_amount > ZERO else claim.claim_amount
        nota, created = self._stores.notas.get_or_create(
            claim_nota_key(claim_id),
            {
                "nota_number": f"NOTA-CLM-{claim_id}",
                "nota_type": NotaType.CLAIM.value,
                "reference_id": claim_id,
                "contract_id": claim.contract_id,
                "amount": amount,
                "currency": self._ctx.config.currency,
                "status": NotaStatus.DRAFT.value,
            },
            actor_email=actor.email,
        )
        if created:
            self._on_created(nota, actor)
        return nota

    def _on_created(self, nota: Nota, actor: Actor) -> None:
        self._ctx.audit.append(
            action="NOTA_CREATED",
            module="nota",
            entity_type="Nota",
            entity_id=nota.nota_number,
            new_value={
                "nota_type": nota.nota_type,
                "reference_id": nota.reference_id,
                "amount": nota.amount,
                "status": nota.status,
            },
            actor=actor,
        )
        self._ctx.notifier.notify(
            title="Nota Created",
            message=f"Nota {nota.nota_number} ({nota.nota_type}) created for {nota.reference_id}",
            severity=Severity.INFO.value,
            module="nota",
            reference_id=nota.nota_number,
            target_role=Role.TUGURE.value,
        )
        logger.info(
            "nota_created",
            extra={
                "nota_number": nota.nota_number,
                "nota_type": nota.nota_type,
                "reference_id": nota.reference_id,
                "amount": str(nota.amount),
            },
        )

    # ------------------------------------------------------------------
    # Amount
    # ------------------------------------------------------------------

    def update_amount(self, nota_number: str, amount: Decimal, actor: Actor) -> Nota:
        """Edit a Draft nota's amount.  Issued notas are corrected by debit/credit note."""
        amount = to_decimal(amount)
        if amount <= ZERO:
            raise ValueError(f"Nota amount must be positive, got {amount}")
        self._ctx.authorize(
            actor, "nota.update_amount", module="nota", entity_type="Nota", entity_id=nota_number
        )
        nota = self.get(nota_number)
        with self._ctx.nota_lock(nota):
            nota = self.get(nota_number)
            if nota.status != NotaStatus.DRAFT.value or nota.is_immutable:
                self._ctx.audit.append(
                    action="NOTA_UPDATE_AMOUNT",
                    module="nota",
                    entity_type="Nota",
                    entity_id=nota_number,
                    old_value={"amount": nota.amount, "status": nota.status},
                    new_value={"amount": amount},
                    actor=actor,
                    reason="Amount is locked once the nota is issued",
                    blocked=True,
                )
                raise AmountImmutableError(nota_number, nota.status)
            updated = self._stores.notas.update(
                nota.id, {"amount": amount}, expected_version=nota.version, actor_email=actor.email
            )
        self._ctx.audit.append(
            action="NOTA_UPDATE_AMOUNT",
            module="nota",
            entity_type="Nota",
            entity_id=nota_number,
            old_value={"amount": nota.amount},
            new_value={"amount": amount},
            actor=actor,
        )
        return updated

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def advance(
        self,
        nota_number: str,
        actor: Actor,
        payment_reference: str | None = None,
    ) -> Nota:
        """
        Move the nota to its successor status.

        The move into Paid is the settlement cascade; ``payment_reference``
        is recorded on the nota there.
        """
        nota = self.get(nota_number)
        with self._ctx.nota_lock(nota):
            nota = self.get(nota_number)
            transition = self._ctx.executor.resolve(NOTA_WORKFLOW, nota.status, None)
            if transition is not None and transition.to_state == NotaStatus.PAID.value:
                self._ctx.authorize(
                    actor,
                    "nota.mark_paid",
                    module="nota",
                    entity_type="Nota",
                    entity_id=nota_number,
                    from_state=nota.status,
                )
                self._cascade.settle(
                    nota_number,
                    actor,
                    trigger="nota_advance",
                    payment_reference=payment_reference,
                    nota_action="mark_paid",
                )
                return self.get(nota_number)
            return self._move(nota, actor)

    def issue_for_batch(self, batch_id: str, actor: Actor) -> Nota:
        """Ensure the batch nota exists and is at least Issued."""
        nota = self.create_for_batch(batch_id, actor, authorize=False)
        with self._ctx.nota_lock(nota):
            nota = self.get(nota.nota_number)
            if nota.status == NotaStatus.DRAFT.value:
                nota = self._move(nota, actor, action="issue", authorize=False)
        return nota

    def confirm_for_batch(self, batch_id: str, actor: Actor) -> Nota | None:
        """Confirm the batch nota when the branch confirms the batch."""
        nota = self.nota_for_batch(batch_id)
        if nota is None:
            return None
        with self._ctx.nota_lock(nota):
            nota = self.get(nota.nota_number)
            if nota.status == NotaStatus.ISSUED.value:
                nota = self._move(nota, actor, action="confirm", authorize=False)
        return nota

    def _move(
        self,
        nota: Nota,
        actor: Actor,
        action: str | None = None,
        *,
        authorize: bool = True,
    ) -> Nota:
        transition = self._ctx.executor.resolve(NOTA_WORKFLOW, nota.status, action)
        extra = {}
        if transition is not None and transition.to_state == NotaStatus.ISSUED.value:
            extra["is_immutable"] = True
        from_status = nota.status
        nota, result = apply_transition(
            self._ctx,
            workflow=NOTA_WORKFLOW,
            store=self._stores.notas,
            entity=nota,
            entity_key=nota.nota_number,
            module="nota",
            actor=actor,
            action=action,
            stamp_fields=NOTA_STAMPS,
            extra_patch=extra,
            authorize=authorize,
        )
        if result.new_state == NotaStatus.ISSUED.value:
            self._on_issued(nota, actor)
            self._ctx.announce(
                title="Nota Issued",
                message=f"Nota {nota.nota_number} issued; the amount is now locked.",
                module="nota",
                reference_id=nota.nota_number,
                entity_kind="Nota",
                from_status=from_status,
                to_status=nota.status,
                target_role=Role.BRINS.value,
                severity=Severity.ACTION_REQUIRED.value,
                variables=self._email_vars(nota),
            )
        elif result.new_state == NotaStatus.CONFIRMED.value:
            self._on_confirmed(nota, actor)
            self._ctx.announce(
                title="Nota Confirmed",
                message=f"Nota {nota.nota_number} confirmed by the branch.",
                module="nota",
                reference_id=nota.nota_number,
                entity_kind="Nota",
                from_status=from_status,
                to_status=nota.status,
                target_role=Role.TUGURE.value,
                variables=self._email_vars(nota),
            )
        return nota

    @staticmethod
    def _email_vars(nota: Nota) -> dict:
        return {
            "nota_number": nota.nota_number,
            "nota_type": nota.nota_type,
            "reference_id": nota.reference_id,
            "amount": nota.amount,
            "currency": nota.currency,
        }

    def _on_issued(self, nota: Nota, actor: Actor) -> None:
        invoice = self._invoices.ensure_invoice(nota, actor)
        self._items.refresh(nota, actor)
        if nota.nota_type != NotaType.BATCH.value:
            return

        premiums = {
            r.debtor_id: r.premium_amount
            for r in self._stores.accepted.filter(batch_id=nota.reference_id)
        }
        for debtor in self._invoices.debtors_behind(invoice):
            patch = {
                "invoice_amount": premiums.get(str(debtor.id), debtor.gross_premium),
                "invoice_status": DebtorInvoiceStatus.ISSUED.value,
                "recon_status": DebtorReconStatus.IN_PROGRESS.value,
            }
            if all(getattr(debtor, k) == v for k, v in patch.items()):
                continue
            self._stores.debtors.update(
                debtor.id, patch, expected_version=debtor.version, actor_email=actor.email
            )

        batch = self._stores.batches.get_by(batch_id=nota.reference_id)
        if batch.status == BatchStatus.APPROVED.value:
            transition_batch(
                self._ctx,
                batch,
                actor,
                "issue_nota",
                guard_context={"batch_ready_for_nota": batch.batch_ready_for_nota},
                authorize=False,
            )

    def _on_confirmed(self, nota: Nota, actor: Actor) -> PaymentIntent:
        """
        Plan the full payment of a confirmed nota.

        Keyed per (contract, nota) rather than per contract: a contract
        carries one nota per monthly batch plus claim notas, and each of
        them gets its own intent.  Re-confirming never creates a second one.
        """
        intent, created = self._stores.intents.get_or_create(
            auto_intent_key(nota.contract_id, nota.nota_number),
            {
                "intent_id": f"PI-{nota.nota_number}-AUTO",
                "nota_number": nota.nota_number,
                "contract_id": nota.contract_id,
                "payment_type": PaymentType.FULL.value,
                "planned_amount": nota.amount,
                "planned_date": self._ctx.today(),
                "status": IntentStatus.DRAFT.value,
                "remarks": "Created on nota confirmation",
            },
            actor_email=actor.email,
        )
        if created:
            self._ctx.audit.append(
                action="PAYMENT_INTENT_CREATED",
                module="payment_intent",
                entity_type="PaymentIntent",
                entity_id=intent.intent_id,
                new_value={"planned_amount": intent.planned_amount, "nota_number": nota.nota_number},
                actor=actor,
            )

        if nota.nota_type == NotaType.BATCH.value:
            batch = self._stores.batches.get_by(batch_id=nota.reference_id)
            if batch.status == BatchStatus.NOTA_ISSUED.value:
                transition_batch(self._ctx, batch, actor, "confirm_branch", authorize=False)
        return intent
