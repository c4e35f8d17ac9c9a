"""
settlement_modules._settlement_cascade -- The Nota -> Paid cascade.

Responsibility:
    Settles a nota across every entity that depends on it.  The same cascade
    runs from all four trigger points (nota advance to Paid, manual match
    clearing the invoice, a recorded payment within tolerance, an explicit
    reconciliation close), so settlement state never diverges by path.

Architecture position:
    Modules layer, shared by the nota, reconciliation and adjustment
    services.  Runs as a saga on SagaExecutor under the nota's
    aggregate lock (nota + batch keys).

Steps, least visible first, nota status last:
    1. invoice_paid          Invoice Paid, paid = total, outstanding = 0.
    2. ensure_payment        A Payment exists for the invoice (keyed by
                             invoice id; skipped when one already exists).
    3. distribute_payment    Applied invoice payments spread across debtors
                             (keyed by payment + debtor).
    4. close_reconciliation  Item closed when within tolerance or covered by
                             an approved/acknowledged debit/credit note.
    5. debtors_settled       Debtors invoice_status Paid, recon_status Closed.
    6. batch_settled         Batch nota_payment_status Paid; Branch Confirmed
                             batch moves to Paid.
    7. intents_completed     Approved intents of the nota move to Completed,
                             so auto-match cannot apply a later receipt.
    8. nota_paid             Nota Paid with paid_date and payment_reference.

Invariants enforced:
    - Convergence: every step is idempotent, so replaying the cascade after
      a partial failure (or after success) yields the same end state, with
      no duplicate payments and no double-counted debtor amounts.
    - A Draft nota is never settled.
"""

from __future__ import annotations

from typing import Any

from settlement_kernel.domain.actor import Actor
from settlement_kernel.domain.statuses import (
    BatchStatus,
    DebtorInvoiceStatus,
    DebtorReconStatus,
    ExceptionType,
    IntentStatus,
    MatchStatus,
    NotaStatus,
    NotaType,
    ReconItemState,
    ReconStatus,
)
from settlement_kernel.domain.values import ZERO
from settlement_kernel.exceptions import GateNotSatisfiedError
from settlement_kernel.logging_config import LogContext, get_logger
from settlement_kernel.models import Nota
from settlement_kernel.services.saga import SagaResult, SagaStep
from settlement_kernel.utils.idempotency import settlement_payment_key
from settlement_modules._batch_transitions import transition_batch
from settlement_modules.nota.workflows import NOTA_STAMPS, NOTA_WORKFLOW
from settlement_modules.payment_intent.workflows import PAYMENT_INTENT_WORKFLOW
from settlement_services.context import SettlementContext
from settlement_services.invoice_settlement import InvoiceSettlement
from settlement_services.reconciliation_items import ReconciliationItems
from settlement_services.transition_runner import apply_transition

logger = get_logger("modules.settlement_cascade")

SAGA_NAME = "nota_settlement"


class SettlementCascade:
    """Runs the nota settlement saga."""

    def __init__(
        self,
        ctx: SettlementContext,
        invoices: InvoiceSettlement | None = None,
        items: ReconciliationItems | None = None,
    ):
        self._ctx = ctx
        self._stores = ctx.stores
        self._invoices = invoices or InvoiceSettlement(ctx)
        self._items = items or ReconciliationItems(ctx)

    def settle(
        self,
        nota_number: str,
        actor: Actor,
        *,
        trigger: str,
        payment_reference: str | None = None,
        nota_action: str = "settle",
    ) -> SagaResult:
        """
        Settle ``nota_number``.

        Args:
            trigger: Which entry point started the cascade (for the audit).
            nota_action: Transition used for the final nota move when the
                nota is Confirmed (``mark_paid`` from an explicit advance).

        Raises:
            GateNotSatisfiedError: the nota is still Draft.
            SagaStepFailedError: a step kept conflicting; replay is safe.
        """
        nota = self._stores.notas.get_by(nota_number=nota_number)
        if nota.status == NotaStatus.DRAFT.value:
            self._ctx.audit.append(
                action="NOTA_SETTLEMENT",
                module="nota",
                entity_type="Nota",
                entity_id=nota_number,
                old_value={"status": nota.status},
                actor=actor,
                reason="Nota must be issued before it can be settled",
                blocked=True,
            )
            raise GateNotSatisfiedError(
                gate="nota_issued",
                reason="Nota must be issued before it can be settled",
                entity_type="Nota",
                entity_id=nota_number,
            )

        state: dict[str, Any] = {
            "nota_number": nota_number,
            "actor": actor,
            "payment_reference": payment_reference,
            "nota_action": nota_action,
            "nota_transitioned": False,
        }
        steps = [
            SagaStep("invoice_paid", self._invoice_paid),
            SagaStep("ensure_payment", self._ensure_payment),
            SagaStep("distribute_payment", self._distribute_payment),
            SagaStep("close_reconciliation", self._close_reconciliation),
            SagaStep("debtors_settled", self._debtors_settled),
            SagaStep("batch_settled", self._batch_settled),
            SagaStep("intents_completed", self._intents_completed),
            SagaStep("nota_paid", self._nota_paid),
        ]

        with self._ctx.nota_lock(nota), LogContext.bind(entity_id=nota_number):
            result = self._ctx.sagas.run(SAGA_NAME, steps, state)

        self._ctx.audit.append(
            action="NOTA_SETTLEMENT_CASCADE",
            module="nota",
            entity_type="Nota",
            entity_id=nota_number,
            new_value={
                "trigger": trigger,
                "steps": result.completed_steps,
                "payment_created": result.outputs.get("ensure_payment") is not None,
            },
            actor=actor,
        )

        if state["nota_transitioned"]:
            paid = self._stores.notas.get_by(nota_number=nota_number)
            self._ctx.announce(
                title="Nota Paid",
                message=f"Nota {nota_number} is settled; invoice, debtors and reconciliation updated.",
                module="nota",
                reference_id=nota_number,
                entity_kind="Nota",
                from_status=nota.status,
                to_status=NotaStatus.PAID.value,
                variables={
                    "nota_number": nota_number,
                    "payment_reference": paid.payment_reference or "",
                    "amount": paid.amount,
                    "currency": paid.currency,
                },
            )

        logger.info(
            "nota_settlement_completed",
            extra={
                "nota_number": nota_number,
                "trigger": trigger,
                "nota_transitioned": state["nota_transitioned"],
            },
        )
        return result

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _nota(self, state: dict[str, Any]) -> Nota:
        return self._stores.notas.get_by(nota_number=state["nota_number"])

    def _is_batch_nota(self, nota: Nota) -> bool:
        return nota.nota_type == NotaType.BATCH.value

    def _invoice_paid(self, state: dict[str, Any]) -> str:
        nota = self._nota(state)
        invoice = self._invoices.ensure_invoice(nota, state["actor"])
        invoice = self._invoices.mark_paid(invoice, state["actor"])
        state["invoice_id"] = invoice.id
        return invoice.invoice_number

    def _ensure_payment(self, state: dict[str, Any]) -> str | None:
        """Create the settlement payment only if no payment references the invoice yet."""
        nota = self._nota(state)
        invoice = self._stores.invoices.get(state["invoice_id"])
        if self._stores.payments.find_one(invoice_id=str(invoice.id)) is not None:
            return None

        received = self._items.snapshot(nota, invoice).payment_received
        amount = invoice.total_amount - received
        if amount <= ZERO:
            return None

        payment, created = self._stores.payments.get_or_create(
            settlement_payment_key(invoice.id),
            {
                "payment_ref": state["payment_reference"] or f"SETTLE-{nota.nota_number}",
                "contract_id": nota.contract_id,
                "nota_number": nota.nota_number,
                "invoice_id": str(invoice.id),
                "amount": amount,
                "currency": invoice.currency,
                "payment_date": self._ctx.today(),
                "match_status": MatchStatus.MATCHED.value,
                "exception_type": ExceptionType.NONE.value,
                "matched_by": state["actor"].email,
                "matched_date": self._ctx.today(),
                "match_remarks": "Created by nota settlement",
            },
            actor_email=state["actor"].email,
        )
        return payment.payment_ref if created else None

    def _distribute_payment(self, state: dict[str, Any]) -> int:
        invoice = self._stores.invoices.get(state["invoice_id"])
        return len(self._invoices.distribute(invoice, state["actor"]))

    def _close_reconciliation(self, state: dict[str, Any]) -> str:
        nota = self._nota(state)
        item, snap = self._items.refresh(nota, state["actor"])
        if item.item_state == ReconItemState.CLOSED.value:
            return item.item_state
        if snap.recon_status == ReconStatus.MATCHED or snap.covered_by_adjustment:
            item = self._items.close(item, state["actor"])
        return item.item_state

    def _debtors_settled(self, state: dict[str, Any]) -> int:
        invoice = self._stores.invoices.get(state["invoice_id"])
        settled = {
            "invoice_status": DebtorInvoiceStatus.PAID.value,
            "recon_status": DebtorReconStatus.CLOSED.value,
        }
        count = 0
        for debtor in self._invoices.debtors_behind(invoice):
            if all(getattr(debtor, k) == v for k, v in settled.items()):
                continue
            self._stores.debtors.update(
                debtor.id,
                settled,
                expected_version=debtor.version,
                actor_email=state["actor"].email,
            )
            count += 1
        return count

    def _batch_settled(self, state: dict[str, Any]) -> str | None:
        nota = self._nota(state)
        if not self._is_batch_nota(nota):
            return None
        actor = state["actor"]
        batch = self._stores.batches.get_by(batch_id=nota.reference_id)
        if batch.nota_payment_status != NotaStatus.PAID.value:
            batch = self._stores.batches.update(
                batch.id,
                {"nota_payment_status": NotaStatus.PAID.value},
                expected_version=batch.version,
                actor_email=actor.email,
            )
        if batch.status == BatchStatus.BRANCH_CONFIRMED.value:
            batch, _ = transition_batch(
                self._ctx,
                batch,
                actor,
                "mark_paid",
                guard_context={"settlement_in_progress": True},
                authorize=False,
            )
        return batch.status

    def _intents_completed(self, state: dict[str, Any]) -> int:
        intents = self._stores.intents.filter(
            nota_number=state["nota_number"], status=IntentStatus.APPROVED.value
        )
        for intent in intents:
            apply_transition(
                self._ctx,
                workflow=PAYMENT_INTENT_WORKFLOW,
                store=self._stores.intents,
                entity=intent,
                entity_key=intent.intent_id,
                module="nota",
                actor=state["actor"],
                action="complete",
                extra_patch={"completed_date": self._ctx.today()},
                reason="Nota settled",
                authorize=False,
            )
        return len(intents)

    def _nota_paid(self, state: dict[str, Any]) -> str:
        nota = self._nota(state)
        if nota.status == NotaStatus.PAID.value:
            return nota.status
        action = "settle"
        if nota.status == NotaStatus.CONFIRMED.value:
            action = state["nota_action"]
        extra = {}
        if state["payment_reference"]:
            extra["payment_reference"] = state["payment_reference"]
        nota, _ = apply_transition(
            self._ctx,
            workflow=NOTA_WORKFLOW,
            store=self._stores.notas,
            entity=nota,
            entity_key=nota.nota_number,
            module="nota",
            actor=state["actor"],
            action=action,
            stamp_fields=NOTA_STAMPS,
            extra_patch=extra,
            authorize=False,
        )
        state["nota_transitioned"] = True
        return nota.status
