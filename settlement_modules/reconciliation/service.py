"""
Payment Reconciliation Service (``settlement_modules.reconciliation.service``).

Responsibility
--------------
Records actual payments, matches them to planned payment intents (automatic
within tolerance, or manually chosen by an operator), keeps each nota's
reconciliation item current, escalates out-of-tolerance differences into
debit/credit notes, and closes items.

Architecture position
---------------------
**Modules layer** -- imperative shell.  Matching and derivation are the
pure functions in ``settlement_engines.reconciliation`` and
``settlement_engines.tolerance``; invoice bookkeeping and pro-rata
distribution live in ``InvoiceSettlement``; the Paid outcome is always
``SettlementCascade``.

Invariants enforced
-------------------
* Auto-match never adjusts an amount.  A payment outside tolerance of
  every approved intent stays Received.
* Auto-match only considers intents whose nota is Issued or Confirmed.
* A payment is matched at most once; an intent is completed at most once.
* Manual match, an in-tolerance recorded payment and an explicit close all
  settle the nota through the same cascade as a nota advance.
* Debit for shortfall (positive adjustment), Credit for overpayment
  (negative adjustment), sized to the difference.
* An item closes only within the close threshold or when an approved or
  acknowledged note covers the difference.

Failure modes
-------------
* ``ToleranceExceededError`` -- close, or finalizing a partial payment,
  outside threshold.  Audited.
* ``GateNotSatisfiedError`` -- payment against a Draft/Paid nota, note on
  an item without exception, manual match across contracts.  Audited.
* ``InvalidTransitionError`` -- matching an already matched payment or a
  non-approved intent.
* ``PaymentReferenceConflictError`` -- a recorded payment reuses a reference
  held by a different nota or amount.  Audited.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from settlement_engines.reconciliation import IntentView, PaymentView, find_matching_intent
from settlement_engines.tolerance import classify_payment
from settlement_kernel.domain.actor import TARGET_ALL, Actor, Role
from settlement_kernel.domain.statuses import (
    ExceptionType,
    IntentStatus,
    MatchStatus,
    NoteStatus,
    NoteType,
    NotaStatus,
    NotaType,
    ReconItemState,
    ReconStatus,
    Severity,
)
from settlement_kernel.domain.values import ZERO, to_decimal
from settlement_kernel.exceptions import (
    GateNotSatisfiedError,
    InvalidTransitionError,
    PaymentReferenceConflictError,
    ToleranceExceededError,
)
from settlement_kernel.logging_config import LogContext, get_logger
from settlement_kernel.models import DebitCreditNote, Nota, Payment, PaymentIntent, ReconciliationItem
from settlement_kernel.utils.idempotency import adjustment_key, received_payment_key
from settlement_modules._settlement_cascade import SettlementCascade
from settlement_modules.payment_intent.workflows import PAYMENT_INTENT_WORKFLOW
from settlement_services.context import SettlementContext
from settlement_services.invoice_settlement import InvoiceSettlement
from settlement_services.reconciliation_items import ReconciliationItems
from settlement_services.transition_runner import apply_transition

logger = get_logger("modules.reconciliation")

PAYABLE_NOTA_STATES = frozenset({NotaStatus.ISSUED.value, NotaStatus.CONFIRMED.value})


class ReconciliationService:
    """Payments, matching, reconciliation items and exception escalation."""

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

    def item(self, nota_number: str) -> ReconciliationItem | None:
        return self._items.item_for(nota_number)

    def exceptions(self) -> list[ReconciliationItem]:
        return self._stores.recon_items.filter(has_exception=True)

    def unmatched_payments(self) -> list[Payment]:
        return self._stores.payments.filter(match_status=MatchStatus.RECEIVED.value)

    def refresh_item(self, nota_number: str, actor: Actor | None = None) -> ReconciliationItem:
        nota = self._stores.notas.get_by(nota_number=nota_number)
        with self._ctx.nota_lock(nota):
            item, _ = self._items.refresh(self._stores.notas.get_by(nota_number=nota_number), actor)
        return item

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def receive_payment(
        self,
        payment_ref: str,
        contract_id: str,
        amount: Decimal,
        actor: Actor,
        payment_date: date | None = None,
    ) -> Payment:
        """Register an incoming payment not yet tied to any nota.  Idempotent per reference."""
        amount = to_decimal(amount)
        if amount <= ZERO:
            raise ValueError(f"Payment amount must be positive, got {amount}")
        self._ctx.authorize(
            actor, "payment.receive", module="reconciliation", entity_type="Payment", entity_id=payment_ref
        )
        payment, created = self._stores.payments.get_or_create(
            received_payment_key(payment_ref),
            {
                "payment_ref": payment_ref,
                "contract_id": contract_id,
                "amount": amount,
                "currency": self._ctx.config.currency,
                "payment_date": payment_date or self._ctx.today(),
                "match_status": MatchStatus.RECEIVED.value,
                "exception_type": ExceptionType.NONE.value,
            },
            actor_email=actor.email,
        )
        if created:
            self._ctx.audit.append(
                action="PAYMENT_RECEIVED",
                module="reconciliation",
                entity_type="Payment",
                entity_id=payment_ref,
                new_value={"contract_id": contract_id, "amount": amount},
                actor=actor,
            )
            logger.info(
                "payment_received",
                extra={"payment_ref": payment_ref, "contract_id": contract_id, "amount": str(amount)},
            )
        return payment

    def _require_payable(self, nota: Nota, actor: Actor, action: str) -> None:
        if nota.status in PAYABLE_NOTA_STATES:
            return
        reason = f"Nota is {nota.status}; payments apply to issued or confirmed notas only"
        self._ctx.audit.append(
            action=action,
            module="reconciliation",
            entity_type="Nota",
            entity_id=nota.nota_number,
            old_value={"status": nota.status},
            actor=actor,
            reason=reason,
            blocked=True,
        )
        raise GateNotSatisfiedError(
            gate="nota_payable", reason=reason, entity_type="Nota", entity_id=nota.nota_number
        )

    def _require_same_payment(self, payment: Payment, nota_number: str, amount: Decimal, actor: Actor) -> None:
        """A reused reference is a retry only when it names the same nota and amount."""
        if payment.nota_number == nota_number and payment.amount == amount:
            return
        reason = (
            f"Reference already used for {payment.amount} on "
            f"{payment.nota_number or 'an unmatched receipt'}"
        )
        self._ctx.audit.append(
            action="PAYMENT_RECORD",
            module="reconciliation",
            entity_type="Payment",
            entity_id=payment.payment_ref,
            old_value={"nota_number": payment.nota_number, "amount": payment.amount},
            new_value={"nota_number": nota_number, "amount": amount},
            actor=actor,
            reason=reason,
            blocked=True,
        )
        raise PaymentReferenceConflictError(payment.payment_ref, reason)

    def record_payment(
        self,
        nota_number: str,
        amount: Decimal,
        actor: Actor,
        payment_ref: str | None = None,
        payment_date: date | None = None,
    ) -> Payment:
        """
        Record an actual payment against an issued nota.

        The payment is classified on the cumulative difference once it is
        applied: within tolerance it is Matched and the nota settles;
        short of it, Partially Matched (Under); beyond it, Matched (Over)
        with the item left in exception.
        """
        amount = to_decimal(amount)
        if amount <= ZERO:
            raise ValueError(f"Payment amount must be positive, got {amount}")
        self._ctx.authorize(
            actor, "payment.record", module="reconciliation", entity_type="Nota", entity_id=nota_number
        )
        nota = self._stores.notas.get_by(nota_number=nota_number)
        with self._ctx.nota_lock(nota), LogContext.bind(entity_id=nota_number):
            nota = self._stores.notas.get_by(nota_number=nota_number)
            self._require_payable(nota, actor, "PAYMENT_RECORD")

            invoice = self._invoices.ensure_invoice(nota, actor)
            before = self._items.snapshot(nota, invoice)
            match_status, exception_type, difference = classify_payment(
                nota.amount, before.payment_received, amount, self._ctx.policy
            )
            if not payment_ref:
                sequence = len(self._stores.payments.filter(nota_number=nota_number)) + 1
                payment_ref = f"PAY-{nota_number}-{sequence}"
            payment, created = self._stores.payments.get_or_create(
                received_payment_key(payment_ref),
                {
                    "payment_ref": payment_ref,
                    "contract_id": nota.contract_id,
                    "nota_number": nota_number,
                    "invoice_id": str(invoice.id),
                    "amount": amount,
                    "currency": nota.currency,
                    "payment_date": payment_date or self._ctx.today(),
                    "match_status": match_status.value,
                    "exception_type": exception_type.value,
                    "matched_by": actor.email,
                    "matched_date": self._ctx.today(),
                },
                actor_email=actor.email,
            )
            if not created:
                self._require_same_payment(payment, nota_number, amount, actor)
                return payment

            after = self._items.snapshot(nota, invoice)
            invoice = self._invoices.recompute(invoice, after.payment_received, actor)
            self._invoices.distribute(invoice, actor)
            self._items.refresh(nota, actor)

            self._ctx.audit.append(
                action="PAYMENT_RECORDED",
                module="reconciliation",
                entity_type="Payment",
                entity_id=payment_ref,
                new_value={
                    "nota_number": nota_number,
                    "amount": amount,
                    "match_status": match_status.value,
                    "exception_type": exception_type.value,
                    "difference": difference,
                },
                actor=actor,
            )
            logger.info(
                "payment_recorded",
                extra={
                    "payment_ref": payment_ref,
                    "nota_number": nota_number,
                    "match_status": match_status.value,
                    "difference": str(difference),
                },
            )

            if match_status == MatchStatus.MATCHED and exception_type == ExceptionType.NONE:
                self._cascade.settle(
                    nota_number, actor, trigger="record_payment", payment_reference=payment_ref
                )
            else:
                self._ctx.notifier.notify(
                    title="Payment Exception",
                    message=(
                        f"Payment {payment_ref} on nota {nota_number}: "
                        f"{exception_type.value}, remaining difference {difference}"
                    ),
                    severity=Severity.WARNING.value,
                    module="reconciliation",
                    reference_id=nota_number,
                    target_role=Role.TUGURE.value,
                )
        return self._stores.payments.get(payment.id)

    # ------------------------------------------------------------------
    # Matching
    # ------------------------------------------------------------------

    def _complete_intent(self, intent: PaymentIntent, actor: Actor) -> PaymentIntent:
        intent, _ = apply_transition(
            self._ctx,
            workflow=PAYMENT_INTENT_WORKFLOW,
            store=self._stores.intents,
            entity=intent,
            entity_key=intent.intent_id,
            module="reconciliation",
            actor=actor,
            action="complete",
            extra_patch={"completed_date": self._ctx.today()},
            authorize=False,
        )
        return intent

    def _link_payment(
        self,
        payment: Payment,
        intent: PaymentIntent,
        nota: Nota,
        actor: Actor,
        remarks: str | None,
    ):
        """Mark ``payment`` Matched to ``intent``, refresh invoice, shares and item."""
        invoice = self._invoices.ensure_invoice(nota, actor)
        self._complete_intent(intent, actor)
        self._stores.payments.update(
            payment.id,
            {
                "match_status": MatchStatus.MATCHED.value,
                "exception_type": ExceptionType.NONE.value,
                "intent_id": intent.intent_id,
                "nota_number": nota.nota_number,
                "invoice_id": str(invoice.id),
                "matched_by": actor.email,
                "matched_date": self._ctx.today(),
                "match_remarks": remarks,
            },
            expected_version=payment.version,
            actor_email=actor.email,
        )
        snap = self._items.snapshot(nota, invoice)
        invoice = self._invoices.recompute(invoice, snap.payment_received, actor)
        self._invoices.distribute(invoice, actor)
        self._items.refresh(nota, actor)
        return invoice

    def _intent_payable(self, intent: PaymentIntent) -> bool:
        nota = self._stores.notas.find_one(nota_number=intent.nota_number)
        if nota is not None and nota.status in PAYABLE_NOTA_STATES:
            return True
        logger.info(
            "auto_match_intent_skipped",
            extra={
                "intent_id": intent.intent_id,
                "nota_number": intent.nota_number,
                "nota_status": nota.status if nota is not None else None,
            },
        )
        return False

    def auto_match(self, actor: Actor) -> list[Payment]:
        """
        Match every Received payment to an Approved intent on its contract
        whose planned amount is within tolerance.  Returns the matched
        payments.
        """
        self._ctx.authorize(
            actor, "reconciliation.auto_match", module="reconciliation", entity_type="Payment", entity_id="*"
        )
        matched: list[Payment] = []
        for payment in self.unmatched_payments():
            intents = [
                i
                for i in self._stores.intents.filter(
                    contract_id=payment.contract_id, status=IntentStatus.APPROVED.value
                )
                if self._intent_payable(i)
            ]
            view = PaymentView(
                payment_id=str(payment.id),
                amount=payment.amount,
                match_status=payment.match_status,
                contract_id=payment.contract_id,
            )
            found = find_matching_intent(
                view,
                [IntentView(i.intent_id, i.contract_id, i.planned_amount, i.status) for i in intents],
                self._ctx.policy,
            )
            if found is None:
                logger.info(
                    "auto_match_no_candidate",
                    extra={"payment_ref": payment.payment_ref, "amount": str(payment.amount)},
                )
                continue

            intent = self._stores.intents.get_by(intent_id=found.intent_id)
            nota = self._stores.notas.get_by(nota_number=intent.nota_number)
            with self._ctx.nota_lock(nota):
                payment = self._stores.payments.get(payment.id)
                intent = self._stores.intents.get_by(intent_id=found.intent_id)
                nota = self._stores.notas.get_by(nota_number=intent.nota_number)
                if (
                    payment.match_status != MatchStatus.RECEIVED.value
                    or intent.status != IntentStatus.APPROVED.value
                    or nota.status not in PAYABLE_NOTA_STATES
                ):
                    continue
                self._link_payment(payment, intent, nota, actor, "Auto-matched within tolerance")
            self._ctx.audit.append(
                action="PAYMENT_AUTO_MATCHED",
                module="reconciliation",
                entity_type="Payment",
                entity_id=payment.payment_ref,
                old_value={"match_status": MatchStatus.RECEIVED.value},
                new_value={"match_status": MatchStatus.MATCHED.value, "intent_id": intent.intent_id},
                actor=actor,
            )
            matched.append(self._stores.payments.get(payment.id))

        logger.info("auto_match_completed", extra={"matched_count": len(matched)})
        return matched

    def manual_match(
        self,
        payment_id: UUID | str,
        intent_id: str,
        actor: Actor,
        remarks: str | None = None,
    ) -> Payment:
        """
        Match a payment to an operator-chosen intent.

        Settles the nota through the cascade once the invoice has nothing
        outstanding.
        """
        self._ctx.authorize(
            actor,
            "reconciliation.manual_match",
            module="reconciliation",
            entity_type="Payment",
            entity_id=str(payment_id),
        )
        intent = self._stores.intents.get_by(intent_id=intent_id)
        nota = self._stores.notas.get_by(nota_number=intent.nota_number)
        with self._ctx.nota_lock(nota), LogContext.bind(entity_id=nota.nota_number):
            payment = self._stores.payments.get(payment_id)
            intent = self._stores.intents.get_by(intent_id=intent_id)
            nota = self._stores.notas.get_by(nota_number=intent.nota_number)

            if payment.match_status != MatchStatus.RECEIVED.value:
                reason = f"Payment {payment.payment_ref} is already {payment.match_status}"
                self._ctx.audit.append(
                    action="PAYMENT_MANUAL_MATCH",
                    module="reconciliation",
                    entity_type="Payment",
                    entity_id=payment.payment_ref,
                    old_value={"match_status": payment.match_status},
                    actor=actor,
                    reason=reason,
                    blocked=True,
                )
                raise InvalidTransitionError(
                    "Payment", payment.payment_ref, payment.match_status, "manual_match", reason
                )
            if payment.contract_id != intent.contract_id:
                reason = "Payment and intent belong to different contracts"
                self._ctx.audit.append(
                    action="PAYMENT_MANUAL_MATCH",
                    module="reconciliation",
                    entity_type="Payment",
                    entity_id=payment.payment_ref,
                    new_value={"intent_id": intent_id},
                    actor=actor,
                    reason=reason,
                    blocked=True,
                )
                raise GateNotSatisfiedError(
                    gate="same_contract", reason=reason, entity_type="Payment", entity_id=payment.payment_ref
                )
            self._require_payable(nota, actor, "PAYMENT_MANUAL_MATCH")

            invoice = self._link_payment(payment, intent, nota, actor, remarks)
            self._ctx.audit.append(
                action="PAYMENT_MANUAL_MATCHED",
                module="reconciliation",
                entity_type="Payment",
                entity_id=payment.payment_ref,
                old_value={"match_status": payment.match_status},
                new_value={
                    "match_status": MatchStatus.MATCHED.value,
                    "intent_id": intent_id,
                    "invoice_outstanding": invoice.outstanding_amount,
                },
                actor=actor,
                reason=remarks,
            )
            if invoice.outstanding_amount <= ZERO:
                self._cascade.settle(
                    nota.nota_number,
                    actor,
                    trigger="manual_match",
                    payment_reference=payment.payment_ref,
                )
        return self._stores.payments.get(payment.id)

    # ------------------------------------------------------------------
    # Exceptions and close
    # ------------------------------------------------------------------

    def open_adjustment(self, nota_number: str, actor: Actor, reason: str | None = None) -> DebitCreditNote:
        """
        Open a debit/credit note for an item in exception.

        Returns the nota's open note if one is already in progress.
        """
        self._ctx.authorize(
            actor,
            "reconciliation.open_adjustment",
            module="reconciliation",
            entity_type="Nota",
            entity_id=nota_number,
        )
        nota = self._stores.notas.get_by(nota_number=nota_number)
        with self._ctx.nota_lock(nota):
            nota = self._stores.notas.get_by(nota_number=nota_number)
            self._require_payable(nota, actor, "DEBIT_CREDIT_NOTE_CREATE")
            _, snap = self._items.refresh(nota, actor)
            if not snap.has_exception:
                block = "Reconciliation item has no exception to adjust"
                self._ctx.audit.append(
                    action="DEBIT_CREDIT_NOTE_CREATE",
                    module="reconciliation",
                    entity_type="Nota",
                    entity_id=nota_number,
                    old_value={"difference": snap.difference, "tolerance": snap.tolerance},
                    actor=actor,
                    reason=block,
                    blocked=True,
                )
                raise GateNotSatisfiedError(
                    gate="reconciliation_exception", reason=block, entity_type="Nota", entity_id=nota_number
                )

            notes = self._stores.notes.filter(original_nota_id=nota_number)
            open_notes = [n for n in notes if n.status != NoteStatus.REJECTED.value]
            if open_notes:
                return open_notes[0]

            generation = len(notes) + 1
            shortfall = snap.difference > ZERO
            prefix = "DN" if shortfall else "CN"
            note, created = self._stores.notes.get_or_create(
                adjustment_key(nota_number, generation),
                {
                    "note_number": f"{prefix}-{nota_number}-{generation}",
                    "note_type": (NoteType.DEBIT if shortfall else NoteType.CREDIT).value,
                    "original_nota_id": nota_number,
                    "batch_id": nota.reference_id if nota.nota_type == NotaType.BATCH.value else None,
                    "contract_id": nota.contract_id,
                    "original_amount": nota.amount,
                    "adjustment_amount": snap.difference,
                    "currency": nota.currency,
                    "reason_description": reason
                    or f"{'Underpayment' if shortfall else 'Overpayment'} of {abs(snap.difference)}",
                    "status": NoteStatus.DRAFT.value,
                },
                actor_email=actor.email,
            )
        if created:
            self._ctx.audit.append(
                action="DEBIT_CREDIT_NOTE_CREATED",
                module="reconciliation",
                entity_type="DebitCreditNote",
                entity_id=note.note_number,
                new_value={
                    "note_type": note.note_type,
                    "adjustment_amount": note.adjustment_amount,
                    "original_nota_id": nota_number,
                },
                actor=actor,
                reason=reason,
            )
            self._ctx.notifier.notify(
                title="Debit/Credit Note Opened",
                message=f"{note.note_type} note {note.note_number} for {abs(note.adjustment_amount)} on nota {nota_number}",
                severity=Severity.ACTION_REQUIRED.value,
                module="reconciliation",
                reference_id=note.note_number,
                target_role=Role.TUGURE.value,
            )
        return note

    def mark_final(self, nota_number: str, actor: Actor) -> ReconciliationItem:
        """
        Freeze the item's matching outcome for the nota.

        A short payment (Partial) above the close threshold cannot be
        finalized; record more money or raise a debit note first.
        Finalizing an item that is already Final or Closed is a no-op.
        """
        self._ctx.authorize(
            actor,
            "reconciliation.mark_final",
            module="reconciliation",
            entity_type="ReconciliationItem",
            entity_id=nota_number,
        )
        nota = self._stores.notas.get_by(nota_number=nota_number)
        with self._ctx.nota_lock(nota), LogContext.bind(entity_id=nota_number):
            nota = self._stores.notas.get_by(nota_number=nota_number)
            self._require_payable(nota, actor, "RECONCILIATION_MARK_FINAL")
            item, snap = self._items.refresh(nota, actor)
            if item.item_state != ReconItemState.OPEN.value:
                return item

            threshold = self._ctx.config.tolerance.close_threshold
            if snap.recon_status == ReconStatus.PARTIAL and abs(snap.difference) > threshold:
                self._ctx.audit.append(
                    action="RECONCILIATION_MARK_FINAL",
                    module="reconciliation",
                    entity_type="ReconciliationItem",
                    entity_id=nota_number,
                    old_value={"difference": snap.difference, "recon_status": snap.recon_status.value},
                    actor=actor,
                    reason=f"Partial payment leaves a difference of {snap.difference}",
                    blocked=True,
                )
                raise ToleranceExceededError(nota_number, snap.difference, threshold)

            item = self._items.mark_final(nota_number, actor)

        self._ctx.audit.append(
            action="RECONCILIATION_MARKED_FINAL",
            module="reconciliation",
            entity_type="ReconciliationItem",
            entity_id=nota_number,
            old_value={"item_state": ReconItemState.OPEN.value},
            new_value={
                "item_state": item.item_state,
                "recon_status": snap.recon_status.value,
                "difference": snap.difference,
            },
            actor=actor,
        )
        follow_up = "Debit/credit note now enabled." if snap.has_exception else "Payment matched."
        self._ctx.notifier.notify(
            title="Reconciliation Marked Final",
            message=f"Nota {nota_number} reconciliation finalized. {follow_up}",
            severity=Severity.INFO.value,
            module="reconciliation",
            reference_id=nota_number,
            target_role=TARGET_ALL,
        )
        return item

    def close_item(self, nota_number: str, actor: Actor, remarks: str | None = None) -> ReconciliationItem:
        """
        Close the nota's reconciliation item and settle the nota.

        Raises:
            ToleranceExceededError: difference above the close threshold
                and not covered by an approved or acknowledged note.
        """
        self._ctx.authorize(
            actor, "reconciliation.close", module="reconciliation", entity_type="Nota", entity_id=nota_number
        )
        nota = self._stores.notas.get_by(nota_number=nota_number)
        with self._ctx.nota_lock(nota), LogContext.bind(entity_id=nota_number):
            nota = self._stores.notas.get_by(nota_number=nota_number)
            item, snap = self._items.refresh(nota, actor)
            if item.item_state == ReconItemState.CLOSED.value and nota.status == NotaStatus.PAID.value:
                return item
            if not snap.closable:
                threshold = self._ctx.config.tolerance.close_threshold
                self._ctx.audit.append(
                    action="RECONCILIATION_CLOSE",
                    module="reconciliation",
                    entity_type="ReconciliationItem",
                    entity_id=nota_number,
                    old_value={"difference": snap.difference, "item_state": item.item_state},
                    actor=actor,
                    reason=f"Difference {snap.difference} exceeds {threshold}",
                    blocked=True,
                )
                raise ToleranceExceededError(nota_number, snap.difference, threshold)

            self._cascade.settle(nota_number, actor, trigger="reconciliation_close")
            item = self._items.close(self._items.item_for(nota_number), actor)

        self._ctx.audit.append(
            action="RECONCILIATION_CLOSED",
            module="reconciliation",
            entity_type="ReconciliationItem",
            entity_id=nota_number,
            new_value={
                "difference": snap.difference,
                "covered_by_adjustment": snap.covered_by_adjustment,
                "item_state": item.item_state,
            },
            actor=actor,
            reason=remarks,
        )
        return item
