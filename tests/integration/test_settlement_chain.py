"""
End-to-end settlement chain: upload to claim, across both roles.

Walks one batch through every stage with the same services a UI would call
and checks the cross-entity state, the audit chain and who was told what.
"""

from decimal import Decimal

from settlement_kernel.domain.statuses import ReviewDecision
from tests.conftest import CONTRACT_ID, debtor_rows


def test_batch_to_claim(orch, brins, tugure, email_sender):
    batch_id = "B-2025-03"

    # Intake and review
    orch.batches.register_batch(
        batch_id, 3, 2025, CONTRACT_ID, debtor_rows("1000000", "3000000", "5000000"), brins
    )
    orch.batches.advance(batch_id, tugure)
    orch.batches.advance(batch_id, tugure)
    first, second, third = sorted(orch.batches.debtors(batch_id), key=lambda d: d.participant_no)
    orch.reviews.decide_bulk([first.id, second.id], ReviewDecision.APPROVE, "In appetite", tugure)
    orch.reviews.decide(third.id, ReviewDecision.REJECT, "Over plafond", tugure)

    batch = orch.batches.advance(batch_id, tugure)
    assert batch.status == "Approved"
    assert batch.final_premium_amount == Decimal("4000000")

    # Nota and branch confirmation
    orch.batches.advance(batch_id, tugure)
    orch.batches.advance(batch_id, brins)
    nota = orch.notas.nota_for_batch(batch_id)
    assert nota.status == "Confirmed"
    assert nota.amount == Decimal("4000000")

    # Planned payment, actual payment, auto-match
    intent_id = f"PI-{nota.nota_number}-AUTO"
    orch.intents.submit(intent_id, brins)
    orch.intents.approve(intent_id, tugure)
    orch.reconciliation.receive_payment(
        "BNK-2025-03-001", CONTRACT_ID, Decimal("3970000"), tugure
    )
    matched = orch.reconciliation.auto_match(tugure)
    assert [p.intent_id for p in matched] == [intent_id]
    assert orch.notas.get(nota.nota_number).status == "Confirmed"

    # Close within threshold settles everything
    item = orch.reconciliation.close_item(nota.nota_number, tugure, remarks="Transfer fee")
    assert item.item_state == "Closed"
    assert orch.notas.get(nota.nota_number).status == "Paid"
    assert orch.notas.invoice_for(nota.nota_number).status == "Paid"

    receipts = {
        d.participant_no: d.payment_received_amount
        for d in orch.batches.debtors(batch_id, active_only=True)
    }
    assert receipts == {
        "P-001": Decimal("992500"),
        "P-002": Decimal("2977500"),
        "P-003": Decimal("0"),
    }

    batch = orch.batches.advance(batch_id, tugure)
    assert batch.status == "Closed"
    assert batch.operational_locked is True

    # Claims open once the nota is paid
    assert orch.claims.can_submit_claim(batch_id)
    orch.claims.submit_claim("CLM-2025-03-01", batch_id, first.id, Decimal("10000000"), brins)
    for action in ("check", "verify", "invoice"):
        claim = orch.claims.review("CLM-2025-03-01", action, tugure)
    assert claim.status == "Invoiced"
    assert orch.notas.get(claim.nota_number).amount == Decimal("4400000")

    # Every step left a verifiable trail and nothing was refused
    assert orch.audit.verify_chain()
    assert orch.audit.events(blocked=True) == []
    assert orch.audit.events(entity_id=nota.nota_number, action="NOTA_SETTLEMENT_CASCADE")

    subjects = {m["subject"] for m in email_sender.sent}
    assert f"Batch {batch_id} approved" in subjects
    assert f"Nota {nota.nota_number} issued" in subjects
    assert f"Nota {nota.nota_number} confirmed" in subjects
    assert f"Nota {nota.nota_number} paid" in subjects


def test_exception_resolved_by_debit_note(orch, confirmed_nota, brins, tugure):
    nota = confirmed_nota()
    orch.reconciliation.record_payment(
        nota.nota_number, Decimal("9000000"), tugure, payment_ref="TRX-2025-0100"
    )
    note = orch.reconciliation.open_adjustment(nota.nota_number, tugure)
    orch.adjustments.review(note.note_number, tugure)
    orch.adjustments.approve(note.note_number, tugure)
    orch.adjustments.acknowledge(note.note_number, brins)

    assert orch.notas.get(nota.nota_number).status == "Paid"
    assert orch.batches.get("B-2025-01").status == "Paid"
    assert orch.reconciliation.exceptions() == []
    assert orch.claims.can_submit_claim("B-2025-01")
    assert orch.audit.verify_chain()
