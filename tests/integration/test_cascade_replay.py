"""
Replaying the settlement cascade must converge, never duplicate.

Every entry point that settles a nota runs the same saga; running it again
(retry after a crash, a second operator click, a later close) must leave
payments, shares and debtor totals exactly as they were.
"""

from decimal import Decimal

import pytest

from settlement_kernel.exceptions import GateNotSatisfiedError


def _state(orch, nota_number):
    stores = orch.ctx.stores
    invoice = orch.notas.invoice_for(nota_number)
    payments = stores.payments.filter(invoice_id=str(invoice.id))
    shares = stores.shares.filter(invoice_id=str(invoice.id))
    debtors = sorted(orch.batches.debtors("B-2025-01"), key=lambda d: d.participant_no)
    return {
        "payments": sorted((p.payment_ref, p.amount) for p in payments),
        "share_count": len(shares),
        "share_total": sum((s.amount for s in shares), Decimal("0")),
        "receipts": [d.payment_received_amount for d in debtors],
        "invoice": (invoice.status, invoice.paid_amount, invoice.outstanding_amount),
    }


@pytest.fixture
def settled_nota(orch, confirmed_nota, tugure):
    nota = confirmed_nota()
    orch.reconciliation.record_payment(
        nota.nota_number, Decimal("9950000"), tugure, payment_ref="TRX-REPLAY"
    )
    return nota


def test_replay_changes_nothing(orch, settled_nota, tugure):
    before = _state(orch, settled_nota.nota_number)

    for _ in range(2):
        result = orch.cascade.settle(settled_nota.nota_number, tugure, trigger="replay")
        assert result.outputs["ensure_payment"] is None

    assert _state(orch, settled_nota.nota_number) == before


def test_shares_sum_to_payments(orch, settled_nota):
    state = _state(orch, settled_nota.nota_number)
    assert state["share_total"] == sum(amount for _, amount in state["payments"])
    assert sum(state["receipts"]) == state["share_total"]


def test_replay_does_not_announce_again(orch, settled_nota, tugure):
    def paid_notices():
        notices = orch.notifier.notifications(reference_id=settled_nota.nota_number)
        return [n for n in notices if n.title == "Nota Paid"]

    assert len(paid_notices()) == 1
    orch.cascade.settle(settled_nota.nota_number, tugure, trigger="replay")
    assert len(paid_notices()) == 1
    assert len(orch.audit.events(action="NOTA_SETTLEMENT_CASCADE")) == 2


def test_advance_creates_settlement_payment_once(orch, confirmed_nota, tugure):
    nota = confirmed_nota()
    orch.notas.advance(nota.nota_number, tugure)
    orch.cascade.settle(nota.nota_number, tugure, trigger="replay")

    payments = orch.ctx.stores.payments.filter(nota_number=nota.nota_number)
    assert [(p.payment_ref, p.amount) for p in payments] == [
        (f"SETTLE-{nota.nota_number}", Decimal("10000000"))
    ]
    debtors = sorted(orch.batches.debtors("B-2025-01"), key=lambda d: d.participant_no)
    assert [d.payment_received_amount for d in debtors] == [Decimal("4000000"), Decimal("6000000")]


def test_close_after_settlement_is_a_no_op(orch, settled_nota, tugure):
    before = _state(orch, settled_nota.nota_number)
    item = orch.reconciliation.close_item(settled_nota.nota_number, tugure)
    assert item.item_state == "Closed"
    assert _state(orch, settled_nota.nota_number) == before


def test_draft_nota_cannot_settle(orch, approved_batch, tugure):
    approved_batch()
    draft = orch.notas.nota_for_batch("B-2025-01")
    with pytest.raises(GateNotSatisfiedError) as exc_info:
        orch.cascade.settle(draft.nota_number, tugure, trigger="replay")
    assert exc_info.value.gate == "nota_issued"
    assert orch.audit.events(action="BLOCKED_NOTA_SETTLEMENT")
