"""Tests for in-app notifications and templated e-mail routing."""

import pytest

from settlement_config import get_active_config
from settlement_config.schema import EmailTemplate
from settlement_kernel.services.notification_dispatcher import (
    NotificationDispatcher,
    render_template,
)


class FailingSender:
    def send(self, recipient_role, subject, body):
        raise ConnectionError("smtp down")


@pytest.fixture
def dispatcher(session_factory, clock, email_sender) -> NotificationDispatcher:
    return NotificationDispatcher(
        session_factory,
        templates=get_active_config().email_templates,
        email_sender=email_sender,
        clock=clock,
    )


class TestRenderTemplate:
    def test_substitutes_known_placeholders(self):
        assert render_template("Nota {nota_number} paid", {"nota_number": "N-1"}) == "Nota N-1 paid"

    def test_unknown_placeholder_left_untouched(self):
        assert render_template("{a} and {b}", {"a": 1}) == "1 and {b}"

    def test_none_value_left_untouched(self):
        assert render_template("ref {payment_reference}", {"payment_reference": None}) == (
            "ref {payment_reference}"
        )


class TestNotify:
    def test_persisted_and_filtered(self, dispatcher):
        dispatcher.notify("Batch Approved", "B-1 approved", "INFO", "batch", "B-1", target_role="BRINS")
        dispatcher.notify("Payment Exception", "N-1 short", "WARNING", "reconciliation", "N-1", "TUGURE")

        brins = dispatcher.notifications(target_role="BRINS")
        assert [n.title for n in brins] == ["Batch Approved"]
        assert brins[0].is_read is False
        assert len(dispatcher.notifications(reference_id="N-1")) == 1

    def test_failure_returns_none(self, dispatcher):
        assert dispatcher.notify(None, "no title", "INFO", "batch", "B-1") is None


class TestTemplatedEmail:
    def test_status_change_routes_template(self, dispatcher, email_sender):
        sent = dispatcher.send_templated_email(
            "Batch",
            "Matched",
            "Approved",
            "BRINS",
            variables={"batch_id": "B-1", "contract_id": "TTY-1", "actor_email": "u@tugure.example"},
        )
        assert sent is True
        assert email_sender.sent == [
            {
                "recipient_role": "BRINS",
                "subject": "Batch B-1 approved",
                "body": "Batch B-1 for contract TTY-1 was approved by u@tugure.example.",
            }
        ]

    def test_wrong_from_status_does_not_match(self, dispatcher, email_sender):
        assert not dispatcher.send_templated_email("Nota", "Confirmed", "Issued", "BRINS")
        assert email_sender.sent == []

    def test_all_audience_template_matches_any_role(self, dispatcher):
        tpl = dispatcher.find_template("Nota", "Confirmed", "Paid", "TUGURE")
        assert tpl.key == "nota_paid"

    def test_template_key_narrows_choice(self, session_factory):
        templates = [
            EmailTemplate("a", "Nota", "Paid", "ALL", "A", "a"),
            EmailTemplate("b", "Nota", "Paid", "ALL", "B", "b"),
        ]
        d = NotificationDispatcher(session_factory, templates=templates)
        assert d.find_template("Nota", None, "Paid", "BRINS").key == "a"
        assert d.find_template("Nota", None, "Paid", "BRINS", template_key="b").key == "b"

    def test_sender_failure_is_swallowed(self, session_factory):
        d = NotificationDispatcher(
            session_factory,
            templates=get_active_config().email_templates,
            email_sender=FailingSender(),
        )
        assert d.send_templated_email("Nota", "Issued", "Paid", "ALL", variables={}) is False
