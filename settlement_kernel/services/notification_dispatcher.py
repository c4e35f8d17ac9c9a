"""
Module: settlement_kernel.services.notification_dispatcher
Responsibility: Role-targeted alerts.  ``notify`` persists an in-app
    notification row; ``send_templated_email`` resolves a template by
    (entity kind, status change, recipient role) and hands the rendered
    message to a pluggable EmailSender.
Architecture position: Kernel > Services.  Receives templates from the
    caller (settlement_config builds them); the kernel never reads config.

Invariants enforced:
    - Best-effort.  Neither method raises; failures are logged at ERROR and
      the primary transition stands.
    - Template variables use ``{name}`` placeholders.  Unknown placeholders
      are left untouched rather than failing the render.
"""

from __future__ import annotations

import re
from typing import Any, Mapping, Protocol, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from settlement_kernel.db.engine import session_scope
from settlement_kernel.domain.actor import TARGET_ALL
from settlement_kernel.domain.clock import Clock, SystemClock
from settlement_kernel.logging_config import get_logger
from settlement_kernel.models.notification import Notification

logger = get_logger("services.notification_dispatcher")

_PLACEHOLDER = re.compile(r"\{(\w+)\}")


class EmailTemplateLike(Protocol):
    key: str
    object_type: str
    status_from: str | None
    status_to: str
    recipient_role: str
    subject: str
    body: str


class EmailSender(Protocol):
    def send(self, recipient_role: str, subject: str, body: str) -> None: ...


class LoggingEmailSender:
    """Default transport: records the rendered e-mail in the log stream."""

    def send(self, recipient_role: str, subject: str, body: str) -> None:
        logger.info(
            "email_dispatched",
            extra={"recipient_role": recipient_role, "subject": subject},
        )


def render_template(text: str, variables: Mapping[str, Any]) -> str:
    """Replace ``{name}`` placeholders with values from ``variables``."""

    def _sub(match: re.Match) -> str:
        name = match.group(1)
        if name in variables and variables[name] is not None:
            return str(variables[name])
        return match.group(0)

    return _PLACEHOLDER.sub(_sub, text)


class NotificationDispatcher:
    """Writes in-app notifications and sends templated e-mails."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        templates: Sequence[EmailTemplateLike] = (),
        email_sender: EmailSender | None = None,
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._templates = tuple(templates)
        self._sender = email_sender or LoggingEmailSender()
        self._clock = clock or SystemClock()

    def notify(
        self,
        title: str,
        message: str,
        severity: str,
        module: str,
        reference_id: str,
        target_role: str = TARGET_ALL,
    ) -> Notification | None:
        try:
            row = Notification(
                title=title,
                message=message,
                severity=severity,
                module=module,
                reference_id=str(reference_id),
                target_role=target_role,
                created_at=self._clock.now(),
            )
            with session_scope(self._session_factory) as session:
                session.add(row)
                session.flush()
        except Exception:  # noqa: BLE001
            logger.error(
                "notification_failed",
                extra={"title": title, "reference_id": str(reference_id), "target_role": target_role},
                exc_info=True,
            )
            return None
        logger.info(
            "notification_sent",
            extra={"title": title, "reference_id": str(reference_id), "target_role": target_role},
        )
        return row

    def find_template(
        self,
        entity_kind: str,
        from_status: str | None,
        to_status: str,
        target_role: str,
        template_key: str | None = None,
    ) -> EmailTemplateLike | None:
        for tpl in self._templates:
            if template_key is not None and tpl.key != template_key:
                continue
            if tpl.object_type != entity_kind or tpl.status_to != to_status:
                continue
            if tpl.recipient_role not in (target_role, TARGET_ALL):
                continue
            if tpl.status_from not in (None, "*", from_status):
                continue
            return tpl
        return None

    def send_templated_email(
        self,
        entity_kind: str,
        from_status: str | None,
        to_status: str,
        target_role: str,
        template_key: str | None = None,
        variables: Mapping[str, Any] | None = None,
    ) -> bool:
        """Render and send.  Returns False when no template applies or sending failed."""
        tpl = self.find_template(entity_kind, from_status, to_status, target_role, template_key)
        if tpl is None:
            logger.debug(
                "email_template_missing",
                extra={
                    "entity_kind": entity_kind,
                    "from_status": from_status,
                    "to_status": to_status,
                    "target_role": target_role,
                },
            )
            return False
        values = dict(variables or {})
        values.setdefault("status_from", from_status or "")
        values.setdefault("status_to", to_status)
        try:
            self._sender.send(
                target_role,
                render_template(tpl.subject, values),
                render_template(tpl.body, values),
            )
        except Exception:  # noqa: BLE001
            logger.error(
                "email_send_failed",
                extra={"template_key": tpl.key, "target_role": target_role},
                exc_info=True,
            )
            return False
        return True

    def notifications(
        self,
        target_role: str | None = None,
        reference_id: str | None = None,
    ) -> list[Notification]:
        stmt = select(Notification).order_by(Notification.created_at)
        if target_role is not None:
            stmt = stmt.where(Notification.target_role == target_role)
        if reference_id is not None:
            stmt = stmt.where(Notification.reference_id == str(reference_id))
        with session_scope(self._session_factory) as session:
            return list(session.scalars(stmt))
