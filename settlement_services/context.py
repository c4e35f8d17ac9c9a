"""
SettlementContext -- the collaborators every settlement service shares.

One context is built per orchestrator.  It owns the entity stores, the
audit sink, the notification dispatcher, the workflow executor, the
aggregate lock registry and the saga executor, and exposes the capability
check used at the service boundary.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Mapping

from sqlalchemy.orm import Session, sessionmaker

from settlement_config.bridges import build_saga_executor, build_tolerance_policy
from settlement_config.schema import SettlementConfig
from settlement_engines.tolerance import TolerancePolicy
from settlement_kernel.domain.actor import TARGET_ALL, Actor
from settlement_kernel.domain.clock import Clock, SystemClock
from settlement_kernel.domain.statuses import NotaType
from settlement_kernel.exceptions import PermissionDeniedError
from settlement_kernel.models import (
    AcceptedRecord,
    Batch,
    Claim,
    DebitCreditNote,
    Debtor,
    Invoice,
    Nota,
    Payment,
    PaymentIntent,
    PaymentShare,
    ReconciliationItem,
)
from settlement_kernel.services.audit_trail import AuditTrail
from settlement_kernel.services.entity_store import EntityStore
from settlement_kernel.services.notification_dispatcher import (
    EmailSender,
    NotificationDispatcher,
)
from settlement_kernel.services.saga import SagaExecutor
from settlement_kernel.utils.locks import AggregateLockRegistry, batch_lock_key, nota_lock_key
from settlement_services.rbac_authority import check_permission
from settlement_services.workflow_executor import WorkflowExecutor


@dataclass
class Stores:
    batches: EntityStore[Batch]
    debtors: EntityStore[Debtor]
    accepted: EntityStore[AcceptedRecord]
    notas: EntityStore[Nota]
    invoices: EntityStore[Invoice]
    intents: EntityStore[PaymentIntent]
    payments: EntityStore[Payment]
    shares: EntityStore[PaymentShare]
    recon_items: EntityStore[ReconciliationItem]
    notes: EntityStore[DebitCreditNote]
    claims: EntityStore[Claim]

    @classmethod
    def build(cls, session_factory: sessionmaker[Session]) -> "Stores":
        return cls(
            batches=EntityStore(session_factory, Batch),
            debtors=EntityStore(session_factory, Debtor),
            accepted=EntityStore(session_factory, AcceptedRecord),
            notas=EntityStore(session_factory, Nota),
            invoices=EntityStore(session_factory, Invoice),
            intents=EntityStore(session_factory, PaymentIntent),
            payments=EntityStore(session_factory, Payment),
            shares=EntityStore(session_factory, PaymentShare),
            recon_items=EntityStore(session_factory, ReconciliationItem),
            notes=EntityStore(session_factory, DebitCreditNote),
            claims=EntityStore(session_factory, Claim),
        )


@dataclass
class SettlementContext:
    session_factory: sessionmaker[Session]
    config: SettlementConfig
    clock: Clock
    stores: Stores
    audit: AuditTrail
    notifier: NotificationDispatcher
    executor: WorkflowExecutor
    sagas: SagaExecutor
    policy: TolerancePolicy
    locks: AggregateLockRegistry = field(default_factory=AggregateLockRegistry)

    @classmethod
    def build(
        cls,
        session_factory: sessionmaker[Session],
        config: SettlementConfig,
        clock: Clock | None = None,
        email_sender: EmailSender | None = None,
    ) -> "SettlementContext":
        clock = clock or SystemClock()
        return cls(
            session_factory=session_factory,
            config=config,
            clock=clock,
            stores=Stores.build(session_factory),
            audit=AuditTrail(session_factory, clock),
            notifier=NotificationDispatcher(
                session_factory,
                templates=config.email_templates,
                email_sender=email_sender,
                clock=clock,
            ),
            executor=WorkflowExecutor(),
            sagas=build_saga_executor(config),
            policy=build_tolerance_policy(config),
        )

    def today(self) -> date:
        return self.clock.today()

    # ------------------------------------------------------------------
    # Capabilities
    # ------------------------------------------------------------------

    def can(self, actor: Actor, permission: str) -> bool:
        allowed, _ = check_permission(self.config.rbac, actor.role_name, permission)
        return allowed

    def is_elevated(self, actor: Actor) -> bool:
        return self.config.is_elevated(actor.role_name)

    def authorize(
        self,
        actor: Actor,
        permission: str,
        *,
        module: str,
        entity_type: str,
        entity_id: str,
        from_state: str = "",
    ) -> None:
        """Raise PermissionDeniedError, after auditing the attempt, unless allowed."""
        allowed, reason = check_permission(self.config.rbac, actor.role_name, permission)
        if allowed:
            return
        self.audit.append(
            action=permission.upper().replace(".", "_"),
            module=module,
            entity_type=entity_type,
            entity_id=entity_id,
            actor=actor,
            reason=reason,
            blocked=True,
        )
        raise PermissionDeniedError(
            actor_email=actor.email,
            actor_role=actor.role_name,
            permission=permission,
            entity_type=entity_type,
            entity_id=entity_id,
            from_state=from_state,
        )

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def announce(
        self,
        *,
        title: str,
        message: str,
        module: str,
        reference_id: str,
        entity_kind: str,
        to_status: str,
        from_status: str | None = None,
        target_role: str = TARGET_ALL,
        severity: str = "INFO",
        variables: Mapping[str, Any] | None = None,
    ) -> None:
        """In-app notification plus the templated e-mail for this status change."""
        self.notifier.notify(
            title=title,
            message=message,
            severity=severity,
            module=module,
            reference_id=reference_id,
            target_role=target_role,
        )
        self.notifier.send_templated_email(
            entity_kind=entity_kind,
            from_status=from_status,
            to_status=to_status,
            target_role=target_role,
            variables=variables,
        )

    # ------------------------------------------------------------------
    # Aggregate locks
    # ------------------------------------------------------------------

    def batch_lock(self, batch_id: str):
        return self.locks.hold(batch_lock_key(batch_id))

    def nota_lock(self, nota: Nota):
        """Lock a nota together with its batch, always in the same order."""
        keys = [nota_lock_key(nota.nota_number)]
        if nota.nota_type == NotaType.BATCH.value:
            keys.append(batch_lock_key(nota.reference_id))
        return self.locks.hold(*keys)
