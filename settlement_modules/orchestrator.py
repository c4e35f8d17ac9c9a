"""
settlement_modules.orchestrator -- Wiring for the settlement workflow.

Responsibility:
    Builds the shared SettlementContext and every module service exactly
    once, sharing a single InvoiceSettlement, ReconciliationItems and
    SettlementCascade among them so the four settlement triggers run the
    same instance.

Architecture position:
    Modules layer, top.  The only place module services are constructed.
    Callers (an API, a CLI, tests) hold one orchestrator per database.

Usage:
    from settlement_modules.orchestrator import SettlementOrchestrator

    orch = SettlementOrchestrator.from_database_url("sqlite:///settlement.db")
    orch.batches.register_batch("B-2024-01", 1, 2024, "C-1", debtors, actor)
    orch.batches.advance("B-2024-01", actor)
"""

from __future__ import annotations

from sqlalchemy.orm import Session, sessionmaker

from settlement_config import get_active_config
from settlement_config.schema import SettlementConfig
from settlement_kernel.db.engine import create_tables, get_session_factory, init_engine_from_url
from settlement_kernel.db.immutability import register_immutability_listeners
from settlement_kernel.domain.clock import Clock
from settlement_kernel.logging_config import get_logger
from settlement_kernel.services.notification_dispatcher import EmailSender
from settlement_modules._settlement_cascade import SettlementCascade
from settlement_modules.adjustment.service import AdjustmentService
from settlement_modules.batch.service import BatchService
from settlement_modules.claim.service import ClaimService
from settlement_modules.debtor_review.service import DebtorReviewService
from settlement_modules.nota.service import NotaService
from settlement_modules.payment_intent.service import PaymentIntentService
from settlement_modules.reconciliation.service import ReconciliationService
from settlement_services.context import SettlementContext
from settlement_services.invoice_settlement import InvoiceSettlement
from settlement_services.reconciliation_items import ReconciliationItems

logger = get_logger("modules.orchestrator")


class SettlementOrchestrator:
    """All settlement services over one context."""

    def __init__(self, ctx: SettlementContext):
        self.ctx = ctx
        self.invoices = InvoiceSettlement(ctx)
        self.items = ReconciliationItems(ctx)
        self.cascade = SettlementCascade(ctx, self.invoices, self.items)

        self.notas = NotaService(ctx, self.invoices, self.items, self.cascade)
        self.batches = BatchService(ctx, self.notas)
        self.reviews = DebtorReviewService(ctx, self.notas)
        self.intents = PaymentIntentService(ctx)
        self.reconciliation = ReconciliationService(ctx, self.invoices, self.items, self.cascade)
        self.adjustments = AdjustmentService(ctx, self.invoices, self.items, self.cascade)
        self.claims = ClaimService(ctx, self.notas)

        logger.info(
            "settlement_orchestrator_ready",
            extra={"config_id": ctx.config.config_id, "config_version": ctx.config.version},
        )

    @classmethod
    def from_session_factory(
        cls,
        session_factory: sessionmaker[Session],
        config: SettlementConfig | None = None,
        clock: Clock | None = None,
        email_sender: EmailSender | None = None,
    ) -> "SettlementOrchestrator":
        ctx = SettlementContext.build(
            session_factory,
            config or get_active_config(),
            clock=clock,
            email_sender=email_sender,
        )
        return cls(ctx)

    @classmethod
    def from_database_url(
        cls,
        database_url: str,
        config: SettlementConfig | None = None,
        clock: Clock | None = None,
        email_sender: EmailSender | None = None,
    ) -> "SettlementOrchestrator":
        """Initialize the engine, create missing tables and wire everything."""
        engine = init_engine_from_url(database_url)
        create_tables(engine)
        register_immutability_listeners()
        return cls.from_session_factory(get_session_factory(), config, clock, email_sender)

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    @property
    def audit(self):
        return self.ctx.audit

    @property
    def notifier(self):
        return self.ctx.notifier

    def can(self, actor, permission: str) -> bool:
        return self.ctx.can(actor, permission)
