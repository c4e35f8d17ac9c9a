"""
settlement_services -- Package init and public API.

Responsibility:
    Stateful services shared by every settlement module: the capability
    check, workflow execution with guard evaluation, the guarded and
    audited transition runner, invoice bookkeeping with pro-rata debtor
    distribution, and the stored reconciliation items.

Architecture position:
    Services -- stateful orchestration over engines + kernel.

    Dependency direction:
        settlement_services/ -> settlement_engines/  (allowed)
        settlement_services/ -> settlement_kernel/   (allowed)
        settlement_services/ -> settlement_modules/  (FORBIDDEN)
        settlement_kernel/   -> settlement_services/ (FORBIDDEN)
"""

from settlement_kernel.logging_config import get_logger

logger = get_logger("services")

from settlement_services.context import SettlementContext, Stores
from settlement_services.invoice_settlement import InvoiceSettlement
from settlement_services.rbac_authority import check_permission, get_permission_for_transition
from settlement_services.reconciliation_items import ReconciliationItems
from settlement_services.transition_runner import apply_transition
from settlement_services.workflow_executor import GuardExecutor, WorkflowExecutor

__all__ = [
    "GuardExecutor",
    "InvoiceSettlement",
    "ReconciliationItems",
    "SettlementContext",
    "Stores",
    "WorkflowExecutor",
    "apply_transition",
    "check_permission",
    "get_permission_for_transition",
]
