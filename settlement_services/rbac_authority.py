"""
settlement_services.rbac_authority -- Capability check at the orchestrator boundary.

Responsibility:
    Decide whether an actor's role grants the permission an action needs.
    Role-based branching lives here and nowhere else; the state machines
    never look at roles.

Architecture position:
    Services layer. Consumes RbacConfig from settlement_config.  Called by
    SettlementContext.authorize() before any guarded transition or
    creation step.

Invariants:
    - Deny by default: an unknown role or an unmapped permission is denied.
    - A ``"*"`` grant covers every permission.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

WILDCARD = "*"

# (workflow_name, action) -> permission string
WORKFLOW_ACTION_TO_PERMISSION: dict[tuple[str, str], str] = {
    # Batch
    ("batch", "validate"): "batch.validate",
    ("batch", "match"): "batch.match",
    ("batch", "approve"): "batch.approve",
    ("batch", "issue_nota"): "batch.issue_nota",
    ("batch", "confirm_branch"): "batch.confirm_branch",
    ("batch", "mark_paid"): "batch.mark_paid",
    ("batch", "close"): "batch.close",
    ("batch", "reject"): "batch.reject",
    ("batch", "request_reopen"): "batch.request_reopen",
    ("batch", "approve_reopen"): "batch.resolve_reopen",
    ("batch", "reject_reopen"): "batch.resolve_reopen",
    # Nota
    ("nota", "issue"): "nota.issue",
    ("nota", "confirm"): "nota.confirm",
    ("nota", "mark_paid"): "nota.mark_paid",
    # Payment intent
    ("payment_intent", "submit"): "payment_intent.submit",
    ("payment_intent", "approve"): "payment_intent.approve",
    ("payment_intent", "reject"): "payment_intent.reject",
    ("payment_intent", "complete"): "reconciliation.manual_match",
    # Debit / credit note
    ("debit_credit_note", "review"): "adjustment.review",
    ("debit_credit_note", "approve"): "adjustment.approve",
    ("debit_credit_note", "reject"): "adjustment.reject",
    ("debit_credit_note", "acknowledge"): "adjustment.acknowledge",
    # Claim
    ("claim", "check"): "claim.review",
    ("claim", "verify"): "claim.review",
    ("claim", "invoice"): "claim.review",
    ("claim", "reject"): "claim.review",
    ("claim", "resubmit"): "claim.submit",
}


def get_permission_for_transition(workflow_name: str, action: str) -> str | None:
    """Return the permission required for this workflow transition, or None if not in scope."""
    return WORKFLOW_ACTION_TO_PERMISSION.get((workflow_name, action))


def check_permission(
    rbac: "RbacConfig",
    role: str,
    required_permission: str,
) -> tuple[bool, str]:
    """Check whether ``role`` may perform an action needing ``required_permission``.

    Returns:
        (allowed, reason). reason is empty when allowed, or a short message
        when denied.
    """
    if not role or not role.strip():
        return (False, "RBAC: actor role missing")

    if role not in rbac.role_permissions:
        return (False, f"RBAC: unknown role '{role}'")

    granted = rbac.permissions_for(role)
    if WILDCARD in granted or required_permission in granted:
        return (True, "")

    return (False, f"RBAC: permission '{required_permission}' not granted to role '{role}'")


if TYPE_CHECKING:
    from settlement_config.schema import RbacConfig
