"""
SettlementConfig schema.

Frozen dataclasses for the settlement policy: tolerance thresholds, saga
retry budget, role capabilities and e-mail routing templates.  YAML is
parsed into these types by the loader; services only ever see the frozen
result.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ToleranceConfig:
    """Matching tolerance: max(base * relative_percent / 100, absolute_floor)."""

    relative_percent: Decimal = Decimal("1")
    absolute_floor: Decimal = Decimal("100000")
    close_threshold: Decimal = Decimal("100000")


# ---------------------------------------------------------------------------
# Cascades
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SagaConfig:
    max_attempts: int = 3


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RbacConfig:
    """Capabilities per role.  A ``"*"`` entry grants every permission."""

    role_permissions: dict[str, frozenset[str]] = field(default_factory=dict)
    elevated_roles: frozenset[str] = frozenset()

    def permissions_for(self, role: str) -> frozenset[str]:
        return self.role_permissions.get(role, frozenset())


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EmailTemplate:
    """E-mail routed on a status change of one entity kind.

    ``status_from`` of None or ``"*"`` matches any previous status.
    """

    key: str
    object_type: str
    status_to: str
    recipient_role: str
    subject: str
    body: str
    status_from: str | None = None


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SettlementConfig:
    """The complete, validated settlement policy."""

    config_id: str
    version: int
    currency: str = "IDR"
    tolerance: ToleranceConfig = field(default_factory=ToleranceConfig)
    saga: SagaConfig = field(default_factory=SagaConfig)
    rbac: RbacConfig = field(default_factory=RbacConfig)
    email_templates: tuple[EmailTemplate, ...] = ()
    checksum: str = ""

    def is_elevated(self, role: str) -> bool:
        return role in self.rbac.elevated_roles
