"""
Config -> Kernel Bridges.

Functions that convert a SettlementConfig into kernel- and engine-level
inputs.  These live in settlement_config (the producer) because the kernel
must NEVER import settlement_config.

Usage:
    from settlement_config.bridges import build_tolerance_policy, build_saga_executor

    config = get_active_config()
    policy = build_tolerance_policy(config)
    sagas = build_saga_executor(config)
"""

from __future__ import annotations

from settlement_config.schema import SettlementConfig
from settlement_engines.tolerance import TolerancePolicy
from settlement_kernel.services.saga import SagaExecutor


def build_tolerance_policy(config: SettlementConfig) -> TolerancePolicy:
    return TolerancePolicy(
        relative_percent=config.tolerance.relative_percent,
        absolute_floor=config.tolerance.absolute_floor,
        close_threshold=config.tolerance.close_threshold,
    )


def build_saga_executor(config: SettlementConfig) -> SagaExecutor:
    """Saga executor retrying optimistic-lock conflicts up to the configured budget."""
    return SagaExecutor(max_attempts=config.saga.max_attempts)
