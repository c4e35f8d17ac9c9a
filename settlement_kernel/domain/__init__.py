"""Pure domain value objects: clock, actor, workflow definitions, statuses."""

from settlement_kernel.domain.actor import TARGET_ALL, Actor, Role
from settlement_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from settlement_kernel.domain.workflow import Guard, Transition, TransitionResult, Workflow

__all__ = [
    "Actor",
    "Role",
    "TARGET_ALL",
    "Clock",
    "SystemClock",
    "DeterministicClock",
    "Guard",
    "Transition",
    "TransitionResult",
    "Workflow",
]
