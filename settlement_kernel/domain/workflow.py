"""
Canonical workflow types (``settlement_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for the settlement state machines.  Every module
(batch, nota, payment intent, debit/credit note, claim) declares its
lifecycle as a ``Workflow`` built from these types, so the transition
table is the single source of truth for which moves exist.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* Any move not present in ``transitions`` is rejected by the executor.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Guard:
    """A condition that must be satisfied before a transition fires.

    Contract: frozen, descriptive only.
    Non-goals: does not evaluate the condition -- the GuardExecutor does.
    """

    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow.

    ``forward=True`` marks the transition taken by ``advance`` (the
    successor function); side branches such as reject or reopen are
    reachable only through their explicit action.
    """

    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None
    forward: bool = False


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for an entity lifecycle.

    Guarantees: ``initial_state`` is a member of ``states`` and every
    transition references declared states (checked at construction).
    """

    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(
                f"Workflow {self.name}: initial state {self.initial_state!r} not declared"
            )
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"Workflow {self.name}: transition {t.action!r} "
                    f"{t.from_state!r}->{t.to_state!r} references an undeclared state"
                )

    def find(self, from_state: str, action: str) -> Transition | None:
        for t in self.transitions:
            if t.from_state == from_state and t.action == action:
                return t
        return None

    def successor(self, from_state: str) -> Transition | None:
        """The forward transition out of ``from_state``, if any."""
        for t in self.transitions:
            if t.from_state == from_state and t.forward:
                return t
        return None

    def actions_from(self, from_state: str) -> tuple[str, ...]:
        return tuple(t.action for t in self.transitions if t.from_state == from_state)


@dataclass(frozen=True)
class TransitionResult:
    """Result of evaluating a workflow transition.

    ``failed_guard`` names the guard that blocked the move; it is None for
    success and for a missing transition.
    """

    success: bool
    new_state: str | None = None
    reason: str = ""
    failed_guard: str | None = None
    action: str | None = None
