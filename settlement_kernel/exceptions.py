"""
Typed exception hierarchy for the settlement workflow.

Every error carries a machine-readable ``code`` class attribute and
structured attributes, so callers catch by type and read fields instead
of parsing messages:

    try:
        batches.advance(batch_id, actor)
    except GateNotSatisfiedError as e:
        show_block(e.gate, e.reason)

Hierarchy:

    SettlementError (base)
    |
    +-- GateError
    |   +-- GateNotSatisfiedError
    |   |   +-- BatchLockedError
    |   +-- PendingReviewExistsError
    |
    +-- TransitionError
    |   +-- InvalidTransitionError
    |       +-- PermissionDeniedError
    |
    +-- ReconciliationError
    |   +-- ToleranceExceededError
    |   +-- PaymentReferenceConflictError
    |
    +-- EntityError
    |   +-- EntityNotFoundError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |   +-- AmountImmutableError
    |
    +-- SagaError
        +-- SagaStepFailedError

All blocking errors are user-recoverable: fix the underlying data and
retry.  Duplicate side effects are never raised; they are absorbed by
idempotency keys.
"""

from decimal import Decimal


class SettlementError(Exception):
    """
    Base exception for all settlement errors.

    All subclasses have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "SETTLEMENT_ERROR"


# Gate-related exceptions


class GateError(SettlementError):
    """Base exception for prerequisite gates between entities."""

    code: str = "GATE_ERROR"


class GateNotSatisfiedError(GateError):
    """A prerequisite state owned by another entity is not met."""

    code: str = "GATE_NOT_SATISFIED"

    def __init__(
        self,
        gate: str,
        reason: str,
        entity_type: str | None = None,
        entity_id: str | None = None,
    ):
        self.gate = gate
        self.reason = reason
        self.entity_type = entity_type
        self.entity_id = entity_id
        target = f" on {entity_type} {entity_id}" if entity_type else ""
        super().__init__(f"Gate '{gate}' not satisfied{target}: {reason}")


class BatchLockedError(GateNotSatisfiedError):
    """Debtor or document mutation attempted on an operationally locked batch."""

    code: str = "BATCH_OPERATIONALLY_LOCKED"

    def __init__(self, batch_id: str, reason: str = "Batch is closed for operational changes"):
        self.batch_id = batch_id
        super().__init__(
            gate="batch_unlocked",
            reason=reason,
            entity_type="Batch",
            entity_id=batch_id,
        )


class PendingReviewExistsError(GateError):
    """Batch close attempted while debtors are still awaiting a decision."""

    code: str = "PENDING_REVIEW_EXISTS"

    def __init__(self, batch_id: str, pending_count: int):
        self.batch_id = batch_id
        self.pending_count = pending_count
        super().__init__(
            f"Batch {batch_id} cannot be closed: "
            f"{pending_count} debtor(s) still pending review"
        )


# Transition-related exceptions


class TransitionError(SettlementError):
    """Base exception for state machine transitions."""

    code: str = "TRANSITION_ERROR"


class InvalidTransitionError(TransitionError):
    """No transition exists from the current state for the requested action."""

    code: str = "INVALID_TRANSITION"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        from_state: str,
        action: str,
        reason: str | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.from_state = from_state
        self.action = action
        self.reason = reason or f"No transition from '{from_state}' via '{action}'"
        super().__init__(f"{entity_type} {entity_id}: {self.reason}")


class PermissionDeniedError(InvalidTransitionError):
    """The actor's role lacks the capability for the requested action."""

    code: str = "PERMISSION_DENIED"

    def __init__(
        self,
        actor_email: str,
        actor_role: str,
        permission: str,
        entity_type: str,
        entity_id: str,
        from_state: str = "",
    ):
        self.actor_email = actor_email
        self.actor_role = actor_role
        self.permission = permission
        super().__init__(
            entity_type=entity_type,
            entity_id=entity_id,
            from_state=from_state,
            action=permission,
            reason=f"Role {actor_role} lacks permission '{permission}'",
        )


# Reconciliation exceptions


class ReconciliationError(SettlementError):
    """Base exception for reconciliation errors."""

    code: str = "RECONCILIATION_ERROR"


class ToleranceExceededError(ReconciliationError):
    """Reconciliation close attempted outside the acceptable difference."""

    code: str = "TOLERANCE_EXCEEDED"

    def __init__(self, nota_number: str, difference: Decimal, threshold: Decimal):
        self.nota_number = nota_number
        self.difference = str(difference)
        self.threshold = str(threshold)
        super().__init__(
            f"Reconciliation for nota {nota_number} cannot be closed: "
            f"difference {difference} exceeds {threshold}"
        )


class PaymentReferenceConflictError(ReconciliationError):
    """A payment reference is already taken by a different payment."""

    code: str = "PAYMENT_REFERENCE_CONFLICT"

    def __init__(self, payment_ref: str, reason: str):
        self.payment_ref = payment_ref
        self.reason = reason
        super().__init__(f"Payment reference {payment_ref} conflicts: {reason}")


# Entity exceptions


class EntityError(SettlementError):
    """Base exception for entity store errors."""

    code: str = "ENTITY_ERROR"


class EntityNotFoundError(EntityError):
    """Entity lookup by id or business key returned nothing."""

    code: str = "ENTITY_NOT_FOUND"

    def __init__(self, entity_type: str, key: str):
        self.entity_type = entity_type
        self.key = key
        super().__init__(f"{entity_type} not found: {key}")


# Concurrency exceptions


class ConcurrencyError(SettlementError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another caller"
        )


# Immutability exceptions


class ImmutabilityError(SettlementError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"Cannot modify {entity_type} {entity_id}: {reason}")


class AmountImmutableError(ImmutabilityError):
    """Nota amount edit attempted after issue."""

    code: str = "AMOUNT_IMMUTABLE"

    def __init__(self, nota_number: str, status: str):
        self.nota_number = nota_number
        self.status = status
        super().__init__(
            f"Nota {nota_number} amount is locked in status {status}; "
            "use a debit/credit note to adjust"
        )


# Saga exceptions


class SagaError(SettlementError):
    """Base exception for multi-entity cascades."""

    code: str = "SAGA_ERROR"


class SagaStepFailedError(SagaError):
    """A cascade step kept failing after its retry budget was spent."""

    code: str = "SAGA_STEP_FAILED"

    def __init__(self, saga: str, step: str, attempts: int, cause: str):
        self.saga = saga
        self.step = step
        self.attempts = attempts
        self.cause = cause
        super().__init__(
            f"Saga '{saga}' step '{step}' failed after {attempts} attempt(s): {cause}. "
            "Re-running the saga is safe."
        )
