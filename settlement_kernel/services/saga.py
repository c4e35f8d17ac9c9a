"""
SagaExecutor -- ordered multi-entity cascades of idempotent steps.

Responsibility:
    Runs a named list of steps in order.  Each step is retried on its own
    when it loses an optimistic-concurrency race; any other failure stops
    the saga and propagates.

Architecture position:
    Kernel > Services -- imperative shell.  Steps are supplied by the
    settlement services; the executor knows nothing about notas or batches.

Invariants enforced:
    - Convergence: every step must be idempotent (keyed creates,
      recompute-not-increment updates, guarded status moves), so running
      the whole saga again after a partial failure reaches the same end
      state as an uninterrupted run.
    - Ordering: callers list steps from least to most visible, with the
      headline status change last, so a half-run saga never reports an
      outcome its dependents have not reached.
    - No compensation: a failed saga leaves the completed prefix in place;
      recovery is a replay.

Failure modes:
    - SagaStepFailedError when a step still conflicts after max_attempts.
    - Any non-retryable exception raised by a step, unchanged.

Usage:
    executor = SagaExecutor(max_attempts=3)
    result = executor.run("nota_settlement", [
        SagaStep("invoice_paid", mark_invoice_paid),
        SagaStep("nota_paid", mark_nota_paid),
    ], state={"nota_number": "NOTA-B1-..."})
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Sequence
from uuid import uuid4

from settlement_kernel.exceptions import ConcurrencyError, SagaStepFailedError
from settlement_kernel.logging_config import LogContext, get_logger

logger = get_logger("services.saga")


@dataclass(frozen=True)
class SagaStep:
    """One idempotent step.  ``action`` receives the shared saga state dict."""

    name: str
    action: Callable[[dict[str, Any]], Any]


@dataclass
class SagaResult:
    saga: str
    saga_id: str
    completed_steps: list[str] = field(default_factory=list)
    outputs: dict[str, Any] = field(default_factory=dict)
    attempts: dict[str, int] = field(default_factory=dict)

    @property
    def retried(self) -> bool:
        return any(n > 1 for n in self.attempts.values())


class SagaExecutor:
    """
    Runs saga steps with per-step retry.

    Contract:
        Retries only the exception types in ``retry_on`` (concurrency
        conflicts by default); the step is re-invoked from scratch and must
        re-read whatever it needs.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        retry_on: tuple[type[BaseException], ...] = (ConcurrencyError,),
        backoff_seconds: float = 0.0,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._max_attempts = max_attempts
        self._retry_on = retry_on
        self._backoff = backoff_seconds

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    def run(
        self,
        name: str,
        steps: Sequence[SagaStep],
        state: dict[str, Any] | None = None,
    ) -> SagaResult:
        saga_id = str(uuid4())
        state = state if state is not None else {}
        result = SagaResult(saga=name, saga_id=saga_id)
        t0 = time.monotonic()

        with LogContext.bind(saga_id=saga_id):
            logger.info("saga_started", extra={"saga": name, "steps": [s.name for s in steps]})
            for step in steps:
                result.outputs[step.name] = self._run_step(name, step, state, result)
                result.completed_steps.append(step.name)
            logger.info(
                "saga_completed",
                extra={
                    "saga": name,
                    "duration_ms": round((time.monotonic() - t0) * 1000, 3),
                    "retried": result.retried,
                },
            )
        return result

    def _run_step(
        self,
        saga: str,
        step: SagaStep,
        state: dict[str, Any],
        result: SagaResult,
    ) -> Any:
        attempt = 0
        while True:
            attempt += 1
            result.attempts[step.name] = attempt
            try:
                return step.action(state)
            except self._retry_on as exc:
                if attempt >= self._max_attempts:
                    logger.error(
                        "saga_step_exhausted",
                        extra={"saga": saga, "step": step.name, "attempts": attempt},
                    )
                    raise SagaStepFailedError(saga, step.name, attempt, str(exc)) from exc
                logger.warning(
                    "saga_step_retry",
                    extra={"saga": saga, "step": step.name, "attempt": attempt, "error": str(exc)},
                )
                if self._backoff:
                    time.sleep(self._backoff * attempt)
            except Exception:
                logger.error(
                    "saga_step_failed",
                    extra={
                        "saga": saga,
                        "step": step.name,
                        "completed_steps": list(result.completed_steps),
                    },
                    exc_info=True,
                )
                raise
