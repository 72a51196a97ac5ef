"""
Named-step compensation for multi-row writes the store cannot make atomic.

A Saga runs its steps in order. If a step raises, the steps that already
completed are compensated in reverse order and ReconciliationConflict is
raised. A failing first step has written nothing, so its error propagates as
is (non-service errors become PersistenceError). A failed compensation is logged at CRITICAL (it leaves persistent
inconsistency) and reported as `compensated=False`; it is not retried.

Cancellation is not a failure: if the caller goes away after a step has
persisted, nothing is compensated.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from backend.app.errors import PersistenceError, ReconciliationConflict, ServiceError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SagaStep:
    name: str
    action: Callable[[Dict[str, Any]], Any]
    # Receives this step's own result.
    compensate: Optional[Callable[[Any], None]] = None


class Saga:
    def __init__(self, name: str, *, context: Optional[Dict[str, Any]] = None):
        self.name = name
        self.context = dict(context or {})

    def run(self, steps: Sequence[SagaStep]) -> Dict[str, Any]:
        results: Dict[str, Any] = {}
        done: List[SagaStep] = []

        for step in steps:
            try:
                results[step.name] = step.action(results)
            except Exception as exc:
                logger.error(
                    "saga_step_failed saga=%s step=%s context=%s error=%s",
                    self.name,
                    step.name,
                    self.context,
                    exc,
                )
                if not done:
                    # Nothing persisted yet: a plain store failure, not a conflict.
                    if isinstance(exc, ServiceError):
                        raise
                    raise PersistenceError(f"{self.name} failed at step '{step.name}'") from exc
                compensated = self._compensate(done, results)
                raise ReconciliationConflict(
                    f"{self.name} failed at step '{step.name}'",
                    failed_step=step.name,
                    compensated=compensated,
                ) from exc
            done.append(step)

        return results

    def _compensate(self, done: List[SagaStep], results: Dict[str, Any]) -> bool:
        ok = True
        for step in reversed(done):
            if step.compensate is None:
                continue
            try:
                step.compensate(results[step.name])
            except Exception as exc:
                ok = False
                logger.critical(
                    "reconciliation_compensation_failed saga=%s step=%s context=%s error=%s",
                    self.name,
                    step.name,
                    self.context,
                    exc,
                )
            else:
                logger.warning(
                    "reconciliation_compensated saga=%s step=%s context=%s",
                    self.name,
                    step.name,
                    self.context,
                )
        return ok
