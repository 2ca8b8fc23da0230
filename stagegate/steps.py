"""Step runner: wraps one stage with audit bookkeeping and failure capture."""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel

from .audit import AuditLog, entry, summarize as summarize_value
from .contracts import (
    AuditEvent,
    Execution,
    ExecutionPatch,
    ExecutionStatus,
    Precondition,
    utcnow,
)
from .errors import StepFailure
from .persistence.store import ExecutionStore
from .workflow import StageContext, StageFunction

logger = logging.getLogger(__name__)


@dataclass
class StepOutcome:
    """Result of running one stage.

    ``execution`` is the latest known state after the step. On failure
    ``error`` carries the ``StepFailure`` and ``result`` is ``None``.
    """

    step_id: str
    execution: Execution
    result: Any = None
    error: Optional[StepFailure] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class StepRunner:
    """Runs stage functions against an execution's context."""

    def __init__(self, store: ExecutionStore) -> None:
        self._store = store
        self._audit = AuditLog(store)

    async def run_step(
        self,
        execution: Execution,
        step_id: str,
        fn: StageFunction,
        context_key: Optional[str] = None,
        summarize: Optional[Callable[[Any], Dict[str, Any]]] = None,
    ) -> StepOutcome:
        """Run ``fn`` and store its result under ``context_key`` (default ``step_id``).

        Errors raised by ``fn`` are returned as a ``StepFailure`` after the
        execution has been marked failed; the caller must stop the sequence.
        Store errors while recording a successful result propagate.
        """
        key = context_key or step_id
        execution_id = execution.execution_id
        execution = await self._audit.record(
            execution_id, AuditEvent.STEP_STARTED, step_id
        )
        logger.info(f"Running step '{step_id}' for execution {execution_id}")

        try:
            result = fn(StageContext(execution.input, execution.context))
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            return await self._record_failure(execution, step_id, e)

        value = result.model_dump(mode="json") if isinstance(result, BaseModel) else result
        summary = (summarize or summarize_value)(value)
        execution = await self._store.update(
            execution_id,
            ExecutionPatch(
                context={key: value},
                audit=[entry(AuditEvent.STEP_COMPLETED, step_id, summary)],
            ),
            precondition=Precondition(status=ExecutionStatus.RUNNING),
        )
        logger.info(f"Step '{step_id}' completed for execution {execution_id}")
        return StepOutcome(step_id=step_id, execution=execution, result=value)

    async def _record_failure(
        self, execution: Execution, step_id: str, error: Exception
    ) -> StepOutcome:
        message = str(error) or type(error).__name__
        failure = StepFailure(step_id, message)
        failure.__cause__ = error
        logger.warning(
            f"Step '{step_id}' failed for execution {execution.execution_id}: {message}"
        )

        patch = ExecutionPatch(
            status=ExecutionStatus.FAILED,
            completed_at=utcnow(),
            audit=[
                entry(
                    AuditEvent.STEP_FAILED,
                    step_id,
                    {"error": message, "errorType": type(error).__name__},
                )
            ],
        )
        try:
            execution = await self._store.update(execution.execution_id, patch)
        except Exception:
            logger.exception(
                f"Could not mark execution {execution.execution_id} as failed "
                f"after step '{step_id}'"
            )
        return StepOutcome(step_id=step_id, execution=execution, error=failure)
