"""In-memory implementation of the execution store."""

from __future__ import annotations

import logging
import threading
from typing import Dict, Optional

from ..audit import entry
from ..contracts import (
    AuditEvent,
    Execution,
    ExecutionInput,
    ExecutionPatch,
    ExecutionStatus,
    Precondition,
)
from ..errors import NotFound
from .merge import apply_patch
from .store import ExecutionStore

logger = logging.getLogger(__name__)


class InMemoryExecutionStore(ExecutionStore):
    """Store execution state in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts. Callers always receive copies, so
    mutating a returned execution never changes the stored one.
    """

    def __init__(self) -> None:
        self._executions: Dict[str, Execution] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    async def create(self, input: ExecutionInput) -> Execution:
        execution = Execution(input=input)
        execution.metrics.audit_log.append(
            entry(AuditEvent.WORKFLOW_CREATED, "start", {"url": input.url})
        )
        with self._lock:
            self._executions[execution.execution_id] = execution
        logger.debug(f"Created execution {execution.execution_id} for {input.url}")
        return execution.model_copy(deep=True)

    async def get(self, execution_id: str) -> Execution:
        with self._lock:
            execution = self._executions.get(execution_id)
            if execution is None:
                raise NotFound(execution_id)
            return execution.model_copy(deep=True)

    async def update(
        self,
        execution_id: str,
        patch: ExecutionPatch,
        precondition: Optional[Precondition] = None,
    ) -> Execution:
        with self._lock:
            current = self._executions.get(execution_id)
            if current is None:
                raise NotFound(execution_id)
            updated = apply_patch(current, patch, precondition)
            self._executions[execution_id] = updated
            return updated.model_copy(deep=True)

    async def list_executions(
        self, status: Optional[ExecutionStatus] = None
    ) -> list[Execution]:
        with self._lock:
            return [
                execution.model_copy(deep=True)
                for execution in self._executions.values()
                if status is None or execution.status == status
            ]

    async def close(self) -> None:
        pass
