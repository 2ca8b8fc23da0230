"""Store abstraction for execution state persistence."""

from __future__ import annotations

from typing import Optional, Protocol

from ..contracts import Execution, ExecutionInput, ExecutionPatch, ExecutionStatus, Precondition


class ExecutionStore(Protocol):
    """Protocol for execution persistence backends."""

    async def create(self, input: ExecutionInput) -> Execution:
        """Persist a new running execution and return it."""

    async def get(self, execution_id: str) -> Execution:
        """Return the execution or raise ``NotFound``."""

    async def update(
        self,
        execution_id: str,
        patch: ExecutionPatch,
        precondition: Optional[Precondition] = None,
    ) -> Execution:
        """Atomically merge ``patch`` into the stored execution.

        Raises ``NotFound`` if the execution does not exist and
        ``StatusConflict`` if ``precondition`` does not hold at write time.
        """

    async def list_executions(
        self, status: Optional[ExecutionStatus] = None
    ) -> list[Execution]:
        """Return all executions, optionally filtered by status."""

    async def close(self) -> None:
        """Release backend resources."""
