"""Suspension state management for executions paused at gates."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from .audit import entry
from .contracts import (
    AuditEvent,
    Execution,
    ExecutionPatch,
    ExecutionStatus,
    Precondition,
    SuspensionRecord,
    utcnow,
)
from .errors import InvalidState, NotSuspended, StatusConflict
from .persistence.store import ExecutionStore

logger = logging.getLogger(__name__)


class SuspensionManager:
    """Saves, loads and clears the pending-gate record of an execution."""

    def __init__(self, store: ExecutionStore) -> None:
        self._store = store

    async def suspend(
        self,
        execution_id: str,
        reason: str,
        gate_id: str,
        payload: Optional[Mapping[str, Any]] = None,
    ) -> Execution:
        """Park a running execution at ``gate_id``.

        The audit entry, the status change and the suspension record are
        written in a single conditional update.
        """
        payload = dict(payload or {})
        record = SuspensionRecord(reason=reason, gate_id=gate_id, payload=payload)
        patch = ExecutionPatch(
            status=ExecutionStatus.SUSPENDED,
            suspension=record,
            audit=[
                entry(
                    AuditEvent.WORKFLOW_SUSPENDED,
                    gate_id,
                    {"reason": reason, "dataKeys": sorted(payload)},
                )
            ],
        )
        try:
            execution = await self._store.update(
                execution_id,
                patch,
                precondition=Precondition(status=ExecutionStatus.RUNNING),
            )
        except StatusConflict as exc:
            raise InvalidState(
                f"Cannot suspend execution {execution_id}: it is {exc.actual.value}"
            ) from exc
        logger.info(f"Execution {execution_id} suspended at gate '{gate_id}': {reason}")
        return execution

    async def load_pending(self, execution_id: str) -> Optional[SuspensionRecord]:
        """Return the pending gate record, or ``None`` if not suspended.

        Read only, safe to poll.
        """
        execution = await self._store.get(execution_id)
        if execution.status != ExecutionStatus.SUSPENDED:
            return None
        return execution.suspension

    async def clear(
        self,
        execution_id: str,
        resume_data: Optional[Mapping[str, Any]] = None,
        gate_id: Optional[str] = None,
    ) -> Execution:
        """Move a suspended execution back to running.

        The write is conditioned on the execution still being suspended (and,
        when ``gate_id`` is given, still waiting at that gate), so of two
        concurrent callers only one succeeds; the other gets ``NotSuspended``.
        The resume data is kept in the context under the gate id.
        """
        execution = await self._store.get(execution_id)
        if execution.status != ExecutionStatus.SUSPENDED or execution.suspension is None:
            raise NotSuspended(execution_id, execution.status)

        pending = execution.suspension
        gate_id = gate_id or pending.gate_id
        now = utcnow()
        duration_ms = int((now - pending.suspended_at).total_seconds() * 1000)
        resume_data = dict(resume_data or {})

        patch = ExecutionPatch(
            status=ExecutionStatus.RUNNING,
            suspension=None,
            context={gate_id: {"resumedAt": now.isoformat(), **resume_data}},
            audit=[
                entry(
                    AuditEvent.WORKFLOW_RESUMED,
                    gate_id,
                    {"resumeData": resume_data, "suspendedDuration": duration_ms},
                )
            ],
        )
        try:
            execution = await self._store.update(
                execution_id,
                patch,
                precondition=Precondition(status=ExecutionStatus.SUSPENDED, gate_id=gate_id),
            )
        except StatusConflict as exc:
            raise NotSuspended(execution_id, exc.actual, gate_id=gate_id) from exc
        logger.info(
            f"Execution {execution_id} resumed from gate '{gate_id}' after {duration_ms} ms"
        )
        return execution
