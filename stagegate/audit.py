"""Audit log helpers for executions.

Entries are appended to ``Execution.metrics.audit_log`` through the store's
``update`` operation, either on their own via :class:`AuditLog` or batched
into the same patch as the state change they describe.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Mapping, Optional

from pydantic import BaseModel

from .contracts import AuditEvent, AuditLogEntry, Execution, ExecutionPatch

if TYPE_CHECKING:
    from .persistence.store import ExecutionStore

logger = logging.getLogger(__name__)


def entry(
    event: AuditEvent, step_id: str, data: Optional[Mapping[str, Any]] = None
) -> AuditLogEntry:
    """Build an audit entry stamped with the current time."""
    return AuditLogEntry(event=event, step_id=step_id, data=dict(data or {}))


def summarize(value: Any) -> dict[str, Any]:
    """Describe a stage result by shape instead of content.

    Lists and strings are reported by length, numbers and booleans as-is and
    nested mappings by their number of keys, which keeps audit entries small
    no matter how large the stage output is.
    """
    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json")
    if not isinstance(value, Mapping):
        return {"type": type(value).__name__, **_measure("value", value)}

    summary: dict[str, Any] = {}
    for key, item in value.items():
        summary.update(_measure(str(key), item))
    return summary


def _measure(key: str, item: Any) -> dict[str, Any]:
    if isinstance(item, bool) or isinstance(item, (int, float)):
        return {key: item}
    if isinstance(item, str):
        return {f"{key}Length": len(item)}
    if isinstance(item, (list, tuple)):
        return {f"{key}Count": len(item)}
    if isinstance(item, Mapping):
        return {f"{key}Keys": len(item)}
    return {}


class AuditLog:
    """Append-only audit trail backed by an execution store."""

    def __init__(self, store: "ExecutionStore") -> None:
        self._store = store

    async def record(
        self,
        execution_id: str,
        event: AuditEvent,
        step_id: str,
        data: Optional[Mapping[str, Any]] = None,
    ) -> Execution:
        """Append one entry and return the updated execution."""
        logger.debug(f"Audit {event.value} step={step_id} execution={execution_id}")
        return await self._store.update(
            execution_id, ExecutionPatch(audit=[entry(event, step_id, data)])
        )

    async def entries(
        self, execution_id: str, event: Optional[AuditEvent] = None
    ) -> list[AuditLogEntry]:
        """Return the audit trail, optionally filtered to one event type."""
        execution = await self._store.get(execution_id)
        return [
            item
            for item in execution.audit_log
            if event is None or item.event == event
        ]
