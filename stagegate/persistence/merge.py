"""Merge semantics shared by every execution store backend."""

from __future__ import annotations

from typing import Optional

from pydantic import ValidationError

from ..contracts import Execution, ExecutionPatch, Precondition, utcnow
from ..errors import InvalidState, StatusConflict


def check_precondition(execution: Execution, precondition: Optional[Precondition]) -> None:
    """Raise ``StatusConflict`` if ``precondition`` does not hold for ``execution``."""
    if precondition is None:
        return
    if precondition.status is not None and execution.status != precondition.status:
        raise StatusConflict(
            execution.execution_id,
            f"expected status '{precondition.status.value}', found '{execution.status.value}'",
            actual=execution.status,
        )
    if precondition.gate_id is not None:
        pending = execution.suspension.gate_id if execution.suspension else None
        if pending != precondition.gate_id:
            raise StatusConflict(
                execution.execution_id,
                f"expected pending gate '{precondition.gate_id}', found '{pending}'",
                actual=execution.status,
            )


def apply_patch(
    execution: Execution,
    patch: ExecutionPatch,
    precondition: Optional[Precondition] = None,
) -> Execution:
    """Return a new execution with ``patch`` merged into ``execution``.

    Context keys are only ever added; writing an existing key with an equal
    value is a no-op, writing it with a different value is rejected. Audit
    entries are appended. Terminal executions accept no further updates.
    """
    check_precondition(execution, precondition)
    if execution.status.is_terminal:
        raise InvalidState(
            f"Execution {execution.execution_id} is {execution.status.value}; "
            "no further transitions are allowed"
        )

    context = dict(execution.context)
    for key, value in patch.context.items():
        if key in context and context[key] != value:
            raise InvalidState(
                f"Context key '{key}' of execution {execution.execution_id} "
                "is already set and cannot be replaced"
            )
        context[key] = value

    data = execution.model_dump()
    data["context"] = context
    data["metrics"]["audit_log"] = execution.metrics.audit_log + list(patch.audit)
    if patch.sets("status") and patch.status is not None:
        data["status"] = patch.status
    if patch.sets("suspension"):
        data["suspension"] = patch.suspension
    if patch.sets("completed_at"):
        data["metrics"]["completed_at"] = patch.completed_at
    data["updated_at"] = utcnow()
    data["version"] = execution.version + 1

    try:
        return Execution.model_validate(data)
    except ValidationError as exc:
        raise InvalidState(
            f"Update would leave execution {execution.execution_id} inconsistent: {exc}"
        ) from exc
