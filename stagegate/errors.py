"""Error taxonomy for stagegate.

Errors fall into three families so callers can branch on ``kind`` instead of
matching messages:

* ``ClientError``: caller misuse (unknown execution, resuming the wrong gate,
  acting on an execution that is not in the expected state).
* ``PipelineError``: a stage collaborator failed.
* ``InfrastructureError``: the persistence backend could not be reached, or
  something failed unexpectedly (``InternalError``).
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .contracts import ExecutionStatus


class ErrorKind(str, Enum):
    CLIENT = "client"
    PIPELINE = "pipeline"
    INFRASTRUCTURE = "infrastructure"


class StageGateError(Exception):
    """Base class for all errors raised by stagegate."""

    kind: ErrorKind = ErrorKind.INFRASTRUCTURE
    code: str = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ClientError(StageGateError):
    kind = ErrorKind.CLIENT
    code = "client_error"


class NotFound(ClientError):
    code = "not_found"

    def __init__(self, execution_id: str) -> None:
        super().__init__(f"Execution not found: {execution_id}")
        self.execution_id = execution_id


class NotSuspended(ClientError):
    code = "not_suspended"

    def __init__(
        self,
        execution_id: str,
        status: Optional["ExecutionStatus"] = None,
        gate_id: Optional[str] = None,
    ) -> None:
        if gate_id is not None:
            message = f"Execution {execution_id} is no longer waiting at gate '{gate_id}'"
        else:
            detail = f" (status: {status.value})" if status is not None else ""
            message = f"Execution is not suspended: {execution_id}{detail}"
        super().__init__(message)
        self.execution_id = execution_id
        self.status = status
        self.gate_id = gate_id


class GateMismatch(ClientError):
    code = "gate_mismatch"

    def __init__(self, execution_id: str, expected: str, received: str) -> None:
        super().__init__(
            f"Execution {execution_id} is waiting at gate '{expected}', "
            f"not '{received}'"
        )
        self.execution_id = execution_id
        self.expected = expected
        self.received = received


class InvalidState(ClientError):
    code = "invalid_state"


class StatusConflict(InvalidState):
    """An update's precondition no longer held at write time."""

    code = "status_conflict"

    def __init__(self, execution_id: str, message: str, actual: "ExecutionStatus") -> None:
        super().__init__(f"Execution {execution_id}: {message}")
        self.execution_id = execution_id
        self.actual = actual


class PipelineError(StageGateError):
    kind = ErrorKind.PIPELINE
    code = "pipeline_error"


class StepFailure(PipelineError):
    code = "step_failure"

    def __init__(self, step_id: str, message: str) -> None:
        super().__init__(f"Step '{step_id}' failed: {message}")
        self.step_id = step_id
        self.cause_message = message


class InfrastructureError(StageGateError):
    kind = ErrorKind.INFRASTRUCTURE
    code = "infrastructure_error"


class StoreUnavailable(InfrastructureError):
    code = "store_unavailable"


class InternalError(InfrastructureError):
    """An exception stagegate did not anticipate, kept apart from outages."""

    code = "internal_error"
