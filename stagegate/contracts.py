"""Core data contracts for stagegate executions."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator, model_validator

from .errors import ErrorKind, StageGateError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_execution_id() -> str:
    return uuid.uuid4().hex


class ExecutionStatus(str, Enum):
    RUNNING = "running"
    SUSPENDED = "suspended"
    COMPLETED = "completed"
    REJECTED = "rejected"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {ExecutionStatus.COMPLETED, ExecutionStatus.REJECTED, ExecutionStatus.FAILED}
)


class AuditEvent(str, Enum):
    WORKFLOW_CREATED = "workflow-created"
    STEP_STARTED = "step-started"
    STEP_COMPLETED = "step-completed"
    STEP_FAILED = "step-failed"
    WORKFLOW_SUSPENDED = "workflow-suspended"
    WORKFLOW_RESUMED = "workflow-resumed"
    APPROVAL_DECISION = "approval-decision"
    WORKFLOW_COMPLETED = "workflow-completed"
    WORKFLOW_REJECTED = "workflow-rejected"
    WORKFLOW_FAILED = "workflow-failed"


class ExecutionInput(BaseModel):
    """Original request parameters of an execution."""

    model_config = ConfigDict(frozen=True)

    url: str
    editor_id: str = "default-editor"
    model: Optional[str] = None

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        value = value.strip()
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https"):
            raise ValueError(
                f"Unsupported protocol: {parsed.scheme or '(none)'}. "
                "Only HTTP and HTTPS are allowed"
            )
        if not parsed.hostname:
            raise ValueError("URL must contain a valid hostname")
        return value


class AuditLogEntry(BaseModel):
    """Immutable record of one lifecycle event."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=utcnow)
    event: AuditEvent
    step_id: str
    data: dict[str, Any] = Field(default_factory=dict)


class SuspensionRecord(BaseModel):
    """Descriptor of the gate an execution is waiting at."""

    suspended_at: datetime = Field(default_factory=utcnow)
    reason: str
    gate_id: str
    payload: dict[str, Any] = Field(default_factory=dict)


class Metrics(BaseModel):
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    audit_log: list[AuditLogEntry] = Field(default_factory=list)


class Execution(BaseModel):
    """One run of a workflow for a given input."""

    execution_id: str = Field(default_factory=new_execution_id)
    input: ExecutionInput
    status: ExecutionStatus = ExecutionStatus.RUNNING
    context: dict[str, Any] = Field(default_factory=dict)
    suspension: Optional[SuspensionRecord] = None
    metrics: Metrics = Field(default_factory=Metrics)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    version: int = 1

    @model_validator(mode="after")
    def _check_suspension(self) -> "Execution":
        suspended = self.status == ExecutionStatus.SUSPENDED
        if suspended != (self.suspension is not None):
            raise ValueError(
                "suspension must be set if and only if status is 'suspended'"
            )
        return self

    @property
    def audit_log(self) -> list[AuditLogEntry]:
        return self.metrics.audit_log

    def to_document(self) -> dict[str, Any]:
        """Serialize to the flat JSON-shaped document kept by the stores."""
        return self.model_dump(mode="json")

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> "Execution":
        return cls.model_validate(data)


class ExecutionPatch(BaseModel):
    """Partial update applied by ``ExecutionStore.update``.

    ``context`` is merged key-wise and ``audit`` is appended. ``status``,
    ``suspension`` and ``completed_at`` replace the stored value only when they
    were explicitly passed, so ``ExecutionPatch(suspension=None)`` clears the
    suspension while ``ExecutionPatch()`` leaves it alone.
    """

    context: dict[str, Any] = Field(default_factory=dict)
    audit: list[AuditLogEntry] = Field(default_factory=list)
    status: Optional[ExecutionStatus] = None
    suspension: Optional[SuspensionRecord] = None
    completed_at: Optional[datetime] = None

    def sets(self, field_name: str) -> bool:
        return field_name in self.model_fields_set


class Precondition(BaseModel):
    """Compare-and-swap condition checked by the store at write time."""

    status: Optional[ExecutionStatus] = None
    gate_id: Optional[str] = None


class GateDecision(BaseModel):
    """External approve/reject decision for a pending gate."""

    gate_id: str
    approved: bool
    comments: Optional[str] = None


class ErrorInfo(BaseModel):
    kind: ErrorKind
    code: str
    message: str
    step_id: Optional[str] = None


class ExecutionResult(BaseModel):
    """Structured outcome of ``WorkflowEngine.start`` and ``resume``."""

    execution_id: Optional[str] = None
    status: Optional[ExecutionStatus] = None
    gate_id: Optional[str] = None
    payload: dict[str, Any] = Field(default_factory=dict)
    context: dict[str, Any] = Field(default_factory=dict)
    output: Any = None
    error: Optional[ErrorInfo] = None

    _exception: Optional[StageGateError] = PrivateAttr(default=None)

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def from_execution(
        cls, execution: Execution, output: Any = None
    ) -> "ExecutionResult":
        suspension = execution.suspension
        return cls(
            execution_id=execution.execution_id,
            status=execution.status,
            gate_id=suspension.gate_id if suspension else None,
            payload=dict(suspension.payload) if suspension else {},
            context=dict(execution.context),
            output=output,
        )

    @classmethod
    def from_error(
        cls,
        exc: StageGateError,
        execution_id: Optional[str] = None,
        execution: Optional[Execution] = None,
    ) -> "ExecutionResult":
        if execution is not None:
            result = cls.from_execution(execution)
        else:
            result = cls(execution_id=execution_id)
        result.error = ErrorInfo(
            kind=exc.kind,
            code=exc.code,
            message=exc.message,
            step_id=getattr(exc, "step_id", None),
        )
        result._exception = exc
        return result

    def raise_for_error(self) -> None:
        """Raise the typed error carried by this result, if any."""
        if self.error is None:
            return
        if self._exception is not None:
            raise self._exception
        raise StageGateError(self.error.message)
