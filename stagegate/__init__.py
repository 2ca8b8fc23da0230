"""stagegate - suspend/resume workflow orchestration with approval gates."""

__version__ = "0.1.0"

from .contracts import (
    AuditEvent,
    AuditLogEntry,
    Execution,
    ExecutionInput,
    ExecutionResult,
    ExecutionStatus,
    GateDecision,
    SuspensionRecord,
)
from .engine import WorkflowEngine
from .errors import (
    ClientError,
    ErrorKind,
    GateMismatch,
    InfrastructureError,
    InternalError,
    InvalidState,
    NotFound,
    NotSuspended,
    PipelineError,
    StageGateError,
    StepFailure,
    StoreUnavailable,
)
from .persistence import get_store
from .workflow import (
    ARTIFACT_REVIEW,
    CONCEPT_REVIEW,
    Gate,
    Stage,
    StageContext,
    WorkflowDefinition,
    content_workflow,
)

__all__ = [
    "ARTIFACT_REVIEW",
    "AuditEvent",
    "AuditLogEntry",
    "CONCEPT_REVIEW",
    "ClientError",
    "ErrorKind",
    "Execution",
    "ExecutionInput",
    "ExecutionResult",
    "ExecutionStatus",
    "Gate",
    "GateDecision",
    "GateMismatch",
    "InfrastructureError",
    "InternalError",
    "InvalidState",
    "NotFound",
    "NotSuspended",
    "PipelineError",
    "Stage",
    "StageContext",
    "StageGateError",
    "StepFailure",
    "StoreUnavailable",
    "SuspensionRecord",
    "WorkflowDefinition",
    "WorkflowEngine",
    "content_workflow",
    "get_store",
]
