"""Workflow engine: drives executions from gate to gate."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Union

from pydantic import ValidationError

from .audit import AuditLog, entry, summarize
from .contracts import (
    AuditEvent,
    Execution,
    ExecutionInput,
    ExecutionPatch,
    ExecutionResult,
    ExecutionStatus,
    GateDecision,
    Precondition,
    utcnow,
)
from .errors import (
    ClientError,
    GateMismatch,
    InternalError,
    InvalidState,
    NotSuspended,
    PipelineError,
    StageGateError,
)
from .persistence.store import ExecutionStore
from .steps import StepRunner
from .suspension import SuspensionManager
from .workflow import Gate, StageContext, WorkflowDefinition

logger = logging.getLogger(__name__)


class WorkflowEngine:
    """Runs a :class:`WorkflowDefinition` with persisted suspend/resume.

    ``start`` and ``resume`` each advance one execution to its next gate or
    to a terminal status and then return. Neither raises: every failure is
    reported through ``ExecutionResult.error``.
    """

    def __init__(self, store: ExecutionStore, definition: WorkflowDefinition) -> None:
        self.store = store
        self.definition = definition
        self.runner = StepRunner(store)
        self.suspensions = SuspensionManager(store)
        self.audit = AuditLog(store)

    async def start(
        self, input: Union[ExecutionInput, Mapping[str, Any]]
    ) -> ExecutionResult:
        """Create an execution and run it up to the first gate."""
        try:
            if not isinstance(input, ExecutionInput):
                input = ExecutionInput.model_validate(input)
        except ValidationError as e:
            return ExecutionResult.from_error(InvalidState(f"Invalid input: {e}"))

        try:
            execution = await self.store.create(input)
        except StageGateError as e:
            logger.error(f"Could not create execution for {input.url}: {e}")
            return ExecutionResult.from_error(e)
        except Exception as e:
            return ExecutionResult.from_error(
                self._unexpected(e, f"creating an execution for {input.url}")
            )

        logger.info(
            f"Started execution {execution.execution_id} of workflow "
            f"'{self.definition.name}' for {input.url}"
        )
        return await self._advance(execution, 0)

    async def resume(
        self,
        execution_id: str,
        decision: Union[GateDecision, Mapping[str, Any]],
    ) -> ExecutionResult:
        """Apply an approve/reject decision to the gate an execution waits at."""
        try:
            if not isinstance(decision, GateDecision):
                decision = GateDecision.model_validate(decision)
        except ValidationError as e:
            return await self._client_error(
                InvalidState(f"Invalid decision: {e}"), execution_id
            )

        try:
            pending = await self.suspensions.load_pending(execution_id)
            if pending is None:
                current = await self.store.get(execution_id)
                raise NotSuspended(execution_id, current.status)
            if decision.gate_id != pending.gate_id:
                current = await self.store.get(execution_id)
                # a decision for this gate was already applied
                if (
                    decision.gate_id in self.definition.gate_ids
                    and decision.gate_id in current.context
                ):
                    raise NotSuspended(execution_id, current.status, gate_id=decision.gate_id)
                raise GateMismatch(execution_id, pending.gate_id, decision.gate_id)
            execution = await self.suspensions.clear(
                execution_id,
                {"approved": decision.approved, "comments": decision.comments},
                gate_id=pending.gate_id,
            )
        except ClientError as e:
            logger.warning(f"Rejected resume of execution {execution_id}: {e}")
            return await self._client_error(e, execution_id)
        except StageGateError as e:
            logger.error(f"Could not resume execution {execution_id}: {e}")
            return ExecutionResult.from_error(e, execution_id=execution_id)
        except Exception as e:
            return ExecutionResult.from_error(
                self._unexpected(e, f"resuming execution {execution_id}"),
                execution_id=execution_id,
            )

        gate_id = pending.gate_id
        try:
            execution = await self.audit.record(
                execution_id,
                AuditEvent.APPROVAL_DECISION,
                gate_id,
                {
                    "approved": decision.approved,
                    "comments": decision.comments,
                    "gateId": gate_id,
                },
            )
            if not decision.approved:
                return await self._reject(execution, gate_id, decision.comments)
        except StageGateError as e:
            return await self._fail(execution, e, gate_id)
        except Exception as e:
            error = self._unexpected(e, f"recording the decision for {execution_id}")
            return await self._fail(execution, error, gate_id)

        return await self._advance(execution, self.definition.position_after(gate_id))

    # ------------------------------------------------------------------
    async def _advance(self, execution: Execution, index: int) -> ExecutionResult:
        """Run steps from ``index`` until a gate or the end of the workflow."""
        step_id = "start"
        try:
            for step in self.definition.steps[index:]:
                if isinstance(step, Gate):
                    step_id = step.gate_id
                    payload = self._gate_payload(execution, step)
                    execution = await self.suspensions.suspend(
                        execution.execution_id, step.reason, step.gate_id, payload
                    )
                    return ExecutionResult.from_execution(execution)

                step_id = step.step_id
                outcome = await self.runner.run_step(
                    execution,
                    step.step_id,
                    step.fn,
                    context_key=step.context_key,
                    summarize=step.summarize,
                )
                execution = outcome.execution
                if not outcome.ok:
                    return ExecutionResult.from_error(outcome.error, execution=execution)

            return await self._complete(execution)
        except StageGateError as e:
            return await self._fail(execution, e, step_id)
        except Exception as e:
            error = self._unexpected(
                e, f"running step '{step_id}' of execution {execution.execution_id}"
            )
            return await self._fail(execution, error, step_id)

    @staticmethod
    def _gate_payload(execution: Execution, gate: Gate) -> dict:
        try:
            return dict(gate.payload(StageContext(execution.input, execution.context)))
        except Exception as e:
            raise PipelineError(
                f"Could not build payload for gate '{gate.gate_id}': {e}"
            ) from e

    @staticmethod
    def _unexpected(error: Exception, action: str) -> InternalError:
        logger.exception(f"Unexpected error while {action}")
        wrapped = InternalError(f"{type(error).__name__}: {error}")
        wrapped.__cause__ = error
        return wrapped

    async def _complete(self, execution: Execution) -> ExecutionResult:
        last = self.definition.last_stage()
        output = execution.context.get(last.key) if last else None
        execution = await self.store.update(
            execution.execution_id,
            ExecutionPatch(
                status=ExecutionStatus.COMPLETED,
                completed_at=utcnow(),
                audit=[
                    entry(
                        AuditEvent.WORKFLOW_COMPLETED,
                        last.step_id if last else "end",
                        summarize(output) if output is not None else {},
                    )
                ],
            ),
            precondition=Precondition(status=ExecutionStatus.RUNNING),
        )
        logger.info(f"Execution {execution.execution_id} completed")
        return ExecutionResult.from_execution(execution, output=output)

    async def _reject(
        self, execution: Execution, gate_id: str, comments: Optional[str]
    ) -> ExecutionResult:
        execution = await self.store.update(
            execution.execution_id,
            ExecutionPatch(
                status=ExecutionStatus.REJECTED,
                completed_at=utcnow(),
                audit=[
                    entry(
                        AuditEvent.WORKFLOW_REJECTED,
                        gate_id,
                        {"comments": comments, "gateId": gate_id},
                    )
                ],
            ),
            precondition=Precondition(status=ExecutionStatus.RUNNING),
        )
        logger.info(f"Execution {execution.execution_id} rejected at gate '{gate_id}'")
        return ExecutionResult.from_execution(execution)

    async def _fail(
        self, execution: Execution, error: StageGateError, step_id: str
    ) -> ExecutionResult:
        """Mark the execution failed on a best-effort basis and report ``error``."""
        current = execution
        try:
            current = await self.store.get(execution.execution_id)
            if not current.status.is_terminal:
                current = await self.store.update(
                    execution.execution_id,
                    ExecutionPatch(
                        status=ExecutionStatus.FAILED,
                        suspension=None,
                        completed_at=utcnow(),
                        audit=[
                            entry(
                                AuditEvent.WORKFLOW_FAILED,
                                step_id,
                                {"error": error.message, "code": error.code},
                            )
                        ],
                    ),
                )
        except Exception:
            logger.exception(
                f"Could not mark execution {execution.execution_id} as failed"
            )
        logger.error(
            f"Execution {execution.execution_id} failed at '{step_id}': {error.message}"
        )
        return ExecutionResult.from_error(error, execution=current)

    async def _client_error(
        self, error: ClientError, execution_id: str
    ) -> ExecutionResult:
        """Report a caller error together with the untouched execution, if any."""
        try:
            execution = await self.store.get(execution_id)
        except StageGateError:
            return ExecutionResult.from_error(error, execution_id=execution_id)
        except Exception:
            logger.exception(f"Could not load execution {execution_id} for an error report")
            return ExecutionResult.from_error(error, execution_id=execution_id)
        return ExecutionResult.from_error(error, execution=execution)
