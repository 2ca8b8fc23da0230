import asyncio

import pytest

from stagegate.contracts import AuditEvent, ExecutionInput, ExecutionStatus
from stagegate.errors import InvalidState, NotFound, NotSuspended, StatusConflict
from stagegate.suspension import SuspensionManager


async def _suspended(store, gate_id="concept-review"):
    execution = await store.create(ExecutionInput(url="https://example.com"))
    manager = SuspensionManager(store)
    await manager.suspend(
        execution.execution_id, "Waiting for approval", gate_id, {"concepts": ["a"], "summary": "s"}
    )
    return manager, execution.execution_id


@pytest.mark.asyncio
async def test_suspend_records_gate_and_audit(store):
    manager, execution_id = await _suspended(store)

    execution = await store.get(execution_id)
    assert execution.status == ExecutionStatus.SUSPENDED
    assert execution.suspension.gate_id == "concept-review"
    assert execution.suspension.payload == {"concepts": ["a"], "summary": "s"}
    last = execution.audit_log[-1]
    assert last.event == AuditEvent.WORKFLOW_SUSPENDED
    assert last.data == {"reason": "Waiting for approval", "dataKeys": ["concepts", "summary"]}


@pytest.mark.asyncio
async def test_suspend_requires_running_execution(store):
    manager, execution_id = await _suspended(store)

    with pytest.raises(InvalidState):
        await manager.suspend(execution_id, "again", "artifact-review")
    with pytest.raises(NotFound):
        await manager.suspend("missing", "wait", "concept-review")


@pytest.mark.asyncio
async def test_load_pending_is_idempotent(store):
    manager, execution_id = await _suspended(store)
    before = await store.get(execution_id)

    first = await manager.load_pending(execution_id)
    second = await manager.load_pending(execution_id)

    assert first is not None
    assert first.model_dump() == second.model_dump()
    after = await store.get(execution_id)
    assert after.version == before.version
    assert len(after.audit_log) == len(before.audit_log)


@pytest.mark.asyncio
async def test_load_pending_returns_none_when_running(store):
    execution = await store.create(ExecutionInput(url="https://example.com"))
    assert await SuspensionManager(store).load_pending(execution.execution_id) is None


@pytest.mark.asyncio
async def test_clear_resumes_and_records_decision(store):
    manager, execution_id = await _suspended(store)

    execution = await manager.clear(execution_id, {"approved": True, "comments": None})

    assert execution.status == ExecutionStatus.RUNNING
    assert execution.suspension is None
    assert execution.context["concept-review"]["approved"] is True
    assert "resumedAt" in execution.context["concept-review"]
    last = execution.audit_log[-1]
    assert last.event == AuditEvent.WORKFLOW_RESUMED
    assert last.data["resumeData"] == {"approved": True, "comments": None}
    assert last.data["suspendedDuration"] >= 0


@pytest.mark.asyncio
async def test_clear_requires_suspension(store):
    manager, execution_id = await _suspended(store)
    await manager.clear(execution_id)

    with pytest.raises(NotSuspended):
        await manager.clear(execution_id)


@pytest.mark.asyncio
async def test_clear_is_conditioned_on_pending_gate(store):
    manager, execution_id = await _suspended(store)

    with pytest.raises(NotSuspended):
        await manager.clear(execution_id, gate_id="artifact-review")
    assert (await store.get(execution_id)).status == ExecutionStatus.SUSPENDED


@pytest.mark.asyncio
async def test_racing_clears_have_one_winner(racing_store):
    store = racing_store
    manager, execution_id = await _suspended(store)

    results = await asyncio.gather(
        manager.clear(execution_id, {"approved": True}),
        manager.clear(execution_id, {"approved": True}),
        return_exceptions=True,
    )

    assert sum(1 for r in results if isinstance(r, NotSuspended)) == 1
    assert sum(1 for r in results if not isinstance(r, BaseException)) == 1
    execution = await store.get(execution_id)
    resumed = [e for e in execution.audit_log if e.event == AuditEvent.WORKFLOW_RESUMED]
    assert len(resumed) == 1


@pytest.mark.asyncio
async def test_clear_after_stale_read_loses_at_write_time(yielding_store):
    manager, execution_id = await _suspended(yielding_store)

    first, second = await asyncio.gather(
        manager.clear(execution_id, {"approved": True}),
        manager.clear(execution_id, {"approved": False}),
        return_exceptions=True,
    )

    assert first.status == ExecutionStatus.RUNNING
    assert isinstance(second, NotSuspended)
    # both callers read a suspended execution; the write precondition decided
    assert isinstance(second.__cause__, StatusConflict)
    execution = await yielding_store.get(execution_id)
    assert execution.context["concept-review"]["approved"] is True
