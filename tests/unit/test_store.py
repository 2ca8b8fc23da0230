import sqlite3

import pytest

from stagegate.audit import entry
from stagegate.contracts import (
    AuditEvent,
    ExecutionInput,
    ExecutionPatch,
    ExecutionStatus,
    Precondition,
    SuspensionRecord,
)
from stagegate.errors import InvalidState, NotFound, StatusConflict, StoreUnavailable
from stagegate.persistence import (
    InMemoryExecutionStore,
    SQLiteExecutionStore,
    get_store,
)


@pytest.mark.asyncio
async def test_create_and_get(store):
    created = await store.create(ExecutionInput(url="https://example.com"))

    fetched = await store.get(created.execution_id)
    assert fetched.status == ExecutionStatus.RUNNING
    assert fetched.input.url == "https://example.com"
    assert fetched.version == 1
    assert [e.event for e in fetched.audit_log] == [AuditEvent.WORKFLOW_CREATED]


@pytest.mark.asyncio
async def test_get_missing_raises_not_found(store):
    with pytest.raises(NotFound):
        await store.get("missing")
    with pytest.raises(NotFound):
        await store.update("missing", ExecutionPatch())


@pytest.mark.asyncio
async def test_update_merges_context_and_appends_audit(store):
    created = await store.create(ExecutionInput(url="https://example.com"))

    await store.update(
        created.execution_id,
        ExecutionPatch(
            context={"metadata": {"title": "x"}},
            audit=[entry(AuditEvent.STEP_COMPLETED, "metadata", {"titleLength": 1})],
        ),
    )
    updated = await store.update(
        created.execution_id, ExecutionPatch(context={"concepts": {"concepts": []}})
    )

    assert updated.context == {"metadata": {"title": "x"}, "concepts": {"concepts": []}}
    assert updated.version == 3
    assert [e.event for e in updated.audit_log] == [
        AuditEvent.WORKFLOW_CREATED,
        AuditEvent.STEP_COMPLETED,
    ]
    assert (await store.get(created.execution_id)).to_document() == updated.to_document()


@pytest.mark.asyncio
async def test_context_keys_are_never_replaced(store):
    created = await store.create(ExecutionInput(url="https://example.com"))
    await store.update(created.execution_id, ExecutionPatch(context={"a": 1}))

    # same value is a no-op
    await store.update(created.execution_id, ExecutionPatch(context={"a": 1}))
    with pytest.raises(InvalidState):
        await store.update(created.execution_id, ExecutionPatch(context={"a": 2}))

    assert (await store.get(created.execution_id)).context == {"a": 1}


@pytest.mark.asyncio
async def test_precondition_is_checked_at_write_time(store):
    created = await store.create(ExecutionInput(url="https://example.com"))
    suspend = ExecutionPatch(
        status=ExecutionStatus.SUSPENDED,
        suspension=SuspensionRecord(reason="wait", gate_id="review"),
    )
    await store.update(
        created.execution_id, suspend, precondition=Precondition(status=ExecutionStatus.RUNNING)
    )

    with pytest.raises(StatusConflict):
        await store.update(
            created.execution_id,
            ExecutionPatch(),
            precondition=Precondition(status=ExecutionStatus.RUNNING),
        )
    with pytest.raises(StatusConflict):
        await store.update(
            created.execution_id,
            ExecutionPatch(),
            precondition=Precondition(status=ExecutionStatus.SUSPENDED, gate_id="other"),
        )


@pytest.mark.asyncio
async def test_update_rejects_inconsistent_suspension(store):
    created = await store.create(ExecutionInput(url="https://example.com"))

    with pytest.raises(InvalidState):
        await store.update(
            created.execution_id, ExecutionPatch(status=ExecutionStatus.SUSPENDED)
        )
    assert (await store.get(created.execution_id)).status == ExecutionStatus.RUNNING


@pytest.mark.asyncio
async def test_terminal_execution_rejects_updates(store):
    created = await store.create(ExecutionInput(url="https://example.com"))
    await store.update(created.execution_id, ExecutionPatch(status=ExecutionStatus.FAILED))

    with pytest.raises(InvalidState):
        await store.update(
            created.execution_id, ExecutionPatch(status=ExecutionStatus.RUNNING)
        )


@pytest.mark.asyncio
async def test_list_executions_filters_by_status(store):
    first = await store.create(ExecutionInput(url="https://example.com/1"))
    second = await store.create(ExecutionInput(url="https://example.com/2"))
    await store.update(first.execution_id, ExecutionPatch(status=ExecutionStatus.COMPLETED))

    all_ids = {e.execution_id for e in await store.list_executions()}
    assert all_ids == {first.execution_id, second.execution_id}
    running = await store.list_executions(ExecutionStatus.RUNNING)
    assert [e.execution_id for e in running] == [second.execution_id]


@pytest.mark.asyncio
async def test_returned_executions_are_copies():
    store = InMemoryExecutionStore()
    created = await store.create(ExecutionInput(url="https://example.com"))

    created.context["leak"] = True
    fetched = await store.get(created.execution_id)
    fetched.context["leak"] = True

    assert (await store.get(created.execution_id)).context == {}


@pytest.mark.asyncio
async def test_sqlite_store_persists_across_instances(tmp_path):
    db_path = tmp_path / "executions.db"
    created = await SQLiteExecutionStore(db_path).create(
        ExecutionInput(url="https://example.com")
    )

    reopened = SQLiteExecutionStore(db_path)
    fetched = await reopened.get(created.execution_id)
    assert fetched.execution_id == created.execution_id
    await reopened.close()


@pytest.mark.asyncio
async def test_sqlite_reads_report_a_locked_database(tmp_path):
    db_path = tmp_path / "executions.db"
    store = SQLiteExecutionStore(db_path, timeout=0.1)
    created = await store.create(ExecutionInput(url="https://example.com"))

    blocker = sqlite3.connect(db_path, isolation_level=None)
    blocker.execute("BEGIN EXCLUSIVE")
    try:
        with pytest.raises(StoreUnavailable):
            await store.get(created.execution_id)
        with pytest.raises(StoreUnavailable):
            await store.list_executions()
    finally:
        blocker.execute("ROLLBACK")
        blocker.close()

    assert (await store.get(created.execution_id)).status == ExecutionStatus.RUNNING
    await store.close()


def test_get_store_selects_backend(tmp_path):
    assert isinstance(get_store("memory://"), InMemoryExecutionStore)
    sqlite_store = get_store(f"sqlite://{tmp_path / 'x.db'}")
    assert isinstance(sqlite_store, SQLiteExecutionStore)
    assert sqlite_store.db_path == str(tmp_path / "x.db")
    with pytest.raises(ValueError):
        get_store("mysql://localhost/db")


def test_get_store_uses_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("STAGEGATE_CONFIG", str(tmp_path / "absent.yaml"))
    monkeypatch.delenv("STAGEGATE_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    assert isinstance(get_store(), InMemoryExecutionStore)

    monkeypatch.setenv("STAGEGATE_DATABASE_URL", f"sqlite://{tmp_path / 'env.db'}")
    assert isinstance(get_store(), SQLiteExecutionStore)
