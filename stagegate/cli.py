"""Command line interface for driving stagegate executions."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Optional

import typer

from stagegate import ExecutionInput, ExecutionStatus, GateDecision, WorkflowEngine
from stagegate.collaborators import build_collaborators
from stagegate.config import StageGateConfig, load_config
from stagegate.contracts import ExecutionResult
from stagegate.errors import NotFound
from stagegate.persistence import get_store
from stagegate.workflow import content_workflow

app = typer.Typer(help="CLI for stagegate executions")

# Command groups
execution_app = typer.Typer(help="Commands for starting, resuming and inspecting executions")

app.add_typer(execution_app, name="execution")


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(
        None, help="Override the configured log level (e.g. DEBUG)"
    ),
) -> None:
    """stagegate CLI entry point."""
    config = load_config()
    logging.basicConfig(
        level=(log_level or config.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _build_engine(config: StageGateConfig) -> WorkflowEngine:
    store = get_store(config=config)
    return WorkflowEngine(store, content_workflow(build_collaborators(config)))


def _echo_result(result: ExecutionResult) -> None:
    status = result.status.value if result.status else "unknown"
    typer.echo(f"Execution {result.execution_id}: {status}")
    if result.gate_id:
        typer.echo(f"Waiting at gate: {result.gate_id}")
        typer.echo(json.dumps(result.payload, indent=2, default=str))
    if result.output is not None:
        typer.echo(json.dumps(result.output, indent=2, default=str))
    if result.error is not None:
        typer.secho(
            f"Error [{result.error.kind.value}/{result.error.code}]: {result.error.message}",
            fg=typer.colors.RED,
        )
        raise typer.Exit(code=1)


async def _drive(engine: WorkflowEngine, coro) -> ExecutionResult:
    try:
        return await coro
    finally:
        await engine.store.close()


@execution_app.command("start")
def execution_start(
    url: str,
    editor: str = typer.Option("default-editor", help="Editor responsible for the gates"),
    model: Optional[str] = typer.Option(None, help="Override the configured LLM model"),
) -> None:
    """
    Start a new execution for URL and run it up to the first gate.

    Example:
        stagegate execution start https://example.com
        # Output: Execution 3f2a...: suspended
        #         Waiting at gate: concept-review
    """
    try:
        input = ExecutionInput(url=url, editor_id=editor, model=model)
    except ValueError as exc:
        typer.secho(f"Invalid input: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    engine = _build_engine(load_config())
    result = asyncio.run(_drive(engine, engine.start(input)))
    _echo_result(result)


@execution_app.command("resume")
def execution_resume(
    execution_id: str,
    gate: str = typer.Option(..., help="Gate the decision applies to"),
    approve: bool = typer.Option(..., "--approve/--reject", help="Approve or reject the gate"),
    comments: Optional[str] = typer.Option(None, help="Comments for the decision"),
) -> None:
    """
    Approve or reject the gate an execution is waiting at.

    Example:
        stagegate execution resume 3f2a... --gate concept-review --approve
        stagegate execution resume 3f2a... --gate concept-review --reject --comments "off-topic"
    """
    decision = GateDecision(gate_id=gate, approved=approve, comments=comments)
    engine = _build_engine(load_config())
    result = asyncio.run(_drive(engine, engine.resume(execution_id, decision)))
    _echo_result(result)


@execution_app.command("list")
def execution_list(
    status: Optional[ExecutionStatus] = typer.Option(None, help="Only show this status"),
) -> None:
    """List executions with their current status."""

    async def _list():
        store = get_store(config=load_config())
        try:
            return await store.list_executions(status)
        finally:
            await store.close()

    executions = asyncio.run(_list())
    if not executions:
        typer.echo("No executions found")
        return
    for execution in executions:
        typer.echo(
            f"{execution.execution_id}\t{execution.status.value}\t{execution.input.url}"
        )


async def _load(execution_id: str):
    store = get_store(config=load_config())
    try:
        return await store.get(execution_id)
    finally:
        await store.close()


@execution_app.command("show")
def execution_show(execution_id: str) -> None:
    """
    Show status, context keys and the audit log of an execution.

    Example:
        stagegate execution show 3f2a...
        # Output: Execution 3f2a...: suspended
        #         Context: concepts, metadata
        #         - 2024-01-01T10:00:00+00:00 step-started metadata
    """
    try:
        execution = asyncio.run(_load(execution_id))
    except NotFound:
        typer.echo("Execution not found")
        raise typer.Exit(code=1)
    typer.echo(f"Execution {execution.execution_id}: {execution.status.value}")
    typer.echo(f"URL: {execution.input.url}")
    if execution.context:
        typer.echo(f"Context: {', '.join(sorted(execution.context))}")
    for item in execution.audit_log:
        typer.echo(f"- {item.timestamp.isoformat()} {item.event.value} {item.step_id}")


@execution_app.command("pending")
def execution_pending(execution_id: str) -> None:
    """Show the gate an execution is waiting at and the payload for the approver."""
    try:
        execution = asyncio.run(_load(execution_id))
    except NotFound:
        typer.echo("Execution not found")
        raise typer.Exit(code=1)
    if execution.suspension is None:
        typer.echo(f"Execution {execution_id} is not suspended ({execution.status.value})")
        return
    typer.echo(f"Gate: {execution.suspension.gate_id}")
    typer.echo(f"Reason: {execution.suspension.reason}")
    typer.echo(json.dumps(execution.suspension.payload, indent=2, default=str))


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
