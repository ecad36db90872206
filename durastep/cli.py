"""Command line interface for inspecting durastep executions."""

from __future__ import annotations

import asyncio
import json
import logging

import typer

from durastep.config import load_config
from durastep.dispatch import WorkflowDispatcher
from durastep.persistence import get_repository

app = typer.Typer(help="CLI for durastep workflows")

# Command groups
workflow_app = typer.Typer(help="Commands for inspecting workflow executions")

app.add_typer(workflow_app, name="workflow")


@app.callback()
def main() -> None:
    """Durastep CLI entry point."""
    config = load_config()
    logging.basicConfig(level=config.logging.level)


@workflow_app.command("list")
def workflow_list() -> None:
    """
    List all executions with their current status.

    Shows execution IDs, workflow IDs and status (running, paused, completed,
    failed) from the configured repository, newest first.

    Example:
        durastep workflow list
        # Output: abc123-def456-789    user-signup    paused
        #         xyz789-uvw012-345    user-signup    completed
    """
    repo = get_repository()
    executions = asyncio.run(repo.list_all())
    if not executions:
        typer.echo("No executions found")
        return
    for execution in executions:
        typer.echo(f"{execution.id}\t{execution.workflow_id}\t{execution.status.value}")


@workflow_app.command("show")
def workflow_show(
    execution_id: str,
    logs: bool = typer.Option(False, "--logs", help="Print every step's attempt log"),
) -> None:
    """
    Show detailed information for a specific execution.

    Displays status, the step in progress and per-step status, attempt count
    and last error. With --logs, the attempt log of every step is printed too.

    Example:
        durastep workflow show abc123-def456-789 --logs
        # Output: Execution abc123-def456-789 (user-signup): paused
        #         Current step: wait-for-verification
        #         - create-user: completed, 1 attempt(s)
        #         - wait-for-verification: running, 1 attempt(s)
    """
    repo = get_repository()
    execution = asyncio.run(repo.load(execution_id))
    if execution is None:
        typer.echo("Execution not found")
        raise typer.Exit(code=1)
    typer.echo(
        f"Execution {execution.id} ({execution.workflow_id}): {execution.status.value}"
    )
    if execution.current_step:
        typer.echo(f"Current step: {execution.current_step}")
    for step in execution.steps:
        line = f"- {step.step_id}: {step.status.value}, {step.attempts} attempt(s)"
        if step.error:
            line += f" [error: {step.error}]"
        typer.echo(line)
        if logs:
            for entry in step.logs:
                suffix = f" {json.dumps(entry.data, default=str)}" if entry.data is not None else ""
                typer.echo(f"    {entry.timestamp.isoformat()} {entry.message}{suffix}")


@workflow_app.command("metrics")
def workflow_metrics() -> None:
    """Print execution counts per status and per-step success rates as JSON."""
    dispatcher = WorkflowDispatcher(repository=get_repository())
    metrics = asyncio.run(dispatcher.get_metrics())
    typer.echo(metrics.model_dump_json(indent=2))


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
