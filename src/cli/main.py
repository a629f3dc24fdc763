"""Entry point de la CLI (`bitbucket-cli`).

Cada comando es un envoltorio fino: argumentos posicionales → una llamada
al cliente (dos si antes hay que resolver un build number) → JSON o texto
crudo por stdout. Los fallos imprimen `Error: ...` por stderr y salen con 1.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, List, Optional

import typer
from pydantic import ValidationError
from typer.core import TyperGroup

from adapters.bitbucket_client import DEFAULT_TAIL_BYTES, BitbucketClient
from adapters.json_exporter import render_json
from cli import doctor
from cli.ui_components import configure_logging
from core.config import AppSettings, load_config
from core.domain.errors import BitbucketError, ConfigError
from core.domain.models import (
    MergeStrategy,
    PipelineStatus,
    PipelineTarget,
    PipelineVariable,
    PullRequestState,
    SelectorType,
    TriggerType,
)
from core.services.pipeline_resolver import resolve_pipeline_identifier


class CommandGroup(TyperGroup):
    """Cualquier salida con error (uso incorrecto incluido) termina con código 1.

    Por qué en `main`:
    - Typer puede traer su propia copia de click, así que no se puede
      capturar `UsageError` por clase; el código de salida sí es estable.
    """

    def main(self, *args: Any, **kwargs: Any) -> Any:
        try:
            return super().main(*args, **kwargs)
        except SystemExit as exc:
            if exc.code in (None, 0):
                raise
            raise SystemExit(1) from exc


app = typer.Typer(
    cls=CommandGroup,
    add_completion=False,
    help="Bitbucket Cloud from the shell: repositories, pull requests, pipelines.\n\n"
    "Pipeline commands accept either a build number (60) or a UUID ({abc...}).",
)
app.add_typer(doctor.app, name="doctor")

Action = Callable[[BitbucketClient], Awaitable[Any]]

_WORKSPACE = "Workspace slug."
_REPO = "Repository slug."
_PIPELINE = "Pipeline build number or UUID."
_PR_ID = "Pull request id."


def _settings_log_level() -> str:
    try:
        return AppSettings().log_level
    except ValidationError:
        return "INFO"


def _open_client() -> BitbucketClient:
    try:
        settings = AppSettings()
    except ValidationError as exc:
        raise ConfigError(f"Invalid BITBUCKET_* settings: {exc}") from exc
    return BitbucketClient(load_config(settings))


def _execute(action: Action, *, text: bool = False) -> None:
    async def _go() -> Any:
        async with _open_client() as client:
            return await action(client)

    try:
        result = asyncio.run(_go())
    except BitbucketError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    if text:
        typer.echo(result or "")
    else:
        typer.echo(render_json(result))


async def _resolve(client: BitbucketClient, workspace: str, repo: str, pipeline_id: str) -> str:
    return await resolve_pipeline_identifier(
        client, workspace, repo, pipeline_id, search_window=client.search_window
    )


def _not_empty(value: str) -> str:
    if not value.strip():
        raise typer.BadParameter("must not be empty")
    return value


def _parse_variables(pairs: List[str], *, secured: bool) -> list[PipelineVariable]:
    out: list[PipelineVariable] = []
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise typer.BadParameter(f"expected KEY=VALUE, got {pair!r}")
        out.append(PipelineVariable(key=key.strip(), value=value, secured=secured))
    return out


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    configure_logging("DEBUG" if verbose else _settings_log_level())
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help(), err=True)
        raise typer.Exit(code=1)


# Pipelines


@app.command("list-pipelines")
def list_pipelines(
    workspace: str = typer.Argument(..., callback=_not_empty, help=_WORKSPACE),
    repo: str = typer.Argument(..., callback=_not_empty, help=_REPO),
    limit: Optional[int] = typer.Argument(None, min=1, help="Page length (max 100)."),
    status: Optional[PipelineStatus] = typer.Argument(None, case_sensitive=False, help="Result filter."),
    branch: Optional[str] = typer.Option(None, "--branch", help="Only runs targeting this branch."),
    trigger: Optional[TriggerType] = typer.Option(None, "--trigger", case_sensitive=False),
) -> None:
    """List recent pipeline runs, newest first."""

    _execute(lambda client: client.list_pipeline_runs(workspace, repo, limit, status, branch, trigger))


@app.command("get-pipeline")
def get_pipeline(
    workspace: str = typer.Argument(..., callback=_not_empty, help=_WORKSPACE),
    repo: str = typer.Argument(..., callback=_not_empty, help=_REPO),
    pipeline_id: str = typer.Argument(..., callback=_not_empty, metavar="BUILD_NUMBER_OR_UUID", help=_PIPELINE),
) -> None:
    """Show one pipeline run."""

    async def action(client: BitbucketClient) -> Any:
        uuid = await _resolve(client, workspace, repo, pipeline_id)
        return await client.get_pipeline_run(workspace, repo, uuid)

    _execute(action)


@app.command("get-pipeline-steps")
def get_pipeline_steps(
    workspace: str = typer.Argument(..., callback=_not_empty, help=_WORKSPACE),
    repo: str = typer.Argument(..., callback=_not_empty, help=_REPO),
    pipeline_id: str = typer.Argument(..., callback=_not_empty, metavar="BUILD_NUMBER_OR_UUID", help=_PIPELINE),
) -> None:
    """List the steps of a pipeline run."""

    async def action(client: BitbucketClient) -> Any:
        uuid = await _resolve(client, workspace, repo, pipeline_id)
        return await client.get_pipeline_steps(workspace, repo, uuid)

    _execute(action)


@app.command("get-pipeline-step")
def get_pipeline_step(
    workspace: str = typer.Argument(..., callback=_not_empty, help=_WORKSPACE),
    repo: str = typer.Argument(..., callback=_not_empty, help=_REPO),
    pipeline_id: str = typer.Argument(..., callback=_not_empty, metavar="BUILD_NUMBER_OR_UUID", help=_PIPELINE),
    step_uuid: str = typer.Argument(..., callback=_not_empty, help="Step UUID."),
) -> None:
    """Show one step of a pipeline run."""

    async def action(client: BitbucketClient) -> Any:
        uuid = await _resolve(client, workspace, repo, pipeline_id)
        return await client.get_pipeline_step(workspace, repo, uuid, step_uuid)

    _execute(action)


@app.command("get-step-logs")
def get_step_logs(
    workspace: str = typer.Argument(..., callback=_not_empty, help=_WORKSPACE),
    repo: str = typer.Argument(..., callback=_not_empty, help=_REPO),
    pipeline_id: str = typer.Argument(..., callback=_not_empty, metavar="BUILD_NUMBER_OR_UUID", help=_PIPELINE),
    step_uuid: str = typer.Argument(..., callback=_not_empty, help="Step UUID."),
) -> None:
    """Print the full log of a step (plain text)."""

    async def action(client: BitbucketClient) -> Any:
        uuid = await _resolve(client, workspace, repo, pipeline_id)
        return await client.get_pipeline_step_logs(workspace, repo, uuid, step_uuid)

    _execute(action, text=True)


@app.command("tail-step-log")
def tail_step_log(
    workspace: str = typer.Argument(..., callback=_not_empty, help=_WORKSPACE),
    repo: str = typer.Argument(..., callback=_not_empty, help=_REPO),
    pipeline_id: str = typer.Argument(..., callback=_not_empty, metavar="BUILD_NUMBER_OR_UUID", help=_PIPELINE),
    step_uuid: str = typer.Argument(..., callback=_not_empty, help="Step UUID."),
    num_bytes: int = typer.Argument(DEFAULT_TAIL_BYTES, metavar="[BYTES]", min=1, help="Bytes from the end."),
) -> None:
    """Print the last BYTES of a step log (plain text)."""

    async def action(client: BitbucketClient) -> Any:
        uuid = await _resolve(client, workspace, repo, pipeline_id)
        return await client.get_pipeline_step_log_tail(workspace, repo, uuid, step_uuid, num_bytes)

    _execute(action, text=True)


@app.command("run-pipeline")
def run_pipeline(
    workspace: str = typer.Argument(..., callback=_not_empty, help=_WORKSPACE),
    repo: str = typer.Argument(..., callback=_not_empty, help=_REPO),
    branch: str = typer.Argument(..., callback=_not_empty, help="Branch to build."),
    custom_pipeline: Optional[str] = typer.Argument(None, help="Custom pipeline name (selector pattern)."),
    commit: Optional[str] = typer.Option(None, "--commit", help="Build this commit hash."),
    variables: Optional[List[str]] = typer.Option(None, "--var", help="Pipeline variable KEY=VALUE (repeatable)."),
    secured_variables: Optional[List[str]] = typer.Option(None, "--secured-var", help="Secured variable KEY=VALUE (repeatable)."),
) -> None:
    """Trigger a pipeline on a branch (optionally a custom pipeline)."""

    target = PipelineTarget(
        ref_name=branch,
        commit_hash=commit,
        selector_type=SelectorType.CUSTOM if custom_pipeline else None,
        selector_pattern=custom_pipeline,
    )
    pipeline_vars = _parse_variables(variables or [], secured=False) + _parse_variables(
        secured_variables or [], secured=True
    )

    _execute(lambda client: client.run_pipeline(workspace, repo, target, pipeline_vars or None))


@app.command("stop-pipeline")
def stop_pipeline(
    workspace: str = typer.Argument(..., callback=_not_empty, help=_WORKSPACE),
    repo: str = typer.Argument(..., callback=_not_empty, help=_REPO),
    pipeline_id: str = typer.Argument(..., callback=_not_empty, metavar="BUILD_NUMBER_OR_UUID", help=_PIPELINE),
) -> None:
    """Stop a running pipeline."""

    async def action(client: BitbucketClient) -> Any:
        uuid = await _resolve(client, workspace, repo, pipeline_id)
        return await client.stop_pipeline(workspace, repo, uuid)

    _execute(action)


# Repositorios


@app.command("list-repos")
def list_repos(
    workspace: Optional[str] = typer.Argument(None, help="Workspace slug (defaults to the configured one)."),
    limit: Optional[int] = typer.Argument(None, min=1, help="Page length (max 100)."),
    name: Optional[str] = typer.Option(None, "--name", help="Only repositories whose name contains this."),
) -> None:
    """List repositories of a workspace."""

    _execute(lambda client: client.list_repositories(workspace, limit, name))


@app.command("get-repo")
def get_repo(
    workspace: str = typer.Argument(..., callback=_not_empty, help=_WORKSPACE),
    repo: str = typer.Argument(..., callback=_not_empty, help=_REPO),
) -> None:
    """Show one repository."""

    _execute(lambda client: client.get_repository(workspace, repo))


# Pull requests


@app.command("list-prs")
def list_prs(
    workspace: str = typer.Argument(..., callback=_not_empty, help=_WORKSPACE),
    repo: str = typer.Argument(..., callback=_not_empty, help=_REPO),
    state: Optional[PullRequestState] = typer.Argument(None, case_sensitive=False, help="State filter."),
    limit: Optional[int] = typer.Argument(None, min=1, help="Page length (max 50)."),
) -> None:
    """List pull requests."""

    _execute(lambda client: client.list_pull_requests(workspace, repo, state, limit))


@app.command("get-pr")
def get_pr(
    workspace: str = typer.Argument(..., callback=_not_empty, help=_WORKSPACE),
    repo: str = typer.Argument(..., callback=_not_empty, help=_REPO),
    pr_id: str = typer.Argument(..., callback=_not_empty, help=_PR_ID),
) -> None:
    """Show one pull request."""

    _execute(lambda client: client.get_pull_request(workspace, repo, pr_id))


@app.command("create-pr")
def create_pr(
    workspace: str = typer.Argument(..., callback=_not_empty, help=_WORKSPACE),
    repo: str = typer.Argument(..., callback=_not_empty, help=_REPO),
    source: str = typer.Argument(..., callback=_not_empty, help="Source branch."),
    destination: str = typer.Argument(..., callback=_not_empty, help="Destination branch."),
    title: str = typer.Argument(..., callback=_not_empty, help="Pull request title."),
    description: str = typer.Option("", "--description", "-d"),
    reviewers: Optional[List[str]] = typer.Option(None, "--reviewer", help="Reviewer account UUID (repeatable)."),
    close_source_branch: bool = typer.Option(False, "--close-source-branch"),
) -> None:
    """Open a pull request."""

    _execute(
        lambda client: client.create_pull_request(
            workspace,
            repo,
            title,
            source,
            destination,
            description=description,
            reviewers=reviewers or None,
            close_source_branch=close_source_branch,
        )
    )


@app.command("approve-pr")
def approve_pr(
    workspace: str = typer.Argument(..., callback=_not_empty, help=_WORKSPACE),
    repo: str = typer.Argument(..., callback=_not_empty, help=_REPO),
    pr_id: str = typer.Argument(..., callback=_not_empty, help=_PR_ID),
) -> None:
    """Approve a pull request."""

    _execute(lambda client: client.approve_pull_request(workspace, repo, pr_id))


@app.command("merge-pr")
def merge_pr(
    workspace: str = typer.Argument(..., callback=_not_empty, help=_WORKSPACE),
    repo: str = typer.Argument(..., callback=_not_empty, help=_REPO),
    pr_id: str = typer.Argument(..., callback=_not_empty, help=_PR_ID),
    message: Optional[str] = typer.Argument(None, help="Merge commit message."),
    strategy: Optional[MergeStrategy] = typer.Argument(None, case_sensitive=False, help="Merge strategy."),
) -> None:
    """Merge a pull request."""

    _execute(lambda client: client.merge_pull_request(workspace, repo, pr_id, message, strategy))


@app.command("decline-pr")
def decline_pr(
    workspace: str = typer.Argument(..., callback=_not_empty, help=_WORKSPACE),
    repo: str = typer.Argument(..., callback=_not_empty, help=_REPO),
    pr_id: str = typer.Argument(..., callback=_not_empty, help=_PR_ID),
    message: Optional[str] = typer.Argument(None, help="Reason for declining."),
) -> None:
    """Decline a pull request."""

    _execute(lambda client: client.decline_pull_request(workspace, repo, pr_id, message))


@app.command("get-pr-diff")
def get_pr_diff(
    workspace: str = typer.Argument(..., callback=_not_empty, help=_WORKSPACE),
    repo: str = typer.Argument(..., callback=_not_empty, help=_REPO),
    pr_id: str = typer.Argument(..., callback=_not_empty, help=_PR_ID),
) -> None:
    """Print the diff of a pull request (plain text)."""

    _execute(lambda client: client.get_pull_request_diff(workspace, repo, pr_id), text=True)


@app.command("get-pr-comments")
def get_pr_comments(
    workspace: str = typer.Argument(..., callback=_not_empty, help=_WORKSPACE),
    repo: str = typer.Argument(..., callback=_not_empty, help=_REPO),
    pr_id: str = typer.Argument(..., callback=_not_empty, help=_PR_ID),
) -> None:
    """List comments on a pull request."""

    _execute(lambda client: client.get_pull_request_comments(workspace, repo, pr_id))


# Modelo de ramas


@app.command("get-branching-model")
def get_branching_model(
    workspace: str = typer.Argument(..., callback=_not_empty, help=_WORKSPACE),
    repo: str = typer.Argument(..., callback=_not_empty, help=_REPO),
) -> None:
    """Show the effective branching model."""

    _execute(lambda client: client.get_branching_model(workspace, repo))


@app.command("get-branching-model-settings")
def get_branching_model_settings(
    workspace: str = typer.Argument(..., callback=_not_empty, help=_WORKSPACE),
    repo: str = typer.Argument(..., callback=_not_empty, help=_REPO),
) -> None:
    """Show the raw branching model settings."""

    _execute(lambda client: client.get_branching_model_settings(workspace, repo))


def run() -> None:
    app()


if __name__ == "__main__":
    run()
