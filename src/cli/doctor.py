"""Doctor command for configuration diagnostics."""

from __future__ import annotations

import asyncio

import typer
from rich.console import Console
from rich.table import Table
from rich.text import Text

from adapters.bitbucket_client import BitbucketClient
from cli.ui_components import build_config_table
from core.config import AppSettings, load_config, write_user_env_vars
from core.domain.errors import BitbucketError
from core.domain.models import BitbucketConfig

app = typer.Typer(no_args_is_help=True, help="Configuration diagnostics and credential setup.")

_console = Console(stderr=True)


async def _check_auth(config: BitbucketConfig) -> tuple[bool, str]:
    try:
        async with BitbucketClient(config) as client:
            user = await client.get_current_user()
    except BitbucketError as exc:
        return False, str(exc)
    name = (user or {}).get("display_name") or (user or {}).get("username") or "?"
    return True, f"Authenticated as {name}"


@app.command()
def run() -> None:
    """Show the resolved configuration and check that it authenticates."""

    try:
        config = load_config(AppSettings())
    except BitbucketError as exc:
        _console.print(Text.assemble(("Configuration error: ", "red"), str(exc)))
        raise typer.Exit(code=1) from exc

    _console.print(build_config_table(config))

    table = Table(title="Bitbucket Doctor")
    table.add_column("Check", style="bright_green", no_wrap=True)
    table.add_column("Status", style="white")
    table.add_column("Details", style="dim")

    if config.auth_mode() == "none":
        table.add_row("Credentials", "FAIL", "Set a token or user_email + app password")
        _console.print(table)
        raise typer.Exit(code=1)
    table.add_row("Credentials", "OK", f"{config.auth_mode()} auth from {config.source}")

    if config.default_workspace:
        table.add_row("Default workspace", "OK", config.default_workspace)
    else:
        table.add_row("Default workspace", "OPTIONAL", "list-repos will need an explicit workspace")

    ok_auth, detail_auth = asyncio.run(_check_auth(config))
    table.add_row("API authentication", "OK" if ok_auth else "FAIL", detail_auth)

    _console.print(table)
    if not ok_auth:
        raise typer.Exit(code=1)


@app.command()
def setup() -> None:
    """Interactive credential setup (stored in the user config .env)."""

    workspace = typer.prompt("Default workspace", default="", show_default=False).strip()
    use_token = typer.confirm("Use an access token instead of an app password?", default=False)

    values: dict[str, str | None] = {"BITBUCKET_WORKSPACE": workspace or None}
    if use_token:
        values["BITBUCKET_TOKEN"] = typer.prompt("Access token", hide_input=True).strip()
    else:
        email = typer.prompt("Account email").strip()
        if "@" not in email:
            raise typer.BadParameter("the account email must be an email address")
        values["BITBUCKET_USERNAME"] = email
        values["BITBUCKET_PASSWORD"] = typer.prompt("App password", hide_input=True).strip()

    env_path = write_user_env_vars(values)
    _console.print(f"[green]Saved Bitbucket config to:[/green] {env_path}")
