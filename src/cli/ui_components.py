"""Componentes de UI para CLI (Rich).

Por qué componentes separados:
- Mantiene la lógica de comandos libre de detalles de renderizado.
- stdout queda para la salida de los comandos (JSON/logs/diffs); lo
  decorativo o de diagnóstico va a stderr a través de estos helpers.
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from core.domain.models import BitbucketConfig

_LOG_FORMAT = "%(message)s"


def configure_logging(level: str | int = logging.INFO) -> None:
    """Envía `logging` a stderr a través de Rich.

    Se llama una vez desde el callback de la CLI; la librería no configura logging.
    """

    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        level = resolved if isinstance(resolved, int) else logging.INFO

    handler = RichHandler(
        console=Console(stderr=True),
        show_time=False,
        show_path=False,
        markup=False,
        rich_tracebacks=False,
    )
    logging.basicConfig(level=level, format=_LOG_FORMAT, handlers=[handler], force=True)
    # httpx loguea cada request en INFO; solo con --verbose.
    logging.getLogger("httpx").setLevel(logging.DEBUG if level <= logging.DEBUG else logging.WARNING)


def _mask(secret: str | None) -> str:
    if not secret:
        return "-"
    if len(secret) <= 4:
        return "****"
    return f"{secret[:2]}…{secret[-2:]}"


def build_config_table(config: BitbucketConfig) -> Table:
    """Tabla con la configuración resuelta (secretos enmascarados)."""

    table = Table(title="Bitbucket configuration")
    table.add_column("Setting", style="cyan", no_wrap=True)
    table.add_column("Value", style="white")

    table.add_row("Source", config.source)
    table.add_row("Base URL", config.base_url)
    table.add_row("Auth mode", config.auth_mode())
    table.add_row("Token", _mask(config.token))
    table.add_row("API user", config.username or "-")
    table.add_row("Password", _mask(config.password))
    table.add_row("Default workspace", config.default_workspace or "-")
    table.add_row("Git username", config.git_username or "-")
    table.add_row("Timeout (s)", f"{config.timeout_seconds:g}")
    table.add_row("Pipeline search window", str(config.pipeline_search_window))
    return table
