"""Resolución de identificadores de pipeline.

Por qué existe:
- Casi todos los endpoints de pipelines solo aceptan el UUID del run, pero
  las personas recuerdan el build number que muestra la UI.
- Acepta ambos y devuelve el UUID, revisando una ventana acotada de runs
  recientes cuando recibe un número.

Nota: los builds más antiguos que la ventana no se resuelven por número.
"""

from __future__ import annotations

import logging
import re

from pydantic import ValidationError

from core.domain.errors import PipelineNotFoundError
from core.domain.models import DEFAULT_SEARCH_WINDOW, PipelineRunSummary
from core.interfaces.pipelines import PipelineRunSource

logger = logging.getLogger(__name__)

_LEADING_INT = re.compile(r"\s*\+?([0-9]+)")


def is_canonical_identifier(identifier: str) -> bool:
    """Los UUID llevan llaves y/o guiones; un build number nunca."""

    return "{" in identifier or "-" in identifier


def parse_build_number(identifier: str) -> int | None:
    """Entero inicial del token: `"60abc"` da 60, `"1.5"` da 1, `"6_0"` da 6."""

    match = _LEADING_INT.match(identifier)
    return int(match.group(1)) if match else None


async def resolve_pipeline_identifier(
    client: PipelineRunSource,
    workspace: str,
    repo_slug: str,
    identifier: str,
    *,
    search_window: int = DEFAULT_SEARCH_WINDOW,
) -> str:
    """Devuelve el UUID canónico para un build number o un UUID.

    - Los tokens canónicos se devuelven tal cual, sin red.
    - Los tokens sin entero inicial también se devuelven tal cual.
    - Un entero dispara una sola llamada a `list_pipeline_runs` limitada a
      `search_window` runs; si no aparece, `PipelineNotFoundError`.
    """

    if is_canonical_identifier(identifier):
        return identifier

    build_number = parse_build_number(identifier)
    if build_number is None:
        return identifier

    logger.info("Detected build number %s, looking up UUID...", build_number)

    page = await client.list_pipeline_runs(workspace, repo_slug, limit=search_window)
    values = page.get("values") if isinstance(page, dict) else None
    for raw in values or []:
        if not isinstance(raw, dict):
            continue
        try:
            run = PipelineRunSummary.model_validate(raw)
        except ValidationError:
            continue
        if run.build_number == build_number and run.uuid:
            logger.info("Found UUID: %s", run.uuid)
            return run.uuid

    raise PipelineNotFoundError(build_number, search_window)
