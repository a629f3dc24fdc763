"""Contrato para cualquier cosa que liste runs de pipeline.

Por qué Protocol:
- El resolver solo necesita `list_pipeline_runs`; un contrato estructural
  mantiene el Core libre del adapter HTTP y permite tests con un fake simple.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class PipelineRunSource(Protocol):
    """Contrato mínimo que usa `core.services.pipeline_resolver`.

    Reglas de diseño:
    - `list_pipeline_runs` es async porque hace I/O HTTP.
    - Devuelve el payload paginado tal cual (`{"values": [...], ...}`), más nuevos primero.
    """

    async def list_pipeline_runs(
        self,
        workspace: str,
        repo_slug: str,
        limit: int | None = None,
    ) -> dict[str, Any]:
        ...
