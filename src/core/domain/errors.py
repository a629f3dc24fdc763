"""Errores del dominio.

Por qué una sola jerarquía:
- La CLI solo captura `BitbucketError` para convertir cualquier fallo en
  `Error: ...` por stderr y código de salida 1.
- Cada subclase conserva los campos estructurados (operation, status,
  payload) para que quien use la librería no tenga que parsear mensajes.
"""

from __future__ import annotations

import json
from typing import Any


class BitbucketError(Exception):
    """Base de todos los errores que lanza el paquete."""


class ConfigError(BitbucketError):
    """Configuración o credenciales ausentes o inválidas."""


class BitbucketAPIError(BitbucketError):
    """Fallo de transporte o respuesta HTTP no exitosa de la API."""

    def __init__(
        self,
        operation: str,
        *,
        status: int | None = None,
        reason: str | None = None,
        payload: Any = None,
    ) -> None:
        self.operation = operation
        self.status = status
        self.reason = reason
        self.payload = payload
        super().__init__(
            f"Bitbucket API error in {operation}: {status} {reason} - {_dump_payload(payload)}"
        )


class BitbucketClientError(BitbucketError):
    """Fallos de una operación que no llegan a una respuesta válida."""

    def __init__(self, operation: str, detail: str) -> None:
        self.operation = operation
        self.detail = detail
        super().__init__(f"Unexpected error in {operation}: {detail}")


class PipelineNotFoundError(BitbucketError):
    """Ningún run de la ventana de búsqueda tiene ese build number."""

    def __init__(self, build_number: int, search_window: int) -> None:
        self.build_number = build_number
        self.search_window = search_window
        super().__init__(
            f"Pipeline build #{build_number} not found in recent {search_window} pipelines. "
            "Try using the UUID directly or increase search range."
        )


def _dump_payload(payload: Any) -> str:
    try:
        return json.dumps(payload, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(payload)
