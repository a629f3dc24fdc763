"""Exportador JSON de respuestas de la API.

Por qué JSON tal cual:
- La salida está pensada para `jq` u otras herramientas, así que el cuerpo
  de la respuesta se imprime sin tocar, solo indentado.
"""

from __future__ import annotations

import json
from typing import Any


def render_json(payload: Any) -> str:
    """Serializa una respuesta decodificada (indentación 2, UTF-8 intacto)."""

    return json.dumps(payload, ensure_ascii=False, indent=2)
