"""Modelos del dominio (Pydantic v2).

Por qué Pydantic en el dominio:
- Validación estricta en los bordes (archivos de credenciales, entrada de la
  CLI) con la documentación junto a cada campo.
- Los payloads de las peticiones salen de estos modelos, así la forma del
  JSON vive en un solo lugar y no repartida por los métodos del cliente.

Nota:
- Las respuestas de la API se devuelven como dicts. Solo se modelan los
  campos que el resolver lee (`PipelineRunSummary`).
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field
from pydantic.config import ConfigDict


DEFAULT_BASE_URL = "https://api.bitbucket.org/2.0"
DEFAULT_SEARCH_WINDOW = 100
MAX_PAGE_LENGTH = 100


class PullRequestState(str, Enum):
    OPEN = "OPEN"
    MERGED = "MERGED"
    DECLINED = "DECLINED"
    SUPERSEDED = "SUPERSEDED"


class PipelineStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    SUCCESSFUL = "SUCCESSFUL"
    FAILED = "FAILED"
    ERROR = "ERROR"
    STOPPED = "STOPPED"


class TriggerType(str, Enum):
    MANUAL = "manual"
    PUSH = "push"
    PULLREQUEST = "pullrequest"
    SCHEDULE = "schedule"


class MergeStrategy(str, Enum):
    MERGE_COMMIT = "merge-commit"
    SQUASH = "squash"
    FAST_FORWARD = "fast-forward"


class RefType(str, Enum):
    BRANCH = "branch"
    TAG = "tag"
    BOOKMARK = "bookmark"
    NAMED_BRANCH = "named_branch"


class SelectorType(str, Enum):
    DEFAULT = "default"
    CUSTOM = "custom"
    PULL_REQUESTS = "pull-requests"


class BitbucketConfig(BaseModel):
    """Configuración resuelta que consume `BitbucketClient`.

    Por qué separada de `AppSettings`:
    - Los settings describen *de dónde* pueden venir los valores (env, .env);
      este modelo es la respuesta final tras buscar archivos de credenciales.
    """

    base_url: str = Field(
        default=DEFAULT_BASE_URL,
        description="Raíz de la API REST (p.ej. https://api.bitbucket.org/2.0).",
    )
    token: str | None = Field(
        default=None,
        description="Token Bearer (access token de repositorio/workspace).",
    )
    username: str | None = Field(
        default=None,
        description="Email de la cuenta para basic auth contra la API.",
    )
    password: str | None = Field(
        default=None,
        description="App password asociado a `username`.",
    )
    default_workspace: str | None = Field(
        default=None,
        description="Workspace por defecto cuando el comando no lo indica.",
    )
    git_username: str | None = Field(
        default=None,
        description="Username de Bitbucket para operaciones git (no el email).",
    )
    timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout por request (segundos).",
    )
    pipeline_search_window: int = Field(
        default=DEFAULT_SEARCH_WINDOW,
        ge=1,
        le=MAX_PAGE_LENGTH,
        description="Runs recientes que se revisan al resolver un build number.",
    )
    source: str = Field(
        default="environment",
        description="Origen de las credenciales (solo diagnóstico).",
    )

    def auth_mode(self) -> str:
        if self.token:
            return "token"
        if self.username and self.password:
            return "basic"
        return "none"


class CredentialsFile(BaseModel):
    """Forma de un archivo `credentials.json` / `.bitbucket-credentials`."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    url: str | None = None
    base_url: str | None = Field(default=None, alias="baseUrl")
    token: str | None = None
    user_email: str | None = None
    username: str | None = None
    password: str | None = None
    app_password: str | None = None
    workspace: str | None = None


class PipelineRunSummary(BaseModel):
    """Los dos campos de un run que usa el resolver."""

    model_config = ConfigDict(extra="ignore")

    build_number: int | None = None
    uuid: str | None = None


class PipelineTarget(BaseModel):
    """Qué debe construir un nuevo run de pipeline."""

    ref_type: RefType = RefType.BRANCH
    ref_name: str = Field(..., min_length=1)
    commit_hash: str | None = None
    selector_type: SelectorType | None = None
    selector_pattern: str | None = None

    def to_payload(self) -> dict[str, Any]:
        target: dict[str, Any] = {
            "ref_type": self.ref_type.value,
            "ref_name": self.ref_name,
            "type": "pipeline_ref_target",
        }
        if self.commit_hash:
            target["commit"] = {"hash": self.commit_hash}
        # La API espera el selector como objeto anidado.
        if self.selector_type:
            target["selector"] = {"type": self.selector_type.value}
            if self.selector_pattern:
                target["selector"]["pattern"] = self.selector_pattern
        return target


class PipelineVariable(BaseModel):
    key: str = Field(..., min_length=1)
    value: str
    secured: bool = False
