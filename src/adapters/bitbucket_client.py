"""Cliente REST de Bitbucket Cloud.

Responsabilidad:
- Traducir cada acción del dominio (listar pipelines, mergear un PR, ...) a
  una llamada HTTP contra la base URL configurada.
- Normalizar cualquier fallo a `BitbucketAPIError` / `BitbucketClientError`.

Uso:

    async with BitbucketClient(config) as client:
        runs = await client.list_pipeline_runs("acme", "api", limit=10)
"""

from __future__ import annotations

import logging
from typing import Any, Sequence

import httpx

from adapters.http_client import build_async_client
from core.config import normalize_config
from core.domain.errors import BitbucketAPIError, BitbucketClientError, ConfigError
from core.domain.models import (
    BitbucketConfig,
    MergeStrategy,
    PipelineStatus,
    PipelineTarget,
    PipelineVariable,
    PullRequestState,
    TriggerType,
)

logger = logging.getLogger(__name__)

DEFAULT_TAIL_BYTES = 2000

_TEXT_HEADERS = {"Accept": "*/*"}


def ensure_braces(uuid: str) -> str:
    """La API quiere `{uuid}`; se aceptan ambas formas."""

    return uuid if uuid.startswith("{") else f"{{{uuid}}}"


def _value(item: Any) -> Any:
    return item.value if hasattr(item, "value") else item


def _error_payload(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text or None


class BitbucketClient:
    """Operaciones de la API sin estado que comparten un pool HTTP."""

    def __init__(
        self,
        config: BitbucketConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        config = normalize_config(config)
        if not config.base_url:
            raise ConfigError("base_url is required in BitbucketConfig")
        if config.auth_mode() == "none":
            raise ConfigError("Either token or username/password is required in BitbucketConfig")

        self._config = config
        self._http = build_async_client(config, transport=transport)

    async def __aenter__(self) -> "BitbucketClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    @property
    def config(self) -> BitbucketConfig:
        return self._config

    @property
    def default_workspace(self) -> str | None:
        return self._config.default_workspace

    @property
    def search_window(self) -> int:
        return self._config.pipeline_search_window

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
        headers: dict[str, str] | None = None,
        text: bool = False,
    ) -> Any:
        logger.debug("%s %s %s params=%s", operation, method, path, params)
        try:
            response = await self._http.request(
                method,
                path,
                params=params or None,
                json=json,
                headers=headers,
            )
        except httpx.HTTPError as exc:
            logger.debug("%s transport failure: %s", operation, exc)
            raise BitbucketAPIError(operation, reason=type(exc).__name__, payload=str(exc)) from exc

        if not response.is_success:
            logger.debug("%s failed with HTTP %s", operation, response.status_code)
            raise BitbucketAPIError(
                operation,
                status=response.status_code,
                reason=response.reason_phrase,
                payload=_error_payload(response),
            )

        if text:
            return response.text
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise BitbucketClientError(operation, f"response is not valid JSON ({exc})") from exc

    def _repo_path(self, workspace: str, repo_slug: str) -> str:
        return f"/repositories/{workspace}/{repo_slug}"

    def _pipeline_path(self, workspace: str, repo_slug: str, pipeline_uuid: str) -> str:
        return f"{self._repo_path(workspace, repo_slug)}/pipelines/{ensure_braces(pipeline_uuid)}"

    def _step_path(self, workspace: str, repo_slug: str, pipeline_uuid: str, step_uuid: str) -> str:
        return f"{self._pipeline_path(workspace, repo_slug, pipeline_uuid)}/steps/{ensure_braces(step_uuid)}"

    # Cuenta

    async def get_current_user(self) -> dict[str, Any]:
        return await self._request("get_current_user", "GET", "/user")

    # Repositorios

    async def list_repositories(
        self,
        workspace: str | None = None,
        limit: int | None = None,
        name_filter: str | None = None,
    ) -> dict[str, Any]:
        operation = "list_repositories"
        effective_workspace = workspace or self._config.default_workspace
        if not effective_workspace:
            raise BitbucketClientError(
                operation, "workspace parameter or default workspace config is required"
            )

        params: dict[str, Any] = {}
        if limit:
            params["pagelen"] = limit
        if name_filter:
            params["q"] = f'name~"{name_filter}"'
        return await self._request(operation, "GET", f"/repositories/{effective_workspace}", params=params)

    async def get_repository(self, workspace: str, repo_slug: str) -> dict[str, Any]:
        return await self._request("get_repository", "GET", self._repo_path(workspace, repo_slug))

    # Pull requests

    async def list_pull_requests(
        self,
        workspace: str,
        repo_slug: str,
        state: PullRequestState | str | None = None,
        limit: int | None = None,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {}
        if limit:
            params["pagelen"] = limit
        if state:
            params["state"] = _value(state)
        return await self._request(
            "list_pull_requests",
            "GET",
            f"{self._repo_path(workspace, repo_slug)}/pullrequests",
            params=params,
        )

    async def get_pull_request(self, workspace: str, repo_slug: str, pull_request_id: str) -> dict[str, Any]:
        return await self._request(
            "get_pull_request",
            "GET",
            f"{self._repo_path(workspace, repo_slug)}/pullrequests/{pull_request_id}",
        )

    async def create_pull_request(
        self,
        workspace: str,
        repo_slug: str,
        title: str,
        source_branch: str,
        destination_branch: str,
        description: str = "",
        reviewers: Sequence[str] | None = None,
        close_source_branch: bool = False,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "title": title,
            "description": description,
            "source": {"branch": {"name": source_branch}},
            "destination": {"branch": {"name": destination_branch}},
            "close_source_branch": close_source_branch,
        }
        if reviewers:
            payload["reviewers"] = [{"uuid": uuid} for uuid in reviewers]
        return await self._request(
            "create_pull_request",
            "POST",
            f"{self._repo_path(workspace, repo_slug)}/pullrequests",
            json=payload,
        )

    async def approve_pull_request(self, workspace: str, repo_slug: str, pull_request_id: str) -> dict[str, Any]:
        return await self._request(
            "approve_pull_request",
            "POST",
            f"{self._repo_path(workspace, repo_slug)}/pullrequests/{pull_request_id}/approve",
        )

    async def merge_pull_request(
        self,
        workspace: str,
        repo_slug: str,
        pull_request_id: str,
        message: str | None = None,
        strategy: MergeStrategy | str | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        if message:
            payload["message"] = message
        if strategy:
            payload["merge_strategy"] = _value(strategy)
        return await self._request(
            "merge_pull_request",
            "POST",
            f"{self._repo_path(workspace, repo_slug)}/pullrequests/{pull_request_id}/merge",
            json=payload,
        )

    async def decline_pull_request(
        self,
        workspace: str,
        repo_slug: str,
        pull_request_id: str,
        message: str | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        if message:
            payload["message"] = message
        return await self._request(
            "decline_pull_request",
            "POST",
            f"{self._repo_path(workspace, repo_slug)}/pullrequests/{pull_request_id}/decline",
            json=payload,
        )

    async def get_pull_request_comments(
        self, workspace: str, repo_slug: str, pull_request_id: str
    ) -> dict[str, Any]:
        return await self._request(
            "get_pull_request_comments",
            "GET",
            f"{self._repo_path(workspace, repo_slug)}/pullrequests/{pull_request_id}/comments",
        )

    async def get_pull_request_diff(self, workspace: str, repo_slug: str, pull_request_id: str) -> str:
        return await self._request(
            "get_pull_request_diff",
            "GET",
            f"{self._repo_path(workspace, repo_slug)}/pullrequests/{pull_request_id}/diff",
            headers=_TEXT_HEADERS,
            text=True,
        )

    # Pipelines

    async def list_pipeline_runs(
        self,
        workspace: str,
        repo_slug: str,
        limit: int | None = None,
        status: PipelineStatus | str | None = None,
        target_branch: str | None = None,
        trigger_type: TriggerType | str | None = None,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {}
        if limit:
            params["pagelen"] = limit
        # Más nuevos primero.
        params["sort"] = "-created_on"

        filters: list[str] = []
        if status:
            filters.append(f'state.result.name="{_value(status)}"')
        if target_branch:
            filters.append(f'target.ref_name="{target_branch}"')
        if trigger_type:
            filters.append(f'trigger.type="{_value(trigger_type)}"')
        if filters:
            params["q"] = " AND ".join(filters)

        return await self._request(
            "list_pipeline_runs",
            "GET",
            f"{self._repo_path(workspace, repo_slug)}/pipelines/",
            params=params,
        )

    async def get_pipeline_run(self, workspace: str, repo_slug: str, pipeline_uuid: str) -> dict[str, Any]:
        return await self._request(
            "get_pipeline_run", "GET", self._pipeline_path(workspace, repo_slug, pipeline_uuid)
        )

    async def run_pipeline(
        self,
        workspace: str,
        repo_slug: str,
        target: PipelineTarget,
        variables: Sequence[PipelineVariable] | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"target": target.to_payload()}
        if variables:
            payload["variables"] = [v.model_dump() for v in variables]
        return await self._request(
            "run_pipeline",
            "POST",
            f"{self._repo_path(workspace, repo_slug)}/pipelines/",
            json=payload,
        )

    async def stop_pipeline(self, workspace: str, repo_slug: str, pipeline_uuid: str) -> Any:
        return await self._request(
            "stop_pipeline",
            "POST",
            f"{self._pipeline_path(workspace, repo_slug, pipeline_uuid)}/stopPipeline",
        )

    async def get_pipeline_steps(self, workspace: str, repo_slug: str, pipeline_uuid: str) -> dict[str, Any]:
        return await self._request(
            "get_pipeline_steps",
            "GET",
            f"{self._pipeline_path(workspace, repo_slug, pipeline_uuid)}/steps/",
        )

    async def get_pipeline_step(
        self, workspace: str, repo_slug: str, pipeline_uuid: str, step_uuid: str
    ) -> dict[str, Any]:
        return await self._request(
            "get_pipeline_step",
            "GET",
            self._step_path(workspace, repo_slug, pipeline_uuid, step_uuid),
        )

    async def get_pipeline_step_logs(
        self, workspace: str, repo_slug: str, pipeline_uuid: str, step_uuid: str
    ) -> str:
        return await self._request(
            "get_pipeline_step_logs",
            "GET",
            f"{self._step_path(workspace, repo_slug, pipeline_uuid, step_uuid)}/log",
            headers=_TEXT_HEADERS,
            text=True,
        )

    async def get_pipeline_step_log_tail(
        self,
        workspace: str,
        repo_slug: str,
        pipeline_uuid: str,
        step_uuid: str,
        num_bytes: int = DEFAULT_TAIL_BYTES,
    ) -> str:
        operation = "get_pipeline_step_log_tail"
        if num_bytes < 1:
            raise BitbucketClientError(operation, f"bytes must be positive, got {num_bytes}")
        # Un rango negativo lee desde el final del archivo.
        headers = {**_TEXT_HEADERS, "Range": f"bytes=-{num_bytes}"}
        return await self._request(
            operation,
            "GET",
            f"{self._step_path(workspace, repo_slug, pipeline_uuid, step_uuid)}/log",
            headers=headers,
            text=True,
        )

    # Modelo de ramas

    async def get_branching_model(self, workspace: str, repo_slug: str) -> dict[str, Any]:
        return await self._request(
            "get_branching_model",
            "GET",
            f"{self._repo_path(workspace, repo_slug)}/branching-model",
        )

    async def get_branching_model_settings(self, workspace: str, repo_slug: str) -> dict[str, Any]:
        return await self._request(
            "get_branching_model_settings",
            "GET",
            f"{self._repo_path(workspace, repo_slug)}/branching-model/settings",
        )
