"""Tests for adapters.bitbucket_client."""

from __future__ import annotations

import json

import httpx
import pytest

from adapters.bitbucket_client import BitbucketClient, ensure_braces
from core.domain.errors import BitbucketAPIError, BitbucketClientError, ConfigError
from core.domain.models import (
    DEFAULT_BASE_URL,
    BitbucketConfig,
    MergeStrategy,
    PipelineStatus,
    PipelineTarget,
    PipelineVariable,
    PullRequestState,
    SelectorType,
    TriggerType,
)


def _ok(payload=None):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=payload if payload is not None else {"ok": True})

    return handler


def _body(request: httpx.Request) -> dict:
    return json.loads(request.content) if request.content else {}


class TestConstruction:
    def test_requires_credentials(self):
        with pytest.raises(ConfigError, match="token or username/password"):
            BitbucketClient(BitbucketConfig())

    def test_username_without_password_is_rejected(self):
        with pytest.raises(ConfigError):
            BitbucketClient(BitbucketConfig(username="dev@example.com"))

    def test_requires_base_url(self):
        with pytest.raises(ConfigError, match="base_url"):
            BitbucketClient(BitbucketConfig(base_url="", token="t"))

    def test_web_url_is_normalized(self):
        client = BitbucketClient(BitbucketConfig(base_url="https://bitbucket.org/acme/", token="t"))
        assert client.config.base_url == DEFAULT_BASE_URL
        assert client.default_workspace == "acme"

    def test_bearer_token_header(self, make_client, call):
        client, transport = make_client(_ok())
        call(client, "get_repository", "acme", "api")
        assert transport.requests[0].headers["Authorization"] == "Bearer secret-token"

    def test_basic_auth(self, make_client, call):
        client, transport = make_client(_ok(), token=None, username="dev@example.com", password="app-pass")
        call(client, "get_repository", "acme", "api")
        assert transport.requests[0].headers["Authorization"].startswith("Basic ")

    def test_search_window_from_config(self, make_client):
        client, _ = make_client(_ok(), pipeline_search_window=40)
        assert client.search_window == 40


class TestRepositories:
    def test_current_user(self, make_client, call):
        client, transport = make_client(_ok({"display_name": "Dev"}))
        assert call(client, "get_current_user") == {"display_name": "Dev"}
        assert transport.requests[0].url.path == "/2.0/user"

    def test_list_uses_default_workspace_and_filters(self, make_client, call):
        client, transport = make_client(_ok({"values": []}))
        assert call(client, "list_repositories", None, 10, "api") == {"values": []}
        request = transport.requests[0]
        assert request.url.path == "/2.0/repositories/acme"
        assert request.url.params["pagelen"] == "10"
        assert request.url.params["q"] == 'name~"api"'

    def test_list_without_any_workspace(self, make_client, call):
        client, transport = make_client(_ok(), default_workspace=None)
        with pytest.raises(BitbucketClientError, match="Unexpected error in list_repositories"):
            call(client, "list_repositories")
        assert transport.requests == []

    def test_get_repository(self, make_client, call):
        client, transport = make_client(_ok({"slug": "api"}))
        assert call(client, "get_repository", "acme", "api") == {"slug": "api"}
        assert transport.requests[0].url.path == "/2.0/repositories/acme/api"


class TestPullRequests:
    def test_list_with_state(self, make_client, call):
        client, transport = make_client(_ok({"values": []}))
        call(client, "list_pull_requests", "acme", "api", PullRequestState.MERGED, 5)
        params = transport.requests[0].url.params
        assert params["state"] == "MERGED"
        assert params["pagelen"] == "5"

    def test_create(self, make_client, call):
        client, transport = make_client(_ok({"id": 12}))
        call(
            client,
            "create_pull_request",
            "acme",
            "api",
            "Add feature",
            "feature/x",
            "main",
            description="Body",
            reviewers=["{r1}"],
        )
        request = transport.requests[0]
        assert request.method == "POST"
        assert request.url.path == "/2.0/repositories/acme/api/pullrequests"
        assert _body(request) == {
            "title": "Add feature",
            "description": "Body",
            "source": {"branch": {"name": "feature/x"}},
            "destination": {"branch": {"name": "main"}},
            "close_source_branch": False,
            "reviewers": [{"uuid": "{r1}"}],
        }

    def test_approve(self, make_client, call):
        client, transport = make_client(_ok())
        call(client, "approve_pull_request", "acme", "api", "7")
        assert transport.requests[0].method == "POST"
        assert transport.requests[0].url.path.endswith("/pullrequests/7/approve")

    def test_merge_payload(self, make_client, call):
        client, transport = make_client(_ok({"state": "MERGED"}))
        call(client, "merge_pull_request", "acme", "api", "7", "Ship it", MergeStrategy.SQUASH)
        request = transport.requests[0]
        assert request.url.path.endswith("/pullrequests/7/merge")
        assert _body(request) == {"message": "Ship it", "merge_strategy": "squash"}

    def test_decline_without_message(self, make_client, call):
        client, transport = make_client(_ok({"state": "DECLINED"}))
        call(client, "decline_pull_request", "acme", "api", "7")
        assert _body(transport.requests[0]) == {}

    def test_diff_is_text(self, make_client, call):
        diff = "diff --git a/x b/x\n+hello\n"

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text=diff, headers={"Content-Type": "text/plain"})

        client, transport = make_client(handler)
        assert call(client, "get_pull_request_diff", "acme", "api", "7") == diff
        assert transport.requests[0].url.path.endswith("/pullrequests/7/diff")

    def test_comments(self, make_client, call):
        client, transport = make_client(_ok({"values": [{"id": 1}]}))
        assert call(client, "get_pull_request_comments", "acme", "api", "7")["values"] == [{"id": 1}]
        assert transport.requests[0].url.path.endswith("/pullrequests/7/comments")


class TestPipelines:
    def test_list_filters(self, make_client, call):
        client, transport = make_client(_ok({"values": []}))
        call(
            client,
            "list_pipeline_runs",
            "acme",
            "api",
            20,
            PipelineStatus.FAILED,
            "main",
            TriggerType.PUSH,
        )
        params = transport.requests[0].url.params
        assert params["pagelen"] == "20"
        assert params["sort"] == "-created_on"
        assert params["q"] == 'state.result.name="FAILED" AND target.ref_name="main" AND trigger.type="push"'

    def test_list_without_filters_has_no_query(self, make_client, call):
        client, transport = make_client(_ok({"values": []}))
        call(client, "list_pipeline_runs", "acme", "api")
        params = transport.requests[0].url.params
        assert "q" not in params
        assert "pagelen" not in params

    def test_get_run_wraps_uuid_in_braces(self, make_client, call):
        client, transport = make_client(_ok({"uuid": "{abc}"}))
        call(client, "get_pipeline_run", "acme", "api", "abc")
        assert transport.requests[0].url.path == "/2.0/repositories/acme/api/pipelines/{abc}"

    def test_steps_and_step(self, make_client, call):
        client, transport = make_client(_ok({"values": []}))
        call(client, "get_pipeline_steps", "acme", "api", "{abc}")
        assert transport.requests[0].url.path.endswith("/pipelines/{abc}/steps/")

        client, transport = make_client(_ok({"uuid": "{s1}"}))
        call(client, "get_pipeline_step", "acme", "api", "{abc}", "s1")
        assert transport.requests[0].url.path.endswith("/pipelines/{abc}/steps/{s1}")

    def test_run_custom_pipeline(self, make_client, call):
        client, transport = make_client(_ok({"build_number": 61}))
        target = PipelineTarget(
            ref_name="main",
            commit_hash="deadbeef",
            selector_type=SelectorType.CUSTOM,
            selector_pattern="deploy",
        )
        variables = [PipelineVariable(key="ENV", value="prod", secured=True)]
        call(client, "run_pipeline", "acme", "api", target, variables)
        request = transport.requests[0]
        assert request.method == "POST"
        assert request.url.path == "/2.0/repositories/acme/api/pipelines/"
        assert _body(request) == {
            "target": {
                "ref_type": "branch",
                "ref_name": "main",
                "type": "pipeline_ref_target",
                "commit": {"hash": "deadbeef"},
                "selector": {"type": "custom", "pattern": "deploy"},
            },
            "variables": [{"key": "ENV", "value": "prod", "secured": True}],
        }

    def test_run_plain_branch(self, make_client, call):
        client, transport = make_client(_ok())
        call(client, "run_pipeline", "acme", "api", PipelineTarget(ref_name="main"))
        assert _body(transport.requests[0]) == {
            "target": {"ref_type": "branch", "ref_name": "main", "type": "pipeline_ref_target"}
        }

    def test_stop_returns_none_on_empty_body(self, make_client, call):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(204)

        client, transport = make_client(handler)
        assert call(client, "stop_pipeline", "acme", "api", "{abc}") is None
        assert transport.requests[0].url.path.endswith("/pipelines/{abc}/stopPipeline")

    def test_step_logs(self, make_client, call):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="+ make test\nok\n")

        client, transport = make_client(handler)
        assert call(client, "get_pipeline_step_logs", "acme", "api", "{abc}", "{s1}") == "+ make test\nok\n"
        assert "Range" not in transport.requests[0].headers

    def test_tail_sends_range_header(self, make_client, call):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(206, text="tail")

        client, transport = make_client(handler)
        assert call(client, "get_pipeline_step_log_tail", "acme", "api", "{abc}", "s1", 500) == "tail"
        request = transport.requests[0]
        assert request.headers["Range"] == "bytes=-500"
        assert request.url.path.endswith("/steps/{s1}/log")

    def test_tail_rejects_non_positive_bytes(self, make_client, call):
        client, transport = make_client(_ok())
        with pytest.raises(BitbucketClientError):
            call(client, "get_pipeline_step_log_tail", "acme", "api", "{abc}", "s1", 0)
        assert transport.requests == []


class TestBranchingModel:
    def test_model_and_settings(self, make_client, call):
        client, transport = make_client(_ok({"type": "branching_model"}))
        call(client, "get_branching_model", "acme", "api")
        assert transport.requests[0].url.path == "/2.0/repositories/acme/api/branching-model"

        client, transport = make_client(_ok({"type": "branching_model_settings"}))
        call(client, "get_branching_model_settings", "acme", "api")
        assert transport.requests[0].url.path == "/2.0/repositories/acme/api/branching-model/settings"


class TestErrors:
    def test_http_error_is_wrapped(self, make_client, call):
        payload = {"type": "error", "error": {"message": "Repository not found"}}

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, json=payload)

        client, _ = make_client(handler)
        with pytest.raises(BitbucketAPIError) as excinfo:
            call(client, "get_repository", "acme", "missing")
        err = excinfo.value
        assert err.operation == "get_repository"
        assert err.status == 404
        assert err.payload == payload
        assert str(err).startswith("Bitbucket API error in get_repository: 404 Not Found - ")
        assert "Repository not found" in str(err)

    def test_non_json_error_body(self, make_client, call):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502, text="Bad gateway")

        client, _ = make_client(handler)
        with pytest.raises(BitbucketAPIError) as excinfo:
            call(client, "get_pipeline_run", "acme", "api", "{abc}")
        assert excinfo.value.status == 502
        assert excinfo.value.payload == "Bad gateway"

    def test_transport_error_is_wrapped(self, make_client, call):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client, _ = make_client(handler)
        with pytest.raises(BitbucketAPIError) as excinfo:
            call(client, "list_pipeline_runs", "acme", "api")
        assert excinfo.value.status is None
        assert excinfo.value.operation == "list_pipeline_runs"
        assert "connection refused" in str(excinfo.value)

    def test_invalid_json_success_body(self, make_client, call):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>")

        client, _ = make_client(handler)
        with pytest.raises(BitbucketClientError, match="Unexpected error in get_pull_request"):
            call(client, "get_pull_request", "acme", "api", "7")


def test_ensure_braces():
    assert ensure_braces("abc") == "{abc}"
    assert ensure_braces("{abc}") == "{abc}"
