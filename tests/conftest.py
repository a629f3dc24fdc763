"""Shared fixtures for client, resolver and CLI tests."""

from __future__ import annotations

import asyncio
from typing import Callable

import httpx
import pytest

from adapters.bitbucket_client import BitbucketClient
from core.domain.models import BitbucketConfig


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it served."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.requests: list[httpx.Request] = []

        def _record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(_record)


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    for var in (
        "BITBUCKET_URL",
        "BITBUCKET_TOKEN",
        "BITBUCKET_USERNAME",
        "BITBUCKET_PASSWORD",
        "BITBUCKET_WORKSPACE",
        "BITBUCKET_HTTP_TIMEOUT_SECONDS",
        "BITBUCKET_PIPELINE_SEARCH_WINDOW",
        "BITBUCKET_LOG_LEVEL",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def config() -> BitbucketConfig:
    return BitbucketConfig(token="secret-token", default_workspace="acme")


@pytest.fixture
def make_client(config):
    def _make(handler: Callable[[httpx.Request], httpx.Response], **overrides) -> tuple[BitbucketClient, RecordingTransport]:
        transport = RecordingTransport(handler)
        cfg = config.model_copy(update=overrides) if overrides else config
        return BitbucketClient(cfg, transport=transport), transport

    return _make


@pytest.fixture
def call():
    """Run one client operation inside its own event loop and close the client."""

    def _call(client: BitbucketClient, operation: str, *args, **kwargs):
        async def _go():
            async with client:
                return await getattr(client, operation)(*args, **kwargs)

        return asyncio.run(_go())

    return _call
