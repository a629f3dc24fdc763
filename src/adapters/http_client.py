"""Wrapper de httpx.

Por qué un wrapper:
- Estandariza timeouts, headers y autenticación en todas las peticiones.
- Facilita testeo: se puede inyectar un `httpx.MockTransport` en lugar de red.
"""

from __future__ import annotations

import httpx

from core.domain.models import BitbucketConfig

USER_AGENT = "bitbucket-devops/0.1"


def build_auth_headers(config: BitbucketConfig) -> dict[str, str]:
    if config.token:
        return {"Authorization": f"Bearer {config.token}"}
    return {}


def build_async_client(
    config: BitbucketConfig,
    *,
    extra_headers: dict[str, str] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Crea un `httpx.AsyncClient` atado a la base URL de la API.

    Por qué un builder:
    - Centraliza timeouts/headers/auth para que todas las operaciones se
      comporten igual.
    - Si hay token y basic auth a la vez, gana el token.
    """

    headers: dict[str, str] = {
        "User-Agent": USER_AGENT,
        "Accept": "application/json",
    }
    headers.update(build_auth_headers(config))
    if extra_headers:
        headers.update(extra_headers)

    auth: httpx.BasicAuth | None = None
    if not config.token and config.username and config.password:
        auth = httpx.BasicAuth(config.username, config.password)

    return httpx.AsyncClient(
        base_url=config.base_url,
        timeout=httpx.Timeout(config.timeout_seconds),
        follow_redirects=True,
        headers=headers,
        auth=auth,
        transport=transport,
    )
