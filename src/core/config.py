"""Configuración del Core.

Por qué aquí:
- Centraliza variables de entorno (pydantic-settings) sin filtrarlas a la CLI.
- La búsqueda de archivos de credenciales y la normalización de la base URL
  producen un único `BitbucketConfig` en el que el cliente confía tal cual.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from pathlib import Path
from urllib.parse import urlsplit

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.domain.errors import ConfigError
from core.domain.models import (
    DEFAULT_BASE_URL,
    DEFAULT_SEARCH_WINDOW,
    MAX_PAGE_LENGTH,
    BitbucketConfig,
    CredentialsFile,
)

logger = logging.getLogger(__name__)

APP_NAME = "bitbucket-devops"


def get_user_config_dir() -> Path:
    """Directorio de configuración del usuario (multiplataforma, sin dependencias extra)."""

    if sys.platform.startswith("win"):
        base = Path(os.environ.get("APPDATA", str(Path.home())))
        return base / APP_NAME
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / APP_NAME

    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / APP_NAME
    return Path.home() / ".config" / APP_NAME


def get_user_env_file() -> Path:
    return get_user_config_dir() / ".env"


def _parse_env_lines(text: str) -> dict[str, str]:
    data: dict[str, str] = {}
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key:
            data[key] = value
    return data


def write_user_env_vars(values: dict[str, str | None]) -> Path:
    """Escribe/actualiza variables en el .env global del usuario."""

    env_path = get_user_env_file()
    env_path.parent.mkdir(parents=True, exist_ok=True)

    existing: dict[str, str] = {}
    if env_path.exists():
        try:
            existing = _parse_env_lines(env_path.read_text(encoding="utf-8"))
        except OSError as exc:
            logger.warning("Could not read %s, rewriting it: %s", env_path, exc)
            existing = {}

    existing.update({k: v for k, v in values.items() if v})

    lines = ["# bitbucket-devops user config (.env)"]
    for key in sorted(existing.keys()):
        lines.append(f"{key}={existing[key]}")
    env_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return env_path


class AppSettings(BaseSettings):
    """Settings respaldados por el entorno.

    Por qué pydantic-settings:
    - Tipado y validación en el borde (env vars) sin ensuciar el cliente.
    - Un solo contrato para la CLI y para quien use la librería.
    """

    model_config = SettingsConfigDict(
        env_prefix="BITBUCKET_",
        extra="ignore",
        case_sensitive=False,
        # Orden: .env del proyecto primero, luego config global de usuario.
        env_file=(".env", str(get_user_env_file())),
        env_file_encoding="utf-8",
    )

    url: str = Field(
        default=DEFAULT_BASE_URL,
        min_length=1,
        description="Base URL de la API (o una URL web bitbucket.org/<workspace>).",
    )
    token: str | None = Field(default=None, description="Access token Bearer.")
    username: str | None = Field(default=None, description="Email de la cuenta para basic auth.")
    password: str | None = Field(default=None, description="App password para basic auth.")
    workspace: str | None = Field(default=None, description="Slug del workspace por defecto.")

    http_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout por request (segundos).",
    )
    pipeline_search_window: int = Field(
        default=DEFAULT_SEARCH_WINDOW,
        ge=1,
        le=MAX_PAGE_LENGTH,
        description="Cuántos runs recientes se revisan para resolver un build number.",
    )
    log_level: str = Field(
        default="INFO",
        description="Nivel de log raíz de la CLI (DEBUG, INFO, WARNING...).",
    )


def credential_file_candidates(cwd: Path | None = None, home: Path | None = None) -> list[Path]:
    """Archivos de credenciales por prioridad (proyecto, luego usuario)."""

    cwd = cwd or Path.cwd()
    home = home or Path.home()
    return [
        cwd / "credentials.json",
        cwd / ".bitbucket-credentials",
        home / ".bitbucket-credentials",
        get_user_config_dir() / "credentials.json",
    ]


class _SkipCredentials(Exception):
    """El archivo no sirve, pero los siguientes candidatos pueden servir."""


def _validate_credentials(creds: CredentialsFile, path: Path) -> None:
    if not creds.user_email:
        raise _SkipCredentials(
            f"Missing required field in {path}: 'user_email' (your Bitbucket account email) is required."
        )
    if "@" not in creds.user_email:
        raise ConfigError(
            f"Invalid credentials in {path}: 'user_email' must be an email address. "
            f'Got: "{creds.user_email}". Expected format: "your-email@example.com".'
        )
    if not creds.username:
        raise _SkipCredentials(
            f"Missing required field in {path}: 'username' (your Bitbucket username/workspace slug) "
            "is required. It is used for git operations, not API calls."
        )
    if "@" in creds.username:
        raise ConfigError(
            f"Invalid credentials in {path}: 'username' should be your Bitbucket username, not email. "
            f'Got: "{creds.username}". Hint: change it to "{creds.workspace or "your-username"}".'
        )


def load_credentials_file(path: Path, settings: AppSettings) -> BitbucketConfig:
    """Parsea y valida un archivo de credenciales.

    Lanza:
    - `ConfigError` si un valor está presente pero mal (corta la búsqueda).
    - `_SkipCredentials` si el archivo es ilegible o está incompleto.
    """

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
        creds = CredentialsFile.model_validate(raw)
    except (OSError, json.JSONDecodeError, ValidationError) as exc:
        raise _SkipCredentials(f"Failed to parse credentials from {path}: {exc}") from exc

    _validate_credentials(creds, path)

    return BitbucketConfig(
        base_url=creds.url or creds.base_url or DEFAULT_BASE_URL,
        token=creds.token,
        # La API autentica con el email; git usa el username.
        username=creds.user_email,
        password=creds.password or creds.app_password,
        default_workspace=creds.workspace or creds.username,
        git_username=creds.username,
        timeout_seconds=settings.http_timeout_seconds,
        pipeline_search_window=settings.pipeline_search_window,
        source=str(path),
    )


def load_config(
    settings: AppSettings | None = None,
    *,
    candidates: list[Path] | None = None,
) -> BitbucketConfig:
    """Resuelve la configuración: primer archivo de credenciales válido, si no el entorno."""

    settings = settings or AppSettings()
    for path in credential_file_candidates() if candidates is None else candidates:
        if not path.is_file():
            continue
        try:
            config = load_credentials_file(path, settings)
        except _SkipCredentials as exc:
            logger.warning("%s", exc)
            continue
        logger.debug("Loaded credentials from %s", path)
        return normalize_config(config)

    return normalize_config(
        BitbucketConfig(
            base_url=settings.url,
            token=settings.token,
            username=settings.username,
            password=settings.password,
            default_workspace=settings.workspace,
            git_username=settings.workspace,
            timeout_seconds=settings.http_timeout_seconds,
            pipeline_search_window=settings.pipeline_search_window,
            source="environment",
        )
    )


def normalize_config(config: BitbucketConfig) -> BitbucketConfig:
    """Normaliza la base URL por compatibilidad hacia atrás.

    - Las URLs web `https://bitbucket.org/<workspace>` pasan a la raíz de la
      API y, si falta, fijan `default_workspace`.
    - A `api.bitbucket.org` sin `/2.0` se le añade la versión.
    - Se quitan las barras finales.
    """

    base_url = config.base_url
    default_workspace = config.default_workspace
    try:
        parsed = urlsplit(base_url)
    except ValueError:
        return config

    if parsed.hostname == "bitbucket.org" and len(parsed.path) > 1:
        parts = [p for p in parsed.path.split("/") if p]
        if parts and not default_workspace:
            default_workspace = parts[0]
        base_url = DEFAULT_BASE_URL

    if parsed.hostname == "api.bitbucket.org" and "/2.0" not in parsed.path:
        base_url = f"{parsed.scheme}://{parsed.hostname}/2.0"

    base_url = base_url.rstrip("/")
    return config.model_copy(update={"base_url": base_url, "default_workspace": default_workspace})
