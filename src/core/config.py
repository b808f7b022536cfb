"""Configuración del Core.

Por qué aquí:
- Centraliza variables de entorno (pydantic-settings) sin contaminar la CLI.
- Produce los valores explícitos `ExecutionSettings` / `ExecutionConfig` que
  reciben los executors como argumentos; nada en el core lee config por su cuenta.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.domain.execution import ExecutionConfig
from core.domain.models import ExecutionSettings


def get_user_config_dir() -> Path:
    """Directorio de configuración por usuario (cross-platform, sin dependencias)."""

    if sys.platform.startswith("win"):
        base = Path(os.environ.get("APPDATA", str(Path.home())))
        return base / "apiexec"
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "apiexec"

    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "apiexec"
    return Path.home() / ".config" / "apiexec"


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


def write_user_env_vars(values: dict[str, str], *, env_path: Path | None = None) -> Path:
    """Escribe/actualiza variables en el .env global del usuario."""

    env_path = env_path or get_user_env_file()
    env_path.parent.mkdir(parents=True, exist_ok=True)

    existing: dict[str, str] = {}
    if env_path.exists():
        existing = _parse_env_lines(env_path.read_text(encoding="utf-8"))

    existing.update({k: v for k, v in values.items() if v is not None})

    lines = ["# apiexec user config (.env)"]
    for key in sorted(existing.keys()):
        lines.append(f"{key}={existing[key]}")
    env_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return env_path


class AppSettings(BaseSettings):
    """Configuración central de la aplicación.

    La lee una vez el entry point; el motor de requests solo ve los
    valores derivados.
    """

    model_config = SettingsConfigDict(
        env_prefix="APIEXEC_",
        extra="ignore",
        case_sensitive=False,
        # Orden: proyecto primero (dev), luego config global de usuario.
        env_file=(".env", str(get_user_env_file())),
        env_file_encoding="utf-8",
    )

    request_timeout_seconds: float = Field(
        default=0.0,
        ge=0,
        description="Timeout por request en segundos (0 = sin límite).",
    )
    max_redirects: int = Field(
        default=5,
        ge=0,
        le=100,
        description="Máximo de redirecciones a seguir (0 = no seguir).",
    )
    ignore_certificate_validation: bool = Field(
        default=False,
        description="Desactiva la validación de certificados TLS en todos los requests.",
    )
    user_agent: str = Field(
        default="apiexec/0.1",
        min_length=1,
        description="User-Agent por defecto cuando el request no define uno.",
    )

    data_dir: Path | None = Field(
        default=None,
        description="Directorio alternativo para el store de credenciales y cookies.",
    )

    concurrent_calls: int = Field(
        default=1,
        ge=1,
        le=500,
        description="Número de requests por batch por defecto.",
    )
    delay_between_calls_ms: int = Field(
        default=0,
        ge=0,
        description="Espera por defecto entre batches (milisegundos).",
    )
    stop_on_failure: bool = Field(
        default=False,
        description="Detiene la ejecución tras el primer batch con un fallo.",
    )

    oauth2_cache_tokens: bool = Field(
        default=False,
        description="Reutiliza los access tokens OAuth2 hasta poco antes de que expiren.",
    )

    log_level: str = Field(
        default="WARNING",
        description="Nivel de log raíz usado por la CLI (DEBUG, INFO, WARNING, ERROR).",
    )

    def store_dir(self) -> Path:
        base = self.data_dir or get_user_config_dir()
        return base / "store"

    def execution_settings(self) -> ExecutionSettings:
        return ExecutionSettings(
            timeout_seconds=self.request_timeout_seconds,
            max_redirects=self.max_redirects,
            ignore_certificate_validation=self.ignore_certificate_validation,
            user_agent=self.user_agent,
        )

    def execution_config(self) -> ExecutionConfig:
        return ExecutionConfig(
            concurrent_calls=self.concurrent_calls,
            delay_between_calls=self.delay_between_calls_ms,
            stop_on_failure=self.stop_on_failure,
        )
