"""Modelos del dominio (Pydantic v2) para la ejecución de un request.

- `HttpRequest` es la entrada inmutable de una ejecución.
- `HttpResponseResult` siempre tiene forma de respuesta, incluso ante fallo total
  (`status=0`, `status_text='Error'`, body base64 con el mensaje).
- `Cookie` es la entrada persistida del jar, con clave (domain, path, name).

Nota:
- Estos modelos describen *qué* fluye por el motor, no *cómo* se
  despacha.
"""

from __future__ import annotations

import base64
from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Union
from urllib.parse import parse_qsl
from uuid import uuid4

from pydantic import BaseModel, Field, InstanceOf, StrictBytes, StrictStr, field_validator
from pydantic.config import ConfigDict

from core.domain.credentials import Auth


class ExecutionSettings(BaseModel):
    """Ajustes de transporte por ejecución, pasados explícitamente al executor."""

    model_config = ConfigDict(frozen=True)

    timeout_seconds: float = Field(
        default=0.0,
        ge=0,
        description="Timeout del request en segundos (0 = sin límite).",
    )
    max_redirects: int = Field(
        default=5,
        ge=0,
        description="Máximo de redirecciones seguidas (0 = se devuelven tal cual).",
    )
    ignore_certificate_validation: bool = Field(
        default=False,
        description="Omite la verificación TLS; se combina con el certificado cliente resuelto.",
    )
    user_agent: str | None = Field(
        default=None,
        description="User-Agent aplicado cuando el request no define uno.",
    )


class Cookie(BaseModel):
    """Cookie almacenada en el jar."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(default_factory=lambda: uuid4().hex)
    domain: str = Field(..., min_length=1, description="Host al que pertenece la cookie (sin punto inicial).")
    path: str = Field(default="/", description="Prefijo de path al que aplica la cookie.")
    name: str = Field(..., min_length=1)
    value: str = ""
    expires: datetime | None = Field(
        default=None,
        description="Expiración absoluta (UTC). Solo se evalúa al construir el header Cookie.",
    )
    secure: bool = False
    http_only: bool = False
    same_site: Literal["Strict", "Lax", "None"] | None = None
    enabled: bool = True

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.domain, self.path, self.name)

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires is None:
            return False
        now = now or datetime.now(timezone.utc)
        expires = self.expires
        if expires.tzinfo is None:
            expires = expires.replace(tzinfo=timezone.utc)
        return expires < now


# ---------------------------------------------------------------------------
# Bodies de request
# ---------------------------------------------------------------------------


class FormDataEntry(BaseModel):
    key: str = Field(..., min_length=1)
    value: str = Field(
        default="",
        description="Valor de texto, o contenido base64 del archivo si field_type='file'.",
    )
    field_type: Literal["text", "file"] = "text"
    file_name: str | None = None
    content_type: str | None = None


class FormDataBody(BaseModel):
    """Body multipart serializado para transporte."""

    model_config = ConfigDict(extra="forbid")

    type: Literal["formdata"] = "formdata"
    entries: list[FormDataEntry] = Field(default_factory=list)


class FileBody(BaseModel):
    """Body binario serializado en base64."""

    model_config = ConfigDict(extra="forbid")

    type: Literal["file"] = "file"
    data: str = Field(..., description="Contenido del archivo en base64.")
    file_name: str = "file"
    content_type: str = "application/octet-stream"


# Los dicts con "type" se convierten en `_coerce_body`; aquí solo se aceptan instancias,
# así cualquier otro dict/list se envía como JSON.
RequestBody = Annotated[
    Union[
        StrictStr,
        StrictBytes,
        InstanceOf[FormDataBody],
        InstanceOf[FileBody],
        dict[str, Any],
        list[Any],
        None,
    ],
    Field(union_mode="left_to_right"),
]


class HttpRequest(BaseModel):
    """Descriptor inmutable de un request."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(
        default_factory=lambda: uuid4().hex,
        description="Correlaciona el request con su resultado dentro de un batch.",
    )
    method: str = Field(default="GET", min_length=1)
    url: str = Field(..., min_length=1)
    headers: dict[str, str] = Field(default_factory=dict)
    params: list[tuple[str, str]] = Field(
        default_factory=list,
        description="Query params añadidos a la URL (se permiten claves repetidas).",
    )
    body: RequestBody = None
    auth: Auth | None = Field(
        default=None,
        description="Auth aplicada a este request (ya resuelta por nombre).",
    )
    env_vars: dict[str, str] = Field(
        default_factory=dict,
        description="Valores de entorno disponibles para resolver {{placeholder}}.",
    )

    @field_validator("method")
    @classmethod
    def _upper_method(cls, value: str) -> str:
        return value.strip().upper()

    @field_validator("body", mode="before")
    @classmethod
    def _coerce_body(cls, value: Any) -> Any:
        if isinstance(value, dict):
            kind = value.get("type")
            if kind == "formdata" and isinstance(value.get("entries"), list):
                return FormDataBody.model_validate(value)
            if kind == "file" and isinstance(value.get("data"), str):
                return FileBody.model_validate(value)
        return value

    @field_validator("params", mode="before")
    @classmethod
    def _coerce_params(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return parse_qsl(value.lstrip("?"), keep_blank_values=True)
        if isinstance(value, dict):
            return [(str(k), str(v)) for k, v in value.items()]
        return value


class HttpResponseResult(BaseModel):
    """Respuesta de una ejecución, con la misma forma en éxito y en fallo."""

    id: str
    status: int = Field(..., ge=0, description="Status HTTP; 0 si no se recibió respuesta.")
    status_text: str = ""
    elapsed_time_ms: int = Field(default=0, ge=0)
    size_bytes: int = Field(default=0, ge=0)
    headers: dict[str, str] = Field(default_factory=dict)
    body: str = Field(default="", description="Body de la respuesta codificado en base64.")
    is_encoded: bool = True

    def body_bytes(self) -> bytes:
        if not self.body:
            return b""
        return base64.b64decode(self.body)

    def body_text(self, encoding: str = "utf-8") -> str:
        return self.body_bytes().decode(encoding, errors="replace")


class HttpExecution(BaseModel):
    """Salida de `HttpExecutor.execute`."""

    response: HttpResponseResult
    new_cookies: list[Cookie] = Field(default_factory=list)
