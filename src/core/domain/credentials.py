"""Registros de credenciales: auths, proxies y certificados cliente.

Describen *qué* está configurado, no cómo se aplica. Cada tipo se
selecciona por request según patrón de dominio (ver `core.services.domain_matcher`).
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Annotated, Literal, Union
from urllib.parse import quote
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator
from pydantic.config import ConfigDict


def _new_id() -> str:
    return uuid4().hex


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class CredentialBase(BaseModel):
    """Campos comunes a todos los tipos de credencial."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(
        default_factory=_new_id,
        description="Identificador estable del registro.",
    )
    name: str = Field(
        ...,
        min_length=1,
        max_length=256,
        description="Nombre visible, único dentro de su tipo (sensible a mayúsculas).",
    )
    enabled: bool = Field(
        default=True,
        description="Los registros deshabilitados nunca se seleccionan.",
    )
    domain_filters: list[str] = Field(
        default_factory=list,
        description="Patrones glob de host (comodín '*'). Vacío = todos los dominios.",
    )
    expiry_date: datetime | None = Field(
        default=None,
        description="Expiración opcional; valores naive se interpretan como UTC.",
    )

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expiry_date is None:
            return False
        now = now or datetime.now(timezone.utc)
        return _as_utc(self.expiry_date) <= _as_utc(now)


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class AuthType(str, Enum):
    API_KEY = "apiKey"
    BASIC = "basic"
    DIGEST = "digest"
    OAUTH2_REFRESH = "oauth2Refresh"


class AuthBase(CredentialBase):
    base64_encode: bool = Field(
        default=False,
        description="Codifica en base64 el valor antes de enviarlo (API key).",
    )


class ApiKeyAuth(AuthBase):
    type: Literal["apiKey"] = "apiKey"
    key: str = Field(..., min_length=1, description="Nombre del header o query param.")
    value: str = Field(default="", description="Valor de la key; admite {{placeholders}}.")
    send_in: Literal["header", "query"] = Field(
        default="header",
        description="Dónde se envía la key.",
    )
    prefix: str | None = Field(
        default=None,
        description="Prefijo opcional, p.ej. 'Bearer ' o 'Token '.",
    )


class BasicAuth(AuthBase):
    type: Literal["basic"] = "basic"
    username: str = ""
    password: str = ""


DigestAlgorithm = Literal["MD5", "MD5-sess", "SHA-256", "SHA-256-sess"]


class DigestAuth(AuthBase):
    """Credenciales Digest más valores de challenge precargados (opcionales)."""

    type: Literal["digest"] = "digest"
    username: str = ""
    password: str = ""
    realm: str | None = None
    nonce: str | None = None
    algorithm: DigestAlgorithm | None = None
    qop: Literal["auth", "auth-int"] | None = None
    nc: str | None = Field(
        default=None,
        description="Nonce count inicial en 8 dígitos hex (p.ej. '00000001').",
    )
    cnonce: str | None = Field(
        default=None,
        description="Cnonce fijo; si falta se genera uno aleatorio.",
    )
    opaque: str | None = None


class OAuth2RefreshAuth(AuthBase):
    type: Literal["oauth2Refresh"] = "oauth2Refresh"
    token_url: str = Field(..., min_length=1)
    client_id: str = Field(..., min_length=1)
    client_secret: str | None = None
    refresh_token: str = Field(..., min_length=1)
    scope: str | None = None


Auth = Annotated[
    Union[ApiKeyAuth, BasicAuth, DigestAuth, OAuth2RefreshAuth],
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------------
# Proxy
# ---------------------------------------------------------------------------


class Proxy(CredentialBase):
    url: str = Field(
        ...,
        min_length=1,
        description="URL del proxy, p.ej. 'http://proxy.local:8080' o 'socks5://10.0.0.1:1080'.",
    )
    exclude_domains: list[str] = Field(
        default_factory=list,
        description="Patrones glob de host que no pasan por este proxy.",
    )
    username: str | None = None
    password: str | None = None


class ProxyConfig(BaseModel):
    """Proxy resuelto para una URL destino."""

    model_config = ConfigDict(frozen=True)

    protocol: Literal["http", "https", "socks4", "socks5"] = "http"
    host: str
    port: int = Field(..., ge=1, le=65535)
    username: str | None = None
    password: str | None = None

    def to_url(self) -> str:
        credentials = ""
        if self.username and self.password:
            credentials = f"{quote(self.username, safe='')}:{quote(self.password, safe='')}@"
        host = f"[{self.host}]" if ":" in self.host else self.host
        return f"{self.protocol}://{credentials}{host}:{self.port}"


# ---------------------------------------------------------------------------
# Certificados
# ---------------------------------------------------------------------------


class CertBase(CredentialBase):
    passphrase: str | None = Field(
        default=None,
        description="Passphrase de la clave cifrada o del bundle PFX.",
    )


class CaCert(CertBase):
    type: Literal["ca"] = "ca"
    cert_file: Path = Field(..., description="Archivo PEM con los certificados CA de confianza.")


class SelfSignedCert(CertBase):
    type: Literal["selfSigned"] = "selfSigned"
    cert_file: Path | None = None
    key_file: Path | None = None
    pfx_file: Path | None = None

    @model_validator(mode="after")
    def _check_material(self) -> "SelfSignedCert":
        if self.pfx_file is None and (self.cert_file is None or self.key_file is None):
            raise ValueError("a self-signed certificate needs cert_file + key_file or pfx_file")
        return self


Cert = Annotated[Union[CaCert, SelfSignedCert], Field(discriminator="type")]


class TlsMaterial(BaseModel):
    """Material TLS (confianza/identidad) resuelto para una URL destino.

    - `trust`: solo un bundle CA (`ca_file`).
    - `identity`: certificado cliente + clave, o un bundle PKCS#12.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["trust", "identity"]
    ca_file: Path | None = None
    cert_file: Path | None = None
    key_file: Path | None = None
    pfx_file: Path | None = None
    passphrase: str | None = None
