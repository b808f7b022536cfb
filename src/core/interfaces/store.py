"""Contratos de almacenamiento que consume el motor de requests.

Por qué Protocol:
- Los stores en memoria de los tests y los JSON de `adapters.json_store`
  son intercambiables sin herencia.

Reglas de diseño:
- Accesores síncronos: el motor solo lee listas de registros.
- El motor nunca decide *dónde* viven los registros.
"""

from __future__ import annotations

from typing import Protocol, Sequence, runtime_checkable

from core.domain.credentials import ApiKeyAuth, BasicAuth, CaCert, DigestAuth, OAuth2RefreshAuth, Proxy, SelfSignedCert
from core.domain.models import Cookie

AuthRecord = ApiKeyAuth | BasicAuth | DigestAuth | OAuth2RefreshAuth
CertRecord = CaCert | SelfSignedCert


@runtime_checkable
class CredentialSource(Protocol):
    """Lectura de credenciales configuradas, en el orden almacenado."""

    def list_auths(self) -> Sequence[AuthRecord]:
        ...

    def list_proxies(self) -> Sequence[Proxy]:
        ...

    def list_certs(self) -> Sequence[CertRecord]:
        ...


@runtime_checkable
class CookieStore(Protocol):
    """Lista de cookies persistida."""

    def load(self) -> list[Cookie]:
        ...

    def save(self, cookies: list[Cookie]) -> None:
        ...
