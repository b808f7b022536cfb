"""Contrato de las estrategias de auth y comportamiento común.

Cada estrategia devuelve un resultado etiquetado en vez de un dict con flags:

- `HeaderContribution`: headers / query params a fusionar antes del envío.
- `CompletedResponse`: la estrategia despachó el request ella misma (Digest);
  el executor adopta la respuesta y omite su propio envío.
- `AuthFailure`: el request no debe enviarse.
"""

from __future__ import annotations

import base64
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Mapping, Union

import httpx

from core.domain.credentials import AuthType
from core.domain.models import RequestBody
from core.interfaces.store import AuthRecord
from core.services.domain_matcher import matches


@dataclass(frozen=True)
class AuthRequest:
    """Request saliente tal como lo ve una estrategia (la URL incluye la query)."""

    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    body: RequestBody = None

    def with_headers(self, **extra: str) -> "AuthRequest":
        return replace(self, headers={**self.headers, **extra})


@dataclass(frozen=True)
class HeaderContribution:
    headers: dict[str, str] = field(default_factory=dict)
    query_params: list[tuple[str, str]] = field(default_factory=list)


@dataclass(frozen=True)
class CompletedResponse:
    response: httpx.Response
    elapsed_ms: int


@dataclass(frozen=True)
class AuthFailure:
    message: str


AuthOutcome = Union[HeaderContribution, CompletedResponse, AuthFailure]

Dispatch = Callable[[AuthRequest], Awaitable[httpx.Response]]


@dataclass
class _CacheEntry:
    data: Any
    expires_at: float


def has_header(headers: Mapping[str, str], name: str) -> bool:
    lowered = name.lower()
    return any(k.lower() == lowered for k in headers)


def b64encode_text(value: str) -> str:
    return base64.b64encode(value.encode("utf-8")).decode("ascii")


class AuthStrategy(ABC):
    """Clase base de un tipo de auth.

    `apply` hace las comprobaciones comunes (habilitada, expiración,
    filtros de dominio) y delega en `_apply`.
    """

    auth_type: AuthType
    default_cache_ttl: float = 3600.0

    def __init__(self) -> None:
        self._cache: dict[str, _CacheEntry] = {}

    async def apply(
        self,
        request: AuthRequest,
        auth: AuthRecord,
        env_vars: Mapping[str, str],
        dispatch: Dispatch,
    ) -> AuthOutcome:
        if not auth.enabled:
            return HeaderContribution()
        if auth.type != self.auth_type:
            return AuthFailure(f"Invalid auth type for {type(self).__name__}")
        if auth.is_expired():
            return AuthFailure(f'Auth "{auth.name}" is expired')
        if not matches(request.url, auth.domain_filters):
            return AuthFailure(f'Auth "{auth.name}" does not match domain')
        return await self._apply(request, auth, env_vars, dispatch)

    @abstractmethod
    async def _apply(
        self,
        request: AuthRequest,
        auth: Any,
        env_vars: Mapping[str, str],
        dispatch: Dispatch,
    ) -> AuthOutcome:
        ...

    # caché

    def get_cached(self, auth_id: str) -> Any | None:
        entry = self._cache.get(auth_id)
        if entry is None:
            return None
        if time.monotonic() > entry.expires_at:
            del self._cache[auth_id]
            return None
        return entry.data

    def set_cache(self, auth_id: str, data: Any, ttl: float | None = None) -> None:
        ttl = self.default_cache_ttl if ttl is None else ttl
        self._cache[auth_id] = _CacheEntry(data=data, expires_at=time.monotonic() + ttl)

    def clear_cache(self, auth_id: str | None = None) -> None:
        if auth_id is None:
            self._cache.clear()
        else:
            self._cache.pop(auth_id, None)


def unresolved_failure(names: list[str]) -> AuthFailure:
    return AuthFailure(f"Unresolved placeholders: {', '.join(names)}")
