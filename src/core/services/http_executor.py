"""Ejecución de un request.

Pasos para un `HttpRequest`:
1. añade el header `Cookie` del jar para la URL destino;
2. construye la URL completa con los query params;
3. aplica la auth (un intercambio Digest completa el request por sí mismo);
4. resuelve proxy / material TLS y despacha;
5. absorbe los `Set-Cookie` y codifica el body en base64.

`execute` nunca lanza: los fallos de auth y transporte se normalizan en un
resultado con forma de respuesta, `status=0` y `status_text="Error"`.
"""

from __future__ import annotations

import base64
import logging
import time
from typing import Callable
from urllib.parse import urlencode, urlsplit, urlunsplit

import httpx

from adapters.http_client import default_client_factory
from core.domain.credentials import ProxyConfig, TlsMaterial
from core.domain.errors import AuthError
from core.domain.models import (
    ExecutionSettings,
    HttpExecution,
    HttpRequest,
    HttpResponseResult,
)
from core.services.auth import (
    AuthFailure,
    AuthRequest,
    AuthStrategyFactory,
    CompletedResponse,
)
from core.services.cookie_jar import CookieJar
from core.services.credential_resolver import CredentialResolver
from core.services.request_body import prepare_body

logger = logging.getLogger(__name__)

ClientFactory = Callable[[ExecutionSettings, ProxyConfig | None, TlsMaterial | None], httpx.AsyncClient]


def with_query(url: str, params: list[tuple[str, str]]) -> str:
    """Añade `params` al query string de `url` (se conserva la query existente)."""

    if not params:
        return url
    parts = urlsplit(url)
    extra = urlencode(params)
    query = f"{parts.query}&{extra}" if parts.query else extra
    return urlunsplit(parts._replace(query=query))


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


def _flatten_headers(headers: httpx.Headers) -> dict[str, str]:
    return {key: ", ".join(headers.get_list(key)) for key in headers.keys()}


def _encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


class HttpExecutor:
    def __init__(
        self,
        *,
        resolver: CredentialResolver,
        cookie_jar: CookieJar,
        auth_factory: AuthStrategyFactory | None = None,
        client_factory: ClientFactory | None = None,
    ) -> None:
        self.resolver = resolver
        self.cookie_jar = cookie_jar
        self.auth_factory = auth_factory or AuthStrategyFactory()
        self._client_factory = client_factory or default_client_factory

    async def execute(
        self,
        request: HttpRequest,
        settings: ExecutionSettings | None = None,
    ) -> HttpExecution:
        settings = settings or ExecutionSettings()
        started = time.perf_counter()
        try:
            headers = dict(request.headers)
            cookie_header = await self.cookie_jar.header_for(request.url)
            if cookie_header:
                _merge_cookie_header(headers, cookie_header)

            params = list(request.params)
            outgoing = AuthRequest(
                method=request.method,
                url=with_query(request.url, params),
                headers=headers,
                body=request.body,
            )

            if request.auth is not None and request.auth.enabled:
                strategy = self.auth_factory.get(request.auth.type)
                if strategy is None:
                    raise AuthError(f"Unsupported auth type {request.auth.type!r}")

                async def _dispatch(auth_request: AuthRequest) -> httpx.Response:
                    return await self._send(auth_request, settings)

                outcome = await strategy.apply(outgoing, request.auth, request.env_vars, _dispatch)
                if isinstance(outcome, AuthFailure):
                    raise AuthError(outcome.message)
                if isinstance(outcome, CompletedResponse):
                    return await self._finish(request, outcome.response, outcome.elapsed_ms)
                outgoing = AuthRequest(
                    method=request.method,
                    url=with_query(request.url, params + outcome.query_params),
                    headers={**headers, **outcome.headers},
                    body=request.body,
                )

            started = time.perf_counter()
            response = await self._send(outgoing, settings)
            return await self._finish(request, response, _elapsed_ms(started))
        except AuthError as exc:
            logger.info("Request %s not sent: %s", request.id, exc)
            return self._error_result(request, f"Auth error: {exc}", elapsed_ms=0)
        except httpx.HTTPError as exc:
            logger.warning("Request %s failed: %s", request.id, exc)
            partial = exc.response if isinstance(exc, httpx.HTTPStatusError) else None
            return self._error_result(
                request, str(exc) or type(exc).__name__, _elapsed_ms(started), partial
            )
        except Exception as exc:
            logger.warning("Request %s failed: %s", request.id, exc, exc_info=True)
            return self._error_result(request, str(exc) or type(exc).__name__, _elapsed_ms(started))

    async def _send(self, request: AuthRequest, settings: ExecutionSettings) -> httpx.Response:
        proxy = self.resolver.resolve_proxy(request.url)
        tls = self.resolver.resolve_cert(request.url)
        kwargs, headers = prepare_body(request.body, request.headers)

        async with self._client_factory(settings, proxy, tls) as client:
            return await client.request(request.method, request.url, headers=headers, **kwargs)

    async def _finish(
        self,
        request: HttpRequest,
        response: httpx.Response,
        elapsed_ms: int,
    ) -> HttpExecution:
        content = response.content
        new_cookies = []
        set_cookies = response.headers.get_list("set-cookie")
        if set_cookies:
            try:
                new_cookies = await self.cookie_jar.absorb(set_cookies, request.url)
            except Exception as exc:
                # La respuesta ya se recibió: se reporta aunque fallen las cookies.
                logger.warning("Could not store cookies from %s: %s", request.url, exc)

        result = HttpResponseResult(
            id=request.id,
            status=response.status_code,
            status_text=response.reason_phrase,
            elapsed_time_ms=elapsed_ms,
            size_bytes=len(content),
            headers=_flatten_headers(response.headers),
            body=_encode(content),
        )
        return HttpExecution(response=result, new_cookies=new_cookies)

    @staticmethod
    def _error_result(
        request: HttpRequest,
        message: str,
        elapsed_ms: int,
        partial: httpx.Response | None = None,
    ) -> HttpExecution:
        result = HttpResponseResult(
            id=request.id,
            status=partial.status_code if partial is not None else 0,
            status_text="Error",
            elapsed_time_ms=max(elapsed_ms, 0),
            size_bytes=len(message.encode("utf-8")),
            headers=_flatten_headers(partial.headers) if partial is not None else {},
            body=_encode(message.encode("utf-8")),
        )
        return HttpExecution(response=result)


def _merge_cookie_header(headers: dict[str, str], cookie_header: str) -> None:
    for key in headers:
        if key.lower() == "cookie":
            existing = headers[key].strip().rstrip(";")
            headers[key] = f"{existing}; {cookie_header}" if existing else cookie_header
            return
    headers["Cookie"] = cookie_header
