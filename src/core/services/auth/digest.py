"""Auth HTTP Digest (RFC 7616 / RFC 2617, con fallback RFC 2069).

Flujo:
- con un challenge en caché para esta auth, se envía directamente el request
  autenticado; un 401 con `stale=true` se reintenta una vez con el nonce nuevo,
  cualquier otro 401 descarta la caché y reinicia el handshake.
- si no, se envía el request sin autenticar; una respuesta no-401 se devuelve
  tal cual y un challenge 401 se responde, siendo esa respuesta el resultado.

La estrategia despacha el request ella misma, así que siempre produce un
`CompletedResponse` (o un `AuthFailure`).
"""

from __future__ import annotations

import hashlib
import logging
import re
import secrets
import time
from dataclasses import dataclass
from typing import Mapping
from urllib.parse import urlsplit

from core.domain.credentials import AuthType, DigestAuth
from core.services.auth.base import (
    AuthFailure,
    AuthOutcome,
    AuthRequest,
    AuthStrategy,
    CompletedResponse,
    Dispatch,
    unresolved_failure,
)
from core.services.request_body import entity_bytes
from core.services.variables import resolve_all

logger = logging.getLogger(__name__)

_CHALLENGE_PARAM = re.compile(r'(\w+)=(?:"([^"]*)"|([^\s,]+))')


@dataclass
class DigestChallenge:
    realm: str
    nonce: str
    qop: str | None = None
    algorithm: str | None = None
    opaque: str | None = None
    nc: int = 1
    cnonce: str | None = None


def parse_challenge(header: str | None) -> dict[str, str] | None:
    """Parámetros de un header `WWW-Authenticate: Digest ...`; None si no es Digest."""

    if not header:
        return None
    scheme, _, rest = header.strip().partition(" ")
    if scheme.lower() != "digest":
        return None
    params: dict[str, str] = {}
    for match in _CHALLENGE_PARAM.finditer(rest):
        key = match.group(1).lower()
        value = match.group(2) if match.group(2) is not None else match.group(3)
        params[key] = value
    return params


def choose_qop(offered: str | None, preferred: str | None) -> str | None:
    if not offered:
        return None
    options = [q.strip().lower() for q in offered.split(",") if q.strip()]
    if preferred and preferred in options:
        return preferred
    for candidate in ("auth", "auth-int"):
        if candidate in options:
            return candidate
    return None


def _hash_fn(algorithm: str | None):
    if algorithm and algorithm.upper().startswith("SHA-256"):
        return lambda text: hashlib.sha256(text.encode("utf-8")).hexdigest()
    return lambda text: hashlib.md5(text.encode("utf-8")).hexdigest()


def compute_response(
    *,
    username: str,
    password: str,
    realm: str,
    nonce: str,
    method: str,
    uri: str,
    algorithm: str | None = None,
    qop: str | None = None,
    nc: str | None = None,
    cnonce: str | None = None,
    body: bytes = b"",
) -> str:
    """Valor `response` de Digest para un request."""

    h = _hash_fn(algorithm)
    ha1 = h(f"{username}:{realm}:{password}")
    if algorithm and algorithm.lower().endswith("-sess"):
        ha1 = h(f"{ha1}:{nonce}:{cnonce}")

    if qop == "auth-int":
        body_hash = (
            hashlib.sha256(body).hexdigest()
            if algorithm and algorithm.upper().startswith("SHA-256")
            else hashlib.md5(body).hexdigest()
        )
        ha2 = h(f"{method}:{uri}:{body_hash}")
    else:
        ha2 = h(f"{method}:{uri}")

    if qop:
        return h(f"{ha1}:{nonce}:{nc}:{cnonce}:{qop}:{ha2}")
    return h(f"{ha1}:{nonce}:{ha2}")


def build_authorization(
    *,
    username: str,
    password: str,
    method: str,
    uri: str,
    challenge: DigestChallenge,
    body: bytes = b"",
) -> str:
    """Genera el header `Authorization` y avanza el nonce count."""

    nc = f"{challenge.nc:08x}"
    cnonce = challenge.cnonce or secrets.token_hex(8)
    response = compute_response(
        username=username,
        password=password,
        realm=challenge.realm,
        nonce=challenge.nonce,
        method=method,
        uri=uri,
        algorithm=challenge.algorithm,
        qop=challenge.qop,
        nc=nc,
        cnonce=cnonce,
        body=body,
    )
    challenge.nc += 1

    header = (
        f'Digest username="{username}", realm="{challenge.realm}", '
        f'nonce="{challenge.nonce}", uri="{uri}", response="{response}"'
    )
    if challenge.algorithm:
        header += f", algorithm={challenge.algorithm}"
    if challenge.qop:
        header += f', qop={challenge.qop}, nc={nc}, cnonce="{cnonce}"'
    if challenge.opaque:
        header += f', opaque="{challenge.opaque}"'
    return header


def _request_uri(url: str) -> str:
    parts = urlsplit(url)
    uri = parts.path or "/"
    if parts.query:
        uri = f"{uri}?{parts.query}"
    return uri


def _initial_nc(auth: DigestAuth) -> int:
    if not auth.nc:
        return 1
    try:
        return max(int(auth.nc, 16), 1)
    except ValueError:
        return 1


def challenge_from(params: dict[str, str] | None, auth: DigestAuth) -> DigestChallenge | None:
    """Combina el challenge del servidor con los valores precargados de la auth."""

    params = params or {}
    realm = params.get("realm", auth.realm)
    nonce = params.get("nonce", auth.nonce)
    if realm is None or not nonce:
        return None
    offered = params.get("qop", auth.qop)
    return DigestChallenge(
        realm=realm,
        nonce=nonce,
        qop=choose_qop(offered, auth.qop),
        algorithm=params.get("algorithm", auth.algorithm),
        opaque=params.get("opaque", auth.opaque),
        nc=_initial_nc(auth),
        cnonce=auth.cnonce,
    )


class DigestStrategy(AuthStrategy):
    auth_type = AuthType.DIGEST

    async def _apply(
        self,
        request: AuthRequest,
        auth: DigestAuth,
        env_vars: Mapping[str, str],
        dispatch: Dispatch,
    ) -> AuthOutcome:
        values, unresolved = resolve_all(
            {"username": auth.username, "password": auth.password}, env_vars
        )
        if unresolved:
            return unresolved_failure(unresolved)
        username, password = values["username"], values["password"]

        uri = _request_uri(request.url)
        try:
            body = entity_bytes(request.body)
        except ValueError as exc:
            return AuthFailure(str(exc))

        def _answer(challenge: DigestChallenge) -> AuthRequest:
            return request.with_headers(
                Authorization=build_authorization(
                    username=username,
                    password=password,
                    method=request.method,
                    uri=uri,
                    challenge=challenge,
                    body=body,
                )
            )

        started = time.perf_counter()

        def _done(response) -> CompletedResponse:
            return CompletedResponse(
                response=response,
                elapsed_ms=int((time.perf_counter() - started) * 1000),
            )

        cached: DigestChallenge | None = self.get_cached(auth.id)
        if cached is not None:
            response = await dispatch(_answer(cached))
            if response.status_code != 401:
                return _done(response)
            params = parse_challenge(response.headers.get("www-authenticate"))
            if params and params.get("stale", "").lower() == "true" and params.get("nonce"):
                logger.debug("Digest nonce for %r is stale, retrying", auth.name)
                cached.nonce = params["nonce"]
                cached.nc = 1
                if "opaque" in params:
                    cached.opaque = params["opaque"]
                response = await dispatch(_answer(cached))
                if response.status_code != 401:
                    return _done(response)
            self.clear_cache(auth.id)

        first = await dispatch(request)
        if first.status_code != 401:
            return _done(first)

        challenge = challenge_from(parse_challenge(first.headers.get("www-authenticate")), auth)
        if challenge is None:
            return _done(first)

        second = await dispatch(_answer(challenge))
        if second.status_code != 401:
            self.set_cache(auth.id, challenge)
        return _done(second)
