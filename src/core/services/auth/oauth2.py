"""Auth OAuth2 con refresh token.

Cada ejecución intercambia el refresh token por un access token nuevo, salvo
que la caché de tokens esté activa (`cache_tokens=True`): entonces el token se
reutiliza hasta 60 s antes de expirar.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping
from urllib.parse import urlencode

import httpx

from core.domain.credentials import AuthType, OAuth2RefreshAuth
from core.services.auth.base import (
    AuthFailure,
    AuthOutcome,
    AuthRequest,
    AuthStrategy,
    Dispatch,
    HeaderContribution,
    has_header,
    unresolved_failure,
)
from core.services.variables import resolve_all

logger = logging.getLogger(__name__)

EXPIRY_BUFFER_SECONDS = 60
DEFAULT_LIFETIME_SECONDS = 300


class TokenExchangeError(Exception):
    pass


def _bearer(access_token: str, token_type: str | None) -> dict[str, str]:
    kind = token_type or "Bearer"
    if kind.lower() == "bearer":
        kind = "Bearer"
    return {"Authorization": f"{kind} {access_token}"}


def _error_message(payload: Any, status: int) -> str:
    if isinstance(payload, dict):
        detail = payload.get("error_description") or payload.get("error")
        if detail:
            return str(detail)
    return f"Token refresh failed with status {status}"


class OAuth2RefreshStrategy(AuthStrategy):
    auth_type = AuthType.OAUTH2_REFRESH

    def __init__(self, *, cache_tokens: bool = False) -> None:
        super().__init__()
        self.cache_tokens = cache_tokens

    async def _apply(
        self,
        request: AuthRequest,
        auth: OAuth2RefreshAuth,
        env_vars: Mapping[str, str],
        dispatch: Dispatch,
    ) -> AuthOutcome:
        if has_header(request.headers, "authorization"):
            return HeaderContribution()

        values, unresolved = resolve_all(
            {
                "token_url": auth.token_url,
                "client_id": auth.client_id,
                "client_secret": auth.client_secret,
                "refresh_token": auth.refresh_token,
                "scope": auth.scope,
            },
            env_vars,
        )
        if unresolved:
            return unresolved_failure(unresolved)

        if self.cache_tokens:
            cached = self.get_cached(auth.id)
            if cached is not None:
                return HeaderContribution(headers=_bearer(*cached))

        try:
            access_token, token_type, expires_in = await self._refresh(values, dispatch)
        except TokenExchangeError as exc:
            return AuthFailure(f"Error calling token endpoint: {exc}")
        except httpx.HTTPError as exc:
            return AuthFailure(f"Error calling token endpoint: {exc}")

        if self.cache_tokens:
            ttl = max(expires_in - EXPIRY_BUFFER_SECONDS, 0)
            if ttl > 0:
                self.set_cache(auth.id, (access_token, token_type), ttl=ttl)
        return HeaderContribution(headers=_bearer(access_token, token_type))

    async def _refresh(
        self, values: dict[str, str], dispatch: Dispatch
    ) -> tuple[str, str | None, int]:
        form = {
            "grant_type": "refresh_token",
            "refresh_token": values["refresh_token"],
            "client_id": values["client_id"],
        }
        if values["client_secret"]:
            form["client_secret"] = values["client_secret"]
        if values["scope"]:
            form["scope"] = values["scope"]

        response = await dispatch(
            AuthRequest(
                method="POST",
                url=values["token_url"],
                headers={
                    "Content-Type": "application/x-www-form-urlencoded",
                    "Accept": "application/json",
                },
                body=urlencode(form),
            )
        )
        try:
            payload = response.json()
        except ValueError:
            payload = None

        if response.status_code >= 400:
            raise TokenExchangeError(_error_message(payload, response.status_code))
        if not isinstance(payload, dict) or not payload.get("access_token"):
            raise TokenExchangeError("No access_token in token endpoint response")

        try:
            expires_in = int(payload.get("expires_in") or DEFAULT_LIFETIME_SECONDS)
        except (TypeError, ValueError):
            expires_in = DEFAULT_LIFETIME_SECONDS
        logger.debug("Refreshed OAuth2 token from %s", values["token_url"])
        return str(payload["access_token"]), payload.get("token_type"), expires_in
