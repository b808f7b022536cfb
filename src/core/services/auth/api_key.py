"""Auth por API key: un header o query param con nombre."""

from __future__ import annotations

from typing import Mapping

from core.domain.credentials import ApiKeyAuth, AuthType
from core.services.auth.base import (
    AuthOutcome,
    AuthRequest,
    AuthStrategy,
    Dispatch,
    HeaderContribution,
    b64encode_text,
    has_header,
    unresolved_failure,
)
from core.services.variables import resolve_all


class ApiKeyStrategy(AuthStrategy):
    auth_type = AuthType.API_KEY

    async def _apply(
        self,
        request: AuthRequest,
        auth: ApiKeyAuth,
        env_vars: Mapping[str, str],
        dispatch: Dispatch,
    ) -> AuthOutcome:
        values, unresolved = resolve_all({"key": auth.key, "value": auth.value}, env_vars)
        if unresolved:
            return unresolved_failure(unresolved)

        key = values["key"].strip()
        value = values["value"]
        if auth.base64_encode:
            value = b64encode_text(value)
        if auth.prefix:
            value = f"{auth.prefix}{value}"

        if auth.send_in == "query":
            return HeaderContribution(query_params=[(key, value)])
        # Nunca se sobrescribe un header escrito explícitamente por el usuario.
        if has_header(request.headers, key):
            return HeaderContribution()
        return HeaderContribution(headers={key: value})
