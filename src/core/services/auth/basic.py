"""Auth HTTP Basic."""

from __future__ import annotations

from typing import Mapping

from core.domain.credentials import AuthType, BasicAuth
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


class BasicStrategy(AuthStrategy):
    auth_type = AuthType.BASIC

    async def _apply(
        self,
        request: AuthRequest,
        auth: BasicAuth,
        env_vars: Mapping[str, str],
        dispatch: Dispatch,
    ) -> AuthOutcome:
        if has_header(request.headers, "authorization"):
            return HeaderContribution()

        values, unresolved = resolve_all(
            {"username": auth.username, "password": auth.password}, env_vars
        )
        if unresolved:
            return unresolved_failure(unresolved)

        token = b64encode_text(f"{values['username']}:{values['password']}")
        return HeaderContribution(headers={"Authorization": f"Basic {token}"})
