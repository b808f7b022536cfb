"""Búsqueda de estrategia por tipo de auth (una instancia por tipo, así persisten las cachés)."""

from __future__ import annotations

from core.domain.credentials import AuthType
from core.services.auth.api_key import ApiKeyStrategy
from core.services.auth.base import AuthStrategy
from core.services.auth.basic import BasicStrategy
from core.services.auth.digest import DigestStrategy
from core.services.auth.oauth2 import OAuth2RefreshStrategy


class AuthStrategyFactory:
    def __init__(self, *, oauth2_cache_tokens: bool = False) -> None:
        self._strategies: dict[AuthType, AuthStrategy] = {
            AuthType.API_KEY: ApiKeyStrategy(),
            AuthType.BASIC: BasicStrategy(),
            AuthType.DIGEST: DigestStrategy(),
            AuthType.OAUTH2_REFRESH: OAuth2RefreshStrategy(cache_tokens=oauth2_cache_tokens),
        }

    def get(self, auth_type: AuthType | str) -> AuthStrategy | None:
        try:
            return self._strategies[AuthType(auth_type)]
        except ValueError:
            return None

    def clear_caches(self, auth_id: str | None = None) -> None:
        for strategy in self._strategies.values():
            strategy.clear_cache(auth_id)
