from __future__ import annotations

from typing import Callable

import httpx
import pytest

from core.domain.credentials import ProxyConfig, TlsMaterial
from core.domain.models import ExecutionSettings
from core.services.auth import AuthStrategyFactory
from core.services.cookie_jar import CookieJar
from core.services.credential_resolver import CredentialResolver
from core.services.credential_store import CredentialStore
from core.services.http_executor import HttpExecutor


class RecordingFactory:
    """Client factory that routes every dispatch to an `httpx.MockTransport`."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.handler = handler
        self.calls: list[tuple[ExecutionSettings, ProxyConfig | None, TlsMaterial | None]] = []

    def __call__(self, settings, proxy, tls) -> httpx.AsyncClient:
        self.calls.append((settings, proxy, tls))
        return httpx.AsyncClient(
            transport=httpx.MockTransport(self.handler),
            follow_redirects=settings.max_redirects > 0,
        )


@pytest.fixture
def store() -> CredentialStore:
    return CredentialStore()


@pytest.fixture
def make_executor(store):
    def _make(handler, *, oauth2_cache_tokens: bool = False, jar: CookieJar | None = None):
        factory = RecordingFactory(handler)
        executor = HttpExecutor(
            resolver=CredentialResolver(store),
            cookie_jar=jar or CookieJar(),
            auth_factory=AuthStrategyFactory(oauth2_cache_tokens=oauth2_cache_tokens),
            client_factory=factory,
        )
        return executor, factory

    return _make
