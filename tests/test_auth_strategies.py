from datetime import datetime, timedelta, timezone

import pytest

from core.domain.credentials import ApiKeyAuth, AuthType, BasicAuth
from core.services.auth import (
    AuthFailure,
    AuthRequest,
    AuthStrategyFactory,
    HeaderContribution,
)
from core.services.auth.api_key import ApiKeyStrategy
from core.services.auth.basic import BasicStrategy


async def _no_dispatch(request):
    raise AssertionError("strategy must not dispatch")


def _request(url="https://api.x.com/v1", headers=None) -> AuthRequest:
    return AuthRequest(method="GET", url=url, headers=headers or {})


@pytest.mark.asyncio
async def test_api_key_header_with_encoding_and_prefix():
    auth = ApiKeyAuth(name="k", key="Authorization", value="{{secret}}", prefix="Token ", base64_encode=True)
    outcome = await ApiKeyStrategy().apply(_request(), auth, {"secret": "s3"}, _no_dispatch)
    assert outcome == HeaderContribution(headers={"Authorization": "Token czM="})


@pytest.mark.asyncio
async def test_api_key_in_query():
    auth = ApiKeyAuth(name="k", key="api_key", value="abc", send_in="query")
    outcome = await ApiKeyStrategy().apply(_request(), auth, {}, _no_dispatch)
    assert outcome == HeaderContribution(query_params=[("api_key", "abc")])


@pytest.mark.asyncio
async def test_api_key_keeps_existing_header():
    auth = ApiKeyAuth(name="k", key="X-Key", value="new")
    outcome = await ApiKeyStrategy().apply(_request(headers={"x-key": "typed"}), auth, {}, _no_dispatch)
    assert outcome == HeaderContribution()


@pytest.mark.asyncio
async def test_basic_header():
    auth = BasicAuth(name="b", username="{{user}}", password="pw")
    outcome = await BasicStrategy().apply(_request(), auth, {"USER": "alice"}, _no_dispatch)
    assert outcome.headers == {"Authorization": "Basic YWxpY2U6cHc="}


@pytest.mark.asyncio
async def test_basic_skips_when_authorization_present():
    auth = BasicAuth(name="b", username="u", password="p")
    outcome = await BasicStrategy().apply(
        _request(headers={"authorization": "Bearer x"}), auth, {}, _no_dispatch
    )
    assert outcome == HeaderContribution()


@pytest.mark.asyncio
async def test_disabled_auth_is_pass_through():
    auth = BasicAuth(name="b", username="u", enabled=False)
    assert await BasicStrategy().apply(_request(), auth, {}, _no_dispatch) == HeaderContribution()


@pytest.mark.asyncio
async def test_expired_auth_fails():
    auth = BasicAuth(name="b", expiry_date=datetime.now(timezone.utc) - timedelta(minutes=1))
    outcome = await BasicStrategy().apply(_request(), auth, {}, _no_dispatch)
    assert outcome == AuthFailure('Auth "b" is expired')


@pytest.mark.asyncio
async def test_domain_mismatch_fails():
    auth = BasicAuth(name="b", domain_filters=["*.internal"])
    outcome = await BasicStrategy().apply(_request(), auth, {}, _no_dispatch)
    assert outcome == AuthFailure('Auth "b" does not match domain')


@pytest.mark.asyncio
async def test_unresolved_placeholders_fail():
    auth = BasicAuth(name="b", username="{{user}}", password="{{pass}}")
    outcome = await BasicStrategy().apply(_request(), auth, {}, _no_dispatch)
    assert outcome == AuthFailure("Unresolved placeholders: user, pass")


@pytest.mark.asyncio
async def test_wrong_strategy_for_type():
    outcome = await BasicStrategy().apply(_request(), ApiKeyAuth(name="k", key="X"), {}, _no_dispatch)
    assert isinstance(outcome, AuthFailure)


def test_factory_returns_one_strategy_per_type():
    factory = AuthStrategyFactory()
    assert factory.get("basic") is factory.get(AuthType.BASIC)
    assert factory.get("kerberos") is None


def test_factory_clears_caches():
    factory = AuthStrategyFactory()
    strategy = factory.get("digest")
    strategy.set_cache("a", "state")
    strategy.set_cache("b", "state")

    factory.clear_caches("a")
    assert strategy.get_cached("a") is None
    assert strategy.get_cached("b") == "state"

    factory.clear_caches()
    assert strategy.get_cached("b") is None
