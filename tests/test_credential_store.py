import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from adapters.json_store import JsonCookieStore, JsonCredentialStore
from core.domain.credentials import ApiKeyAuth, BasicAuth, CaCert, Proxy
from core.domain.errors import CredentialNotFoundError, DuplicateNameError
from core.domain.models import Cookie
from core.services.credential_store import CredentialStore


def test_names_are_unique_per_kind():
    store = CredentialStore()
    store.auths.add(BasicAuth(name="main", username="u"))

    with pytest.raises(DuplicateNameError):
        store.auths.add(ApiKeyAuth(name="main", key="X-Key"))

    # Same name in another kind, or differing only in case, is fine.
    store.proxies.add(Proxy(name="main", url="http://p:1"))
    store.auths.add(BasicAuth(name="MAIN"))
    assert len(store.auths) == 2


def test_update_cannot_steal_a_name():
    store = CredentialStore(auths=[BasicAuth(name="a"), BasicAuth(name="b")])
    second = store.auths.find_by_name("b")

    with pytest.raises(DuplicateNameError):
        store.auths.update(second.model_copy(update={"name": "a"}))

    renamed = store.auths.update(second.model_copy(update={"name": "c"}))
    assert store.auths.get(second.id).name == renamed.name == "c"


def test_lookup_errors():
    store = CredentialStore()
    with pytest.raises(CredentialNotFoundError):
        store.find_auth("missing")
    with pytest.raises(CredentialNotFoundError):
        store.certs.remove("nope")


def test_purge_expired_certs():
    past = datetime.now(timezone.utc) - timedelta(hours=1)
    store = CredentialStore(
        certs=[
            CaCert(name="old", cert_file=Path("old.pem"), expiry_date=past),
            CaCert(name="current", cert_file=Path("new.pem")),
        ]
    )
    purged = store.purge_expired_certs()
    assert [c.name for c in purged] == ["old"]
    assert [c.name for c in store.list_certs()] == ["current"]


def test_json_store_persists_each_kind(tmp_path):
    store = JsonCredentialStore(tmp_path)
    store.auths.add(ApiKeyAuth(name="key", key="X-Api-Key", value="{{token}}"))
    store.proxies.add(Proxy(name="corp", url="http://proxy:8080", exclude_domains=["*.local"]))

    saved = json.loads((tmp_path / "auths.json").read_text(encoding="utf-8"))
    assert saved[0]["type"] == "apiKey"
    assert not (tmp_path / "certs.json").exists()

    reloaded = JsonCredentialStore(tmp_path)
    auth = reloaded.find_auth("key")
    assert isinstance(auth, ApiKeyAuth)
    assert auth.value == "{{token}}"
    assert reloaded.list_proxies()[0].exclude_domains == ["*.local"]


def test_json_cookie_store(tmp_path):
    store = JsonCookieStore(tmp_path / "store" / "cookies.json")
    assert store.load() == []

    store.save([Cookie(domain="a.com", name="s", value="1", secure=True)])
    loaded = store.load()
    assert len(loaded) == 1
    assert loaded[0].secure
