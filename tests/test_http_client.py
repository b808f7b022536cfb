import logging
import ssl
from pathlib import Path

import httpx
import pytest

from adapters.http_client import build_async_client, build_ssl_context, default_client_factory
from core.domain.credentials import ProxyConfig, TlsMaterial
from core.domain.models import ExecutionSettings, FileBody, FormDataBody, FormDataEntry
from core.services.request_body import entity_bytes, prepare_body


@pytest.mark.asyncio
async def test_zero_timeout_and_redirects():
    async with build_async_client(ExecutionSettings(timeout_seconds=0, max_redirects=0)) as client:
        assert client.timeout.read is None
        assert client.follow_redirects is False

    settings = ExecutionSettings(timeout_seconds=2.5, max_redirects=3, user_agent="tester/1")
    async with build_async_client(settings) as client:
        assert client.timeout.read == 2.5
        assert client.follow_redirects is True
        assert client.max_redirects == 3
        assert client.headers["user-agent"] == "tester/1"


@pytest.mark.asyncio
async def test_default_factory_accepts_proxy_and_tls():
    client = default_client_factory(
        ExecutionSettings(),
        ProxyConfig(protocol="http", host="proxy.local", port=3128),
        None,
    )
    async with client:
        assert isinstance(client, httpx.AsyncClient)


def test_verify_without_material():
    assert build_ssl_context(None) is True
    assert build_ssl_context(None, ignore_validation=True) is False


def test_unreadable_material_degrades_to_default(caplog, tmp_path):
    material = TlsMaterial(kind="trust", ca_file=tmp_path / "missing.pem")
    with caplog.at_level(logging.WARNING):
        context = build_ssl_context(material)
    assert isinstance(context, ssl.SSLContext)
    assert context.verify_mode == ssl.CERT_REQUIRED
    assert "Could not load TLS material" in caplog.text


def test_ignore_validation_composes_with_material(tmp_path):
    material = TlsMaterial(kind="identity", cert_file=Path(tmp_path / "c.pem"), key_file=tmp_path / "k.pem")
    context = build_ssl_context(material, ignore_validation=True)
    assert context.verify_mode == ssl.CERT_NONE
    assert context.check_hostname is False


def test_prepare_body_variants():
    kwargs, headers = prepare_body({"a": [1, 2]}, {})
    assert kwargs == {"content": b'{"a": [1, 2]}'}
    assert headers == {"Content-Type": "application/json"}

    kwargs, headers = prepare_body({"a": 1}, {"content-type": "application/vnd.api+json"})
    assert headers == {"content-type": "application/vnd.api+json"}

    file_body = FileBody(data="SGVsbG8=", file_name="h.bin", content_type="application/x-test")
    kwargs, headers = prepare_body(file_body, {})
    assert kwargs == {"content": b"Hello"}
    assert headers["Content-Type"] == "application/x-test"

    form = FormDataBody(entries=[FormDataEntry(key="k", value="v")])
    kwargs, headers = prepare_body(form, {"Content-Type": "multipart/form-data"})
    assert kwargs == {"files": [("k", (None, b"v", None))]}
    assert headers == {}

    assert prepare_body(None, {"X": "1"}) == ({}, {"X": "1"})


def test_bad_base64_file_is_rejected():
    with pytest.raises(ValueError):
        entity_bytes(FileBody(data="not base64!"))
