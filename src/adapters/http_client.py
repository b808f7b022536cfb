"""Wrapper de httpx.

Por qué un wrapper:
- Estandariza timeouts, redirecciones, User-Agent, proxy y política TLS en
  cada envío.
- Facilita testeo: el executor recibe una factory de clientes, así los tests
  usan un `httpx.MockTransport`.
"""

from __future__ import annotations

import logging
import os
import ssl
import tempfile
from pathlib import Path

import httpx
from cryptography.hazmat.primitives.serialization import (
    BestAvailableEncryption,
    Encoding,
    NoEncryption,
    PrivateFormat,
    pkcs12,
)

from core.domain.credentials import ProxyConfig, TlsMaterial
from core.domain.models import ExecutionSettings

logger = logging.getLogger(__name__)


def build_async_client(
    settings: ExecutionSettings | None = None,
    *,
    proxy_url: str | None = None,
    verify: ssl.SSLContext | bool = True,
    extra_headers: dict[str, str] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Crea un `httpx.AsyncClient` para un envío.

    Por qué un builder:
    - Centraliza la política de timeout/redirects/headers para que todo request se comporte igual.
    - `timeout_seconds == 0` significa sin timeout; `max_redirects == 0` significa
      que las redirecciones se devuelven en vez de seguirse.
    """

    settings = settings or ExecutionSettings()
    headers: dict[str, str] = {}
    if settings.user_agent:
        headers["User-Agent"] = settings.user_agent
    if extra_headers:
        headers.update(extra_headers)

    timeout = httpx.Timeout(settings.timeout_seconds or None)
    kwargs = dict(
        timeout=timeout,
        follow_redirects=settings.max_redirects > 0,
        headers=headers,
        verify=verify,
        proxy=proxy_url,
    )
    if settings.max_redirects > 0:
        kwargs["max_redirects"] = settings.max_redirects
    if transport is not None:
        kwargs["transport"] = transport
    return httpx.AsyncClient(**kwargs)


def _load_pkcs12(context: ssl.SSLContext, pfx_file: Path, passphrase: str | None) -> None:
    password = passphrase.encode("utf-8") if passphrase else None
    key, cert, extra = pkcs12.load_key_and_certificates(pfx_file.read_bytes(), password)
    if key is None or cert is None:
        raise ValueError(f"{pfx_file} does not contain a key and a certificate")

    encryption = BestAvailableEncryption(password) if password else NoEncryption()
    chain = cert.public_bytes(Encoding.PEM) + b"".join(
        c.public_bytes(Encoding.PEM) for c in extra or []
    )
    key_pem = key.private_bytes(Encoding.PEM, PrivateFormat.PKCS8, encryption)

    # ssl solo carga la cadena desde disco.
    paths: list[str] = []
    try:
        for payload in (chain, key_pem):
            fd, path = tempfile.mkstemp(suffix=".pem")
            paths.append(path)
            with os.fdopen(fd, "wb") as handle:
                handle.write(payload)
        context.load_cert_chain(paths[0], paths[1], password=passphrase)
    finally:
        for path in paths:
            try:
                os.unlink(path)
            except OSError:
                pass


def build_ssl_context(
    material: TlsMaterial | None,
    *,
    ignore_validation: bool = False,
) -> ssl.SSLContext | bool:
    """Convierte el material TLS resuelto en un valor `verify` de httpx.

    - sin material: `True`, o `False` si se ignora la validación.
    - `trust`: contexto por defecto más el archivo CA como ancla adicional.
    - `identity`: contexto por defecto con el certificado cliente cargado.
    Los fallos de carga se registran y se degrada al contexto por defecto.
    """

    if material is None:
        return not ignore_validation

    context = ssl.create_default_context()
    try:
        if material.kind == "trust":
            if material.ca_file is None:
                raise ValueError("CA material has no certificate file")
            context.load_verify_locations(cafile=str(material.ca_file))
        elif material.pfx_file is not None:
            _load_pkcs12(context, material.pfx_file, material.passphrase)
        else:
            context.load_cert_chain(
                str(material.cert_file),
                str(material.key_file) if material.key_file else None,
                password=material.passphrase,
            )
    except (OSError, ssl.SSLError, ValueError) as exc:
        logger.warning("Could not load TLS material (%s): %s", material.kind, exc)
        context = ssl.create_default_context()

    if ignore_validation:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


def default_client_factory(
    settings: ExecutionSettings,
    proxy: ProxyConfig | None,
    tls: TlsMaterial | None,
) -> httpx.AsyncClient:
    """Factory de clientes que usa `HttpExecutor` fuera de los tests."""

    return build_async_client(
        settings,
        proxy_url=proxy.to_url() if proxy else None,
        verify=build_ssl_context(tls, ignore_validation=settings.ignore_certificate_validation),
    )
