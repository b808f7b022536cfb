"""Selección por URL de proxy y material TLS.

Gana la primera coincidencia en el orden almacenado; no hay ranking por
especificidad del patrón. Nunca lanza: URLs destino o de proxy mal formadas
se degradan a "sin credencial" y se registran en el log.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from urllib.parse import unquote, urlsplit

from core.domain.credentials import CaCert, Proxy, ProxyConfig, TlsMaterial
from core.interfaces.store import CertRecord, CredentialSource
from core.services.domain_matcher import matches

logger = logging.getLogger(__name__)

_DEFAULT_PORTS = {"http": 80, "https": 443, "socks4": 1080, "socks5": 1080}


def parse_proxy_url(proxy: Proxy) -> ProxyConfig:
    """Convierte un proxy almacenado en `ProxyConfig`. Lanza ValueError si está mal formado."""

    parts = urlsplit(proxy.url.strip())
    scheme = (parts.scheme or "").lower()
    if scheme == "socks5h":
        scheme = "socks5"
    if scheme not in _DEFAULT_PORTS:
        raise ValueError(f"unsupported proxy scheme {parts.scheme!r}")
    if not parts.hostname:
        raise ValueError("proxy URL has no host")

    username = proxy.username or (unquote(parts.username) if parts.username else None)
    password = proxy.password or (unquote(parts.password) if parts.password else None)
    return ProxyConfig(
        protocol=scheme,
        host=parts.hostname,
        port=parts.port or _DEFAULT_PORTS[scheme],
        username=username if username and password else None,
        password=password if username and password else None,
    )


def tls_material_for(cert: CertRecord) -> TlsMaterial:
    if isinstance(cert, CaCert):
        return TlsMaterial(kind="trust", ca_file=cert.cert_file, passphrase=cert.passphrase)
    return TlsMaterial(
        kind="identity",
        cert_file=cert.cert_file,
        key_file=cert.key_file,
        pfx_file=cert.pfx_file,
        passphrase=cert.passphrase,
    )


class CredentialResolver:
    """Resuelve el proxy y el certificado que aplican a una URL destino."""

    def __init__(self, source: CredentialSource) -> None:
        self._source = source

    def resolve_proxy(self, url: str) -> ProxyConfig | None:
        try:
            for proxy in self._source.list_proxies():
                if not proxy.enabled:
                    continue
                if proxy.exclude_domains and matches(url, proxy.exclude_domains):
                    continue
                if not proxy.domain_filters or matches(url, proxy.domain_filters):
                    return parse_proxy_url(proxy)
        except Exception as exc:
            logger.warning("Proxy resolution failed for %s: %s", url, exc)
        return None

    def resolve_cert(self, url: str, *, now: datetime | None = None) -> TlsMaterial | None:
        now = now or datetime.now(timezone.utc)
        try:
            if urlsplit(url).scheme.lower() != "https":
                return None
            for cert in self._source.list_certs():
                if not cert.enabled or cert.is_expired(now):
                    continue
                if not cert.domain_filters or matches(url, cert.domain_filters):
                    return tls_material_for(cert)
        except Exception as exc:
            logger.warning("Certificate resolution failed for %s: %s", url, exc)
        return None
