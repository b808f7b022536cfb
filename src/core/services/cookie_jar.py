"""Cookie jar: parseo de `Set-Cookie`, merge en el store persistido y
cálculo del header `Cookie`.

Las cookies nunca se expiran proactivamente; la expiración solo se evalúa
al construir el header de un request.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from email.utils import parsedate_to_datetime
from typing import Iterable
from urllib.parse import urlsplit

from pydantic import ValidationError

from core.domain.models import Cookie
from core.interfaces.store import CookieStore

logger = logging.getLogger(__name__)

_SAME_SITE = {"strict": "Strict", "lax": "Lax", "none": "None"}


def _parse_expires(raw: str) -> datetime | None:
    try:
        parsed = parsedate_to_datetime(raw.strip())
    except (TypeError, ValueError, IndexError):
        return None
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _expires_from_max_age(max_age: int, now: datetime) -> datetime:
    # Fuera de rango: se recorta al límite representable.
    try:
        return now + timedelta(seconds=max_age)
    except OverflowError:
        limit = datetime.max if max_age > 0 else datetime.min
        return limit.replace(tzinfo=timezone.utc)


def parse_set_cookie(header: str, default_domain: str, *, now: datetime | None = None) -> Cookie | None:
    """Parsea un valor de `Set-Cookie`. Devuelve None si no tiene `name=value` o no es válido."""

    parts = [p.strip() for p in header.split(";")]
    if not parts or "=" not in parts[0]:
        return None

    name, value = parts[0].split("=", 1)
    name = name.strip()
    if not name:
        return None

    fields: dict[str, object] = {
        "name": name,
        "value": value.strip(),
        "domain": default_domain.lower(),
        "path": "/",
    }
    expires: datetime | None = None
    max_age: int | None = None

    for attr in parts[1:]:
        key, _, attr_value = attr.partition("=")
        key = key.strip().lower()
        attr_value = attr_value.strip()
        if key == "domain" and attr_value.lstrip("."):
            fields["domain"] = attr_value.lstrip(".").lower()
        elif key == "path" and attr_value:
            fields["path"] = attr_value
        elif key == "expires":
            expires = _parse_expires(attr_value)
        elif key == "max-age":
            try:
                max_age = int(attr_value)
            except ValueError:
                continue
        elif key == "secure":
            fields["secure"] = True
        elif key == "httponly":
            fields["http_only"] = True
        elif key == "samesite":
            same_site = _SAME_SITE.get(attr_value.lower())
            if same_site:
                fields["same_site"] = same_site

    # Max-Age gana sobre Expires.
    if max_age is not None:
        expires = _expires_from_max_age(max_age, now or datetime.now(timezone.utc))
    fields["expires"] = expires

    try:
        return Cookie.model_validate(fields)
    except ValidationError as exc:
        logger.debug("Ignoring invalid Set-Cookie %r: %s", header, exc)
        return None


def parse_set_cookie_headers(headers: Iterable[str], request_url: str) -> list[Cookie]:
    hostname = urlsplit(request_url).hostname or ""
    if not hostname:
        return []
    cookies: list[Cookie] = []
    for header in headers:
        cookie = parse_set_cookie(header, hostname)
        if cookie is not None:
            cookies.append(cookie)
    return cookies


def merge_cookies(existing: list[Cookie], new_cookies: Iterable[Cookie]) -> list[Cookie]:
    """Upsert por (domain, path, name); las cookies reemplazadas conservan su id."""

    result = list(existing)
    index = {cookie.key: i for i, cookie in enumerate(result)}
    for cookie in new_cookies:
        position = index.get(cookie.key)
        if position is None:
            index[cookie.key] = len(result)
            result.append(cookie)
        else:
            result[position] = cookie.model_copy(update={"id": result[position].id})
    return result


def _domain_matches(hostname: str, domain: str) -> bool:
    domain = domain.lstrip(".").lower()
    return hostname == domain or hostname.endswith(f".{domain}")


def _path_matches(request_path: str, cookie_path: str) -> bool:
    if not cookie_path or cookie_path == "/":
        return True
    return request_path.startswith(cookie_path)


def cookie_header_for_url(cookies: Iterable[Cookie], url: str, *, now: datetime | None = None) -> str:
    """Construye el valor del header `Cookie` para `url` ('' si no aplica ninguna)."""

    try:
        parts = urlsplit(url)
        hostname = (parts.hostname or "").lower()
    except ValueError:
        logger.warning("Cannot compute cookies for malformed URL %r", url)
        return ""
    if not hostname:
        return ""

    now = now or datetime.now(timezone.utc)
    path = parts.path or "/"
    is_https = parts.scheme.lower() == "https"

    selected = [
        cookie
        for cookie in cookies
        if cookie.enabled
        and not cookie.is_expired(now)
        and _domain_matches(hostname, cookie.domain)
        and _path_matches(path, cookie.path)
        and (is_https or not cookie.secure)
    ]
    return "; ".join(f"{c.name}={c.value}" for c in selected)


class InMemoryCookieStore:
    """`CookieStore` en memoria del proceso."""

    def __init__(self, cookies: Iterable[Cookie] | None = None) -> None:
        self._cookies = list(cookies or [])

    def load(self) -> list[Cookie]:
        return list(self._cookies)

    def save(self, cookies: list[Cookie]) -> None:
        self._cookies = list(cookies)


class CookieJar:
    """Cookie jar sobre un `CookieStore`.

    Cada ciclo lectura-merge-escritura corre bajo un `asyncio.Lock`, así las
    ejecuciones concurrentes de un batch no se pisan las cookies.
    """

    def __init__(self, store: CookieStore | None = None) -> None:
        self._store = store or InMemoryCookieStore()
        self._lock = asyncio.Lock()

    @property
    def store(self) -> CookieStore:
        return self._store

    async def snapshot(self) -> list[Cookie]:
        async with self._lock:
            return self._store.load()

    async def header_for(self, url: str) -> str:
        async with self._lock:
            cookies = self._store.load()
        return cookie_header_for_url(cookies, url)

    async def save(self, cookies: Iterable[Cookie]) -> None:
        """Upsert directo de cookies (UI / importación)."""

        async with self._lock:
            merged = merge_cookies(self._store.load(), cookies)
            self._store.save(merged)

    async def absorb(self, set_cookie_headers: Iterable[str], request_url: str) -> list[Cookie]:
        """Parsea los `Set-Cookie` de la respuesta, los fusiona y persiste el jar."""

        new_cookies = parse_set_cookie_headers(set_cookie_headers, request_url)
        if not new_cookies:
            return []
        async with self._lock:
            merged = merge_cookies(self._store.load(), new_cookies)
            self._store.save(merged)
        logger.debug("Stored %d cookie(s) from %s", len(new_cookies), request_url)
        return new_cookies

    async def clear(self) -> None:
        async with self._lock:
            self._store.save([])
