"""Persistencia JSON de credenciales y cookies.

Estructura bajo el directorio del store (`AppSettings.store_dir()`):
- auths.json, proxies.json, certs.json: un array JSON por tipo de credencial.
- cookies.json: el cookie jar.

Por qué JSON UTF-8 con formato estable: los archivos se pueden versionar y comparar.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import TypeAdapter

from core.domain.credentials import Auth, Cert, Proxy
from core.domain.models import Cookie
from core.services.credential_store import CredentialStore

logger = logging.getLogger(__name__)

_AUTHS = TypeAdapter(list[Auth])
_PROXIES = TypeAdapter(list[Proxy])
_CERTS = TypeAdapter(list[Cert])
_COOKIES = TypeAdapter(list[Cookie])


def _read_json(path: Path) -> Any:
    if not path.exists():
        return []
    raw = path.read_text(encoding="utf-8")
    if not raw.strip():
        return []
    return json.loads(raw)


def _write_json(path: Path, payload: Any) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(payload, ensure_ascii=False, indent=2) + "\n",
        encoding="utf-8",
    )
    return path


class JsonCredentialStore(CredentialStore):
    """`CredentialStore` que reescribe el archivo del tipo tras cada mutación."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory
        self._loading = True
        super().__init__(
            auths=_AUTHS.validate_python(_read_json(directory / "auths.json")),
            proxies=_PROXIES.validate_python(_read_json(directory / "proxies.json")),
            certs=_CERTS.validate_python(_read_json(directory / "certs.json")),
        )
        self._loading = False

    def _persist(self, kind: str) -> None:
        if self._loading:
            return
        collection = {"auths": self.auths, "proxies": self.proxies, "certs": self.certs}[kind]
        payload = [item.model_dump(mode="json") for item in collection.list()]
        path = _write_json(self.directory / f"{kind}.json", payload)
        logger.debug("Saved %d %s to %s", len(payload), kind, path)


class JsonCookieStore:
    """`CookieStore` respaldado por cookies.json."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> list[Cookie]:
        return _COOKIES.validate_python(_read_json(self.path))

    def save(self, cookies: list[Cookie]) -> None:
        _write_json(self.path, [cookie.model_dump(mode="json") for cookie in cookies])
