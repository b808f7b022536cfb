"""Store de credenciales en memoria.

Aplica los invariantes de mutación (nombre único por tipo, sensible a
mayúsculas) y expone los accesores de `core.interfaces.store.CredentialSource`.
La persistencia se añade encima en `adapters.json_store`.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Generic, Iterable, Sequence, TypeVar

from core.domain.credentials import CredentialBase, Proxy
from core.domain.errors import CredentialNotFoundError, DuplicateNameError
from core.interfaces.store import AuthRecord, CertRecord

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=CredentialBase)


class CredentialCollection(Generic[T]):
    """Registros ordenados de un tipo. El orden almacenado es el orden de resolución."""

    def __init__(
        self,
        kind: str,
        items: Iterable[T] | None = None,
        *,
        on_change: Callable[[], None] | None = None,
    ) -> None:
        self.kind = kind
        self._items: list[T] = []
        self._on_change = on_change
        for item in items or []:
            self._check_unique(item)
            self._items.append(item)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(list(self._items))

    def list(self) -> list[T]:
        return list(self._items)

    def get(self, item_id: str) -> T:
        for item in self._items:
            if item.id == item_id:
                return item
        raise CredentialNotFoundError(self.kind, item_id)

    def find_by_name(self, name: str) -> T | None:
        for item in self._items:
            if item.name == name:
                return item
        return None

    def add(self, item: T) -> T:
        self._check_unique(item)
        self._items.append(item)
        self._changed()
        return item

    def update(self, item: T) -> T:
        for index, current in enumerate(self._items):
            if current.id == item.id:
                self._check_unique(item, ignore_id=item.id)
                self._items[index] = item
                self._changed()
                return item
        raise CredentialNotFoundError(self.kind, item.id)

    def remove(self, item_id: str) -> T:
        for index, current in enumerate(self._items):
            if current.id == item_id:
                del self._items[index]
                self._changed()
                return current
        raise CredentialNotFoundError(self.kind, item_id)

    def replace_all(self, items: Iterable[T]) -> None:
        fresh = CredentialCollection(self.kind, items)
        self._items = fresh.list()
        self._changed()

    def _check_unique(self, item: T, *, ignore_id: str | None = None) -> None:
        for current in self._items:
            if current.id == ignore_id:
                continue
            if current.name == item.name:
                raise DuplicateNameError(self.kind, item.name)
            if current.id == item.id:
                raise ValueError(f"duplicate {self.kind} id {item.id!r}")

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change()


class CredentialStore:
    """Auths, proxies y certificados en memoria."""

    def __init__(
        self,
        *,
        auths: Iterable[AuthRecord] | None = None,
        proxies: Iterable[Proxy] | None = None,
        certs: Iterable[CertRecord] | None = None,
    ) -> None:
        self.auths: CredentialCollection[AuthRecord] = CredentialCollection(
            "auth", auths, on_change=lambda: self._persist("auths")
        )
        self.proxies: CredentialCollection[Proxy] = CredentialCollection(
            "proxy", proxies, on_change=lambda: self._persist("proxies")
        )
        self.certs: CredentialCollection[CertRecord] = CredentialCollection(
            "cert", certs, on_change=lambda: self._persist("certs")
        )

    # CredentialSource

    def list_auths(self) -> Sequence[AuthRecord]:
        return self.auths.list()

    def list_proxies(self) -> Sequence[Proxy]:
        return self.proxies.list()

    def list_certs(self) -> Sequence[CertRecord]:
        return self.certs.list()

    def find_auth(self, name: str) -> AuthRecord:
        auth = self.auths.find_by_name(name)
        if auth is None:
            raise CredentialNotFoundError("auth", name)
        return auth

    def purge_expired_certs(self, now: datetime | None = None) -> list[CertRecord]:
        """Mantenimiento: elimina los certificados con la fecha de expiración vencida."""

        expired = [cert for cert in self.certs.list() if cert.is_expired(now)]
        if expired:
            self.certs.replace_all(c for c in self.certs.list() if not c.is_expired(now))
            logger.info("Purged %d expired certificate(s)", len(expired))
        return expired

    def _persist(self, kind: str) -> None:
        """Hook para subclases persistentes; en memoria no hay nada que hacer."""
