"""Excepciones del dominio."""

from __future__ import annotations


class ApiExecError(Exception):
    """Base de los errores del motor de requests."""


class DuplicateNameError(ApiExecError):
    """Ya existe una credencial con el mismo nombre para ese tipo."""

    def __init__(self, kind: str, name: str) -> None:
        super().__init__(f"A {kind} named {name!r} already exists")
        self.kind = kind
        self.name = name


class CredentialNotFoundError(ApiExecError):
    def __init__(self, kind: str, key: str) -> None:
        super().__init__(f"No {kind} found for {key!r}")
        self.kind = kind
        self.key = key


class AuthError(ApiExecError):
    """Una estrategia de auth rechazó autorizar el request."""
