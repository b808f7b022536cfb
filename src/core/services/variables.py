"""Resolución de `{{placeholder}}` contra un mapa de entorno."""

from __future__ import annotations

import re
from typing import Mapping

_PLACEHOLDER = re.compile(r"\{\{([^}]+)\}\}")


def resolve_placeholders(value: str | None, env_vars: Mapping[str, str]) -> tuple[str, list[str]]:
    """Sustituye `{{ name }}` por su valor de entorno (sin distinguir mayúsculas).

    Los placeholders desconocidos se dejan tal cual y se devuelven en el segundo elemento.
    """

    if not value:
        return "", []

    lookup = {k.lower(): v for k, v in env_vars.items()}
    unresolved: list[str] = []

    def _sub(match: re.Match[str]) -> str:
        name = match.group(1).strip()
        resolved = lookup.get(name.lower())
        if resolved is None:
            unresolved.append(name)
            return match.group(0)
        return resolved

    return _PLACEHOLDER.sub(_sub, value), unresolved


def resolve_all(
    values: Mapping[str, str | None],
    env_vars: Mapping[str, str],
) -> tuple[dict[str, str], list[str]]:
    resolved: dict[str, str] = {}
    unresolved: list[str] = []
    for key, raw in values.items():
        text, missing = resolve_placeholders(raw, env_vars)
        resolved[key] = text
        unresolved.extend(missing)
    return resolved, unresolved
