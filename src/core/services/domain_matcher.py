"""Matching de patrones de host con comodín, común a todos los resolvers.

Los patrones son tipo glob: `*` casa con cualquier secuencia (puntos incluidos)
y el resto es literal. El match es anclado, sin distinguir mayúsculas y solo
contra el hostname de la URL (sin esquema, puerto ni path).
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Iterable
from urllib.parse import urlsplit


@lru_cache(maxsize=1024)
def compile_pattern(pattern: str) -> re.Pattern[str]:
    escaped = re.escape(pattern.strip()).replace(r"\*", ".*")
    return re.compile(f"^{escaped}$", re.IGNORECASE)


def extract_hostname(url: str) -> str | None:
    """Hostname de `url` en minúsculas. Acepta hosts sueltos ('api.x.com')."""

    candidate = url.strip()
    if not candidate:
        return None
    if "://" not in candidate and not candidate.startswith("//"):
        candidate = f"//{candidate}"
    try:
        hostname = urlsplit(candidate).hostname
    except ValueError:
        return None
    return hostname or None


def host_matches(hostname: str, patterns: Iterable[str]) -> bool:
    return any(compile_pattern(p).match(hostname) for p in patterns if p.strip())


def matches(url: str, patterns: Iterable[str]) -> bool:
    """True si `patterns` está vacío o el hostname de la URL casa con alguno.

    Una URL sin hostname utilizable no casa con nada (salvo la lista vacía).
    """

    patterns = list(patterns)
    if not patterns:
        return True
    hostname = extract_hostname(url)
    if hostname is None:
        return False
    return host_matches(hostname, patterns)
