"""Entry point del módulo.

- Ejecuta la CLI con `python -m main` desde `src/`.
- Mismo comando que el script `apiexec`.
"""

from __future__ import annotations

import sys

# Workaround para consolas Windows (cp1252); los bodies suelen venir en UTF-8.
if sys.platform == "win32":
    sys.stdout.reconfigure(encoding="utf-8")
    sys.stderr.reconfigure(encoding="utf-8")

from cli.main import run


def main() -> None:
    run()


if __name__ == "__main__":
    main()
