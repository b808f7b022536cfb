"""Script de ejecución (desarrollo).

Por qué existe:
- Permite ejecutar la CLI sin instalar el paquete: `python main.py send https://example.com`.
- El código vive en `src/`; sin instalación editable Python no encuentra
  `cli`, `core`, etc. Este script añade `src/` al path.
"""

from __future__ import annotations

import sys
from pathlib import Path


def main() -> None:
    project_root = Path(__file__).resolve().parent
    src = project_root / "src"
    if str(src) not in sys.path:
        sys.path.insert(0, str(src))

    from cli.main import run  # noqa: PLC0415

    run()


if __name__ == "__main__":
    main()
