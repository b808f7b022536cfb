"""Componentes de UI para CLI (Rich).

Por qué separar componentes:
- Mantiene la lógica de comandos separada de los detalles visuales.
- Permite reutilizar tablas/paneles entre comandos.
"""

from __future__ import annotations

import json
from typing import Iterable, Mapping

from rich.align import Align
from rich.console import Console, Group, RenderableType
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from core.domain.models import Cookie, HttpResponseResult
from core.services.collection_runner import CollectionRunReport

_STATUS_STYLE = {
    "success": "green",
    "failed": "red",
    "skipped": "yellow",
    "cancelled": "magenta",
}


def print_banner(console: Console) -> None:
    """Imprime el banner de bienvenida.

    Por qué aquí:
    - Evita imports circulares (main <-> doctor).
    - Se puede omitir en modos no interactivos (JSON/pipelines).
    """

    title = Text("apiexec", style="bold cyan")
    subtitle = Text("Requests • Credentials • Batch runs", style="dim")
    body = Align.center(Text.assemble(title, "\n", subtitle), vertical="middle")
    console.print(Panel(body, border_style="cyan", padding=(1, 4)))


def status_style(status: int) -> str:
    if status == 0 or status >= 500:
        return "bold red"
    if status >= 400:
        return "bold yellow"
    if status >= 300:
        return "bold cyan"
    return "bold green"


def _content_type(headers: Mapping[str, str]) -> str:
    for key, value in headers.items():
        if key.lower() == "content-type":
            return value.lower()
    return ""


def render_body(result: HttpResponseResult) -> RenderableType:
    """Body decodificado; el JSON se formatea y resalta."""

    text = result.body_text()
    if not text:
        return Text("(empty body)", style="dim")
    if "json" in _content_type(result.headers):
        try:
            pretty = json.dumps(json.loads(text), indent=2, ensure_ascii=False)
        except ValueError:
            return Text(text)
        return Syntax(pretty, "json", word_wrap=True)
    return Text(text)


def build_headers_table(headers: Mapping[str, str]) -> Table:
    table = Table(title="Headers", show_edge=False)
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Value", style="white")
    for key, value in sorted(headers.items()):
        table.add_row(key, value)
    return table


def build_response_panel(result: HttpResponseResult, *, show_headers: bool = True) -> Panel:
    """Panel para un `HttpResponseResult` (línea de estado, headers, body)."""

    status = Text.assemble(
        (f"{result.status} {result.status_text}".strip(), status_style(result.status)),
        ("  •  ", "dim"),
        f"{result.elapsed_time_ms} ms",
        ("  •  ", "dim"),
        f"{result.size_bytes} B",
    )
    parts: list[RenderableType] = [status]
    if show_headers and result.headers:
        parts.append(build_headers_table(result.headers))
    parts.append(render_body(result))
    return Panel(Group(*parts), title="Response", border_style=status_style(result.status).split()[-1])


def build_run_summary_table(report: CollectionRunReport, labels: Mapping[str, str]) -> Table:
    """Resultado por request de `apiexec run`."""

    progress = report.progress
    caption = (
        f"{progress.passed} passed, {progress.failed} failed, {progress.skipped} skipped"
        f" of {progress.total} • avg {report.average_elapsed_ms} ms"
    )
    if report.cancelled:
        caption += " • cancelled"
    if report.stopped_on_failure:
        caption += " • stopped on failure"

    table = Table(title="Run summary", caption=caption)
    table.add_column("Request", style="cyan")
    table.add_column("Result", no_wrap=True)
    table.add_column("HTTP", justify="right")
    table.add_column("Time", justify="right", style="dim")
    table.add_column("Error", style="red")
    for result in report.results:
        response = result.response
        table.add_row(
            labels.get(result.id, f"{result.method} {result.url}"),
            Text(result.status, style=_STATUS_STYLE.get(result.status, "white")),
            str(response.status) if response else "-",
            f"{response.elapsed_time_ms} ms" if response else "-",
            result.error or "",
        )
    return table


def build_cookies_table(cookies: Iterable[Cookie]) -> Table:
    table = Table(title="Cookie jar")
    table.add_column("Domain", style="cyan", no_wrap=True)
    table.add_column("Path", style="white")
    table.add_column("Name", style="bright_green")
    table.add_column("Value", style="white", overflow="fold")
    table.add_column("Expires", style="dim")
    table.add_column("Flags", style="magenta")
    for cookie in cookies:
        flags = [
            flag
            for flag, enabled in (
                ("Secure", cookie.secure),
                ("HttpOnly", cookie.http_only),
                ("disabled", not cookie.enabled),
            )
            if enabled
        ]
        if cookie.same_site:
            flags.append(f"SameSite={cookie.same_site}")
        table.add_row(
            cookie.domain,
            cookie.path,
            cookie.name,
            cookie.value,
            cookie.expires.isoformat() if cookie.expires else "session",
            " ".join(flags),
        )
    return table
