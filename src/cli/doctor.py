"""Doctor command for environment diagnostics."""

from __future__ import annotations

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from adapters.http_client import build_async_client
from adapters.json_store import JsonCookieStore, JsonCredentialStore
from core.config import AppSettings

app = typer.Typer(help="Environment diagnostics and store maintenance.")

_console = Console()


async def _check_http(url: str, settings: AppSettings) -> tuple[bool, str]:
    try:
        async with build_async_client(settings.execution_settings()) as client:
            response = await client.get(url)
        return True, f"HTTP {response.status_code}"
    except Exception as exc:
        return False, str(exc) or type(exc).__name__


_PROBE_URL = typer.Option("https://example.com", "--probe-url", help="URL used for the connectivity check.")


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context, probe_url: str = _PROBE_URL) -> None:
    """Run the diagnostics when no subcommand is given."""

    if ctx.invoked_subcommand is None:
        run(probe_url)


@app.command()
def run(probe_url: str = _PROBE_URL) -> None:
    """Run baseline diagnostics and show recommended fixes."""

    settings = AppSettings()
    store_dir = settings.store_dir()

    table = Table(title="apiexec Doctor")
    table.add_column("Check", style="bright_green", no_wrap=True)
    table.add_column("Status", style="white")
    table.add_column("Details", style="dim")

    # Config
    table.add_row("Store", "OK" if store_dir.exists() else "NEW", str(store_dir))
    table.add_row(
        "Timeout",
        "OK",
        f"{settings.request_timeout_seconds:g} s" if settings.request_timeout_seconds else "unlimited",
    )
    table.add_row(
        "TLS validation",
        "WARN" if settings.ignore_certificate_validation else "OK",
        "disabled" if settings.ignore_certificate_validation else "enabled",
    )

    # Store contents
    expired = []
    try:
        store = JsonCredentialStore(store_dir)
        cookies = JsonCookieStore(store_dir / "cookies.json").load()
    except Exception as exc:
        table.add_row("Credentials", "FAIL", str(exc))
    else:
        table.add_row(
            "Credentials",
            "OK",
            f"{len(store.auths)} auth, {len(store.proxies)} proxy, {len(store.certs)} cert",
        )
        expired = [cert for cert in store.certs if cert.is_expired()]
        table.add_row(
            "Expired certificates",
            "WARN" if expired else "OK",
            ", ".join(cert.name for cert in expired) or "none",
        )
        table.add_row("Cookies", "OK", f"{len(cookies)} stored")

    # Connectivity (best-effort)
    ok_http, detail_http = asyncio.run(_check_http(probe_url, settings))
    table.add_row("HTTP connectivity", "OK" if ok_http else "FAIL", detail_http)

    _console.print(table)

    if expired:
        _console.print(
            "\n[yellow]Note:[/yellow] expired certificates are never used; "
            "remove them with `apiexec doctor purge-expired`."
        )


@app.command(name="purge-expired")
def purge_expired() -> None:
    """Delete certificates whose expiry date has passed."""

    store = JsonCredentialStore(AppSettings().store_dir())
    purged = store.purge_expired_certs()
    if not purged:
        _console.print("[green]No expired certificates.[/green]")
        return
    for cert in purged:
        _console.print(f"[yellow]Removed[/yellow] {cert.name}")
