"""apiexec CLI (Typer + Rich).

Commands:
- `send`: execute one request and print the response.
- `run`: execute a JSON file of requests as a batch.
- `cookies list|clear`: inspect the persisted cookie jar.
- `config set`: persist a setting in the per-user `.env`.
- `doctor`: diagnostics and store maintenance (see `cli.doctor`).
"""

from __future__ import annotations

import asyncio
import json
import logging
import signal
from pathlib import Path
from typing import Any, Optional

import typer
from pydantic import BaseModel, Field, ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from adapters.json_store import JsonCookieStore, JsonCredentialStore
from cli import doctor
from cli.ui_components import (
    build_cookies_table,
    build_response_panel,
    build_run_summary_table,
    print_banner,
)
from core.config import AppSettings, write_user_env_vars
from core.domain.errors import ApiExecError
from core.domain.execution import ExecutionConfig
from core.domain.models import HttpRequest
from core.services.auth import AuthStrategyFactory
from core.services.batch_executor import BatchCallbacks
from core.services.collection_runner import CancellationToken, CollectionRunner, RequestRunResult
from core.services.cookie_jar import CookieJar
from core.services.credential_resolver import CredentialResolver
from core.services.http_executor import HttpExecutor

app = typer.Typer(no_args_is_help=True, help="Execute HTTP requests with stored credentials.")
cookies_app = typer.Typer(no_args_is_help=True, help="Inspect the persisted cookie jar.")
config_app = typer.Typer(no_args_is_help=True, help="Persist settings in the user config .env.")
app.add_typer(doctor.app, name="doctor")
app.add_typer(cookies_app, name="cookies")
app.add_typer(config_app, name="config")

_console = Console()
logger = logging.getLogger("apiexec")


class RequestEntry(BaseModel):
    """One request in a `run` file."""

    name: str | None = None
    method: str = "GET"
    url: str = Field(..., min_length=1)
    headers: dict[str, str] = Field(default_factory=dict)
    params: Any = None
    body: Any = None
    auth: str | None = Field(default=None, description="Name of a stored auth entry.")


class RunFile(BaseModel):
    env: dict[str, str] = Field(default_factory=dict)
    requests: list[RequestEntry] = Field(default_factory=list)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False)],
        force=True,
    )


def _parse_pairs(values: list[str] | None, sep: str, what: str) -> list[tuple[str, str]]:
    pairs: list[tuple[str, str]] = []
    for raw in values or []:
        if sep not in raw:
            raise typer.BadParameter(f"expected KEY{sep}VALUE, got {raw!r}", param_hint=what)
        key, value = raw.split(sep, 1)
        pairs.append((key.strip(), value.strip() if sep == ":" else value))
    return pairs


def _build_executor(settings: AppSettings) -> tuple[JsonCredentialStore, HttpExecutor]:
    store_dir = settings.store_dir()
    store = JsonCredentialStore(store_dir)
    executor = HttpExecutor(
        resolver=CredentialResolver(store),
        cookie_jar=CookieJar(JsonCookieStore(store_dir / "cookies.json")),
        auth_factory=AuthStrategyFactory(oauth2_cache_tokens=settings.oauth2_cache_tokens),
    )
    return store, executor


def _read_body(data: str | None) -> str | None:
    if data and data.startswith("@"):
        return Path(data[1:]).read_text(encoding="utf-8")
    return data


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
) -> None:
    settings = AppSettings()
    _configure_logging("DEBUG" if verbose else settings.log_level)


@app.command()
def send(
    url: str = typer.Argument(..., help="Target URL."),
    method: str = typer.Option("GET", "--method", "-X"),
    header: Optional[list[str]] = typer.Option(None, "--header", "-H", help="'Name: value', repeatable."),
    data: Optional[str] = typer.Option(None, "--data", "-d", help="Request body, or @file."),
    query: Optional[list[str]] = typer.Option(None, "--query", "-q", help="k=v query parameter, repeatable."),
    auth: Optional[str] = typer.Option(None, "--auth", help="Name of a stored auth entry."),
    env: Optional[list[str]] = typer.Option(None, "--env", "-e", help="k=v placeholder value, repeatable."),
    json_output: bool = typer.Option(False, "--json", help="Print the raw result as JSON."),
) -> None:
    """Execute one request."""

    settings = AppSettings()
    store, executor = _build_executor(settings)
    try:
        request = HttpRequest(
            method=method,
            url=url,
            headers=dict(_parse_pairs(header, ":", "--header")),
            params=_parse_pairs(query, "=", "--query"),
            body=_read_body(data),
            auth=store.find_auth(auth) if auth else None,
            env_vars=dict(_parse_pairs(env, "=", "--env")),
        )
    except (ApiExecError, ValidationError, OSError) as exc:
        raise typer.BadParameter(str(exc)) from exc

    execution = asyncio.run(executor.execute(request, settings.execution_settings()))
    result = execution.response

    if json_output:
        _console.print_json(execution.model_dump_json())
    else:
        _console.print(build_response_panel(result))
        if execution.new_cookies:
            _console.print(f"[dim]{len(execution.new_cookies)} cookie(s) stored[/dim]")

    if result.status == 0:
        raise typer.Exit(code=1)


def _load_run_file(path: Path) -> RunFile:
    raw = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(raw, list):
        raw = {"requests": raw}
    return RunFile.model_validate(raw)


async def _run_batch(
    runner: CollectionRunner,
    requests: list[HttpRequest],
    config: ExecutionConfig,
) -> Any:
    token = CancellationToken()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, token.cancel)
    except (NotImplementedError, RuntimeError):
        logger.debug("SIGINT handler not available; Ctrl-C aborts immediately")

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        console=_console,
        transient=True,
    ) as progress:
        task = progress.add_task("Running", total=len(requests))

        def _on_complete(result: RequestRunResult) -> None:
            progress.advance(task)

        callbacks = BatchCallbacks(on_item_complete=_on_complete)
        try:
            return await runner.run(requests, config, token=token, callbacks=callbacks)
        finally:
            try:
                loop.remove_signal_handler(signal.SIGINT)
            except (NotImplementedError, RuntimeError):
                pass


@app.command("run")
def run_collection(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON list of requests."),
    concurrency: Optional[int] = typer.Option(None, "--concurrency", "-c", min=1),
    delay: Optional[int] = typer.Option(None, "--delay", min=0, help="Delay between batches (ms)."),
    stop_on_failure: Optional[bool] = typer.Option(None, "--stop-on-failure/--keep-going"),
    quiet: bool = typer.Option(False, "--quiet", help="Hide the banner."),
) -> None:
    """Run a file of requests as a batch."""

    settings = AppSettings()
    store, executor = _build_executor(settings)
    try:
        run_file = _load_run_file(file)
        labels: dict[str, str] = {}
        requests: list[HttpRequest] = []
        for entry in run_file.requests:
            request = HttpRequest(
                method=entry.method,
                url=entry.url,
                headers=entry.headers,
                params=entry.params,
                body=entry.body,
                auth=store.find_auth(entry.auth) if entry.auth else None,
                env_vars=run_file.env,
            )
            labels[request.id] = entry.name or f"{request.method} {request.url}"
            requests.append(request)
    except (ApiExecError, ValidationError, ValueError, OSError) as exc:
        raise typer.BadParameter(str(exc), param_hint="FILE") from exc

    defaults = settings.execution_config()
    config = ExecutionConfig(
        concurrent_calls=concurrency or defaults.concurrent_calls,
        delay_between_calls=defaults.delay_between_calls if delay is None else delay,
        stop_on_failure=defaults.stop_on_failure if stop_on_failure is None else stop_on_failure,
    )

    if not quiet:
        print_banner(_console)

    runner = CollectionRunner(executor, settings.execution_settings())
    report = asyncio.run(_run_batch(runner, requests, config))
    _console.print(build_run_summary_table(report, labels))

    if report.progress.failed or report.cancelled:
        raise typer.Exit(code=1)


@cookies_app.command("list")
def cookies_list() -> None:
    """Show stored cookies."""

    cookies = JsonCookieStore(AppSettings().store_dir() / "cookies.json").load()
    if not cookies:
        _console.print("[dim]Cookie jar is empty.[/dim]")
        return
    _console.print(build_cookies_table(cookies))


@cookies_app.command("clear")
def cookies_clear() -> None:
    """Remove every stored cookie."""

    jar = CookieJar(JsonCookieStore(AppSettings().store_dir() / "cookies.json"))
    asyncio.run(jar.clear())
    _console.print("[green]Cookie jar cleared.[/green]")


@config_app.command("set")
def config_set(
    key: str = typer.Argument(..., help="Setting name, e.g. request_timeout_seconds."),
    value: str = typer.Argument(...),
) -> None:
    """Persist one setting (validated) in the user config .env."""

    field_name = key.strip().lower().replace("-", "_")
    if field_name not in AppSettings.model_fields:
        known = ", ".join(sorted(AppSettings.model_fields))
        raise typer.BadParameter(f"unknown setting {key!r} (known: {known})", param_hint="KEY")
    try:
        AppSettings(**{field_name: value})
    except ValidationError as exc:
        raise typer.BadParameter(str(exc), param_hint="VALUE") from exc

    env_path = write_user_env_vars({f"APIEXEC_{field_name.upper()}": value})
    _console.print(f"[green]Saved {field_name} to:[/green] {env_path}")


def run() -> None:
    app()
