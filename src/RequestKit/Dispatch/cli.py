"""Typer-based CLI for RequestKit dispatch with Pydantic v2 configuration."""

import json
from pathlib import Path
from typing import Dict, List, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from RequestKit import __version__
from RequestKit.Dispatch.api import (
    Dispatcher,
    DownloadOptions,
    MultipartOptions,
    RequestOptions,
    UploadOptions,
)
from RequestKit.Dispatch.config import RequestKitConfig, export_config_schema, load_config
from RequestKit.Dispatch.download import fixed_destination, suggested_download_destination
from RequestKit.Dispatch.encoding import ParameterEncoding
from RequestKit.Dispatch.errors import RequestKitError
from RequestKit.Dispatch.locators import AddressString
from RequestKit.Dispatch.logging_config import setup_logging
from RequestKit.Dispatch.models import HTTPMethod
from RequestKit.Dispatch.multipart import MultipartFormData
from RequestKit.Dispatch.net import HttpxSessionManager

console = Console()
app = typer.Typer(help="RequestKit HTTP dispatch")
config_app = typer.Typer(help="Inspect configuration")
app.add_typer(config_app, name="config")

# ============================================================================
# Setup
# ============================================================================


def _load(config: Optional[str], verbose: bool) -> RequestKitConfig:
    overrides = {"logging": {"level": "DEBUG"}} if verbose else None
    cfg = load_config(path=config, overrides=overrides)
    setup_logging(cfg.logging)
    return cfg


def _open_session(cfg: RequestKitConfig) -> HttpxSessionManager:
    """Session manager used by every command."""
    return HttpxSessionManager(cfg)


def _pairs(values: Optional[List[str]], separator: str, what: str) -> Dict[str, str]:
    pairs: Dict[str, str] = {}
    for item in values or []:
        if separator not in item:
            raise typer.BadParameter(f"{what} must look like NAME{separator}VALUE: {item!r}")
        name, value = item.split(separator, 1)
        pairs[name.strip()] = value.strip()
    return pairs


def _method(name: str) -> HTTPMethod:
    try:
        return HTTPMethod(name.upper())
    except ValueError:
        choices = ", ".join(m.value for m in HTTPMethod)
        raise typer.BadParameter(f"Unknown method {name!r}; choose from {choices}") from None


def _encoding(name: Optional[str]) -> Optional[ParameterEncoding]:
    if name is None:
        return None
    factories = {
        "query": ParameterEncoding.query,
        "form": ParameterEncoding.url_encoded_body,
        "json": ParameterEncoding.json,
        "plist": ParameterEncoding.property_list,
    }
    try:
        return factories[name]()
    except KeyError:
        choices = ", ".join(factories)
        raise typer.BadParameter(f"Unknown encoding {name!r}; choose from {choices}") from None


ConfigOption = typer.Option(
    None, "--config", "-c", help="Path to config file", envvar="REQUESTKIT_CONFIG"
)
HeaderOption = typer.Option(None, "--header", "-H", help="Header as 'Name: value'")
VerboseOption = typer.Option(False, "-v", "--verbose", help="Verbose")


# ============================================================================
# Commands
# ============================================================================


@app.command()
def request(
    method: str = typer.Argument(..., help="HTTP method"),
    url: str = typer.Argument(..., help="Absolute URL"),
    param: Optional[List[str]] = typer.Option(None, "--param", "-p", help="Parameter as key=value"),
    encoding: Optional[str] = typer.Option(
        None, "--encoding", "-e", help="query, form, json or plist (default: by method)"
    ),
    header: Optional[List[str]] = HeaderOption,
    config: Optional[str] = ConfigOption,
    verbose: bool = VerboseOption,
) -> None:
    """Send a request and print the response."""
    verb = _method(method)
    try:
        cfg = _load(config, verbose)
        options = RequestOptions(
            parameters=_pairs(param, "=", "Parameter") if param else None,
            encoding=_encoding(encoding),
            headers=_pairs(header, ":", "Header"),
        )
        with _open_session(cfg) as session, Dispatcher(session, config=cfg) as dispatcher:
            response = dispatcher.request(verb, AddressString(url), options).result()
    except RequestKitError as e:
        console.print(f"[red]✗ Error: {e}[/red]")
        raise typer.Exit(code=1)

    style = "green" if response.status_code < 400 else "red"
    console.print(f"[{style}]{response.status_code} {response.reason_phrase}[/{style}]")
    if verbose:
        for name, value in response.headers.items():
            console.print(f"[cyan]{name}[/cyan]: {value}")
    typer.echo(response.text)
    if response.status_code >= 400:
        raise typer.Exit(code=1)


@app.command()
def download(
    url: str = typer.Argument(..., help="Absolute URL"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Destination file"),
    directory: Path = typer.Option(
        Path("."), "--directory", "-d", help="Directory for the suggested file name"
    ),
    header: Optional[List[str]] = HeaderOption,
    config: Optional[str] = ConfigOption,
    verbose: bool = VerboseOption,
) -> None:
    """Download a resource to a file."""
    destination = fixed_destination(output) if output else suggested_download_destination(directory)
    try:
        cfg = _load(config, verbose)
        options = DownloadOptions(headers=_pairs(header, ":", "Header"))
        with _open_session(cfg) as session, Dispatcher(session, config=cfg) as dispatcher:
            result = dispatcher.download("GET", AddressString(url), destination, options).result()
    except RequestKitError as e:
        console.print(f"[red]✗ Download failed: {e}[/red]")
        raise typer.Exit(code=1)

    console.print(
        Panel(
            f"[bold green]✓ Saved[/bold green] {result.destination}\n"
            f"Status: {result.metadata.status_code}\n"
            f"Content-Type: {result.metadata.content_type or '-'}",
            title="Download",
        )
    )


@app.command()
def upload(
    url: str = typer.Argument(..., help="Absolute URL"),
    file: List[Path] = typer.Argument(..., help="File(s) to upload"),
    method: str = typer.Option("POST", "--method", "-X", help="HTTP method"),
    multipart: bool = typer.Option(
        False, "--multipart", "-m", help="Send as multipart/form-data"
    ),
    field: Optional[List[str]] = typer.Option(
        None, "--field", "-F", help="Extra multipart field as name=value"
    ),
    part_name: str = typer.Option("file", "--name", help="Multipart part name for files"),
    header: Optional[List[str]] = HeaderOption,
    config: Optional[str] = ConfigOption,
    verbose: bool = VerboseOption,
) -> None:
    """Upload a file as the raw body, or one or more files as multipart/form-data."""
    if not multipart and (len(file) > 1 or field):
        raise typer.BadParameter("Multiple files and --field require --multipart")
    verb = _method(method)
    fields = _pairs(field, "=", "Field")
    headers = _pairs(header, ":", "Header")

    def configure(form: MultipartFormData) -> None:
        for name, value in fields.items():
            form.append_data(value.encode("utf-8"), name)
        for path in file:
            form.append_file(path, part_name)

    try:
        cfg = _load(config, verbose)
        with _open_session(cfg) as session, Dispatcher(session, config=cfg) as dispatcher:
            if multipart:
                outcome = dispatcher.upload_multipart(
                    verb,
                    AddressString(url),
                    configure,
                    options=MultipartOptions(headers=headers),
                ).result()
                if not outcome.ok:
                    raise outcome.reason
                try:
                    response = outcome.operation.result()
                finally:
                    if outcome.temporary_file is not None:
                        outcome.temporary_file.unlink(missing_ok=True)
            else:
                response = dispatcher.upload_file(
                    verb, AddressString(url), file[0], UploadOptions(headers=headers)
                ).result()
    except RequestKitError as e:
        console.print(f"[red]✗ Upload failed: {e}[/red]")
        raise typer.Exit(code=1)

    style = "green" if response.status_code < 400 else "red"
    console.print(f"[{style}]{response.status_code} {response.reason_phrase}[/{style}]")
    if response.status_code >= 400:
        raise typer.Exit(code=1)


@app.command()
def version() -> None:
    """Print the RequestKit version."""
    typer.echo(__version__)


# ============================================================================
# Config commands
# ============================================================================


@config_app.command("show")
def config_show(
    config: Optional[str] = ConfigOption,
    raw: bool = typer.Option(False, "--raw", help="Raw JSON"),
) -> None:
    """Print merged effective config."""
    try:
        cfg = load_config(path=config)
    except RequestKitError as e:
        console.print(f"[red]✗ Error: {e}[/red]")
        raise typer.Exit(code=1)

    data = cfg.model_dump(mode="json")
    if raw:
        typer.echo(json.dumps(data, indent=2))
        return

    table = Table(title=f"RequestKit Config ({cfg.config_hash()[:8]})")
    table.add_column("Setting", style="cyan", no_wrap=True)
    table.add_column("Value", style="green")
    for section, values in data.items():
        for key, value in values.items():
            table.add_row(f"{section}.{key}", json.dumps(value))
    console.print(table)


@config_app.command("schema")
def config_schema(
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Save schema to file"),
) -> None:
    """Export JSON Schema for RequestKitConfig."""
    schema_data = export_config_schema()
    if output:
        output.write_text(json.dumps(schema_data, indent=2))
        console.print(f"[green]✓ Schema written to {output}[/green]")
    else:
        typer.echo(json.dumps(schema_data, indent=2))


def main() -> None:
    """Entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
