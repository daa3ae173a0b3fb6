"""
CLI for the datasheet upload cache.

Commands:
    datasheet upload PDF - Upload (or reuse) a file and print its request part
    datasheet list - Show cached uploads
    datasheet sweep - Remove expired cache entries
    datasheet forget PDF - Drop the cache entry for a file
    datasheet config - Show current configuration
    datasheet version - Print version
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import Annotated, Optional

import orjson
import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from datasheet import __version__
from datasheet.cache.coordinator import open_coordinator
from datasheet.cache.hashing import hash_file
from datasheet.cache.store import CacheStore
from datasheet.config import Settings, clear_settings_cache, get_settings
from datasheet.exceptions import DatasheetError
from datasheet.llm.attachment import Attachment, resolve_attachment
from datasheet.logging import setup_logging

app = typer.Typer(
    name="datasheet",
    help="Datasheet CLI - Gemini File API upload cache",
    no_args_is_help=True,
)

console = Console()
error_console = Console(stderr=True)


def _load_settings() -> Settings:
    """Load settings or exit with a readable error."""
    try:
        clear_settings_cache()
        return get_settings()
    except ValidationError as e:
        error_console.print(f"[red]Error:[/red] Configuration is invalid: {escape(str(e))}")
        raise typer.Exit(1) from e


def _fail(error: DatasheetError) -> typer.Exit:
    error_console.print(f"[red]Error:[/red] {escape(str(error))}")
    return typer.Exit(1)


def _format_remaining(seconds: float) -> str:
    if seconds <= 0:
        return "expired"
    hours, rem = divmod(int(seconds), 3600)
    return f"{hours}h {rem // 60:02d}m"


@app.callback()
def main_callback(
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Enable debug logging")
    ] = False,
) -> None:
    """Configure logging before any command runs."""
    settings = _load_settings()
    setup_logging(
        log_level="DEBUG" if verbose else settings.LOG_LEVEL,
        log_file=settings.LOG_FILE,
    )


@app.command()
def upload(
    pdf: Annotated[Path, typer.Argument(help="File to upload")],
    content_type: Annotated[
        str, typer.Option("--content-type", "-t", help="MIME type of the file")
    ] = "application/pdf",
    no_cache: Annotated[
        bool,
        typer.Option("--no-cache", help="Skip the File API and send the file inline"),
    ] = False,
    api_key: Annotated[
        Optional[str], typer.Option("--api-key", help="Gemini API key")
    ] = None,
    base_url: Annotated[
        Optional[str], typer.Option("--base-url", help="Gemini API base URL")
    ] = None,
) -> None:
    """Upload a file through the cache and print the request part as JSON.

    Files are uploaded once to Gemini's File API and reused for 48 hours.
    With --no-cache the file is read for inline use and only a summary is
    printed.
    """
    settings = _load_settings()

    try:
        if no_cache:
            attachment = Attachment.from_path(pdf, content_type)
            summary = {
                "inline_data": {
                    "mime_type": attachment.mime_type,
                    "size_bytes": len(attachment.data),
                }
            }
            typer.echo(orjson.dumps(summary).decode("utf-8"))
            return

        with open_coordinator(settings, api_key=api_key, base_url=base_url) as coordinator:
            reference = resolve_attachment(pdf, coordinator, content_type)
    except DatasheetError as e:
        raise _fail(e) from e

    typer.echo(orjson.dumps(reference.to_part()).decode("utf-8"))


@app.command("list")
def list_entries() -> None:
    """Show cached uploads with their remaining lifetime."""
    settings = _load_settings()
    store = CacheStore.load(settings.cache_file)
    records = store.records()

    if not records:
        console.print("No cached files.")
        return

    now = time.time()
    table = Table(title=str(settings.cache_file), show_header=True)
    table.add_column("Hash", style="cyan")
    table.add_column("Name", style="green")
    table.add_column("Size", justify="right")
    table.add_column("Remaining", justify="right")

    for content_hash, record in sorted(records.items(), key=lambda item: item[1].expires_at):
        remaining = "expired" if record.is_expired(now=now) else _format_remaining(record.expires_at - now)
        table.add_row(content_hash[:12], record.name, str(record.file_size), remaining)

    console.print(table)
    console.print(f"{len(records)} cached file(s)")


@app.command()
def sweep() -> None:
    """Remove expired entries from the cache."""
    settings = _load_settings()
    store = CacheStore.load(settings.cache_file)
    removed = store.sweep_expired()
    console.print(f"Removed {removed} expired entries")


@app.command()
def forget(
    pdf: Annotated[Path, typer.Argument(help="File whose cache entry to drop")],
) -> None:
    """Drop the cache entry for a file so the next upload starts fresh."""
    settings = _load_settings()
    store = CacheStore.load(settings.cache_file)

    try:
        content_hash, _ = hash_file(pdf)
        removed = store.remove(content_hash)
        if removed:
            store.save()
    except DatasheetError as e:
        raise _fail(e) from e

    if removed:
        console.print(f"Removed cache entry for {escape(str(pdf))}")
    else:
        console.print(f"No cache entry for {escape(str(pdf))}")


@app.command()
def config() -> None:
    """Show current configuration with API keys redacted."""
    settings = _load_settings()

    table = Table(title="Settings", show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    for key, value in settings.redacted_display().items():
        display_value = str(value) if value is not None else "[dim]not set[/dim]"
        table.add_row(key, display_value)

    console.print(table)


@app.command()
def version() -> None:
    """Print the version number."""
    console.print(f"datasheet-cli version {__version__}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
