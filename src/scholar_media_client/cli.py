import asyncio
import logging
import sys
from datetime import timedelta
from pathlib import Path
from typing import Optional
from uuid import UUID

import typer

if sys.platform == "win32":
    # Политика с SelectorEventLoop: ProactorEventLoop по умолчанию в Windows не дружит с asyncpg
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from rich.progress import BarColumn, Progress, TextColumn

from scholar_media_client import create_media_client
from scholar_media_client.exceptions import MediaClientError
from scholar_media_client.logging import configure as configure_logging
from scholar_media_client.utils.cli_utils import get_rich_console, human_size, media_table

app = typer.Typer(help="CLI for scholar-media-client management.")
logger = logging.getLogger(__name__)
console = get_rich_console()


@app.callback()
def main(log_level: Optional[str] = typer.Option(None, "--log-level", help="Override LOG_LEVEL.")):
    configure_logging(log_level)


@app.command()
def init():
    """
    Creates the media_files table and ensures the MinIO bucket exists.
    """
    console.rule("[bold cyan]Service Initialization[/bold cyan]")

    async def _init():
        client = create_media_client()
        try:
            with console.status("Creating database tables...", spinner="dots"):
                try:
                    await client.create_schema()
                    console.log("[bold green]✔[/bold green] Database tables created successfully.")
                except Exception as e:
                    console.log(f"[bold red]✖[/bold red] Database initialization FAILED: {e}")
                    raise typer.Exit(code=1)

            with console.status("Initializing storage bucket...", spinner="dots"):
                try:
                    await client.store.check_connection()
                    console.log("[bold green]✔[/bold green] Storage bucket is ready.")
                except MediaClientError as e:
                    console.log(f"[bold red]✖[/bold red] Storage initialization FAILED: {e}")
                    raise typer.Exit(code=1)
        finally:
            await client.aclose()

    asyncio.run(_init())
    console.print("\n[bold green]✅ All services initialized successfully![/bold green]")


@app.command()
def check():
    """Checks connectivity to all external services (PostgreSQL, MinIO)."""
    console.rule("[bold cyan]Connection Check[/bold cyan]")

    async def _check() -> dict[str, str]:
        client = create_media_client()
        try:
            return await client.check_connections()
        finally:
            await client.aclose()

    statuses = asyncio.run(_check())
    failed = False
    for name, label in (("postgres", "PostgreSQL"), ("minio", "MinIO")):
        status = statuses.get(name, "unknown error")
        if status == "ok":
            console.print(f"[bold green]✔[/bold green] {label} connection: OK")
        else:
            failed = True
            console.print(f"[bold red]✖[/bold red] {label} connection: FAILED ({status})")
    if failed:
        raise typer.Exit(code=1)


@app.command()
def upload(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True),
    owner: UUID = typer.Option(..., "--owner", help="Owner (user) id."),
    project: UUID = typer.Option(..., "--project", help="Project id."),
    content_type: Optional[str] = typer.Option(None, "--content-type"),
    chunk_size: Optional[int] = typer.Option(None, "--chunk-size", help="Bytes per part."),
    threshold: Optional[int] = typer.Option(None, "--threshold", help="Chunk files larger than this."),
):
    """Uploads a local file, in parts when it exceeds the threshold."""

    async def _upload():
        client = create_media_client()
        try:
            with Progress(TextColumn("{task.description}"), BarColumn(), TextColumn("{task.percentage:>5.1f}%"),
                          console=console) as bar:
                task = bar.add_task("Uploading...", total=100)

                def _on_progress(percent: float, stage: Optional[str]) -> None:
                    bar.update(task, completed=percent, description=stage or "Uploading...")

                return await client.upload_large_file(
                    owner, project, path,
                    content_type=content_type,
                    chunk_size=chunk_size,
                    threshold=threshold,
                    on_progress=_on_progress,
                )
        finally:
            await client.aclose()

    try:
        record = asyncio.run(_upload())
    except MediaClientError as e:
        console.print(f"[bold red]✖[/bold red] Upload FAILED: {e}")
        raise typer.Exit(code=1)

    storage = f"{record.total_chunks} parts" if record.is_chunked else "single object"
    console.print(f"[bold green]✔[/bold green] Uploaded {record.name} ({human_size(record.file_size)}, {storage})")
    typer.echo(str(record.id))


@app.command()
def download(
    file_id: UUID = typer.Argument(...),
    output: Path = typer.Option(..., "--output", "-o", dir_okay=False),
):
    """Writes the full content of a media file, reassembling parts if needed."""

    async def _download() -> bytes:
        client = create_media_client()
        try:
            return await client.reconstruct_file(file_id)
        finally:
            await client.aclose()

    try:
        data = asyncio.run(_download())
    except MediaClientError as e:
        console.print(f"[bold red]✖[/bold red] Download FAILED: {e}")
        raise typer.Exit(code=1)
    output.write_bytes(data)
    console.print(f"[bold green]✔[/bold green] Wrote {human_size(len(data))} to {output}")


@app.command(name="list")
def list_files(project: UUID = typer.Option(..., "--project")):
    """Lists media files of a project, newest first."""

    async def _list():
        client = create_media_client()
        try:
            return await client.list_media_files(project)
        finally:
            await client.aclose()

    records = asyncio.run(_list())
    console.print(media_table(records))


@app.command()
def delete(file_id: UUID = typer.Argument(...)):
    """Deletes a media file's objects and its record."""

    async def _delete():
        client = create_media_client()
        try:
            return await client.delete_media_file(file_id)
        finally:
            await client.aclose()

    try:
        report = asyncio.run(_delete())
    except MediaClientError as e:
        console.print(f"[bold red]✖[/bold red] Delete FAILED: {e}")
        raise typer.Exit(code=1)
    console.print(f"[bold green]✔[/bold green] Deleted record {report.file_id} and {len(report.deleted_paths)} objects")
    for path, err in report.failed_paths.items():
        console.print(f"[yellow]![/yellow] {path}: {err}")


@app.command(name="sweep-orphans")
def sweep_orphans(
    prefix: Optional[str] = typer.Option(None, "--prefix", help="Limit to '<owner>/<project>/'."),
    min_age_minutes: int = typer.Option(60, "--min-age-minutes", help="Skip parts younger than this."),
    apply: bool = typer.Option(False, "--apply", help="Delete instead of only listing."),
):
    """Finds chunk parts that no media file record references."""

    async def _sweep():
        client = create_media_client()
        try:
            return await client.sweep_orphaned_parts(
                prefix=prefix, min_age=timedelta(minutes=min_age_minutes), dry_run=not apply
            )
        finally:
            await client.aclose()

    orphans = asyncio.run(_sweep())
    verb = "Deleted" if apply else "Found"
    for orphan in orphans:
        typer.echo(orphan.object_name)
    console.print(f"{verb} {len(orphans)} orphaned parts")
