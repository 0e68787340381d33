from rich.console import Console
from rich.table import Table

from scholar_media_client.models.media import MediaFileInDB


def get_rich_console() -> Console: return Console(stderr=True)


def human_size(size: int | None) -> str:
    """1536 -> '1.5 KiB'."""
    if size is None:
        return "-"
    value = float(size)
    for unit in ("B", "KiB", "MiB", "GiB"):
        if value < 1024 or unit == "GiB":
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GiB"


def media_table(records: list[MediaFileInDB]) -> Table:
    table = Table(title="Media files")
    table.add_column("id", style="cyan", no_wrap=True)
    table.add_column("name")
    table.add_column("type")
    table.add_column("size", justify="right")
    table.add_column("storage")
    for rec in records:
        storage = f"{rec.total_chunks} parts" if rec.is_chunked else "single"
        table.add_row(str(rec.id), rec.name, rec.file_type, human_size(rec.file_size), storage)
    return table
