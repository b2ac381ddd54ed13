import asyncio
import json
import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich import print
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from courseshelf import __version__
from courseshelf.app import CourseShelfApp
from courseshelf.config import config
from courseshelf.db.sqlite import Database
from courseshelf.services.media_repository import MediaRepository
from courseshelf.utils.logging import setup_logging

app = typer.Typer(
    name="courseshelf",
    help="Personal video-course library with byte-range streaming",
    add_completion=False
)

console = Console()
logger = logging.getLogger(__name__)


def print_welcome_message():
    """Print a welcome message."""
    message = """
[bold cyan]CourseShelf[/bold cyan]

[italic]Your video courses, streamed from your own disk[/italic]

Version: {version}
    """.format(version=__version__)

    console.print(Panel(message, title="Welcome", expand=False))


@app.callback()
def callback():
    """CourseShelf service."""
    setup_logging()


@app.command()
def serve(
    port: Optional[int] = typer.Option(
        None, "--port", "-p", help="HTTP port to listen on"
    ),
    media_roots: Optional[List[str]] = typer.Option(
        None, "--media-root", "-m", help="Directory videos may be streamed from (repeatable)"
    ),
    data_dir: Optional[Path] = typer.Option(
        None, "--data-dir", "-d", help="Directory for the database"
    ),
):
    """Start the HTTP server."""
    if port:
        config.server.http_port = port

    if media_roots:
        config.stream.media_roots = media_roots

    if data_dir:
        config.server.data_dir = str(data_dir)

    print_welcome_message()

    print("[bold]Configuration:[/bold]")
    print(f"  Media roots: {', '.join(config.stream.media_roots) or 'None'}")
    print(f"  Database: {config.db_file}")
    print(f"  Listening on: {config.server.host}:{config.server.http_port}")
    print("")

    try:
        asyncio.run(_run_app())
    except KeyboardInterrupt:
        print("\nShutting down...")
    except Exception as e:
        logger.error(f"Error running CourseShelf: {e}", exc_info=True)
        print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1)


@app.command("import-manifest")
def import_manifest(
    owner: str = typer.Argument(..., help="User id that will own the videos"),
    manifest: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON list of {path, title} objects"),
):
    """Import videos for a user from a JSON manifest."""
    try:
        entries = json.loads(manifest.read_text(encoding="utf-8"))
        videos = [(entry["path"], entry.get("title") or Path(entry["path"]).stem) for entry in entries]
    except (ValueError, KeyError, TypeError) as e:
        print(f"[bold red]Error:[/bold red] Invalid manifest: {e}")
        raise typer.Exit(code=1)

    count = asyncio.run(_import_videos(owner, videos))
    print(f"Imported [bold]{count}[/bold] videos for {owner}")


@app.command("list-videos")
def list_videos(owner: str = typer.Argument(..., help="User id")):
    """List a user's videos."""
    videos = asyncio.run(_list_videos(owner))

    table = Table(title=f"Videos for {owner}")
    table.add_column("ID", justify="right")
    table.add_column("Title")
    table.add_column("Location")
    table.add_column("Done")

    for video in videos:
        table.add_row(str(video.id), video.title, video.path, "yes" if video.completed else "")

    console.print(table)


async def _run_app():
    """Run the application until it is signalled to stop."""
    course_app = CourseShelfApp(config)
    await course_app.start()
    await course_app.wait_for_stop()


async def _import_videos(owner: str, videos) -> int:
    db = Database(config.db_file)
    await db.initialize()
    try:
        return await MediaRepository(db).import_videos(owner, videos)
    finally:
        await db.close()


async def _list_videos(owner: str):
    db = Database(config.db_file)
    await db.initialize()
    try:
        return await MediaRepository(db).list_videos(owner)
    finally:
        await db.close()


if __name__ == "__main__":
    app()
