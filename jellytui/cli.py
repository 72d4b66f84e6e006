"""CLI for jellytui."""

import logging
import os
from pathlib import Path
from typing import List

import click
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from jellytui import __version__
from jellytui.config import Config, ConfigError
from jellytui.jellyfin_client import (
    JellyfinAuthError,
    JellyfinClient,
    JellyfinConnectionError,
    JellyfinError,
    JellyfinForbiddenError,
)
from jellytui.launcher import PlayerLaunchError, PlayerLauncher
from jellytui.models import MediaItem
from jellytui.playback import play_item
from jellytui.registry import ProcessRegistry

console = Console()
logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def get_data_dir() -> Path:
    """Get data directory from env or default."""
    env_dir = os.environ.get("JELLYTUI_DATA_DIR")
    if env_dir:
        return Path(env_dir)
    return Path.home() / ".jellytui"


def configure_logging(log_path: Path, debug: bool = False) -> None:
    """Send log records to the data directory's log file."""
    root = logging.getLogger("jellytui")
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    handler = logging.FileHandler(log_path, encoding="utf-8")
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if debug else logging.INFO)


def load_config() -> Config:
    """Load config or exit with status 1."""
    config = Config(data_dir=get_data_dir())
    try:
        config.load()
    except ConfigError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1)
    return config


def connect(config: Config, fetch_home: bool = False) -> JellyfinClient:
    """Authenticate and load the catalog, exiting on startup failures."""
    client = JellyfinClient(
        server_url=config.server_url,
        cache_path=config.cache_path,
        verify_ssl=not config.accept_self_signed,
    )

    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
            transient=True,
        ) as progress:
            task = progress.add_task("Authenticating...", total=None)
            client.authenticate(config.username, config.password)

            progress.update(
                task,
                description="Fetching media... this may take a while on the first run",
            )
            client.fetch_catalog()

            if fetch_home:
                progress.update(task, description="Fetching home sections...")
                client.fetch_home_sections()
    except JellyfinForbiddenError as e:
        console.print(f"[red]Access denied:[/red] {e}")
        raise SystemExit(1)
    except JellyfinAuthError as e:
        console.print(f"[red]Authentication failed:[/red] {e}")
        console.print("Run [bold]jellytui setup[/bold] to update your credentials.")
        raise SystemExit(1)
    except JellyfinError as e:
        console.print(f"[red]Connection failed:[/red] {e}")
        raise SystemExit(2)

    return client


def item_table(title: str, items: List[MediaItem]) -> Table:
    """Build a table listing catalog items."""
    table = Table(title=title)
    table.add_column("ID", style="dim")
    table.add_column("Title", style="cyan")
    table.add_column("Type")
    table.add_column("Runtime", style="green")

    for item in items:
        table.add_row(item.id, item.display_title(), item.item_type, item.format_runtime())
    return table


@click.group()
@click.version_option(version=__version__)
@click.option("--debug", is_flag=True, help="Write debug details to the log file")
def cli(debug):
    """Jellyfin terminal client - browse your library and play it in mpv."""
    config = Config(data_dir=get_data_dir())
    configure_logging(config.log_path, debug)


@cli.command()
def setup():
    """Interactive setup wizard to configure the Jellyfin connection."""
    config = Config(data_dir=get_data_dir())

    # Warn if config exists
    if config.exists():
        console.print(
            "[yellow]Configuration already exists at:[/yellow] "
            f"{config.config_path}"
        )
        if not click.confirm("Overwrite existing configuration?"):
            console.print("[dim]Setup cancelled.[/dim]")
            return

    console.print("\n[bold]jellytui Setup[/bold]\n")

    server_url = click.prompt(
        "Jellyfin server URL (e.g. http://foobar.baz:8096/jf)", type=str
    )
    accept_self_signed = click.confirm(
        "Does your server use a self-signed https certificate?", default=False
    )
    username = click.prompt("Username", type=str)
    password = click.prompt("Password", hide_input=True, type=str, default="",
                            show_default=False)

    try:
        config.set_server(server_url, accept_self_signed)
    except ConfigError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1)

    console.print("\n[dim]Authenticating with Jellyfin server...[/dim]")

    client = JellyfinClient(
        server_url=config.server_url,
        verify_ssl=not accept_self_signed,
    )
    try:
        client.authenticate(username, password)
    except JellyfinAuthError as e:
        console.print(f"[red]Authentication failed:[/red] {e}")
        raise SystemExit(1)
    except JellyfinConnectionError as e:
        console.print(f"[red]Connection failed:[/red] {e}")
        raise SystemExit(1)

    config.set_credentials(username, password)
    config.save()

    console.print("\n[green]✓ Setup complete![/green]")
    console.print(f"  Config saved to: {config.config_path}")
    console.print("\nRun [bold]jellytui home[/bold] to see what to watch.")


@cli.command()
def home():
    """Show continue watching, next up and latest added."""
    config = load_config()
    client = connect(config, fetch_home=True)

    console.print(item_table("Continue Watching", client.home.resume))
    console.print(item_table("Next Up", client.home.next_up))
    console.print(item_table("Latest Added", client.home.latest))


@cli.command("list")
@click.option(
    "--type",
    "item_type",
    type=click.Choice(["movies", "series", "episodes"]),
    default="movies",
    help="Kind of items to list",
)
def list_items(item_type):
    """List the catalog."""
    config = load_config()
    client = connect(config)

    wanted = {"movies": "Movie", "series": "Series", "episodes": "Episode"}[item_type]
    items = sorted(
        (item for item in client.items.values() if item.item_type == wanted),
        key=lambda item: item.name,
    )
    console.print(item_table(item_type.capitalize(), items))


@cli.command()
@click.argument("series_id")
def episodes(series_id):
    """List the episodes of a series."""
    config = load_config()
    client = connect(config)

    series = client.get_item(series_id)
    if series is None or not series.is_series:
        console.print(f"[red]No series with id {series_id}[/red]")
        raise SystemExit(1)

    console.print(
        item_table(f"{series.name} Episodes", client.get_episodes_from_series(series_id))
    )


@cli.command()
@click.argument("item_id")
def info(item_id):
    """Show details for an item."""
    config = load_config()
    client = connect(config)

    item = client.get_item(item_id)
    if item is None:
        console.print(f"[red]No item with id {item_id}[/red]")
        raise SystemExit(1)

    lines = [f"[bold]{item.display_title()}[/bold]", ""]
    if not item.is_episode:
        lines.append(str(item.year) if item.year else "Year unknown")
    lines.append(item.format_runtime())
    if not item.is_episode:
        rating = f"{item.community_rating:.1f}" if item.community_rating is not None else "N/A"
        critic = f"{item.critic_rating}%" if item.critic_rating is not None else "N/A"
        lines.append(f"IMDb: {rating}")
        lines.append(f"Rotten Tomatoes: {critic}")
    lines.append(f"Ends at {item.format_end_time()}")
    lines.extend(["", "[bold]Overview[/bold]", item.overview or "No overview available"])

    console.print(Panel("\n".join(lines), title=f"{item.item_type} Info"))


@cli.command()
@click.argument("item_id")
@click.option("--auto-next", is_flag=True, help="Continue with the next episode without asking")
def play(item_id, auto_next):
    """Play an item in mpv, continuing through the series."""
    config = load_config()
    client = connect(config)

    item = client.get_item(item_id)
    if item is None:
        console.print(f"[red]No item with id {item_id}[/red]")
        raise SystemExit(1)
    if item.is_series:
        console.print("[yellow]Pick an episode:[/yellow] jellytui episodes " + item.id)
        raise SystemExit(1)

    registry = ProcessRegistry()
    launcher = PlayerLauncher(config.server_url, registry, player=config.player_path)

    try:
        while item is not None:
            console.print(f"[bold]Now Playing:[/bold] {item.display_title()}")
            try:
                item = play_item(client, launcher, item)
            except KeyboardInterrupt:
                logger.info("Playback interrupted")
                break
            except PlayerLaunchError as e:
                console.print(f"[red]Could not start player:[/red] {e}")
                raise SystemExit(3)
            except JellyfinError as e:
                console.print(f"[red]Playback failed:[/red] {e}")
                raise SystemExit(2)

            if item is None:
                break
            if not auto_next and not click.confirm(
                f"Play next: {item.display_title()}?", default=True
            ):
                break
    finally:
        registry.cleanup()


@cli.command()
def refresh():
    """Rebuild the catalog cache and home sections."""
    config = load_config()
    client = connect(config)

    try:
        with console.status("Refreshing cache and home page..."):
            client.refresh_cache()
    except JellyfinError as e:
        console.print(f"[red]Refresh failed:[/red] {e}")
        raise SystemExit(2)

    console.print(f"[green]✓ Cached {len(client.items)} items[/green]")
    console.print(f"  Saved to: {config.cache_path}")


@cli.command()
def validate():
    """Validate configuration and test the Jellyfin connection."""
    config = Config(data_dir=get_data_dir())

    # Check config exists
    if not config.exists():
        console.print("[red]Configuration not found.[/red]")
        console.print("Run [bold]jellytui setup[/bold] to configure.")
        raise SystemExit(1)

    # Load config
    try:
        config.load()
    except ConfigError as e:
        console.print(f"[red]Invalid configuration:[/red] {e}")
        raise SystemExit(1)

    console.print(f"[dim]Server URL:[/dim] {config.server_url}")
    console.print(f"[dim]Username:[/dim] {config.username}")

    console.print("\n[dim]Testing connection...[/dim]")

    client = JellyfinClient(
        server_url=config.server_url,
        verify_ssl=not config.accept_self_signed,
    )
    try:
        client.authenticate(config.username, config.password)
    except JellyfinError as e:
        console.print(f"[red]✗ Connection failed:[/red] {e}")
        raise SystemExit(2)

    if client.test_connection():
        console.print("[green]✓ Connection valid![/green]")
    else:
        console.print("[red]✗ Connection failed.[/red]")
        raise SystemExit(2)


if __name__ == "__main__":
    cli()
