import argparse
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table

from . import daemon, service
from .config import ConfigError, SyncConfig, load_config
from .constants import APP_NAME, CONFIG_FILE
from .sync import check_path

logger = logging.getLogger(APP_NAME)
console = Console()
err_console = Console(stderr=True)


def load_or_exit(path: Path) -> SyncConfig:
    """Loads the configuration, terminating the process if it is unusable.

    Args:
        path (Path): The configuration file.

    Returns:
        SyncConfig: The parsed configuration.

    Raises:
        SystemExit: If the file cannot be opened, read, or decoded.
    """
    try:
        return load_config(path)
    except ConfigError as e:
        err_console.print(
            f"[bold red]FATAL:[/bold red] Failed to parse config:\n   {e}"
        )
        sys.exit(1)


def show_repositories(config: SyncConfig) -> None:
    """Prints the configured repositories and whether each path is usable."""
    table = Table(title="Configured Repositories", header_style="bold magenta")
    table.add_column("Path", style="cyan")
    table.add_column("Remote")
    table.add_column("Branch")
    table.add_column("Status")

    for repo in config.repositories:
        reason = check_path(repo)
        status = f"[red]{reason}[/red]" if reason else "[green]OK[/green]"
        path = repo.path or "[dim](empty)[/dim]"
        table.add_row(path, repo.remote, repo.branch, status)

    if config.repositories:
        console.print(table)
    else:
        console.print("[yellow]No repositories configured.[/yellow]")

    console.print(
        f"Interval: [bold]{config.interval_ms}ms[/bold]  "
        f"Pull timeout: [bold]{config.sync.pull_timeout:g}s[/bold]"
    )


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the git-autosync CLI."""
    parser = argparse.ArgumentParser(
        prog="git-autosync",
        description="Periodically pull, commit and push local git repositories.",
    )
    parser.add_argument(
        "--conf",
        "-c",
        type=Path,
        default=CONFIG_FILE,
        help=f"Path to the JSON or TOML config file (default: {CONFIG_FILE})",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Log the output of every git command",
    )

    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("run", help="Sync on a fixed interval (default)")
    subparsers.add_parser("once", help="Run a single sync cycle")
    subparsers.add_parser("check", help="Validate the config and list repositories")
    subparsers.add_parser(
        "install-service", help="Install the systemd user service (Linux)"
    )
    subparsers.add_parser("uninstall-service", help="Remove the systemd user service")

    args = parser.parse_args(argv)

    if args.command == "uninstall-service":
        service.uninstall()
        return

    config = load_or_exit(args.conf)

    if args.command == "check":
        show_repositories(config)
        return
    elif args.command == "install-service":
        service.install(args.conf)
        return
    elif args.command == "once":
        daemon.main(config, interactive=True, verbose=args.verbose)
        return

    # Default Action (run / no subcommand)
    daemon.main(config, verbose=args.verbose)


if __name__ == "__main__":
    main()
