import shutil
import subprocess
import sys
from pathlib import Path

from rich.console import Console

from .constants import APP_LABEL

console = Console()


def get_executable() -> str:
    """Locates the installed CLI executable in the system path.

    Returns:
        str: The absolute path to the 'git-autosync' executable.

    Raises:
        SystemExit: If the executable is not found in the PATH.
    """
    exe = shutil.which("git-autosync")
    if not exe:
        console.print(
            "[bold red]ERROR:[/bold red] Could not find 'git-autosync'. "
            "Ensure the package is installed."
        )
        sys.exit(1)
    return exe


def get_unit_path() -> Path:
    """Resolves the systemd user unit path."""
    return Path.home() / f".config/systemd/user/{APP_LABEL}.service"


def render_unit(executable: str, config_path: Path) -> str:
    """Builds the systemd unit running the sync loop for `config_path`."""
    return f"""[Unit]
Description=git-autosync periodic repository synchronizer
After=network-online.target

[Service]
ExecStart="{executable}" --conf "{config_path}" run
Restart=on-failure
RestartSec=30

[Install]
WantedBy=default.target
"""


def install_linux(unit_path: Path, executable: str, config_path: Path) -> None:
    """Writes, enables and starts the systemd user service.

    Args:
        unit_path (Path): The target path for the .service file.
        executable (str): The path to the CLI executable.
        config_path (Path): The configuration file the service will load.
    """
    unit_path.parent.mkdir(parents=True, exist_ok=True)
    with open(unit_path, "w") as f:
        f.write(render_unit(executable, config_path))

    subprocess.run(["systemctl", "--user", "daemon-reload"], check=True)
    subprocess.run(
        ["systemctl", "--user", "enable", "--now", unit_path.name], check=True
    )
    console.print(
        f"[bold green]SUCCESS:[/bold green] git-autosync service active (Linux).\n"
        f"Check status: systemctl --user status {unit_path.name}"
    )


def install(config_path: Path) -> None:
    """Installs the background service for the given configuration.

    Args:
        config_path (Path): The configuration file, stored as an absolute path.
    """
    if not sys.platform.startswith("linux"):
        console.print(
            "\n[bold yellow]NOTE:[/bold yellow] Service installation is only "
            "supported with systemd on Linux."
        )
        console.print("Run the loop under your own supervisor instead:")
        console.print(f"   [green]git-autosync --conf {config_path} run[/green]\n")
        return

    exe = get_executable()
    console.print(f"Installing background service (config: {config_path})...")
    install_linux(get_unit_path(), exe, config_path.resolve())


def uninstall() -> None:
    """Disables the background service and removes its unit file."""
    if not sys.platform.startswith("linux"):
        console.print(
            "\n[bold yellow]NOTE:[/bold yellow] No service is installed on "
            "this platform."
        )
        return

    unit_path = get_unit_path()
    subprocess.run(
        ["systemctl", "--user", "disable", "--now", unit_path.name],
        stderr=subprocess.DEVNULL,
    )
    if unit_path.exists():
        unit_path.unlink()
    subprocess.run(["systemctl", "--user", "daemon-reload"])

    console.print("[bold green]SUCCESS:[/bold green] Service uninstalled.")
