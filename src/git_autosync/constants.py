import os
from pathlib import Path

"""Global constants and default path definitions for git-autosync.

This module defines the filesystem layout (adhering to XDG standards where applicable),
application identifiers, and the default values used by the synchronization cycle.
"""

# --- Identity ---
APP_NAME = "git-autosync"
"""str: The human-readable application name, also used as the logger name."""

APP_LABEL = "git-autosync"
"""str: The service label used for the systemd user unit."""

# --- Paths ---
_XDG_STATE = os.environ.get("XDG_STATE_HOME")
_BASE_STATE = Path(_XDG_STATE) if _XDG_STATE else Path.home() / ".local/state"

STATE_DIR = _BASE_STATE / "git-autosync"
"""Path: The directory for runtime state data (logs)."""

LOG_FILE = STATE_DIR / "daemon.log"
"""Path: The file path for the daemon process logs."""

CONFIG_DIR: Path = Path.home() / ".config/git-autosync"
"""Path: The directory for user configuration files."""

CONFIG_FILE: Path = CONFIG_DIR / "config.toml"
"""Path: The default configuration file path."""

# --- Sync Defaults ---
DEFAULT_INTERVAL_MS = 10 * 1000
"""int: Pause between two sync cycles when `interval_ms` is zero or absent."""

DEFAULT_PULL_TIMEOUT = 30
"""int: Seconds a `git pull` may run before the child process is killed."""

DEFAULT_REMOTE = "origin"
DEFAULT_BRANCH = "main"

DEFAULT_STATUS_MARKERS = (
    "Changes not staged for commit",
    "Untracked files",
    "Changes to be committed",
)
"""tuple[str, ...]: `git status` phrases that mean there is something to commit."""

COMMIT_TIME_FORMAT = "%Y/%m/%d %H:%M:%S"
"""str: strftime format of the timestamp that prefixes automatic commit messages."""

DEFAULT_COMMIT_SUFFIX = "auto commit"

DEFAULT_MAX_LOG_SIZE = 5 * 1024 * 1024
"""int: Max bytes for the daemon log before rotation."""
