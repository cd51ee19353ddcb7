import json
import logging
import re
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from .constants import (
    APP_NAME,
    DEFAULT_BRANCH,
    DEFAULT_COMMIT_SUFFIX,
    DEFAULT_INTERVAL_MS,
    DEFAULT_MAX_LOG_SIZE,
    DEFAULT_PULL_TIMEOUT,
    DEFAULT_REMOTE,
    DEFAULT_STATUS_MARKERS,
)

logger = logging.getLogger(APP_NAME)


class ConfigError(Exception):
    """Raised when a configuration file cannot be opened, read, or decoded."""


def parse_size(value: int | str) -> int:
    """Converts human-readable size strings (e.g., '100MB') to bytes."""
    if isinstance(value, int):
        return value
    match = re.match(r"^(\d+(?:\.\d+)?)\s*([kmg]b?)$", str(value).strip().lower())
    if not match:
        raise ValueError(f"Invalid size format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {
        "k": 1024,
        "kb": 1024,
        "m": 1024**2,
        "mb": 1024**2,
        "g": 1024**3,
        "gb": 1024**3,
    }
    return int(num * multiplier[unit])


def parse_time(value: int | float | str) -> float:
    """Converts human-readable time strings (e.g., '1hr', '30s') to seconds."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    match = re.match(
        r"^(\d+(?:\.\d+)?)\s*(s|sec|m|min|h|hr)s?$", str(value).strip().lower()
    )
    if not match:
        raise ValueError(f"Invalid time format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {"s": 1, "sec": 1, "m": 60, "min": 60, "h": 3600, "hr": 3600}
    return num * multiplier[unit]


def parse_interval_ms(value: int | str) -> int:
    """Converts an interval to milliseconds.

    Integers are taken as milliseconds already. Strings accept an ``ms`` suffix
    or any unit understood by :func:`parse_time`.
    """
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    match = re.match(r"^(\d+)\s*ms$", text)
    if match:
        return int(match.group(1))
    try:
        return int(parse_time(text) * 1000)
    except ValueError:
        raise ValueError(f"Invalid interval format '{value}'") from None


@dataclass(frozen=True)
class Repository:
    """A single synchronization target.

    Attributes:
        path (str): Absolute path of the local working copy.
        remote (str): Name of the remote to pull from and push to.
        branch (str): Name of the remote branch.
    """

    path: str
    remote: str = DEFAULT_REMOTE
    branch: str = DEFAULT_BRANCH


@dataclass(frozen=True)
class SyncSettings:
    """Tunables of the per-repository sync routine.

    Attributes:
        pull_timeout (float): Seconds before a hanging `git pull` is killed.
        step_timeout (float | None): Optional bound for status/add/commit/push.
        status_markers (tuple[str, ...]): Phrases in `git status` output that
            indicate there is something to commit.
        commit_suffix (str): Text appended to the timestamp of commit messages.
        git_executable (str): The git binary to invoke.
    """

    pull_timeout: float = DEFAULT_PULL_TIMEOUT
    step_timeout: float | None = None
    status_markers: tuple[str, ...] = DEFAULT_STATUS_MARKERS
    commit_suffix: str = DEFAULT_COMMIT_SUFFIX
    git_executable: str = "git"


@dataclass(frozen=True)
class LimitsConfig:
    """Resource limitation settings.

    Attributes:
        max_log_size (int): Max bytes for log files before rotation.
    """

    max_log_size: int = DEFAULT_MAX_LOG_SIZE


@dataclass(frozen=True)
class SyncConfig:
    """Process-wide configuration, loaded once at startup.

    Attributes:
        repositories (tuple[Repository, ...]): Targets, in processing order.
        interval_ms (int): Pause between two cycles in milliseconds.
        sync (SyncSettings): Sync routine tunables.
        limits (LimitsConfig): Resource limits.
    """

    repositories: tuple[Repository, ...] = ()
    interval_ms: int = DEFAULT_INTERVAL_MS
    sync: SyncSettings = field(default_factory=SyncSettings)
    limits: LimitsConfig = field(default_factory=LimitsConfig)

    @property
    def interval(self) -> float:
        """The cycle interval in seconds."""
        return self.interval_ms / 1000


_TOP_LEVEL_KEYS = {"interval_ms", "repositories", "sync", "limits"}


def load_config(path: Path) -> SyncConfig:
    """Reads and decodes a configuration file.

    Files ending in ``.json`` are decoded as JSON; anything else as TOML.

    Args:
        path (Path): The configuration file.

    Returns:
        SyncConfig: The parsed configuration.

    Raises:
        ConfigError: If the file cannot be opened, read, or decoded, or if its
            structure is not a valid configuration.
    """
    try:
        with open(path, "rb") as f:
            if path.suffix.lower() == ".json":
                data = json.load(f)
            else:
                data = tomllib.load(f)
    except OSError as e:
        raise ConfigError(f"failed to open config file {path}: {e}") from e
    except (json.JSONDecodeError, UnicodeDecodeError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"failed to decode config file {path}: {e}") from e

    return parse_config(data, source=str(path))


def parse_config(data: Any, source: str = "<config>") -> SyncConfig:
    """Builds a SyncConfig from an already decoded mapping.

    Args:
        data (Any): The decoded document.
        source (str): A label for error messages.

    Returns:
        SyncConfig: The parsed configuration.

    Raises:
        ConfigError: If the structure is invalid.
    """
    if not isinstance(data, dict):
        raise ConfigError(f"{source}: top level must be a table/object")

    unknown = set(data) - _TOP_LEVEL_KEYS
    if unknown:
        logger.warning(
            f"Unknown config keys in {source}: {', '.join(sorted(unknown))}. Ignoring."
        )

    config = SyncConfig(repositories=_parse_repositories(data.get("repositories")))

    if "interval_ms" in data:
        try:
            interval_ms = parse_interval_ms(data["interval_ms"])
            if interval_ms < 0:
                raise ValueError("Interval must not be negative")
            # Zero keeps the default, matching an absent key.
            if interval_ms:
                config = replace(config, interval_ms=interval_ms)
        except ValueError as e:
            logger.warning(
                f"Config error in interval_ms: {e}. Falling back to default."
            )

    if "sync" in data:
        config = replace(
            config,
            sync=_update_dataclass("sync", config.sync, _section(data, "sync", source)),
        )
    if "limits" in data:
        config = replace(
            config,
            limits=_update_dataclass(
                "limits", config.limits, _section(data, "limits", source)
            ),
        )

    return config


def _section(data: dict, name: str, source: str) -> dict:
    section = data[name]
    if not isinstance(section, dict):
        raise ConfigError(f"{source}: [{name}] must be a table/object")
    return section


def _parse_repositories(raw: Any) -> tuple[Repository, ...]:
    """Validates the shape of the repository list. Paths are checked at sync time."""
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise ConfigError("'repositories' must be a list")

    repos = []
    for index, entry in enumerate(raw):
        if not isinstance(entry, dict):
            raise ConfigError(f"repositories[{index}] must be a table/object")

        invalid_keys = set(entry) - set(Repository.__dataclass_fields__)
        if invalid_keys:
            logger.warning(
                f"Unknown config keys in repositories[{index}]: "
                f"{', '.join(sorted(invalid_keys))}. Ignoring."
            )

        values = {}
        for key in Repository.__dataclass_fields__:
            if key not in entry:
                continue
            if not isinstance(entry[key], str):
                raise ConfigError(f"repositories[{index}].{key} must be a string")
            values[key] = entry[key]
        values.setdefault("path", "")
        repos.append(Repository(**values))

    return tuple(repos)


def _parse_timeout(value: Any) -> float | None:
    if value is None:
        return None
    seconds = parse_time(value)
    if seconds <= 0:
        raise ValueError(f"Timeout must be positive, got '{value}'")
    return seconds


def _parse_markers(value: Any) -> tuple[str, ...]:
    if (
        not isinstance(value, list)
        or not value
        or not all(isinstance(m, str) and m for m in value)
    ):
        raise ValueError("Expected a non-empty list of non-empty strings")
    return tuple(value)


def _parse_string(value: Any) -> str:
    if not isinstance(value, str) or not value:
        raise ValueError(f"Expected a non-empty string, got '{value}'")
    return value


_PARSERS = {
    "pull_timeout": _parse_timeout,
    "step_timeout": _parse_timeout,
    "status_markers": _parse_markers,
    "commit_suffix": _parse_string,
    "git_executable": _parse_string,
    "max_log_size": parse_size,
}


def _update_dataclass(section_name: str, instance: Any, updates: dict) -> Any:
    """Updates a dataclass, warning on invalid keys and parsing human-readable formats."""
    valid_keys = instance.__dataclass_fields__.keys()
    filtered_updates = {}

    # 1. Catch and warn about typos / unknown keys
    invalid_keys = set(updates.keys()) - set(valid_keys)
    if invalid_keys:
        logger.warning(
            f"Unknown config keys in [{section_name}]: "
            f"{', '.join(sorted(invalid_keys))}. Ignoring."
        )

    # 2. Process valid keys
    for k, v in updates.items():
        if k not in valid_keys:
            continue

        try:
            filtered_updates[k] = _PARSERS[k](v)
            if k == "pull_timeout" and filtered_updates[k] is None:
                raise ValueError("pull_timeout cannot be disabled")
        except ValueError as e:
            filtered_updates.pop(k, None)
            logger.warning(
                f"Config error in [{section_name}].{k}: {e}. Falling back to default."
            )

    return replace(instance, **filtered_updates)
