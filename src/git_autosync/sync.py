"""Per-repository synchronization and the cycle that drives it.

A repository is taken through a strictly forward sequence of steps: validate,
enter, pull, status, stage, commit, push. The first failing step ends its
processing for the current cycle; only a successful push marks it as synced.
Every failure is contained and logged here, so one broken repository never
stops the others from being attempted.
"""

import datetime
import logging
import os
import stat
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from .config import Repository, SyncConfig, SyncSettings
from .constants import APP_NAME, COMMIT_TIME_FORMAT, DEFAULT_STATUS_MARKERS
from .git_wrapper import GitError, GitRepo, GitTimeoutError

logger = logging.getLogger(APP_NAME)


class Step(str, Enum):
    """The stages of a repository sync, in execution order."""

    VALIDATE = "validate"
    ENTER = "enter"
    PULL = "pull"
    STATUS = "status"
    STAGE = "stage"
    COMMIT = "commit"
    PUSH = "push"


NOTHING_TO_DO = "nothing to do"


@dataclass(frozen=True)
class SyncOutcome:
    """The result of one repository in one cycle.

    Attributes:
        repository (Repository): The target that was processed.
        synced (bool): True only if the push step succeeded.
        step (Step | None): The last step reached. None if processing was
            interrupted by an unexpected error.
        reason (str): Why processing stopped, empty when synced.
        output (str): The last captured command output.
    """

    repository: Repository
    synced: bool
    step: Step | None
    reason: str = ""
    output: str = ""

    @property
    def nothing_to_do(self) -> bool:
        """True when the repository was clean and no commit was attempted."""
        return self.step is Step.STATUS and self.reason == NOTHING_TO_DO


@dataclass
class CycleReport:
    """Aggregated outcomes of one sync cycle, in processing order."""

    outcomes: list[SyncOutcome] = field(default_factory=list)

    @property
    def synced(self) -> list[str]:
        return [o.repository.path for o in self.outcomes if o.synced]

    def summary(self) -> str:
        synced = self.synced
        if not synced:
            return "No repository synced"
        return f"Finished syncing {len(synced)} repositories: {', '.join(synced)}"


def needs_commit(
    status_text: str, markers: Iterable[str] = DEFAULT_STATUS_MARKERS
) -> bool:
    """Decides whether `git status` output reports anything worth committing.

    Args:
        status_text (str): The output of `git status`.
        markers (Iterable[str]): Case-sensitive phrases that indicate unstaged,
            staged, or untracked changes.

    Returns:
        bool: True if any marker occurs in the text.
    """
    return any(marker in status_text for marker in markers)


def commit_message(suffix: str, now: datetime.datetime | None = None) -> str:
    """Builds the automatic commit message, e.g. '2024/05/01 13:37:00 auto commit'."""
    now = now or datetime.datetime.now()
    return f"{now.strftime(COMMIT_TIME_FORMAT)} {suffix}"


def _last_line(output: str) -> str:
    lines = [line.strip() for line in output.splitlines() if line.strip()]
    return lines[-1] if lines else ""


def check_path(repo: Repository) -> str | None:
    """Returns the reason the repository path is unusable, or None."""
    if not repo.path:
        return "empty path"
    try:
        st = os.stat(repo.path)
    except OSError as e:
        return f"cannot stat directory: {e.strerror or e}"
    if not stat.S_ISDIR(st.st_mode):
        return "not a directory"
    return None


def _failed(
    repo: Repository, step: Step, error: GitError, output: str = ""
) -> SyncOutcome:
    output = error.output or output
    detail = _last_line(error.output)
    if isinstance(error, GitTimeoutError):
        logger.error(f"TIMEOUT {repo.path}: git {step.value} killed. {error}")
    else:
        logger.error(
            f"ERROR {repo.path}: git {step.value} failed. {error}"
            + (f" ({detail})" if detail else "")
        )
    if error.output:
        logger.debug(f"git {step.value} output for {repo.path}:\n{error.output}")
    return SyncOutcome(repo, synced=False, step=step, reason=str(error), output=output)


def sync_repository(
    repo: Repository,
    settings: SyncSettings | None = None,
    now: datetime.datetime | None = None,
) -> SyncOutcome:
    """Runs the full sync sequence for one repository.

    Steps:
    1. Validates the path (non-empty, exists, is a directory).
    2. Checks the directory can be entered.
    3. Pulls from the remote, bounded by `pull_timeout`.
    4. Inspects `git status`; stops quietly if nothing changed.
    5. Stages everything.
    6. Commits with a timestamped message.
    7. Pushes to the remote.

    A commit that could not be pushed stays in the local history and is pushed
    by a later cycle together with newer changes.

    Args:
        repo (Repository): The repository to synchronize.
        settings (SyncSettings | None, optional): Timeouts, status markers and
                                                  commit suffix. Defaults to
                                                  SyncSettings().
        now (datetime.datetime | None, optional): Commit timestamp. Defaults to
                                                  the current local time.

    Returns:
        SyncOutcome: The single outcome of this repository for the cycle.
    """
    settings = settings or SyncSettings()

    # 1. Validate.
    if reason := check_path(repo):
        if repo.path:
            logger.warning(f"SKIPPED {repo.path}: {reason}")
        else:
            logger.warning("SKIPPED: encountered an empty repository path")
        return SyncOutcome(repo, synced=False, step=Step.VALIDATE, reason=reason)

    # 2. Enter.
    if not os.access(repo.path, os.R_OK | os.X_OK):
        reason = "cannot enter directory (permission denied)"
        logger.warning(f"SKIPPED {repo.path}: {reason}")
        return SyncOutcome(repo, synced=False, step=Step.ENTER, reason=reason)

    git = GitRepo(Path(repo.path), executable=settings.git_executable)
    timeout = settings.step_timeout
    output = ""

    # 3. Pull (may hang on the network).
    try:
        output = git.pull(repo.remote, repo.branch, timeout=settings.pull_timeout)
        logger.debug(f"git pull {repo.path}: {output.strip()}")
    except GitError as e:
        return _failed(repo, Step.PULL, e, output)

    # 4. Status.
    try:
        output = git.status(timeout=timeout)
    except GitError as e:
        return _failed(repo, Step.STATUS, e, output)
    logger.debug(f"git status {repo.path}: {output.strip()}")

    if not needs_commit(output, settings.status_markers):
        logger.info(f"NO CHANGES {repo.path}: Nothing to commit.")
        return SyncOutcome(
            repo, synced=False, step=Step.STATUS, reason=NOTHING_TO_DO, output=output
        )

    # 5. Stage.
    try:
        output = git.add_all(timeout=timeout)
    except GitError as e:
        return _failed(repo, Step.STAGE, e, output)

    # 6. Commit.
    message = commit_message(settings.commit_suffix, now)
    try:
        output = git.commit(message, timeout=timeout)
    except GitError as e:
        return _failed(repo, Step.COMMIT, e, output)

    # 7. Push.
    try:
        output = git.push(repo.remote, repo.branch, timeout=timeout)
    except GitError as e:
        return _failed(repo, Step.PUSH, e, output)
    logger.debug(f"git push {repo.path}: {output.strip()}")

    logger.info(f"SYNCED {repo.path}: Pushed to {repo.remote}/{repo.branch}.")
    return SyncOutcome(repo, synced=True, step=Step.PUSH, output=output)


@contextmanager
def preserve_cwd() -> Iterator[Path]:
    """Captures the current working directory and restores it on exit.

    The directory is only changed back if something moved it, so a scope that
    never left it performs no `chdir` at all.

    Yields:
        Path: The captured directory.

    Raises:
        OSError: If the current directory cannot be determined.
    """
    original = Path.cwd()
    try:
        yield original
    finally:
        try:
            current = Path.cwd()
        except OSError:
            current = None
        if current != original:
            os.chdir(original)


def run_cycle(config: SyncConfig) -> CycleReport:
    """Synchronizes every configured repository once, in configured order.

    Args:
        config (SyncConfig): The loaded configuration.

    Returns:
        CycleReport: The outcome of each repository and the synced paths.
    """
    report = CycleReport()

    with preserve_cwd():
        for repo in config.repositories:
            try:
                outcome = sync_repository(repo, config.sync)
            except Exception as e:
                logger.exception(f"LOOP ERROR {repo.path}")
                outcome = SyncOutcome(repo, synced=False, step=None, reason=str(e))
            report.outcomes.append(outcome)

    logger.info(f"SUMMARY: {report.summary()}")
    return report
