import logging
import os
import signal
import subprocess
from pathlib import Path

from .constants import APP_NAME

logger = logging.getLogger(APP_NAME)

DRAIN_TIMEOUT = 5
"""int: Seconds to collect output after a timed-out command was killed."""


class GitError(RuntimeError):
    """Raised when a git command cannot be launched or exits non-zero.

    Attributes:
        args_list (list[str]): The arguments passed to git.
        returncode (int | None): The exit code, or None if the command never ran
            to completion.
        output (str): The captured combined stdout/stderr.
    """

    def __init__(
        self,
        message: str,
        args_list: list[str],
        returncode: int | None = None,
        output: str = "",
    ):
        super().__init__(message)
        self.args_list = args_list
        self.returncode = returncode
        self.output = output


class GitTimeoutError(GitError):
    """Raised when a git command exceeded its time bound and was killed."""


class GitRepo:
    """A wrapper around the Git command-line interface for one working copy.

    Every command runs as a single child process whose working directory is the
    repository path, so the process-wide current directory is never touched.

    Attributes:
        path (Path): The file system path to the working copy.
        executable (str): The git binary to invoke.
    """

    def __init__(self, path: Path, executable: str = "git"):
        self.path = path
        self.executable = executable

    def _env(self) -> dict[str, str]:
        env = os.environ.copy()
        # Never block on a credential prompt; keep status wording stable.
        env["GIT_TERMINAL_PROMPT"] = "0"
        env["LC_ALL"] = "C"
        return env

    def _run(self, args: list[str], timeout: float | None = None) -> str:
        """Executes a git command within the repository directory.

        Args:
            args (list[str]): A list of arguments to pass to the git command.
            timeout (float | None, optional): Seconds to wait before the child is
                                              killed. Defaults to None (wait
                                              indefinitely).

        Returns:
            str: The captured combined stdout and stderr.

        Raises:
            GitTimeoutError: If the command did not finish within `timeout`.
            GitError: If the command could not be launched or exited non-zero.
        """
        cmd = [self.executable, *args]
        try:
            proc = subprocess.Popen(
                cmd,
                cwd=self.path,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                env=self._env(),
                start_new_session=True,
            )
        except OSError as e:
            raise GitError(f"Failed to launch {cmd[0]}: {e}", args) from e

        try:
            output, _ = proc.communicate(timeout=timeout)
        except subprocess.TimeoutExpired as e:
            # Helpers such as git-remote-https inherit the pipe; kill the group.
            try:
                os.killpg(proc.pid, signal.SIGKILL)
            except OSError as kill_err:
                logger.warning(
                    f"Failed to kill 'git {args[0]}' after {timeout}s in "
                    f"{self.path}: {kill_err}"
                )
            try:
                output, _ = proc.communicate(timeout=DRAIN_TIMEOUT)
            except subprocess.TimeoutExpired:
                # A helper escaped the group and still holds the pipe.
                proc.stdout.close()
                proc.wait()
                output = ""
            raise GitTimeoutError(
                f"'git {args[0]}' timed out after {timeout}s",
                args,
                output=output or "",
            ) from e

        output = output or ""
        if proc.returncode != 0:
            raise GitError(
                f"'git {' '.join(args)}' exited with status {proc.returncode}",
                args,
                returncode=proc.returncode,
                output=output,
            )
        return output

    def pull(self, remote: str, branch: str, timeout: float | None = None) -> str:
        """Fetches and integrates `branch` from `remote`.

        Args:
            remote (str): The remote name, passed verbatim.
            branch (str): The branch name, passed verbatim.
            timeout (float | None, optional): Seconds before the child is killed.

        Returns:
            str: The command output.
        """
        return self._run(["pull", remote, branch], timeout=timeout)

    def status(self, timeout: float | None = None) -> str:
        """Returns the human-readable `git status` output."""
        return self._run(["status"], timeout=timeout)

    def add_all(self, timeout: float | None = None) -> str:
        """
        Stages all changes (modified, deleted, and untracked files)
        in the working directory.
        """
        return self._run(["add", "."], timeout=timeout)

    def commit(self, message: str, timeout: float | None = None) -> str:
        """Creates a new commit with the provided message.

        Args:
            message (str): The commit message.
            timeout (float | None, optional): Seconds before the child is killed.

        Returns:
            str: The command output.
        """
        return self._run(["commit", "-m", message], timeout=timeout)

    def push(self, remote: str, branch: str, timeout: float | None = None) -> str:
        """Uploads local commits on `branch` to `remote`."""
        return self._run(["push", remote, branch], timeout=timeout)
