"""git-autosync: periodic pull/commit/push of local git working copies.

This package provides the command-line interface, the scheduling daemon, and
the per-repository synchronization routine that keeps a list of local
repositories in step with their remotes.
"""

from . import (
    cli,
    config,
    constants,
    daemon,
    git_wrapper,
    service,
    sync,
)

__all__ = [
    "cli",
    "config",
    "constants",
    "daemon",
    "git_wrapper",
    "service",
    "sync",
]
