"""Tests for the scheduling loop and daemon logging."""

import logging
import threading
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

from git_autosync import daemon
from git_autosync.config import Repository, SyncConfig
from git_autosync.sync import CycleReport


@pytest.fixture(autouse=True)
def reset_logger() -> Any:
    """Removes handlers installed by setup_logging after each test."""
    yield
    for handler in list(daemon.logger.handlers):
        daemon.logger.removeHandler(handler)
        handler.close()
    daemon.logger.setLevel(logging.INFO)


def test_scheduler_runs_immediately_then_waits(mocker: MagicMock) -> None:
    """Verifies the first cycle runs before any wait and the interval is honoured."""
    config = SyncConfig(interval_ms=2500)
    stop = MagicMock(spec=threading.Event)
    stop.is_set.return_value = False
    # Two intervals elapse, then the stop signal arrives during the third wait.
    stop.wait.side_effect = [False, False, True]
    cycle = MagicMock(return_value=CycleReport())

    scheduler = daemon.Scheduler(config, stop_event=stop, cycle=cycle)
    cycles = scheduler.run()

    assert cycles == 3
    assert cycle.call_count == 3
    cycle.assert_called_with(config)
    stop.wait.assert_called_with(2.5)


def test_scheduler_max_cycles_skips_final_wait() -> None:
    """Verifies a one-off run returns without sleeping."""
    stop = MagicMock(spec=threading.Event)
    stop.is_set.return_value = False
    cycle = MagicMock(return_value=CycleReport())

    cycles = daemon.Scheduler(SyncConfig(), stop_event=stop, cycle=cycle).run(
        max_cycles=1
    )

    assert cycles == 1
    stop.wait.assert_not_called()


def test_scheduler_stop_from_another_thread() -> None:
    """Verifies that stop() interrupts the inter-cycle wait promptly."""
    started = threading.Event()

    def cycle(_config: SyncConfig) -> CycleReport:
        started.set()
        return CycleReport()

    scheduler = daemon.Scheduler(SyncConfig(interval_ms=60_000), cycle=cycle)
    worker = threading.Thread(target=scheduler.run)
    worker.start()

    assert started.wait(5)
    scheduler.stop()
    worker.join(5)

    assert not worker.is_alive()


def test_scheduler_not_started_when_already_stopped() -> None:
    """Verifies no cycle runs once the stop signal is set."""
    stop = threading.Event()
    stop.set()
    cycle = MagicMock()

    assert daemon.Scheduler(SyncConfig(), stop_event=stop, cycle=cycle).run() == 0
    cycle.assert_not_called()


def test_setup_logging_daemon_mode_rotates_file(
    tmp_path: Path, mocker: MagicMock
) -> None:
    """Verifies that daemon mode adds a rotating file handler with the size limit."""
    log_file = tmp_path / "state" / "daemon.log"
    mocker.patch("git_autosync.daemon.LOG_FILE", log_file)

    daemon.setup_logging(interactive=False, max_log_size=1234)

    file_handlers = [
        h for h in daemon.logger.handlers if isinstance(h, RotatingFileHandler)
    ]
    assert len(file_handlers) == 1
    assert file_handlers[0].maxBytes == 1234
    assert log_file.parent.is_dir()


def test_setup_logging_is_idempotent(tmp_path: Path, mocker: MagicMock) -> None:
    """Verifies repeated setup does not duplicate handlers."""
    mocker.patch("git_autosync.daemon.LOG_FILE", tmp_path / "daemon.log")

    daemon.setup_logging(interactive=True)
    daemon.setup_logging(interactive=True, verbose=True)

    assert len(daemon.logger.handlers) == 1
    assert daemon.logger.level == logging.DEBUG


def test_main_interactive_runs_single_cycle(mocker: MagicMock) -> None:
    """Verifies that the 'once' mode runs exactly one cycle without signals."""
    mock_cycle = mocker.patch(
        "git_autosync.daemon.run_cycle", return_value=CycleReport()
    )
    mock_signals = mocker.patch("git_autosync.daemon.install_signal_handlers")
    config = SyncConfig(repositories=(Repository("/srv/a"),))

    assert daemon.main(config, interactive=True) == 1

    mock_cycle.assert_called_once_with(config)
    mock_signals.assert_not_called()


def test_main_daemon_installs_signal_handlers(
    tmp_path: Path, mocker: MagicMock
) -> None:
    """Verifies that the daemon loop wires SIGINT/SIGTERM to a graceful stop."""
    mocker.patch("git_autosync.daemon.LOG_FILE", tmp_path / "daemon.log")
    mock_signal = mocker.patch("git_autosync.daemon.signal.signal")

    def cycle_then_stop(config: SyncConfig) -> CycleReport:
        # Simulate SIGTERM arriving during the first cycle.
        handler = mock_signal.call_args_list[-1][0][1]
        handler(daemon.signal.SIGTERM, None)
        return CycleReport()

    mocker.patch("git_autosync.daemon.run_cycle", side_effect=cycle_then_stop)

    assert daemon.main(SyncConfig()) == 1
    registered = {c[0][0] for c in mock_signal.call_args_list}
    assert registered == {daemon.signal.SIGINT, daemon.signal.SIGTERM}
