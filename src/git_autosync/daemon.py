import logging
import signal
import sys
import threading
from collections.abc import Callable
from logging.handlers import RotatingFileHandler
from types import FrameType

from .config import SyncConfig
from .constants import APP_NAME, DEFAULT_MAX_LOG_SIZE, LOG_FILE
from .sync import CycleReport, run_cycle

logger = logging.getLogger(APP_NAME)
logger.setLevel(logging.INFO)


def setup_logging(
    interactive: bool,
    max_log_size: int = DEFAULT_MAX_LOG_SIZE,
    verbose: bool = False,
) -> None:
    """Configures the logging subsystem.

    Calling it again replaces the handlers installed by a previous call.

    Args:
        interactive (bool): If True, logs to stdout. If False, logs to stderr
                            and to a rotating file.
        max_log_size (int, optional): Bytes before the log file is rotated.
        verbose (bool, optional): Whether to include git command output (DEBUG).
    """
    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S"
    )

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    # Always log to a stream (stderr is captured by systemd).
    stream_handler = logging.StreamHandler(
        sys.stderr if not interactive else sys.stdout
    )
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if not interactive:
        # In daemon mode, rotate logs to file.
        try:
            LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                LOG_FILE,
                maxBytes=max_log_size,
                backupCount=5,
            )
        except OSError as e:
            logger.warning(f"Could not open log file {LOG_FILE}: {e}")
        else:
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)


class Scheduler:
    """Runs a sync cycle immediately and then once per interval.

    The loop only ends when `stop_event` is set (checked during every wait) or
    after `max_cycles` cycles.

    Attributes:
        config (SyncConfig): The configuration handed to every cycle.
        stop_event (threading.Event): Signal that ends the loop.
    """

    def __init__(
        self,
        config: SyncConfig,
        stop_event: threading.Event | None = None,
        cycle: Callable[[SyncConfig], CycleReport] | None = None,
    ):
        self.config = config
        self.stop_event = stop_event if stop_event is not None else threading.Event()
        self._cycle = cycle or run_cycle

    def stop(self) -> None:
        """Requests the loop to end before the next cycle."""
        self.stop_event.set()

    def run(self, max_cycles: int | None = None) -> int:
        """Runs cycles until stopped.

        Args:
            max_cycles (int | None, optional): Upper bound on cycles, for one-off
                                               runs. Defaults to None (forever).

        Returns:
            int: The number of cycles completed.
        """
        cycles = 0
        while not self.stop_event.is_set():
            logger.info("Starting sync cycle.")
            self._cycle(self.config)
            cycles += 1

            if max_cycles is not None and cycles >= max_cycles:
                break
            # Event.wait returns True as soon as stop() is called.
            if self.stop_event.wait(self.config.interval):
                break

        logger.info(f"Scheduler stopped after {cycles} cycle(s).")
        return cycles


def install_signal_handlers(scheduler: Scheduler) -> None:
    """Stops the scheduler gracefully on SIGINT and SIGTERM."""

    def shutdown_handler(signum: int, _frame: FrameType | None) -> None:
        logger.info(f"Received {signal.Signals(signum).name}, shutting down.")
        scheduler.stop()

    signal.signal(signal.SIGINT, shutdown_handler)
    signal.signal(signal.SIGTERM, shutdown_handler)


def main(config: SyncConfig, interactive: bool = False, verbose: bool = False) -> int:
    """The main daemon execution loop.

    Args:
        config (SyncConfig): The loaded configuration.
        interactive (bool, optional): Whether to run a single cycle with console
                                      logging (CLI 'once' command).
                                      Defaults to False.
        verbose (bool, optional): Whether to log git command output.

    Returns:
        int: The number of cycles completed.
    """
    setup_logging(interactive, config.limits.max_log_size, verbose)

    if not config.repositories:
        logger.warning("No repositories configured.")

    scheduler = Scheduler(config)
    if interactive:
        return scheduler.run(max_cycles=1)

    install_signal_handlers(scheduler)
    logger.info(
        f"Daemon started: {len(config.repositories)} repositories, "
        f"interval {config.interval_ms}ms."
    )
    return scheduler.run()
