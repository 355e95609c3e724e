"""
Garbage collection of expired auto-generated data directories.
A sweep runs on each runner start; when another sweep is already in progress it is skipped
rather than waited for.
"""

import logging
import os
import threading
from typing import Optional

from .options import MongoRunnerOptions
from .system import FileSystem, TimeProvider

logger = logging.getLogger(__name__)


class SweepGuard:
    """
    Process-wide count of in-flight sweeps. The lock only covers the counter update,
    never the sweep itself, so a runner that loses the race returns immediately.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._in_flight = 0

    @property
    def in_flight(self) -> int:
        return self._in_flight

    def try_enter(self) -> bool:
        """Count this sweep in. Returns False when another sweep was already running."""
        with self._lock:
            previous = self._in_flight
            self._in_flight += 1
        if previous > 0:
            self.exit()
            return False
        return True

    def exit(self) -> None:
        with self._lock:
            self._in_flight -= 1


DEFAULT_SWEEP_GUARD = SweepGuard()


class DataDirectoryCollector:
    def __init__(
        self,
        options: MongoRunnerOptions,
        file_system: Optional[FileSystem] = None,
        time_provider: Optional[TimeProvider] = None,
        guard: SweepGuard = DEFAULT_SWEEP_GUARD,
    ):
        self._options = options
        self._file_system = file_system or FileSystem()
        self._time_provider = time_provider or TimeProvider()
        self._guard = guard

    def collect(self, keep: Optional[str] = None) -> list[str]:
        """
        Delete subdirectories of the root data directory that are at least data_directory_lifetime
        old, except `keep`. Never raises; failures go to the error logger. Returns deleted paths.
        """
        if not self._guard.try_enter():
            logger.debug("Data directory sweep already in progress, skipping")
            return []
        try:
            return self._sweep(keep)
        finally:
            self._guard.exit()

    def _sweep(self, keep: Optional[str]) -> list[str]:
        root = self._options.root_data_directory_path
        try:
            directories = self._file_system.list_directories(root)
        except FileNotFoundError:
            return []
        except OSError as ex:
            self._log_error(f"Could not list data directories in '{root}': {ex}")
            return []

        keep = os.path.normcase(os.path.abspath(keep)) if keep else None
        now = self._time_provider.utc_now()
        deleted = []
        for directory in directories:
            if keep is not None and os.path.normcase(os.path.abspath(directory)) == keep:
                continue
            try:
                age = (now - self._file_system.get_directory_creation_time(directory)).total_seconds()
                if age >= self._options.data_directory_lifetime:
                    self._file_system.delete_directory(directory)
                    deleted.append(directory)
            except OSError as ex:
                self._log_error(f"Could not delete expired data directory '{directory}': {ex}")

        if deleted:
            logger.debug("Deleted %d expired data directories under %s", len(deleted), root)
        return deleted

    def _log_error(self, message: str) -> None:
        logger.debug(message)
        if self._options.standard_error_logger is not None:
            self._options.standard_error_logger(message)
