"""
Child process supervision shared by mongod and the import/export tools.
ProcessSupervisor owns the OS process: it forwards stdout/stderr lines to the configured
loggers from two reader threads and kills the process on dispose.
"""

import atexit
import logging
import subprocess
import sys
import threading
import weakref
from typing import Callable, Optional

from .options import Logger, MongoRunnerOptions
from .system import MongoProcessKind

logger = logging.getLogger(__name__)

KILL_WAIT_TIMEOUT = 10.0
READER_JOIN_TIMEOUT = 2.0

LineListener = Callable[[str], None]

_exit_kill_lock = threading.Lock()
_exit_kill_supervisors: "weakref.WeakSet[ProcessSupervisor]" = weakref.WeakSet()
_exit_kill_registered = False


def _kill_supervised_processes_at_exit() -> None:
    for supervisor in list(_exit_kill_supervisors):
        supervisor.dispose()


def _kill_at_exit(supervisor: "ProcessSupervisor") -> None:
    global _exit_kill_registered
    with _exit_kill_lock:
        if not _exit_kill_registered:
            atexit.register(_kill_supervised_processes_at_exit)
            _exit_kill_registered = True
        _exit_kill_supervisors.add(supervisor)


class ProcessSupervisor:
    """
    Spawns one process with redirected output.
    Output listeners are transient observers of stdout lines (used for readiness detection);
    they are separate from the two loggers and are all dropped on dispose.
    """

    def __init__(
        self,
        executable_path: str,
        arguments: list[str],
        stdout_logger: Optional[Logger] = None,
        stderr_logger: Optional[Logger] = None,
        kill_on_exit: bool = False,
    ):
        self.command = [executable_path, *arguments]
        self._stdout_logger = stdout_logger
        self._stderr_logger = stderr_logger
        self._kill_on_exit = kill_on_exit
        self._lock = threading.Lock()
        self._listeners: list[LineListener] = []
        self._process: Optional[subprocess.Popen] = None
        self._readers: list[threading.Thread] = []
        self._dispatching = False
        self._disposed = False

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process is not None else None

    @property
    def returncode(self) -> Optional[int]:
        return self._process.poll() if self._process is not None else None

    def add_output_listener(self, listener: LineListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def remove_output_listener(self, listener: LineListener) -> None:
        with self._lock:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

    def start(self) -> None:
        with self._lock:
            if self._disposed:
                raise RuntimeError("process supervisor is disposed")
            if self._process is not None:
                raise RuntimeError("process already started")
            self._process = subprocess.Popen(
                self.command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
                creationflags=subprocess.CREATE_NO_WINDOW if sys.platform == "win32" else 0,
            )
            self._dispatching = True
        logger.debug("Started %s (pid %d)", self.command[0], self._process.pid)

        name = f"{self.command[0]}:{self._process.pid}"
        self._readers = [
            threading.Thread(target=self._read_lines, args=(self._process.stdout, False), name=f"{name}:stdout", daemon=True),
            threading.Thread(target=self._read_lines, args=(self._process.stderr, True), name=f"{name}:stderr", daemon=True),
        ]
        for reader in self._readers:
            reader.start()

        if self._kill_on_exit:
            _kill_at_exit(self)

    def wait(self, timeout: Optional[float] = None) -> int:
        """Wait for the process to exit and for its output to be fully delivered. Returns the exit code."""
        if self._process is None:
            raise RuntimeError("process not started")
        returncode = self._process.wait(timeout=timeout)
        for reader in self._readers:
            reader.join()
        return returncode

    def _read_lines(self, stream, is_error: bool) -> None:
        # Keep draining after dispatch stops so the child never blocks on a full pipe.
        for line in stream:
            if not self._dispatching:
                continue
            line = line.rstrip("\r\n")
            sink = self._stderr_logger if is_error else self._stdout_logger
            if sink is not None:
                self._deliver(sink, line)
            if not is_error:
                with self._lock:
                    listeners = list(self._listeners)
                for listener in listeners:
                    self._deliver(listener, line)

    def _deliver(self, callback: LineListener, line: str) -> None:
        try:
            callback(line)
        except Exception:
            logger.warning("Output callback %r failed for pid %s", callback, self.pid, exc_info=True)

    def dispose(self) -> None:
        """Stop dispatching output and kill the process if it is still running. Safe to call repeatedly."""
        with self._lock:
            if self._disposed:
                return
            self._disposed = True
            self._dispatching = False
            self._listeners.clear()
            process = self._process

        _exit_kill_supervisors.discard(self)
        if process is None:
            return

        if process.poll() is None:
            try:
                process.kill()
                process.wait(timeout=KILL_WAIT_TIMEOUT)
            except (OSError, subprocess.TimeoutExpired) as ex:
                logger.debug("Could not kill pid %d: %s", process.pid, ex)
            else:
                logger.debug("Killed pid %d", process.pid)

        for reader, stream in zip(self._readers, (process.stdout, process.stderr)):
            reader.join(timeout=READER_JOIN_TIMEOUT)
            # A grandchild may still hold the pipe open; leave the daemon reader to it.
            if not reader.is_alive() and stream is not None:
                stream.close()


class MongoToolProcess:
    """mongoimport / mongoexport: runs to completion inside start()."""

    def __init__(self, options: MongoRunnerOptions, executable_path: str, arguments: list[str]):
        self._supervisor = ProcessSupervisor(
            executable_path,
            arguments,
            stdout_logger=options.standard_output_logger,
            stderr_logger=options.standard_error_logger,
            kill_on_exit=options.kill_mongo_processes_when_current_process_exits,
        )

    @property
    def command(self) -> list[str]:
        return self._supervisor.command

    def start(self) -> int:
        """Run the tool and block until it exits. Returns the exit code."""
        self._supervisor.start()
        return self._supervisor.wait()

    def dispose(self) -> None:
        self._supervisor.dispose()

    def __enter__(self) -> "MongoToolProcess":
        return self

    def __exit__(self, *exc) -> None:
        self.dispose()


class MongoProcessFactory:
    def create_mongo_process(
        self,
        options: MongoRunnerOptions,
        kind: MongoProcessKind,
        executable_path: str,
        arguments: list[str],
    ):
        if kind is MongoProcessKind.MONGOD:
            from .mongod import MongodProcess
            return MongodProcess(options, executable_path, arguments)
        return MongoToolProcess(options, executable_path, arguments)
