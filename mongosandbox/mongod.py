"""
The long-lived mongod process.
start() returns once mongod logs that it is waiting for connections and, in replica set
mode, once the single node replica set accepts writes and transactions.
"""

import logging
import threading

from .errors import ConnectionReadinessTimeoutError, ReplicaSetConfigurationError
from .options import MongoRunnerOptions
from .process import ProcessSupervisor
from .replica_set import ReplicaSetInitializer

logger = logging.getLogger(__name__)

CONNECTION_READY_SENTENCE = "waiting for connections"


class MongodProcess:
    def __init__(
        self,
        options: MongoRunnerOptions,
        executable_path: str,
        arguments: list[str],
        replica_set_initializer=ReplicaSetInitializer,
    ):
        self._options = options
        self._replica_set_initializer = replica_set_initializer
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

    @property
    def pid(self):
        return self._supervisor.pid

    def start(self) -> None:
        self._start_and_wait_for_connection_readiness()
        if self._options.use_single_node_replica_set:
            self._configure_and_wait_for_replica_set_readiness()

    def _start_and_wait_for_connection_readiness(self) -> None:
        ready = threading.Event()

        def on_output_line(line: str) -> None:
            if CONNECTION_READY_SENTENCE in line.lower():
                ready.set()

        self._supervisor.add_output_listener(on_output_line)
        try:
            self._supervisor.start()
            if not ready.wait(self._options.connection_timeout):
                raise ConnectionReadinessTimeoutError(
                    "MongoDB connection availability took longer than the specified timeout of "
                    f"{self._options.connection_timeout} seconds. "
                    "Consider increasing the value of 'connection_timeout'."
                )
        finally:
            self._supervisor.remove_output_listener(on_output_line)
        logger.debug("mongod (pid %s) is waiting for connections", self.pid)

    def _configure_and_wait_for_replica_set_readiness(self) -> None:
        try:
            self._replica_set_initializer(self._options).initialize()
        except Exception as ex:
            if self._options.standard_error_logger is not None:
                self._options.standard_error_logger(f"Failed to initialize replica set: {ex}")
            raise ReplicaSetConfigurationError(
                "Failed to initialize MongoDB replica set. Check the error logs for details."
            ) from ex

    def dispose(self) -> None:
        self._supervisor.dispose()
