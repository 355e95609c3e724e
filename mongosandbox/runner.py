"""
Starts a sandboxed mongod and hands back a StartedMongoRunner.
The runner owns the mongod process and, unless the caller supplied one, the data directory;
both are torn down on dispose or when startup fails.
"""

import logging
import os
import shlex
import sys
import threading
from typing import Any, Optional

import pymongo
from pymongo.errors import ConnectionFailure, PyMongoError

from .cleanup import DEFAULT_SWEEP_GUARD, DataDirectoryCollector, SweepGuard
from .errors import MongoToolError, RunnerDisposedError, TeardownError
from .options import MongoRunnerOptions
from .process import MongoProcessFactory
from .system import (
    FileSystem,
    MongoExecutableLocator,
    MongoProcessKind,
    PortFactory,
    TimeProvider,
    new_data_directory_name,
)

logger = logging.getLogger(__name__)

LOCK_FILE_NAME = "mongod.lock"
SHUTDOWN_TIMEOUT = 10


def _split_arguments(arguments: Optional[str]) -> list[str]:
    if not arguments or not arguments.strip():
        return []
    return shlex.split(arguments, posix=sys.platform != "win32")


def _require(value: str, message: str) -> None:
    if value is None or not str(value).strip():
        raise ValueError(message)


class MongoRunner:
    def __init__(
        self,
        options: Optional[MongoRunnerOptions] = None,
        *,
        file_system: Optional[FileSystem] = None,
        port_factory: Optional[PortFactory] = None,
        executable_locator: Optional[MongoExecutableLocator] = None,
        process_factory: Optional[MongoProcessFactory] = None,
        time_provider: Optional[TimeProvider] = None,
        sweep_guard: SweepGuard = DEFAULT_SWEEP_GUARD,
        client_factory=pymongo.MongoClient,
    ):
        self._options = MongoRunnerOptions(options)
        self._file_system = file_system or FileSystem()
        self._port_factory = port_factory or PortFactory()
        self._executable_locator = executable_locator or MongoExecutableLocator()
        self._process_factory = process_factory or MongoProcessFactory()
        self._time_provider = time_provider or TimeProvider()
        self._sweep_guard = sweep_guard
        self._client_factory = client_factory
        self._process = None
        self._data_directory: Optional[str] = None

    @property
    def options(self) -> MongoRunnerOptions:
        return self._options

    @property
    def data_directory(self) -> Optional[str]:
        return self._data_directory

    @classmethod
    def run(cls, options: Optional[MongoRunnerOptions] = None, **settings: Any) -> "StartedMongoRunner":
        """Start mongod and block until it accepts connections (and transactions in replica set mode)."""
        return cls(MongoRunnerOptions(options, **settings)).start()

    def start(self) -> "StartedMongoRunner":
        if self._process is not None or self._data_directory is not None:
            raise RuntimeError("runner already started")
        try:
            return self._start()
        except BaseException:
            self._dispose(raise_errors=False)
            raise

    def _start(self) -> "StartedMongoRunner":
        options = self._options

        executable_path = self._executable_locator.find_executable_path(options, MongoProcessKind.MONGOD)
        self._file_system.make_file_executable(executable_path)

        if options.data_directory is not None:
            self._data_directory = options.data_directory
        else:
            self._data_directory = os.path.join(
                options.root_data_directory_path, new_data_directory_name(self._time_provider.utc_now())
            )
        self._file_system.create_directory(self._data_directory)

        try:
            self._file_system.delete_file(os.path.join(self._data_directory, LOCK_FILE_NAME))
        except OSError as ex:
            # The directory may still be in use; mongod will complain if it is.
            logger.debug("Could not remove %s from %s: %s", LOCK_FILE_NAME, self._data_directory, ex)

        if options.data_directory is None:
            self._collect_expired_data_directories()

        if options.mongo_port is None:
            options.mongo_port = self._port_factory.get_random_available_port()

        arguments = [
            "--dbpath", self._data_directory,
            "--port", str(options.mongo_port),
            "--bind_ip", "127.0.0.1",
        ]
        if sys.platform != "win32":
            arguments += ["--tlsMode", "disabled"]
        if options.use_single_node_replica_set:
            arguments += ["--replSet", options.replica_set_name]
        arguments += _split_arguments(options.additional_arguments)

        self._process = self._process_factory.create_mongo_process(
            options, MongoProcessKind.MONGOD, executable_path, arguments
        )
        self._process.start()

        if options.use_single_node_replica_set:
            connection_string = (
                f"mongodb://127.0.0.1:{options.mongo_port}/"
                f"?directConnection=true&replicaSet={options.replica_set_name}&readPreference=primary"
            )
        else:
            connection_string = f"mongodb://127.0.0.1:{options.mongo_port}"

        logger.debug("mongod ready at %s (data directory %s)", connection_string, self._data_directory)
        return StartedMongoRunner(self, connection_string)

    def _collect_expired_data_directories(self) -> None:
        collector = DataDirectoryCollector(
            self._options,
            file_system=self._file_system,
            time_provider=self._time_provider,
            guard=self._sweep_guard,
        )
        try:
            collector.collect(keep=self._data_directory)
        except Exception:
            logger.warning("Expired data directory cleanup failed", exc_info=True)

    def _dispose(self, raise_errors: bool) -> None:
        errors: list[BaseException] = []

        try:
            if self._process is not None:
                self._process.dispose()
        except Exception as ex:
            errors.append(ex)

        try:
            # Never delete a data directory the caller gave us.
            owned = self._data_directory is not None and self._options.data_directory is None
            if owned and (not raise_errors or self._options.delete_data_directory_on_dispose):
                self._file_system.delete_directory(self._data_directory)
        except Exception as ex:
            errors.append(ex)

        if not raise_errors:
            for ex in errors:
                logger.debug("Ignored teardown failure: %r", ex)
            return
        if len(errors) == 1:
            raise errors[0]
        if errors:
            raise TeardownError(errors)

    def _run_tool(self, kind: MongoProcessKind, arguments: list[str]) -> None:
        executable_path = self._executable_locator.find_executable_path(self._options, kind)
        self._file_system.make_file_executable(executable_path)

        process = self._process_factory.create_mongo_process(self._options, kind, executable_path, arguments)
        try:
            returncode = process.start()
        finally:
            process.dispose()
        if returncode != 0:
            raise MongoToolError(f"{kind.value} exited with code {returncode}", returncode, [executable_path, *arguments])


class StartedMongoRunner:
    """A running mongod. Use as a context manager, or call dispose() when done."""

    def __init__(self, runner: MongoRunner, connection_string: str):
        self._runner = runner
        self._connection_string = connection_string
        self._dispose_lock = threading.Lock()
        self._disposed = False

    @property
    def connection_string(self) -> str:
        return self._connection_string

    @property
    def disposed(self) -> bool:
        return self._disposed

    def import_collection(
        self,
        database: str,
        collection: str,
        input_file_path: str,
        additional_arguments: Optional[str] = None,
        drop: bool = False,
    ) -> None:
        """Run mongoimport against this instance and wait for it to finish."""
        self._check_not_disposed()
        _require(database, "Database name is required")
        _require(collection, "Collection name is required")
        _require(input_file_path, "Input file path is required")

        arguments = [
            f"--uri={self._connection_string}",
            f"--db={database}",
            f"--collection={collection}",
            f"--file={os.fspath(input_file_path)}",
        ]
        if drop:
            arguments.append("--drop")
        arguments += _split_arguments(additional_arguments)
        self._runner._run_tool(MongoProcessKind.MONGO_IMPORT, arguments)

    def export_collection(
        self,
        database: str,
        collection: str,
        output_file_path: str,
        additional_arguments: Optional[str] = None,
    ) -> None:
        """Run mongoexport against this instance and wait for it to finish."""
        self._check_not_disposed()
        _require(database, "Database name is required")
        _require(collection, "Collection name is required")
        _require(output_file_path, "Output file path is required")

        arguments = [
            f"--uri={self._connection_string}",
            f"--db={database}",
            f"--collection={collection}",
            f"--out={os.fspath(output_file_path)}",
        ]
        arguments += _split_arguments(additional_arguments)
        self._runner._run_tool(MongoProcessKind.MONGO_EXPORT, arguments)

    def _check_not_disposed(self) -> None:
        if self._disposed:
            raise RunnerDisposedError("MongoDB runner is already disposed")

    def dispose(self) -> None:
        with self._dispose_lock:
            if self._disposed:
                return
            self._disposed = True
        self._shutdown_quietly()
        self._runner._dispose(raise_errors=True)

    def _shutdown_quietly(self) -> None:
        # Best effort only; the process is killed afterwards regardless.
        client = None
        try:
            client = self._runner._client_factory(
                self._connection_string, serverSelectionTimeoutMS=SHUTDOWN_TIMEOUT * 1000
            )
            with pymongo.timeout(SHUTDOWN_TIMEOUT):
                client.admin.command("shutdown", 1, force=True, timeoutSecs=SHUTDOWN_TIMEOUT)
        except ConnectionFailure:
            # Expected: mongod drops the connection while shutting down.
            pass
        except PyMongoError as ex:
            logger.debug("Graceful mongod shutdown failed: %r", ex)
        finally:
            if client is not None:
                client.close()

    def __enter__(self) -> "StartedMongoRunner":
        return self

    def __exit__(self, *exc) -> None:
        self.dispose()

    def __repr__(self) -> str:
        state = "disposed" if self._disposed else "running"
        return f"<StartedMongoRunner {self._connection_string} ({state})>"
