"""
Options for a sandboxed mongod instance.
Values are validated when assigned; the runner works on its own copy so later changes never reach it.
"""

import copy
import math
import os
import tempfile
from datetime import timedelta
from typing import Any, Callable, Optional, Union

Logger = Callable[[str], None]
Seconds = Union[int, float, timedelta]

DEFAULT_CONNECTION_TIMEOUT = 30.0
DEFAULT_REPLICA_SET_SETUP_TIMEOUT = 10.0
DEFAULT_DATA_DIRECTORY_LIFETIME = 12 * 60 * 60.0
DEFAULT_REPLICA_SET_NAME = "singleNodeReplSet"
DEFAULT_ROOT_DATA_DIRECTORY_NAME = "mongo-sandbox"

_SHARED_ON_COPY = ("_standard_output_logger", "_standard_error_logger")


def default_root_data_directory_path() -> str:
    return os.path.join(tempfile.gettempdir(), DEFAULT_ROOT_DATA_DIRECTORY_NAME)


def _check_directory_path(name: str, path: Any) -> Optional[str]:
    if path is None:
        return None
    if not isinstance(path, (str, os.PathLike)):
        raise TypeError(f"{name} must be a path, got {type(path).__name__}")
    path = os.fspath(path)
    if not path.strip():
        raise ValueError(f"{name} cannot be blank")
    if "\x00" in path:
        raise ValueError(f"{name} contains a NUL character: {path!r}")
    return path


def _check_seconds(name: str, value: Any) -> float:
    if isinstance(value, timedelta):
        value = value.total_seconds()
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"{name} must be a number of seconds or a timedelta")
    if not math.isfinite(value):
        raise ValueError(f"{name} must be finite, got {value}")
    if value < 0:
        raise ValueError(f"{name} cannot be negative, got {value}")
    return float(value)


def _check_logger(name: str, value: Any) -> Optional[Logger]:
    if value is not None and not callable(value):
        raise TypeError(f"{name} must be callable")
    return value


class MongoRunnerOptions:
    """
    Settings for MongoRunner. Pass another instance to copy it, then keyword settings to override:

        options = MongoRunnerOptions(base, use_single_node_replica_set=True)
    """

    def __init__(self, options: Optional["MongoRunnerOptions"] = None, **settings: Any):
        self._data_directory: Optional[str] = None
        self._binary_directory: Optional[str] = None
        self._root_data_directory_path: str = default_root_data_directory_path()
        self._data_directory_lifetime = DEFAULT_DATA_DIRECTORY_LIFETIME
        self._additional_arguments: Optional[str] = None
        self._connection_timeout = DEFAULT_CONNECTION_TIMEOUT
        self._use_single_node_replica_set = False
        self._replica_set_setup_timeout = DEFAULT_REPLICA_SET_SETUP_TIMEOUT
        self._replica_set_name = DEFAULT_REPLICA_SET_NAME
        self._mongo_port: Optional[int] = None
        self._standard_output_logger: Optional[Logger] = None
        self._standard_error_logger: Optional[Logger] = None
        self._kill_mongo_processes_when_current_process_exits = False
        self._delete_data_directory_on_dispose = True

        if options is not None:
            if not isinstance(options, MongoRunnerOptions):
                raise TypeError("options must be a MongoRunnerOptions instance")
            for attr, value in vars(options).items():
                setattr(self, attr, value if attr in _SHARED_ON_COPY else copy.deepcopy(value))

        for name, value in settings.items():
            if not isinstance(getattr(type(self), name, None), property):
                raise TypeError(f"unknown option: {name}")
            setattr(self, name, value)

    def copy(self) -> "MongoRunnerOptions":
        return MongoRunnerOptions(self)

    @property
    def data_directory(self) -> Optional[str]:
        """Where mongod stores its data. A fresh directory under root_data_directory_path when None."""
        return self._data_directory

    @data_directory.setter
    def data_directory(self, value) -> None:
        self._data_directory = _check_directory_path("data_directory", value)

    @property
    def binary_directory(self) -> Optional[str]:
        """Directory holding mongod, mongoimport and mongoexport."""
        return self._binary_directory

    @binary_directory.setter
    def binary_directory(self, value) -> None:
        self._binary_directory = _check_directory_path("binary_directory", value)

    @property
    def root_data_directory_path(self) -> str:
        """Parent of auto-generated data directories; also the directory swept for expired ones."""
        return self._root_data_directory_path

    @root_data_directory_path.setter
    def root_data_directory_path(self, value) -> None:
        path = _check_directory_path("root_data_directory_path", value)
        self._root_data_directory_path = path if path is not None else default_root_data_directory_path()

    @property
    def data_directory_lifetime(self) -> float:
        """Auto-generated data directories at least this old (seconds) are deleted on the next run."""
        return self._data_directory_lifetime

    @data_directory_lifetime.setter
    def data_directory_lifetime(self, value: Seconds) -> None:
        self._data_directory_lifetime = _check_seconds("data_directory_lifetime", value)

    @property
    def additional_arguments(self) -> Optional[str]:
        """Extra mongod arguments, appended to the command line."""
        return self._additional_arguments

    @additional_arguments.setter
    def additional_arguments(self, value: Optional[str]) -> None:
        if value is not None and not isinstance(value, str):
            raise TypeError("additional_arguments must be a string")
        self._additional_arguments = value

    @property
    def connection_timeout(self) -> float:
        """Seconds to wait for mongod to accept connections."""
        return self._connection_timeout

    @connection_timeout.setter
    def connection_timeout(self, value: Seconds) -> None:
        self._connection_timeout = _check_seconds("connection_timeout", value)

    @property
    def use_single_node_replica_set(self) -> bool:
        return self._use_single_node_replica_set

    @use_single_node_replica_set.setter
    def use_single_node_replica_set(self, value: bool) -> None:
        self._use_single_node_replica_set = bool(value)

    @property
    def replica_set_setup_timeout(self) -> float:
        """Seconds to wait for each replica set readiness condition."""
        return self._replica_set_setup_timeout

    @replica_set_setup_timeout.setter
    def replica_set_setup_timeout(self, value: Seconds) -> None:
        self._replica_set_setup_timeout = _check_seconds("replica_set_setup_timeout", value)

    @property
    def replica_set_name(self) -> str:
        return self._replica_set_name

    @replica_set_name.setter
    def replica_set_name(self, value: str) -> None:
        if not isinstance(value, str) or not value.strip():
            raise ValueError("replica_set_name cannot be blank")
        self._replica_set_name = value

    @property
    def mongo_port(self) -> Optional[int]:
        """mongod port. A random available loopback port when None."""
        return self._mongo_port

    @mongo_port.setter
    def mongo_port(self, value: Optional[int]) -> None:
        if value is not None:
            if isinstance(value, bool) or not isinstance(value, int):
                raise TypeError("mongo_port must be an integer")
            if value <= 0:
                raise ValueError(f"mongo_port must be greater than zero, got {value}")
        self._mongo_port = value

    @property
    def standard_output_logger(self) -> Optional[Logger]:
        """Called with every stdout line of mongod and the import/export tools."""
        return self._standard_output_logger

    @standard_output_logger.setter
    def standard_output_logger(self, value: Optional[Logger]) -> None:
        self._standard_output_logger = _check_logger("standard_output_logger", value)

    @property
    def standard_error_logger(self) -> Optional[Logger]:
        """Called with every stderr line, and with sandbox failures that are not raised."""
        return self._standard_error_logger

    @standard_error_logger.setter
    def standard_error_logger(self, value: Optional[Logger]) -> None:
        self._standard_error_logger = _check_logger("standard_error_logger", value)

    @property
    def kill_mongo_processes_when_current_process_exits(self) -> bool:
        """Kill still-running child processes from an atexit hook."""
        return self._kill_mongo_processes_when_current_process_exits

    @kill_mongo_processes_when_current_process_exits.setter
    def kill_mongo_processes_when_current_process_exits(self, value: bool) -> None:
        self._kill_mongo_processes_when_current_process_exits = bool(value)

    @property
    def delete_data_directory_on_dispose(self) -> bool:
        """
        Whether dispose deletes an auto-generated data directory. When False it is left for the
        expired directory sweep. A caller-supplied data_directory is never deleted.
        """
        return self._delete_data_directory_on_dispose

    @delete_data_directory_on_dispose.setter
    def delete_data_directory_on_dispose(self, value: bool) -> None:
        self._delete_data_directory_on_dispose = bool(value)

    def __repr__(self) -> str:
        fields = ", ".join(f"{k.lstrip('_')}={v!r}" for k, v in vars(self).items())
        return f"MongoRunnerOptions({fields})"
