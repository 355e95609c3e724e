"""Pytest fixtures: fake collaborators for MongoRunner, and markers for tests needing real MongoDB binaries."""

import os
import shutil
import sys
from datetime import datetime, timezone

import pytest
from pymongo.errors import AutoReconnect

from mongosandbox.cleanup import SweepGuard
from mongosandbox.errors import ExecutableNotFoundError
from mongosandbox.options import MongoRunnerOptions
from mongosandbox.runner import MongoRunner
from mongosandbox.system import BINARY_DIRECTORY_ENV_VAR, FileSystem, MongoExecutableLocator, MongoProcessKind

FAKE_PORT = 27999


def mongo_binaries_available(*kinds: MongoProcessKind) -> bool:
    """True when the default executable lookup finds every binary in `kinds`."""
    locator = MongoExecutableLocator()
    try:
        for kind in kinds:
            locator.find_executable_path(MongoRunnerOptions(), kind)
    except ExecutableNotFoundError:
        return False
    return True


requires_mongod = pytest.mark.skipif(
    not mongo_binaries_available(MongoProcessKind.MONGOD),
    reason=f"mongod not found in {BINARY_DIRECTORY_ENV_VAR} or on PATH",
)
requires_mongo_tools = pytest.mark.skipif(
    not mongo_binaries_available(MongoProcessKind.MONGO_IMPORT, MongoProcessKind.MONGO_EXPORT),
    reason=f"mongoimport/mongoexport not found in {BINARY_DIRECTORY_ENV_VAR} or on PATH",
)


def python_child(script: str) -> tuple[str, list[str]]:
    """Executable and arguments for a child Python process with unbuffered output."""
    return sys.executable, ["-u", "-c", script]


class FakeProcess:
    def __init__(self, kind, executable_path, arguments, start_error=None, dispose_error=None, returncode=0):
        self.kind = kind
        self.executable_path = executable_path
        self.arguments = arguments
        self.start_error = start_error
        self.dispose_error = dispose_error
        self.returncode = returncode
        self.started = 0
        self.disposed = 0

    def start(self):
        self.started += 1
        if self.start_error is not None:
            raise self.start_error
        if self.kind is not MongoProcessKind.MONGOD:
            return self.returncode

    def dispose(self):
        self.disposed += 1
        if self.dispose_error is not None:
            raise self.dispose_error


class FakeProcessFactory:
    def __init__(self):
        self.processes: list[FakeProcess] = []
        self.start_error = None
        self.dispose_error = None
        self.tool_returncode = 0

    def create_mongo_process(self, options, kind, executable_path, arguments):
        p = FakeProcess(
            kind,
            executable_path,
            list(arguments),
            start_error=self.start_error if kind is MongoProcessKind.MONGOD else None,
            dispose_error=self.dispose_error if kind is MongoProcessKind.MONGOD else None,
            returncode=self.tool_returncode,
        )
        self.processes.append(p)
        return p

    def of_kind(self, kind):
        return [p for p in self.processes if p.kind is kind]


class FakeExecutableLocator:
    def __init__(self):
        self.requests = []

    def find_executable_path(self, options, kind):
        self.requests.append(kind)
        return f"/opt/mongodb/bin/{kind.value}"


class RecordingFileSystem(FileSystem):
    """Real directories, fake chmod, injectable delete failures."""

    def __init__(self):
        self.executables = []
        self.delete_directory_error = None
        self.delete_file_error = None

    def make_file_executable(self, path):
        self.executables.append(path)

    def delete_directory(self, path):
        if self.delete_directory_error is not None:
            raise self.delete_directory_error
        super().delete_directory(path)

    def delete_file(self, path):
        if self.delete_file_error is not None:
            raise self.delete_file_error
        super().delete_file(path)


class FixedPortFactory:
    def __init__(self, port=FAKE_PORT):
        self.port = port
        self.calls = 0

    def get_random_available_port(self):
        self.calls += 1
        return self.port


class FixedTimeProvider:
    def __init__(self, now=None):
        self.now = now or datetime.now(timezone.utc)

    def utc_now(self):
        return self.now


class FakeAdmin:
    def __init__(self, client):
        self._client = client

    def command(self, command, *args, **kwargs):
        self._client.commands.append((command, args, kwargs))
        if self._client.command_error is not None:
            raise self._client.command_error
        return {"ok": 1}


class FakeClientFactory:
    """Stands in for pymongo.MongoClient in the graceful shutdown path."""

    def __init__(self, command_error=None):
        self.command_error = command_error if command_error is not None else AutoReconnect("connection closed")
        self.commands = []
        self.created = []
        self.closed = 0

    def __call__(self, *args, **kwargs):
        self.created.append((args, kwargs))
        return self

    @property
    def admin(self):
        return FakeAdmin(self)

    def close(self):
        self.closed += 1


@pytest.fixture
def root_dir(tmp_path):
    return str(tmp_path / "sandbox-root")


@pytest.fixture
def process_factory():
    return FakeProcessFactory()


@pytest.fixture
def file_system():
    return RecordingFileSystem()


@pytest.fixture
def client_factory():
    return FakeClientFactory()


@pytest.fixture
def make_runner(root_dir, process_factory, file_system, client_factory):
    """Build a MongoRunner wired to fakes, with its own sweep guard."""

    def _make(options=None, time_provider=None, **settings):
        options = MongoRunnerOptions(options, **settings)
        if "root_data_directory_path" not in settings:
            options.root_data_directory_path = root_dir
        return MongoRunner(
            options,
            file_system=file_system,
            port_factory=FixedPortFactory(),
            executable_locator=FakeExecutableLocator(),
            process_factory=process_factory,
            time_provider=time_provider or FixedTimeProvider(),
            sweep_guard=SweepGuard(),
            client_factory=client_factory,
        )

    return _make


@pytest.fixture
def isolated_root(tmp_path):
    """Root data directory for end-to-end runs; never shared between tests."""
    path = tmp_path / "mongo-sandbox-root"
    yield str(path)
    shutil.rmtree(path, ignore_errors=True)


@pytest.fixture
def mongo_log_lines():
    lines = []
    yield lines
    if os.environ.get("MONGO_SANDBOX_TEST_VERBOSE"):
        for line in lines:
            print(line)
