"""
Thin wrappers around the operating system: files and directories, free ports, the clock
and the location of the MongoDB binaries. The runner takes them as constructor arguments
so tests can swap them out.
"""

import enum
import os
import shutil
import socket
import stat
import sys
import uuid
from datetime import datetime, timezone
from typing import Optional

from .errors import ExecutableNotFoundError
from .options import MongoRunnerOptions

BINARY_DIRECTORY_ENV_VAR = "MONGO_SANDBOX_BINARY_DIRECTORY"
DATA_DIRECTORY_TIMESTAMP_FORMAT = "%Y%m%dT%H%M%S%fZ"


class MongoProcessKind(enum.Enum):
    MONGOD = "mongod"
    MONGO_IMPORT = "mongoimport"
    MONGO_EXPORT = "mongoexport"


def new_data_directory_name(created_at: datetime) -> str:
    """Unique directory name starting with its UTC creation time, e.g. 20240601T120000000000Z-<hex>."""
    stamp = created_at.astimezone(timezone.utc).strftime(DATA_DIRECTORY_TIMESTAMP_FORMAT)
    return f"{stamp}-{uuid.uuid4().hex}"


def parse_data_directory_name(name: str) -> Optional[datetime]:
    stamp, sep, _ = name.partition("-")
    if not sep:
        return None
    try:
        return datetime.strptime(stamp, DATA_DIRECTORY_TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        return None


class FileSystem:
    def create_directory(self, path: str) -> None:
        os.makedirs(path, exist_ok=True)

    def delete_directory(self, path: str) -> None:
        """Recursively delete a directory. A missing directory is not an error."""
        if os.path.isdir(path):
            shutil.rmtree(path)

    def delete_file(self, path: str) -> None:
        if os.path.exists(path):
            os.remove(path)

    def make_file_executable(self, path: str) -> None:
        if sys.platform == "win32":
            return
        mode = os.stat(path).st_mode
        wanted = mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH
        if wanted != mode:
            os.chmod(path, wanted)

    def list_directories(self, path: str) -> list[str]:
        """Immediate subdirectories of path, as full paths."""
        with os.scandir(path) as entries:
            return [entry.path for entry in entries if entry.is_dir(follow_symlinks=False)]

    def get_directory_creation_time(self, path: str) -> datetime:
        """
        Creation time in UTC. Data directories made by the runner carry it in their name.
        Anything else falls back to the birth time where the platform records one, otherwise
        the inode change time, which moves whenever an entry inside is added or removed.
        """
        created_at = parse_data_directory_name(os.path.basename(os.path.normpath(path)))
        if created_at is not None:
            return created_at
        st = os.stat(path)
        created = getattr(st, "st_birthtime", None)
        if created is None:
            created = st.st_ctime
        return datetime.fromtimestamp(created, tz=timezone.utc)


class PortFactory:
    def get_random_available_port(self) -> int:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.bind(("127.0.0.1", 0))
            return s.getsockname()[1]


class TimeProvider:
    def utc_now(self) -> datetime:
        return datetime.now(timezone.utc)


class MongoExecutableLocator:
    """Finds mongod / mongoimport / mongoexport: binary_directory, then the env var, then PATH."""

    def find_executable_path(self, options: MongoRunnerOptions, kind: MongoProcessKind) -> str:
        file_name = kind.value + (".exe" if sys.platform == "win32" else "")

        directory = options.binary_directory or os.environ.get(BINARY_DIRECTORY_ENV_VAR) or None
        if directory is not None:
            path = os.path.abspath(os.path.join(directory, file_name))
            if not os.path.isfile(path):
                raise ExecutableNotFoundError(
                    f"Could not find {kind.value} executable at '{path}' "
                    f"(binary directory: '{directory}')"
                )
            return path

        path = shutil.which(kind.value)
        if path is None:
            raise ExecutableNotFoundError(
                f"Could not find {kind.value} executable on PATH. Install MongoDB, or set "
                f"binary_directory or the {BINARY_DIRECTORY_ENV_VAR} environment variable."
            )
        return os.path.abspath(path)
