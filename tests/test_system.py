"""Operating system wrappers: data directory ages and executable lookup."""

import os
from datetime import datetime, timedelta, timezone

import pytest

from conftest import mongo_binaries_available
from mongosandbox.errors import ExecutableNotFoundError
from mongosandbox.options import MongoRunnerOptions
from mongosandbox.system import (
    BINARY_DIRECTORY_ENV_VAR,
    FileSystem,
    MongoExecutableLocator,
    MongoProcessKind,
    new_data_directory_name,
    parse_data_directory_name,
)

CREATED = datetime(2024, 6, 1, 12, 30, 15, 123456, tzinfo=timezone.utc)


def test_data_directory_name_carries_creation_time():
    name = new_data_directory_name(CREATED)
    assert name.startswith("20240601T123015123456Z-")
    assert parse_data_directory_name(name) == CREATED
    assert new_data_directory_name(CREATED) != name


def test_data_directory_name_is_stamped_in_utc():
    local = CREATED.astimezone(timezone(timedelta(hours=5)))
    assert parse_data_directory_name(new_data_directory_name(local)) == CREATED


@pytest.mark.parametrize("name", ["old-1", "0123abcd", "notatime-abc", ""])
def test_unstamped_names_are_not_parsed(name):
    assert parse_data_directory_name(name) is None


def test_writing_inside_a_data_directory_does_not_change_its_age(tmp_path):
    fs = FileSystem()
    path = str(tmp_path / new_data_directory_name(CREATED))
    fs.create_directory(path)
    before = fs.get_directory_creation_time(path)

    with open(os.path.join(path, "WiredTiger"), "w") as f:
        f.write("x")
    os.remove(os.path.join(path, "WiredTiger"))

    assert before == CREATED
    assert fs.get_directory_creation_time(path) == CREATED


def test_unstamped_directory_falls_back_to_stat(tmp_path):
    path = tmp_path / "made-by-someone-else"
    path.mkdir()
    created = FileSystem().get_directory_creation_time(str(path))
    assert created.tzinfo is not None
    assert abs((datetime.now(timezone.utc) - created).total_seconds()) < 60


def test_locator_prefers_binary_directory(tmp_path, monkeypatch):
    monkeypatch.delenv(BINARY_DIRECTORY_ENV_VAR, raising=False)
    (tmp_path / "mongod").write_text("")
    path = MongoExecutableLocator().find_executable_path(
        MongoRunnerOptions(binary_directory=str(tmp_path)), MongoProcessKind.MONGOD
    )
    assert path == str(tmp_path / "mongod")


def test_locator_uses_environment_variable(tmp_path, monkeypatch):
    (tmp_path / "mongoexport").write_text("")
    monkeypatch.setenv(BINARY_DIRECTORY_ENV_VAR, str(tmp_path))
    locator = MongoExecutableLocator()
    assert locator.find_executable_path(MongoRunnerOptions(), MongoProcessKind.MONGO_EXPORT) == str(
        tmp_path / "mongoexport"
    )
    with pytest.raises(ExecutableNotFoundError) as exc_info:
        locator.find_executable_path(MongoRunnerOptions(), MongoProcessKind.MONGO_IMPORT)
    assert str(tmp_path) in str(exc_info.value)


def test_end_to_end_skip_check_follows_executable_lookup(tmp_path, monkeypatch):
    monkeypatch.setenv(BINARY_DIRECTORY_ENV_VAR, str(tmp_path))
    assert not mongo_binaries_available(MongoProcessKind.MONGOD)
    (tmp_path / "mongod").write_text("")
    assert mongo_binaries_available(MongoProcessKind.MONGOD)
