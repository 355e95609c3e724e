"""Command line parsing for `python -m mongosandbox`."""

import logging

from mongosandbox.__main__ import build_parser, main, options_from_args


def _options(*argv):
    return options_from_args(build_parser().parse_args(list(argv)))


def test_defaults_leave_everything_automatic():
    options = _options()
    assert options.mongo_port is None
    assert options.data_directory is None
    assert options.use_single_node_replica_set is False
    assert options.additional_arguments is None
    assert options.standard_output_logger is None


def test_flags_map_to_options(tmp_path):
    options = _options(
        "--port", "27123",
        "--data-dir", str(tmp_path),
        "--binary-dir", str(tmp_path / "bin"),
        "--replica-set",
        "--connection-timeout", "2.5",
    )
    assert options.mongo_port == 27123
    assert options.data_directory == str(tmp_path)
    assert options.binary_directory == str(tmp_path / "bin")
    assert options.use_single_node_replica_set is True
    assert options.connection_timeout == 2.5


def test_remaining_arguments_are_passed_to_mongod():
    options = _options("--", "--quiet", "--setParameter", "a=b c")
    assert options.additional_arguments == "--quiet --setParameter 'a=b c'"


def test_verbose_routes_mongod_output_to_logging():
    options = _options("-v")
    assert options.standard_output_logger == logging.getLogger("mongod").info
    assert options.standard_error_logger == logging.getLogger("mongod").error


def test_startup_error_returns_nonzero(tmp_path, capsys):
    assert main(["--binary-dir", str(tmp_path)]) == 1
    assert "mongod" in capsys.readouterr().err
