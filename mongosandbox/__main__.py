"""
Run a sandboxed mongod from the command line until interrupted:

    python -m mongosandbox --replica-set -- --quiet
"""

import argparse
import logging
import shlex
import sys
import time
from typing import Optional

from .errors import MongoSandboxError
from .options import MongoRunnerOptions
from .runner import MongoRunner


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="mongo-sandbox", description="Start a disposable MongoDB server.")
    p.add_argument("--port", type=int, default=None, help="mongod port (default: random free port)")
    p.add_argument("--data-dir", default=None, help="Data directory, kept on exit (default: temporary)")
    p.add_argument("--binary-dir", default=None, help="Directory containing mongod, mongoimport, mongoexport")
    p.add_argument("--replica-set", action="store_true", help="Start a single node replica set")
    p.add_argument("--connection-timeout", type=float, default=None, help="Seconds to wait for mongod")
    p.add_argument("--verbose", "-v", action="store_true", help="Echo mongod output to stderr")
    p.add_argument("mongod_args", nargs=argparse.REMAINDER, help="Extra mongod arguments, after --")
    return p


def options_from_args(args: argparse.Namespace) -> MongoRunnerOptions:
    options = MongoRunnerOptions(
        data_directory=args.data_dir,
        binary_directory=args.binary_dir,
        mongo_port=args.port,
        use_single_node_replica_set=args.replica_set,
    )
    if args.connection_timeout is not None:
        options.connection_timeout = args.connection_timeout
    extra = [a for a in args.mongod_args if a != "--"]
    if extra:
        options.additional_arguments = shlex.join(extra)
    if args.verbose:
        mongod_log = logging.getLogger("mongod")
        options.standard_output_logger = mongod_log.info
        options.standard_error_logger = mongod_log.error
    return options


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING, format="%(name)s %(message)s")
    try:
        options = options_from_args(args)
        runner = MongoRunner.run(options)
    except (MongoSandboxError, ValueError, TypeError) as ex:
        print(f"error: {ex}", file=sys.stderr)
        return 1

    with runner:
        print(runner.connection_string, flush=True)
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            pass
    return 0


if __name__ == "__main__":
    sys.exit(main())
