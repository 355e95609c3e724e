"""
Benchmark: time from MongoRunner.run() to a usable connection string, and time to dispose.
Compares standalone mode with single-node replica set mode. Needs mongod on PATH
or MONGO_SANDBOX_BINARY_DIRECTORY.
"""

import os
import shutil
import statistics
import sys
import tempfile
import time

# Add project root
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from mongosandbox import MongoRunner, MongoRunnerOptions


def run_startup_benchmark(root: str, use_replica_set: bool, runs: int) -> tuple[list[float], list[float]]:
    """Start and dispose a runner `runs` times. Returns (startup seconds, dispose seconds)."""
    options = MongoRunnerOptions(
        root_data_directory_path=root,
        use_single_node_replica_set=use_replica_set,
        additional_arguments="--quiet",
    )
    startups, disposals = [], []
    for _ in range(runs):
        t0 = time.perf_counter()
        mongo = MongoRunner.run(options)
        t1 = time.perf_counter()
        mongo.dispose()
        t2 = time.perf_counter()
        startups.append(t1 - t0)
        disposals.append(t2 - t1)
    return startups, disposals


def main():
    runs = 5
    print(f"mongod startup / dispose time over {runs} runs (seconds)")
    print("-" * 50)
    for use_replica_set in (False, True):
        label = "replica set" if use_replica_set else "standalone"
        root = tempfile.mkdtemp(prefix="bench_")
        try:
            startups, disposals = run_startup_benchmark(root, use_replica_set, runs)
            print(
                f"  {label:12s} start median {statistics.median(startups):.2f} "
                f"(max {max(startups):.2f}), dispose median {statistics.median(disposals):.2f}"
            )
        finally:
            shutil.rmtree(root, ignore_errors=True)
    print("Done.")


if __name__ == "__main__":
    main()
