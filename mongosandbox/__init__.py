"""Disposable single-node MongoDB servers for tests."""

from .errors import (
    ConnectionReadinessTimeoutError,
    ExecutableNotFoundError,
    MongoSandboxError,
    MongoToolError,
    ReplicaSetCommandError,
    ReplicaSetConfigurationError,
    ReplicaSetInitTimeoutError,
    ReplicaSetReadinessTimeoutError,
    RunnerDisposedError,
    TeardownError,
    TransactionReadinessTimeoutError,
)
from .options import MongoRunnerOptions
from .runner import MongoRunner, StartedMongoRunner

run = MongoRunner.run

__all__ = [
    "MongoRunner",
    "MongoRunnerOptions",
    "StartedMongoRunner",
    "run",
    "MongoSandboxError",
    "ExecutableNotFoundError",
    "ConnectionReadinessTimeoutError",
    "ReplicaSetInitTimeoutError",
    "ReplicaSetReadinessTimeoutError",
    "TransactionReadinessTimeoutError",
    "ReplicaSetCommandError",
    "ReplicaSetConfigurationError",
    "RunnerDisposedError",
    "MongoToolError",
    "TeardownError",
]
