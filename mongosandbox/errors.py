"""
Exceptions raised by mongosandbox.
Every error derives from MongoSandboxError and, where one fits, from the matching built-in exception.
"""

from typing import Optional


class MongoSandboxError(Exception):
    """Base class for all mongosandbox errors."""


class ExecutableNotFoundError(MongoSandboxError, FileNotFoundError):
    """A mongod / mongoimport / mongoexport binary could not be found."""


class ConnectionReadinessTimeoutError(MongoSandboxError, TimeoutError):
    """mongod did not report it was waiting for connections in time."""


class ReplicaSetInitTimeoutError(MongoSandboxError, TimeoutError):
    """The single node replica set did not become ready in time."""


class ReplicaSetReadinessTimeoutError(ReplicaSetInitTimeoutError):
    """No connected primary was observed in time."""


class TransactionReadinessTimeoutError(ReplicaSetInitTimeoutError):
    """No connected data-bearing member was observed in time."""


class ReplicaSetCommandError(MongoSandboxError):
    """replSetInitiate failed for a reason other than a timeout."""


class ReplicaSetConfigurationError(MongoSandboxError):
    """Raised by the mongod process when the replica set bootstrap fails. See __cause__."""


class RunnerDisposedError(MongoSandboxError, RuntimeError):
    """An operation was attempted on an already disposed runner."""


class MongoToolError(MongoSandboxError):
    """mongoimport or mongoexport exited with a non-zero status."""

    def __init__(self, message: str, returncode: Optional[int] = None, command: Optional[list[str]] = None):
        super().__init__(message)
        self.returncode = returncode
        self.command = command or []


class TeardownError(MongoSandboxError):
    """More than one teardown step failed. Individual failures are in `errors`."""

    def __init__(self, errors: list[BaseException]):
        self.errors = list(errors)
        details = "; ".join(f"{type(e).__name__}: {e}" for e in self.errors)
        super().__init__(f"{len(self.errors)} errors occurred while disposing the MongoDB runner ({details})")
